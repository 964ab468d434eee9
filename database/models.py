from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, DateTime, Float, Time, Date as SQLAlchemyDate
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime

Base = declarative_base()


class Project(Base):
    """Модель проекта в БД."""
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    activities = relationship("Activity", back_populates="project")
    lots = relationship("Lot", back_populates="project")

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}')>"


class Lot(Base):
    """Модель этапа (лота) проекта в БД."""
    __tablename__ = 'lots'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False)
    label = Column(String, nullable=False, default='')
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    is_gantt_milestone = Column(Boolean, default=False)  # Отображается как веха на диаграмме

    project = relationship("Project", back_populates="lots")
    activities = relationship("Activity", back_populates="lot")

    def __repr__(self):
        return f"<Lot(id={self.id}, label='{self.label}', start={self.start_date}, end={self.end_date})>"


class Activity(Base):
    """Модель задачи (активности) в БД."""
    __tablename__ = 'activities'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False)
    lot_id = Column(Integer, ForeignKey('lots.id'), nullable=True)
    parent_id = Column(Integer, ForeignKey('activities.id'), nullable=True)  # ID родительской задачи
    calendar_id = Column(Integer, ForeignKey('calendars.id'), nullable=True)
    label = Column(String, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    duration_units = Column(Float, nullable=True)
    working_time_mode = Column(String, nullable=False, default='standard')
    status = Column(String, nullable=False, default='planned')
    progress = Column(Integer, default=0)
    site_id = Column(Integer, nullable=True)
    planned_hours = Column(Float, nullable=True)

    project = relationship("Project", back_populates="activities")
    lot = relationship("Lot", back_populates="activities")
    calendar = relationship("WorkCalendar")
    predecessors = relationship(
        "TaskDependency",
        foreign_keys="[TaskDependency.task_id]",
        back_populates="task"
    )

    def __repr__(self):
        return f"<Activity(id={self.id}, label='{self.label}', status='{self.status}')>"


class TaskDependency(Base):
    """Модель зависимости между задачами в БД."""
    __tablename__ = 'task_dependencies'

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey('activities.id'), nullable=False)
    predecessor_id = Column(Integer, ForeignKey('activities.id'), nullable=False)
    type = Column(String, nullable=False, default='FS')
    lag_days = Column(Integer, nullable=False, default=0)

    task = relationship("Activity", foreign_keys=[task_id], back_populates="predecessors")
    predecessor = relationship("Activity", foreign_keys=[predecessor_id])

    def __repr__(self):
        return f"<TaskDependency(task_id={self.task_id}, predecessor_id={self.predecessor_id}, type='{self.type}')>"


class WorkCalendar(Base):
    """Модель рабочего календаря в БД."""
    __tablename__ = 'calendars'

    id = Column(Integer, primary_key=True)
    label = Column(String, nullable=False, default='')
    site_id = Column(Integer, nullable=True)  # NULL - глобальный календарь
    active = Column(Boolean, default=True)

    week_days = relationship("CalendarWeekDay", back_populates="calendar", cascade="all, delete-orphan")
    days = relationship("CalendarDay", back_populates="calendar", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<WorkCalendar(id={self.id}, label='{self.label}', site_id={self.site_id})>"


class CalendarWeekDay(Base):
    """Модель дня недельного шаблона календаря в БД."""
    __tablename__ = 'calendar_week_days'

    id = Column(Integer, primary_key=True)
    calendar_id = Column(Integer, ForeignKey('calendars.id'), nullable=False)
    weekday = Column(Integer, nullable=False)  # 0 - воскресенье, 6 - суббота
    day_type = Column(String, nullable=False, default='worked')
    start_time = Column(Time, nullable=True)
    lunch_start = Column(Time, nullable=True)
    lunch_end = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    calendar = relationship("WorkCalendar", back_populates="week_days")

    def __repr__(self):
        return f"<CalendarWeekDay(calendar_id={self.calendar_id}, weekday={self.weekday}, type='{self.day_type}')>"


class CalendarDay(Base):
    """Модель исключения календаря на конкретную дату в БД."""
    __tablename__ = 'calendar_days'

    id = Column(Integer, primary_key=True)
    calendar_id = Column(Integer, ForeignKey('calendars.id'), nullable=False)
    day = Column(SQLAlchemyDate, nullable=False)
    kind = Column(String, nullable=False)
    label = Column(String, nullable=True)
    start_time = Column(Time, nullable=True)
    lunch_start = Column(Time, nullable=True)
    lunch_end = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)

    calendar = relationship("WorkCalendar", back_populates="days")

    def __repr__(self):
        return f"<CalendarDay(calendar_id={self.calendar_id}, day={self.day}, kind='{self.kind}')>"
