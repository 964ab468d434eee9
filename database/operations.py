from contextlib import contextmanager
from enum import Enum

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from database.models import Base, Project, Lot, Activity, TaskDependency, WorkCalendar, CalendarWeekDay, CalendarDay
from config import DATABASE_URL
from logger import logger
from planning.calendar import add_public_holidays
from planning.models import (
    Calendar, CalendarException, DaySchedule, DayType, Dependency, DependencyType, ExceptionType, Milestone, Task,
    TaskStatus, WorkingTimeMode
)

# Создаем соединение с БД
engine = create_engine(DATABASE_URL)
Session = sessionmaker(bind=engine)

# Поля задачи, которые можно сохранить через patch_task
TASK_PATCH_COLUMNS = {
    'start': 'start_date',
    'end': 'end_date',
    'duration_units': 'duration_units',
    'status': 'status',
    'calendar_id': 'calendar_id',
    'mode': 'working_time_mode',
    'progress': 'progress',
    'planned_hours': 'planned_hours',
}


def init_db(bind=None):
    """Инициализирует базу данных."""
    bind = bind or engine
    logger.info(f"Инициализация базы данных с URL: {bind.url}")
    try:
        Base.metadata.create_all(bind)
        logger.info("База данных успешно инициализирована")

    except Exception as e:
        logger.error(f"Ошибка при инициализации базы данных: {str(e)}")
        raise


@contextmanager
def session_scope(session_factory=None):
    """
    Контекстный менеджер для работы с сессиями SQLAlchemy.
    Автоматически выполняет commit при успешном завершении
    и rollback при возникновении исключения.
    """
    session = (session_factory or Session)()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Ошибка при работе с БД: {str(e)}")
        raise
    finally:
        session.close()


def _value(value):
    if isinstance(value, Enum):
        return value.value
    return value


def task_from_row(row):
    """Преобразует строку таблицы activities в Task."""
    return Task(
        id=row.id,
        project_id=row.project_id,
        label=row.label,
        start=row.start_date,
        end=row.end_date,
        milestone_id=row.lot_id,
        parent_id=row.parent_id,
        duration_units=row.duration_units,
        mode=WorkingTimeMode(row.working_time_mode),
        calendar_id=row.calendar_id,
        status=TaskStatus(row.status),
        progress=row.progress or 0,
        site_id=row.site_id,
        planned_hours=row.planned_hours
    )


def dependency_from_row(row):
    return Dependency(
        successor_id=row.task_id,
        predecessor_id=row.predecessor_id,
        type=DependencyType(row.type),
        lag_days=row.lag_days or 0,
        id=row.id
    )


def milestone_from_row(row):
    return Milestone(
        id=row.id,
        project_id=row.project_id,
        label=row.label,
        start=row.start_date,
        end=row.end_date,
        is_gantt_milestone=bool(row.is_gantt_milestone)
    )


def calendar_from_row(row):
    """Собирает Calendar из календаря, его недельного шаблона и исключений."""
    week = {}
    for week_day in row.week_days:
        week[week_day.weekday] = DaySchedule(
            day_type=DayType(week_day.day_type),
            start_time=week_day.start_time,
            lunch_start=week_day.lunch_start,
            lunch_end=week_day.lunch_end,
            end_time=week_day.end_time
        )

    exceptions = {}
    for day in row.days:
        exceptions[day.day] = CalendarException(
            day=day.day,
            kind=ExceptionType(day.kind),
            label=day.label or '',
            start_time=day.start_time,
            lunch_start=day.lunch_start,
            lunch_end=day.lunch_end,
            end_time=day.end_time
        )

    return Calendar(
        id=row.id,
        label=row.label,
        site_id=row.site_id,
        active=bool(row.active),
        week=week,
        exceptions=exceptions
    )


def create_project(name, session_factory=None):
    """
    Создает новый проект в БД.

    Args:
        name: Название проекта

    Returns:
        ID созданного проекта
    """
    with session_scope(session_factory) as session:
        project = Project(name=name)
        session.add(project)
        session.flush()
        return project.id


def add_milestone(project_id, label, start=None, end=None, is_gantt_milestone=False, session_factory=None):
    """
    Добавляет этап (лот) в проект.

    Returns:
        ID созданного этапа
    """
    with session_scope(session_factory) as session:
        lot = Lot(
            project_id=project_id,
            label=label,
            start_date=start,
            end_date=end,
            is_gantt_milestone=is_gantt_milestone
        )
        session.add(lot)
        session.flush()
        return lot.id


def add_task(project_id, label, start, end, milestone_id=None, session_factory=None, **fields):
    """
    Добавляет задачу в проект.

    Args:
        project_id: ID проекта
        label: Название задачи
        start: Дата начала
        end: Дата окончания (включительно)
        milestone_id: ID этапа
        **fields: Остальные поля Task (duration_units, mode, status, calendar_id...)

    Returns:
        ID созданной задачи
    """
    unknown = set(fields) - set(TASK_PATCH_COLUMNS) - {'parent_id', 'site_id'}
    if unknown:
        raise ValueError(f"Неизвестные поля задачи: {', '.join(sorted(unknown))}")

    with session_scope(session_factory) as session:
        activity = Activity(project_id=project_id, label=label, start_date=start, end_date=end, lot_id=milestone_id)
        for name, value in fields.items():
            setattr(activity, TASK_PATCH_COLUMNS.get(name, name), _value(value))
        session.add(activity)
        session.flush()
        return activity.id


def add_calendar(label, week=None, site_id=None, active=True, session_factory=None):
    """
    Создает календарь.

    Args:
        label: Название календаря
        week: Dict {номер дня недели: DaySchedule}, 0 - воскресенье
        site_id: ID площадки, None - глобальный календарь
        active: Активен ли календарь

    Returns:
        ID созданного календаря
    """
    with session_scope(session_factory) as session:
        calendar = WorkCalendar(label=label, site_id=site_id, active=active)
        for weekday, schedule in (week or {}).items():
            calendar.week_days.append(CalendarWeekDay(
                weekday=weekday,
                day_type=_value(schedule.day_type),
                start_time=schedule.start_time,
                lunch_start=schedule.lunch_start,
                lunch_end=schedule.lunch_end,
                end_time=schedule.end_time
            ))
        session.add(calendar)
        session.flush()
        logger.info(f"Создан календарь '{label}' с ID {calendar.id}")
        return calendar.id


def _exception_row(calendar_id, exception):
    return CalendarDay(
        calendar_id=calendar_id,
        day=exception.day,
        kind=_value(exception.kind),
        label=exception.label,
        start_time=exception.start_time,
        lunch_start=exception.lunch_start,
        lunch_end=exception.lunch_end,
        end_time=exception.end_time
    )


def add_calendar_exception(calendar_id, exception, session_factory=None):
    """Добавляет или заменяет исключение календаря на дату."""
    with session_scope(session_factory) as session:
        session.query(CalendarDay).filter(
            CalendarDay.calendar_id == calendar_id,
            CalendarDay.day == exception.day
        ).delete()
        row = _exception_row(calendar_id, exception)
        session.add(row)
        session.flush()
        return row.id


class SqlTaskStore:
    """Хранилище задач и зависимостей в БД."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def list_tasks(self, project_id):
        with session_scope(self.session_factory) as session:
            rows = session.query(Activity).filter(Activity.project_id == project_id).order_by(Activity.id).all()
            return [task_from_row(row) for row in rows]

    def list_dependencies(self, project_id):
        """Возвращает зависимости между задачами проекта."""
        with session_scope(self.session_factory) as session:
            rows = session.query(TaskDependency).join(
                Activity, TaskDependency.task_id == Activity.id
            ).filter(Activity.project_id == project_id).order_by(TaskDependency.id).all()
            return [dependency_from_row(row) for row in rows]

    def patch_task(self, task_id, patch):
        """
        Сохраняет измененные поля задачи.

        Args:
            task_id: ID задачи
            patch: Dict of Task fields to save

        Returns:
            Fresh Task as stored, or None when the task does not exist
        """
        with session_scope(self.session_factory) as session:
            activity = session.get(Activity, task_id)
            if activity is None:
                logger.warning(f"Задача {task_id} не найдена, изменение не сохранено")
                return None

            for name, value in patch.items():
                column = TASK_PATCH_COLUMNS.get(name)
                if column is None:
                    logger.warning(f"Поле '{name}' задачи не сохраняется")
                    continue
                setattr(activity, column, _value(value))

            session.flush()
            return task_from_row(activity)

    def add_dependency(self, successor_id, predecessor_id, type=DependencyType.FS, lag_days=0):
        """
        Добавляет зависимость между задачами.

        Args:
            successor_id: ID зависимой задачи
            predecessor_id: ID предшествующей задачи
            type: Тип зависимости (FS, SS, FF, SF)
            lag_days: Задержка в днях

        Returns:
            Созданная Dependency

        Raises:
            ValueError: Задача не может зависеть от самой себя
        """
        if successor_id == predecessor_id:
            raise ValueError("Задача не может зависеть от самой себя")

        with session_scope(self.session_factory) as session:
            dependency = TaskDependency(
                task_id=successor_id,
                predecessor_id=predecessor_id,
                type=_value(DependencyType(type)),
                lag_days=lag_days
            )
            session.add(dependency)
            session.flush()
            logger.info(f"Добавлена зависимость {predecessor_id} -> {successor_id} ({dependency.type})")
            return dependency_from_row(dependency)


class SqlMilestoneStore:
    """Хранилище этапов (лотов) в БД."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def list_milestones(self, project_id):
        with session_scope(self.session_factory) as session:
            rows = session.query(Lot).filter(Lot.project_id == project_id).order_by(Lot.id).all()
            return [milestone_from_row(row) for row in rows]

    def patch_milestone(self, milestone_id, start, end):
        """Сохраняет даты этапа и возвращает его актуальное состояние."""
        with session_scope(self.session_factory) as session:
            lot = session.get(Lot, milestone_id)
            if lot is None:
                logger.warning(f"Этап {milestone_id} не найден, изменение не сохранено")
                return None

            lot.start_date = start
            lot.end_date = end
            session.flush()
            return milestone_from_row(lot)


class SqlCalendarStore:
    """Хранилище календарей в БД."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def get_calendar(self, calendar_id):
        with session_scope(self.session_factory) as session:
            row = session.get(WorkCalendar, calendar_id)
            if row is None:
                return None
            return calendar_from_row(row)

    def list_active_calendars(self, site_id=None):
        """
        Возвращает активные календари.

        Args:
            site_id: If given, only the global calendars and those of this site
        """
        with session_scope(self.session_factory) as session:
            query = session.query(WorkCalendar).filter(WorkCalendar.active.is_(True))
            if site_id is not None:
                query = query.filter((WorkCalendar.site_id == site_id) | (WorkCalendar.site_id.is_(None)))
            return [calendar_from_row(row) for row in query.order_by(WorkCalendar.id).all()]

    def save_public_holidays(self, calendar_id, first_year, last_year):
        """
        Добавляет праздничные дни в календарь и сохраняет их.

        Returns:
            List of the CalendarException objects added
        """
        with session_scope(self.session_factory) as session:
            row = session.get(WorkCalendar, calendar_id)
            if row is None:
                raise ValueError(f"Календарь {calendar_id} не найден")

            calendar = calendar_from_row(row)
            added = add_public_holidays(calendar, first_year, last_year)
            for exception in added:
                session.add(_exception_row(calendar_id, exception))

            return added
