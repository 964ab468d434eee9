from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, Optional


class WorkingTimeMode(str, Enum):
    """Режим рабочего времени задачи."""
    STANDARD = 'standard'
    NIGHT = 'night'
    WEEKEND = 'weekend'
    HOLIDAY = 'holiday'
    CONTINUOUS = 'continuous'
    ACCELERATED = 'accelerated'

    @property
    def counts_every_day(self):
        return self in (WorkingTimeMode.CONTINUOUS, WorkingTimeMode.ACCELERATED)


class TaskStatus(str, Enum):
    """Статус задачи."""
    PLANNED = 'planned'
    LAUNCHED = 'launched'
    EXTENDED = 'extended'
    SUSPENDED = 'suspended'
    POSTPONED = 'postponed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class DependencyType(str, Enum):
    """Тип зависимости между задачами."""
    FS = 'FS'
    SS = 'SS'
    FF = 'FF'
    SF = 'SF'


class DayType(str, Enum):
    WORKED = 'worked'
    NON_WORKED = 'non_worked'


class ExceptionType(str, Enum):
    """Тип исключения в календаре (конкретная дата)."""
    WORKED = 'worked'
    PUBLIC_HOLIDAY = 'public_holiday'
    NON_WORKED = 'non_worked'
    REDUCED_HOURS = 'reduced_hours'
    EXCEPTIONAL = 'exceptional'

    @property
    def is_worked(self):
        return self in (ExceptionType.WORKED, ExceptionType.REDUCED_HOURS, ExceptionType.EXCEPTIONAL)


@dataclass
class DaySchedule:
    """Working hours of one day: start, lunch break and end."""
    day_type: DayType = DayType.WORKED
    start_time: Optional[time] = None
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None
    end_time: Optional[time] = None

    @property
    def is_worked(self):
        return self.day_type == DayType.WORKED

    def worked_hours(self):
        """
        Returns the worked span of the day in hours.

        The span is end minus start minus the lunch break. Non-worked days
        and days without explicit hours contribute nothing.
        """
        if not self.is_worked or self.start_time is None or self.end_time is None:
            return 0.0

        minutes = minutes_of_day(self.end_time) - minutes_of_day(self.start_time)
        if self.lunch_start is not None and self.lunch_end is not None:
            minutes -= minutes_of_day(self.lunch_end) - minutes_of_day(self.lunch_start)

        return max(0.0, minutes / 60)


@dataclass
class CalendarException:
    """Исключение календаря: праздник, выходной или особые часы на дату."""
    day: date
    kind: ExceptionType
    label: str = ''
    start_time: Optional[time] = None
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None
    end_time: Optional[time] = None

    def to_schedule(self, template=None):
        """
        Converts the exception into the schedule effective for its date.

        A worked exception without explicit hours keeps the hours of the
        weekly template when there is one.
        """
        if not self.kind.is_worked:
            return DaySchedule(day_type=DayType.NON_WORKED)

        if self.start_time is None and template is not None:
            return DaySchedule(
                day_type=DayType.WORKED,
                start_time=template.start_time,
                lunch_start=template.lunch_start,
                lunch_end=template.lunch_end,
                end_time=template.end_time
            )

        return DaySchedule(
            day_type=DayType.WORKED,
            start_time=self.start_time,
            lunch_start=self.lunch_start,
            lunch_end=self.lunch_end,
            end_time=self.end_time
        )


@dataclass
class Calendar:
    """Модель рабочего календаря."""
    id: int
    label: str = ''
    site_id: Optional[int] = None  # None - глобальный календарь
    active: bool = True
    # Ключ - день недели: 0 - воскресенье, 6 - суббота
    week: Dict[int, DaySchedule] = field(default_factory=dict)
    exceptions: Dict[date, CalendarException] = field(default_factory=dict)

    @property
    def is_global(self):
        return self.site_id is None

    def template_for(self, day):
        return self.week.get(weekday_number(day))

    def entry_for(self, day):
        """Returns the effective schedule of a date, or None if the calendar has no entry."""
        day = as_date(day)
        template = self.template_for(day)
        exception = self.exceptions.get(day)
        if exception is not None:
            return exception.to_schedule(template)
        return template


@dataclass
class Task:
    """Модель задачи (активности) проекта."""
    id: int
    project_id: int
    label: str
    start: datetime
    end: datetime
    milestone_id: Optional[int] = None
    parent_id: Optional[int] = None  # Только для иерархии, в расчетах не используется
    duration_units: Optional[float] = None
    mode: WorkingTimeMode = WorkingTimeMode.STANDARD
    calendar_id: Optional[int] = None
    status: TaskStatus = TaskStatus.PLANNED
    progress: int = 0
    site_id: Optional[int] = None
    planned_hours: Optional[float] = None


@dataclass
class Dependency:
    """Зависимость: predecessor -> successor."""
    successor_id: int
    predecessor_id: int
    type: DependencyType = DependencyType.FS
    lag_days: int = 0
    id: Optional[int] = None


@dataclass
class Milestone:
    """Модель этапа (лота) проекта."""
    id: int
    project_id: int
    label: str = ''
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    is_gantt_milestone: bool = False


def weekday_number(day):
    """
    Преобразует дату в номер дня недели.

    Returns:
        0 - воскресенье, 1 - понедельник, ..., 6 - суббота
    """
    return (day.weekday() + 1) % 7


def as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def to_midnight(value):
    """Drops the clock time, keeping the value's type."""
    if isinstance(value, datetime):
        return datetime.combine(value.date(), time.min, tzinfo=value.tzinfo)
    return value


def minutes_of_day(value):
    return value.hour * 60 + value.minute
