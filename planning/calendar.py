"""
Календарные расчеты: рабочие дни, длительности и рабочие часы задач.

All functions are pure. Dates may be ``date`` or ``datetime`` values; the
walks move one calendar day at a time and keep the type of the value they
were given.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
import math

from dateutil.easter import easter

from config import DEFAULT_HOURS_PER_DAY, HOURS_SEARCH_LIMIT_DAYS
from planning.models import (
    CalendarException, ExceptionType, WorkingTimeMode, as_date, minutes_of_day
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# A calendar without any worked day must not make the walks spin forever
MAX_IDLE_DAYS = 366


def round_duration(value):
    """Округляет длительность до 2 знаков (половина - от нуля)."""
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def day_schedule(day, calendar=None):
    """
    Returns the schedule effective on a date.

    Args:
        day: Date to check
        calendar: Calendar or None

    Returns:
        DaySchedule from the date's exception if any, else from the weekly
        template; None when there is no calendar or no entry for the date
    """
    if calendar is None:
        return None
    return calendar.entry_for(day)


def is_worked_day(day, calendar=None):
    """
    Проверяет, является ли дата рабочим днем.

    Without a calendar Monday to Friday are worked. With a calendar the
    date's exception wins over the weekly template; a date with neither is
    not worked.
    """
    if calendar is None:
        return day.weekday() < 5

    schedule = calendar.entry_for(day)
    return schedule is not None and schedule.is_worked


def _target_days(duration_units):
    # 2.5 рабочих дня занимают 3 дня
    return math.ceil(round_duration(duration_units))


def add_working_duration(start, duration_units, mode=WorkingTimeMode.STANDARD, calendar=None):
    """
    Вычисляет дату окончания по дате начала и длительности в рабочих днях.

    The start day is included: a one-day task starts and ends on the same
    day when the start day is worked.

    Args:
        start: Task start
        duration_units: Duration in working units, fractions allowed
        mode: Working-time mode of the task
        calendar: Work calendar or None for Monday-Friday

    Returns:
        End date of the same type as start
    """
    mode = WorkingTimeMode(mode)

    if duration_units is None or duration_units <= 0:
        logger.warning(f"Недопустимая длительность {duration_units}, дата окончания = дате начала")
        return start

    target = _target_days(duration_units)

    if mode.counts_every_day:
        return start + timedelta(days=target - 1)

    worked = 0
    idle = 0
    current = start

    while True:
        if is_worked_day(current, calendar):
            worked += 1
            idle = 0
            if worked >= target:
                return current
        else:
            idle += 1
            if idle > MAX_IDLE_DAYS:
                logger.warning(f"Календарь без рабочих дней после {as_date(start)}, расчет остановлен")
                return current

        current += ONE_DAY


def subtract_working_duration(end, duration_units, mode=WorkingTimeMode.STANDARD, calendar=None):
    """
    Mirror of add_working_duration: walks backwards from the end date.

    Returns:
        Start date such that the closed interval [start, end] holds
        duration_units working days
    """
    mode = WorkingTimeMode(mode)

    if duration_units is None or duration_units <= 0:
        logger.warning(f"Недопустимая длительность {duration_units}, дата начала = дате окончания")
        return end

    target = _target_days(duration_units)

    if mode.counts_every_day:
        return end - timedelta(days=target - 1)

    worked = 0
    idle = 0
    current = end

    while True:
        if is_worked_day(current, calendar):
            worked += 1
            idle = 0
            if worked >= target:
                return current
        else:
            idle += 1
            if idle > MAX_IDLE_DAYS:
                logger.warning(f"Календарь без рабочих дней до {as_date(end)}, расчет остановлен")
                return current

        current -= ONE_DAY


def count_working_duration(start, end, mode=WorkingTimeMode.STANDARD, calendar=None):
    """
    Считает длительность задачи в рабочих днях (обе даты включительно).

    Returns:
        Number of working days, 0 when end is before start
    """
    mode = WorkingTimeMode(mode)
    first, last = as_date(start), as_date(end)

    if last < first:
        logger.warning(f"Дата окончания {last} раньше даты начала {first}, длительность = 0")
        return 0

    if mode.counts_every_day:
        return (last - first).days + 1

    count = 0
    current = first
    while current <= last:
        if is_worked_day(current, calendar):
            count += 1
        current += ONE_DAY

    return count


def worked_hours(start, end, calendar=None, site_id=None):
    """
    Sums the worked hours of every date in the closed interval.

    Each date contributes its span (end - start - lunch break) from the
    exception if present, else from the weekly template. Dates without an
    entry contribute nothing.

    Args:
        start: First date
        end: Last date (included)
        calendar: Work calendar
        site_id: Site of the task, only checked against the calendar scope

    Returns:
        Hours rounded to 2 decimals, 0 without a calendar
    """
    if calendar is None:
        return 0.0

    if site_id is not None and calendar.site_id not in (None, site_id):
        logger.warning(f"Календарь {calendar.id} относится к площадке {calendar.site_id}, а не {site_id}")

    first, last = as_date(start), as_date(end)
    if last < first:
        logger.warning(f"Дата окончания {last} раньше даты начала {first}, часы = 0")
        return 0.0

    hours = 0.0
    current = first
    while current <= last:
        schedule = calendar.entry_for(current)
        if schedule is not None:
            hours += schedule.worked_hours()
        current += ONE_DAY

    return round_duration(hours)


def estimate_planned_hours(start, end, calendar=None, duration_units=None):
    """
    Оценивает плановые часы задачи.

    Uses the calendar when there is one, else DEFAULT_HOURS_PER_DAY per
    working unit, else DEFAULT_HOURS_PER_DAY per weekday of the interval.
    """
    if calendar is not None:
        return worked_hours(start, end, calendar)

    if duration_units:
        return round_duration(duration_units * DEFAULT_HOURS_PER_DAY)

    days = count_working_duration(start, end, WorkingTimeMode.STANDARD, None)
    return round_duration(days * DEFAULT_HOURS_PER_DAY)


def next_working_day(day, calendar=None):
    """Находит следующий рабочий день после указанной даты."""
    current = day + ONE_DAY
    idle = 0
    while not is_worked_day(current, calendar) and idle <= MAX_IDLE_DAYS:
        current += ONE_DAY
        idle += 1
    return current


def previous_working_day(day, calendar=None):
    """Находит предыдущий рабочий день перед указанной датой."""
    current = day - ONE_DAY
    idle = 0
    while not is_worked_day(current, calendar) and idle <= MAX_IDLE_DAYS:
        current -= ONE_DAY
        idle += 1
    return current


def shift_working_days(start, days, calendar=None):
    """
    Moves a date by a number of working days, the start day excluded.

    Friday shifted by one working day is the following Monday.
    """
    current = start
    step = next_working_day if days > 0 else previous_working_day
    for _ in range(abs(int(days))):
        current = step(current, calendar)
    return current


def align_to_working_day(day, calendar=None, backwards=False, start_hour=8):
    """
    Выравнивает дату на ближайший рабочий день и задает час начала.

    Returns:
        datetime on a working day at start_hour
    """
    if not is_worked_day(day, calendar):
        day = previous_working_day(day, calendar) if backwards else next_working_day(day, calendar)

    return datetime.combine(as_date(day), time(start_hour, 0))


def _segments(schedule):
    """Worked segments of a day in minutes: morning and afternoon around the lunch break."""
    start, end = minutes_of_day(schedule.start_time), minutes_of_day(schedule.end_time)
    if schedule.lunch_start is not None and schedule.lunch_end is not None:
        return [(start, minutes_of_day(schedule.lunch_start)), (minutes_of_day(schedule.lunch_end), end)]
    return [(start, end)]


def add_working_hours(start, hours, calendar, limit_days=None):
    """
    Вычисляет момент окончания задачи по количеству рабочих часов.

    On the first day only the hours after the start clock time count. The
    lunch break is skipped. The walk gives up after limit_days days.

    Args:
        start: Start instant
        hours: Worked hours to add
        calendar: Work calendar, required
        limit_days: Search bound, HOURS_SEARCH_LIMIT_DAYS by default

    Returns:
        End instant (datetime)

    Raises:
        ValueError: No calendar, or the start day is not a worked day
    """
    if calendar is None:
        raise ValueError("Для расчета по часам нужен календарь")

    if limit_days is None:
        limit_days = HOURS_SEARCH_LIMIT_DAYS

    if not isinstance(start, datetime):
        start = datetime.combine(start, time.min)

    if hours is None or hours <= 0:
        logger.warning(f"Недопустимое количество часов {hours}, окончание = началу")
        return start

    first_schedule = calendar.entry_for(start)
    if (first_schedule is None or not first_schedule.is_worked
            or first_schedule.start_time is None or first_schedule.end_time is None):
        raise ValueError(f"День начала {start.date()} не является рабочим в календаре {calendar.id}")

    remaining = hours * 60
    day = start.date()
    from_minute = minutes_of_day(start.time())

    while (day - start.date()).days <= limit_days:
        schedule = calendar.entry_for(day)
        if (schedule is not None and schedule.is_worked
                and schedule.start_time is not None and schedule.end_time is not None):
            for segment_start, segment_end in _segments(schedule):
                segment_start = max(segment_start, from_minute)
                if segment_end <= segment_start:
                    continue

                available = segment_end - segment_start
                if remaining <= available:
                    midnight = datetime.combine(day, time.min, tzinfo=start.tzinfo)
                    return midnight + timedelta(minutes=segment_start + remaining)
                remaining -= available

        from_minute = 0
        day += ONE_DAY

    logger.warning(f"Не удалось уложить {hours} ч. в {limit_days} дней календаря {calendar.id}")
    return datetime.combine(day, first_schedule.end_time, tzinfo=start.tzinfo)


def public_holidays(year):
    """
    Returns the French public holidays of a year.

    Returns:
        Dict {date: label}
    """
    easter_sunday = easter(year)

    return {
        date(year, 1, 1): "Jour de l'an",
        easter_sunday + timedelta(days=1): "Lundi de Pâques",
        date(year, 5, 1): "Fête du Travail",
        date(year, 5, 8): "Victoire 1945",
        easter_sunday + timedelta(days=39): "Ascension",
        easter_sunday + timedelta(days=50): "Lundi de Pentecôte",
        date(year, 7, 14): "Fête nationale",
        date(year, 8, 15): "Assomption",
        date(year, 11, 1): "Toussaint",
        date(year, 11, 11): "Armistice 1918",
        date(year, 12, 25): "Noël",
    }


def add_public_holidays(calendar, first_year, last_year):
    """
    Добавляет праздничные дни в календарь за диапазон лет.

    Dates that already carry an exception are left as they are.

    Returns:
        List of the CalendarException objects added

    Raises:
        ValueError: first_year is after last_year
    """
    if first_year > last_year:
        raise ValueError("Год начала должен быть не больше года окончания")

    added = []
    for year in range(first_year, last_year + 1):
        for day, label in sorted(public_holidays(year).items()):
            if day in calendar.exceptions:
                continue

            exception = CalendarException(day=day, kind=ExceptionType.PUBLIC_HOLIDAY, label=label)
            calendar.exceptions[day] = exception
            added.append(exception)

    logger.info(f"Календарь {calendar.id}: добавлено {len(added)} праздничных дней за {first_year}-{last_year}")
    return added


def resolve_calendar(calendars, calendar_id=None, site_id=None):
    """
    Выбирает календарь для задачи.

    An explicit id wins, then an active calendar of the site, then an
    active global calendar.

    Args:
        calendars: Iterable of calendars or dict {id: calendar}
        calendar_id: Explicit calendar id
        site_id: Site of the task

    Returns:
        Calendar or None
    """
    if isinstance(calendars, dict):
        calendars = list(calendars.values())
    else:
        calendars = list(calendars)

    if calendar_id is not None:
        for calendar in calendars:
            if calendar.id == calendar_id:
                return calendar
        logger.warning(f"Календарь {calendar_id} не найден")

    active = [calendar for calendar in calendars if calendar.active]

    if site_id is not None:
        for calendar in active:
            if calendar.site_id == site_id:
                return calendar

    for calendar in active:
        if calendar.is_global:
            return calendar

    return None
