"""
Test configuration and fixtures for the planning test suite.
"""
import os

# Логи тестов не пишутся в файл
os.environ["LOG_FILE"] = ""

from datetime import datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database.operations import init_db
from planning.models import Calendar, DaySchedule, DayType, Task


def dt(day, month=1, year=2024):
    """Shortcut for a midnight datetime, January 2024 by default."""
    return datetime(year, month, day)


@pytest.fixture
def session_factory(tmp_path):
    """Create a test SQLite database and return its session factory."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    init_db(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def office_calendar():
    """Monday to Friday, 8:00-17:00 with a 12:00-13:00 lunch break (8 hours a day)."""
    worked = DaySchedule(
        day_type=DayType.WORKED,
        start_time=time(8, 0),
        lunch_start=time(12, 0),
        lunch_end=time(13, 0),
        end_time=time(17, 0)
    )
    week = {weekday: worked for weekday in range(1, 6)}
    week[0] = DaySchedule(day_type=DayType.NON_WORKED)
    week[6] = DaySchedule(day_type=DayType.NON_WORKED)
    return Calendar(id=1, label="Bureau", week=week)


@pytest.fixture
def chain_tasks():
    """A -> B -> C, three consecutive tasks of the first January week."""
    return [
        Task(id=1, project_id=1, label="A", start=dt(1), end=dt(2), milestone_id=10),
        Task(id=2, project_id=1, label="B", start=dt(3), end=dt(4), milestone_id=10),
        Task(id=3, project_id=1, label="C", start=dt(5), end=dt(5), milestone_id=20),
    ]
