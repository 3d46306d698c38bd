"""
Pytest Configuration
Shared fixtures: in-memory database, API client with auth overrides and
factories for the academy's core records
"""

import os
from datetime import date, time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from academy_crm import tasks
from academy_crm.auth import get_current_user
from academy_crm.database import Base, get_db
from academy_crm.main import app
from academy_crm.models import Course, Cycle, Instructor, Meeting, Registration, Student, User
from academy_crm.rate_limiter import api_rate_limiter


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API tests")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def no_holidays(monkeypatch):
    """Meeting generation sees an empty holiday calendar unless a test says otherwise"""
    holidays = AsyncMock(return_value=set())
    monkeypatch.setattr("academy_crm.domain.cycles.scheduling.get_holidays_between", holidays)
    return holidays


@pytest.fixture(autouse=True)
def queue(monkeypatch):
    """Fake arq pool; enqueued jobs are recorded, not run"""
    pool = MagicMock()
    pool.enqueue_job = AsyncMock(side_effect=lambda function, *args, _job_id=None: MagicMock(job_id=_job_id))
    monkeypatch.setattr(tasks, "get_queue_pool", AsyncMock(return_value=pool))
    return pool


@pytest.fixture
def enqueued_jobs(queue):
    """(function, args, job_id) of every job sent to the fake pool"""

    def _jobs() -> list[tuple]:
        return [
            (call.args[0], call.args[1:], call.kwargs.get("_job_id"))
            for call in queue.enqueue_job.call_args_list
        ]

    return _jobs


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def admin(db):
    user = User(email="admin@academy.test", name="Admin", role="admin")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def manager(db):
    user = User(email="manager@academy.test", name="Manager", role="manager")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def instructor(db):
    user = User(email="dana@academy.test", name="Dana", role="instructor")
    db.add(user)
    db.flush()
    record = Instructor(
        user_id=user.id,
        name="Dana",
        email="dana@academy.test",
        phone="0521234567",
        rate_frontal=Decimal("200"),
        rate_online=Decimal("150"),
        employment_type="contractor",
    )
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def course(db):
    record = Course(name="Robotics")
    db.add(record)
    db.commit()
    return record


@pytest.fixture
def make_cycle(db, course, instructor):
    def _make(**overrides):
        values = dict(
            name="Robotics Sunday",
            course_id=course.id,
            instructor_id=instructor.id,
            type="institutional_fixed",
            status="active",
            start_date=date(2024, 3, 3),
            day_of_week="sunday",
            start_time=time(16, 0),
            end_time=time(17, 30),
            duration_minutes=90,
            total_meetings=4,
            completed_meetings=0,
            remaining_meetings=4,
            meeting_revenue=Decimal("500"),
            activity_type="frontal",
        )
        values.update(overrides)
        cycle = Cycle(**values)
        db.add(cycle)
        db.commit()
        return cycle

    return _make


@pytest.fixture
def make_meeting(db):
    def _make(cycle, scheduled_date, **overrides):
        values = dict(
            cycle_id=cycle.id,
            instructor_id=cycle.instructor_id,
            scheduled_date=scheduled_date,
            start_time=cycle.start_time,
            end_time=cycle.end_time,
            status="scheduled",
            activity_type=cycle.activity_type,
        )
        values.update(overrides)
        meeting = Meeting(**values)
        db.add(meeting)
        db.commit()
        return meeting

    return _make


@pytest.fixture
def make_registration(db):
    counter = {"n": 0}

    def _make(cycle, amount=None, status="registered"):
        counter["n"] += 1
        student = Student(name=f"Student {counter['n']}", parent_phone="0501111111")
        db.add(student)
        db.flush()
        registration = Registration(student_id=student.id, cycle_id=cycle.id, status=status, amount=amount)
        db.add(registration)
        db.commit()
        return registration

    return _make


@pytest.fixture
def weekly_cycle(make_cycle, make_meeting):
    """Four sunday meetings from 2024-03-03 to 2024-03-24"""
    cycle = make_cycle()
    meetings = [
        make_meeting(cycle, date(2024, 3, 3)),
        make_meeting(cycle, date(2024, 3, 10)),
        make_meeting(cycle, date(2024, 3, 17)),
        make_meeting(cycle, date(2024, 3, 24)),
    ]
    return cycle, meetings


# ============================================================================
# API CLIENT
# ============================================================================


@pytest.fixture
def acting_user(admin):
    """Mutable holder for the user the API client authenticates as"""
    return {"user": admin}


@pytest.fixture
def client(db, acting_user):
    def override_get_db():
        yield db

    async def override_current_user():
        return acting_user["user"]

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user
    app.dependency_overrides[api_rate_limiter] = no_rate_limit
    yield TestClient(app)
    app.dependency_overrides.clear()
