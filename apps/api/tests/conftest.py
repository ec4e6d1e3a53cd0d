"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database built from the ORM metadata.
Every test gets a fresh schema: tables are created before the test and
dropped after it, so nothing leaks between tests.
"""
import os
import sys

# Must be set before anything imports core.config
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-at-least-32-chars")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["DASHBOARD_FETCH_CONCURRENCY"] = "1"
os.environ["LOG_FORMAT"] = "text"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from datetime import date
from uuid import uuid4

from core.database import Base, SessionLocal, engine
from core.security import create_access_token
from models import Client, Exercise, Program, ProgramEnrollment, WorkoutDefinition


@pytest.fixture(autouse=True)
def _schema():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_client(db_session):
    def _make(**kwargs):
        kwargs.setdefault("email", f"client_{uuid4()}@example.com")
        kwargs.setdefault("display_name", "Test Client")
        client = Client(**kwargs)
        db_session.add(client)
        db_session.commit()
        return client
    return _make


@pytest.fixture
def test_client(make_client):
    """A client with no timezone of their own (DEFAULT_TIMEZONE applies)."""
    return make_client()


@pytest.fixture
def make_program(db_session):
    """
    Create a program from workout specs.

    Each entry is a dict of WorkoutDefinition fields; a `parent` key naming an
    earlier entry's `name` makes that workout a finisher of it.
    """
    def _make(name="Strength Block", workouts=()):
        program = Program(name=name)
        db_session.add(program)
        db_session.flush()

        by_name = {}
        for index, fields in enumerate(workouts):
            fields = dict(fields)
            parent = fields.pop("parent", None)
            fields.setdefault("order_index", index)
            definition = WorkoutDefinition(
                program_id=program.id,
                parent_workout_id=by_name[parent].id if parent else None,
                **fields,
            )
            db_session.add(definition)
            db_session.flush()
            by_name[definition.name] = definition

        db_session.commit()
        return program
    return _make


@pytest.fixture
def make_enrollment(db_session):
    def _make(client, program, start_date=date(2024, 1, 1), **kwargs):
        enrollment = ProgramEnrollment(
            client_id=client.id,
            program_id=program.id,
            start_date=start_date,
            **kwargs,
        )
        db_session.add(enrollment)
        db_session.commit()
        return enrollment
    return _make


@pytest.fixture
def exercise(db_session):
    squat = Exercise(name="Back Squat")
    db_session.add(squat)
    db_session.commit()
    return squat


@pytest.fixture
def mwf_program(make_program):
    """Two-week program scheduled Monday / Wednesday / Friday."""
    workouts = []
    for week in (1, 2):
        for day, label in ((1, "Mon"), (3, "Wed"), (5, "Fri")):
            workouts.append({"name": f"W{week} {label}", "week_number": week, "day_of_week": day})
    return make_program("MWF Strength", workouts)


@pytest.fixture
def workout_named():
    def _find(program, name):
        return next(w for w in program.workouts if w.name == name)
    return _find


@pytest.fixture
def auth_token(test_client):
    """Create auth token for test client"""
    return create_access_token({"sub": str(test_client.id)})


@pytest.fixture
def auth_headers(auth_token):
    """Get auth headers"""
    return {"Authorization": f"Bearer {auth_token}"}
