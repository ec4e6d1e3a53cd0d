"""
Client Dashboard

Composes the home-screen payload: the schedule grid with every enrolled
program's workout in each cell, what was completed today, a month of
calendar completions, and program start.

The four reads are independent, so they run concurrently on a thread pool,
each in its own session, and are joined before the response is built.
"""

import calendar
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from core.database import SessionLocal
from models import Client, ProgramEnrollment, WorkoutCompletion
from services.schedule_builder import (
    EnrollmentWorkouts,
    build_stacked_schedule,
    fetch_active_enrollments,
    to_enrollment_workouts,
)

logger = logging.getLogger(__name__)


@dataclass
class DashboardData:
    enrollments: List[EnrollmentWorkouts] = field(default_factory=list)
    today_completions: List[tuple] = field(default_factory=list)
    month_completions: List[tuple] = field(default_factory=list)
    program_start_date: Optional[date] = None


def month_bounds(today: date) -> tuple:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def completion_key(workout_id, enrollment_id) -> str:
    return f"{workout_id}:{enrollment_id or ''}"


def _with_session(session_factory: Callable[[], Session], fetch: Callable, *args):
    db = session_factory()
    try:
        return fetch(db, *args)
    finally:
        db.close()


def _fetch_enrollments(db: Session, client_id: UUID, today: date) -> List[EnrollmentWorkouts]:
    return to_enrollment_workouts(fetch_active_enrollments(db, client_id, today))


def _fetch_completions_between(db: Session, client_id: UUID, start: date, end: date) -> List[tuple]:
    rows = (
        db.query(
            WorkoutCompletion.scheduled_date,
            WorkoutCompletion.workout_id,
            WorkoutCompletion.enrollment_id,
        )
        .filter(
            WorkoutCompletion.client_id == client_id,
            WorkoutCompletion.scheduled_date >= start,
            WorkoutCompletion.scheduled_date <= end,
        )
        .all()
    )
    return [tuple(r) for r in rows]


def _fetch_program_start(db: Session, client_id: UUID) -> Optional[date]:
    return (
        db.query(func.min(ProgramEnrollment.start_date))
        .filter(
            ProgramEnrollment.client_id == client_id,
            ProgramEnrollment.is_active == True,
        )
        .scalar()
    )


def fetch_dashboard_data(
    client_id: UUID,
    today: date,
    session_factory: Callable[[], Session] = SessionLocal,
    max_workers: Optional[int] = None,
) -> DashboardData:
    """Run the dashboard reads concurrently and join them."""
    if max_workers is None:
        max_workers = settings.DASHBOARD_FETCH_CONCURRENCY
    month_start, month_end = month_bounds(today)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        enrollments = pool.submit(_with_session, session_factory, _fetch_enrollments, client_id, today)
        today_completions = pool.submit(
            _with_session, session_factory, _fetch_completions_between, client_id, today, today
        )
        month_completions = pool.submit(
            _with_session, session_factory, _fetch_completions_between, client_id, month_start, month_end
        )
        program_start = pool.submit(_with_session, session_factory, _fetch_program_start, client_id)

        # .result() re-raises a failed fetch in the caller
        return DashboardData(
            enrollments=enrollments.result(),
            today_completions=today_completions.result(),
            month_completions=month_completions.result(),
            program_start_date=program_start.result(),
        )


def first_name(client: Client) -> str:
    if client.display_name:
        return client.display_name.split(" ")[0]
    if client.email:
        return client.email.split("@")[0]
    return "there"


def build_dashboard(client: Client, data: DashboardData) -> Dict:
    schedule = build_stacked_schedule(data.enrollments)

    completed_workouts = sorted({
        completion_key(workout_id, enrollment_id)
        for _, workout_id, enrollment_id in data.today_completions
    })

    calendar_completions: Dict[str, bool] = {}
    for scheduled_date, workout_id, enrollment_id in data.month_completions:
        day = scheduled_date.isoformat()
        calendar_completions[f"{day}:{workout_id}:{enrollment_id or ''}"] = True
        calendar_completions[f"{day}:{workout_id}"] = True
        calendar_completions[f"{day}:any"] = True

    payload = schedule.to_dict()
    payload.update({
        "firstName": first_name(client),
        "programCount": len(data.enrollments),
        "completedWorkouts": completed_workouts,
        "calendarCompletions": calendar_completions,
        "programStartDate": data.program_start_date.isoformat() if data.program_start_date else None,
    })
    return payload


def get_client_dashboard(client: Client, today: date, session_factory: Callable[[], Session] = SessionLocal) -> Dict:
    data = fetch_dashboard_data(client.id, today, session_factory=session_factory)
    logger.debug(
        f"Dashboard for client {client.id}: {len(data.enrollments)} enrollments, "
        f"{len(data.month_completions)} completions this month"
    )
    return build_dashboard(client, data)
