"""
Streak Calculator

A streak is the number of consecutive *scheduled* days, walking backward
from yesterday, on which the client recorded a completion. Today only adds
to the streak once it is done; an unfinished today never breaks it.

Which weekdays are scheduled comes from the week-1 grid of the client's
first active enrollment, or Monday-Friday when nothing is configured.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from models import ClientStreak, WorkoutCompletion
from services.schedule_builder import (
    build_schedule,
    fetch_active_enrollments,
    to_enrollment_workouts,
)
from services.time_window import day_of_week

logger = logging.getLogger(__name__)

# Sunday=0 .. Saturday=6
DEFAULT_SCHEDULED_DAYS = frozenset({1, 2, 3, 4, 5})


@dataclass
class StreakResult:
    streak: int
    scheduled_days: List[int]

    def to_dict(self) -> dict:
        return {"streak": self.streak, "scheduledDays": self.scheduled_days}


def calculate_streak(
    scheduled_days: Iterable[int],
    completed_dates: Iterable[date],
    today: date,
    max_walk_days: Optional[int] = None,
) -> int:
    """
    Count the current streak.

    Args:
        scheduled_days: Sunday-based weekdays that expect a workout
        completed_dates: scheduled dates that have a completion
        today: the client's local date
        max_walk_days: how far back the walk may probe (default STREAK_MAX_WALK_DAYS)
    """
    scheduled = set(scheduled_days)
    completed = set(completed_dates)
    if max_walk_days is None:
        max_walk_days = settings.STREAK_MAX_WALK_DAYS

    streak = 0
    if day_of_week(today) in scheduled and today in completed:
        streak = 1

    check_date = today - timedelta(days=1)
    for _ in range(max_walk_days):
        if day_of_week(check_date) in scheduled:
            if check_date not in completed:
                break
            streak += 1
        check_date -= timedelta(days=1)

    return streak


def resolve_scheduled_days(db: Session, client_id: UUID, today: date) -> Set[int]:
    """Weekdays from the first active enrollment's week-1 grid, else Mon-Fri."""
    enrollments = fetch_active_enrollments(db, client_id, today)
    if enrollments:
        schedule = build_schedule(to_enrollment_workouts(enrollments[:1]))
        days = set(schedule.scheduled_days)
        if days:
            return days
    return set(DEFAULT_SCHEDULED_DAYS)


def fetch_completed_dates(db: Session, client_id: UUID, today: date, lookback_days: Optional[int] = None) -> List[date]:
    """Distinct scheduled dates with a completion inside the lookback window, newest first."""
    if lookback_days is None:
        lookback_days = settings.STREAK_COMPLETION_LOOKBACK_DAYS
    since = today - timedelta(days=lookback_days)

    rows = (
        db.query(WorkoutCompletion.scheduled_date)
        .filter(
            WorkoutCompletion.client_id == client_id,
            WorkoutCompletion.scheduled_date >= since,
        )
        .distinct()
        .order_by(WorkoutCompletion.scheduled_date.desc())
        .all()
    )
    return [r[0] for r in rows]


def get_client_streak(db: Session, client_id: UUID, today: date) -> StreakResult:
    scheduled = resolve_scheduled_days(db, client_id, today)
    completed = fetch_completed_dates(db, client_id, today)
    streak = calculate_streak(scheduled, completed, today)
    return StreakResult(streak=streak, scheduled_days=sorted(scheduled))


# =============================================================================
# MATERIALIZED STREAK STATE
# =============================================================================

def refresh_streak_state(db: Session, client_id: UUID, today: date) -> ClientStreak:
    """
    Recompute the streak from scratch and store it in client_streak.

    longest_streak never decreases. Commits.
    """
    result = get_client_streak(db, client_id, today)

    last_workout_date = (
        db.query(func.max(WorkoutCompletion.scheduled_date))
        .filter(WorkoutCompletion.client_id == client_id)
        .scalar()
    )

    state = db.query(ClientStreak).filter(ClientStreak.client_id == client_id).first()
    if state is None:
        state = ClientStreak(client_id=client_id, current_streak=0, longest_streak=0)
        db.add(state)

    state.current_streak = result.streak
    state.longest_streak = max(state.longest_streak or 0, result.streak)
    state.last_workout_date = last_workout_date
    state.updated_at = datetime.now(timezone.utc)
    db.commit()

    logger.debug(
        f"Streak state refreshed for client {client_id}: "
        f"current={state.current_streak} longest={state.longest_streak}"
    )
    return state


def get_streak_state(db: Session, client_id: UUID) -> Optional[ClientStreak]:
    return db.query(ClientStreak).filter(ClientStreak.client_id == client_id).first()
