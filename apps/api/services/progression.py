"""
Exercise Progression

Per-exercise strength trend: for every session date in a trailing window,
the heaviest logged set and its reps. Reads the same set logs as the
tonnage aggregator, selected by the completion's scheduled_date so the
dates are the client's local calendar dates.

Periods look back from the client's local today:
- week:    7 days
- month:   1 calendar month (default, also for unknown periods)
- 3months: 3 calendar months
- year:    1 calendar year
- all:     no lower bound
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from models import Exercise, SetLog, WorkoutCompletion

logger = logging.getLogger(__name__)

DEFAULT_PROGRESSION_PERIOD = "month"
PERIOD_MONTHS = {"month": 1, "3months": 3, "year": 12}


@dataclass
class ProgressionPoint:
    date: date
    weight: float
    reps: int

    def to_dict(self) -> Dict:
        return {"date": self.date.isoformat(), "weight": self.weight, "reps": self.reps}


def months_back(d: date, months: int) -> date:
    """Same day `months` calendar months earlier, clamped to the end of a shorter month."""
    month_index = d.year * 12 + (d.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def progression_start(today: date, period: Optional[str]) -> Optional[date]:
    """First date of the trailing window, None for 'all'."""
    period = (period or DEFAULT_PROGRESSION_PERIOD).lower()
    if period == "all":
        return None
    if period == "week":
        return today - timedelta(days=7)
    return months_back(today, PERIOD_MONTHS.get(period, PERIOD_MONTHS[DEFAULT_PROGRESSION_PERIOD]))


def calculate_progression(rows: Iterable) -> List[ProgressionPoint]:
    """
    Heaviest set per session date from (scheduled_date, weight_kg, reps_completed) rows.

    Rows without a weight are skipped. On equal weights the earlier row is
    kept, so rows should arrive in logging order. Missing reps read as 0.
    """
    best: Dict[date, ProgressionPoint] = {}
    for scheduled_date, weight_kg, reps_completed in rows:
        if weight_kg is None:
            continue
        current = best.get(scheduled_date)
        if current is None or weight_kg > current.weight:
            best[scheduled_date] = ProgressionPoint(
                date=scheduled_date, weight=weight_kg, reps=reps_completed or 0
            )
    return [best[d] for d in sorted(best)]


def fetch_progression(
    db: Session,
    client_id: UUID,
    exercise_id: UUID,
    today: date,
    period: Optional[str] = None,
) -> List[ProgressionPoint]:
    """Progression over the trailing window ending on the client's local today."""
    start = progression_start(today, period)

    query = (
        db.query(WorkoutCompletion.scheduled_date, SetLog.weight_kg, SetLog.reps_completed)
        .join(SetLog, SetLog.completion_id == WorkoutCompletion.id)
        .filter(
            WorkoutCompletion.client_id == client_id,
            WorkoutCompletion.scheduled_date <= today,
            SetLog.exercise_id == exercise_id,
        )
    )
    if start is not None:
        query = query.filter(WorkoutCompletion.scheduled_date >= start)

    rows = query.order_by(
        WorkoutCompletion.scheduled_date,
        WorkoutCompletion.completed_at,
        SetLog.set_number,
    ).all()
    points = calculate_progression(rows)

    logger.debug(
        f"Progression for client {client_id} exercise {exercise_id} from {start or 'start'} "
        f"to {today}: {len(points)} sessions"
    )
    return points


def fetch_logged_exercises(db: Session, client_id: UUID) -> List[Exercise]:
    """Exercises the client has logged at least one set of, by name."""
    logged = (
        db.query(SetLog.exercise_id)
        .join(WorkoutCompletion, SetLog.completion_id == WorkoutCompletion.id)
        .filter(WorkoutCompletion.client_id == client_id)
        .distinct()
    )
    return (
        db.query(Exercise)
        .filter(Exercise.id.in_(logged))
        .order_by(Exercise.name, Exercise.id)
        .all()
    )
