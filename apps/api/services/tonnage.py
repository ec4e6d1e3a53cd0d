"""
Tonnage Aggregator

Tonnage = sum of weight x reps over every logged set in a period, with a
missing weight or rep count counting as zero. The period is selected by the
owning completion's scheduled_date (the client's local calendar date), so
the result does not move with the server's timezone.
"""

import logging
from typing import Iterable, List
from uuid import UUID

from sqlalchemy.orm import Session

from models import SetLog, WorkoutCompletion
from services.time_window import TimeWindow

logger = logging.getLogger(__name__)


def set_volume(weight_kg, reps_completed) -> float:
    return float(weight_kg or 0) * float(reps_completed or 0)


def calculate_tonnage(sets: Iterable) -> int:
    """Round(sum(weight x reps)) over objects with weight_kg / reps_completed."""
    total = sum(set_volume(s.weight_kg, s.reps_completed) for s in sets)
    return int(round(total))


def fetch_completion_ids_in_window(db: Session, client_id: UUID, window: TimeWindow) -> List[UUID]:
    rows = (
        db.query(WorkoutCompletion.id)
        .filter(
            WorkoutCompletion.client_id == client_id,
            WorkoutCompletion.scheduled_date >= window.start,
            WorkoutCompletion.scheduled_date <= window.end,
        )
        .all()
    )
    return [r[0] for r in rows]


def fetch_tonnage(db: Session, client_id: UUID, window: TimeWindow) -> int:
    """Tonnage for one client over an inclusive [start, end] window."""
    completion_ids = fetch_completion_ids_in_window(db, client_id, window)
    if not completion_ids:
        return 0

    sets = (
        db.query(SetLog.weight_kg, SetLog.reps_completed)
        .filter(SetLog.completion_id.in_(completion_ids))
        .all()
    )
    tonnage = calculate_tonnage(sets)

    logger.debug(
        f"Tonnage for client {client_id} {window.period} "
        f"[{window.start}..{window.end}] = {tonnage} over {len(sets)} sets"
    )
    return tonnage
