"""
Completion Reconciliation

Finds completions whose set logs never landed (phase 2 of the completion
write failed or never ran) and rebuilds materialized streak state.

Reporting only: nothing here rewrites set logs, the client resubmits.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from models import Client, ClientStreak, WorkoutCompletion
from services.completion_sink import SETS_FAILED, SETS_PENDING
from services.streak_calculator import refresh_streak_state
from services.time_window import local_today

logger = logging.getLogger(__name__)


@dataclass
class DanglingCompletion:
    completion_id: UUID
    client_id: UUID
    workout_id: UUID
    scheduled_date: date
    sets_status: str
    updated_at: Optional[datetime]

    def to_dict(self) -> Dict:
        return {
            "completion_id": str(self.completion_id),
            "client_id": str(self.client_id),
            "workout_id": str(self.workout_id),
            "scheduled_date": self.scheduled_date.isoformat(),
            "sets_status": self.sets_status,
        }


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=None)


def find_dangling_completions(
    db: Session,
    now: Optional[datetime] = None,
    grace_minutes: Optional[int] = None,
) -> List[DanglingCompletion]:
    """
    Completions with sets_status 'failed', or still 'pending' past the grace period.

    The grace period keeps in-flight writes out of the report.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if grace_minutes is None:
        grace_minutes = settings.RECONCILIATION_GRACE_MINUTES
    cutoff = now - timedelta(minutes=grace_minutes)
    if db.get_bind().dialect.name == "sqlite":
        cutoff = _naive_utc(cutoff)

    rows = (
        db.query(WorkoutCompletion)
        .filter(
            or_(
                WorkoutCompletion.sets_status == SETS_FAILED,
                and_(
                    WorkoutCompletion.sets_status == SETS_PENDING,
                    WorkoutCompletion.updated_at < cutoff,
                ),
            )
        )
        .order_by(WorkoutCompletion.scheduled_date, WorkoutCompletion.id)
        .all()
    )
    return [
        DanglingCompletion(
            completion_id=r.id,
            client_id=r.client_id,
            workout_id=r.workout_id,
            scheduled_date=r.scheduled_date,
            sets_status=r.sets_status,
            updated_at=r.updated_at,
        )
        for r in rows
    ]


def streak_refresh_candidates(db: Session, today: date) -> List[Client]:
    """Clients with recent completions or an existing streak row."""
    since = today - timedelta(days=settings.STREAK_COMPLETION_LOOKBACK_DAYS)
    recent = (
        db.query(WorkoutCompletion.client_id)
        .filter(WorkoutCompletion.scheduled_date >= since)
        .distinct()
    )
    tracked = db.query(ClientStreak.client_id)
    return (
        db.query(Client)
        .filter(or_(Client.id.in_(recent), Client.id.in_(tracked)))
        .order_by(Client.id)
        .all()
    )


def refresh_all_streak_states(db: Session, now: Optional[datetime] = None) -> Dict:
    """
    Recompute client_streak for every candidate client in their own timezone.

    A failure for one client is logged and the run continues.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    clients = streak_refresh_candidates(db, local_today(None, now))
    refreshed = 0
    failed = 0
    for client in clients:
        client_id = client.id
        try:
            refresh_streak_state(db, client_id, local_today(client.timezone, now))
            refreshed += 1
        except SQLAlchemyError as e:
            db.rollback()
            failed += 1
            logger.error(
                f"Streak refresh failed for client {client_id}: {e}",
                extra={"extra_fields": {"client_id": str(client_id)}},
            )

    logger.info(f"Streak states refreshed: {refreshed} ok, {failed} failed")
    return {"refreshed": refreshed, "failed": failed}
