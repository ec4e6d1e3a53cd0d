"""
Completion Sink

The write path of the adherence engine.

Recording a completion is two separate writes with no shared transaction:

1. Upsert the completion on (client, workout, scheduled_date). Retries and
   concurrent duplicates converge on one row (last write wins).
2. Replace the completion's set logs. Delete-then-insert keyed by the
   completion, so running it again can never double the sets. The completion
   row is locked first so concurrent writers replace the sets one at a time.

If phase 2 fails the completion stays, its sets_status is left as
'failed' (or 'pending' if even that update fails) and the reconciliation
job reports it. A row another writer already marked written is left alone.
Nothing retries phase 2 automatically.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.cache import invalidate_client_metrics
from core.exceptions import InvalidInputError, NotFoundError
from models import Exercise, ProgramEnrollment, SetLog, WorkoutCompletion, WorkoutDefinition
from services.streak_calculator import refresh_streak_state

logger = logging.getLogger(__name__)

SETS_PENDING = "pending"
SETS_WRITTEN = "written"
SETS_FAILED = "failed"

COMPLETION_KEY = ("client_id", "workout_id", "scheduled_date")


@dataclass
class SetEntry:
    exercise_id: UUID
    set_number: int
    weight_kg: Optional[float] = None
    reps_completed: Optional[int] = None


@dataclass
class CompletionResult:
    completion_id: UUID
    sets_written: bool


def _insert_for(db: Session):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Completion upsert is not supported on dialect '{dialect}'")


def validate_sets(db: Session, sets: Sequence[SetEntry]) -> None:
    """Reject duplicate (exercise, set_number) keys and unknown exercises before writing anything."""
    seen = set()
    for s in sets:
        key = (s.exercise_id, s.set_number)
        if key in seen:
            raise InvalidInputError(
                f"Duplicate set {s.set_number} for exercise {s.exercise_id}", field="sets"
            )
        seen.add(key)

    exercise_ids = {s.exercise_id for s in sets}
    if not exercise_ids:
        return
    known = {
        row[0]
        for row in db.query(Exercise.id).filter(Exercise.id.in_(exercise_ids)).all()
    }
    unknown = exercise_ids - known
    if unknown:
        raise InvalidInputError(
            f"Unknown exercise: {sorted(str(u) for u in unknown)[0]}", field="sets"
        )


def _upsert_completion(
    db: Session,
    client_id: UUID,
    workout_id: UUID,
    enrollment_id: Optional[UUID],
    scheduled_date: date,
    completed_at: datetime,
) -> UUID:
    insert = _insert_for(db)
    stmt = insert(WorkoutCompletion.__table__).values(
        id=uuid4(),
        client_id=client_id,
        workout_id=workout_id,
        enrollment_id=enrollment_id,
        scheduled_date=scheduled_date,
        completed_at=completed_at,
        sets_status=SETS_PENDING,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=list(COMPLETION_KEY),
        set_={
            "enrollment_id": stmt.excluded.enrollment_id,
            "completed_at": stmt.excluded.completed_at,
            "sets_status": stmt.excluded.sets_status,
            "updated_at": func.now(),
        },
    )
    db.execute(stmt)
    db.commit()

    return (
        db.query(WorkoutCompletion.id)
        .filter(
            WorkoutCompletion.client_id == client_id,
            WorkoutCompletion.workout_id == workout_id,
            WorkoutCompletion.scheduled_date == scheduled_date,
        )
        .scalar()
    )


def _replace_sets(db: Session, completion_id: UUID, sets: Sequence[SetEntry]) -> None:
    # Concurrent writers for one completion take turns on its row
    db.query(WorkoutCompletion.id).filter(WorkoutCompletion.id == completion_id).with_for_update().one()
    db.query(SetLog).filter(SetLog.completion_id == completion_id).delete(synchronize_session=False)
    db.add_all([
        SetLog(
            completion_id=completion_id,
            exercise_id=s.exercise_id,
            set_number=s.set_number,
            weight_kg=s.weight_kg,
            reps_completed=s.reps_completed,
        )
        for s in sets
    ])
    db.query(WorkoutCompletion).filter(WorkoutCompletion.id == completion_id).update(
        {"sets_status": SETS_WRITTEN}, synchronize_session=False
    )
    db.commit()


def _mark_sets_failed(db: Session, completion_id: UUID) -> None:
    try:
        # Only a still-pending row; a concurrent writer may already have stored its sets
        db.query(WorkoutCompletion).filter(
            WorkoutCompletion.id == completion_id,
            WorkoutCompletion.sets_status == SETS_PENDING,
        ).update({"sets_status": SETS_FAILED}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        # Row stays 'pending'; reconciliation reports it either way
        logger.error(f"Could not mark completion {completion_id} as failed: {e}")


def record_completion(
    db: Session,
    client_id: UUID,
    workout_id: UUID,
    scheduled_date: date,
    sets: Sequence[SetEntry] = (),
    enrollment_id: Optional[UUID] = None,
    completed_at: Optional[datetime] = None,
    today: Optional[date] = None,
) -> CompletionResult:
    """
    Record that a client completed a workout due on scheduled_date.

    Raises NotFoundError for an unknown workout or an enrollment that is not
    the client's, and InvalidInputError for bad sets; in both cases nothing
    has been written. SQLAlchemyError from phase 1 propagates.
    """
    if db.get(WorkoutDefinition, workout_id) is None:
        raise NotFoundError("Workout", str(workout_id))

    if enrollment_id is not None:
        enrollment = db.get(ProgramEnrollment, enrollment_id)
        if enrollment is None or enrollment.client_id != client_id:
            raise NotFoundError("Enrollment", str(enrollment_id))

    sets = list(sets)
    validate_sets(db, sets)

    if completed_at is None:
        completed_at = datetime.now(timezone.utc)

    completion_id = _upsert_completion(
        db, client_id, workout_id, enrollment_id, scheduled_date, completed_at
    )

    sets_written = True
    try:
        _replace_sets(db, completion_id, sets)
    except SQLAlchemyError as e:
        db.rollback()
        sets_written = False
        logger.error(
            f"Set logs not written for completion {completion_id}; completion kept",
            exc_info=True,
            extra={
                "extra_fields": {
                    "client_id": str(client_id),
                    "completion_id": str(completion_id),
                    "set_count": len(sets),
                    "error": str(e),
                }
            },
        )
        _mark_sets_failed(db, completion_id)

    invalidate_client_metrics(str(client_id))

    try:
        refresh_streak_state(db, client_id, today or scheduled_date)
    except SQLAlchemyError as e:
        db.rollback()
        # Cached streak is rebuilt by the nightly job; the completion itself is stored
        logger.warning(f"Streak state refresh failed for client {client_id}: {e}")

    logger.info(
        f"Completion recorded: client={client_id} workout={workout_id} "
        f"date={scheduled_date} sets={len(sets)} sets_written={sets_written}"
    )
    return CompletionResult(completion_id=completion_id, sets_written=sets_written)


def correct_sets(db: Session, client_id: UUID, completion_id: UUID, sets: Iterable[SetEntry]) -> int:
    """
    Overwrite weight/reps on existing set logs of a completion.

    Matching is by (exercise, set_number); keys with no existing row are
    ignored, never inserted. Returns the number of rows updated.
    """
    completion = db.get(WorkoutCompletion, completion_id)
    if completion is None or completion.client_id != client_id:
        raise NotFoundError("Completion", str(completion_id))

    updated = 0
    for s in sets:
        updated += (
            db.query(SetLog)
            .filter(
                SetLog.completion_id == completion_id,
                SetLog.exercise_id == s.exercise_id,
                SetLog.set_number == s.set_number,
            )
            .update(
                {"weight_kg": s.weight_kg, "reps_completed": s.reps_completed},
                synchronize_session=False,
            )
        )
    db.commit()

    if updated:
        invalidate_client_metrics(str(client_id))
    return updated


def list_completions(
    db: Session,
    client_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[WorkoutCompletion]:
    query = (
        db.query(WorkoutCompletion)
        .options(selectinload(WorkoutCompletion.set_logs))
        .filter(WorkoutCompletion.client_id == client_id)
    )
    if start_date:
        query = query.filter(WorkoutCompletion.scheduled_date >= start_date)
    if end_date:
        query = query.filter(WorkoutCompletion.scheduled_date <= end_date)
    return query.order_by(WorkoutCompletion.scheduled_date.desc(), WorkoutCompletion.completed_at.desc()).all()
