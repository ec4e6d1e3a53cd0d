"""
Workouts API Router

Schedule, streak and completion endpoints for the authenticated client.
"today" is always the client's local date: the `tz` query parameter when
given, else the client's stored timezone, else DEFAULT_TIMEZONE.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.cache import cache_key, get_cache, set_cache
from core.config import settings
from core.database import get_db
from core.exceptions import PersistenceError
from models import Client
from schemas import (
    CompletionCreate,
    CompletionCreateResponse,
    CompletionListResponse,
    CompletionResponse,
    ScheduleResponse,
    SetCorrection,
    SetCorrectionResponse,
    StreakResponse,
    StreakStateEnvelope,
    StreakStateResponse,
)
from services.completion_sink import SetEntry, correct_sets, list_completions, record_completion
from services.schedule_builder import get_schedule_view
from services.streak_calculator import get_client_streak, get_streak_state
from services.time_window import local_today, resolve_timezone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/workouts", tags=["Workouts"])


def _to_set_entries(sets) -> list:
    return [SetEntry(**s.model_dump()) for s in sets]


@router.get("/schedule", response_model=ScheduleResponse)
def get_schedule(
    tz: Optional[str] = Query(None, description="IANA timezone of the client"),
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Week/day grid of the client's active programs with recent completions."""
    client_id = current_user.id
    today = local_today(tz or current_user.timezone)
    try:
        return get_schedule_view(db, client_id, today)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to build schedule: {e}",
            exc_info=True,
            extra={"extra_fields": {"client_id": str(client_id)}},
        )
        raise PersistenceError("Failed to fetch schedule")


@router.get("/streak", response_model=StreakResponse)
def get_streak(
    tz: Optional[str] = Query(None, description="IANA timezone of the client"),
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Current streak of consecutive scheduled days completed.

    Cached per client and local date; any completion write invalidates it.
    """
    client_id = current_user.id
    zone = resolve_timezone(tz or current_user.timezone)
    today = local_today(zone.key)

    key = cache_key("streak", client_id, tz=zone.key, date=today.isoformat())
    cached = get_cache(key)
    if cached is not None:
        return cached

    try:
        result = get_client_streak(db, client_id, today).to_dict()
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to calculate streak: {e}",
            exc_info=True,
            extra={"extra_fields": {"client_id": str(client_id)}},
        )
        raise PersistenceError("Failed to calculate streak")

    set_cache(key, result, ttl=settings.CACHE_TTL_METRICS)
    return result


@router.get("/streak/state", response_model=StreakStateEnvelope)
def get_streak_summary(
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Materialized current/longest streak, null until the first completion."""
    try:
        state = get_streak_state(db, current_user.id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch streak state: {e}", exc_info=True)
        raise PersistenceError("Failed to fetch streak")

    if state is None:
        return StreakStateEnvelope(streak=None)
    return StreakStateEnvelope(
        streak=StreakStateResponse(
            current_streak=state.current_streak,
            longest_streak=state.longest_streak,
            last_workout_date=state.last_workout_date,
        )
    )


@router.post("/complete", response_model=CompletionCreateResponse)
def complete_workout(
    payload: CompletionCreate,
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Record a completed workout and its sets.

    Resubmitting the same (workout, scheduledDate) overwrites the earlier
    submission. setsWritten is false when the completion was stored but its
    sets were not.
    """
    client_id = current_user.id
    today = local_today(current_user.timezone)
    try:
        result = record_completion(
            db,
            client_id,
            payload.workout_id,
            payload.scheduled_date,
            sets=_to_set_entries(payload.sets),
            enrollment_id=payload.enrollment_id,
            completed_at=payload.completed_at,
            today=today,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to save workout completion: {e}",
            exc_info=True,
            extra={
                "extra_fields": {
                    "client_id": str(client_id),
                    "workout_id": str(payload.workout_id),
                    "scheduled_date": payload.scheduled_date.isoformat(),
                }
            },
        )
        raise PersistenceError("Failed to save workout completion")

    return CompletionCreateResponse(
        completion_id=result.completion_id,
        sets_written=result.sets_written,
    )


@router.get("/complete", response_model=CompletionListResponse)
def get_completions(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Completions (with their sets) by scheduled date, newest first."""
    try:
        completions = list_completions(db, current_user.id, start_date, end_date)
        items = [CompletionResponse.model_validate(c) for c in completions]
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch completions: {e}", exc_info=True)
        raise PersistenceError("Failed to fetch completions")

    return CompletionListResponse(completions=items)


@router.post("/completions/{completion_id}/sets", response_model=SetCorrectionResponse)
def update_completion_sets(
    completion_id: UUID,
    payload: SetCorrection,
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Correct weight/reps of sets already logged on a completion."""
    try:
        updated = correct_sets(db, current_user.id, completion_id, _to_set_entries(payload.sets))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to update sets: {e}",
            exc_info=True,
            extra={"extra_fields": {"completion_id": str(completion_id)}},
        )
        raise PersistenceError("Failed to update sets")

    return SetCorrectionResponse(updated=updated)
