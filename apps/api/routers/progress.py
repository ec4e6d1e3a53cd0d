"""
Progress API Router

Training volume and per-exercise progression for the authenticated client.
"""

import logging
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
from schemas import ExerciseListResponse, ProgressionResponse, TonnageResponse
from services.progression import fetch_logged_exercises, fetch_progression
from services.time_window import local_today, resolve_time_window
from services.tonnage import fetch_tonnage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])


@router.get("/tonnage", response_model=TonnageResponse)
def get_tonnage(
    period: Optional[str] = Query("week", description="day, week, month or year"),
    tz: Optional[str] = Query(None, description="IANA timezone of the client"),
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Sum of weight x reps over the period ending today.

    Unknown periods fall back to the trailing 7 days, unknown timezones to
    the default timezone.
    """
    client_id = current_user.id
    window = resolve_time_window(tz or current_user.timezone, period)

    key = cache_key(
        "tonnage", client_id,
        period=window.period, start=window.start.isoformat(), end=window.end.isoformat(),
    )
    cached = get_cache(key)
    if cached is not None:
        return cached

    try:
        tonnage = fetch_tonnage(db, client_id, window)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to calculate tonnage: {e}",
            exc_info=True,
            extra={"extra_fields": {"client_id": str(client_id), "period": window.period}},
        )
        raise PersistenceError("Failed to calculate tonnage")

    result = {"tonnage": tonnage}
    set_cache(key, result, ttl=settings.CACHE_TTL_METRICS)
    return result


@router.get("/progression", response_model=ProgressionResponse)
def get_progression(
    exercise_id: UUID = Query(..., description="Exercise to chart"),
    period: Optional[str] = Query("month", description="week, month, 3months, year or all"),
    tz: Optional[str] = Query(None, description="IANA timezone of the client"),
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Heaviest set and its reps per session date, oldest first."""
    client_id = current_user.id
    today = local_today(tz or current_user.timezone)

    key = cache_key(
        "progression", client_id, exercise_id,
        period=(period or "month").lower(), date=today.isoformat(),
    )
    cached = get_cache(key)
    if cached is not None:
        return cached

    try:
        points = fetch_progression(db, client_id, exercise_id, today, period=period)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to fetch progression: {e}",
            exc_info=True,
            extra={"extra_fields": {"client_id": str(client_id), "exercise_id": str(exercise_id)}},
        )
        raise PersistenceError("Failed to fetch progression")

    result = {"progression": [p.to_dict() for p in points]}
    set_cache(key, result, ttl=settings.CACHE_TTL_METRICS)
    return result


@router.get("/exercises", response_model=ExerciseListResponse)
def list_exercises(
    current_user: Client = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Exercises the client has logged sets for, by name."""
    try:
        exercises = fetch_logged_exercises(db, current_user.id)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to fetch exercises: {e}",
            exc_info=True,
            extra={"extra_fields": {"client_id": str(current_user.id)}},
        )
        raise PersistenceError("Failed to fetch exercises")
    return {"exercises": exercises}
