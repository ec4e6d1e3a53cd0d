"""
Reconciliation Tasks

Periodic checks over the completion write path. Runs via Celery Beat.
"""

from typing import Dict
from celery import Task
from sqlalchemy.orm import Session
from core.database import get_db_sync
from tasks import celery_app
from services.reconciliation import find_dangling_completions, refresh_all_streak_states
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.reconcile_dangling_completions", bind=True)
def reconcile_dangling_completions_task(self: Task) -> Dict:
    """
    Report completions whose set logs are missing.

    Each one is logged as a warning with enough context to find the row;
    the summary is returned as the task result.
    """
    db: Session = get_db_sync()

    try:
        dangling = find_dangling_completions(db)
        for item in dangling:
            logger.warning(
                f"Dangling completion {item.completion_id} ({item.sets_status})",
                extra={"extra_fields": item.to_dict()},
            )

        if dangling:
            logger.info(f"Reconciliation found {len(dangling)} dangling completions")
        return {
            "status": "success",
            "dangling_count": len(dangling),
            "completion_ids": [str(d.completion_id) for d in dangling],
        }
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)
        raise
    finally:
        db.close()


@celery_app.task(name="tasks.refresh_streak_states", bind=True)
def refresh_streak_states_task(self: Task) -> Dict:
    """Nightly rebuild of materialized streak state."""
    db: Session = get_db_sync()

    try:
        result = refresh_all_streak_states(db)
        return {"status": "success", **result}
    finally:
        db.close()
