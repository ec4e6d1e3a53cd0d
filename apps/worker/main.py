"""
Celery worker entry point.

Runs the API package's Celery app: `celery -A main worker --beat` from this
directory. Reconciliation and streak rebuild jobs are scheduled by beat.
"""
import os
import sys

# API modules are imported as top-level packages (core, services, tasks)
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "api"))

from tasks import celery_app  # noqa: E402


@celery_app.task(name="worker.health_check")
def health_check():
    """Health check task: the worker is up and knows the scheduled jobs."""
    return {
        "status": "ok",
        "tasks": sorted(name for name in celery_app.tasks if name.startswith("tasks.")),
    }
