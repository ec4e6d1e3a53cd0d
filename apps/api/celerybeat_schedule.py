"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Completions whose set logs never landed. Report only.
    'reconcile-dangling-completions': {
        'task': 'tasks.reconcile_dangling_completions',
        'schedule': crontab(minute='*/30'),
    },
    # Rebuild client_streak so days missed without a new completion show up
    'refresh-streak-states': {
        'task': 'tasks.refresh_streak_states',
        'schedule': crontab(hour=3, minute=0),  # 03:00 UTC nightly
    },
}
