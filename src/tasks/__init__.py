"""
Background Tasks Module - Celery-based scheduling for the notification engine.

Provides:
- Celery app configuration with Redis broker and beat schedule
- Deadline scan, daily digest and dispute transition tasks
"""

from .celery_app import celery_app, get_celery_app
from .notification_tasks import (
    run_deadline_scan_task,
    run_daily_digests_task,
    on_dispute_transition_task,
)

__all__ = [
    # Celery app
    "celery_app",
    "get_celery_app",
    # Notification tasks
    "run_deadline_scan_task",
    "run_daily_digests_task",
    "on_dispute_transition_task",
]
