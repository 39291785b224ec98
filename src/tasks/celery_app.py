"""
Celery application for the deal notification jobs.

Beat runs two periodic jobs against a Redis broker:

    deadline-scan   every NOTIFY_SCAN_INTERVAL_SECONDS (hourly by default)
    daily-digest    at NOTIFY_DIGEST_HOUR:NOTIFY_DIGEST_MINUTE UTC

Dispute transitions are enqueued by the trade workflow as they happen.

    celery -A tasks.celery_app worker --loglevel=info
    celery -A tasks.celery_app beat --loglevel=info
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from celery import Celery, Task
from celery.schedules import crontab
from celery.signals import worker_process_init, worker_ready, worker_shutdown

from config.settings import (
    CelerySettings,
    NotificationSettings,
    RedisSettings,
    get_notification_settings,
    get_settings,
)

logger = logging.getLogger(__name__)

DEADLINE_SCAN_TASK = "tasks.notification_tasks.run_deadline_scan"
DAILY_DIGEST_TASK = "tasks.notification_tasks.run_daily_digests"
DISPUTE_TRANSITION_TASK = "tasks.notification_tasks.on_dispute_transition"

RESULT_TTL_SECONDS = 24 * 60 * 60


def build_beat_schedule(notification_settings: NotificationSettings) -> dict:
    return {
        "deadline-scan": {
            "task": DEADLINE_SCAN_TASK,
            "schedule": notification_settings.scan_interval_seconds,
        },
        "daily-digest": {
            "task": DAILY_DIGEST_TASK,
            "schedule": crontab(
                hour=notification_settings.digest_hour,
                minute=notification_settings.digest_minute,
            ),
        },
    }


def _worker_config(celery_settings: CelerySettings) -> Dict[str, Any]:
    return {
        "task_serializer": celery_settings.task_serializer,
        "result_serializer": celery_settings.result_serializer,
        "accept_content": celery_settings.accept_content,
        "result_accept_content": celery_settings.accept_content,
        "task_acks_late": celery_settings.task_acks_late,
        "worker_prefetch_multiplier": celery_settings.worker_prefetch_multiplier,
        "task_time_limit": celery_settings.task_time_limit,
        "task_soft_time_limit": celery_settings.task_soft_time_limit,
        "task_track_started": True,
        "result_expires": RESULT_TTL_SECONDS,
        "timezone": "UTC",
        "enable_utc": True,
    }


def create_celery_app(
    redis_settings: Optional[RedisSettings] = None,
    celery_settings: Optional[CelerySettings] = None,
    notification_settings: Optional[NotificationSettings] = None,
) -> Celery:
    """
    Build the Celery app. Settings not passed in are read from the environment.

    Broker and result backend share one Redis server on separate DB numbers.
    """
    settings = get_settings()
    redis_settings = redis_settings or settings.redis
    celery_settings = celery_settings or settings.celery
    notification_settings = notification_settings or get_notification_settings()

    app = Celery(
        "deal_notifications",
        broker=redis_settings.url_for(celery_settings.broker_db),
        backend=redis_settings.url_for(celery_settings.result_db),
        include=["tasks.notification_tasks"],
    )
    app.conf.update(
        beat_schedule=build_beat_schedule(notification_settings),
        **_worker_config(celery_settings),
    )
    return app


celery_app = create_celery_app()


@lru_cache
def get_celery_app() -> Celery:
    return celery_app


class TaskBase(Task):
    """
    Logs the outcome of every notification task.

    Retries are off: the next beat tick repeats a failed scan, and the
    ledger keeps it from sending twice.
    """

    abstract = True
    max_retries = 0

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            f"{self.name}[{task_id}] raised {type(exc).__name__}: {exc}",
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"{self.name}[{task_id}] done", extra={"task_id": task_id, "task_name": self.name})
        super().on_success(retval, task_id, args, kwargs)


celery_app.Task = TaskBase


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    logger.info(f"Notification worker {sender} accepting tasks")


@worker_process_init.connect
def on_worker_process_init(**kwargs):
    """Drop any engine inherited from the parent so each child opens its own pool."""
    from database.connection import close_sync_engine

    close_sync_engine(close_connections=False)


@worker_shutdown.connect
def on_worker_shutdown(sender, **kwargs):
    from database.connection import close_sync_engine

    logger.info(f"Notification worker {sender} stopping")
    close_sync_engine()
