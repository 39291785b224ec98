"""
Notification Celery Tasks.

Thin wrappers that let beat and the trade workflow reach the engine's
entry points. ``now`` travels as an ISO-8601 string because tasks use the
JSON serializer; when omitted the worker's clock is used.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from celery import shared_task

from trade.orchestrator import on_dispute_transition, run_daily_digests, run_deadline_scan

logger = logging.getLogger(__name__)


def _parse_now(now: Optional[str]) -> Optional[datetime]:
    if not now:
        return None
    return datetime.fromisoformat(now)


@shared_task(name="tasks.notification_tasks.run_deadline_scan")
def run_deadline_scan_task(now: Optional[str] = None) -> Dict[str, Any]:
    """Hourly deadline reminder scan."""
    summary = run_deadline_scan(_parse_now(now))
    if summary["failed"]:
        logger.warning(f"Deadline scan finished with {summary['failed']} failed reminders")
    return summary


@shared_task(name="tasks.notification_tasks.run_daily_digests")
def run_daily_digests_task(now: Optional[str] = None) -> Dict[str, Any]:
    """Daily digest run."""
    return run_daily_digests(_parse_now(now))


@shared_task(name="tasks.notification_tasks.on_dispute_transition")
def on_dispute_transition_task(event: Dict[str, Any]) -> Dict[str, Any]:
    """One dispute workflow transition."""
    return on_dispute_transition(event)
