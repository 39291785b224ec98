"""
Entry points for the notification engine.

    run_deadline_scan(now)       hourly, from Celery beat
    run_daily_digests(now)       daily, from Celery beat
    on_dispute_transition(event) whenever the workflow changes a dispute

Each call opens its own database session, never raises for per-item
failures, and returns a JSON-serialisable summary. All three are safe to
call again: reminders are ledger-gated, and digests and dispute notices
are one-shot per invocation.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from config.settings import get_notification_settings, get_settings
from database.connection import get_db_session
from notifications.email_provider import EmailProvider
from notifications.notification_sink import NotificationSink

from .deadline_scanner import DeadlineScanner
from .digest import DigestAggregator
from .dispute_notifier import DisputeEscalationNotifier, DisputeTransitionEvent, FanoutResult
from .exceptions import InvalidDisputeEventError

logger = logging.getLogger(__name__)


def _naive_utc(now: Optional[datetime]) -> datetime:
    """Stored timestamps are naive UTC; normalise ``now`` to match."""
    if now is None:
        return datetime.utcnow()
    if now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    return now


def _sink(session, provider: Optional[EmailProvider]) -> NotificationSink:
    return NotificationSink(session, provider=provider, email_enabled=get_settings().enable_email)


def run_deadline_scan(
    now: Optional[datetime] = None,
    provider: Optional[EmailProvider] = None,
) -> Dict[str, Any]:
    """Send every due deadline reminder that has not been sent yet."""
    now = _naive_utc(now)
    logger.info(f"[Deadlines] Starting scan at {now.isoformat()}")
    with get_db_session() as session:
        scanner = DeadlineScanner(
            session,
            settings=get_notification_settings(),
            sink=_sink(session, provider),
        )
        result = scanner.scan(now)
    return result.to_dict()


def run_daily_digests(
    now: Optional[datetime] = None,
    provider: Optional[EmailProvider] = None,
) -> Dict[str, Any]:
    """Send the daily digest to every user with something to report."""
    now = _naive_utc(now)
    logger.info(f"[Digest] Starting daily digests at {now.isoformat()}")
    with get_db_session() as session:
        aggregator = DigestAggregator(
            session,
            settings=get_notification_settings(),
            sink=_sink(session, provider),
        )
        result = aggregator.run(now)
    return result.to_dict()


def on_dispute_transition(
    event: Union[DisputeTransitionEvent, Dict[str, Any]],
    provider: Optional[EmailProvider] = None,
) -> Dict[str, Any]:
    """Fan out notifications for one dispute transition."""
    if not isinstance(event, DisputeTransitionEvent):
        try:
            event = DisputeTransitionEvent.from_dict(event)
        except InvalidDisputeEventError as e:
            logger.error(f"[Disputes] Rejected event: {e.message}", extra=e.details)
            return {
                "transition": None,
                "dispute_id": None,
                "notified": [],
                "failed": [],
                "skipped_reason": e.message,
            }

    with get_db_session() as session:
        notifier = DisputeEscalationNotifier(
            session,
            settings=get_notification_settings(),
            sink=_sink(session, provider),
        )
        try:
            result = notifier.handle(event)
        except Exception as e:
            session.rollback()
            logger.exception(
                f"[Disputes] {event.transition.value} for dispute {event.dispute_id} failed: {e}"
            )
            result = FanoutResult(
                transition=event.transition.value,
                dispute_id=event.dispute_id,
                skipped_reason=str(e),
            )
    return result.to_dict()
