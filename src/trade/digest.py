"""
Digest Aggregator.

Builds each user's daily summary from the deal store and sends it as one
in-app notification plus one email. Users who opted out
(``emailDigest: false``) are skipped, and so is anyone with nothing to
report: no active deals, no pending actions and no alerts.

There is no ledger here. The scheduler runs this once per day and a
failed send is logged and left alone.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from config.settings import NotificationSettings, get_notification_settings
from notifications.email_provider import EmailProvider
from notifications.email_templates import render_daily_digest
from notifications.notification_sink import NotificationRequest, NotificationSink

from .enums import NotificationType, Priority, Role
from .snapshots import ActivityItem, DealSnapshotReader, UserContact, UserDirectory
from .stages import format_stage, resolve_next_action

logger = logging.getLogger(__name__)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


@dataclass
class DealSummary:
    id: str
    reference: str
    title: str
    stage: str
    role: Role
    amount: Decimal
    next_action: Optional[str] = None


@dataclass
class DigestAlert:
    message: str
    type: str = "warning"


@dataclass
class DigestStats:
    """Per-user digest content, computed fresh on every run."""
    active_deals: int = 0
    pending_actions: int = 0
    unread_messages: int = 0
    upcoming_deadlines: int = 0
    active_disputes: int = 0
    recent_activity: List[ActivityItem] = field(default_factory=list)
    deal_summaries: List[DealSummary] = field(default_factory=list)
    alerts: List[DigestAlert] = field(default_factory=list)

    @property
    def should_send(self) -> bool:
        return self.active_deals > 0 or self.pending_actions > 0 or len(self.alerts) > 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "activeDeals": self.active_deals,
            "pendingActions": self.pending_actions,
            "unreadMessages": self.unread_messages,
            "upcomingDeadlines": self.upcoming_deadlines,
            "activeDisputes": self.active_disputes,
            "alerts": [alert.message for alert in self.alerts],
        }


def derive_alerts(pending_actions: int, upcoming_deadlines: int, active_disputes: int) -> List[DigestAlert]:
    alerts = []
    if pending_actions > 0:
        alerts.append(DigestAlert(f"You have {_plural(pending_actions, 'deal')} requiring your action"))
    if upcoming_deadlines > 0:
        alerts.append(DigestAlert(f"{_plural(upcoming_deadlines, 'deadline')} coming up this week"))
    if active_disputes > 0:
        alerts.append(DigestAlert(f"You have {_plural(active_disputes, 'active dispute')}"))
    return alerts


@dataclass
class DigestRunResult:
    run_at: datetime
    users_checked: int = 0
    sent: int = 0
    suppressed: int = 0
    opted_out: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_at": self.run_at.isoformat(),
            "users_checked": self.users_checked,
            "sent": self.sent,
            "suppressed": self.suppressed,
            "opted_out": self.opted_out,
            "failed": self.failed,
            "errors": self.errors,
        }


class DigestAggregator:
    """Composes and sends the daily per-user digest."""

    def __init__(
        self,
        session: Session,
        settings: Optional[NotificationSettings] = None,
        provider: Optional[EmailProvider] = None,
        sink: Optional[NotificationSink] = None,
    ):
        self.session = session
        self.settings = settings or get_notification_settings()
        self.reader = DealSnapshotReader(session)
        self.directory = UserDirectory(session)
        self.sink = sink or NotificationSink(session, provider=provider)

    def build_stats(self, address: str, now: datetime) -> DigestStats:
        deals = self.reader.active_deals_for(address)
        deal_ids = [deal.id for deal in deals]

        summaries = []
        for deal in deals:
            role = deal.role_of(address)
            summaries.append(DealSummary(
                id=deal.id,
                reference=deal.reference,
                title=deal.title,
                stage=deal.stage,
                role=role,
                amount=deal.total_amount,
                next_action=resolve_next_action(deal.stage, role),
            ))

        stats = DigestStats(
            active_deals=len(deals),
            pending_actions=sum(1 for summary in summaries if summary.next_action),
            unread_messages=self.reader.count_unread_messages(address),
            upcoming_deadlines=self.reader.count_upcoming_milestones(
                deal_ids, now, now + timedelta(days=self.settings.lookahead_days)
            ),
            active_disputes=self.reader.count_active_disputes(address),
            recent_activity=self.reader.recent_timeline(
                deal_ids,
                now - timedelta(hours=self.settings.digest_lookback_hours),
                self.settings.digest_activity_limit,
            ),
            deal_summaries=summaries,
        )
        stats.alerts = derive_alerts(stats.pending_actions, stats.upcoming_deadlines, stats.active_disputes)
        return stats

    def run(self, now: datetime) -> DigestRunResult:
        """Process every user once. One user's failure never stops the run."""
        result = DigestRunResult(run_at=now)
        try:
            users = self.directory.list_users()
        except Exception as e:
            self.session.rollback()
            logger.exception(f"[Digest] Failed to list users: {e}")
            result.errors.append({"stage": "list_users", "error": str(e)})
            return result

        for user in users:
            result.users_checked += 1
            try:
                self._process_user(user, now, result)
            except Exception as e:
                self.session.rollback()
                result.failed += 1
                result.errors.append({"user": user.wallet_address, "error": str(e)})
                logger.error(
                    f"[Digest] Failed for {user.wallet_address}: {e}",
                    extra={"user_address": user.wallet_address},
                )

        logger.info(
            f"[Digest] Complete: {result.sent} sent, {result.suppressed} suppressed, "
            f"{result.opted_out} opted out, {result.failed} failed"
        )
        return result

    def _process_user(self, user: UserContact, now: datetime, result: DigestRunResult) -> None:
        if not self.directory.digest_enabled(user.wallet_address):
            result.opted_out += 1
            return

        stats = self.build_stats(user.wallet_address, now)
        if not stats.should_send:
            result.suppressed += 1
            return

        outcome = self.send(user, stats, now)
        if outcome.persisted or outcome.email_sent:
            result.sent += 1
        else:
            result.failed += 1
            result.errors.append({"user": user.wallet_address, "error": "digest not delivered"})

    def send(self, user: UserContact, stats: DigestStats, now: datetime):
        request = NotificationRequest(
            user_address=user.wallet_address,
            type=NotificationType.DAILY_DIGEST.value,
            title="Your Daily Summary",
            message=(
                f"{_plural(stats.active_deals, 'active deal')}, "
                f"{_plural(stats.pending_actions, 'pending action')}, "
                f"{_plural(stats.unread_messages, 'unread message')}"
            ),
            priority=Priority.LOW.value,
            action_url=f"{self.settings.app_url}/dashboard",
            payload=stats.to_payload(),
        )
        email = None
        if user.email:
            email = render_daily_digest(
                platform_name=self.settings.platform_name,
                app_url=self.settings.app_url,
                recipient_name=user.name,
                now=now,
                stats=stats,
                preview_items=self.settings.digest_preview_items,
                stage_label=format_stage,
            )
        outcome = self.sink.dispatch(request, email=email, recipient_email=user.email)
        if outcome.email_attempted and not outcome.email_sent:
            logger.warning(f"[Digest] Email to {user.email} failed; in-app digest kept")
        return outcome
