"""
Deadline Scanner.

Runs once per scheduling tick with an injected ``now`` and sends each
deadline reminder at most once per (deal, item, tier):

- milestones due within the widest lookahead window, to the seller
- deals left in awaiting_payment past the stale threshold, to the buyer
- disputes left pending past the response threshold, to the respondent

A candidate is skipped when its ledger key already exists. Otherwise the
in-app notification and the email are sent first and the ledger entry is
written last; if either leg fails no entry is written and the next tick
tries again.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from config.settings import NotificationSettings, get_notification_settings
from notifications.email_provider import EmailProvider
from notifications.email_templates import render_deadline_reminder
from notifications.notification_sink import NotificationRequest, NotificationSink

from .enums import DealStage, NotificationType, Priority, ReminderTier
from .exceptions import DispatchError
from .reminder_ledger import PAYMENT_ITEM_ID, ReminderLedger
from .snapshots import DealSnapshot, DealSnapshotReader, UserDirectory

logger = logging.getLogger(__name__)

MILESTONE_DUE = "milestone_due"
PAYMENT_DUE = "payment_due"
RESPONSE_DUE = "response_due"


def days_until(due: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``due``, rounded up."""
    return math.ceil((due - now).total_seconds() / 86400)


def classify_urgency(
    days_until_due: int,
    windows: Sequence[int] = (1, 3, 7),
) -> Optional[Tuple[ReminderTier, Priority]]:
    """
    Map days-until-due onto a reminder tier and priority.

    >>> classify_urgency(2)
    (<ReminderTier.THREE_DAY: '3day'>, <Priority.HIGH: 'high'>)
    >>> classify_urgency(8) is None
    True
    """
    one_day, three_day, seven_day = windows
    if days_until_due <= one_day:
        return ReminderTier.ONE_DAY, Priority.CRITICAL
    if days_until_due <= three_day:
        return ReminderTier.THREE_DAY, Priority.HIGH
    if days_until_due <= seven_day:
        return ReminderTier.SEVEN_DAY, Priority.MEDIUM
    return None


@dataclass
class ReminderCandidate:
    """A reminder the scanner wants to send, keyed for the ledger."""
    kind: str
    deal: DealSnapshot
    item_id: str
    tier: ReminderTier
    priority: Priority
    recipient: str
    description: str
    due_date: datetime
    days_until_due: int
    amount: Optional[Decimal] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return self.deal.id, self.item_id, self.tier.value

    def title(self) -> str:
        if self.kind == MILESTONE_DUE:
            return "Milestone Due Tomorrow" if self.days_until_due <= 1 else f"Milestone Due in {self.days_until_due} days"
        if self.kind == PAYMENT_DUE:
            return "Payment Reminder"
        return "Response Required"

    def message(self) -> str:
        ref = self.deal.reference
        if self.kind == MILESTONE_DUE:
            when = "tomorrow" if self.days_until_due <= 1 else f"in {self.days_until_due} days"
            return f'Milestone "{self.description}" for deal {ref} is due {when}.'
        if self.kind == PAYMENT_DUE:
            return f"Your escrow payment for deal {ref} is still pending. Please complete payment to proceed."
        return f"A dispute has been filed for deal {ref}. Please respond promptly."

    def email_subject(self) -> str:
        prefix = "URGENT: " if self.days_until_due <= 1 else ""
        ref = self.deal.reference
        if self.kind == MILESTONE_DUE:
            when = "Tomorrow" if self.days_until_due <= 1 else f"in {self.days_until_due} Days"
            return f"{prefix}Milestone Due {when} - {ref}"
        if self.kind == PAYMENT_DUE:
            return f"{prefix}Payment Required - {ref}"
        return f"{prefix}Dispute Response Required - {ref}"

    def payload(self) -> Dict[str, Any]:
        return {
            "dealId": self.deal.id,
            "dealReference": self.deal.reference,
            "type": self.kind,
            "itemId": self.item_id,
            "tier": self.tier.value,
            "dueDate": self.due_date.isoformat(),
            "daysUntilDue": self.days_until_due,
        }


@dataclass
class ScanResult:
    """Counts and failures from one scanner run."""
    run_at: datetime
    candidates: int = 0
    dispatched: int = 0
    already_sent: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_at": self.run_at.isoformat(),
            "candidates": self.candidates,
            "dispatched": self.dispatched,
            "already_sent": self.already_sent,
            "failed": self.failed,
            "errors": self.errors,
        }


class DeadlineScanner:
    """Finds due and overdue items and sends ledger-gated reminders."""

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
        self.ledger = ReminderLedger(session)
        self.sink = sink or NotificationSink(session, provider=provider)

    # ------------------------------------------------------------------
    # Candidate collection
    # ------------------------------------------------------------------

    def milestone_candidates(self, now: datetime) -> List[ReminderCandidate]:
        horizon = now + timedelta(days=self.settings.lookahead_days)
        candidates = []
        for milestone in self.reader.upcoming_milestones(now, horizon):
            days = days_until(milestone.due_date, now)
            urgency = classify_urgency(days, self.settings.milestone_windows_days)
            if urgency is None:
                continue
            tier, priority = urgency
            candidates.append(ReminderCandidate(
                kind=MILESTONE_DUE,
                deal=milestone.deal,
                item_id=milestone.id,
                tier=tier,
                priority=priority,
                recipient=milestone.deal.seller_address,
                description=milestone.title,
                due_date=milestone.due_date,
                days_until_due=days,
                amount=milestone.amount,
            ))
        return candidates

    def payment_candidates(self, now: datetime) -> List[ReminderCandidate]:
        stale = timedelta(days=self.settings.escrow_stale_days)
        return [
            ReminderCandidate(
                kind=PAYMENT_DUE,
                deal=deal,
                item_id=PAYMENT_ITEM_ID,
                tier=ReminderTier.THREE_DAY,
                priority=Priority.HIGH,
                recipient=deal.buyer_address,
                description="Escrow payment pending",
                due_date=deal.created_at + stale,
                days_until_due=0,
                amount=deal.total_amount,
            )
            for deal in self.reader.deals_in_stage_before(DealStage.AWAITING_PAYMENT, now - stale)
        ]

    def dispute_candidates(self, now: datetime) -> List[ReminderCandidate]:
        window = timedelta(days=self.settings.dispute_response_days)
        return [
            ReminderCandidate(
                kind=RESPONSE_DUE,
                deal=dispute.deal,
                item_id=dispute.id,
                tier=ReminderTier.RESPONSE,
                priority=Priority.CRITICAL,
                recipient=dispute.respondent,
                description="Dispute response required",
                due_date=dispute.created_at + window,
                days_until_due=0,
            )
            for dispute in self.reader.pending_disputes_before(now - window)
        ]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def scan(self, now: datetime) -> ScanResult:
        """Run one tick. Per-item failures are recorded, never raised."""
        result = ScanResult(run_at=now)
        collectors: List[Tuple[str, Callable[[datetime], List[ReminderCandidate]]]] = [
            ("milestones", self.milestone_candidates),
            ("payments", self.payment_candidates),
            ("disputes", self.dispute_candidates),
        ]

        for source, collect in collectors:
            try:
                candidates = collect(now)
            except Exception as e:
                self.session.rollback()
                logger.exception(f"[Deadlines] Failed to collect {source} candidates: {e}")
                result.errors.append({"source": source, "error": str(e)})
                continue

            for candidate in candidates:
                result.candidates += 1
                self._process(candidate, now, result)

        logger.info(
            f"[Deadlines] Scan complete: {result.dispatched} sent, "
            f"{result.already_sent} already sent, {result.failed} failed",
            extra={"run_at": now.isoformat(), "candidates": result.candidates},
        )
        return result

    def _process(self, candidate: ReminderCandidate, now: datetime, result: ScanResult) -> None:
        deal_id, item_id, tier = candidate.key
        try:
            if self.ledger.exists(deal_id, item_id, tier):
                result.already_sent += 1
                return

            self.dispatch(candidate)

            if not self.ledger.insert(deal_id, item_id, tier, now):
                logger.warning(
                    f"[Deadlines] Reminder deal={deal_id} item={item_id} tier={tier} "
                    f"was recorded by a concurrent run"
                )
            result.dispatched += 1
        except Exception as e:
            self.session.rollback()
            result.failed += 1
            result.errors.append({
                "kind": candidate.kind,
                "deal_id": deal_id,
                "item_id": item_id,
                "tier": tier,
                "error": str(e),
            })
            logger.error(
                f"[Deadlines] Reminder failed deal={deal_id} item={item_id} tier={tier}: {e}",
                extra={"deal_id": deal_id, "item_id": item_id, "tier": tier},
            )

    def dispatch(self, candidate: ReminderCandidate) -> None:
        """
        Send the in-app notification and email for one candidate.

        An in-app row left by an earlier attempt whose email failed is
        reused, so only the email is sent again.

        Raises:
            DispatchError: if the notification was not persisted or the
                email was attempted and failed.
        """
        action_url = f"{self.settings.app_url}/trade/deals/{candidate.deal.id}"
        request = NotificationRequest(
            user_address=candidate.recipient,
            type=NotificationType.DEADLINE_REMINDER.value,
            title=candidate.title(),
            message=candidate.message(),
            priority=candidate.priority.value,
            action_url=action_url,
            payload=candidate.payload(),
        )

        recipient_email = self.directory.get_email(candidate.recipient)
        email = None
        if recipient_email:
            email = render_deadline_reminder(
                platform_name=self.settings.platform_name,
                subject=candidate.email_subject(),
                urgency=candidate.priority.value,
                days_until_due=candidate.days_until_due,
                deal_reference=candidate.deal.reference,
                deal_title=candidate.deal.title,
                action_required=candidate.description,
                due_date=candidate.due_date,
                action_url=action_url,
                amount=candidate.amount,
            )

        deal_id, item_id, tier = candidate.key
        existing_id = self.sink.find_existing(
            candidate.recipient,
            NotificationType.DEADLINE_REMINDER.value,
            {"dealId": deal_id, "itemId": item_id, "tier": tier},
        )
        if existing_id is not None:
            logger.info(f"[Deadlines] Retrying email only for deal={deal_id} item={item_id} tier={tier}")

        outcome = self.sink.dispatch(
            request, email=email, recipient_email=recipient_email, existing_id=existing_id
        )
        if not outcome.delivered:
            raise DispatchError(
                f"Reminder not delivered (persisted={outcome.persisted}, email_sent={outcome.email_sent})",
                {"deal_id": deal_id, "item_id": item_id, "tier": tier},
            )
