"""
Dispute Escalation Notifier.

Reacts to dispute workflow events and fans notifications out to the
parties and, when a dispute is opened, to every admin. Each recipient gets
one in-app notification and, if they have an address on file, one email.

Events are single-fire: the workflow publishes each transition exactly
once, so there is no ledger. A failure for one recipient is logged and
does not stop delivery to the others.

Fan-out per transition:

    opened              respondent (high), filer (medium), every admin not a party (high)
    mediation           filer, respondent (medium)
    arbitration         filer, respondent (high)
    resolved            filer, respondent (high), personalised by ruling
    evidence_submitted  the party who did not submit (medium)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from config.settings import NotificationSettings, get_notification_settings
from notifications import email_templates
from notifications.email_provider import EmailProvider
from notifications.email_templates import format_amount, render_dispute_notice, shorten_address
from notifications.notification_sink import NotificationRequest, NotificationSink

from .enums import DisputeTransition, NotificationType, Priority, Ruling
from .exceptions import DealNotFoundError, InvalidDisputeEventError, NotificationEngineError
from .snapshots import DealSnapshot, DealSnapshotReader, UserDirectory, normalize_address

logger = logging.getLogger(__name__)

SPLIT_MESSAGE = "Funds have been split between both parties."
WIN_MESSAGE = "The ruling was in your favor."
LOSS_MESSAGE = "The ruling was in favor of the other party."


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


@dataclass
class DisputeTransitionEvent:
    """A dispute state change published by the trade workflow."""
    transition: DisputeTransition
    dispute_id: str
    deal_id: str
    filed_by: str
    respondent: str
    reason: str = ""
    ruling: Optional[Ruling] = None
    resolution: Optional[str] = None
    submitted_by: Optional[str] = None
    evidence_type: Optional[str] = None
    filed_by_name: Optional[str] = None
    amount: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DisputeTransitionEvent":
        """
        Build an event from a camelCase or snake_case payload.

        Raises:
            InvalidDisputeEventError: unknown transition or ruling, or a
                required identifier is missing.
        """
        try:
            transition = DisputeTransition(_pick(data, "transition", "event", "type"))
        except ValueError:
            raise InvalidDisputeEventError(
                f"Unknown dispute transition: {data.get('transition')!r}", {"payload": data}
            )

        fields = {
            "dispute_id": _pick(data, "dispute_id", "disputeId"),
            "deal_id": _pick(data, "deal_id", "dealId"),
            "filed_by": _pick(data, "filed_by", "filedBy"),
            "respondent": _pick(data, "respondent"),
        }
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise InvalidDisputeEventError(
                f"Dispute event missing {', '.join(missing)}", {"transition": transition.value}
            )

        raw_ruling = _pick(data, "ruling")
        try:
            ruling = Ruling(raw_ruling) if raw_ruling else None
        except ValueError:
            raise InvalidDisputeEventError(
                f"Unknown ruling: {raw_ruling!r}", {"dispute_id": fields["dispute_id"]}
            )

        raw_amount = _pick(data, "amount")
        amount = None
        if raw_amount is not None:
            try:
                amount = Decimal(str(raw_amount))
            except InvalidOperation:
                amount = None
            if amount is None or not amount.is_finite():
                raise InvalidDisputeEventError(
                    f"Invalid amount: {raw_amount!r}", {"dispute_id": fields["dispute_id"]}
                )

        return cls(
            transition=transition,
            reason=_pick(data, "reason") or "",
            ruling=ruling,
            resolution=_pick(data, "resolution"),
            submitted_by=_pick(data, "submitted_by", "submittedBy"),
            evidence_type=_pick(data, "evidence_type", "evidenceType"),
            filed_by_name=_pick(data, "filed_by_name", "filedByName"),
            amount=amount,
            **{name: str(value) for name, value in fields.items()},
        )


def is_winner(ruling: Ruling, recipient: str, filed_by: str, respondent: str) -> bool:
    """A split counts as a win for both sides."""
    recipient = normalize_address(recipient)
    if ruling == Ruling.SPLIT:
        return True
    if ruling == Ruling.BUYER:
        return recipient == normalize_address(filed_by)
    return recipient == normalize_address(respondent)


def ruling_message(ruling: Ruling, winner: bool) -> str:
    if ruling == Ruling.SPLIT:
        return SPLIT_MESSAGE
    return WIN_MESSAGE if winner else LOSS_MESSAGE


def ruling_outcome(ruling: Ruling, winner: bool) -> str:
    if ruling == Ruling.SPLIT:
        return "split"
    return "won" if winner else "lost"


@dataclass
class PartyNotice:
    """Everything needed to notify one recipient of one transition."""
    recipient: str
    type: NotificationType
    title: str
    message: str
    priority: Priority
    action_url: str
    payload: Dict[str, Any]
    email_subject: str
    accent: str
    details: Sequence[Tuple[str, str]] = ()
    closing: Optional[str] = None
    button_label: str = "View Dispute"


@dataclass
class FanoutResult:
    transition: str
    dispute_id: str
    notified: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transition": self.transition,
            "dispute_id": self.dispute_id,
            "notified": self.notified,
            "failed": self.failed,
            "skipped_reason": self.skipped_reason,
        }


class DisputeEscalationNotifier:
    """Turns dispute transitions into per-recipient notifications."""

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
        self._builders = {
            DisputeTransition.OPENED: self._opened,
            DisputeTransition.MEDIATION: self._mediation,
            DisputeTransition.ARBITRATION: self._arbitration,
            DisputeTransition.RESOLVED: self._resolved,
            DisputeTransition.EVIDENCE_SUBMITTED: self._evidence,
        }

    def handle(self, event: DisputeTransitionEvent) -> FanoutResult:
        """
        Notify every recipient of ``event``.

        Events that reference an unknown deal or lack required data are
        logged and skipped; nothing is raised.
        """
        result = FanoutResult(transition=event.transition.value, dispute_id=event.dispute_id)
        try:
            deal = self.reader.get_deal(event.deal_id)
            if deal is None:
                raise DealNotFoundError(event.deal_id)
            notices = self._builders[event.transition](event, deal)
        except NotificationEngineError as e:
            result.skipped_reason = e.message
            logger.error(
                f"[Disputes] Skipping {event.transition.value} for dispute {event.dispute_id}: {e.message}",
                extra={"dispute_id": event.dispute_id, "deal_id": event.deal_id, **e.details},
            )
            return result

        for notice in notices:
            try:
                if self._deliver(notice):
                    result.notified.append(notice.recipient)
                else:
                    result.failed.append(notice.recipient)
            except Exception as e:
                self.session.rollback()
                result.failed.append(notice.recipient)
                logger.error(
                    f"[Disputes] Failed to notify {notice.recipient} of {event.transition.value} "
                    f"for dispute {event.dispute_id}: {e}",
                    extra={"dispute_id": event.dispute_id, "recipient": notice.recipient},
                )

        logger.info(
            f"[Disputes] {event.transition.value} for dispute {event.dispute_id}: "
            f"{len(result.notified)} notified, {len(result.failed)} failed"
        )
        return result

    def _deliver(self, notice: PartyNotice) -> bool:
        user = self.directory.get_user(notice.recipient)
        email = None
        if user and user.email:
            email = render_dispute_notice(
                platform_name=self.settings.platform_name,
                subject=notice.email_subject,
                heading=notice.title,
                accent=notice.accent,
                recipient_name=user.name,
                message=notice.message,
                details=notice.details,
                action_url=notice.action_url,
                button_label=notice.button_label,
                closing=notice.closing,
            )
        request = NotificationRequest(
            user_address=notice.recipient,
            type=notice.type.value,
            title=notice.title,
            message=notice.message,
            priority=notice.priority.value,
            action_url=notice.action_url,
            payload=notice.payload,
        )
        outcome = self.sink.dispatch(request, email=email, recipient_email=user.email if user else None)
        return outcome.delivered

    # ------------------------------------------------------------------
    # Per-transition builders
    # ------------------------------------------------------------------

    def _dispute_url(self, event: DisputeTransitionEvent) -> str:
        return f"{self.settings.app_url}/trade/disputes/{event.dispute_id}"

    @staticmethod
    def _base_payload(event: DisputeTransitionEvent, deal: DealSnapshot) -> Dict[str, Any]:
        return {
            "disputeId": event.dispute_id,
            "dealId": event.deal_id,
            "dealReference": deal.reference,
            "transition": event.transition.value,
        }

    def _opened(self, event: DisputeTransitionEvent, deal: DealSnapshot) -> List[PartyNotice]:
        filer = event.filed_by_name or shorten_address(event.filed_by)
        amount = event.amount if event.amount is not None else deal.total_amount
        notices = [PartyNotice(
            recipient=event.respondent,
            type=NotificationType.DISPUTE_OPENED,
            title="Dispute Filed Against You",
            message=f'A dispute has been filed for deal {deal.reference}: "{event.reason}"',
            priority=Priority.HIGH,
            action_url=self._dispute_url(event),
            payload={**self._base_payload(event, deal), "reason": event.reason},
            email_subject=f"Dispute Filed: {deal.reference}",
            accent=email_templates.DISPUTE_ACCENT,
            details=[
                ("Deal Reference", deal.reference),
                ("Deal Title", deal.title),
                ("Filed By", filer),
                ("Reason", event.reason),
            ],
            closing="Please respond promptly with your side of the case and any supporting evidence.",
        ), PartyNotice(
            recipient=event.filed_by,
            type=NotificationType.DISPUTE_OPENED,
            title="Dispute Submitted",
            message=(
                f"Your dispute for deal {deal.reference} has been filed. "
                f"The other party has been asked to respond."
            ),
            priority=Priority.MEDIUM,
            action_url=self._dispute_url(event),
            payload={**self._base_payload(event, deal), "reason": event.reason, "role": "filer"},
            email_subject=f"Dispute Submitted: {deal.reference}",
            accent=email_templates.DISPUTE_ACCENT,
            details=[
                ("Deal Reference", deal.reference),
                ("Deal Title", deal.title),
                ("Reason", event.reason),
            ],
        )]

        parties = {normalize_address(event.filed_by), normalize_address(event.respondent)}
        for admin in self.directory.list_admins():
            if normalize_address(admin.wallet_address) in parties:
                continue
            notices.append(PartyNotice(
                recipient=admin.wallet_address,
                type=NotificationType.ADMIN_DISPUTE_ALERT,
                title="Dispute Opened",
                message=f"Dispute opened for deal {deal.reference}. Amount at risk: {format_amount(amount)}",
                priority=Priority.HIGH,
                action_url=f"{self.settings.app_url}/admin/disputes/{event.dispute_id}",
                payload={**self._base_payload(event, deal), "action": "opened", "amount": str(amount)},
                email_subject=f"Dispute Opened - {deal.reference}",
                accent=email_templates.DISPUTE_ACCENT,
                details=[
                    ("Dispute ID", event.dispute_id),
                    ("Deal Reference", deal.reference),
                    ("Filed By", filer),
                    ("Respondent", shorten_address(event.respondent)),
                    ("Amount at Risk", format_amount(amount)),
                ],
                button_label="Review Dispute",
            ))
        return notices

    def _both_parties(self, event: DisputeTransitionEvent) -> List[str]:
        return [event.filed_by, event.respondent]

    def _mediation(self, event: DisputeTransitionEvent, deal: DealSnapshot) -> List[PartyNotice]:
        return [
            PartyNotice(
                recipient=party,
                type=NotificationType.DISPUTE_MEDIATION,
                title="Dispute Moved to Mediation",
                message=f"Deal {deal.reference} dispute is now in mediation. A mediator will review the case.",
                priority=Priority.MEDIUM,
                action_url=self._dispute_url(event),
                payload=self._base_payload(event, deal),
                email_subject=f"Mediation Started - {deal.reference}",
                accent=email_templates.MEDIATION_ACCENT,
                details=[("Deal Reference", deal.reference), ("Deal Title", deal.title)],
                closing="A mediator will review the evidence from both parties and propose a resolution.",
            )
            for party in self._both_parties(event)
        ]

    def _arbitration(self, event: DisputeTransitionEvent, deal: DealSnapshot) -> List[PartyNotice]:
        return [
            PartyNotice(
                recipient=party,
                type=NotificationType.DISPUTE_ARBITRATION,
                title="Dispute Escalated to Arbitration",
                message=(
                    f"Deal {deal.reference} dispute has been escalated to arbitration. "
                    f"An arbitrator will make a binding decision."
                ),
                priority=Priority.HIGH,
                action_url=self._dispute_url(event),
                payload=self._base_payload(event, deal),
                email_subject=f"Arbitration Required - {deal.reference}",
                accent=email_templates.ARBITRATION_ACCENT,
                details=[("Deal Reference", deal.reference), ("Deal Title", deal.title)],
                closing="The arbitrator's decision will be binding on both parties.",
            )
            for party in self._both_parties(event)
        ]

    def _resolved(self, event: DisputeTransitionEvent, deal: DealSnapshot) -> List[PartyNotice]:
        if event.ruling is None:
            raise InvalidDisputeEventError(
                f"Resolved event for dispute {event.dispute_id} has no ruling",
                {"transition": event.transition.value},
            )

        notices = []
        for party in self._both_parties(event):
            winner = is_winner(event.ruling, party, event.filed_by, event.respondent)
            outcome_text = ruling_message(event.ruling, winner)
            notices.append(PartyNotice(
                recipient=party,
                type=NotificationType.DISPUTE_RESOLVED,
                title="Dispute Resolved",
                message=f"Deal {deal.reference} dispute has been resolved. {outcome_text}",
                priority=Priority.HIGH,
                action_url=self._dispute_url(event),
                payload={
                    **self._base_payload(event, deal),
                    "ruling": event.ruling.value,
                    "outcome": ruling_outcome(event.ruling, winner),
                    "resolution": event.resolution,
                },
                email_subject=f"Dispute Resolved: {deal.reference}",
                accent=email_templates.RESOLVED_ACCENT,
                details=[
                    ("Dispute ID", event.dispute_id),
                    ("Deal Reference", deal.reference),
                    ("Resolution", event.resolution or outcome_text),
                ],
            ))
        return notices

    def _evidence(self, event: DisputeTransitionEvent, deal: DealSnapshot) -> List[PartyNotice]:
        if not event.submitted_by:
            raise InvalidDisputeEventError(
                f"Evidence event for dispute {event.dispute_id} has no submitter",
                {"transition": event.transition.value},
            )

        submitter = normalize_address(event.submitted_by)
        recipients = [
            party for party in self._both_parties(event)
            if normalize_address(party) != submitter
        ]
        evidence_type = event.evidence_type
        label = f"{evidence_type} " if evidence_type else ""
        return [
            PartyNotice(
                recipient=party,
                type=NotificationType.DISPUTE_EVIDENCE,
                title="New Evidence Submitted",
                message=f"New {label}evidence has been submitted for dispute on deal {deal.reference}",
                priority=Priority.MEDIUM,
                action_url=self._dispute_url(event),
                payload={**self._base_payload(event, deal), "evidenceType": evidence_type},
                email_subject=f"New Evidence Submitted - {deal.reference}",
                accent=email_templates.MEDIATION_ACCENT,
                details=[("Deal Reference", deal.reference), ("Evidence Type", evidence_type or "Unspecified")],
            )
            for party in recipients
        ]
