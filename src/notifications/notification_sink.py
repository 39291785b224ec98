"""
Notification Sink

Shared delivery path for reminders, digests and dispute notices. A
dispatch is two independent steps:

1. persist an in-app notification row
2. attempt a transactional email through the configured EmailProvider

A failure in one step never prevents the other. Failures are logged with
the recipient and notification type and reported back in DispatchOutcome;
nothing is retried here.

Usage:
    sink = NotificationSink(session)
    outcome = sink.dispatch(request, email=rendered, recipient_email="a@b.com")
    if outcome.delivered:
        ...
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import NotificationDB

from .email_provider import EmailMessage, EmailProvider, get_email_provider
from .email_templates import RenderedEmail

logger = logging.getLogger(__name__)


@dataclass
class NotificationRequest:
    """In-app notification to persist."""
    user_address: str
    type: str
    title: str
    message: str
    priority: str
    action_url: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchOutcome:
    """What happened to each leg of a dispatch."""
    notification_id: Optional[str] = None
    email_attempted: bool = False
    email_sent: bool = False

    @property
    def persisted(self) -> bool:
        return self.notification_id is not None

    @property
    def delivered(self) -> bool:
        """In-app row written and the email either sent or not applicable."""
        return self.persisted and (self.email_sent or not self.email_attempted)


class NotificationSink:
    """Persists in-app notifications and sends their email counterparts."""

    def __init__(
        self,
        session: Session,
        provider: Optional[EmailProvider] = None,
        email_enabled: bool = True,
    ):
        self.session = session
        self._provider = provider
        self.email_enabled = email_enabled
        self.counters: Dict[str, int] = {
            "notifications_created": 0,
            "notification_failures": 0,
            "emails_sent": 0,
            "email_failures": 0,
        }

    @property
    def provider(self) -> EmailProvider:
        """Lazy-load email provider."""
        if self._provider is None:
            self._provider = get_email_provider()
        return self._provider

    def create(
        self,
        user_address: str,
        type: str,
        title: str,
        message: str,
        priority: str,
        action_url: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Persist one in-app notification and commit it.

        Returns:
            The new notification id, or None if the write failed.
        """
        row = NotificationDB(
            user_address=user_address.lower(),
            type=str(getattr(type, "value", type)),
            title=title,
            message=message,
            priority=str(getattr(priority, "value", priority)),
            action_url=action_url,
            data=payload or {},
            read=False,
        )
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self.counters["notification_failures"] += 1
            logger.error(
                f"Failed to create {row.type} notification for {row.user_address}: {e}",
                extra={"user_address": row.user_address, "notification_type": row.type},
            )
            return None

        self.counters["notifications_created"] += 1
        return row.id

    def find_existing(self, user_address: str, type: str, match: Dict[str, Any]) -> Optional[str]:
        """Id of a stored notification of ``type`` whose payload contains ``match``."""
        rows = self.session.scalars(
            select(NotificationDB)
            .where(NotificationDB.user_address == user_address.lower())
            .where(NotificationDB.type == str(getattr(type, "value", type)))
            .order_by(NotificationDB.created_at)
        )
        for row in rows:
            data = row.data or {}
            if all(data.get(k) == v for k, v in match.items()):
                return row.id
        return None

    def send_email(
        self,
        subject: str,
        html: str,
        recipient_email: str,
        text: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> bool:
        """
        Send one email. Any failure, raised or reported, yields False.
        """
        message = EmailMessage(
            to=recipient_email,
            subject=subject,
            body_html=html,
            body_text=text,
            tags=tags or [],
        )
        try:
            result = self.provider.send(message)
        except Exception as e:
            self.counters["email_failures"] += 1
            logger.exception(f"Email to {recipient_email} raised: {e}")
            return False

        if result.success:
            self.counters["emails_sent"] += 1
            logger.info(
                f"Email sent: {subject} to {recipient_email}",
                extra={"provider": result.provider, "message_id": result.message_id},
            )
        else:
            self.counters["email_failures"] += 1
            logger.error(
                f"Email failed: {subject} to {recipient_email}: {result.error_message}",
                extra={"provider": result.provider, "error_code": result.error_code},
            )
        return result.success

    def dispatch(
        self,
        request: NotificationRequest,
        email: Optional[RenderedEmail] = None,
        recipient_email: Optional[str] = None,
        existing_id: Optional[str] = None,
    ) -> DispatchOutcome:
        """
        Persist the notification, then attempt the email.

        With ``existing_id`` the row is already stored and only the email
        leg runs.

        The email leg is skipped when there is no rendered email, no
        recipient address, or email is disabled; otherwise it runs even if
        the in-app write failed.
        """
        outcome = DispatchOutcome(notification_id=existing_id)
        if existing_id is None:
            outcome.notification_id = self.create(
                request.user_address,
                request.type,
                request.title,
                request.message,
                request.priority,
                action_url=request.action_url,
                payload=request.payload,
            )

        if email is not None and recipient_email and self.email_enabled:
            outcome.email_attempted = True
            outcome.email_sent = self.send_email(
                email.subject,
                email.body_html,
                recipient_email,
                text=email.body_text,
                tags=[str(getattr(request.type, "value", request.type))],
            )

        return outcome
