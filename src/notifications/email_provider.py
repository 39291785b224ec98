"""
Outbound email transport.

Reminders, digests and dispute notices all leave through one
EmailProvider chosen at first use:

    EMAIL_PROVIDER      forces sendgrid | ses | smtp | null
    SENDGRID_API_KEY    selects SendGrid
    AWS_SES_REGION      selects Amazon SES
    SMTP_HOST           selects a plain SMTP relay

With none of these set, the null transport logs each message instead of
sending it. Transports report failures in the returned DeliveryResult and
do not raise for delivery problems.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    SENT = "sent"
    BOUNCED = "bounced"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class EmailMessage:
    """One outbound email. At least one of the two bodies must be set."""
    to: str
    subject: str
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    reply_to: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)

    def validate(self) -> bool:
        """Raise ValueError if the message cannot be sent as is."""
        if not self.to:
            raise ValueError("Email has no recipient")
        if not self.subject:
            raise ValueError("Email has no subject")
        if not (self.body_html or self.body_text):
            raise ValueError("Email needs an HTML or a text body")
        return True


@dataclass
class DeliveryResult:
    """Outcome of handing one message to a transport."""
    success: bool
    status: DeliveryStatus
    message_id: Optional[str] = None
    provider: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def sent(cls, provider: str, message_id: Optional[str]) -> "DeliveryResult":
        return cls(success=True, status=DeliveryStatus.SENT, message_id=message_id, provider=provider)

    @classmethod
    def failure(
        cls,
        provider: str,
        error_message: str,
        error_code: str = "SEND_ERROR",
        status: DeliveryStatus = DeliveryStatus.FAILED,
    ) -> "DeliveryResult":
        return cls(
            success=False,
            status=status,
            provider=provider,
            error_message=error_message,
            error_code=error_code,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            name: getattr(self, name)
            for name in ("success", "message_id", "provider", "error_message", "error_code")
        }
        data["status"] = self.status.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


class EmailProvider(ABC):
    """A transport that can deliver EmailMessage objects."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short transport name used in logs and DeliveryResult."""

    @abstractmethod
    def send(self, message: EmailMessage) -> DeliveryResult:
        """Deliver ``message``; delivery problems come back as a failed result."""

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the transport has the credentials it needs."""


class NullEmailProvider(EmailProvider):
    """Logs messages instead of sending them. Used in development and tests."""

    @property
    def provider_name(self) -> str:
        return "null"

    def send(self, message: EmailMessage) -> DeliveryResult:
        message.validate()
        logger.info(f"[email:null] to={message.to} subject={message.subject!r}")
        return DeliveryResult.sent(self.provider_name, f"null-{datetime.utcnow().timestamp()}")

    def is_configured(self) -> bool:
        return True


# First configured transport wins
_DETECTION_ORDER: Tuple[Tuple[str, str], ...] = (
    ("SENDGRID_API_KEY", "sendgrid"),
    ("AWS_SES_REGION", "ses"),
    ("SMTP_HOST", "smtp"),
)

_active_provider: Optional[EmailProvider] = None


def _build_provider(name: str) -> EmailProvider:
    if name == "sendgrid":
        from .sendgrid_provider import SendGridProvider
        return SendGridProvider()
    if name == "ses":
        from .ses_provider import SESProvider
        return SESProvider()
    if name == "smtp":
        from .smtp_provider import SMTPProvider
        return SMTPProvider()
    if name == "null":
        return NullEmailProvider()
    raise ValueError(f"Unknown email provider: {name}")


def _detect_provider_name() -> str:
    forced = os.environ.get("EMAIL_PROVIDER", "").strip().lower()
    if forced:
        return forced
    for env_var, name in _DETECTION_ORDER:
        if os.environ.get(env_var):
            return name
    logger.warning(
        "No email transport configured; messages will only be logged. "
        "Set SENDGRID_API_KEY, AWS_SES_REGION or SMTP_HOST to deliver email."
    )
    return "null"


def get_email_provider() -> EmailProvider:
    """Return the process-wide transport, detecting it on first use."""
    global _active_provider

    if _active_provider is None:
        _active_provider = _build_provider(_detect_provider_name())
        logger.info(f"Email transport: {_active_provider.provider_name}")
    return _active_provider


def set_email_provider(provider: Optional[EmailProvider]) -> None:
    """Install ``provider`` as the transport; None re-runs detection on next use."""
    global _active_provider
    _active_provider = provider
    if provider is not None:
        logger.info(f"Email transport overridden: {provider.provider_name}")
