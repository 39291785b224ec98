"""
Notification Delivery System

Provides:
- Multi-provider email delivery (SendGrid, AWS SES, SMTP)
- HTML templates for reminders, digests and dispute notices
- The notification sink that persists in-app notifications and sends email

Usage:
    from notifications import NotificationSink, NotificationRequest

    sink = NotificationSink(session)
    sink.dispatch(
        NotificationRequest(
            user_address="0xabc...",
            type="deadline_reminder",
            title="Payment Reminder",
            message="Your escrow payment is still pending.",
            priority="high",
        ),
    )
"""

from .email_provider import (
    EmailProvider,
    EmailMessage,
    DeliveryResult,
    DeliveryStatus,
    NullEmailProvider,
    get_email_provider,
    set_email_provider,
)

from .email_templates import RenderedEmail

from .notification_sink import (
    DispatchOutcome,
    NotificationRequest,
    NotificationSink,
)

__all__ = [
    # Core interfaces
    "EmailProvider",
    "EmailMessage",
    "DeliveryResult",
    "DeliveryStatus",
    "NullEmailProvider",
    "get_email_provider",
    "set_email_provider",
    # Templates
    "RenderedEmail",
    # Sink
    "DispatchOutcome",
    "NotificationRequest",
    "NotificationSink",
]
