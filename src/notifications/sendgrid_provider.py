"""SendGrid v3 transport. Needs SENDGRID_API_KEY."""

import logging
import os
from typing import Optional

from config.settings import get_notification_settings

from .email_provider import DeliveryResult, EmailMessage, EmailProvider

logger = logging.getLogger(__name__)

ACCEPTED_STATUS_CODES = frozenset({200, 201, 202})
MAX_CATEGORIES = 10


class SendGridProvider(EmailProvider):

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        sender = get_notification_settings()
        self.api_key = api_key or os.environ.get("SENDGRID_API_KEY")
        self.from_email = from_email or sender.from_email
        self.from_name = from_name or sender.platform_name
        self._client = None

    @property
    def provider_name(self) -> str:
        return "sendgrid"

    @property
    def client(self):
        if self._client is None:
            from sendgrid import SendGridAPIClient
            self._client = SendGridAPIClient(api_key=self.api_key)
        return self._client

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_mail(self, message: EmailMessage):
        """Mail object for ``message``; email tags become SendGrid categories."""
        from sendgrid.helpers.mail import Category, Content, Email, Mail, ReplyTo, To

        mail = Mail(
            from_email=Email(message.from_email or self.from_email, message.from_name or self.from_name),
            to_emails=To(message.to),
            subject=message.subject,
        )
        for mime_type, body in (("text/plain", message.body_text), ("text/html", message.body_html)):
            if body:
                mail.add_content(Content(mime_type, body))
        if message.reply_to:
            mail.reply_to = ReplyTo(message.reply_to)
        for tag in message.tags[:MAX_CATEGORIES]:
            mail.add_category(Category(tag))
        return mail

    def send(self, message: EmailMessage) -> DeliveryResult:
        if not self.is_configured():
            return DeliveryResult.failure(
                self.provider_name, "SENDGRID_API_KEY is not set", error_code="NOT_CONFIGURED"
            )

        message.validate()

        try:
            response = self.client.send(self._build_mail(message))
        except Exception as e:
            # HTTP errors from the client carry the response status
            status_code = getattr(e, "status_code", None)
            logger.error(f"SendGrid rejected message to {message.to}: {e}")
            return DeliveryResult.failure(
                self.provider_name, str(e), error_code=str(status_code) if status_code else "SEND_ERROR"
            )

        if response.status_code not in ACCEPTED_STATUS_CODES:
            logger.error(f"SendGrid answered {response.status_code} for {message.to}")
            return DeliveryResult.failure(
                self.provider_name,
                f"Unexpected SendGrid status {response.status_code}",
                error_code=str(response.status_code),
            )

        message_id = response.headers.get("X-Message-Id", "")
        logger.info(f"[email:sendgrid] delivered to {message.to} ({message_id})")
        return DeliveryResult.sent(self.provider_name, message_id)
