"""
Plain SMTP relay transport.

Environment:
    SMTP_HOST, SMTP_PORT (587)
    SMTP_USERNAME, SMTP_PASSWORD    login is skipped unless both are set
    SMTP_USE_TLS (true)             STARTTLS after connecting
    SMTP_USE_SSL (false)            implicit TLS, normally port 465
    SMTP_TIMEOUT (10)               socket timeout in seconds
"""

import logging
import os
import smtplib
import ssl
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from config.settings import get_notification_settings

from .email_provider import DeliveryResult, DeliveryStatus, EmailMessage, EmailProvider

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    return default if raw is None else raw.strip().lower() in _TRUTHY


def _is_safe_header(key: str, value: str) -> bool:
    return not any(ch in f"{key}{value}" for ch in "\r\n")


class SMTPProvider(EmailProvider):
    """Delivers through an SMTP relay, one connection per message."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        use_ssl: Optional[bool] = None,
        timeout: Optional[float] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        env = os.environ
        sender = get_notification_settings()
        self.host = host or env.get("SMTP_HOST")
        self.port = port or int(env.get("SMTP_PORT", "587"))
        self.username = username or env.get("SMTP_USERNAME")
        self.password = password or env.get("SMTP_PASSWORD")
        self.use_tls = _env_flag("SMTP_USE_TLS", True) if use_tls is None else use_tls
        self.use_ssl = _env_flag("SMTP_USE_SSL", False) if use_ssl is None else use_ssl
        self.timeout = timeout or float(env.get("SMTP_TIMEOUT", "10"))
        self.from_email = from_email or sender.from_email
        self.from_name = from_name or sender.platform_name

    @property
    def provider_name(self) -> str:
        return "smtp"

    def is_configured(self) -> bool:
        return bool(self.host)

    def _connect(self) -> smtplib.SMTP:
        tls_context = ssl.create_default_context()
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=tls_context)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.use_tls:
                server.starttls(context=tls_context)
        if self.username and self.password:
            server.login(self.username, self.password)
        return server

    def _build_mime(self, message: EmailMessage, from_email: str) -> MIMEMultipart:
        """Multipart/alternative with text first; headers carrying CR or LF are dropped."""
        mime = MIMEMultipart("alternative")
        mime["From"] = formataddr((message.from_name or self.from_name, from_email))
        mime["To"] = message.to
        mime["Subject"] = message.subject
        if message.reply_to:
            mime["Reply-To"] = message.reply_to

        for key, value in message.headers.items():
            if _is_safe_header(str(key), str(value)):
                mime[key] = value
            else:
                logger.warning(f"Dropping header {key!r} for {message.to}: contains a line break")

        for body, subtype in ((message.body_text, "plain"), (message.body_html, "html")):
            if body:
                mime.attach(MIMEText(body, subtype, "utf-8"))
        return mime

    def send(self, message: EmailMessage) -> DeliveryResult:
        if not self.is_configured():
            return DeliveryResult.failure(
                self.provider_name, "SMTP_HOST is not set", error_code="NOT_CONFIGURED"
            )

        message.validate()
        from_email = message.from_email or self.from_email

        try:
            payload = self._build_mime(message, from_email).as_string()
            with self._connect() as server:
                server.sendmail(from_email, [message.to], payload)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP login rejected by {self.host}: {e}")
            return DeliveryResult.failure(self.provider_name, str(e), error_code="AUTH_ERROR")
        except smtplib.SMTPRecipientsRefused as e:
            logger.warning(f"SMTP relay refused {message.to}: {e.recipients}")
            return DeliveryResult.failure(
                self.provider_name,
                f"Recipient refused: {message.to}",
                error_code="RECIPIENTS_REFUSED",
                status=DeliveryStatus.BOUNCED,
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP delivery to {message.to} via {self.host} failed: {e}")
            return DeliveryResult.failure(self.provider_name, str(e), error_code="SMTP_ERROR")

        logger.info(f"[email:smtp] delivered to {message.to}")
        return DeliveryResult.sent(self.provider_name, f"smtp-{uuid.uuid4()}")
