"""
Pytest fixtures for notification tests.

Provides:
- A sample outbound email message
- Provider environment isolation
"""

import pytest

from notifications.email_provider import EmailMessage


PROVIDER_ENV_VARS = (
    "EMAIL_PROVIDER",
    "SENDGRID_API_KEY",
    "AWS_SES_REGION",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USERNAME",
    "SMTP_PASSWORD",
    "SMTP_USE_TLS",
    "SMTP_USE_SSL",
)


@pytest.fixture
def clean_provider_env(monkeypatch):
    """Remove every variable that influences provider detection."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def sample_email_message():
    """Create a sample reminder email."""
    return EmailMessage(
        to="seller@example.com",
        subject="Milestone Due in 2 Days - DEAL-0001",
        body_text="2 Days Left\n\nDeal: DEAL-0001",
        body_html="<html><body><p>2 Days Left</p></body></html>",
        reply_to="support@rwa-platform.com",
        tags=["deadline_reminder"],
    )
