"""Tests for transactional email rendering."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from notifications.email_templates import (
    countdown_label,
    format_amount,
    format_relative_time,
    render_deadline_reminder,
    render_dispute_notice,
    shorten_address,
)


NOW = datetime(2026, 3, 10, 9, 0)


class TestFormatting:
    """Tests for the small formatting helpers."""

    @pytest.mark.parametrize("amount,expected", [
        (Decimal("48000.00"), "$48,000"),
        (Decimal("1234.5"), "$1,234.50"),
        (7, "$7"),
        (None, "N/A"),
    ])
    def test_format_amount(self, amount, expected):
        assert format_amount(amount) == expected

    @pytest.mark.parametrize("delta,expected", [
        (timedelta(minutes=20), "Just now"),
        (timedelta(hours=1, minutes=5), "1 hour ago"),
        (timedelta(hours=5), "5 hours ago"),
        (timedelta(days=2), "Mar 08, 2026"),
    ])
    def test_format_relative_time(self, delta, expected):
        assert format_relative_time(NOW - delta, NOW) == expected

    def test_countdown_label(self):
        assert countdown_label(-1) == "OVERDUE"
        assert countdown_label(0) == "OVERDUE"
        assert countdown_label(1) == "Due Tomorrow"
        assert countdown_label(4) == "4 Days Left"

    def test_shorten_address(self):
        assert shorten_address("0x1234567890abcdef1234") == "0x1234...1234"
        assert shorten_address("0xabc") == "0xabc"


class TestRenderers:
    """Tests for the rendered bodies."""

    def test_deadline_reminder(self):
        email = render_deadline_reminder(
            platform_name="RWA Platform",
            subject="Milestone Due in 2 Days - DEAL-0001",
            urgency="high",
            days_until_due=2,
            deal_reference="DEAL-0001",
            deal_title="Warehouse <lease>",
            action_required="Deliver inspection report",
            due_date=NOW + timedelta(days=2),
            action_url="https://app.example.com/trade/deals/1",
            amount=Decimal("5000"),
        )

        assert email.subject == "Milestone Due in 2 Days - DEAL-0001"
        assert "2 Days Left" in email.body_html
        assert "#f97316" in email.body_html
        assert "Warehouse &lt;lease&gt;" in email.body_html
        assert "Amount: $5,000" in email.body_text
        assert "Due Date: March 12, 2026" in email.body_text
        assert "RWA Platform - Secure Real-World Asset Trading" in email.body_html

    def test_dispute_notice_escapes_user_text(self):
        email = render_dispute_notice(
            platform_name="RWA Platform",
            subject="Dispute Filed: DEAL-0001",
            heading="Dispute Filed Against You",
            accent="#f97316",
            recipient_name="Sam <Seller>",
            message='A dispute has been filed for deal DEAL-0001: "<script>"',
            details=[("Reason", "<script>alert(1)</script>")],
            action_url="https://app.example.com/trade/disputes/1",
            closing="Please respond promptly.",
        )

        assert "<script>" not in email.body_html
        assert "Hi Sam &lt;Seller&gt;," in email.body_html
        assert "Reason: <script>alert(1)</script>" in email.body_text
        assert email.body_text.endswith("View Dispute: https://app.example.com/trade/disputes/1")
