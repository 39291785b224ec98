"""Tests for the daily digest aggregator."""

from datetime import timedelta

import pytest

from notifications.notification_sink import NotificationSink
from trade.digest import DigestAggregator, DigestStats, derive_alerts
from trade.enums import Role
from tests.helpers.trade_data import (
    ADMIN,
    BUYER,
    NOW,
    SELLER,
    RecordingEmailProvider,
    notifications_for,
)


@pytest.fixture
def make_aggregator(db_session, notification_settings):
    def _make(provider=None):
        sink = NotificationSink(db_session, provider=provider or RecordingEmailProvider())
        return DigestAggregator(db_session, settings=notification_settings, sink=sink)
    return _make


class TestDeriveAlerts:
    """Tests for digest alert wording."""

    def test_no_alerts_when_nothing_pending(self):
        assert derive_alerts(0, 0, 0) == []

    def test_singular_and_plural(self):
        alerts = [a.message for a in derive_alerts(1, 2, 1)]
        assert alerts == [
            "You have 1 deal requiring your action",
            "2 deadlines coming up this week",
            "You have 1 active dispute",
        ]

    def test_should_send(self):
        assert DigestStats().should_send is False
        assert DigestStats(active_deals=1).should_send is True


class TestBuildStats:
    """Tests for per-user digest content."""

    def test_counts_for_buyer(self, seed, make_aggregator):
        seed.parties()
        awaiting = seed.deal(stage="awaiting_payment")
        funded = seed.deal(stage="funded")
        seed.deal(stage="completed")
        seed.milestone(funded, NOW + timedelta(days=3))
        seed.milestone(funded, NOW + timedelta(days=12))
        seed.dispute(awaiting, created_at=NOW - timedelta(days=1))
        seed.message(BUYER)
        seed.message(BUYER, read=True)

        stats = make_aggregator().build_stats(BUYER, NOW)

        assert stats.active_deals == 2
        assert stats.pending_actions == 1
        assert stats.upcoming_deadlines == 1
        assert stats.unread_messages == 1
        assert stats.active_disputes == 1
        assert [a.message for a in stats.alerts] == [
            "You have 1 deal requiring your action",
            "1 deadline coming up this week",
            "You have 1 active dispute",
        ]
        by_ref = {s.reference: s for s in stats.deal_summaries}
        assert by_ref[awaiting.reference].next_action == "Fund escrow"
        assert by_ref[awaiting.reference].role == Role.BUYER
        assert by_ref[funded.reference].next_action is None

    def test_seller_sees_shipping_action(self, seed, make_aggregator):
        seed.parties()
        seed.deal(stage="awaiting_shipment")

        stats = make_aggregator().build_stats(SELLER, NOW)

        assert stats.pending_actions == 1
        assert stats.deal_summaries[0].role == Role.SELLER
        assert stats.deal_summaries[0].next_action == "Ship goods"

    def test_address_matching_ignores_case(self, seed, make_aggregator):
        seed.parties()
        seed.deal(stage="in_transit", buyer=BUYER.upper().replace("0X", "0x"))

        stats = make_aggregator().build_stats(BUYER, NOW)

        assert stats.active_deals == 1
        assert stats.deal_summaries[0].next_action == "Confirm receipt"

    def test_recent_activity_is_capped_and_newest_first(self, seed, make_aggregator):
        seed.parties()
        deal = seed.deal()
        for hours in range(1, 13):
            seed.timeline(deal, NOW - timedelta(hours=hours), description=f"event {hours}")
        seed.timeline(deal, NOW - timedelta(hours=30), description="too old")

        stats = make_aggregator().build_stats(BUYER, NOW)

        assert len(stats.recent_activity) == 10
        assert stats.recent_activity[0].description == "event 1"
        assert stats.recent_activity[-1].description == "event 10"
        assert all(item.deal_reference == deal.reference for item in stats.recent_activity)


class TestDigestRun:
    """Tests for the full digest pass."""

    def test_user_with_nothing_to_report_is_suppressed(self, db_session, seed, make_aggregator, email_provider):
        seed.user(BUYER, email="buyer@example.com")

        result = make_aggregator(email_provider).run(NOW)

        assert result.users_checked == 1
        assert result.suppressed == 1
        assert result.sent == 0
        assert notifications_for(db_session, BUYER) == []
        assert email_provider.sent == []

    def test_opted_out_user_is_skipped(self, db_session, seed, make_aggregator, email_provider):
        seed.user(BUYER, email="buyer@example.com", digest=False)
        seed.user(SELLER, email="seller@example.com", digest=True)
        seed.deal(stage="awaiting_payment")

        result = make_aggregator(email_provider).run(NOW)

        assert result.opted_out == 1
        assert result.sent == 1
        assert notifications_for(db_session, BUYER) == []
        assert email_provider.recipients() == ["seller@example.com"]

    def test_digest_notification_and_email(self, db_session, seed, make_aggregator, email_provider):
        seed.parties()
        deal = seed.deal(stage="awaiting_payment", title="Copper cathodes")

        result = make_aggregator(email_provider).run(NOW)

        # buyer and seller have a deal; the admin has nothing to report
        assert result.sent == 2
        assert result.suppressed == 1

        note = notifications_for(db_session, BUYER, "daily_digest")[0]
        assert note.title == "Your Daily Summary"
        assert note.priority == "low"
        assert note.action_url == "https://app.example.com/dashboard"
        assert note.data["pendingActions"] == 1
        assert note.data["alerts"] == ["You have 1 deal requiring your action"]

        email = next(m for m in email_provider.sent if m.to == "buyer@example.com")
        assert email.subject == "Your Daily RWA Platform Summary - 2026-03-10"
        assert deal.reference in email.body_html
        assert "Copper cathodes" in email.body_html
        assert "Action needed: Fund escrow" in email.body_html
        assert "https://app.example.com/settings/notifications" in email.body_html
        assert notifications_for(db_session, ADMIN) == []

    def test_email_failure_keeps_in_app_digest(self, db_session, seed, make_aggregator):
        seed.parties()
        seed.deal(stage="funded")

        result = make_aggregator(RecordingEmailProvider(fail=True)).run(NOW)

        assert result.sent == 2
        assert result.failed == 0
        assert len(notifications_for(db_session, SELLER, "daily_digest")) == 1

    def test_one_failing_user_does_not_stop_the_run(self, db_session, seed, make_aggregator, monkeypatch):
        seed.parties()
        seed.deal(stage="funded")
        aggregator = make_aggregator()
        original = aggregator.build_stats

        def flaky(address, now):
            if address == BUYER:
                raise RuntimeError("deal store timeout")
            return original(address, now)

        monkeypatch.setattr(aggregator, "build_stats", flaky)

        result = aggregator.run(NOW)

        assert result.failed == 1
        assert result.sent == 1
        assert result.errors[0]["user"] == BUYER
        assert len(notifications_for(db_session, SELLER, "daily_digest")) == 1
