"""Tests for dispute transition fan-out."""

from datetime import timedelta
from decimal import Decimal

import pytest

from notifications.notification_sink import NotificationSink
from trade.dispute_notifier import (
    LOSS_MESSAGE,
    SPLIT_MESSAGE,
    WIN_MESSAGE,
    DisputeEscalationNotifier,
    DisputeTransitionEvent,
    is_winner,
)
from trade.enums import DisputeTransition, Ruling
from trade.exceptions import InvalidDisputeEventError
from tests.helpers.trade_data import (
    ADMIN,
    ADMIN_2,
    BUYER,
    NOW,
    SELLER,
    RecordingEmailProvider,
    notifications_for,
)


@pytest.fixture
def notifier(db_session, notification_settings, email_provider):
    sink = NotificationSink(db_session, provider=email_provider)
    return DisputeEscalationNotifier(db_session, settings=notification_settings, sink=sink)


@pytest.fixture
def disputed_deal(seed):
    seed.parties()
    seed.user(ADMIN_2, email="ops@example.com", role="admin")
    deal = seed.deal(stage="disputed", amount="48000")
    dispute = seed.dispute(deal, created_at=NOW - timedelta(hours=1))
    return deal, dispute


def make_event(deal, dispute, transition, **extra):
    return DisputeTransitionEvent(
        transition=transition,
        dispute_id=dispute.id,
        deal_id=deal.id,
        filed_by=BUYER,
        respondent=SELLER,
        reason="Goods not as described",
        **extra,
    )


class TestIsWinner:
    """Tests for ruling personalisation."""

    def test_buyer_ruling_favours_filer(self):
        assert is_winner(Ruling.BUYER, BUYER, BUYER, SELLER) is True
        assert is_winner(Ruling.BUYER, SELLER, BUYER, SELLER) is False

    def test_seller_ruling_favours_respondent(self):
        assert is_winner(Ruling.SELLER, SELLER, BUYER, SELLER) is True
        assert is_winner(Ruling.SELLER, BUYER, BUYER, SELLER) is False

    def test_split_is_never_a_loss(self):
        assert is_winner(Ruling.SPLIT, BUYER, BUYER, SELLER) is True
        assert is_winner(Ruling.SPLIT, SELLER, BUYER, SELLER) is True

    def test_comparison_ignores_case(self):
        assert is_winner(Ruling.BUYER, BUYER.upper(), BUYER, SELLER) is True


class TestFromDict:
    """Tests for parsing workflow payloads."""

    def test_camel_case_payload(self):
        event = DisputeTransitionEvent.from_dict({
            "transition": "resolved",
            "disputeId": "d-1",
            "dealId": "deal-1",
            "filedBy": BUYER,
            "respondent": SELLER,
            "ruling": "split",
            "amount": 1200.5,
        })

        assert event.transition == DisputeTransition.RESOLVED
        assert event.dispute_id == "d-1"
        assert event.ruling == Ruling.SPLIT
        assert event.amount == Decimal("1200.5")

    def test_snake_case_payload(self):
        event = DisputeTransitionEvent.from_dict({
            "transition": "evidence_submitted",
            "dispute_id": "d-1",
            "deal_id": "deal-1",
            "filed_by": BUYER,
            "respondent": SELLER,
            "submitted_by": SELLER,
            "evidence_type": "photo",
        })

        assert event.submitted_by == SELLER
        assert event.evidence_type == "photo"

    @pytest.mark.parametrize("payload", [
        {"transition": "appealed", "disputeId": "d", "dealId": "x", "filedBy": BUYER, "respondent": SELLER},
        {"transition": "opened", "dealId": "x", "filedBy": BUYER, "respondent": SELLER},
        {"transition": "resolved", "disputeId": "d", "dealId": "x", "filedBy": BUYER,
         "respondent": SELLER, "ruling": "draw"},
        {"transition": "opened", "disputeId": "d", "dealId": "x", "filedBy": BUYER,
         "respondent": SELLER, "amount": "n/a"},
        {"transition": "opened", "disputeId": "d", "dealId": "x", "filedBy": BUYER,
         "respondent": SELLER, "amount": "NaN"},
    ])
    def test_invalid_payloads_raise(self, payload):
        with pytest.raises(InvalidDisputeEventError):
            DisputeTransitionEvent.from_dict(payload)


class TestFanout:
    """Tests for per-transition recipients."""

    def test_opened_notifies_respondent_filer_and_admins(self, db_session, notifier, disputed_deal, email_provider):
        deal, dispute = disputed_deal

        result = notifier.handle(make_event(deal, dispute, DisputeTransition.OPENED))

        assert sorted(result.notified) == sorted([SELLER, BUYER, ADMIN, ADMIN_2])
        respondent_note = notifications_for(db_session, SELLER)[0]
        assert respondent_note.type == "dispute_opened"
        assert respondent_note.priority == "high"
        assert "Goods not as described" in respondent_note.message

        filer_note = notifications_for(db_session, BUYER)[0]
        assert filer_note.title == "Dispute Submitted"
        assert filer_note.priority == "medium"

        admin_note = notifications_for(db_session, ADMIN)[0]
        assert admin_note.type == "admin_dispute_alert"
        assert admin_note.priority == "high"
        assert "$48,000" in admin_note.message
        assert admin_note.action_url == f"https://app.example.com/admin/disputes/{dispute.id}"
        assert sorted(email_provider.recipients()) == sorted([
            "seller@example.com", "buyer@example.com", "admin@example.com", "ops@example.com",
        ])

    def test_admin_party_gets_only_party_notice(self, db_session, seed, notifier):
        seed.parties()
        deal = seed.deal(stage="disputed", seller=ADMIN, amount="48000")
        dispute = seed.dispute(deal, created_at=NOW, respondent=ADMIN)
        event = DisputeTransitionEvent(
            transition=DisputeTransition.OPENED,
            dispute_id=dispute.id,
            deal_id=deal.id,
            filed_by=BUYER,
            respondent=ADMIN,
            reason="Goods not as described",
        )

        result = notifier.handle(event)

        assert sorted(result.notified) == sorted([ADMIN, BUYER])
        admin_notes = notifications_for(db_session, ADMIN)
        assert [n.type for n in admin_notes] == ["dispute_opened"]

    @pytest.mark.parametrize("transition,priority,type_", [
        (DisputeTransition.MEDIATION, "medium", "dispute_mediation"),
        (DisputeTransition.ARBITRATION, "high", "dispute_arbitration"),
    ])
    def test_escalations_notify_both_parties(self, db_session, notifier, disputed_deal, transition, priority, type_):
        deal, dispute = disputed_deal

        result = notifier.handle(make_event(deal, dispute, transition))

        assert result.notified == [BUYER, SELLER]
        for party in (BUYER, SELLER):
            notes = notifications_for(db_session, party, type_)
            assert len(notes) == 1
            assert notes[0].priority == priority
        assert notifications_for(db_session, ADMIN) == []

    def test_arbitration_message_mentions_binding_decision(self, db_session, notifier, disputed_deal):
        deal, dispute = disputed_deal
        notifier.handle(make_event(deal, dispute, DisputeTransition.ARBITRATION))

        assert "binding decision" in notifications_for(db_session, SELLER)[0].message

    def test_split_ruling_is_split_for_both(self, db_session, notifier, disputed_deal):
        deal, dispute = disputed_deal

        notifier.handle(make_event(deal, dispute, DisputeTransition.RESOLVED, ruling=Ruling.SPLIT))

        for party in (BUYER, SELLER):
            note = notifications_for(db_session, party, "dispute_resolved")[0]
            assert SPLIT_MESSAGE in note.message
            assert note.data["outcome"] == "split"
            assert LOSS_MESSAGE not in note.message

    def test_seller_ruling(self, db_session, notifier, disputed_deal):
        deal, dispute = disputed_deal

        notifier.handle(make_event(deal, dispute, DisputeTransition.RESOLVED, ruling=Ruling.SELLER))

        assert notifications_for(db_session, SELLER)[0].data["outcome"] == "won"
        assert notifications_for(db_session, BUYER)[0].data["outcome"] == "lost"

    def test_resolved_without_ruling_is_skipped(self, db_session, notifier, disputed_deal):
        deal, dispute = disputed_deal

        result = notifier.handle(make_event(deal, dispute, DisputeTransition.RESOLVED))

        assert result.notified == []
        assert "no ruling" in result.skipped_reason
        assert notifications_for(db_session, BUYER) == []

    def test_evidence_goes_to_the_other_party(self, db_session, notifier, disputed_deal, email_provider):
        deal, dispute = disputed_deal

        result = notifier.handle(make_event(
            deal, dispute, DisputeTransition.EVIDENCE_SUBMITTED,
            submitted_by=BUYER, evidence_type="photo",
        ))

        assert result.notified == [SELLER]
        note = notifications_for(db_session, SELLER)[0]
        assert note.type == "dispute_evidence"
        assert note.priority == "medium"
        assert note.message.startswith("New photo evidence has been submitted")
        assert notifications_for(db_session, BUYER) == []
        assert email_provider.recipients() == ["seller@example.com"]

    def test_evidence_from_outside_party_goes_to_both(self, notifier, disputed_deal):
        deal, dispute = disputed_deal

        result = notifier.handle(make_event(
            deal, dispute, DisputeTransition.EVIDENCE_SUBMITTED, submitted_by=ADMIN,
        ))

        assert result.notified == [BUYER, SELLER]

    def test_unknown_deal_is_skipped(self, db_session, notifier, disputed_deal):
        deal, dispute = disputed_deal
        event = make_event(deal, dispute, DisputeTransition.MEDIATION)
        event.deal_id = "missing-deal"

        result = notifier.handle(event)

        assert result.notified == []
        assert "not found" in result.skipped_reason

    def test_one_failed_recipient_does_not_block_others(self, db_session, notification_settings, disputed_deal):
        deal, dispute = disputed_deal
        provider = RecordingEmailProvider()
        sink = NotificationSink(db_session, provider=provider)
        notifier = DisputeEscalationNotifier(db_session, settings=notification_settings, sink=sink)
        original = sink.send_email

        def fail_for_seller(subject, html, recipient_email, text=None, tags=None):
            if recipient_email == "seller@example.com":
                return False
            return original(subject, html, recipient_email, text=text, tags=tags)

        sink.send_email = fail_for_seller

        result = notifier.handle(make_event(deal, dispute, DisputeTransition.MEDIATION))

        assert result.failed == [SELLER]
        assert result.notified == [BUYER]
        assert provider.recipients() == ["buyer@example.com"]


class TestResolvedMessages:
    """Tests for ruling message text."""

    def test_message_constants(self):
        assert WIN_MESSAGE == "The ruling was in your favor."
        assert LOSS_MESSAGE == "The ruling was in favor of the other party."
        assert SPLIT_MESSAGE == "Funds have been split between both parties."
