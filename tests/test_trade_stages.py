"""Tests for next-action resolution and urgency classification."""

import doctest

import pytest

from trade import deadline_scanner
from trade.deadline_scanner import classify_urgency, days_until
from trade.enums import DealStage, Priority, ReminderTier, Role
from trade.stages import NEXT_ACTIONS, STAGE_LABELS, format_stage, resolve_next_action


class TestResolveNextAction:
    """Tests for the stage x role action table."""

    @pytest.mark.parametrize("stage", list(DealStage))
    @pytest.mark.parametrize("role", list(Role))
    def test_every_stage_and_role_resolves(self, stage, role):
        """Every combination should resolve without raising."""
        action = resolve_next_action(stage, role)
        assert action is None or isinstance(action, str)

    def test_table_covers_every_stage(self):
        assert set(NEXT_ACTIONS) == set(DealStage)
        assert set(STAGE_LABELS) == set(DealStage)

    @pytest.mark.parametrize("stage,role,expected", [
        (DealStage.AWAITING_PAYMENT, Role.BUYER, "Fund escrow"),
        (DealStage.AWAITING_PAYMENT, Role.SELLER, None),
        (DealStage.AWAITING_SHIPMENT, Role.SELLER, "Ship goods"),
        (DealStage.IN_TRANSIT, Role.BUYER, "Confirm receipt"),
        (DealStage.INSPECTION, Role.BUYER, "Complete inspection"),
        (DealStage.PENDING_APPROVAL, Role.BUYER, "Approve milestone"),
        (DealStage.COMPLETED, Role.BUYER, None),
        (DealStage.DISPUTED, Role.SELLER, None),
    ])
    def test_known_actions(self, stage, role, expected):
        assert resolve_next_action(stage, role) == expected

    def test_accepts_stored_string_values(self):
        assert resolve_next_action("awaiting_shipment", "seller") == "Ship goods"

    def test_unknown_stage_resolves_to_none(self, caplog):
        """An unrecognised stage should log a warning, not raise."""
        with caplog.at_level("WARNING"):
            assert resolve_next_action("on_hold", Role.BUYER) is None
        assert "on_hold" in caplog.text

    def test_unknown_role_resolves_to_none(self):
        assert resolve_next_action(DealStage.FUNDED, "broker") is None

    def test_format_stage(self):
        assert format_stage("awaiting_payment") == "Awaiting Payment"
        assert format_stage("on_hold") == "on_hold"


class TestClassifyUrgency:
    """Tests for mapping days-until-due onto tiers."""

    @pytest.mark.parametrize("days,expected", [
        (-2, (ReminderTier.ONE_DAY, Priority.CRITICAL)),
        (0, (ReminderTier.ONE_DAY, Priority.CRITICAL)),
        (1, (ReminderTier.ONE_DAY, Priority.CRITICAL)),
        (2, (ReminderTier.THREE_DAY, Priority.HIGH)),
        (3, (ReminderTier.THREE_DAY, Priority.HIGH)),
        (4, (ReminderTier.SEVEN_DAY, Priority.MEDIUM)),
        (7, (ReminderTier.SEVEN_DAY, Priority.MEDIUM)),
        (8, None),
        (30, None),
    ])
    def test_tier_boundaries(self, days, expected):
        assert classify_urgency(days) == expected

    def test_urgency_never_decreases_as_deadline_approaches(self):
        """Fewer days left should never give a lower priority."""
        order = [None, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]
        previous = 0
        for days in range(14, -3, -1):
            urgency = classify_urgency(days)
            rank = order.index(urgency[1] if urgency else None)
            assert rank >= previous
            previous = rank

    def test_custom_windows(self):
        assert classify_urgency(2, (2, 5, 10)) == (ReminderTier.ONE_DAY, Priority.CRITICAL)
        assert classify_urgency(9, (2, 5, 10)) == (ReminderTier.SEVEN_DAY, Priority.MEDIUM)

    def test_days_until_rounds_up(self):
        from datetime import datetime, timedelta

        now = datetime(2026, 3, 10, 9, 0)
        assert days_until(now + timedelta(days=2), now) == 2
        assert days_until(now + timedelta(days=1, hours=1), now) == 2
        assert days_until(now + timedelta(hours=3), now) == 1

    def test_doctests(self):
        failures, _ = doctest.testmod(deadline_scanner)
        assert failures == 0
