"""
Closed vocabularies for the trade deal lifecycle.

Values match what the deal workflow stores, so members can be compared
directly against column values read from the database.
"""

from enum import Enum


class DealStage(str, Enum):
    """Lifecycle stage of a trade deal."""
    DRAFT = "draft"
    AWAITING_PAYMENT = "awaiting_payment"
    FUNDED = "funded"
    AWAITING_SHIPMENT = "awaiting_shipment"
    IN_TRANSIT = "in_transit"
    INSPECTION = "inspection"
    PENDING_APPROVAL = "pending_approval"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


# Stages after which a deal no longer produces reminders or digest entries
CLOSED_STAGES = frozenset({DealStage.COMPLETED, DealStage.CANCELLED})


class Role(str, Enum):
    """Party role on a deal."""
    BUYER = "buyer"
    SELLER = "seller"


class MilestoneStatus(str, Enum):
    """Milestone status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


OPEN_MILESTONE_STATUSES = (MilestoneStatus.PENDING, MilestoneStatus.IN_PROGRESS)


class DisputeStatus(str, Enum):
    """Dispute status."""
    PENDING = "pending"
    MEDIATION = "mediation"
    ARBITRATION = "arbitration"
    RESOLVED = "resolved"


ACTIVE_DISPUTE_STATUSES = (
    DisputeStatus.PENDING,
    DisputeStatus.MEDIATION,
    DisputeStatus.ARBITRATION,
)


class Ruling(str, Enum):
    """Outcome of a resolved dispute."""
    BUYER = "buyer"
    SELLER = "seller"
    SPLIT = "split"


class DisputeTransition(str, Enum):
    """Workflow events published for a dispute."""
    OPENED = "opened"
    MEDIATION = "mediation"
    ARBITRATION = "arbitration"
    RESOLVED = "resolved"
    EVIDENCE_SUBMITTED = "evidence_submitted"


class Priority(str, Enum):
    """Notification priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReminderTier(str, Enum):
    """Urgency bucket used as the third part of a reminder ledger key."""
    ONE_DAY = "1day"
    THREE_DAY = "3day"
    SEVEN_DAY = "7day"
    RESPONSE = "response"


class NotificationType(str, Enum):
    """Type tag stored on every in-app notification."""
    DEADLINE_REMINDER = "deadline_reminder"
    DAILY_DIGEST = "daily_digest"
    DISPUTE_OPENED = "dispute_opened"
    ADMIN_DISPUTE_ALERT = "admin_dispute_alert"
    DISPUTE_MEDIATION = "dispute_mediation"
    DISPUTE_ARBITRATION = "dispute_arbitration"
    DISPUTE_RESOLVED = "dispute_resolved"
    DISPUTE_EVIDENCE = "dispute_evidence"
