"""
SQLAlchemy ORM Models for the deal notification engine.

Tables fall into two groups:

- Read-only projections of stores owned by the trade workflow and the
  identity service: users, notification_preferences, deals, milestones,
  disputes, messages and deal_timeline. The engine never writes these.
- Tables owned by the engine: notifications (in-app inbox rows) and
  reminder_log (the deduplication ledger for deadline reminders).

Stage and status columns hold the string values of the enums in
``trade.enums``; wallet addresses are compared case-insensitively.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime, Text,
    ForeignKey, Index, UniqueConstraint, JSON
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from trade.enums import DealStage, DisputeStatus, MilestoneStatus, Priority


# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        return dialect.type_descriptor(JSON())


Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# IDENTITY STORE (read-only)
# =============================================================================

class UserDB(Base):
    """Platform user keyed by wallet address."""
    __tablename__ = "users"

    wallet_address = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<User(wallet_address={self.wallet_address}, role={self.role})>"


class NotificationPreferenceDB(Base):
    """Per-user notification preferences."""
    __tablename__ = "notification_preferences"

    wallet_address = Column(String(64), primary_key=True)
    # {"emailDigest": bool, ...}
    global_settings = Column(JSONB, nullable=False, default=dict)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# =============================================================================
# DEAL STORE (read-only)
# =============================================================================

class DealDB(Base):
    """Trade deal between a buyer and a seller."""
    __tablename__ = "deals"

    id = Column(String(64), primary_key=True, default=_new_id)
    reference = Column(String(64), nullable=False, unique=True)
    title = Column(String(255), nullable=False, default="")
    buyer_address = Column(String(64), nullable=False)
    seller_address = Column(String(64), nullable=False)
    total_amount = Column(Numeric(20, 2), nullable=False, default=0)
    stage = Column(String(32), nullable=False, default=DealStage.DRAFT.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    milestones = relationship("MilestoneDB", back_populates="deal", lazy="selectin")
    disputes = relationship("DisputeDB", back_populates="deal")

    __table_args__ = (
        Index("ix_deals_stage_created", "stage", "created_at"),
        Index("ix_deals_buyer", "buyer_address"),
        Index("ix_deals_seller", "seller_address"),
    )

    def __repr__(self):
        return f"<Deal(reference={self.reference}, stage={self.stage})>"


class MilestoneDB(Base):
    """Deliverable of a deal with its own due date and amount."""
    __tablename__ = "milestones"

    id = Column(String(64), primary_key=True, default=_new_id)
    deal_id = Column(String(64), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    due_date = Column(DateTime, nullable=False)
    amount = Column(Numeric(20, 2), nullable=True)
    status = Column(String(20), nullable=False, default=MilestoneStatus.PENDING.value)

    deal = relationship("DealDB", back_populates="milestones")

    __table_args__ = (
        Index("ix_milestones_status_due", "status", "due_date"),
        Index("ix_milestones_deal", "deal_id"),
    )


class DisputeDB(Base):
    """Dispute raised by one party of a deal against the other."""
    __tablename__ = "disputes"

    id = Column(String(64), primary_key=True, default=_new_id)
    deal_id = Column(String(64), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    filed_by = Column(String(64), nullable=False)
    respondent = Column(String(64), nullable=False)
    reason = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default=DisputeStatus.PENDING.value)
    ruling = Column(String(10), nullable=True)
    resolution = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    deal = relationship("DealDB", back_populates="disputes")

    __table_args__ = (
        Index("ix_disputes_status_created", "status", "created_at"),
    )


class MessageDB(Base):
    """Direct message between deal parties."""
    __tablename__ = "messages"

    id = Column(String(64), primary_key=True, default=_new_id)
    deal_id = Column(String(64), nullable=True)
    sender = Column(String(64), nullable=False)
    recipient = Column(String(64), nullable=False)
    content = Column(Text, nullable=False, default="")
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_messages_recipient_read", "recipient", "read"),
    )


class DealTimelineDB(Base):
    """Activity event recorded against a deal."""
    __tablename__ = "deal_timeline"

    id = Column(String(64), primary_key=True, default=_new_id)
    deal_id = Column(String(64), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(64), nullable=False)
    description = Column(Text, nullable=False, default="")
    actor = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_deal_timeline_deal_created", "deal_id", "created_at"),
    )


# =============================================================================
# ENGINE-OWNED TABLES
# =============================================================================

class NotificationDB(Base):
    """In-app notification. Only the inbox read path flips ``read``."""
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, default=_new_id)
    user_address = Column(String(64), nullable=False)
    type = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default=Priority.MEDIUM.value)
    action_url = Column(String(512), nullable=True)
    data = Column(JSONB, nullable=False, default=dict)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_address", "created_at"),
    )

    def __repr__(self):
        return f"<Notification(user={self.user_address}, type={self.type}, priority={self.priority})>"


class ReminderLogDB(Base):
    """
    Deduplication ledger for deadline reminders.

    One row per (deal, item, tier). The unique constraint is the commit
    point of a reminder dispatch; rows are never updated or deleted here.
    """
    __tablename__ = "reminder_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deal_id = Column(String(64), nullable=False)
    item_id = Column(String(64), nullable=False)
    reminder_type = Column(String(20), nullable=False)
    sent_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("deal_id", "item_id", "reminder_type", name="uq_reminder_log_key"),
    )

    def __repr__(self):
        return f"<ReminderLog(deal={self.deal_id}, item={self.item_id}, tier={self.reminder_type})>"
