"""
Test data helpers for the notification engine.

Provides a fixed clock, wallet addresses, an email provider that records
what it sends, and a Seeder that writes rows into the stores the engine
reads from.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from database.models import (
    DealDB,
    DealTimelineDB,
    DisputeDB,
    MessageDB,
    MilestoneDB,
    NotificationDB,
    NotificationPreferenceDB,
    ReminderLogDB,
    UserDB,
)
from notifications.email_provider import (
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    EmailProvider,
)

# Fixed clock used across scanner, digest and dispute tests
NOW = datetime(2026, 3, 10, 9, 0, 0)

BUYER = "0xb0b0000000000000000000000000000000000001"
SELLER = "0x5e11000000000000000000000000000000000002"
ADMIN = "0xad00000000000000000000000000000000000003"
ADMIN_2 = "0xad00000000000000000000000000000000000004"


class RecordingEmailProvider(EmailProvider):
    """Email provider that keeps every message and can be told to fail."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.sent: List[EmailMessage] = []

    @property
    def provider_name(self) -> str:
        return "recording"

    def is_configured(self) -> bool:
        return True

    def send(self, message: EmailMessage) -> DeliveryResult:
        if self.raise_error:
            raise ConnectionError("mail relay unreachable")
        if self.fail:
            return DeliveryResult.failure(self.provider_name, "rejected by test")
        self.sent.append(message)
        return DeliveryResult(
            success=True,
            status=DeliveryStatus.SENT,
            message_id=f"rec-{len(self.sent)}",
            provider=self.provider_name,
        )

    def recipients(self) -> List[str]:
        return [message.to for message in self.sent]


class Seeder:
    """Inserts rows into the read-only stores the engine queries."""

    def __init__(self, session):
        self.session = session
        self._deal_counter = 0

    def user(self, address: str, email: Optional[str] = None, name: Optional[str] = None,
             role: str = "user", digest: Optional[bool] = None) -> UserDB:
        user = UserDB(wallet_address=address, email=email, name=name, role=role)
        self.session.add(user)
        if digest is not None:
            self.session.add(NotificationPreferenceDB(
                wallet_address=address,
                global_settings={"emailDigest": digest},
            ))
        self.session.commit()
        return user

    def parties(self, with_email: bool = True) -> None:
        """Buyer and seller of the default deals, plus one admin."""
        self.user(BUYER, email="buyer@example.com" if with_email else None, name="Bea Buyer")
        self.user(SELLER, email="seller@example.com" if with_email else None, name="Sam Seller")
        self.user(ADMIN, email="admin@example.com", name="Ada Admin", role="admin")

    def deal(self, stage: str = "funded", buyer: str = BUYER, seller: str = SELLER,
             created_at: Optional[datetime] = None, amount: str = "25000",
             title: str = "Warehouse lease") -> DealDB:
        self._deal_counter += 1
        deal = DealDB(
            reference=f"DEAL-{self._deal_counter:04d}",
            title=title,
            buyer_address=buyer,
            seller_address=seller,
            total_amount=Decimal(amount),
            stage=stage,
            created_at=created_at or NOW - timedelta(days=10),
        )
        self.session.add(deal)
        self.session.commit()
        return deal

    def milestone(self, deal: DealDB, due_date: datetime, status: str = "pending",
                  title: str = "Deliver inspection report", amount: Optional[str] = "5000") -> MilestoneDB:
        milestone = MilestoneDB(
            deal_id=deal.id,
            title=title,
            due_date=due_date,
            amount=Decimal(amount) if amount else None,
            status=status,
        )
        self.session.add(milestone)
        self.session.commit()
        return milestone

    def dispute(self, deal: DealDB, created_at: datetime, status: str = "pending",
                filed_by: str = BUYER, respondent: str = SELLER) -> DisputeDB:
        dispute = DisputeDB(
            deal_id=deal.id,
            filed_by=filed_by,
            respondent=respondent,
            reason="Goods not as described",
            status=status,
            created_at=created_at,
        )
        self.session.add(dispute)
        self.session.commit()
        return dispute

    def message(self, recipient: str, read: bool = False, sender: str = SELLER) -> MessageDB:
        message = MessageDB(sender=sender, recipient=recipient, content="hi", read=read)
        self.session.add(message)
        self.session.commit()
        return message

    def timeline(self, deal: DealDB, created_at: datetime, description: str = "Status updated",
                 event_type: str = "status_change") -> DealTimelineDB:
        event = DealTimelineDB(
            deal_id=deal.id,
            event_type=event_type,
            description=description,
            created_at=created_at,
        )
        self.session.add(event)
        self.session.commit()
        return event


def notifications_for(session, address: str, type: Optional[str] = None) -> List[NotificationDB]:
    """In-app notifications stored for ``address``, oldest first."""
    query = session.query(NotificationDB).filter(NotificationDB.user_address == address.lower())
    if type:
        query = query.filter(NotificationDB.type == type)
    return query.order_by(NotificationDB.created_at, NotificationDB.id).all()


def ledger_rows(session) -> List[ReminderLogDB]:
    return session.query(ReminderLogDB).order_by(ReminderLogDB.id).all()
