"""
Deal Snapshot Reader and User Directory.

Read-only projections of the deal store and the identity store. Queries
return frozen dataclasses detached from the session, so callers can keep
them after a rollback. Nothing in this module writes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from database.models import (
    DealDB,
    DealTimelineDB,
    DisputeDB,
    MessageDB,
    MilestoneDB,
    NotificationPreferenceDB,
    UserDB,
)

from .enums import (
    ACTIVE_DISPUTE_STATUSES,
    CLOSED_STAGES,
    OPEN_MILESTONE_STATUSES,
    DealStage,
    DisputeStatus,
    Role,
)

logger = logging.getLogger(__name__)

_CLOSED_STAGE_VALUES = [stage.value for stage in CLOSED_STAGES]


def normalize_address(address: str) -> str:
    return address.strip().lower()


# =============================================================================
# SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class DealSnapshot:
    """Point-in-time view of a deal."""
    id: str
    reference: str
    title: str
    buyer_address: str
    seller_address: str
    total_amount: Decimal
    stage: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: DealDB) -> "DealSnapshot":
        return cls(
            id=row.id,
            reference=row.reference,
            title=row.title or "",
            buyer_address=row.buyer_address,
            seller_address=row.seller_address,
            total_amount=Decimal(row.total_amount or 0),
            stage=row.stage,
            created_at=row.created_at,
        )

    def role_of(self, address: str) -> Optional[Role]:
        """Role ``address`` plays on this deal, or None if not a party."""
        address = normalize_address(address)
        if normalize_address(self.buyer_address) == address:
            return Role.BUYER
        if normalize_address(self.seller_address) == address:
            return Role.SELLER
        return None

    def party(self, role: Role) -> str:
        return self.buyer_address if role == Role.BUYER else self.seller_address


@dataclass(frozen=True)
class MilestoneSnapshot:
    id: str
    deal_id: str
    title: str
    due_date: datetime
    amount: Optional[Decimal]
    status: str
    deal: DealSnapshot

    @classmethod
    def from_row(cls, row: MilestoneDB) -> "MilestoneSnapshot":
        return cls(
            id=row.id,
            deal_id=row.deal_id,
            title=row.title,
            due_date=row.due_date,
            amount=Decimal(row.amount) if row.amount is not None else None,
            status=row.status,
            deal=DealSnapshot.from_row(row.deal),
        )


@dataclass(frozen=True)
class DisputeSnapshot:
    id: str
    deal_id: str
    filed_by: str
    respondent: str
    reason: str
    status: str
    ruling: Optional[str]
    created_at: datetime
    deal: DealSnapshot

    @classmethod
    def from_row(cls, row: DisputeDB) -> "DisputeSnapshot":
        return cls(
            id=row.id,
            deal_id=row.deal_id,
            filed_by=row.filed_by,
            respondent=row.respondent,
            reason=row.reason or "",
            status=row.status,
            ruling=row.ruling,
            created_at=row.created_at,
            deal=DealSnapshot.from_row(row.deal),
        )


@dataclass(frozen=True)
class ActivityItem:
    """One timeline event, newest first in digests."""
    type: str
    description: str
    timestamp: datetime
    deal_reference: Optional[str] = None


@dataclass(frozen=True)
class UserContact:
    wallet_address: str
    email: Optional[str]
    name: Optional[str]
    role: str


# =============================================================================
# DEAL STORE
# =============================================================================

class DealSnapshotReader:
    """Query operations over deals, milestones, disputes, messages and timelines."""

    def __init__(self, session: Session):
        self.session = session

    def upcoming_milestones(
        self,
        start: datetime,
        end: datetime,
        statuses: Iterable = OPEN_MILESTONE_STATUSES,
    ) -> List[MilestoneSnapshot]:
        """Milestones due in [start, end] with status in ``statuses`` on open deals."""
        stmt = (
            select(MilestoneDB)
            .join(DealDB, MilestoneDB.deal_id == DealDB.id)
            .where(
                MilestoneDB.due_date >= start,
                MilestoneDB.due_date <= end,
                MilestoneDB.status.in_([getattr(s, "value", s) for s in statuses]),
                DealDB.stage.not_in(_CLOSED_STAGE_VALUES),
            )
            .order_by(MilestoneDB.due_date)
        )
        return [MilestoneSnapshot.from_row(row) for row in self.session.scalars(stmt)]

    def deals_in_stage_before(self, stage: DealStage, cutoff: datetime) -> List[DealSnapshot]:
        """Deals currently in ``stage`` that were created before ``cutoff``."""
        stmt = (
            select(DealDB)
            .where(DealDB.stage == stage.value, DealDB.created_at < cutoff)
            .order_by(DealDB.created_at)
        )
        return [DealSnapshot.from_row(row) for row in self.session.scalars(stmt)]

    def pending_disputes_before(self, cutoff: datetime) -> List[DisputeSnapshot]:
        """Disputes still pending that were opened before ``cutoff``."""
        stmt = (
            select(DisputeDB)
            .join(DealDB, DisputeDB.deal_id == DealDB.id)
            .where(DisputeDB.status == DisputeStatus.PENDING.value, DisputeDB.created_at < cutoff)
            .order_by(DisputeDB.created_at)
        )
        return [DisputeSnapshot.from_row(row) for row in self.session.scalars(stmt)]

    def get_deal(self, deal_id: str) -> Optional[DealSnapshot]:
        row = self.session.get(DealDB, deal_id)
        return DealSnapshot.from_row(row) if row is not None else None

    def active_deals_for(self, address: str) -> List[DealSnapshot]:
        """Deals where ``address`` is buyer or seller and the deal is not closed."""
        address = normalize_address(address)
        stmt = (
            select(DealDB)
            .where(
                or_(func.lower(DealDB.buyer_address) == address, func.lower(DealDB.seller_address) == address),
                DealDB.stage.not_in(_CLOSED_STAGE_VALUES),
            )
            .order_by(DealDB.created_at.desc())
        )
        return [DealSnapshot.from_row(row) for row in self.session.scalars(stmt)]

    def count_unread_messages(self, address: str) -> int:
        stmt = select(func.count(MessageDB.id)).where(
            func.lower(MessageDB.recipient) == normalize_address(address),
            MessageDB.read.is_(False),
        )
        return self.session.scalar(stmt) or 0

    def count_upcoming_milestones(self, deal_ids: Sequence[str], start: datetime, end: datetime) -> int:
        if not deal_ids:
            return 0
        stmt = select(func.count(MilestoneDB.id)).where(
            MilestoneDB.deal_id.in_(list(deal_ids)),
            MilestoneDB.due_date >= start,
            MilestoneDB.due_date <= end,
            MilestoneDB.status.in_([s.value for s in OPEN_MILESTONE_STATUSES]),
        )
        return self.session.scalar(stmt) or 0

    def recent_timeline(self, deal_ids: Sequence[str], since: datetime, limit: int) -> List[ActivityItem]:
        """Timeline events of ``deal_ids`` since ``since``, newest first, at most ``limit``."""
        if not deal_ids:
            return []
        stmt = (
            select(DealTimelineDB, DealDB.reference)
            .join(DealDB, DealTimelineDB.deal_id == DealDB.id)
            .where(DealTimelineDB.deal_id.in_(list(deal_ids)), DealTimelineDB.created_at >= since)
            .order_by(DealTimelineDB.created_at.desc())
            .limit(limit)
        )
        return [
            ActivityItem(
                type=event.event_type,
                description=event.description,
                timestamp=event.created_at,
                deal_reference=reference,
            )
            for event, reference in self.session.execute(stmt)
        ]

    def count_active_disputes(self, address: str) -> int:
        address = normalize_address(address)
        stmt = select(func.count(DisputeDB.id)).where(
            or_(func.lower(DisputeDB.filed_by) == address, func.lower(DisputeDB.respondent) == address),
            DisputeDB.status.in_([s.value for s in ACTIVE_DISPUTE_STATUSES]),
        )
        return self.session.scalar(stmt) or 0


# =============================================================================
# IDENTITY STORE
# =============================================================================

class UserDirectory:
    """Wallet address to contact details and notification preferences."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_contact(row: UserDB) -> UserContact:
        return UserContact(
            wallet_address=row.wallet_address,
            email=row.email or None,
            name=row.name,
            role=row.role,
        )

    def get_user(self, address: str) -> Optional[UserContact]:
        stmt = select(UserDB).where(func.lower(UserDB.wallet_address) == normalize_address(address))
        row = self.session.scalars(stmt).first()
        return self._to_contact(row) if row is not None else None

    def get_email(self, address: str) -> Optional[str]:
        user = self.get_user(address)
        return user.email if user else None

    def digest_enabled(self, address: str) -> bool:
        """True unless the user explicitly set ``emailDigest`` to false."""
        stmt = select(NotificationPreferenceDB.global_settings).where(
            func.lower(NotificationPreferenceDB.wallet_address) == normalize_address(address)
        )
        settings = self.session.scalars(stmt).first()
        if not settings:
            return True
        return settings.get("emailDigest") is not False

    def list_users(self) -> List[UserContact]:
        stmt = select(UserDB).order_by(UserDB.wallet_address)
        return [self._to_contact(row) for row in self.session.scalars(stmt)]

    def list_admins(self) -> List[UserContact]:
        stmt = select(UserDB).where(UserDB.role == "admin").order_by(UserDB.wallet_address)
        return [self._to_contact(row) for row in self.session.scalars(stmt)]
