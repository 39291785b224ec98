"""
Reminder Deduplication Ledger.

Append-only record of which (deal, item, tier) reminders have gone out.
The unique constraint on reminder_log is the source of truth: a
duplicate-key insert means another run already recorded the reminder and
is reported as ``False``, not raised.
"""

import logging
from datetime import datetime
from typing import Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import ReminderLogDB

from .enums import ReminderTier

logger = logging.getLogger(__name__)

# Item id used for escrow funding reminders, which have no item row of their own
PAYMENT_ITEM_ID = "payment"


def _tier_value(tier: Union[ReminderTier, str]) -> str:
    return tier.value if isinstance(tier, ReminderTier) else str(tier)


class ReminderLedger:
    """Write-once-per-key log of dispatched deadline reminders."""

    def __init__(self, session: Session):
        self.session = session

    def exists(self, deal_id: str, item_id: str, tier: Union[ReminderTier, str]) -> bool:
        stmt = select(ReminderLogDB.id).where(
            ReminderLogDB.deal_id == deal_id,
            ReminderLogDB.item_id == item_id,
            ReminderLogDB.reminder_type == _tier_value(tier),
        )
        return self.session.scalars(stmt).first() is not None

    def insert(
        self,
        deal_id: str,
        item_id: str,
        tier: Union[ReminderTier, str],
        sent_at: datetime,
    ) -> bool:
        """
        Record a dispatched reminder and commit.

        Returns:
            True if this call created the entry, False if it already existed.

        Raises:
            SQLAlchemyError: any other database failure, after rollback.
        """
        entry = ReminderLogDB(
            deal_id=deal_id,
            item_id=item_id,
            reminder_type=_tier_value(tier),
            sent_at=sent_at,
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(
                f"Reminder already recorded: deal={deal_id} item={item_id} tier={entry.reminder_type}"
            )
            return False
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return True
