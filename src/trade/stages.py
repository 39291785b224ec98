"""
Next-action resolution for deal stages.

NEXT_ACTIONS holds one entry per DealStage. The module refuses to import
if a stage is missing, so adding a stage without deciding its actions
fails at startup and in test collection.
"""

import logging
from typing import Dict, Optional, Union

from .enums import DealStage, Role

logger = logging.getLogger(__name__)


NEXT_ACTIONS: Dict[DealStage, Dict[Role, Optional[str]]] = {
    DealStage.DRAFT: {Role.BUYER: None, Role.SELLER: None},
    DealStage.AWAITING_PAYMENT: {Role.BUYER: "Fund escrow", Role.SELLER: None},
    DealStage.FUNDED: {Role.BUYER: None, Role.SELLER: None},
    DealStage.AWAITING_SHIPMENT: {Role.BUYER: None, Role.SELLER: "Ship goods"},
    DealStage.IN_TRANSIT: {Role.BUYER: "Confirm receipt", Role.SELLER: None},
    DealStage.INSPECTION: {Role.BUYER: "Complete inspection", Role.SELLER: None},
    DealStage.PENDING_APPROVAL: {Role.BUYER: "Approve milestone", Role.SELLER: None},
    DealStage.COMPLETED: {Role.BUYER: None, Role.SELLER: None},
    DealStage.CANCELLED: {Role.BUYER: None, Role.SELLER: None},
    DealStage.DISPUTED: {Role.BUYER: None, Role.SELLER: None},
}

STAGE_LABELS: Dict[DealStage, str] = {
    DealStage.DRAFT: "Draft",
    DealStage.AWAITING_PAYMENT: "Awaiting Payment",
    DealStage.FUNDED: "Funded",
    DealStage.AWAITING_SHIPMENT: "Awaiting Shipment",
    DealStage.IN_TRANSIT: "In Transit",
    DealStage.INSPECTION: "Inspection",
    DealStage.PENDING_APPROVAL: "Pending Approval",
    DealStage.COMPLETED: "Completed",
    DealStage.CANCELLED: "Cancelled",
    DealStage.DISPUTED: "Disputed",
}


def _check_coverage() -> None:
    for table_name, table in (("NEXT_ACTIONS", NEXT_ACTIONS), ("STAGE_LABELS", STAGE_LABELS)):
        missing = [stage.value for stage in DealStage if stage not in table]
        if missing:
            raise RuntimeError(f"{table_name} has no entry for stages: {', '.join(missing)}")
    for stage, actions in NEXT_ACTIONS.items():
        if set(actions) != set(Role):
            raise RuntimeError(f"NEXT_ACTIONS[{stage.value}] must define every role")


_check_coverage()


def parse_stage(stage: Union[DealStage, str]) -> Optional[DealStage]:
    """Coerce a stored stage value to DealStage; None if it is not one."""
    if isinstance(stage, DealStage):
        return stage
    try:
        return DealStage(stage)
    except ValueError:
        return None


def resolve_next_action(stage: Union[DealStage, str], role: Union[Role, str]) -> Optional[str]:
    """
    Return the action ``role`` must take at ``stage``, or None.

    Never raises: an unrecognised stage or role is logged as a warning and
    resolves to no action.
    """
    parsed = parse_stage(stage)
    if parsed is None:
        logger.warning(f"Unknown deal stage {stage!r}; resolving to no action")
        return None
    try:
        parsed_role = Role(role)
    except ValueError:
        logger.warning(f"Unknown deal role {role!r}; resolving to no action")
        return None
    return NEXT_ACTIONS[parsed][parsed_role]


def format_stage(stage: Union[DealStage, str]) -> str:
    """Display label for a stage, falling back to the raw value."""
    parsed = parse_stage(stage)
    if parsed is None:
        return str(stage)
    return STAGE_LABELS[parsed]
