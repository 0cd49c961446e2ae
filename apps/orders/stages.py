"""
Manufacturing stages an order moves through, in production order.
"""
from typing import Optional

MANUFACTURING_STAGES = [
    "Initial Consultation",
    "Design Proposal",
    "Proof Approval",
    "Measurements",
    "Production Planning",
    "Cutting",
    "Sewing",
    "Quality Control",
    "Finishing",
    "Final Inspection",
    "Packaging",
    "Shipping Preparation",
    "Ship Order",
    "Delivery",
]

INITIAL_STAGE = MANUFACTURING_STAGES[0]
CLIENT_ORDER_STAGE = "Design Proposal"

_STAGE_INDEX = {stage: index for index, stage in enumerate(MANUFACTURING_STAGES)}


def normalize_stage(stage: Optional[str]) -> Optional[str]:
    """Canonical spelling of a stage name, matched case-insensitively."""
    if not stage:
        return None
    wanted = stage.strip().lower()
    for name in MANUFACTURING_STAGES:
        if name.lower() == wanted:
            return name
    return None


def is_valid_stage(stage: Optional[str]) -> bool:
    return stage in _STAGE_INDEX


def is_valid_transition(current_stage: str, new_stage: str) -> bool:
    """
    Orders may stay put, move back any number of stages for rework,
    or advance exactly one stage.
    """
    if current_stage not in _STAGE_INDEX or new_stage not in _STAGE_INDEX:
        return False
    return _STAGE_INDEX[new_stage] <= _STAGE_INDEX[current_stage] + 1
