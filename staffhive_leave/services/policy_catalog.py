"""
Leave Policy Catalog

Static, read-only table of the leave types the organisation offers.
Lookups never raise: an unknown type resolves to None and callers skip
policy-specific checks for it.
"""
from typing import Dict, List, Optional

from staffhive_leave.schemas.leave import LeaveTypeConfig

_POLICIES = [
    LeaveTypeConfig(
        id="annual",
        name="Annual Leave",
        description="Vacation and holiday time",
        yearly_allocation=25,
        accrual_rate=2.08,
        can_carry_over=True,
        carry_over_limit=5,
        min_notice=7,
        max_consecutive=30,
    ),
    LeaveTypeConfig(
        id="sick",
        name="Sick Leave",
        description="Medical and health-related leave",
        yearly_allocation=15,
        accrual_rate=1.25,
        min_notice=0,
        max_consecutive=14,
    ),
    LeaveTypeConfig(
        id="personal",
        name="Personal Leave",
        description="Personal and family matters",
        yearly_allocation=7,
        accrual_rate=0.58,
        min_notice=3,
        max_consecutive=5,
    ),
    LeaveTypeConfig(
        id="maternity",
        name="Maternity Leave",
        description="Leave for childbirth and bonding",
        yearly_allocation=120,
        min_notice=30,
        max_consecutive=120,
    ),
    LeaveTypeConfig(
        id="paternity",
        name="Paternity Leave",
        description="Leave for new fathers",
        yearly_allocation=14,
        min_notice=30,
        max_consecutive=14,
    ),
    LeaveTypeConfig(
        id="bereavement",
        name="Bereavement Leave",
        description="Leave for family loss",
        yearly_allocation=5,
        min_notice=0,
        max_consecutive=5,
    ),
    LeaveTypeConfig(
        id="emergency",
        name="Emergency Leave",
        description="Unforeseen circumstances",
        yearly_allocation=3,
        min_notice=0,
        max_consecutive=3,
    ),
]

LEAVE_TYPE_CONFIGS: Dict[str, LeaveTypeConfig] = {p.id: p for p in _POLICIES}


def resolve_leave_type(value: Optional[str]) -> Optional[str]:
    """
    Map a display label or any casing of a key to its catalog key.
    "Annual Leave", "annual", "ANNUAL" -> "annual". Unknown -> None.
    """
    if not value:
        return None
    key = str(value).strip().lower()
    if key.endswith(" leave"):
        key = key[: -len(" leave")]
    return key if key in LEAVE_TYPE_CONFIGS else None


def get_policy(leave_type: Optional[str]) -> Optional[LeaveTypeConfig]:
    key = resolve_leave_type(leave_type)
    return LEAVE_TYPE_CONFIGS.get(key) if key else None


def list_policies() -> List[LeaveTypeConfig]:
    return list(LEAVE_TYPE_CONFIGS.values())


def default_allocations() -> Dict[str, int]:
    """Yearly allocation per leave type; the baseline for a fresh balance."""
    return {key: policy.yearly_allocation for key, policy in LEAVE_TYPE_CONFIGS.items()}


def display_name(leave_type: str) -> str:
    policy = get_policy(leave_type)
    return policy.name if policy else leave_type
