"""
Leave Request Validator

Applies the leave policy rules to a candidate request. Every rule runs;
each failing rule contributes its own message so the caller can show the
full list at once.
"""
from datetime import date
from typing import Dict, List, Optional

from staffhive_leave.schemas.leave import LeaveRequestCreate
from staffhive_leave.services.leave_calculator import calculate_leave_days, days_between
from staffhive_leave.services.policy_catalog import get_policy, resolve_leave_type

REQUIRED_FIELDS = [
    ("leave_type", "leaveType"),
    ("start_date", "startDate"),
    ("end_date", "endDate"),
    ("reason", "reason"),
]


def validate_leave_request(
    request: LeaveRequestCreate,
    balance_snapshot: Optional[Dict[str, int]],
    today: date,
) -> List[str]:
    """
    Args:
        request: The candidate submission
        balance_snapshot: Available days keyed by leave type
        today: Current calendar date

    Returns:
        List of violation messages; empty when the request is valid
    """
    errors: List[str] = []
    balance_snapshot = balance_snapshot or {}

    missing = [wire for attr, wire in REQUIRED_FIELDS if not getattr(request, attr)]
    if missing:
        errors.append(f"Missing required fields: {', '.join(missing)}")

    start, end = request.start_date, request.end_date

    if start and end and start > end:
        errors.append("Start date cannot be after end date")

    if start and start < today:
        errors.append("Start date cannot be in the past")

    policy = get_policy(request.leave_type)
    if policy:
        days = calculate_leave_days(start, end)
        if days > policy.max_consecutive:
            errors.append(
                f"Cannot exceed {policy.max_consecutive} consecutive days for {policy.name}"
            )

        if start:
            notice_days = days_between(today, start)
            if notice_days < policy.min_notice:
                errors.append(
                    f"{policy.name} requires {policy.min_notice} days advance notice. "
                    f"Please select a later start date."
                )

        key = resolve_leave_type(request.leave_type)
        available = balance_snapshot.get(key, balance_snapshot.get(request.leave_type, 0))
        if days > available:
            errors.append(
                f"Insufficient {policy.name} balance. "
                f"Available: {available} days, Requested: {days} days"
            )

    return errors
