import math
import logging
from datetime import date, datetime, timedelta
from typing import Optional, Union

from staffhive_leave.services.policy_catalog import get_policy

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]

SECONDS_PER_DAY = 24 * 60 * 60


def to_date(value: DateLike) -> Optional[date]:
    """Parse a date, datetime or ISO string. Returns None when absent or unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            logger.debug(f"Unparsable date value: {value!r}")
            return None
    return None


def _span_in_days(start: DateLike, end: DateLike) -> Optional[float]:
    if isinstance(start, datetime) and isinstance(end, datetime):
        return (end - start).total_seconds() / SECONDS_PER_DAY
    start_d, end_d = to_date(start), to_date(end)
    if start_d is None or end_d is None:
        return None
    return float((end_d - start_d).days)


def calculate_leave_days(start_date: DateLike, end_date: DateLike) -> int:
    """
    Inclusive day span between two calendar dates.

    Returns 0 when either date is missing or unparsable. Ordering is not
    checked here; a reversed range collapses to 0 and the validator is
    responsible for rejecting it.
    """
    span = _span_in_days(start_date, end_date)
    if span is None:
        return 0
    days = math.ceil(span) + 1
    return days if days > 0 else 0


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole days from start to end, rounded up. Negative when end precedes start."""
    span = _span_in_days(start, end)
    if span is None:
        return 0
    return math.ceil(span)


def calculate_business_days(start_date: DateLike, end_date: DateLike) -> int:
    """Weekdays (Mon-Fri) in the inclusive range."""
    start, end = to_date(start_date), to_date(end_date)
    if start is None or end is None or start > end:
        return 0
    business_days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            business_days += 1
        current += timedelta(days=1)
    return business_days


def project_balance(leave_type: str, current_balance: float, months_remaining: int = 4) -> float:
    """Balance expected by year end once monthly accrual is added, capped at the allocation."""
    policy = get_policy(leave_type)
    if not policy or policy.accrual_rate == 0:
        return current_balance
    accrual = policy.accrual_rate * months_remaining
    return min(current_balance + accrual, policy.yearly_allocation)


def carry_over_projection(leave_type: str, projected_balance: float) -> float:
    """Days that would move to next year from a projected balance."""
    policy = get_policy(leave_type)
    if not policy or not policy.can_carry_over:
        return 0
    return min(projected_balance, policy.carry_over_limit)


def balance_status(current: float, allocated: float) -> str:
    if not allocated:
        return "critical"
    percentage = (current / allocated) * 100
    if percentage <= 20:
        return "critical"
    if percentage <= 50:
        return "low"
    if percentage <= 80:
        return "good"
    return "excellent"
