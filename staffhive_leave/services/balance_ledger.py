"""
Balance Ledger

Per-employee, per-leave-type, per-year balance bookkeeping.

Every mutation is a single UPDATE guarded by a compare-and-swap on
`version`, re-checked against the freshly read row, so two submissions
racing for the same balance cannot both reserve the last days. The invariant
allocated == used + pending + current holds after each committed change.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from staffhive_leave.core.exceptions import BalanceReservationError
from staffhive_leave.models.leave_balance import LeaveBalance
from staffhive_leave.schemas.leave import LeaveBalanceResponse
from staffhive_leave.services.policy_catalog import LEAVE_TYPE_CONFIGS, display_name, get_policy, resolve_leave_type

logger = logging.getLogger(__name__)

MAX_CAS_ATTEMPTS = 5


class BalanceLedger:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _find(self, db: Session, employee_id: str, leave_type: str, year: int) -> Optional[LeaveBalance]:
        return db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type == leave_type,
            LeaveBalance.year == year
        ).first()

    def _get_or_create(self, db: Session, employee_id: str, leave_type: str, year: int) -> LeaveBalance:
        row = self._find(db, employee_id, leave_type, year)
        if row is not None:
            return row

        policy = get_policy(leave_type)
        allocated = policy.yearly_allocation if policy else 0
        row = LeaveBalance(
            employee_id=employee_id,
            leave_type=leave_type,
            year=year,
            allocated=allocated,
            used=0,
            pending=0,
            current=allocated,
            version=1
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # Another writer initialised the same balance first
            db.rollback()
            row = self._find(db, employee_id, leave_type, year)
        else:
            db.refresh(row)
            logger.info(f"Initialised {leave_type} balance for employee {employee_id} ({year}): {allocated} days")
        return row

    def exists(self, employee_id: str, year: int) -> bool:
        db = self._session_factory()
        try:
            return db.query(LeaveBalance).filter(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year
            ).first() is not None
        finally:
            db.close()

    def get(self, employee_id: str, leave_type: str, year: int) -> LeaveBalanceResponse:
        key = resolve_leave_type(leave_type) or leave_type
        db = self._session_factory()
        try:
            return LeaveBalanceResponse.model_validate(self._get_or_create(db, employee_id, key, year))
        finally:
            db.close()

    def snapshot(self, employee_id: str, year: int) -> Dict[str, LeaveBalanceResponse]:
        """Balances for every catalog leave type, initialising missing ones from policy."""
        db = self._session_factory()
        try:
            return {
                key: LeaveBalanceResponse.model_validate(self._get_or_create(db, employee_id, key, year))
                for key in LEAVE_TYPE_CONFIGS
            }
        finally:
            db.close()

    def available(self, employee_id: str, year: int) -> Dict[str, int]:
        return {key: balance.current for key, balance in self.snapshot(employee_id, year).items()}

    def _mutate(self, employee_id: str, leave_type: str, year: int, days: int, action: str) -> LeaveBalanceResponse:
        key = resolve_leave_type(leave_type) or leave_type
        db = self._session_factory()
        try:
            for _ in range(MAX_CAS_ATTEMPTS):
                row = self._get_or_create(db, employee_id, key, year)
                if action == "reserve":
                    if row.current < days:
                        raise BalanceReservationError(
                            f"Insufficient {display_name(key)} balance. "
                            f"Available: {row.current} days, Requested: {days} days"
                        )
                    values = {"current": row.current - days, "pending": row.pending + days}
                elif action == "commit":
                    values = {"pending": max(0, row.pending - days), "used": row.used + min(days, row.pending)}
                elif action == "release":
                    values = {"pending": max(0, row.pending - days), "current": row.current + min(days, row.pending)}
                else:
                    raise ValueError(f"Unknown balance action: {action}")
                values["version"] = row.version + 1

                updated = db.query(LeaveBalance).filter(
                    LeaveBalance.id == row.id,
                    LeaveBalance.version == row.version
                ).update(values, synchronize_session=False)
                db.commit()
                if updated:
                    db.expire_all()
                    result = LeaveBalanceResponse.model_validate(self._find(db, employee_id, key, year))
                    logger.info(
                        f"Balance {action} of {days} {key} days for employee {employee_id}: "
                        f"current={result.current} pending={result.pending} used={result.used}"
                    )
                    return result
                # Lost the race: reload and try again against the new version
                db.expire_all()
            raise BalanceReservationError(
                f"Could not update {display_name(key)} balance for employee {employee_id}; please retry"
            )
        finally:
            db.close()

    def reserve(self, employee_id: str, leave_type: str, year: int, days: int) -> LeaveBalanceResponse:
        """Move `days` from current to pending, or raise BalanceReservationError."""
        return self._mutate(employee_id, leave_type, year, days, "reserve")

    def commit(self, employee_id: str, leave_type: str, year: int, days: int) -> LeaveBalanceResponse:
        """Approval: pending days become used."""
        return self._mutate(employee_id, leave_type, year, days, "commit")

    def release(self, employee_id: str, leave_type: str, year: int, days: int) -> LeaveBalanceResponse:
        """Rejection: pending days return to current."""
        return self._mutate(employee_id, leave_type, year, days, "release")

    def sync(self, employee_id: str, balances: Dict[str, LeaveBalanceResponse]) -> Dict[str, LeaveBalanceResponse]:
        """
        Overwrite local balances with authoritative backend figures.
        `current` is recomputed so the ledger invariant holds even when the
        backend reports current without deducting pending days. Pending days
        beyond the allocation are dropped and an allocation below `used` is
        raised to it.
        """
        db = self._session_factory()
        try:
            synced = {}
            for key, remote in balances.items():
                row = self._get_or_create(db, employee_id, key, remote.year)
                allocated = max(remote.allocated, remote.used)
                pending = min(remote.pending, allocated - remote.used)
                if (allocated, pending) != (remote.allocated, remote.pending):
                    logger.warning(
                        f"Backend {key} balance for employee {employee_id} is overdrawn "
                        f"(allocated={remote.allocated} used={remote.used} pending={remote.pending}); "
                        f"storing allocated={allocated} pending={pending}"
                    )
                row.allocated = allocated
                row.used = remote.used
                row.pending = pending
                row.current = allocated - remote.used - pending
                row.version = row.version + 1
                db.commit()
                db.refresh(row)
                synced[key] = LeaveBalanceResponse.model_validate(row)
            return synced
        finally:
            db.close()
