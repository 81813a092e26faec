import pytest
import os
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

# Set env before importing package components
os.environ["APP_ENV"] = "testing"
os.environ["LEAVE_CACHE_URL"] = "sqlite:///:memory:"

from staffhive_leave.core.clock import FixedClock
from staffhive_leave.core.exceptions import (
    InvalidStatusTransitionError,
    LeaveRequestNotFoundError,
    RemoteUnavailableError,
)
from staffhive_leave.database import Base, init_db, make_engine, make_session_factory
from staffhive_leave.schemas.leave import (
    LeaveBalanceResponse,
    LeaveFilters,
    LeaveRequest,
    LeaveStatistics,
    LeaveStatus,
)
from staffhive_leave.services.balance_ledger import BalanceLedger
from staffhive_leave.services.leave_cache import LocalLeaveCache
from staffhive_leave.services.leave_store import LeaveRequestStore
from staffhive_leave.services.notification import NotificationRelay

TODAY = date(2024, 3, 1)


class FakeLeaveRemote:
    """
    In-memory stand-in for the leave backend that can be taken offline.

    Like the real backend it mints its own requestId and _id on submit,
    stores every submission as pending, and refuses to update unknown or
    already resolved requests.
    """

    def __init__(self):
        self.online = True
        self.records: Dict[str, LeaveRequest] = {}
        self.balances: Dict[str, Dict[str, LeaveBalanceResponse]] = {}
        self.statistics: Optional[LeaveStatistics] = None
        self.calls: List[str] = []

    def _check(self, operation: str):
        self.calls.append(operation)
        if not self.online:
            raise RemoteUnavailableError(f"{operation}: backend offline")

    def _lookup(self, request_id: str) -> Optional[LeaveRequest]:
        for record in self.records.values():
            if record.matches_id(request_id, include_legacy=True):
                return record
        return None

    def submit_leave_request(self, request):
        self._check("submit")
        number = len(self.records) + 1
        record = request.model_copy(update={
            "request_id": f"LR_server_{number}",
            "legacy_id": f"doc-{number}",
            "status": LeaveStatus.PENDING,
            "approved_by": None,
            "approved_date": None,
            "rejected_by": None,
            "rejected_date": None,
            "rejection_reason": None,
            "synced": True,
        })
        self.records[record.request_id] = record
        return record

    def get_user_leave_requests(self, employee_id):
        self._check("get_user")
        return [r for r in self.records.values() if r.employee_id == employee_id]

    def get_all_leave_requests(self, filters=None):
        self._check("get_all")
        filters = filters or LeaveFilters()
        return [r for r in self.records.values() if filters.matches(r)]

    def update_leave_status(self, request_id, status, reason=""):
        self._check("update_status")
        record = self._lookup(request_id)
        if record is None:
            raise LeaveRequestNotFoundError(request_id)
        if record.status != LeaveStatus.PENDING:
            raise InvalidStatusTransitionError(f"Leave request is already {record.status.value}")
        update = {"status": LeaveStatus(status), f"{status}_by": "Admin", f"{status}_date": TODAY}
        if status == "rejected" and reason:
            update["rejection_reason"] = reason
        record = record.model_copy(update=update)
        self.records[record.request_id] = record
        return record

    def statuses(self) -> Dict[str, str]:
        return {request_id: r.status.value for request_id, r in self.records.items()}

    def get_leave_balance(self, employee_id):
        self._check("get_balance")
        return self.balances.get(employee_id, {})

    def get_leave_statistics(self, start_date, end_date):
        self._check("get_stats")
        return self.statistics or LeaveStatistics()


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory cache database per test."""
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture(scope="function")
def clock():
    return FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def relay():
    return NotificationRelay()


@pytest.fixture(scope="function")
def cache(session_factory, relay):
    return LocalLeaveCache(session_factory, key="leaveRequests", relay=relay)


@pytest.fixture(scope="function")
def ledger(session_factory):
    return BalanceLedger(session_factory)


@pytest.fixture(scope="function")
def remote():
    return FakeLeaveRemote()


@pytest.fixture(scope="function")
def store(remote, cache, ledger, relay, clock):
    store = LeaveRequestStore(remote=remote, cache=cache, ledger=ledger, relay=relay, clock=clock)
    yield store
    store.close()


@pytest.fixture(scope="function")
def annual_request():
    """Valid 5-day annual leave request with 10 days notice."""
    return {
        "employeeId": "EMP001",
        "employeeName": "Dana Reyes",
        "email": "dana@staffhive.io",
        "department": "Engineering",
        "leaveType": "Annual Leave",
        "startDate": "2024-03-11",
        "endDate": "2024-03-15",
        "reason": "Family trip",
    }
