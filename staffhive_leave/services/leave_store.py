"""
Leave Request Store

Holds the leave request collection and balance snapshot for one session
and runs the request lifecycle:

    (none) -> pending -> approved | rejected

Architecture:
- Remote backend first, local durable cache on RemoteUnavailableError
- Validation errors surface before any network call
- Reads return Fetched results flagged stale when served locally
- Balance changes go through the ledger's atomic reserve/commit/release
"""
import logging
import secrets
import string
import uuid
from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from staffhive_leave.core.clock import SystemClock
from staffhive_leave.core.config import settings
from staffhive_leave.core.exceptions import (
    InvalidStatusTransitionError,
    LeaveRequestNotFoundError,
    RemoteUnavailableError,
    ValidationError,
)
from staffhive_leave.core.logging import request_id_var
from staffhive_leave.core.schemas import Fetched
from staffhive_leave.database import init_db, make_engine, make_session_factory
from staffhive_leave.schemas.leave import (
    DepartmentStats,
    LeaveBalanceResponse,
    LeaveFilters,
    LeaveRequest,
    LeaveRequestCreate,
    LeaveStatistics,
    LeaveStatus,
    LeaveTypeStats,
    StatisticsSummary,
)
from staffhive_leave.services.balance_ledger import BalanceLedger
from staffhive_leave.services.leave_api import LeaveApiClient
from staffhive_leave.services.leave_cache import LocalLeaveCache
from staffhive_leave.services.leave_calculator import calculate_leave_days
from staffhive_leave.services.leave_validator import validate_leave_request
from staffhive_leave.services.notification import NotificationRelay
from staffhive_leave.services.policy_catalog import get_policy, resolve_leave_type

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_request_id(clock) -> str:
    """LR_<epoch millis>_<6 random base36 chars>"""
    millis = int(clock.now().timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"LR_{millis}_{suffix}"


class LeaveRequestStore:
    def __init__(
        self,
        remote: LeaveApiClient,
        cache: LocalLeaveCache,
        ledger: BalanceLedger,
        relay: Optional[NotificationRelay] = None,
        clock=None,
    ):
        self.remote = remote
        self.cache = cache
        self.ledger = ledger
        self.relay = relay or cache.relay or NotificationRelay()
        self.clock = clock or SystemClock()

        self.requests: List[LeaveRequest] = []
        self.balances: Dict[str, LeaveBalanceResponse] = {}
        self.is_loading = False
        self.error: Optional[str] = None
        # None means the admin view (all employees)
        self._view_employee_id: Optional[str] = None

        self._unsubscribe = self.relay.on_storage_changed(self._on_storage_changed, origin=cache.origin)

    @classmethod
    def create(
        cls,
        cache_url: Optional[str] = None,
        remote: Optional[LeaveApiClient] = None,
        relay: Optional[NotificationRelay] = None,
        clock=None,
    ) -> "LeaveRequestStore":
        """Wire a store with its default collaborators."""
        engine = make_engine(cache_url)
        init_db(engine)
        session_factory = make_session_factory(engine)
        relay = relay or NotificationRelay()
        return cls(
            remote=remote or LeaveApiClient(clock=clock),
            cache=LocalLeaveCache(session_factory, relay=relay),
            ledger=BalanceLedger(session_factory),
            relay=relay,
            clock=clock,
        )

    def close(self):
        self._unsubscribe()

    def clear_error(self):
        self.error = None

    @contextmanager
    def _operation(self, name: str):
        token = request_id_var.set(request_id_var.get() or uuid.uuid4().hex)
        self.is_loading = True
        logger.debug(f"Leave store operation started: {name}")
        try:
            yield
        finally:
            self.is_loading = False
            request_id_var.reset(token)

    def _degraded(self, operation: str, error: RemoteUnavailableError):
        self.error = error.message
        logger.warning(f"{operation}: backend unavailable, using local cache ({error.message})")

    def _merge(self, request: LeaveRequest):
        for index, existing in enumerate(self.requests):
            if existing.request_id == request.request_id:
                self.requests[index] = request
                return
        self.requests.append(request)

    def _replace(self, old_request_id: str, request: LeaveRequest):
        self.cache.replace(old_request_id, request)
        requests = []
        replaced = False
        for existing in self.requests:
            if existing.request_id not in (old_request_id, request.request_id):
                requests.append(existing)
            elif not replaced:
                requests.append(request)
                replaced = True
        if not replaced and self._in_view(request):
            requests.append(request)
        self.requests = requests

    def _in_view(self, request: LeaveRequest) -> bool:
        return self._view_employee_id is None or request.employee_id == self._view_employee_id

    def _find_local(self, request_id: str) -> Optional[LeaveRequest]:
        for request in self.requests:
            if request.matches_id(request_id):
                return request
        return self.cache.find(request_id)

    @staticmethod
    def _adopt(request: LeaveRequest, created: LeaveRequest) -> LeaveRequest:
        """Take the identifiers the backend minted for a submitted request."""
        return request.model_copy(
            update={"request_id": created.request_id or request.request_id, "legacy_id": created.legacy_id}
        )

    @staticmethod
    def _overlay_queued(remote_requests: List[LeaveRequest], queued: List[LeaveRequest]) -> List[LeaveRequest]:
        """Remote records with local changes not yet on the backend laid over them."""
        local = {r.request_id: r for r in queued}
        merged = [local.pop(r.request_id, r) for r in remote_requests]
        return merged + list(local.values())

    # --- Submission ---

    def submit(self, data: Union[LeaveRequestCreate, Dict[str, Any]]) -> LeaveRequest:
        """
        Validate and submit a new leave request.

        Raises:
            ValidationError: with every violated rule; nothing is changed
            BalanceReservationError: the balance was taken by a concurrent submission
        """
        if not isinstance(data, LeaveRequestCreate):
            try:
                data = LeaveRequestCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError([f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()])

        with self._operation("submit"):
            errors = []
            if not data.employee_id:
                errors.append("Employee ID is required")

            snapshot = {}
            if data.employee_id and data.start_date:
                snapshot = self.ledger.available(data.employee_id, data.start_date.year)

            errors.extend(validate_leave_request(data, snapshot, self.clock.today()))
            if errors:
                logger.info(f"Leave request rejected by validation: {errors}")
                raise ValidationError(errors)

            now = self.clock.now()
            leave_type = resolve_leave_type(data.leave_type) or data.leave_type
            request = LeaveRequest(
                request_id=generate_request_id(self.clock),
                employee_id=data.employee_id,
                employee_name=data.employee_name,
                email=data.email,
                department=data.department,
                leave_type=leave_type,
                start_date=data.start_date,
                end_date=data.end_date,
                days=calculate_leave_days(data.start_date, data.end_date),
                reason=data.reason,
                emergency_contact=data.emergency_contact,
                work_handover=data.work_handover,
                manager_email=data.manager_email,
                status=LeaveStatus.PENDING,
                submitted_at=now,
                applied_date=self.clock.today(),
                last_updated=now,
                synced=False,
            )

            tracked = get_policy(leave_type) is not None
            if tracked:
                self.balances[leave_type] = self.ledger.reserve(
                    request.employee_id, leave_type, request.year, request.days
                )
            else:
                logger.warning(f"No policy for leave type {leave_type!r}; balance not tracked")

            try:
                created = self.remote.submit_leave_request(request)
                request = self._adopt(request, created).model_copy(update={"synced": True})
            except RemoteUnavailableError as e:
                self._degraded("submit", e)
            except ValidationError:
                if tracked:
                    self.balances[leave_type] = self.ledger.release(
                        request.employee_id, leave_type, request.year, request.days
                    )
                raise

            self.cache.upsert(request)
            self._merge(request)
            logger.info(
                f"Leave request {request.request_id} submitted for employee {request.employee_id}: "
                f"{request.days} {leave_type} days ({'remote' if request.synced else 'queued locally'})"
            )
            self.relay.request_created(request, is_new=True)
            return request

    def sync_pending(self) -> int:
        """
        Push locally queued requests to the backend. Returns how many were accepted.

        A queued request without a backend id is submitted first and takes
        the backend's requestId. A request approved or rejected while queued
        then has that decision replayed, since the backend records every
        submission as pending. A request stays queued until both steps succeed.
        """
        synced = 0
        with self._operation("sync_pending"):
            for request in self.cache.unsynced():
                local_id = request.request_id
                try:
                    if request.legacy_id is None:
                        request = self._adopt(request, self.remote.submit_leave_request(request))
                    if request.status != LeaveStatus.PENDING:
                        self.remote.update_leave_status(
                            request.request_id, request.status.value, request.rejection_reason or ""
                        )
                except RemoteUnavailableError as e:
                    self._degraded("sync_pending", e)
                    self._replace(local_id, request)
                    break
                except (ValidationError, LeaveRequestNotFoundError) as e:
                    logger.error(f"Backend refused queued leave request {local_id}: {e.message}")
                    self._replace(local_id, request)
                    continue
                self._replace(local_id, request.model_copy(update={"synced": True}))
                synced += 1
        if synced:
            logger.info(f"Synced {synced} queued leave request(s)")
        return synced

    # --- Listing ---

    def load_for_employee(self, employee_id: str) -> Fetched[List[LeaveRequest]]:
        employee_id = str(employee_id)
        with self._operation("load_for_employee"):
            try:
                remote_requests = self.remote.get_user_leave_requests(employee_id)
                self.cache.merge(remote_requests, keep_unsynced=True)
                queued = [r for r in self.cache.for_employee(employee_id) if not r.synced]
                result = Fetched.fresh(self._overlay_queued(remote_requests, queued))
            except RemoteUnavailableError as e:
                self._degraded("load_for_employee", e)
                result = Fetched.fallback(self.cache.for_employee(employee_id))

            self._view_employee_id = employee_id
            self.requests = list(result.data)
            return result

    def load_all(self, filters: Optional[LeaveFilters] = None) -> Fetched[List[LeaveRequest]]:
        filters = filters or LeaveFilters()
        with self._operation("load_all"):
            try:
                remote_requests = self.remote.get_all_leave_requests(filters)
                self.cache.merge(remote_requests, keep_unsynced=True)
                queued = [r for r in self.cache.unsynced() if filters.matches(r)]
                result = Fetched.fresh(self._overlay_queued(remote_requests, queued))
            except RemoteUnavailableError as e:
                self._degraded("load_all", e)
                cached = [r for r in self.cache.read_all() if filters.matches(r)]
                cached.sort(key=lambda r: r.submitted_at, reverse=True)
                result = Fetched.fallback(cached)

            self._view_employee_id = None
            self.requests = list(result.data)
            return result

    def get_requests_by_status(self, status: Union[LeaveStatus, str]) -> List[LeaveRequest]:
        return [r for r in self.requests if r.status == status]

    def get_employee_requests(self, employee_id: str) -> List[LeaveRequest]:
        return [r for r in self.requests if r.employee_id == str(employee_id)]

    # --- Administration ---

    def _stamp(self, request: LeaveRequest, status: LeaveStatus, reason: Optional[str], actor: Optional[str]) -> LeaveRequest:
        update = {"status": status, "last_updated": self.clock.now()}
        actor = actor or settings.default_actor
        if status == LeaveStatus.APPROVED:
            update.update(approved_by=actor, approved_date=self.clock.today())
        else:
            update.update(rejected_by=actor, rejected_date=self.clock.today())
            if reason:
                update["rejection_reason"] = reason
        return request.model_copy(update=update)

    def update_status(
        self,
        request_id: str,
        status: Union[LeaveStatus, str],
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> LeaveRequest:
        """
        Approve or reject a request.

        Re-applying the status a request already has only refreshes its
        timestamps locally. Moving a resolved request to the other status is
        refused. A refusal from the backend (unknown request, already
        resolved) is raised as is; only an unreachable backend falls back to
        the local cache. Requests still queued locally are decided locally
        and replayed by sync_pending.
        """
        try:
            new_status = LeaveStatus(status)
        except ValueError:
            new_status = None
        if new_status not in (LeaveStatus.APPROVED, LeaveStatus.REJECTED):
            raise InvalidStatusTransitionError("Status must be approved or rejected")

        with self._operation("update_status"):
            existing = self._find_local(str(request_id))
            if existing is not None and existing.status not in (LeaveStatus.PENDING, new_status):
                raise InvalidStatusTransitionError(f"Leave request is already {existing.status.value}")
            was_pending = existing is not None and existing.status == LeaveStatus.PENDING

            updated = None
            if existing is None or (existing.synced and was_pending):
                try:
                    remote_record = self.remote.update_leave_status(
                        existing.request_id if existing else str(request_id), new_status.value, reason or ""
                    )
                    if existing is not None:
                        # days is fixed at submission
                        remote_record = remote_record.model_copy(
                            update={"request_id": existing.request_id, "days": existing.days}
                        )
                    updated = remote_record.model_copy(update={"synced": True})
                except RemoteUnavailableError as e:
                    self._degraded("update_status", e)

            if updated is None:
                if existing is None:
                    raise LeaveRequestNotFoundError(str(request_id))
                updated = self._stamp(existing, new_status, reason, actor)
                if was_pending:
                    # Decision not on the backend yet; sync_pending replays it
                    updated = updated.model_copy(update={"synced": False})

            if was_pending and get_policy(updated.leave_type):
                if new_status == LeaveStatus.APPROVED:
                    balance = self.ledger.commit(updated.employee_id, updated.leave_type, updated.year, updated.days)
                else:
                    balance = self.ledger.release(updated.employee_id, updated.leave_type, updated.year, updated.days)
                self.balances[updated.leave_type] = balance

            self.cache.upsert(updated)
            self._merge(updated)
            logger.info(f"Leave request {updated.request_id} {new_status.value}")
            self.relay.status_updated(updated)
            return updated

    # --- Balances ---

    def load_balance(self, employee_id: str) -> Fetched[Dict[str, LeaveBalanceResponse]]:
        employee_id = str(employee_id)
        year = self.clock.today().year
        with self._operation("load_balance"):
            try:
                remote_balances = self.remote.get_leave_balance(employee_id)
                result = Fetched.fresh(self.ledger.sync(employee_id, remote_balances))
            except RemoteUnavailableError as e:
                self._degraded("load_balance", e)
                had_records = self.ledger.exists(employee_id, year)
                balances = self.ledger.snapshot(employee_id, year)
                # Freshly initialised policy defaults are placeholders, not history
                result = Fetched.fallback(balances, source="cache" if had_records else "default")

            self.balances = dict(result.data)
            return result

    # --- Statistics ---

    def _known_requests(self) -> List[LeaveRequest]:
        merged = {r.request_id: r for r in self.cache.read_all()}
        for request in self.requests:
            merged[request.request_id] = request
        return list(merged.values())

    def compute_statistics(
        self,
        requests: List[LeaveRequest],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> LeaveStatistics:
        def in_range(request: LeaveRequest) -> bool:
            submitted = request.applied_date or request.submitted_at.date()
            if start_date and submitted < start_date:
                return False
            if end_date and submitted > end_date:
                return False
            return True

        selected = [r for r in requests if in_range(r)]
        summary = StatisticsSummary(total_requests=len(selected))
        by_type: Dict[str, LeaveTypeStats] = {}
        by_department: Dict[Optional[str], DepartmentStats] = {}

        for request in selected:
            status = request.status.value
            setattr(summary, f"{status}_requests", getattr(summary, f"{status}_requests") + 1)
            summary.total_days += request.days

            type_stats = by_type.setdefault(request.leave_type, LeaveTypeStats(leave_type=request.leave_type))
            type_stats.count += 1
            type_stats.total_days += request.days
            setattr(type_stats, status, getattr(type_stats, status) + 1)

            dept_stats = by_department.setdefault(request.department, DepartmentStats(department=request.department))
            dept_stats.count += 1
            dept_stats.total_days += request.days

        if selected:
            summary.average_days = round(summary.total_days / len(selected), 2)
        for dept_stats in by_department.values():
            dept_stats.average_days = round(dept_stats.total_days / dept_stats.count, 2)

        return LeaveStatistics(
            summary=summary,
            by_leave_type=list(by_type.values()),
            by_department=list(by_department.values()),
        )

    def get_statistics(self, start_date: date, end_date: date) -> Fetched[LeaveStatistics]:
        with self._operation("get_statistics"):
            try:
                return Fetched.fresh(self.remote.get_leave_statistics(start_date, end_date))
            except RemoteUnavailableError as e:
                self._degraded("get_statistics", e)
                return Fetched.fallback(self.compute_statistics(self._known_requests(), start_date, end_date))

    # --- Cross-instance sync ---

    def _on_storage_changed(self, payload: Dict[str, Any]):
        if payload.get("key") != self.cache.key:
            return
        cached = self.cache.read_all()
        # Queued records that vanished were re-keyed when they reached the backend
        cached_ids = {r.request_id for r in cached}
        self.requests = [r for r in self.requests if r.synced or r.request_id in cached_ids]
        for request in cached:
            already_shown = any(r.request_id == request.request_id for r in self.requests)
            if already_shown or self._in_view(request):
                self._merge(request)
