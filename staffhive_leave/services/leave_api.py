import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from staffhive_leave.core.clock import SystemClock
from staffhive_leave.core.config import settings
from staffhive_leave.core.exceptions import (
    InvalidStatusTransitionError,
    LeaveRequestNotFoundError,
    RemoteRejectedError,
    RemoteUnavailableError,
    ValidationError,
)
from staffhive_leave.core.logging import request_id_var
from staffhive_leave.core.schemas import ApiResponse
from staffhive_leave.schemas.leave import (
    LeaveBalanceResponse,
    LeaveFilters,
    LeaveRequest,
    LeaveStatistics,
)
from staffhive_leave.services.policy_catalog import display_name, resolve_leave_type

logger = logging.getLogger(__name__)

# Connection-level failures are worth retrying; HTTP errors are not.
TRANSIENT_ERRORS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
# 4xx statuses that mean the backend is temporarily unavailable
UNAVAILABLE_STATUSES = (408, 429)


class LeaveApiClient:
    """
    Client for the Staff Hive leave endpoints.

    Transport errors, 5xx responses, malformed bodies and envelopes with
    success=false raise RemoteUnavailableError so the store can fall back
    to local data. Any other 4xx is the backend refusing the request and
    raises RemoteRejectedError, or a domain error where one fits.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
        clock=None,
    ):
        self.base_url = (base_url or settings.remote.base_url).rstrip("/")
        self.token = token if token is not None else settings.remote.token
        self.timeout = timeout or settings.remote.timeout_seconds
        attempts = retry_attempts if retry_attempts is not None else settings.remote.retry_attempts
        self.session = session or requests.Session()
        self.clock = clock or SystemClock()
        self._retrying = Retrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=settings.remote.retry_wait_max),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            settings.request_id_header: request_id_var.get() or uuid.uuid4().hex,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, json: Any = None) -> ApiResponse:
        url = f"{self.base_url}{path}"
        try:
            response = self._retrying(
                self.session.request,
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Leave backend unreachable: {method} {path}: {e}")
            raise RemoteUnavailableError(f"Leave backend unreachable: {e}", details={"path": path}) from e

        if not response.ok:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            message = message or f"Leave backend returned HTTP {response.status_code}"
            logger.warning(f"Leave backend returned {response.status_code} for {method} {path}: {message}")
            if response.status_code >= 500 or response.status_code in UNAVAILABLE_STATUSES:
                raise RemoteUnavailableError(message, details={"path": path, "status_code": response.status_code})
            raise RemoteRejectedError(message, response.status_code, details={"path": path})

        try:
            body = ApiResponse.model_validate(response.json())
        except ValueError as e:
            raise RemoteUnavailableError(f"Malformed response from leave backend: {e}", details={"path": path}) from e

        if not body.success:
            raise RemoteUnavailableError(body.message or "Leave backend reported failure", details={"path": path})
        return body

    def _parse_requests(self, data: Any) -> List[LeaveRequest]:
        try:
            return [LeaveRequest.model_validate(item) for item in (data or [])]
        except ValueError as e:
            raise RemoteUnavailableError(f"Unexpected leave request payload: {e}") from e

    def _parse_request(self, data: Any) -> LeaveRequest:
        try:
            return LeaveRequest.model_validate(data)
        except ValueError as e:
            raise RemoteUnavailableError(f"Unexpected leave request payload: {e}") from e

    # --- Collaborator operations ---

    def submit_leave_request(self, request: LeaveRequest) -> LeaveRequest:
        payload = request.to_wire()
        payload.pop("synced", None)
        payload["leaveType"] = display_name(request.leave_type)
        try:
            body = self._request("POST", "/leave/submit", json=payload)
        except RemoteRejectedError as e:
            raise ValidationError([e.message]) from e
        return self._parse_request(body.data)

    def get_user_leave_requests(self, employee_id: str) -> List[LeaveRequest]:
        body = self._request("GET", f"/leave/user/{employee_id}")
        return self._parse_requests(body.data)

    def get_all_leave_requests(self, filters: Optional[LeaveFilters] = None) -> List[LeaveRequest]:
        params = (filters or LeaveFilters()).to_params()
        if "leaveType" in params:
            params["leaveType"] = display_name(params["leaveType"])
        body = self._request("GET", "/leave/admin/all", params=params)
        return self._parse_requests(body.data)

    def update_leave_status(self, request_id: str, status: str, reason: str = "") -> LeaveRequest:
        try:
            body = self._request(
                "PUT",
                "/leave/admin/update-status",
                json={"requestId": request_id, "status": status, "reason": reason or ""},
            )
        except RemoteRejectedError as e:
            if e.status_code == 404:
                raise LeaveRequestNotFoundError(request_id) from e
            raise InvalidStatusTransitionError(e.message) from e
        return self._parse_request(body.data)

    def get_leave_balance(self, employee_id: str) -> Dict[str, LeaveBalanceResponse]:
        body = self._request("GET", f"/leave/balance/{employee_id}")
        data = body.data or {}
        year = data.get("year") or self.clock.today().year
        balances = {}
        try:
            for leave_type, values in (data.get("balances") or {}).items():
                key = resolve_leave_type(leave_type) or leave_type
                balances[key] = LeaveBalanceResponse(leave_type=key, year=year, **values)
        except (TypeError, ValueError) as e:
            raise RemoteUnavailableError(f"Unexpected leave balance payload: {e}") from e
        return balances

    def get_leave_statistics(self, start_date: date, end_date: date) -> LeaveStatistics:
        body = self._request(
            "GET",
            "/leave/admin/stats",
            params={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        try:
            return LeaveStatistics.model_validate(body.data or {})
        except ValueError as e:
            raise RemoteUnavailableError(f"Unexpected statistics payload: {e}") from e
