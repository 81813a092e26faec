from typing import Any, Dict, List, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(AppException):
    """One or more policy or shape violations. Always surfaced to the caller."""
    def __init__(self, errors: List[str], error_code: str = "VALIDATION_FAILED"):
        self.errors = list(errors)
        super().__init__(
            message="; ".join(self.errors),
            error_code=error_code,
            details={"errors": self.errors}
        )

class BalanceReservationError(ValidationError):
    def __init__(self, message: str):
        super().__init__([message], error_code="BALANCE_RESERVATION_FAILED")

class InvalidStatusTransitionError(ValidationError):
    def __init__(self, message: str):
        super().__init__([message], error_code="INVALID_STATUS_TRANSITION")

class LeaveRequestNotFoundError(AppException):
    def __init__(self, request_id: str):
        super().__init__(
            message=f"Leave request {request_id} not found",
            error_code="LEAVE_REQUEST_NOT_FOUND",
            details={"request_id": request_id}
        )

class RemoteUnavailableError(AppException):
    """Network or API failure talking to the leave backend. Recovered locally."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="REMOTE_UNAVAILABLE",
            details=details
        )

class CacheCorruptionError(AppException):
    def __init__(self, key: str, reason: str):
        super().__init__(
            message=f"Cached collection '{key}' could not be decoded: {reason}",
            error_code="CACHE_CORRUPTED",
            details={"key": key}
        )

class RemoteRejectedError(AppException):
    """The leave backend answered and refused the request (HTTP 4xx)."""
    def __init__(self, message: str, status_code: int, details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        super().__init__(
            message=message,
            error_code="REMOTE_REJECTED",
            details={"status_code": status_code, **(details or {})}
        )
