from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import date, datetime
from typing import Any, Dict, List, Optional
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

# Wire format of the leave backend is camelCase; Python side stays snake_case.
_wire_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class LeaveTypeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    yearly_allocation: int
    accrual_rate: float = 0.0
    can_carry_over: bool = False
    carry_over_limit: int = 0
    min_notice: int = 0
    max_consecutive: int

    @model_validator(mode="after")
    def check_carry_over(self) -> "LeaveTypeConfig":
        if self.carry_over_limit > self.yearly_allocation:
            raise ValueError(f"{self.id}: carry_over_limit cannot exceed yearly_allocation")
        if not self.can_carry_over and self.carry_over_limit != 0:
            raise ValueError(f"{self.id}: carry_over_limit must be 0 when carry-over is not allowed")
        return self


class LeaveRequestCreate(BaseModel):
    model_config = _wire_config

    employee_id: Optional[str] = None
    employee_name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    leave_type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None
    emergency_contact: Optional[str] = None
    work_handover: Optional[str] = None
    manager_email: Optional[str] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_date(cls, value: Any) -> Any:
        # Unparsable dates count as missing so the validator reports them.
        from staffhive_leave.services.leave_calculator import to_date
        return to_date(_blank_to_none(value))

    @field_validator("employee_id", "leave_type", "reason", mode="before")
    @classmethod
    def strip_blank(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return str(value) if value is not None else None


class LeaveRequest(BaseModel):
    model_config = _wire_config

    request_id: str
    # Backend document id. Only used to match records written before requestId existed.
    legacy_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("legacyId", "legacy_id", "_id", "id"),
        serialization_alias="id",
    )
    employee_id: str
    employee_name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    leave_type: str
    start_date: date
    end_date: date
    days: int
    reason: str
    emergency_contact: Optional[str] = None
    work_handover: Optional[str] = None
    manager_email: Optional[str] = None
    status: LeaveStatus = LeaveStatus.PENDING
    submitted_at: datetime
    applied_date: Optional[date] = None
    last_updated: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_date: Optional[date] = None
    rejected_by: Optional[str] = None
    rejected_date: Optional[date] = None
    rejection_reason: Optional[str] = None
    synced: bool = True

    @field_validator("legacy_id", "employee_id", mode="before")
    @classmethod
    def coerce_str(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("leave_type", mode="before")
    @classmethod
    def normalize_leave_type(cls, value: Any) -> Any:
        from staffhive_leave.services.policy_catalog import resolve_leave_type
        return resolve_leave_type(value) or value

    @field_validator("start_date", "end_date", "applied_date", "approved_date", "rejected_date", mode="before")
    @classmethod
    def date_only(cls, value: Any) -> Any:
        # Backend sometimes sends full ISO timestamps for date fields
        if isinstance(value, str) and "T" in value:
            return value.split("T")[0]
        if isinstance(value, datetime):
            return value.date()
        return value

    @property
    def year(self) -> int:
        return self.start_date.year

    def matches_id(self, request_id: str, include_legacy: bool = False) -> bool:
        if self.request_id == request_id:
            return True
        return include_legacy and self.legacy_id is not None and self.legacy_id == str(request_id)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LeaveBalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_type: str
    year: int
    allocated: int
    used: int = 0
    pending: int = 0
    current: int = 0
    version: int = 1

    @property
    def available(self) -> int:
        return self.current


class LeaveFilters(BaseModel):
    model_config = _wire_config

    status: Optional[str] = "all"
    department: Optional[str] = "all"
    leave_type: Optional[str] = "all"

    def to_params(self) -> Dict[str, str]:
        params = self.model_dump(by_alias=True)
        return {k: v for k, v in params.items() if v and v != "all"}

    def matches(self, request: LeaveRequest) -> bool:
        if self.status and self.status != "all" and request.status.value != self.status:
            return False
        if self.department and self.department != "all" and request.department != self.department:
            return False
        if self.leave_type and self.leave_type != "all":
            from staffhive_leave.services.policy_catalog import resolve_leave_type
            wanted = resolve_leave_type(self.leave_type) or self.leave_type
            if request.leave_type != wanted:
                return False
        return True


class StatisticsSummary(BaseModel):
    model_config = _wire_config

    total_requests: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    total_days: float = 0
    average_days: float = 0


class LeaveTypeStats(BaseModel):
    model_config = _wire_config

    leave_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("leaveType", "leave_type", "_id"))
    count: int = 0
    total_days: float = 0
    approved: int = 0
    pending: int = 0
    rejected: int = 0


class DepartmentStats(BaseModel):
    model_config = _wire_config

    department: Optional[str] = Field(default=None, validation_alias=AliasChoices("department", "_id"))
    count: int = 0
    total_days: float = 0
    average_days: float = 0


class LeaveStatistics(BaseModel):
    model_config = _wire_config

    summary: StatisticsSummary = Field(default_factory=StatisticsSummary)
    by_leave_type: List[LeaveTypeStats] = []
    by_department: List[DepartmentStats] = []
