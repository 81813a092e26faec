from typing import Any, Dict, Generic, Literal, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone

T = TypeVar("T")

DataSource = Literal["remote", "cache", "default"]

class ApiResponse(BaseModel):
    """Envelope returned by every leave backend endpoint."""
    model_config = ConfigDict(extra="allow")

    success: bool = False
    message: Optional[str] = None
    data: Any = None
    pagination: Optional[Dict[str, Any]] = None

class Fetched(BaseModel, Generic[T]):
    """
    Result of a read that may have degraded to local data.

    `stale` is True whenever the data did not come from the backend, so
    callers can tell authoritative results from placeholders.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: T
    source: DataSource = "remote"
    stale: bool = False
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def fresh(cls, data: T) -> "Fetched[T]":
        return cls(data=data, source="remote", stale=False)

    @classmethod
    def fallback(cls, data: T, source: DataSource = "cache") -> "Fetched[T]":
        return cls(data=data, source=source, stale=True)
