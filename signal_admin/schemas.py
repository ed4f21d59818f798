"""Pydantic models exchanged between the store layer, the engines and the API."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SignalStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class SignalPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class CamelModel(BaseModel):
    """Base for records rendered to the console with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Location(CamelModel):
    latitude: float
    longitude: float
    address: Optional[str] = None
    accuracy: Optional[float] = None


class SignalRecord(CamelModel):
    """A signal as read from the store."""

    id: str
    description: str = ""
    # Kept as plain strings so unknown values written elsewhere still load
    status: str
    priority: str
    location: Optional[Location] = None
    image_url: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    assigned_to: Optional[str] = None
    admin_notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class SignalCreate(CamelModel):
    """A new report arriving from the reporting channel."""

    description: str = Field(..., min_length=1)
    priority: SignalPriority = SignalPriority.NORMAL
    location: Optional[Location] = None
    image_url: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    created_at: Optional[datetime] = None


class SignalPatch(CamelModel):
    """
    Partial update of a signal's mutable fields.

    Only fields explicitly present are applied. ``assigned_to`` and
    ``admin_notes`` may be cleared with null; ``status`` and ``priority``
    may not.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        use_enum_values=True,
    )

    status: Optional[SignalStatus] = None
    priority: Optional[SignalPriority] = None
    admin_notes: Optional[str] = None
    assigned_to: Optional[str] = None

    @field_validator("status", "priority")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("cannot be null")
        return value

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually set, keyed by column name."""
        return self.model_dump(exclude_unset=True)


class SignalFilters(BaseModel):
    """Equality, date-range and free-text filters for the signal read path."""

    status: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None  # Inclusive through the end of the day
    # Case-insensitive substring of description, reporter email or address
    search: Optional[str] = None


class SignalPage(CamelModel):
    signals: list[SignalRecord]
    cursor: Optional[str] = None  # Pass back to continue after the last signal
    has_more: bool = False


class StatsSnapshot(BaseModel):
    """Full recount of the signal collection by status and priority."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    high_priority: int = 0
    normal_priority: int = 0
    low_priority: int = 0


class TrendBucket(BaseModel):
    """Counts for signals created on one calendar day."""

    date: str
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0


class ReporterStats(CamelModel):
    """A reporter's rollup record, as ranked on the leaderboard."""

    user_id: str
    total_reports: int = 0
    pending_reports: int = 0
    in_progress_reports: int = 0
    resolved_reports: int = 0
    updated_at: Optional[datetime] = None


class CollectorRecord(CamelModel):
    id: str
    email: str
    created_at: datetime


class CollectorCreate(BaseModel):
    email: str
