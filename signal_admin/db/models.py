"""SQLAlchemy database models."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Signal status values
STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_RESOLVED = "resolved"

# Signal priority values
PRIORITY_HIGH = "high"
PRIORITY_NORMAL = "normal"
PRIORITY_LOW = "low"


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid4().hex


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Signal(Base):
    """Citizen-submitted report of illegal waste dumping."""

    __tablename__ = "signals"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # Free strings: rows written by other channels may carry values we don't know
    status: Mapped[str] = mapped_column(
        String(32), default=STATUS_PENDING, nullable=False, index=True
    )
    priority: Mapped[str] = mapped_column(
        String(16), default=PRIORITY_NORMAL, nullable=False, index=True
    )
    # {"latitude": float, "longitude": float, "address": str?, "accuracy": float?}
    location: Mapped[Optional[dict]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reporter identity
    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Triage
    assigned_to: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )  # Collector email
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(status = 'resolved') = (resolved_at IS NOT NULL)",
            name="ck_signal_resolved_at",
        ),
    )


class UserStats(Base):
    """Per-reporter rollup of signal counts, maintained by the update engine."""

    __tablename__ = "user_stats"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_reports: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, index=True
    )
    pending_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    in_progress_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    resolved_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("total_reports >= 0", name="ck_user_stats_total"),
        CheckConstraint("pending_reports >= 0", name="ck_user_stats_pending"),
        CheckConstraint("in_progress_reports >= 0", name="ck_user_stats_in_progress"),
        CheckConstraint("resolved_reports >= 0", name="ck_user_stats_resolved"),
    )


class Collector(Base):
    """Staff member signals can be assigned to for cleanup."""

    __tablename__ = "collectors"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )


class Admin(Base):
    """Membership marker granting access to the console."""

    __tablename__ = "admins"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
