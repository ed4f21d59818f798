"""
Statistics over the signal collection.

Snapshot and trend figures are always recounted from the signals
themselves. The leaderboard reads the per-reporter rollup instead, trading
exactness (the rollup can drift) for a read that costs O(limit).
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signal_admin import metrics
from signal_admin.db.models import (
    PRIORITY_HIGH,
    PRIORITY_LOW,
    PRIORITY_NORMAL,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_RESOLVED,
    Signal,
    UserStats,
    utcnow,
)
from signal_admin.db.transactions import translate_store_error
from signal_admin.errors import ValidationError
from signal_admin.realtime.notifier import CHANNEL_SIGNALS, ChangeNotifier
from signal_admin.realtime.subscriptions import Subscription
from signal_admin.schemas import ReporterStats, StatsSnapshot, TrendBucket

logger = logging.getLogger(__name__)

STATUS_FIELDS = {
    STATUS_PENDING: "pending",
    STATUS_IN_PROGRESS: "in_progress",
    STATUS_RESOLVED: "resolved",
}

PRIORITY_FIELDS = {
    PRIORITY_HIGH: "high_priority",
    PRIORITY_NORMAL: "normal_priority",
    PRIORITY_LOW: "low_priority",
}


def fold_snapshot_stats(rows: Iterable[tuple[Optional[str], Optional[str]]]) -> StatsSnapshot:
    """Count (status, priority) pairs. Unknown values count toward total only."""
    counts = dict.fromkeys(StatsSnapshot.model_fields, 0)
    for status, priority in rows:
        counts["total"] += 1
        status_field = STATUS_FIELDS.get(status)
        if status_field:
            counts[status_field] += 1
        priority_field = PRIORITY_FIELDS.get(priority)
        if priority_field:
            counts[priority_field] += 1
    return StatsSnapshot(**counts)


def bucket_by_day(rows: Iterable[tuple[datetime, Optional[str]]]) -> list[TrendBucket]:
    """
    Group (created_at, status) pairs by calendar day.

    Buckets come out in first-seen order, so rows sorted by created_at give
    ascending dates. Days without signals get no bucket.
    """
    buckets: dict[str, TrendBucket] = {}
    for created_at, status in rows:
        day = created_at.date().isoformat()
        bucket = buckets.get(day)
        if bucket is None:
            bucket = buckets[day] = TrendBucket(date=day)
        bucket.total += 1
        status_field = STATUS_FIELDS.get(status)
        if status_field:
            setattr(bucket, status_field, getattr(bucket, status_field) + 1)
    return list(buckets.values())


async def compute_snapshot_stats(db: AsyncSession) -> StatsSnapshot:
    """Recount every signal by status and priority."""
    started_at = time.perf_counter()
    try:
        result = await db.execute(select(Signal.status, Signal.priority))
        stats = fold_snapshot_stats(result.all())
    except SQLAlchemyError as e:
        logger.error(f"Error getting signal stats: {e}")
        raise translate_store_error(e, "compute_snapshot_stats") from e
    metrics.record_aggregation("snapshot", started_at)
    return stats


async def compute_trends(
    db: AsyncSession,
    window_days: int = 30,
    now: Optional[datetime] = None,
) -> list[TrendBucket]:
    """
    Daily counts for signals created in the trailing ``window_days`` days.

    Args:
        db: Database session
        window_days: Size of the trailing window in days
        now: End of the window (defaults to the current UTC time)

    Returns:
        One bucket per day that has signals, oldest first
    """
    if window_days < 1:
        raise ValidationError("Trend window must be at least one day", operation="compute_trends")

    started_at = time.perf_counter()
    since = (now or utcnow()) - timedelta(days=window_days)
    try:
        result = await db.execute(
            select(Signal.created_at, Signal.status)
            .where(Signal.created_at >= since)
            .order_by(Signal.created_at.asc())
        )
        trends = bucket_by_day(result.all())
    except SQLAlchemyError as e:
        logger.error(f"Error getting signal trends: {e}")
        raise translate_store_error(e, "compute_trends") from e
    metrics.record_aggregation("trends", started_at)
    return trends


async def top_reporters(db: AsyncSession, limit_count: int = 10) -> list[ReporterStats]:
    """
    Reporters with the most signals, read from the statistics rollup.

    Reporters without a statistics record never appear, however many
    signals they have submitted.
    """
    if limit_count < 1:
        raise ValidationError("Limit must be positive", operation="top_reporters")

    started_at = time.perf_counter()
    try:
        result = await db.execute(
            select(UserStats)
            .order_by(UserStats.total_reports.desc(), UserStats.user_id.asc())
            .limit(limit_count)
        )
        reporters = [ReporterStats.model_validate(s) for s in result.scalars().all()]
    except SQLAlchemyError as e:
        logger.error(f"Error getting top reporters: {e}")
        raise translate_store_error(e, "top_reporters") from e
    metrics.record_aggregation("top_reporters", started_at)
    return reporters


def subscribe_stats(
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Optional[ChangeNotifier] = None,
    poll_interval: Optional[float] = None,
) -> Subscription[StatsSnapshot]:
    """Live snapshot stats, fully recounted on every change."""

    async def fetch() -> StatsSnapshot:
        async with session_factory() as db:
            return await compute_snapshot_stats(db)

    return Subscription(
        "stats",
        fetch,
        collection=CHANNEL_SIGNALS,
        poll_interval=poll_interval,
        notifier=notifier,
    )
