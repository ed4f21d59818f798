"""Statistics API endpoints for the console dashboard."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signal_admin.api.deps import (
    get_database,
    get_notifier,
    get_session_factory,
    require_admin,
)
from signal_admin.api.streaming import stream_subscription
from signal_admin.config import settings
from signal_admin.engine.aggregation import (
    compute_snapshot_stats,
    compute_trends,
    subscribe_stats,
    top_reporters,
)
from signal_admin.realtime.notifier import ChangeNotifier
from signal_admin.schemas import ReporterStats, StatsSnapshot, TrendBucket

router = APIRouter(
    prefix="/api/stats",
    tags=["stats"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=StatsSnapshot)
async def get_stats(db: AsyncSession = Depends(get_database)):
    """Signal counts by status and priority."""
    return await compute_snapshot_stats(db)


@router.get("/stream")
async def stream_stats(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Optional[ChangeNotifier] = Depends(get_notifier),
):
    """Live signal counts, recomputed whenever signals change."""
    subscription = subscribe_stats(session_factory, notifier=notifier)
    return stream_subscription(request, subscription, lambda stats: stats.model_dump_json())


@router.get("/trends", response_model=List[TrendBucket])
async def get_trends(
    days: Optional[int] = Query(default=None, ge=1, le=366),
    db: AsyncSession = Depends(get_database),
):
    """Daily signal counts over the trailing window."""
    return await compute_trends(db, window_days=days or settings.trends_default_days)


@router.get("/top-reporters", response_model=List[ReporterStats])
async def get_top_reporters(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db: AsyncSession = Depends(get_database),
):
    """Reporters ranked by total signals submitted."""
    return await top_reporters(db, limit_count=limit or settings.top_reporters_default_limit)
