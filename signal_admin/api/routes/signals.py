"""Signal listing, detail and triage routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signal_admin.api.deps import (
    get_database,
    get_notifier,
    get_session_factory,
    require_admin,
)
from signal_admin.api.streaming import stream_subscription
from signal_admin.engine.updates import update_signal
from signal_admin.realtime.notifier import ChangeNotifier
from signal_admin.repositories.signals import get_signal, list_signals, subscribe_signals
from signal_admin.schemas import SignalFilters, SignalPage, SignalPatch, SignalRecord

router = APIRouter(
    prefix="/api/signals",
    tags=["signals"],
    dependencies=[Depends(require_admin)],
)

_signal_list = TypeAdapter(list[SignalRecord])


def signal_filters(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, max_length=200),
) -> SignalFilters:
    return SignalFilters(
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )


@router.get("", response_model=SignalPage)
async def list_signals_route(
    filters: SignalFilters = Depends(signal_filters),
    limit: Optional[int] = Query(None, ge=1),
    cursor: Optional[str] = None,
    db: AsyncSession = Depends(get_database),
):
    """List signals newest first, one page at a time."""
    return await list_signals(db, filters, limit=limit, cursor=cursor)


@router.get("/stream")
async def stream_signals(
    request: Request,
    filters: SignalFilters = Depends(signal_filters),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Optional[ChangeNotifier] = Depends(get_notifier),
):
    """Live feed: the full filtered signal list every time it changes."""
    subscription = subscribe_signals(session_factory, filters, notifier=notifier)
    return stream_subscription(
        request,
        subscription,
        lambda signals: _signal_list.dump_json(signals, by_alias=True).decode(),
    )


@router.get("/{signal_id}", response_model=SignalRecord)
async def get_signal_route(signal_id: str, db: AsyncSession = Depends(get_database)):
    """Get a signal by ID."""
    return await get_signal(db, signal_id)


@router.patch("/{signal_id}", response_model=SignalRecord)
async def update_signal_route(
    signal_id: str,
    patch: SignalPatch,
    db: AsyncSession = Depends(get_database),
    notifier: Optional[ChangeNotifier] = Depends(get_notifier),
):
    """Update status, priority, assignment or notes of a signal."""
    return await update_signal(db, signal_id, patch, notifier=notifier)
