"""Collector roster routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from signal_admin.api.deps import get_database, get_notifier, require_admin
from signal_admin.realtime.notifier import ChangeNotifier
from signal_admin.repositories.collectors import (
    add_collector,
    list_collectors,
    remove_collector,
)
from signal_admin.schemas import CollectorCreate, CollectorRecord

router = APIRouter(
    prefix="/api/collectors",
    tags=["collectors"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=List[CollectorRecord])
async def list_collectors_route(db: AsyncSession = Depends(get_database)):
    """List all collectors."""
    return await list_collectors(db)


@router.post("", response_model=CollectorRecord, status_code=201)
async def add_collector_route(
    data: CollectorCreate,
    db: AsyncSession = Depends(get_database),
    notifier: Optional[ChangeNotifier] = Depends(get_notifier),
):
    """Add a collector."""
    return await add_collector(db, data.email, notifier=notifier)


@router.delete("/{collector_id}", status_code=204)
async def remove_collector_route(
    collector_id: str,
    db: AsyncSession = Depends(get_database),
    notifier: Optional[ChangeNotifier] = Depends(get_notifier),
):
    """Remove a collector."""
    await remove_collector(db, collector_id, notifier=notifier)
    return Response(status_code=204)
