"""Signal repository: read path, creation and the live signal feed."""

import base64
import binascii
import json
import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signal_admin.config import settings
from signal_admin.db.models import STATUS_PENDING, Signal, as_utc, utcnow
from signal_admin.db.transactions import translate_store_error
from signal_admin.errors import NotFoundError, ValidationError
from signal_admin.realtime.notifier import CHANNEL_SIGNALS, ChangeNotifier
from signal_admin.realtime.subscriptions import Subscription
from signal_admin.schemas import SignalCreate, SignalFilters, SignalPage, SignalRecord

logger = logging.getLogger(__name__)


def encode_cursor(signal: Signal) -> str:
    """Opaque continuation cursor pointing just after ``signal``."""
    payload = json.dumps({"c": signal.created_at.isoformat(), "id": signal.id})
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        return datetime.fromisoformat(payload["c"]), str(payload["id"])
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise ValidationError("Malformed pagination cursor", operation="list_signals") from e


def build_signal_query(filters: Optional[SignalFilters] = None):
    """
    Build the filtered listing query, newest first.

    Ties on created_at are broken by id so cursor pagination is stable.
    """
    query = select(Signal)
    filters = filters or SignalFilters()

    if filters.status:
        query = query.where(Signal.status == filters.status)
    if filters.priority:
        query = query.where(Signal.priority == filters.priority)
    if filters.assigned_to:
        query = query.where(Signal.assigned_to == filters.assigned_to)
    if filters.start_date:
        query = query.where(Signal.created_at >= datetime.combine(filters.start_date, time.min))
    if filters.end_date:
        # Inclusive: everything before the start of the following day
        end = datetime.combine(filters.end_date + timedelta(days=1), time.min)
        query = query.where(Signal.created_at < end)
    if filters.search and filters.search.strip():
        pattern = f"%{filters.search.strip()}%"
        query = query.where(
            or_(
                Signal.description.ilike(pattern),
                Signal.user_email.ilike(pattern),
                Signal.location["address"].as_string().ilike(pattern),
            )
        )

    return query.order_by(Signal.created_at.desc(), Signal.id.desc())


async def get_signal(db: AsyncSession, signal_id: str) -> SignalRecord:
    """Get a signal by id, raising NotFoundError if it doesn't exist."""
    try:
        signal = await db.get(Signal, signal_id)
    except SQLAlchemyError as e:
        logger.error(f"Error getting signal {signal_id}: {e}")
        raise translate_store_error(e, "get_signal", signal_id) from e

    if signal is None:
        raise NotFoundError("Signal not found", operation="get_signal", target_id=signal_id)
    return SignalRecord.model_validate(signal)


async def list_signals(
    db: AsyncSession,
    filters: Optional[SignalFilters] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
) -> SignalPage:
    """
    List one page of signals matching ``filters``, newest first.

    Args:
        db: Database session
        filters: Equality and date-range filters
        limit: Page size (defaults to settings, capped at signals_max_page_size)
        cursor: Cursor from the previous page, if continuing

    Returns:
        SignalPage with the signals, the cursor for the next page and has_more
    """
    limit = limit or settings.signals_page_size
    if limit < 1:
        raise ValidationError("Page size must be positive", operation="list_signals")
    limit = min(limit, settings.signals_max_page_size)

    query = build_signal_query(filters)
    if cursor:
        after_created_at, after_id = decode_cursor(cursor)
        query = query.where(
            or_(
                Signal.created_at < after_created_at,
                and_(Signal.created_at == after_created_at, Signal.id < after_id),
            )
        )

    try:
        # Fetch one extra row to know whether another page exists
        result = await db.execute(query.limit(limit + 1))
        rows = list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Error getting signals: {e}")
        raise translate_store_error(e, "list_signals") from e

    has_more = len(rows) > limit
    rows = rows[:limit]

    return SignalPage(
        signals=[SignalRecord.model_validate(s) for s in rows],
        cursor=encode_cursor(rows[-1]) if has_more else None,
        has_more=has_more,
    )


async def fetch_signals(
    db: AsyncSession, filters: Optional[SignalFilters] = None
) -> list[SignalRecord]:
    """All signals matching ``filters``, newest first."""
    try:
        result = await db.execute(build_signal_query(filters))
        return [SignalRecord.model_validate(s) for s in result.scalars().all()]
    except SQLAlchemyError as e:
        raise translate_store_error(e, "fetch_signals") from e


async def create_signal(
    db: AsyncSession,
    data: SignalCreate,
    notifier: Optional[ChangeNotifier] = None,
) -> SignalRecord:
    """
    Store a new report with status pending.

    The reporter's statistics record is owned by the reporting channel and
    is not created here.
    """
    signal = Signal(
        description=data.description,
        status=STATUS_PENDING,
        priority=data.priority.value,
        location=data.location.model_dump(exclude_none=True) if data.location else None,
        image_url=data.image_url,
        user_id=data.user_id,
        user_email=data.user_email,
        created_at=as_utc(data.created_at) if data.created_at else utcnow(),
    )
    db.add(signal)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating signal: {e}")
        raise translate_store_error(e, "create_signal") from e

    logger.info(f"Created signal {signal.id} for user {data.user_id}")
    if notifier is not None:
        await notifier.publish(CHANNEL_SIGNALS)
    return SignalRecord.model_validate(signal)


def subscribe_signals(
    session_factory: async_sessionmaker[AsyncSession],
    filters: Optional[SignalFilters] = None,
    notifier: Optional[ChangeNotifier] = None,
    poll_interval: Optional[float] = None,
) -> Subscription[list[SignalRecord]]:
    """Live feed of every signal matching ``filters``, newest first."""

    async def fetch() -> list[SignalRecord]:
        async with session_factory() as db:
            return await fetch_signals(db, filters)

    return Subscription(
        "signals",
        fetch,
        collection=CHANNEL_SIGNALS,
        poll_interval=poll_interval,
        notifier=notifier,
    )
