"""Collector roster repository."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from signal_admin.db.models import Collector
from signal_admin.db.transactions import translate_store_error
from signal_admin.errors import DuplicateError, NotFoundError, ValidationError
from signal_admin.realtime.notifier import CHANNEL_COLLECTORS, ChangeNotifier
from signal_admin.schemas import CollectorRecord

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Lowercase and trim an email, rejecting values that can't be one."""
    normalized = (email or "").strip().lower()
    local, _, domain = normalized.partition("@")
    if not local or not domain or " " in normalized:
        raise ValidationError(f"Invalid email: {email!r}", operation="add_collector")
    return normalized


async def list_collectors(db: AsyncSession) -> list[CollectorRecord]:
    """All collectors ordered by email."""
    try:
        result = await db.execute(select(Collector).order_by(Collector.email))
        return [CollectorRecord.model_validate(c) for c in result.scalars().all()]
    except SQLAlchemyError as e:
        logger.error(f"Error getting collectors: {e}")
        raise translate_store_error(e, "list_collectors") from e


async def add_collector(
    db: AsyncSession,
    email: str,
    notifier: Optional[ChangeNotifier] = None,
) -> CollectorRecord:
    """
    Add a collector to the roster.

    Raises:
        ValidationError: Email is malformed
        DuplicateError: A collector with this email already exists
    """
    email = normalize_email(email)

    try:
        result = await db.execute(select(Collector.id).where(Collector.email == email))
        if result.scalar_one_or_none() is not None:
            raise DuplicateError("Collector already exists", operation="add_collector", target_id=email)

        collector = Collector(email=email)
        db.add(collector)
        await db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent insert of the same email
        await db.rollback()
        raise DuplicateError(
            "Collector already exists", operation="add_collector", target_id=email
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error adding collector: {e}")
        raise translate_store_error(e, "add_collector", email) from e

    logger.info(f"Added collector {email}")
    if notifier is not None:
        await notifier.publish(CHANNEL_COLLECTORS)
    return CollectorRecord.model_validate(collector)


async def remove_collector(
    db: AsyncSession,
    collector_id: str,
    notifier: Optional[ChangeNotifier] = None,
) -> None:
    """Remove a collector by id. Signals keep whatever assignee they had."""
    try:
        collector = await db.get(Collector, collector_id)
        if collector is None:
            raise NotFoundError(
                "Collector not found", operation="remove_collector", target_id=collector_id
            )
        await db.delete(collector)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error removing collector: {e}")
        raise translate_store_error(e, "remove_collector", collector_id) from e

    logger.info(f"Removed collector {collector_id}")
    if notifier is not None:
        await notifier.publish(CHANNEL_COLLECTORS)
