"""
Transactional signal updates.

Every operator edit to a signal's status, priority, assignment or notes goes
through ``update_signal``. Within one transaction it:

1. reads the signal (missing -> NotFoundError, nothing written)
2. reads the reporter's statistics record, only if the status changes
3. merges the patch, stamps updated_at and keeps resolved_at in step with
   the status
4. moves the reporter's count from the old status bucket to the new one

All reads happen before any write, and the transaction body touches
nothing outside the session, so the runner can re-execute it from scratch
when the store reports a conflict.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from signal_admin import metrics
from signal_admin.db.models import (
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_RESOLVED,
    Signal,
    UserStats,
    utcnow,
)
from signal_admin.db.transactions import run_transaction
from signal_admin.errors import NotFoundError, SignalAdminError, ValidationError
from signal_admin.logging_config import get_logger
from signal_admin.realtime.notifier import CHANNEL_SIGNALS, ChangeNotifier
from signal_admin.schemas import SignalPatch, SignalRecord

OPERATION = "update_signal"

# Rollup counter for each known status; other statuses have no bucket
STATUS_COUNTER_FIELDS = {
    STATUS_PENDING: "pending_reports",
    STATUS_IN_PROGRESS: "in_progress_reports",
    STATUS_RESOLVED: "resolved_reports",
}


@dataclass
class UpdateOutcome:
    """What a committed update did, for logging and metrics after commit."""

    signal: SignalRecord
    old_status: str
    new_status: str
    stats_updated: bool = False
    stats_missing: bool = False

    @property
    def status_changed(self) -> bool:
        return self.old_status != self.new_status


def move_status_count(stats: UserStats, old_status: str, new_status: str, now: datetime) -> None:
    """Move one report from the old status bucket to the new one, never below zero."""
    old_field = STATUS_COUNTER_FIELDS.get(old_status)
    if old_field:
        setattr(stats, old_field, max(0, (getattr(stats, old_field) or 0) - 1))

    new_field = STATUS_COUNTER_FIELDS.get(new_status)
    if new_field:
        setattr(stats, new_field, (getattr(stats, new_field) or 0) + 1)

    stats.updated_at = now


def apply_resolution(signal: Signal, old_status: str, new_status: str, now: datetime) -> None:
    """Set resolved_at on entering resolved, clear it on leaving."""
    if new_status == STATUS_RESOLVED and old_status != STATUS_RESOLVED:
        signal.resolved_at = now
    elif old_status == STATUS_RESOLVED and new_status != STATUS_RESOLVED:
        signal.resolved_at = None


def coerce_patch(patch: Union[SignalPatch, dict[str, Any]], signal_id: str) -> dict[str, Any]:
    """Validate ``patch`` and return only the fields the caller set."""
    if not isinstance(patch, SignalPatch):
        try:
            patch = SignalPatch.model_validate(patch)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid signal update: {e.errors()[0]['msg']}",
                operation=OPERATION,
                target_id=signal_id,
            ) from e

    changes = patch.changes()
    if not changes:
        raise ValidationError("Nothing to update", operation=OPERATION, target_id=signal_id)
    return changes


async def update_signal(
    db: AsyncSession,
    signal_id: str,
    patch: Union[SignalPatch, dict[str, Any]],
    notifier: Optional[ChangeNotifier] = None,
) -> SignalRecord:
    """
    Apply ``patch`` to a signal and its reporter's statistics atomically.

    Args:
        db: Session with no transaction in progress
        signal_id: Signal to update
        patch: SignalPatch, or a dict of status/priority/adminNotes/assignedTo
        notifier: Optional notifier told about the change after commit

    Returns:
        The signal as committed

    Raises:
        ValidationError: Patch is empty or malformed
        NotFoundError: No signal with this id
        TransactionError: The store failed or kept conflicting
    """
    changes = coerce_patch(patch, signal_id)

    async def body(session: AsyncSession) -> UpdateOutcome:
        # Read phase
        result = await session.execute(
            select(Signal)
            .where(Signal.id == signal_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        signal = result.scalar_one_or_none()
        if signal is None:
            raise NotFoundError("Signal does not exist", operation=OPERATION, target_id=signal_id)

        old_status = signal.status
        new_status = changes.get("status", old_status)

        stats = None
        stats_missing = False
        if old_status != new_status and signal.user_id:
            stats_result = await session.execute(
                select(UserStats)
                .where(UserStats.user_id == signal.user_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            stats = stats_result.scalar_one_or_none()
            stats_missing = stats is None

        # Write phase
        now = utcnow()
        for field, value in changes.items():
            setattr(signal, field, value)
        signal.updated_at = now
        apply_resolution(signal, old_status, new_status, now)

        # The rollup is best-effort: a reporter without a record is skipped
        if stats is not None:
            move_status_count(stats, old_status, new_status, now)

        await session.flush()
        return UpdateOutcome(
            signal=SignalRecord.model_validate(signal),
            old_status=old_status,
            new_status=new_status,
            stats_updated=stats is not None,
            stats_missing=stats_missing,
        )

    try:
        outcome = await run_transaction(db, body, operation=OPERATION, target_id=signal_id)
    except SignalAdminError:
        metrics.record_signal_update(success=False)
        raise

    metrics.record_signal_update(success=True)
    log = get_logger(__name__, signal_id=signal_id, operation=OPERATION)
    if outcome.status_changed:
        metrics.record_status_transition(outcome.old_status, outcome.new_status)
        log.info(
            f"Signal {signal_id} moved {outcome.old_status} -> {outcome.new_status}"
            f" (stats {'updated' if outcome.stats_updated else 'skipped'})"
        )
    if outcome.stats_missing:
        metrics.user_stats_skipped_total.inc()
        log.warning(
            f"No statistics record for reporter {outcome.signal.user_id}; rollup not updated"
        )

    if notifier is not None:
        await notifier.publish(CHANNEL_SIGNALS)

    return outcome.signal
