#!/usr/bin/env python3
"""
Seeding script for a local console database.

Loads signals_seed.json and populates admins, collectors, signals and
reporter rollups. Safe to run repeatedly: rows that already exist are
skipped.

Schema for signals_seed.json:
- admins: list of emails allowed into the console
- collectors: list of collector emails
- signals: list of signal objects
  - Required fields: description, user_id
  - Optional fields with defaults:
    - id: str (default: derived from user_id, created_at and description)
    - status: str (default: "pending")
    - priority: str (default: "normal")
    - location: {"latitude", "longitude", "address"?, "accuracy"?}
    - image_url, user_email, assigned_to, admin_notes
    - created_at: ISO timestamp (default: now)

Reporter rollups are not read from the file. Every seeded reporter's rollup
is recounted from all of that reporter's stored signals, so it matches the
signals table however many times the script runs.
"""

import asyncio
import hashlib
import json
import sys
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from signal_admin.db.models import (
    STATUS_PENDING,
    STATUS_RESOLVED,
    Admin,
    Base,
    Collector,
    Signal,
    UserStats,
    as_utc,
    utcnow,
)
from signal_admin.db.session import AsyncSessionLocal, engine
from signal_admin.engine.updates import STATUS_COUNTER_FIELDS
from signal_admin.errors import ValidationError
from signal_admin.repositories.collectors import normalize_email


def seed_signal_id(entry: dict) -> str:
    """Stable id for a seed entry so re-running the seed finds it again."""
    if entry.get("id"):
        return str(entry["id"])
    key = f"{entry['user_id']}|{entry.get('created_at', '')}|{entry['description']}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:32]


def build_signal(entry: dict) -> Signal:
    """Build a Signal row from a seed entry, keeping resolved_at consistent with status."""
    created_at = (
        as_utc(datetime.fromisoformat(entry["created_at"]))
        if entry.get("created_at")
        else utcnow()
    )
    status = entry.get("status", STATUS_PENDING)
    return Signal(
        id=seed_signal_id(entry),
        description=entry["description"],
        status=status,
        priority=entry.get("priority", "normal"),
        location=entry.get("location"),
        image_url=entry.get("image_url"),
        user_id=entry["user_id"],
        user_email=entry.get("user_email"),
        assigned_to=entry.get("assigned_to"),
        admin_notes=entry.get("admin_notes"),
        created_at=created_at,
        resolved_at=created_at if status == STATUS_RESOLVED else None,
    )


def recount_rollups(
    rows: Iterable[tuple[str, Optional[str]]], now: Optional[datetime] = None
) -> list[UserStats]:
    """Build one rollup per reporter from (user_id, status) rows."""
    counts: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for user_id, status in rows:
        user_counts = counts[user_id]
        user_counts["total_reports"] += 1
        field = STATUS_COUNTER_FIELDS.get(status)
        if field:
            user_counts[field] += 1

    now = now or utcnow()
    return [
        UserStats(
            user_id=user_id,
            total_reports=user_counts["total_reports"],
            pending_reports=user_counts["pending_reports"],
            in_progress_reports=user_counts["in_progress_reports"],
            resolved_reports=user_counts["resolved_reports"],
            updated_at=now,
        )
        for user_id, user_counts in counts.items()
    ]


async def _add_emails(db, model, emails: list[str], label: str) -> int:
    added = 0
    for raw in emails:
        try:
            email = normalize_email(raw)
        except ValidationError as e:
            print(f"  [ERROR] {label} {raw!r}: {e}")
            continue

        result = await db.execute(select(model).where(model.email == email))
        if result.scalar_one_or_none():
            print(f"  [SKIP] {label} {email} (already exists)")
            continue

        db.add(model(email=email))
        print(f"  [ADD] {label} {email}")
        added += 1
    return added


async def seed_from_data(db: AsyncSession, data: dict) -> dict[str, int]:
    """
    Seed admins, collectors and signals from parsed seed data and commit.

    Returns:
        Counts of added admins, collectors, signals, rebuilt rollups and errors
    """
    admins = await _add_emails(db, Admin, data.get("admins", []), "admin")
    collectors = await _add_emails(db, Collector, data.get("collectors", []), "collector")

    added = 0
    skipped = 0
    errors = 0
    reporters = set()
    for idx, entry in enumerate(data.get("signals", []), 1):
        missing_fields = [f for f in ("description", "user_id") if not entry.get(f)]
        if missing_fields:
            print(f"  [ERROR] Signal {idx}: Missing required fields: {', '.join(missing_fields)}")
            errors += 1
            continue
        try:
            signal = build_signal(entry)
        except ValueError as e:
            print(f"  [ERROR] Signal {idx}: {e}")
            errors += 1
            continue

        reporters.add(signal.user_id)
        if await db.get(Signal, signal.id) is not None:
            print(f"  [SKIP] Signal {idx} {signal.id} (already exists)")
            skipped += 1
            continue

        db.add(signal)
        print(f"  [ADD] Signal {idx} {signal.id}")
        added += 1

    rollups = []
    if reporters:
        await db.flush()
        # Recount from every stored signal, not just this batch
        result = await db.execute(
            select(Signal.user_id, Signal.status).where(Signal.user_id.in_(reporters))
        )
        rollups = recount_rollups(result.all())
        for rollup in rollups:
            await db.merge(rollup)

    await db.commit()
    return {
        "admins": admins,
        "collectors": collectors,
        "signals": added,
        "skipped": skipped,
        "rollups": len(rollups),
        "errors": errors,
    }


async def seed_signals():
    """Seed the console database from JSON file."""
    seed_file = Path(__file__).parent.parent / "signals_seed.json"

    if not seed_file.exists():
        print(f"Error: {seed_file} not found")
        sys.exit(1)

    try:
        with open(seed_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in {seed_file}: {e}")
        sys.exit(1)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        try:
            counts = await seed_from_data(db, data)
        except Exception as e:
            print(f"\nError: Failed to commit changes to database: {e}")
            await db.rollback()
            sys.exit(1)

    print(f"\nSeeding complete!")
    print(f"  - Admins: {counts['admins']}")
    print(f"  - Collectors: {counts['collectors']}")
    print(f"  - Signals: {counts['signals']} (skipped {counts['skipped']})")
    print(f"  - Reporter rollups: {counts['rollups']}")
    if counts["errors"] > 0:
        print(f"  - Errors: {counts['errors']}")


async def clear_signals():
    """Clear signals and reporter rollups."""
    async with AsyncSessionLocal() as db:
        await db.execute(delete(Signal))
        await db.execute(delete(UserStats))
        await db.commit()
        print("All signals and rollups cleared.")


if __name__ == "__main__":
    if len(sys.argv) > 1:
        if sys.argv[1] == "--clear":
            asyncio.run(clear_signals())
        elif sys.argv[1] == "--help":
            print("Usage: python seed_signals.py [OPTIONS]")
            print("")
            print("Options:")
            print("  --clear     Clear all signals and reporter rollups")
            print("  --help      Show this help message")
            print("")
            print("With no options, seeds from signals_seed.json")
        else:
            print(f"Unknown option: {sys.argv[1]}")
    else:
        asyncio.run(seed_signals())
