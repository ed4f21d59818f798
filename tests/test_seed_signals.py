"""Tests for the demo data seeding script."""

from collections import Counter

import pytest
from sqlalchemy import select

from conftest import make_signal
from scripts.seed_signals import recount_rollups, seed_from_data, seed_signal_id
from signal_admin.db.models import Signal, UserStats

SEED_DATA = {
    "admins": ["Admin@Example.org"],
    "collectors": ["crew@example.org", "not an email"],
    "signals": [
        {
            "id": "rubble",
            "description": "Rubble behind the school",
            "user_id": "reporter-1",
            "created_at": "2024-05-02T08:15:00+03:00",
        },
        {
            "description": "Tyres on the river bank",
            "status": "in_progress",
            "user_id": "reporter-2",
            "created_at": "2024-05-03T17:40:00+00:00",
        },
        {
            "id": "bags",
            "description": "Bags at the bus stop",
            "status": "resolved",
            "user_id": "reporter-1",
            "created_at": "2024-05-04T11:05:00+00:00",
        },
        {"description": "No reporter"},
    ],
}


async def _rollups_and_counts(db_session):
    result = await db_session.execute(select(Signal.user_id, Signal.status))
    rows = result.all()
    signals = Counter(user_id for user_id, _ in rows)

    result = await db_session.execute(
        select(UserStats).execution_options(populate_existing=True)
    )
    rollups = {s.user_id: s for s in result.scalars().all()}
    return signals, rollups


def test_seed_signal_id_is_stable():
    entry = {"description": "Rubble", "user_id": "u1", "created_at": "2024-01-01T00:00:00"}

    assert seed_signal_id(entry) == seed_signal_id(dict(entry))
    assert seed_signal_id({**entry, "id": "given"}) == "given"
    assert seed_signal_id({**entry, "description": "Tyres"}) != seed_signal_id(entry)


def test_recount_rollups_buckets_by_status():
    rollups = recount_rollups([("u1", "pending"), ("u1", "resolved"), ("u1", "archived"), ("u2", "in_progress")])

    by_user = {r.user_id: r for r in rollups}
    assert by_user["u1"].total_reports == 3
    assert (by_user["u1"].pending_reports, by_user["u1"].resolved_reports) == (1, 1)
    assert by_user["u2"].in_progress_reports == 1


@pytest.mark.asyncio
async def test_seeding_twice_keeps_rollups_consistent(db_session):
    first = await seed_from_data(db_session, SEED_DATA)
    second = await seed_from_data(db_session, SEED_DATA)

    assert first["signals"] == 3
    assert first["errors"] == 1
    assert second["signals"] == 0
    assert second["skipped"] == 3
    assert second["admins"] == 0
    assert second["collectors"] == 0

    signals, rollups = await _rollups_and_counts(db_session)
    assert signals == {"reporter-1": 2, "reporter-2": 1}
    assert {user_id: r.total_reports for user_id, r in rollups.items()} == dict(signals)
    assert rollups["reporter-1"].pending_reports == 1
    assert rollups["reporter-1"].resolved_reports == 1
    assert rollups["reporter-2"].in_progress_reports == 1


@pytest.mark.asyncio
async def test_rollup_counts_signals_stored_before_seeding(db_session, seed):
    # A signal the reporting channel already stored for a seeded reporter
    await seed(make_signal(id="earlier", user_id="reporter-1", status="in_progress"))

    await seed_from_data(db_session, SEED_DATA)

    signals, rollups = await _rollups_and_counts(db_session)
    assert signals["reporter-1"] == 3
    assert rollups["reporter-1"].total_reports == 3
    assert rollups["reporter-1"].in_progress_reports == 1
