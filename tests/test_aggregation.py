"""Tests for snapshot stats, trends and the reporter leaderboard."""

import asyncio
from datetime import datetime

import pytest

from conftest import make_signal, make_stats
from signal_admin.engine.aggregation import (
    bucket_by_day,
    compute_snapshot_stats,
    compute_trends,
    fold_snapshot_stats,
    subscribe_stats,
    top_reporters,
)
from signal_admin.engine.updates import update_signal
from signal_admin.errors import ValidationError


class TestFolds:
    """Pure folds, no database."""

    def test_fold_snapshot_counts_unknown_values_in_total_only(self):
        stats = fold_snapshot_stats(
            [
                ("pending", "high"),
                ("in_progress", "normal"),
                ("resolved", "low"),
                ("resolved", "high"),
                ("archived", "urgent"),
                (None, None),
            ]
        )

        assert stats.total == 6
        assert (stats.pending, stats.in_progress, stats.resolved) == (1, 1, 2)
        assert (stats.high_priority, stats.normal_priority, stats.low_priority) == (2, 1, 1)

    def test_fold_snapshot_empty(self):
        stats = fold_snapshot_stats([])
        assert stats.model_dump() == {
            "total": 0,
            "pending": 0,
            "in_progress": 0,
            "resolved": 0,
            "high_priority": 0,
            "normal_priority": 0,
            "low_priority": 0,
        }

    def test_bucket_by_day_is_sparse_and_ordered(self):
        buckets = bucket_by_day(
            [
                (datetime(2024, 1, 1, 10, 0), "pending"),
                (datetime(2024, 1, 1, 23, 0), "resolved"),
                (datetime(2024, 1, 2, 0, 30), "in_progress"),
                (datetime(2024, 1, 5, 8, 0), "spam"),
            ]
        )

        assert [b.date for b in buckets] == ["2024-01-01", "2024-01-02", "2024-01-05"]
        assert buckets[0].model_dump() == {
            "date": "2024-01-01",
            "total": 2,
            "pending": 1,
            "in_progress": 0,
            "resolved": 1,
        }
        assert buckets[1].in_progress == 1
        assert buckets[2].total == 1
        assert buckets[2].pending + buckets[2].in_progress + buckets[2].resolved == 0


@pytest.mark.asyncio
async def test_snapshot_total_matches_collection(db_session, seed):
    await seed(
        make_signal(id="a", status="pending", priority="high"),
        make_signal(id="b", status="in_progress", priority="normal"),
        make_signal(id="c", status="resolved", priority="low"),
        make_signal(id="d", status="duplicate", priority="normal"),
    )

    stats = await compute_snapshot_stats(db_session)

    assert stats.total == 4
    assert stats.pending == 1
    assert stats.in_progress == 1
    assert stats.resolved == 1
    assert stats.high_priority == 1
    assert stats.normal_priority == 2
    assert stats.low_priority == 1


@pytest.mark.asyncio
async def test_snapshot_ignores_rollup(db_session, seed):
    # A wildly wrong rollup must not leak into the recount
    await seed(make_signal(id="a"), make_stats(total_reports=50, pending_reports=50))

    stats = await compute_snapshot_stats(db_session)

    assert stats.total == 1
    assert stats.pending == 1


@pytest.mark.asyncio
async def test_trends_bucket_by_creation_day(db_session, seed):
    await seed(
        make_signal(id="a", created_at=datetime(2024, 1, 1, 10, 0)),
        make_signal(id="b", created_at=datetime(2024, 1, 1, 23, 0), status="resolved"),
        make_signal(id="c", created_at=datetime(2024, 1, 2, 0, 30), status="in_progress"),
    )

    trends = await compute_trends(db_session, window_days=30, now=datetime(2024, 1, 20, 12, 0))

    assert [(b.date, b.total) for b in trends] == [("2024-01-01", 2), ("2024-01-02", 1)]
    assert trends[0].pending == 1
    assert trends[0].resolved == 1
    assert trends[1].in_progress == 1


@pytest.mark.asyncio
async def test_trends_respect_window(db_session, seed):
    await seed(
        make_signal(id="old", created_at=datetime(2023, 11, 1, 9, 0)),
        make_signal(id="edge", created_at=datetime(2024, 1, 10, 12, 0)),
        make_signal(id="new", created_at=datetime(2024, 1, 16, 8, 0)),
    )

    trends = await compute_trends(db_session, window_days=7, now=datetime(2024, 1, 17, 12, 0))

    assert [b.date for b in trends] == ["2024-01-10", "2024-01-16"]


@pytest.mark.asyncio
async def test_trends_count_unknown_status_in_total_only(db_session, seed):
    await seed(make_signal(id="a", status="flagged", created_at=datetime(2024, 3, 3, 9, 0)))

    trends = await compute_trends(db_session, window_days=30, now=datetime(2024, 3, 4))

    assert len(trends) == 1
    assert trends[0].total == 1
    assert trends[0].pending == trends[0].in_progress == trends[0].resolved == 0


@pytest.mark.asyncio
async def test_trends_reject_empty_window(db_session):
    with pytest.raises(ValidationError):
        await compute_trends(db_session, window_days=0)


@pytest.mark.asyncio
async def test_top_reporters_ranked_from_rollup(db_session, seed):
    await seed(
        make_stats("alice", total_reports=3, pending_reports=3),
        make_stats("bob", total_reports=7, resolved_reports=7),
        make_stats("carol", total_reports=3, in_progress_reports=3),
        make_stats("dave", total_reports=1, pending_reports=1),
    )

    reporters = await top_reporters(db_session, limit_count=3)

    assert [r.user_id for r in reporters] == ["bob", "alice", "carol"]
    assert reporters[0].total_reports == 7
    assert reporters[0].resolved_reports == 7
    assert reporters[0].model_dump(by_alias=True)["userId"] == "bob"


@pytest.mark.asyncio
async def test_top_reporters_skip_users_without_rollup(db_session, seed):
    await seed(
        make_signal(id="a", user_id="ghost"),
        make_signal(id="b", user_id="ghost"),
        make_signal(id="c", user_id="ghost"),
        make_stats("alice", total_reports=1, pending_reports=1),
    )

    reporters = await top_reporters(db_session, limit_count=10)

    assert [r.user_id for r in reporters] == ["alice"]


@pytest.mark.asyncio
async def test_top_reporters_empty_and_invalid_limit(db_session):
    assert await top_reporters(db_session) == []
    with pytest.raises(ValidationError):
        await top_reporters(db_session, limit_count=0)


@pytest.mark.asyncio
async def test_stats_subscription_recounts_on_change(db_session, session_factory, seed):
    await seed(make_signal(id="a"), make_signal(id="b", priority="high"))

    subscription = subscribe_stats(session_factory, poll_interval=0.01)
    feed = subscription.__aiter__()
    try:
        first = await asyncio.wait_for(feed.__anext__(), timeout=2)
        assert first.total == 2
        assert first.pending == 2

        await update_signal(db_session, "a", {"status": "resolved"})

        second = await asyncio.wait_for(feed.__anext__(), timeout=2)
        assert second.total == 2
        assert second.pending == 1
        assert second.resolved == 1
    finally:
        subscription.cancel()
        await feed.aclose()
