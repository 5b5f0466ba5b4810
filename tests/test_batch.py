"""Tests for the sequential, rate-limited batch fetcher."""

from unittest.mock import AsyncMock, patch

import pytest

from webvitals.models.vitals import TrackedTarget
from webvitals.psi.batch import batch_fetch
from webvitals.psi.client import PageSpeedError

from tests.conftest import make_snapshot


def _targets(n: int) -> list[TrackedTarget]:
    return [TrackedTarget(id=f"t{i}", url=f"https://site{i}.example.com/") for i in range(n)]


class TestBatchFetch:
    @pytest.mark.asyncio
    async def test_fetches_in_order_with_progress(self):
        targets = _targets(3)
        fetch = AsyncMock(side_effect=[make_snapshot(i, lcp=float(i)) for i in range(3)])
        events = []

        with patch("webvitals.psi.batch.asyncio.sleep", new_callable=AsyncMock) as sleep:
            results = await batch_fetch(targets, fetch, on_progress=events.append, delay_seconds=2.0)

        assert [c.args[0] for c in fetch.await_args_list] == [t.url for t in targets]
        assert [r.id for r in results] == ["t0", "t1", "t2"]
        assert all(r.success for r in results)
        assert [(e.current, e.status) for e in events] == [
            (1, "processing"), (1, "completed"),
            (2, "processing"), (2, "completed"),
            (3, "processing"), (3, "completed"),
        ]
        assert all(e.total == 3 for e in events)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self):
        targets = _targets(3)
        fetch = AsyncMock(side_effect=[
            make_snapshot(0, lcp=1.0),
            PageSpeedError("Rate limit exceeded"),
            make_snapshot(2, lcp=2.0),
        ])
        events = []

        with patch("webvitals.psi.batch.asyncio.sleep", new_callable=AsyncMock):
            results = await batch_fetch(targets, fetch, on_progress=events.append)

        assert [r.success for r in results] == [True, False, True]
        assert results[1].error == "Rate limit exceeded"
        assert results[1].data is None
        assert results[2].data.lcp == 2.0
        error_events = [e for e in events if e.status == "error"]
        assert len(error_events) == 1
        assert error_events[0].current == 2
        assert error_events[0].error == "Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_single_target_never_sleeps(self):
        fetch = AsyncMock(return_value=make_snapshot(lcp=1.0))
        with patch("webvitals.psi.batch.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await batch_fetch(_targets(1), fetch)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_captured(self):
        fetch = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("webvitals.psi.batch.asyncio.sleep", new_callable=AsyncMock):
            results = await batch_fetch(_targets(2), fetch)
        assert [r.error for r in results] == ["boom", "boom"]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        fetch = AsyncMock()
        assert await batch_fetch([], fetch) == []
        fetch.assert_not_awaited()
