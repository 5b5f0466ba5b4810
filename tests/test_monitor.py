"""Tests for the refresh pipeline: fetch, store, detect and alert."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from webvitals.alerts.dispatcher import AlertOutcome
from webvitals.models.config import MonitorSettings
from webvitals.monitor import REFRESH_JOB_ID, VitalsMonitor
from webvitals.psi.client import PageSpeedError
from webvitals.storage.backend import LAST_REFRESH_KEY

from tests.conftest import make_snapshot


def _monitor(backend, settings, fetch_side_effect) -> VitalsMonitor:
    client = MagicMock()
    client.fetch = AsyncMock(side_effect=fetch_side_effect)
    dispatcher = MagicMock()
    dispatcher.send = AsyncMock(return_value=AlertOutcome(message="sent"))
    return VitalsMonitor(backend, settings=settings, client=client, dispatcher=dispatcher)


class TestRefreshAll:
    @pytest.mark.asyncio
    async def test_requires_api_key(self, backend, target):
        monitor = _monitor(backend, MonitorSettings(), [])
        with pytest.raises(PageSpeedError, match="API key"):
            await monitor.refresh_all()

    @pytest.mark.asyncio
    async def test_no_targets(self, backend, settings):
        monitor = _monitor(backend, settings, [])
        summary = await monitor.refresh_all()
        assert summary.results == []
        monitor.client.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stores_snapshots_and_records_refresh_time(self, backend, settings, store):
        a = store.targets.add("https://a.example.com")
        b = store.targets.add("https://b.example.com")
        monitor = _monitor(backend, settings, [
            make_snapshot(0, lcp=2.0),
            PageSpeedError("Rate limit exceeded"),
        ])

        with patch("webvitals.psi.batch.asyncio.sleep", new_callable=AsyncMock):
            summary = await monitor.refresh_all()

        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.results[1].error == "Rate limit exceeded"
        assert store.latest(a.id).lcp == 2.0
        assert store.latest(b.id) is None
        assert monitor.last_refresh() == summary.completed_at
        monitor.dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_degradation_triggers_alert(self, backend, settings, store, target):
        store.append(target.id, make_snapshot(0, lcp=2.0))
        store.append(target.id, make_snapshot(1, lcp=2.1))
        monitor = _monitor(backend, settings, [make_snapshot(2, lcp=4.5)])

        summary = await monitor.refresh_all()

        result = summary.results[0]
        assert [e.metric for e in result.degradations] == ["lcp"]
        assert result.degradations[0].previous_value == 2.0
        assert result.alert.message == "sent"
        assert summary.degraded == 1
        sent_target, sent_events = monitor.dispatcher.send.await_args.args
        assert sent_target.id == target.id
        assert sent_events == result.degradations
        assert len(store.all(target.id)) == 3

    @pytest.mark.asyncio
    async def test_second_measurement_never_alerts(self, backend, settings, store, target):
        store.append(target.id, make_snapshot(0, lcp=2.0))
        monitor = _monitor(backend, settings, [make_snapshot(1, lcp=4.5)])

        result = await monitor.refresh_target(target.id)

        assert result.degradations == []
        assert result.alert is None
        monitor.dispatcher.send.assert_not_awaited()
        assert store.latest(target.id).lcp == 4.5

    @pytest.mark.asyncio
    async def test_inactive_targets_are_skipped(self, backend, settings, store, target):
        targets = store.targets.list()
        targets[0].is_active = False
        store.targets._save(targets)
        monitor = _monitor(backend, settings, [])
        summary = await monitor.refresh_all()
        assert summary.results == []


class TestRefreshTarget:
    @pytest.mark.asyncio
    async def test_unknown_id(self, backend, settings):
        monitor = _monitor(backend, settings, [])
        with pytest.raises(KeyError):
            await monitor.refresh_target("missing")

    @pytest.mark.asyncio
    async def test_fetch_error_is_returned(self, backend, settings, target):
        monitor = _monitor(backend, settings, [PageSpeedError("boom")])
        result = await monitor.refresh_target(target.id)
        assert result.success is False
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_success(self, backend, settings, store, target):
        monitor = _monitor(backend, settings, [make_snapshot(0, performance=91)])
        result = await monitor.refresh_target(target.id)
        assert result.success is True
        assert store.latest(target.id).performance == 91


class TestAutoRefresh:
    def test_due_when_never_refreshed(self, backend, settings):
        assert _monitor(backend, settings, []).is_refresh_due() is True

    def test_not_due_inside_interval(self, backend, settings):
        monitor = _monitor(backend, settings, [])
        now = datetime(2025, 1, 2, tzinfo=timezone.utc)
        monitor._mark_refreshed(now - timedelta(hours=23))
        assert monitor.is_refresh_due(now) is False
        assert monitor.is_refresh_due(now + timedelta(hours=1)) is True

    def test_disabled(self, backend):
        settings = MonitorSettings(google_psi_api_key="k", auto_refresh_enabled=False)
        assert _monitor(backend, settings, []).is_refresh_due() is False

    def test_unreadable_timestamp(self, backend, settings):
        backend.set(LAST_REFRESH_KEY, '"yesterday"')
        monitor = _monitor(backend, settings, [])
        assert monitor.last_refresh() is None
        assert monitor.is_refresh_due() is True

    @pytest.mark.asyncio
    async def test_refresh_if_due_runs_once_per_interval(self, backend, settings, target):
        monitor = _monitor(backend, settings, [make_snapshot(0, lcp=1.0)])
        first = await monitor.refresh_if_due()
        second = await monitor.refresh_if_due()
        assert first.succeeded == 1
        assert second is None
        assert monitor.client.fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_if_due_survives_missing_key(self, backend, target):
        monitor = _monitor(backend, MonitorSettings(), [])
        assert await monitor.refresh_if_due() is None
        monitor.client.fetch.assert_not_awaited()

    def test_scheduler_job(self, backend, settings):
        monitor = _monitor(backend, settings, [])
        scheduler = monitor.build_scheduler(poll_seconds=5)
        job = scheduler.get_job(REFRESH_JOB_ID)
        assert job.func == monitor.refresh_if_due
        assert job.trigger.interval == timedelta(seconds=5)
        assert job.max_instances == 1
        assert job.next_run_time is not None

    @pytest.mark.asyncio
    async def test_watch_runs_scheduled_refresh_until_stopped(self, backend, settings, target):
        monitor = _monitor(backend, settings, [make_snapshot(0, lcp=1.0)])
        stop = asyncio.Event()
        refresh_all = monitor.refresh_all

        async def refresh_and_stop(**kwargs):
            summary = await refresh_all(**kwargs)
            stop.set()
            return summary

        monitor.refresh_all = refresh_and_stop
        await asyncio.wait_for(monitor.watch(poll_seconds=60, stop_event=stop), timeout=10)

        assert monitor.client.fetch.await_count == 1
        assert monitor.last_refresh() is not None
