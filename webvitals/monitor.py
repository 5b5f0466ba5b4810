"""Refresh pipeline: fetch -> detect degradation -> store -> alert, plus scheduled auto refresh."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import BaseModel, Field

from webvitals.alerts.dispatcher import AlertDispatcher, AlertOutcome
from webvitals.analysis.degradation import detect_degradation
from webvitals.models.config import MonitorSettings
from webvitals.models.vitals import DegradationEvent, TrackedTarget, VitalsSnapshot
from webvitals.psi.batch import ProgressCallback, batch_fetch
from webvitals.psi.client import PageSpeedClient, PageSpeedError
from webvitals.storage.backend import LAST_REFRESH_KEY, StorageBackend
from webvitals.storage.store import VitalsStore, load_settings

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "auto_refresh"
DEFAULT_POLL_SECONDS = 30.0


class TargetRefresh(BaseModel):
    target_id: str
    url: str
    success: bool
    snapshot: Optional[VitalsSnapshot] = None
    degradations: list[DegradationEvent] = Field(default_factory=list)
    alert: Optional[AlertOutcome] = None
    error: Optional[str] = None


class RefreshSummary(BaseModel):
    started_at: datetime
    completed_at: Optional[datetime] = None
    results: list[TargetRefresh] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def degraded(self) -> int:
        return sum(1 for r in self.results if r.degradations)


class VitalsMonitor:
    """Coordinates fetching, storing and alerting for all tracked targets."""

    def __init__(
        self,
        backend: StorageBackend,
        settings: Optional[MonitorSettings] = None,
        client: Optional[PageSpeedClient] = None,
        dispatcher: Optional[AlertDispatcher] = None,
    ):
        self.backend = backend
        self.settings = settings or load_settings(backend)
        self.store = VitalsStore(backend, retention=self.settings.history_retention)
        self.client = client or PageSpeedClient(
            api_key=self.settings.google_psi_api_key,
            strategy=self.settings.strategy,
            timeout=self.settings.request_timeout_seconds,
        )
        self.dispatcher = dispatcher or AlertDispatcher(self.settings)

    async def refresh_all(self, on_progress: Optional[ProgressCallback] = None) -> RefreshSummary:
        """Fetch fresh vitals for every active target, one at a time."""
        if not self.settings.google_psi_api_key:
            raise PageSpeedError("Google PageSpeed Insights API key is required")

        summary = RefreshSummary(started_at=datetime.now(timezone.utc))
        targets = {t.id: t for t in self.store.targets.list() if t.is_active}
        if not targets:
            logger.info("No active targets to refresh")
            summary.completed_at = datetime.now(timezone.utc)
            return summary

        logger.info("=== Refreshing %d targets ===", len(targets))
        results = await batch_fetch(
            list(targets.values()),
            self.client.fetch,
            on_progress=on_progress,
            delay_seconds=self.settings.request_delay_seconds,
        )
        for result in results:
            target = targets[result.id]
            if result.success and result.data is not None:
                summary.results.append(await self._record(target, result.data))
            else:
                summary.results.append(TargetRefresh(
                    target_id=target.id, url=target.url, success=False, error=result.error,
                ))

        summary.completed_at = datetime.now(timezone.utc)
        self._mark_refreshed(summary.completed_at)
        logger.info(
            "=== Refresh complete: %d succeeded, %d failed, %d degraded ===",
            summary.succeeded, summary.failed, summary.degraded,
        )
        return summary

    async def refresh_target(self, target_id: str) -> TargetRefresh:
        """Fetch and record fresh vitals for a single target."""
        target = self.store.targets.get(target_id)
        if target is None:
            raise KeyError(f"No tracked target with id {target_id}")
        try:
            snapshot = await self.client.fetch(target.url)
        except PageSpeedError as e:
            logger.error("Failed to refresh %s: %s", target.url, e)
            return TargetRefresh(target_id=target.id, url=target.url, success=False, error=str(e))
        return await self._record(target, snapshot)

    async def _record(self, target: TrackedTarget, snapshot: VitalsSnapshot) -> TargetRefresh:
        events = detect_degradation(self.store, target.id, snapshot)
        self.store.append(target.id, snapshot)
        outcome = None
        if events:
            outcome = await self.dispatcher.send(target, events)
        return TargetRefresh(
            target_id=target.id,
            url=target.url,
            success=True,
            snapshot=snapshot,
            degradations=events,
            alert=outcome,
        )

    # --- Auto refresh ---

    def last_refresh(self) -> Optional[datetime]:
        try:
            raw = self.backend.get(LAST_REFRESH_KEY)
            return datetime.fromisoformat(raw.strip().strip('"')) if raw else None
        except (OSError, ValueError) as e:
            logger.warning("Could not read last refresh time: %s", e)
            return None

    def _mark_refreshed(self, when: datetime) -> None:
        try:
            self.backend.set(LAST_REFRESH_KEY, f'"{when.isoformat()}"')
        except OSError as e:
            logger.error("Could not record last refresh time: %s", e)

    def is_refresh_due(self, now: Optional[datetime] = None) -> bool:
        if not self.settings.auto_refresh_enabled:
            return False
        last = self.last_refresh()
        if last is None:
            return True
        now = now or datetime.now(timezone.utc)
        interval = timedelta(hours=self.settings.auto_refresh_interval_hours)
        return now - last >= interval

    async def refresh_if_due(
        self, on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[RefreshSummary]:
        """Scheduled job: refresh everything when the interval has elapsed."""
        if not self.is_refresh_due():
            logger.debug("Auto refresh not due yet")
            return None
        try:
            return await self.refresh_all(on_progress=on_progress)
        except PageSpeedError as e:
            logger.error("Auto refresh failed: %s", e)
            return None

    def build_scheduler(
        self,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        on_progress: Optional[ProgressCallback] = None,
        event_loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> AsyncIOScheduler:
        """Scheduler that checks ``is_refresh_due`` every ``poll_seconds``, starting now."""
        scheduler = AsyncIOScheduler(timezone="UTC", event_loop=event_loop)
        scheduler.add_job(
            self.refresh_if_due,
            "interval",
            seconds=poll_seconds,
            kwargs={"on_progress": on_progress},
            id=REFRESH_JOB_ID,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )
        return scheduler

    async def watch(
        self,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Run the auto-refresh scheduler until ``stop_event`` is set."""
        scheduler = self.build_scheduler(poll_seconds, on_progress, asyncio.get_running_loop())
        scheduler.start()
        logger.info("Auto refresh scheduler started (checking every %.0fs)", poll_seconds)
        try:
            await (stop_event or asyncio.Event()).wait()
        finally:
            scheduler.shutdown(wait=False)
            logger.info("Auto refresh scheduler stopped")
