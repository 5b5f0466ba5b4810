"""Sequential, rate-limited batch fetching of vitals for many targets."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from webvitals.models.vitals import FetchResult, ProgressEvent, TrackedTarget, VitalsSnapshot

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 2.0

FetchOne = Callable[[str], Awaitable[VitalsSnapshot]]
ProgressCallback = Callable[[ProgressEvent], None]


async def batch_fetch(
    targets: Sequence[TrackedTarget],
    fetch_one: FetchOne,
    on_progress: Optional[ProgressCallback] = None,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
) -> list[FetchResult]:
    """Fetch each target one after another, pausing between requests.

    A failing target is recorded as ``success=False`` and the batch moves on.
    ``on_progress`` receives a ``processing`` event before each request and a
    ``completed`` or ``error`` event after it.
    """
    results: list[FetchResult] = []
    total = len(targets)

    def report(index: int, url: str, status: str, error: Optional[str] = None) -> None:
        if on_progress:
            on_progress(ProgressEvent(current=index + 1, total=total, url=url, status=status, error=error))

    for i, target in enumerate(targets):
        report(i, target.url, "processing")
        try:
            snapshot = await fetch_one(target.url)
        except Exception as e:
            logger.error("Failed to fetch data for %s: %s", target.url, e)
            results.append(FetchResult(id=target.id, url=target.url, success=False, error=str(e)))
            report(i, target.url, "error", str(e))
        else:
            results.append(FetchResult(id=target.id, url=target.url, success=True, data=snapshot))
            report(i, target.url, "completed")

        if i < total - 1:
            await asyncio.sleep(delay_seconds)

    succeeded = sum(1 for r in results if r.success)
    logger.info("Batch complete: %d/%d targets fetched", succeeded, total)
    return results
