"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from webvitals.models.config import MonitorSettings
from webvitals.models.vitals import Opportunity, TrackedTarget, VitalsSnapshot
from webvitals.storage.backend import MemoryBackend
from webvitals.storage.store import VitalsStore


BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_snapshot(hours: int = 0, **metrics: Any) -> VitalsSnapshot:
    """Snapshot with a deterministic timestamp ``hours`` after BASE_TIME."""
    return VitalsSnapshot(timestamp=BASE_TIME + timedelta(hours=hours), **metrics)


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> VitalsStore:
    return VitalsStore(backend)


@pytest.fixture
def target(store: VitalsStore) -> TrackedTarget:
    """A target registered in the store."""
    return store.targets.add("https://example.com", "Example")


@pytest.fixture
def settings() -> MonitorSettings:
    return MonitorSettings(google_psi_api_key="test-key", request_delay_seconds=0)


# ============================================================================
# Snapshot Fixtures
# ============================================================================


@pytest.fixture
def good_snapshot() -> VitalsSnapshot:
    return make_snapshot(
        performance=95, accessibility=98, best_practices=100, seo=92,
        lcp=1.9, fcp=1.1, cls=0.02, ttfb=0.4, inp=120,
    )


@pytest.fixture
def poor_snapshot() -> VitalsSnapshot:
    return make_snapshot(
        hours=1,
        performance=40, accessibility=80, best_practices=75, seo=85,
        lcp=5.0, fcp=3.2, cls=0.05, ttfb=1.2, inp=350,
        opportunities=[
            Opportunity(id="unused-javascript", title="Reduce unused JavaScript",
                        description="Remove dead code", savings_seconds=2.4),
            Opportunity(id="offscreen-images", title="Defer offscreen images",
                        description="Lazy-load images", savings_seconds=0.8),
            Opportunity(id="font-display", title="Ensure text remains visible",
                        description="Use font-display", savings_seconds=0.2),
        ],
    )


# ============================================================================
# PageSpeed Payload Fixtures
# ============================================================================


@pytest.fixture
def psi_payload() -> dict:
    """A trimmed PageSpeed Insights v5 response."""
    return {
        "id": "https://example.com/",
        "lighthouseResult": {
            "requestedUrl": "https://example.com/",
            "lighthouseVersion": "12.0.0",
            "configSettings": {"formFactor": "mobile"},
            "categories": {
                "performance": {"score": 0.87},
                "accessibility": {"score": 0.954},
                "best-practices": {"score": 1.0},
                "seo": {"score": 0.9},
            },
            "audits": {
                "largest-contentful-paint": {
                    "numericValue": 2834.5, "numericUnit": "millisecond", "displayValue": "2.8 s",
                },
                "first-contentful-paint": {
                    "numericValue": 1200, "numericUnit": "millisecond", "displayValue": "1.2 s",
                },
                "cumulative-layout-shift": {
                    "numericValue": 0.0456, "numericUnit": "unitless", "displayValue": "0.046",
                },
                "server-response-time": {
                    "numericValue": 310, "numericUnit": "millisecond", "displayValue": "Root document took 310 ms",
                },
                "interaction-to-next-paint": {
                    "numericValue": 184.4, "numericUnit": "millisecond", "displayValue": "180 ms",
                },
                "speed-index": {"numericValue": 3100, "numericUnit": "millisecond"},
                "total-blocking-time": {"numericValue": 250, "numericUnit": "millisecond"},
                "unused-javascript": {
                    "title": "Reduce unused JavaScript",
                    "description": "Reduce unused JavaScript to decrease bytes consumed.",
                    "score": 0.3,
                    "details": {"overallSavingsMs": 1450},
                },
                "render-blocking-resources": {
                    "title": "Eliminate render-blocking resources",
                    "description": "Resources are blocking the first paint.",
                    "score": 0.5,
                    "details": {"overallSavingsMs": 620},
                },
                "uses-text-compression": {
                    "title": "Enable text compression",
                    "description": "Serve text with gzip or brotli.",
                    "score": 1,
                    "details": {"overallSavingsMs": 0},
                },
            },
        },
    }
