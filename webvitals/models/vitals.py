"""Data structures for tracked targets, vitals snapshots and derived analysis."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MetricStatus(str, Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs-improvement"
    POOR = "poor"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Diagnosis severity; order by ``rank`` (HIGH > MEDIUM > LOW)."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}


class TrackedTarget(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    url: str
    display_name: str = ""
    added_at: datetime = Field(default_factory=utc_now)
    last_checked_at: Optional[datetime] = None
    is_active: bool = True


class Opportunity(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    savings_seconds: float = 0.0
    score: Optional[float] = None
    display_value: Optional[str] = None


class VitalsSnapshot(BaseModel):
    """One PageSpeed measurement of a target at a point in time."""
    timestamp: datetime = Field(default_factory=utc_now)

    # Category scores, 0-100
    performance: Optional[float] = None
    accessibility: Optional[float] = None
    best_practices: Optional[float] = None
    seo: Optional[float] = None

    # Core vitals
    lcp: Optional[float] = None  # seconds
    fcp: Optional[float] = None  # seconds
    cls: Optional[float] = None
    ttfb: Optional[float] = None  # seconds
    inp: Optional[float] = None  # milliseconds
    speed_index: Optional[float] = None  # seconds
    total_blocking_time: Optional[float] = None  # seconds

    opportunities: list[Opportunity] = Field(default_factory=list)

    # Provider metadata
    strategy: str = "mobile"
    raw_url: Optional[str] = None
    lighthouse_version: Optional[str] = None

    @property
    def has_performance_data(self) -> bool:
        return any(
            v is not None
            for v in (self.lcp, self.fcp, self.cls, self.ttfb, self.performance)
        )

    @property
    def missing_categories(self) -> list[str]:
        missing = []
        if self.performance is None:
            missing.append("Performance")
        if self.accessibility is None:
            missing.append("Accessibility")
        if self.best_practices is None:
            missing.append("Best Practices")
        if self.seo is None:
            missing.append("SEO")
        return missing

    def metric(self, name: str) -> Optional[float]:
        return getattr(self, name, None)


class DegradationEvent(BaseModel):
    metric: str
    previous_value: float
    new_value: float
    threshold_poor: float


class DiagnosisItem(BaseModel):
    severity: Severity
    issue: str
    description: str = ""
    recommendations: list[str] = Field(default_factory=list)
    is_opportunity: bool = False


class ProgressEvent(BaseModel):
    current: int
    total: int
    url: str
    status: str  # processing, completed, error
    error: Optional[str] = None


class FetchResult(BaseModel):
    id: str
    url: str
    success: bool
    data: Optional[VitalsSnapshot] = None
    error: Optional[str] = None
