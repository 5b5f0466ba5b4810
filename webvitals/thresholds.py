"""Web vitals thresholds and metric status classification."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional

from webvitals.models.vitals import MetricStatus


class Threshold(NamedTuple):
    good: float
    poor: float


# Google's Core Web Vitals thresholds
VITALS_THRESHOLDS: Mapping[str, Threshold] = MappingProxyType({
    "lcp": Threshold(good=2.5, poor=4.0),  # seconds
    "fcp": Threshold(good=1.8, poor=3.0),  # seconds
    "cls": Threshold(good=0.1, poor=0.25),  # unitless
    "ttfb": Threshold(good=0.8, poor=1.8),  # seconds
    "inp": Threshold(good=200, poor=500),  # milliseconds
    "performance": Threshold(good=90, poor=50),  # score out of 100
    "accessibility": Threshold(good=90, poor=50),
    "best_practices": Threshold(good=90, poor=50),
    "seo": Threshold(good=90, poor=50),
})

# Higher is better for these; everything else is lower-is-better.
SCORE_METRICS = frozenset({"performance", "accessibility", "best_practices", "seo"})

TRACKED_METRICS = (
    "performance", "accessibility", "best_practices", "seo",
    "lcp", "fcp", "cls", "ttfb", "inp",
)


def is_score_metric(metric: str) -> bool:
    return metric in SCORE_METRICS


def classify(metric: str, value: Optional[float]) -> MetricStatus:
    """Classify a metric value as good, needs-improvement or poor."""
    if value is None:
        return MetricStatus.UNKNOWN
    threshold = VITALS_THRESHOLDS.get(metric)
    if threshold is None:
        return MetricStatus.UNKNOWN

    if is_score_metric(metric):
        if value >= threshold.good:
            return MetricStatus.GOOD
        if value >= threshold.poor:
            return MetricStatus.NEEDS_IMPROVEMENT
        return MetricStatus.POOR

    if value <= threshold.good:
        return MetricStatus.GOOD
    if value <= threshold.poor:
        return MetricStatus.NEEDS_IMPROVEMENT
    return MetricStatus.POOR
