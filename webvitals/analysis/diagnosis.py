"""Diagnosis ranking: turns a snapshot into a short, prioritized list of issues."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from webvitals.models.vitals import DiagnosisItem, MetricStatus, Severity, VitalsSnapshot
from webvitals.thresholds import classify


MAX_DIAGNOSES = 5
MAX_OPPORTUNITIES = 3
MIN_OPPORTUNITY_SAVINGS = 0.5  # seconds
HIGH_OPPORTUNITY_SAVINGS = 2.0  # seconds

CORE_VITALS = ("lcp", "cls", "inp")


def _lcp_diagnosis(value: float) -> Optional[DiagnosisItem]:
    if value > 4.0:
        return DiagnosisItem(
            severity=Severity.HIGH,
            issue="Largest Contentful Paint is very slow",
            description=f'LCP of {value:.2f}s exceeds the "Poor" threshold of 4.0s',
            recommendations=[
                "Optimize image loading and use modern formats (WebP, AVIF)",
                "Implement resource hints (preload, prefetch) for critical resources",
                "Reduce server response times (TTFB)",
                "Remove render-blocking JavaScript and CSS",
            ],
        )
    if value > 2.5:
        return DiagnosisItem(
            severity=Severity.MEDIUM,
            issue="Largest Contentful Paint needs improvement",
            description=f'LCP of {value:.2f}s is above the "Good" threshold of 2.5s',
            recommendations=[
                "Compress and optimize images",
                "Use a Content Delivery Network (CDN)",
                "Eliminate render-blocking resources",
                "Improve server response times",
            ],
        )
    return None


def _cls_diagnosis(value: float) -> Optional[DiagnosisItem]:
    if value > 0.25:
        return DiagnosisItem(
            severity=Severity.HIGH,
            issue="Cumulative Layout Shift is causing poor user experience",
            description=f'CLS of {value:.3f} exceeds the "Poor" threshold of 0.25',
            recommendations=[
                "Add size attributes to images and video elements",
                "Reserve space for ads and dynamic content",
                "Avoid inserting content above existing content",
                "Use CSS aspect-ratio for responsive images",
            ],
        )
    if value > 0.1:
        return DiagnosisItem(
            severity=Severity.MEDIUM,
            issue="Cumulative Layout Shift needs improvement",
            description=f'CLS of {value:.3f} is above the "Good" threshold of 0.1',
            recommendations=[
                "Set explicit dimensions for images and embeds",
                "Avoid dynamically injected content",
                "Use font-display: swap for web fonts",
                "Ensure ads containers have reserved space",
            ],
        )
    return None


def _inp_diagnosis(value: float) -> Optional[DiagnosisItem]:
    if value > 500:
        return DiagnosisItem(
            severity=Severity.HIGH,
            issue="Interaction to Next Paint is very slow",
            description=f'INP of {round(value)}ms exceeds the "Poor" threshold of 500ms',
            recommendations=[
                "Reduce JavaScript execution time",
                "Avoid long-running main thread tasks",
                "Optimize event handlers and callbacks",
                "Use web workers for heavy computations",
            ],
        )
    if value > 200:
        return DiagnosisItem(
            severity=Severity.MEDIUM,
            issue="Interaction to Next Paint needs improvement",
            description=f'INP of {round(value)}ms is above the "Good" threshold of 200ms',
            recommendations=[
                "Debounce user input handlers",
                "Break up long JavaScript tasks",
                "Optimize third-party scripts",
                "Use requestIdleCallback for non-critical work",
            ],
        )
    return None


_VITAL_DIAGNOSERS = {
    "lcp": _lcp_diagnosis,
    "cls": _cls_diagnosis,
    "inp": _inp_diagnosis,
}


def diagnose_vital(metric: str, value: Optional[float]) -> Optional[DiagnosisItem]:
    """Diagnosis for a single core vital, or None when it is good or missing."""
    if value is None or classify(metric, value) == MetricStatus.GOOD:
        return None
    return _VITAL_DIAGNOSERS[metric](value)


def _opportunity_diagnoses(snapshot: VitalsSnapshot) -> list[DiagnosisItem]:
    items = []
    for opp in snapshot.opportunities[:MAX_OPPORTUNITIES]:
        if opp.savings_seconds <= MIN_OPPORTUNITY_SAVINGS:
            continue
        items.append(DiagnosisItem(
            severity=Severity.HIGH if opp.savings_seconds > HIGH_OPPORTUNITY_SAVINGS else Severity.MEDIUM,
            issue=opp.title or opp.id,
            description=f"Potential savings: {opp.savings_seconds:g}s",
            recommendations=[opp.description],
            is_opportunity=True,
        ))
    return items


def _performance_diagnosis(performance: Optional[float]) -> Optional[DiagnosisItem]:
    if performance is None:
        return None
    if performance < 50:
        return DiagnosisItem(
            severity=Severity.HIGH,
            issue="Overall Performance Score is Poor",
            description=f"Performance score of {performance:.0f}/100 needs immediate attention",
            recommendations=[
                "Focus on Core Web Vitals improvements",
                "Optimize resource loading and delivery",
                "Minimize main thread work",
                "Reduce unused JavaScript and CSS",
            ],
        )
    if performance < 90:
        return DiagnosisItem(
            severity=Severity.MEDIUM,
            issue="Performance Score can be improved",
            description=f"Performance score of {performance:.0f}/100 has room for optimization",
            recommendations=[
                "Implement performance best practices",
                "Optimize images and media",
                "Review third-party scripts",
                "Enable compression and caching",
            ],
        )
    return None


def diagnose(snapshot: VitalsSnapshot) -> list[DiagnosisItem]:
    """Collect vital, opportunity and score diagnoses, most severe first.

    Sorting is stable, so items of equal severity keep the order vitals,
    opportunities, overall score. At most five items are returned.
    """
    items: list[DiagnosisItem] = []
    for metric in CORE_VITALS:
        item = diagnose_vital(metric, snapshot.metric(metric))
        if item:
            items.append(item)

    items.extend(_opportunity_diagnoses(snapshot))

    perf_item = _performance_diagnosis(snapshot.performance)
    if perf_item:
        items.append(perf_item)

    items.sort(key=lambda d: d.severity.rank, reverse=True)
    return items[:MAX_DIAGNOSES]


def count_high_severity(items: list[DiagnosisItem]) -> int:
    return sum(1 for d in items if d.severity == Severity.HIGH)


class VitalStatus(BaseModel):
    metric: str
    value: Optional[float] = None
    status: MetricStatus = MetricStatus.UNKNOWN


class CoreVitalsAssessment(BaseModel):
    overall_status: str  # Good, Needs Improvement, Poor, Unknown
    message: str
    vitals: list[VitalStatus] = Field(default_factory=list)
    pass_count: int = 0
    needs_improvement_count: int = 0
    fail_count: int = 0
    measured_count: int = 0


def assess_core_web_vitals(snapshot: VitalsSnapshot) -> CoreVitalsAssessment:
    """Roll LCP, CLS and INP up into a single pass/fail verdict."""
    vitals = []
    for metric in CORE_VITALS:
        value = snapshot.metric(metric)
        vitals.append(VitalStatus(metric=metric, value=value, status=classify(metric, value)))

    passed = sum(1 for v in vitals if v.status == MetricStatus.GOOD)
    needs_improvement = sum(1 for v in vitals if v.status == MetricStatus.NEEDS_IMPROVEMENT)
    failed = sum(1 for v in vitals if v.status == MetricStatus.POOR)

    if failed:
        overall, message = "Poor", f"{failed} vitals failing"
    elif needs_improvement:
        overall, message = "Needs Improvement", f"{needs_improvement} vitals need improvement"
    elif passed == len(CORE_VITALS):
        overall, message = "Good", "All Core Web Vitals passing"
    else:
        overall, message = "Unknown", "Insufficient data"

    return CoreVitalsAssessment(
        overall_status=overall,
        message=message,
        vitals=vitals,
        pass_count=passed,
        needs_improvement_count=needs_improvement,
        fail_count=failed,
        measured_count=sum(1 for v in vitals if v.value is not None),
    )
