"""Domain grouping and portfolio-level summaries across tracked targets."""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from webvitals.analysis.diagnosis import assess_core_web_vitals, count_high_severity, diagnose
from webvitals.models.vitals import TrackedTarget, VitalsSnapshot
from webvitals.thresholds import TRACKED_METRICS
from webvitals.url_utils import extract_domain


class AggregatedMetrics(BaseModel):
    metrics: dict[str, float] = Field(default_factory=dict)  # metric -> mean
    target_count: int = 0
    last_updated: Optional[datetime] = None
    total_issues: int = 0


class DomainGroup(BaseModel):
    domain: str
    targets: list[TrackedTarget] = Field(default_factory=list)
    aggregated_metrics: Optional[AggregatedMetrics] = None


def _aggregate(
    targets: list[TrackedTarget], snapshots: list[VitalsSnapshot],
) -> AggregatedMetrics:
    means: dict[str, float] = {}
    for metric in TRACKED_METRICS:
        values = [s.metric(metric) for s in snapshots if s.metric(metric) is not None]
        if values:
            means[metric] = sum(values) / len(values)

    return AggregatedMetrics(
        metrics=means,
        target_count=len(targets),
        last_updated=max(s.timestamp for s in snapshots),
        total_issues=sum(count_high_severity(diagnose(s)) for s in snapshots),
    )


def group_by_domain(
    targets: list[TrackedTarget],
    latest_by_target: Mapping[str, VitalsSnapshot],
) -> dict[str, DomainGroup]:
    """Group targets by hostname (``www.`` stripped) and average their latest metrics.

    A domain whose targets have no snapshot yet gets ``aggregated_metrics=None``.
    """
    grouped: dict[str, DomainGroup] = {}
    for target in targets:
        domain = extract_domain(target.url)
        grouped.setdefault(domain, DomainGroup(domain=domain)).targets.append(target)

    for group in grouped.values():
        snapshots = [latest_by_target[t.id] for t in group.targets if t.id in latest_by_target]
        if snapshots:
            group.aggregated_metrics = _aggregate(group.targets, snapshots)

    return grouped


class DashboardOverview(BaseModel):
    total_sites: int = 0
    sites_with_data: int = 0
    overall_status: str = "unknown"  # good, needs-improvement, poor, unknown
    good: int = 0
    needs_improvement: int = 0
    poor: int = 0
    unknown: int = 0
    critical_issues: int = 0
    avg_performance_score: Optional[int] = None
    best_performer: Optional[TrackedTarget] = None
    best_score: Optional[float] = None
    worst_performer: Optional[TrackedTarget] = None
    worst_score: Optional[float] = None


def dashboard_overview(
    targets: list[TrackedTarget],
    latest_by_target: Mapping[str, VitalsSnapshot],
) -> DashboardOverview:
    """Portfolio summary: CWV health counts, critical issues and score extremes."""
    overview = DashboardOverview(total_sites=len(targets))
    with_data = [t for t in targets if t.id in latest_by_target]
    overview.sites_with_data = len(with_data)
    if not with_data:
        overview.unknown = len(targets)
        return overview

    scores: list[float] = []
    for target in with_data:
        snapshot = latest_by_target[target.id]
        status = assess_core_web_vitals(snapshot).overall_status
        if status == "Good":
            overview.good += 1
        elif status == "Needs Improvement":
            overview.needs_improvement += 1
        elif status == "Poor":
            overview.poor += 1
        else:
            overview.unknown += 1

        overview.critical_issues += count_high_severity(diagnose(snapshot))

        if snapshot.performance is not None:
            scores.append(snapshot.performance)
            if overview.best_score is None or snapshot.performance > overview.best_score:
                overview.best_score = snapshot.performance
                overview.best_performer = target
            if overview.worst_score is None or snapshot.performance < overview.worst_score:
                overview.worst_score = snapshot.performance
                overview.worst_performer = target

    if scores:
        overview.avg_performance_score = round(sum(scores) / len(scores))

    if overview.poor:
        overview.overall_status = "poor"
    elif overview.needs_improvement:
        overview.overall_status = "needs-improvement"
    elif overview.good:
        overview.overall_status = "good"
    return overview
