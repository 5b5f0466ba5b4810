"""Rich table renderers for the CLI."""

from __future__ import annotations

from typing import Mapping, Optional

from rich.table import Table

from webvitals.analysis.aggregator import DashboardOverview, DomainGroup
from webvitals.analysis.diagnosis import assess_core_web_vitals
from webvitals.models.vitals import (
    DiagnosisItem,
    MetricStatus,
    Severity,
    TrackedTarget,
    VitalsSnapshot,
)
from webvitals.thresholds import VITALS_THRESHOLDS, classify, is_score_metric

METRIC_LABELS = {
    "performance": "Performance",
    "accessibility": "Accessibility",
    "best_practices": "Best Practices",
    "seo": "SEO",
    "lcp": "LCP",
    "fcp": "FCP",
    "cls": "CLS",
    "ttfb": "TTFB",
    "inp": "INP",
}

STATUS_STYLES = {
    MetricStatus.GOOD: "green",
    MetricStatus.NEEDS_IMPROVEMENT: "yellow",
    MetricStatus.POOR: "red",
    MetricStatus.UNKNOWN: "dim",
}

SEVERITY_STYLES = {Severity.HIGH: "red", Severity.MEDIUM: "yellow", Severity.LOW: "blue"}


def format_metric_value(metric: str, value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    if metric in ("lcp", "fcp", "ttfb"):
        return f"{value:.2f}s"
    if metric == "cls":
        return f"{value:.3f}"
    if metric == "inp":
        return f"{round(value)}ms"
    if is_score_metric(metric):
        return f"{round(value)}/100"
    return f"{value:g}"


def styled_metric(metric: str, value: Optional[float]) -> str:
    style = STATUS_STYLES[classify(metric, value)]
    return f"[{style}]{format_metric_value(metric, value)}[/{style}]"


def threshold_hint(metric: str) -> str:
    threshold = VITALS_THRESHOLDS.get(metric)
    if threshold is None:
        return ""
    if is_score_metric(metric):
        return f"Good: >={threshold.good:g} | Poor: <{threshold.poor:g}"
    unit = "ms" if metric == "inp" else "s" if metric in ("lcp", "fcp", "ttfb") else ""
    return f"Good: <={threshold.good:g}{unit} | Poor: >{threshold.poor:g}{unit}"


def targets_table(targets: list[TrackedTarget], latest: Mapping[str, VitalsSnapshot]) -> Table:
    table = Table(title="Tracked Websites")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("URL")
    for metric in ("performance", "lcp", "cls", "inp"):
        table.add_column(METRIC_LABELS[metric], justify="right")
    table.add_column("CWV")
    table.add_column("Last Checked")

    for target in targets:
        snapshot = latest.get(target.id)
        if snapshot is None:
            cells = ["N/A"] * 4 + ["[dim]No data[/dim]"]
        else:
            assessment = assess_core_web_vitals(snapshot)
            cells = [styled_metric(m, snapshot.metric(m)) for m in ("performance", "lcp", "cls", "inp")]
            cells.append(assessment.overall_status)
        checked = target.last_checked_at.strftime("%Y-%m-%d %H:%M") if target.last_checked_at else "never"
        table.add_row(target.id, target.display_name, target.url, *cells, checked)
    return table


def snapshot_table(snapshot: VitalsSnapshot) -> Table:
    table = Table(title=f"Vitals at {snapshot.timestamp:%Y-%m-%d %H:%M} ({snapshot.strategy})")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status")
    table.add_column("Thresholds", style="dim")
    for metric, label in METRIC_LABELS.items():
        value = snapshot.metric(metric)
        status = classify(metric, value)
        table.add_row(label, styled_metric(metric, value), status.value, threshold_hint(metric))
    return table


def diagnosis_table(items: list[DiagnosisItem]) -> Table:
    table = Table(title="Diagnosis")
    table.add_column("Severity")
    table.add_column("Issue", style="bold")
    table.add_column("Details")
    table.add_column("Recommendations")
    for item in items:
        style = SEVERITY_STYLES[item.severity]
        label = item.severity.value.upper() + (" (opportunity)" if item.is_opportunity else "")
        table.add_row(
            f"[{style}]{label}[/{style}]",
            item.issue,
            item.description,
            "\n".join(f"- {r}" for r in item.recommendations),
        )
    return table


def history_table(history: list[VitalsSnapshot]) -> Table:
    metrics = ("performance", "lcp", "fcp", "cls", "ttfb", "inp")
    table = Table(title=f"History ({len(history)} snapshots)")
    table.add_column("Timestamp")
    for metric in metrics:
        table.add_column(METRIC_LABELS[metric], justify="right")
    for snapshot in history:
        table.add_row(
            f"{snapshot.timestamp:%Y-%m-%d %H:%M}",
            *(styled_metric(m, snapshot.metric(m)) for m in metrics),
        )
    return table


def domains_table(groups: Mapping[str, DomainGroup]) -> Table:
    table = Table(title="By Domain")
    table.add_column("Domain", style="bold")
    table.add_column("Sites", justify="right")
    for metric in ("performance", "lcp", "cls", "inp"):
        table.add_column(f"Avg {METRIC_LABELS[metric]}", justify="right")
    table.add_column("Critical Issues", justify="right")
    table.add_column("Last Updated")

    for domain in sorted(groups):
        group = groups[domain]
        agg = group.aggregated_metrics
        if agg is None:
            table.add_row(domain, str(len(group.targets)), "N/A", "N/A", "N/A", "N/A", "0", "never")
            continue
        table.add_row(
            domain,
            str(agg.target_count),
            *(styled_metric(m, agg.metrics.get(m)) for m in ("performance", "lcp", "cls", "inp")),
            str(agg.total_issues),
            f"{agg.last_updated:%Y-%m-%d %H:%M}" if agg.last_updated else "never",
        )
    return table


def overview_table(overview: DashboardOverview) -> Table:
    table = Table(title="Portfolio Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Total Sites", str(overview.total_sites))
    table.add_row("Sites With Data", str(overview.sites_with_data))
    table.add_row("Healthy Sites", f"[green]{overview.good}[/green]/{overview.total_sites}")
    table.add_row("Needs Improvement", f"[yellow]{overview.needs_improvement}[/yellow]")
    table.add_row("Poor", f"[red]{overview.poor}[/red]")
    table.add_row("Overall Status", overview.overall_status)
    table.add_row(
        "Avg Score",
        str(overview.avg_performance_score) if overview.avg_performance_score is not None else "N/A",
    )
    table.add_row("Critical Issues", str(overview.critical_issues))
    if overview.best_performer:
        table.add_row("Best Performer", f"{overview.best_performer.display_name} ({overview.best_score:.0f})")
    if overview.worst_performer:
        table.add_row("Worst Performer", f"{overview.worst_performer.display_name} ({overview.worst_score:.0f})")
    return table
