"""Degradation detection: compares the newest snapshot to the one before it."""

from __future__ import annotations

import logging

from webvitals.models.vitals import DegradationEvent, VitalsSnapshot
from webvitals.storage.store import VitalsStore
from webvitals.thresholds import VITALS_THRESHOLDS

logger = logging.getLogger(__name__)

TIMING_METRICS = ("lcp", "fcp", "cls", "ttfb", "inp")

# Relative increase that counts as a regression even inside the good band
CLS_INCREASE_FACTOR = 1.5
TIMING_INCREASE_FACTOR = 1.2
PERFORMANCE_DROP_POINTS = 10


def compare_snapshots(previous: VitalsSnapshot, current: VitalsSnapshot) -> list[DegradationEvent]:
    """Return the metrics that regressed from ``previous`` to ``current``."""
    events: list[DegradationEvent] = []

    for metric in TIMING_METRICS:
        new_value = current.metric(metric)
        previous_value = previous.metric(metric)
        if new_value is None or previous_value is None:
            continue

        threshold = VITALS_THRESHOLDS[metric]
        crossed_to_poor = previous_value <= threshold.good and new_value > threshold.poor
        factor = CLS_INCREASE_FACTOR if metric == "cls" else TIMING_INCREASE_FACTOR
        significant_increase = new_value > previous_value * factor

        if crossed_to_poor or significant_increase:
            events.append(DegradationEvent(
                metric=metric,
                previous_value=previous_value,
                new_value=new_value,
                threshold_poor=threshold.poor,
            ))

    if current.performance is not None and previous.performance is not None:
        if previous.performance - current.performance >= PERFORMANCE_DROP_POINTS:
            events.append(DegradationEvent(
                metric="performance",
                previous_value=previous.performance,
                new_value=current.performance,
                threshold_poor=VITALS_THRESHOLDS["performance"].poor,
            ))

    return events


def detect_degradation(
    store: VitalsStore, target_id: str, new_snapshot: VitalsSnapshot,
) -> list[DegradationEvent]:
    """Check a freshly fetched snapshot before it is appended to the history.

    Fewer than two stored snapshots means there is no baseline yet; otherwise
    the baseline is the second-to-last stored snapshot.
    """
    history = store.all(target_id)
    if len(history) < 2:
        return []

    events = compare_snapshots(history[-2], new_snapshot)
    if events:
        logger.warning(
            "Detected %d degraded metrics for %s: %s",
            len(events), target_id, ", ".join(e.metric for e in events),
        )
    return events
