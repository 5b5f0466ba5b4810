"""Tests for metric thresholds and status classification."""

import pytest

from webvitals.models.vitals import MetricStatus
from webvitals.thresholds import (
    SCORE_METRICS,
    TRACKED_METRICS,
    VITALS_THRESHOLDS,
    classify,
    is_score_metric,
)


class TestThresholdTable:
    def test_every_tracked_metric_has_a_threshold(self):
        assert set(TRACKED_METRICS) == set(VITALS_THRESHOLDS)

    def test_lower_is_better_metrics_have_good_below_poor(self):
        for metric, threshold in VITALS_THRESHOLDS.items():
            if metric in SCORE_METRICS:
                assert threshold.good > threshold.poor
            else:
                assert threshold.good < threshold.poor

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            VITALS_THRESHOLDS["lcp"] = (1, 2)

    def test_is_score_metric(self):
        assert is_score_metric("seo")
        assert not is_score_metric("lcp")


class TestClassify:
    @pytest.mark.parametrize("value,expected", [
        (2.5, MetricStatus.GOOD),
        (2.6, MetricStatus.NEEDS_IMPROVEMENT),
        (4.0, MetricStatus.NEEDS_IMPROVEMENT),
        (4.01, MetricStatus.POOR),
    ])
    def test_lcp_boundaries(self, value, expected):
        assert classify("lcp", value) == expected

    @pytest.mark.parametrize("value,expected", [
        (90, MetricStatus.GOOD),
        (89, MetricStatus.NEEDS_IMPROVEMENT),
        (50, MetricStatus.NEEDS_IMPROVEMENT),
        (49, MetricStatus.POOR),
    ])
    def test_score_boundaries(self, value, expected):
        assert classify("performance", value) == expected

    def test_inp_in_milliseconds(self):
        assert classify("inp", 150) == MetricStatus.GOOD
        assert classify("inp", 501) == MetricStatus.POOR

    def test_missing_value_is_unknown(self):
        assert classify("cls", None) == MetricStatus.UNKNOWN

    def test_unknown_metric_is_unknown(self):
        assert classify("speed_index", 3.0) == MetricStatus.UNKNOWN

    def test_status_worsens_as_timing_grows(self):
        order = [MetricStatus.GOOD, MetricStatus.NEEDS_IMPROVEMENT, MetricStatus.POOR]
        statuses = [classify("ttfb", v / 10) for v in range(0, 30)]
        ranks = [order.index(s) for s in statuses]
        assert ranks == sorted(ranks)

    def test_status_worsens_as_score_drops(self):
        order = [MetricStatus.GOOD, MetricStatus.NEEDS_IMPROVEMENT, MetricStatus.POOR]
        for metric in SCORE_METRICS:
            statuses = [classify(metric, score) for score in range(100, -1, -1)]
            ranks = [order.index(s) for s in statuses]
            assert ranks == sorted(ranks)
            assert statuses[0] == MetricStatus.GOOD
            assert statuses[-1] == MetricStatus.POOR
