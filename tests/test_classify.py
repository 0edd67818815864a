"""
Tests for severity classification and service status aggregation.
"""

import pytest

from quota_watch.usage.classify import (
    classify_utilization,
    classify_windows,
    derive_service_status,
)
from quota_watch.usage.models import NotifySettings, Severity, UsageWindow


@pytest.fixture
def thresholds():
    return NotifySettings(threshold_warning=75, threshold_critical=90)


class TestSeverityOrder:
    """Tests for the Severity enum."""

    def test_total_order(self):
        assert Severity.UNKNOWN < Severity.OK < Severity.WARNING < Severity.CRITICAL < Severity.EXHAUSTED

    def test_str_is_lowercase_name(self):
        assert str(Severity.CRITICAL) == "critical"

    def test_from_value(self):
        assert Severity.from_value("warning") is Severity.WARNING
        assert Severity.from_value(Severity.OK) is Severity.OK
        assert Severity.from_value("error") is None
        assert Severity.from_value(None) is None


class TestClassifyUtilization:
    """Tests for classify_utilization."""

    @pytest.mark.parametrize(
        "utilization,expected",
        [
            (0, Severity.OK),
            (74.9, Severity.OK),
            (75, Severity.WARNING),
            (89.99, Severity.WARNING),
            (90, Severity.CRITICAL),
            (91, Severity.CRITICAL),
            (99.9, Severity.CRITICAL),
            (100, Severity.EXHAUSTED),
            (150, Severity.EXHAUSTED),
        ],
    )
    def test_boundaries(self, thresholds, utilization, expected):
        assert classify_utilization(utilization, thresholds) == expected

    @pytest.mark.parametrize("value", [None, "abc", float("nan"), float("inf"), [], True])
    def test_non_numeric_is_ok(self, thresholds, value):
        """Non-numeric or non-finite input never raises."""
        assert classify_utilization(value, thresholds) == Severity.OK

    def test_monotonic(self, thresholds):
        """Higher utilization never classifies lower."""
        values = [x / 2 for x in range(0, 240)]
        severities = [classify_utilization(v, thresholds) for v in values]
        assert severities == sorted(severities)

    def test_custom_exhausted_threshold(self, thresholds):
        assert classify_utilization(95, thresholds, exhausted_threshold=95) == Severity.EXHAUSTED

    def test_inverted_thresholds_skip_warning(self):
        """With warning above critical, warning is unreachable."""
        inverted = NotifySettings(threshold_warning=90, threshold_critical=50)

        assert classify_utilization(40, inverted) == Severity.OK
        assert classify_utilization(60, inverted) == Severity.CRITICAL
        assert classify_utilization(95, inverted) == Severity.CRITICAL


class TestClassifyWindows:
    """Tests for classify_windows."""

    def test_sets_status_in_place(self, thresholds):
        windows = [UsageWindow("a", 10), UsageWindow("b", 80), UsageWindow("c", 95)]

        result = classify_windows(windows, thresholds)

        assert result is windows
        assert [w.status for w in windows] == [Severity.OK, Severity.WARNING, Severity.CRITICAL]

    @pytest.mark.parametrize("utilization", [0, 12.5, 75, 99, 100, -1])
    def test_force_exhausted_dominates(self, thresholds, utilization):
        """A vendor-asserted limit wins over any percentage."""
        windows = [UsageWindow("a", utilization, force_exhausted=True)]
        classify_windows(windows, thresholds)
        assert windows[0].status == Severity.EXHAUSTED

    def test_unknown_sentinel_kept(self, thresholds):
        """The unknown-format window is never reclassified from its percentage."""
        windows = classify_windows([UsageWindow.unknown()], thresholds)
        assert windows[0].status == Severity.UNKNOWN
        assert derive_service_status(windows) == Severity.OK

    def test_idempotent(self, thresholds):
        """Classifying twice gives the same statuses."""
        windows = [UsageWindow("a", 50), UsageWindow("b", 91), UsageWindow("c", 5, force_exhausted=True)]

        first = [w.status for w in classify_windows(windows, thresholds)]
        second = [w.status for w in classify_windows(windows, thresholds)]

        assert first == second


class TestDeriveServiceStatus:
    """Tests for derive_service_status."""

    def test_empty_is_ok(self):
        assert derive_service_status([]) == Severity.OK

    def test_worst_window_wins(self):
        windows = [
            UsageWindow("a", 0, status=Severity.OK),
            UsageWindow("b", 0, status=Severity.CRITICAL),
            UsageWindow("c", 0, status=Severity.WARNING),
        ]
        assert derive_service_status(windows) == Severity.CRITICAL

    @pytest.mark.parametrize("status", [Severity.OK, Severity.WARNING, Severity.CRITICAL, Severity.EXHAUSTED])
    def test_single_window(self, status):
        assert derive_service_status([UsageWindow("a", 0, status=status)]) == status

    def test_unknown_never_beats_ok(self):
        """The fold starts from ok, so unknown windows alone aggregate to ok."""
        windows = [UsageWindow("a", 0, status=Severity.UNKNOWN)]
        assert derive_service_status(windows) == Severity.OK

    def test_unclassified_counts_as_unknown(self):
        windows = [UsageWindow("a", 0), UsageWindow("b", 0, status=Severity.WARNING)]
        assert derive_service_status(windows) == Severity.WARNING
