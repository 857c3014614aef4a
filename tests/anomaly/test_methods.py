"""
Tests for the detection methods and their registry.
"""

from datetime import timedelta

import pytest

from src.anomaly.methods import (
    SeasonalPatternMethod,
    StatisticalOutlierMethod,
    ThresholdMethod,
    TrendChangeMethod,
    get_method,
    list_methods,
    method_for_rule,
)
from src.anomaly.methods.base import recommend, severity_from_deviation
from src.anomaly.models import (
    AnomalyType,
    DetectionRule,
    RuleAlgorithm,
    RuleParameters,
    Severity,
)
from src.anomaly.windows import MetricWindows
from tests.conftest import NOW, hourly


def make_windows(baseline, recent, metric="compute", recent_start=None):
    recent_start = recent_start or NOW - timedelta(hours=len(recent))
    return MetricWindows(
        metric=metric,
        baseline=hourly(baseline, start=recent_start - timedelta(hours=len(baseline))),
        recent=hourly(recent, start=recent_start),
    )


# Mean 100, population standard deviation 10
BASELINE = [90, 110] * 10


class TestStatisticalOutlierMethod:
    """Tests for the 3-sigma detector."""

    def test_three_sigma_boundary(self):
        """131 is 3.1 sigma away and flagged, 129 is 2.9 sigma away and not."""
        method = StatisticalOutlierMethod()
        anomalies = method.detect(make_windows(BASELINE, [100] * 8 + [129, 131]))

        assert len(anomalies) == 1
        assert anomalies[0].actual_value == 131
        assert anomalies[0].deviation == pytest.approx(3.1)
        assert anomalies[0].expected_value == pytest.approx(100)

    def test_spike_takes_priority_over_trend_change(self):
        """250 against a mean of 100 is a spike even though its local trend qualifies."""
        method = StatisticalOutlierMethod()
        recent = [100] * 9 + [250]

        anomalies = method.detect(make_windows(BASELINE, recent))

        assert len(anomalies) == 1
        assert anomalies[0].anomaly_type == AnomalyType.SPIKE
        assert anomalies[0].severity == Severity.CRITICAL
        assert anomalies[0].confidence == 1.0
        assert anomalies[0].detected_at == NOW - timedelta(hours=1)

    def test_drop(self):
        anomalies = StatisticalOutlierMethod().detect(make_windows(BASELINE, [100] * 9 + [40]))

        assert anomalies[0].anomaly_type == AnomalyType.DROP
        assert anomalies[0].deviation == pytest.approx(6.0)

    def test_local_trend_change(self):
        """131 after a jump from 100 has a 3-point trend above 0.1."""
        anomalies = StatisticalOutlierMethod().detect(make_windows(BASELINE, [100] * 8 + [129, 131]))

        assert anomalies[0].anomaly_type == AnomalyType.TREND_CHANGE

    def test_flat_outliers(self):
        anomalies = StatisticalOutlierMethod().detect(make_windows(BASELINE, [145] * 10))

        assert len(anomalies) == 10
        assert {a.anomaly_type for a in anomalies} == {AnomalyType.OUTLIER}
        assert {a.severity for a in anomalies} == {Severity.CRITICAL}
        assert all(a.confidence == 1.0 for a in anomalies)

    def test_confidence_scales_with_deviation(self):
        anomalies = StatisticalOutlierMethod().detect(make_windows(BASELINE, [135] * 10))

        assert anomalies[0].severity == Severity.HIGH
        assert anomalies[0].confidence == pytest.approx(3.5 / 4)

    def test_zero_variance_baseline_yields_nothing(self):
        anomalies = StatisticalOutlierMethod().detect(make_windows([100] * 20, [500] * 10))

        assert anomalies == []

    def test_recommendations_follow_type(self):
        anomalies = StatisticalOutlierMethod().detect(make_windows(BASELINE, [100] * 9 + [250]))

        assert anomalies[0].recommendations[0].startswith("Investigate immediately")
        assert "Check for increased demand or system issues" in anomalies[0].recommendations


class TestSeverityMapping:
    @pytest.mark.parametrize(
        "deviation, expected",
        [
            (4.5, Severity.CRITICAL),
            (3.5, Severity.HIGH),
            (2.7, Severity.MEDIUM),
            (1.0, Severity.LOW),
        ],
    )
    def test_severity_from_deviation(self, deviation, expected):
        assert severity_from_deviation(deviation) == expected

    def test_low_severity_gets_no_escalation(self):
        assert recommend(AnomalyType.OUTLIER, Severity.LOW) == []


class TestSeasonalPatternMethod:
    """Tests for the hour-of-day seasonal detector."""

    def test_flags_deviating_hour(self):
        recent = [10] * 24
        recent[3] = 40
        windows = make_windows([10] * 48, recent)

        anomalies = SeasonalPatternMethod().detect(windows)

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.anomaly_type == AnomalyType.SEASONAL_DEVIATION
        assert anomaly.severity == Severity.MEDIUM
        assert anomaly.confidence == 0.7
        assert anomaly.expected_value == pytest.approx(10)
        assert anomaly.actual_value == 40
        assert anomaly.deviation == pytest.approx(3.0)
        assert anomaly.detected_at.hour == 3

    def test_matching_pattern_yields_nothing(self):
        pattern = [10 + (i % 24) for i in range(48)]
        windows = make_windows(pattern, pattern[:24])

        assert SeasonalPatternMethod().detect(windows) == []

    def test_zero_mean_yields_nothing(self):
        assert SeasonalPatternMethod().detect(make_windows([0] * 48, [0] * 24)) == []

    def test_custom_period_matches_by_position(self):
        windows = make_windows([10] * 8, [10, 10, 10, 10, 10, 10, 40, 10])

        anomalies = SeasonalPatternMethod({"period": 4}).detect(windows)

        assert len(anomalies) == 1
        assert anomalies[0].actual_value == 40
        assert anomalies[0].expected_value == pytest.approx(10)

    def test_invalid_period(self):
        with pytest.raises(ValueError, match="period"):
            SeasonalPatternMethod({"period": 0})


class TestTrendChangeMethod:
    """Tests for the normalized slope comparison."""

    @staticmethod
    def rising(last):
        return [100 + (last - 100) * i / 9 for i in range(10)]

    def test_high_severity_change(self):
        windows = make_windows([100] * 20, self.rising(350))

        anomalies = TrendChangeMethod().detect(windows)

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.anomaly_type == AnomalyType.TREND_CHANGE
        assert anomaly.severity == Severity.HIGH
        assert anomaly.deviation == pytest.approx(0.25)
        assert anomaly.expected_value == 100
        assert anomaly.actual_value == pytest.approx(350)
        assert anomaly.confidence == 0.8
        assert "increasing" in anomaly.description

    def test_medium_severity_change(self):
        anomalies = TrendChangeMethod().detect(make_windows([100] * 20, self.rising(250)))

        assert anomalies[0].severity == Severity.MEDIUM

    def test_small_change_ignored(self):
        assert TrendChangeMethod().detect(make_windows([100] * 20, self.rising(150))) == []

    def test_requires_ten_samples(self):
        assert TrendChangeMethod().detect(make_windows([100] * 20, [100, 400, 900])) == []

    def test_zero_first_value_yields_nothing(self):
        assert TrendChangeMethod().detect(make_windows([0] + [100] * 19, self.rising(350))) == []


class TestThresholdMethod:
    def test_flags_samples_above_threshold(self):
        windows = make_windows(BASELINE, [0.5, 0.85, 0.95, 1.2])

        anomalies = ThresholdMethod({"threshold": 0.8}).detect(windows)

        assert [a.actual_value for a in anomalies] == [0.85, 0.95, 1.2]
        assert [a.severity for a in anomalies] == [
            Severity.MEDIUM,
            Severity.HIGH,
            Severity.CRITICAL,
        ]


class TestMethodRegistry:
    def test_list_methods(self):
        assert set(list_methods()) == {"statistical", "seasonal", "trend", "threshold"}

    def test_get_method(self):
        method = get_method("statistical", {"z_score_threshold": 2.5})

        assert isinstance(method, StatisticalOutlierMethod)
        assert method.get_config()["z_score_threshold"] == 2.5

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown method 'lstm'"):
            get_method("lstm", {})

    def test_statistical_rule_uses_sensitivity(self):
        rule = DetectionRule(
            name="cost",
            metric="cost_analysis",
            algorithm=RuleAlgorithm.STATISTICAL,
            parameters=RuleParameters(sensitivity=2.5, window_size=48),
        )

        method = method_for_rule(rule)

        assert method.name == "statistical"
        assert method.get_config()["z_score_threshold"] == 2.5

    def test_threshold_rule(self):
        rule = DetectionRule(
            name="util",
            metric="compute",
            algorithm=RuleAlgorithm.THRESHOLD,
            parameters=RuleParameters(threshold=0.7),
        )

        assert method_for_rule(rule).get_config()["threshold"] == 0.7

    def test_pattern_rule_uses_window_as_period(self):
        rule = DetectionRule(
            name="weekly",
            metric="ai_usage",
            algorithm=RuleAlgorithm.PATTERN_BASED,
            parameters=RuleParameters(window_size=168),
        )

        assert method_for_rule(rule).get_config()["period"] == 168

    def test_machine_learning_has_no_strategy(self):
        rule = DetectionRule(name="ml", metric="compute", algorithm=RuleAlgorithm.MACHINE_LEARNING)

        with pytest.raises(ValueError, match="No detection strategy"):
            method_for_rule(rule)
