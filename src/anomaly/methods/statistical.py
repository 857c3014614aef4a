"""
Statistical outlier detection (3-sigma rule against the baseline window).

Each recent sample is scored as |value - baseline_mean| / baseline_std and
reported when the score exceeds the z threshold. The anomaly subtype is
resolved in priority order: spike, drop, local trend change, outlier.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from .. import stats
from ..models import AnomalyDetection, AnomalyType, MetricSample
from ..windows import MetricWindows
from .base import AnomalyDetectionMethod, describe_anomaly, recommend, severity_from_deviation

logger = structlog.get_logger(__name__)


@dataclass
class StatisticalConfig:
    """Configuration for the statistical outlier method"""

    z_score_threshold: float = 3.0
    spike_ratio: float = 2.0  # value > mean * ratio -> spike
    drop_ratio: float = 0.5  # value < mean * ratio -> drop
    local_trend_points: int = 3
    local_trend_threshold: float = 0.1


class StatisticalOutlierMethod(AnomalyDetectionMethod):
    """Z-score of recent samples against baseline mean and standard deviation"""

    def __init__(self, config: dict | None = None):
        self.config = StatisticalConfig(**(config or {}))

    @property
    def name(self) -> str:
        return "statistical"

    def get_config(self) -> dict[str, Any]:
        return {
            "z_score_threshold": self.config.z_score_threshold,
            "spike_ratio": self.config.spike_ratio,
            "drop_ratio": self.config.drop_ratio,
            "local_trend_points": self.config.local_trend_points,
            "local_trend_threshold": self.config.local_trend_threshold,
        }

    def detect(self, windows: MetricWindows) -> list[AnomalyDetection]:
        baseline_values = stats.values_of(windows.baseline)
        baseline_mean = stats.mean(baseline_values)
        baseline_std = stats.std_dev(baseline_values)

        if baseline_std == 0:
            logger.debug("Zero baseline variance, no outliers possible", metric=windows.metric)
            return []

        anomalies = []
        for index, sample in enumerate(windows.recent):
            deviation = abs(sample.value - baseline_mean) / baseline_std
            if deviation <= self.config.z_score_threshold:
                continue

            anomaly_type = self.classify(sample.value, baseline_mean, windows.recent, index)
            severity = severity_from_deviation(deviation)

            anomalies.append(
                AnomalyDetection(
                    metric=windows.metric,
                    detected_at=sample.timestamp,
                    anomaly_type=anomaly_type,
                    severity=severity,
                    description=describe_anomaly(
                        windows.metric, sample.value, baseline_mean, anomaly_type
                    ),
                    expected_value=baseline_mean,
                    actual_value=sample.value,
                    deviation=deviation,
                    confidence=min(deviation / 4, 1.0),
                    recommendations=recommend(anomaly_type, severity),
                )
            )

        return anomalies

    def classify(
        self, value: float, baseline_mean: float, recent: list[MetricSample], index: int
    ) -> AnomalyType:
        """Resolve the anomaly subtype of an outlying sample"""
        if value > baseline_mean * self.config.spike_ratio:
            return AnomalyType.SPIKE
        if value < baseline_mean * self.config.drop_ratio:
            return AnomalyType.DROP

        points = self.config.local_trend_points
        if index > points - 1:
            window = stats.values_of(recent[index - points + 1 : index + 1])
            trend = stats.calculate_trend(window)
            if trend is not None and abs(trend) > self.config.local_trend_threshold:
                return AnomalyType.TREND_CHANGE

        return AnomalyType.OUTLIER
