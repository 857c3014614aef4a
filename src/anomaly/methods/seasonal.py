"""
Seasonal pattern detection.

Builds a seasonal index per bucket (sample position mod period, hour-of-day
for hourly data) for the baseline and the recent window, and reports every
bucket whose recent index moved away from the baseline index.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from .. import stats
from ..models import AnomalyDetection, AnomalyType, MetricSample, Severity
from ..windows import MetricWindows
from .base import AnomalyDetectionMethod, describe_anomaly, recommend

logger = structlog.get_logger(__name__)


@dataclass
class SeasonalConfig:
    """Configuration for the seasonal pattern method"""

    period: int = 24  # 24 hourly buckets = daily pattern
    index_tolerance: float = 0.5
    confidence: float = 0.7


class SeasonalPatternMethod(AnomalyDetectionMethod):
    """Compares per-bucket seasonal indices of recent and baseline windows"""

    def __init__(self, config: dict | None = None):
        self.config = SeasonalConfig(**(config or {}))
        if self.config.period < 1:
            raise ValueError(f"Seasonal period must be positive, got {self.config.period}")

    @property
    def name(self) -> str:
        return "seasonal"

    def get_config(self) -> dict[str, Any]:
        return {
            "period": self.config.period,
            "index_tolerance": self.config.index_tolerance,
            "confidence": self.config.confidence,
        }

    def detect(self, windows: MetricWindows) -> list[AnomalyDetection]:
        period = self.config.period
        baseline_values = stats.values_of(windows.baseline)
        baseline_indices = stats.seasonal_indices(baseline_values, period)
        recent_indices = stats.seasonal_indices(stats.values_of(windows.recent), period)

        if baseline_indices is None or recent_indices is None:
            logger.debug("Zero series mean, seasonal indices undefined", metric=windows.metric)
            return []

        baseline_mean = stats.mean(baseline_values)
        anomalies = []

        for bucket in range(period):
            index_delta = abs(recent_indices[bucket] - baseline_indices[bucket])
            if index_delta <= self.config.index_tolerance:
                continue

            expected = baseline_mean * baseline_indices[bucket]
            match = self._latest_in_bucket(windows.recent, bucket)
            actual = match.value if match else 0.0
            detected_at = match.timestamp if match else windows.recent[-1].timestamp
            deviation = abs(actual - expected) / abs(expected) if expected else index_delta

            anomalies.append(
                AnomalyDetection(
                    metric=windows.metric,
                    detected_at=detected_at,
                    anomaly_type=AnomalyType.SEASONAL_DEVIATION,
                    severity=Severity.MEDIUM,
                    description=(
                        describe_anomaly(
                            windows.metric, actual, expected, AnomalyType.SEASONAL_DEVIATION
                        )
                        + f" (bucket {bucket})"
                    ),
                    expected_value=expected,
                    actual_value=actual,
                    deviation=deviation,
                    confidence=self.config.confidence,
                    recommendations=recommend(AnomalyType.SEASONAL_DEVIATION, Severity.MEDIUM),
                )
            )

        return anomalies

    def _latest_in_bucket(self, recent: list[MetricSample], bucket: int) -> MetricSample | None:
        """Most recent sample falling in the bucket

        Daily periods match on the timestamp hour, other periods on position.
        """
        for position in range(len(recent) - 1, -1, -1):
            sample = recent[position]
            if self.config.period == 24:
                if sample.timestamp.hour == bucket:
                    return sample
            elif position % self.config.period == bucket:
                return sample
        return None
