"""
Trend change detection: normalized slope of the recent window vs. the baseline.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from .. import stats
from ..models import AnomalyDetection, AnomalyType, Severity
from ..windows import MetricWindows
from .base import AnomalyDetectionMethod, recommend

logger = structlog.get_logger(__name__)


@dataclass
class TrendConfig:
    """Configuration for the trend change method"""

    min_samples: int = 10
    change_threshold: float = 0.1
    high_severity_change: float = 0.2
    confidence: float = 0.8


class TrendChangeMethod(AnomalyDetectionMethod):
    def __init__(self, config: dict | None = None):
        self.config = TrendConfig(**(config or {}))

    @property
    def name(self) -> str:
        return "trend"

    def get_config(self) -> dict[str, Any]:
        return {
            "min_samples": self.config.min_samples,
            "change_threshold": self.config.change_threshold,
            "high_severity_change": self.config.high_severity_change,
            "confidence": self.config.confidence,
        }

    def detect(self, windows: MetricWindows) -> list[AnomalyDetection]:
        if (
            len(windows.recent) < self.config.min_samples
            or len(windows.baseline) < self.config.min_samples
        ):
            return []

        recent_trend = stats.calculate_trend(stats.values_of(windows.recent))
        baseline_trend = stats.calculate_trend(stats.values_of(windows.baseline))
        if recent_trend is None or baseline_trend is None:
            logger.debug("Zero first value, trend undefined", metric=windows.metric)
            return []

        change = abs(recent_trend - baseline_trend)
        if change <= self.config.change_threshold:
            return []

        severity = Severity.HIGH if change > self.config.high_severity_change else Severity.MEDIUM
        direction = "increasing" if recent_trend > baseline_trend else "decreasing"

        return [
            AnomalyDetection(
                metric=windows.metric,
                detected_at=windows.recent[-1].timestamp,
                anomaly_type=AnomalyType.TREND_CHANGE,
                severity=severity,
                description=f"Significant trend change detected in {windows.metric}: {direction}",
                expected_value=windows.baseline[-1].value,
                actual_value=windows.recent[-1].value,
                deviation=change,
                confidence=self.config.confidence,
                recommendations=recommend(AnomalyType.TREND_CHANGE, severity),
            )
        ]
