"""
Static threshold method, used by `threshold` detection rules.
"""

from dataclasses import dataclass
from typing import Any

from ..models import AnomalyDetection, AnomalyType, Severity
from ..windows import MetricWindows
from .base import AnomalyDetectionMethod, recommend


@dataclass
class ThresholdConfig:
    threshold: float = 0.8
    confidence: float = 0.9


class ThresholdMethod(AnomalyDetectionMethod):
    """Flags every recent sample above a fixed threshold"""

    def __init__(self, config: dict | None = None):
        self.config = ThresholdConfig(**(config or {}))

    @property
    def name(self) -> str:
        return "threshold"

    def get_config(self) -> dict[str, Any]:
        return {"threshold": self.config.threshold, "confidence": self.config.confidence}

    def detect(self, windows: MetricWindows) -> list[AnomalyDetection]:
        threshold = self.config.threshold
        anomalies = []

        for sample in windows.recent:
            if sample.value <= threshold:
                continue

            overshoot = (sample.value - threshold) / abs(threshold) if threshold else sample.value
            if overshoot > 0.25:
                severity = Severity.CRITICAL
            elif overshoot > 0.1:
                severity = Severity.HIGH
            else:
                severity = Severity.MEDIUM

            anomalies.append(
                AnomalyDetection(
                    metric=windows.metric,
                    detected_at=sample.timestamp,
                    anomaly_type=AnomalyType.SPIKE,
                    severity=severity,
                    description=f"{windows.metric} exceeded threshold {threshold}",
                    expected_value=threshold,
                    actual_value=sample.value,
                    deviation=overshoot,
                    confidence=self.config.confidence,
                    recommendations=recommend(AnomalyType.SPIKE, severity),
                )
            )

        return anomalies
