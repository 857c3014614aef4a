"""
Base abstract interface for anomaly detection methods.

All detection methods inherit from AnomalyDetectionMethod and implement detect(),
which compares a recent window with its baseline window and returns the
anomalies found. Methods are stateless between calls.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..models import AnomalyDetection, AnomalyType, Severity
from ..windows import MetricWindows


class AnomalyDetectionMethod(ABC):
    """Abstract base class for all anomaly detection methods"""

    @abstractmethod
    def detect(self, windows: MetricWindows) -> list[AnomalyDetection]:
        """Detect anomalies in the recent window

        Args:
            windows: Recent and baseline samples for one metric

        Returns:
            Anomalies found, possibly empty. Degenerate input (zero variance,
            zero first value) yields an empty list rather than an error.
        """
        pass

    @abstractmethod
    def get_config(self) -> dict[str, Any]:
        """Get the current configuration of this method"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the detection method"""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.get_config()})"


def severity_from_deviation(deviation: float) -> Severity:
    """Map a z-score style deviation to a severity level"""
    if deviation > 4:
        return Severity.CRITICAL
    elif deviation > 3:
        return Severity.HIGH
    elif deviation > 2.5:
        return Severity.MEDIUM
    else:
        return Severity.LOW


def describe_anomaly(metric: str, value: float, baseline: float, anomaly_type: AnomalyType) -> str:
    percentage = round((value - baseline) / baseline * 100) if baseline else 0

    if anomaly_type == AnomalyType.SPIKE:
        return f"{metric} experienced a {percentage}% increase above normal levels"
    elif anomaly_type == AnomalyType.DROP:
        return f"{metric} dropped {abs(percentage)}% below normal levels"
    elif anomaly_type == AnomalyType.TREND_CHANGE:
        return f"{metric} shows an unexpected trend change"
    elif anomaly_type == AnomalyType.SEASONAL_DEVIATION:
        return f"{metric} deviated from expected seasonal pattern"
    return f"{metric} deviated significantly from expected pattern"


def recommend(anomaly_type: AnomalyType, severity: Severity) -> list[str]:
    recommendations = []

    if severity in (Severity.CRITICAL, Severity.HIGH):
        recommendations.append("Investigate immediately and implement corrective measures")

    if anomaly_type == AnomalyType.SPIKE:
        recommendations.append("Check for increased demand or system issues")
        recommendations.append("Consider scaling resources if trend continues")
    elif anomaly_type == AnomalyType.DROP:
        recommendations.append("Verify system health and user activity")
        recommendations.append("Check for potential service disruptions")
    elif anomaly_type == AnomalyType.TREND_CHANGE:
        recommendations.append("Analyze underlying causes of trend change")
        recommendations.append("Update forecasting models if needed")
    elif anomaly_type == AnomalyType.SEASONAL_DEVIATION:
        recommendations.append("Review seasonal patterns and update baselines")

    return recommendations
