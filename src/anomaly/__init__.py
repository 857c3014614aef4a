"""
Anomaly Detection & Early-Warning Engine

Inspects hourly operational metrics (utilization, AI token usage, document
generation throughput, cost) and surfaces retrospective anomalies and
forward-looking early warnings.

Architecture:
- Detection: statistical outliers, seasonal deviations and trend changes of a
  recent window against the preceding baseline window
- Early warnings: linear projection of recent samples to estimate time-to-breach
- Bounded stores: deduplicated, capped, oldest-first eviction
- Scheduler: detection every 15 minutes, warnings every 5 minutes

Usage:
    python -m src.anomaly.run
"""

from .engine import AnomalyEngine
from .errors import GatewayError, RuleValidationError
from .gateway import MetricGateway, PostgresMetricGateway
from .models import AnomalyDetection, DetectionRule, EarlyWarning, EngineConfig, MetricSample, TimeRange
from .scheduler import DetectionScheduler

__all__ = [
    "AnomalyDetection",
    "AnomalyEngine",
    "DetectionRule",
    "DetectionScheduler",
    "EarlyWarning",
    "EngineConfig",
    "GatewayError",
    "MetricGateway",
    "MetricSample",
    "PostgresMetricGateway",
    "RuleValidationError",
    "TimeRange",
]
