"""
Data models and configuration for the anomaly detection and early-warning engine.
"""

import math
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Optional

DEDUP_BUCKET_SECONDS = 3600


class AnomalyType(Enum):
    """Kinds of deviation a detector can report"""

    SPIKE = "spike"
    DROP = "drop"
    TREND_CHANGE = "trend_change"
    PATTERN_BREAK = "pattern_break"
    SEASONAL_DEVIATION = "seasonal_deviation"
    OUTLIER = "outlier"


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AnomalyStatus(Enum):
    NEW = "new"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class WarningType(Enum):
    THRESHOLD_BREACH = "threshold_breach"
    TREND_ALERT = "trend_alert"
    CAPACITY_WARNING = "capacity_warning"
    COST_ALERT = "cost_alert"
    PERFORMANCE_DEGRADATION = "performance_degradation"


class WarningStatus(Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class RuleAlgorithm(Enum):
    STATISTICAL = "statistical"
    MACHINE_LEARNING = "machine_learning"
    THRESHOLD = "threshold"
    PATTERN_BASED = "pattern_based"


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, value))


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class MetricSample:
    """A single (hourly) observation returned by the metric gateway"""

    timestamp: datetime
    value: float


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval [start, end)"""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Time range end {self.end} must be after start {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def preceding(self) -> "TimeRange":
        """Range of identical length ending where this one starts"""
        return TimeRange(start=self.start - self.duration, end=self.start)

    @classmethod
    def last(cls, duration: timedelta, now: datetime | None = None) -> "TimeRange":
        end = now or utcnow()
        return cls(start=end - duration, end=end)


@dataclass
class AnomalyContext:
    """Optional tags describing where an anomaly was observed"""

    project_id: Optional[str] = None
    user_id: Optional[str] = None
    component: Optional[str] = None
    region: Optional[str] = None


@dataclass
class AnomalyDetection:
    """One detected deviation of a metric from its expected behaviour"""

    metric: str
    detected_at: datetime
    anomaly_type: AnomalyType
    severity: Severity
    expected_value: float
    actual_value: float
    deviation: float
    confidence: float
    description: str = ""
    context: AnomalyContext = field(default_factory=AnomalyContext)
    recommendations: list[str] = field(default_factory=list)
    status: AnomalyStatus = AnomalyStatus.NEW
    assigned_to: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None
    rule_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("anomaly"))

    def __post_init__(self):
        self.deviation = abs(self.deviation)
        self.confidence = clamp_confidence(self.confidence)

    @property
    def dedup_key(self) -> tuple[str, str, int]:
        """(metric, type, hour bucket) identifying the same occurrence"""
        bucket = math.floor(self.detected_at.timestamp() / DEDUP_BUCKET_SECONDS)
        return (self.metric, self.anomaly_type.value, bucket)

    @property
    def is_active(self) -> bool:
        return self.status in (AnomalyStatus.NEW, AnomalyStatus.INVESTIGATING)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "metric": self.metric,
            "detected_at": self.detected_at.isoformat(),
            "anomaly_type": self.anomaly_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "deviation": self.deviation,
            "confidence": self.confidence,
            "context": {k: v for k, v in asdict(self.context).items() if v is not None},
            "recommendations": list(self.recommendations),
            "status": self.status.value,
            "assigned_to": self.assigned_to,
            "resolved_at": _isoformat(self.resolved_at),
            "resolution": self.resolution,
            "rule_ids": list(self.rule_ids),
        }


@dataclass
class WarningAction:
    """A recommended response to an early warning"""

    action: str
    priority: Severity
    timeframe: str
    impact: str

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "priority": self.priority.value,
            "timeframe": self.timeframe,
            "impact": self.impact,
        }


@dataclass
class EarlyWarning:
    """A projected future threshold breach"""

    type: WarningType
    severity: Severity
    title: str
    description: str
    metric: str
    current_value: float
    threshold: float
    projected_value: float
    time_to_breach: float  # minutes, math.inf when not approaching the threshold
    confidence: float
    created_at: datetime
    context: dict[str, Any] = field(default_factory=dict)
    actions: list[WarningAction] = field(default_factory=list)
    status: WarningStatus = WarningStatus.ACTIVE
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: new_id("warning"))

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)

    @property
    def is_open(self) -> bool:
        return self.status in (WarningStatus.ACTIVE, WarningStatus.ACKNOWLEDGED)

    def refresh_from(self, newer: "EarlyWarning") -> None:
        """Take the readings of a newer warning for the same condition

        Identity, status and acknowledgement are kept.
        """
        self.severity = newer.severity
        self.title = newer.title
        self.description = newer.description
        self.current_value = newer.current_value
        self.threshold = newer.threshold
        self.projected_value = newer.projected_value
        self.time_to_breach = newer.time_to_breach
        self.confidence = newer.confidence
        self.context = dict(newer.context)
        self.actions = list(newer.actions)
        self.updated_at = newer.created_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "metric": self.metric,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "projected_value": self.projected_value,
            # JSON has no infinity
            "time_to_breach": None if math.isinf(self.time_to_breach) else self.time_to_breach,
            "confidence": self.confidence,
            "context": dict(self.context),
            "actions": [a.to_dict() for a in self.actions],
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "acknowledged_at": _isoformat(self.acknowledged_at),
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": _isoformat(self.resolved_at),
            "dismissed_at": _isoformat(self.dismissed_at),
            "updated_at": _isoformat(self.updated_at),
        }


@dataclass
class RuleParameters:
    """Algorithm-dependent knobs of a detection rule, all optional"""

    sensitivity: Optional[float] = None
    window_size: Optional[int] = None
    threshold: Optional[float] = None
    confidence: Optional[float] = None

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class DetectionRule:
    """Operator-managed detection rule configuration"""

    name: str
    metric: str
    algorithm: RuleAlgorithm
    parameters: RuleParameters = field(default_factory=RuleParameters)
    enabled: bool = True
    created_at: datetime = field(default_factory=utcnow)
    trigger_count: int = 0
    last_triggered: Optional[datetime] = None
    id: str = field(default_factory=lambda: new_id("rule"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "metric": self.metric,
            "algorithm": self.algorithm.value,
            "parameters": self.parameters.to_dict(),
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat(),
            "trigger_count": self.trigger_count,
            "last_triggered": _isoformat(self.last_triggered),
        }


@dataclass
class RulePerformance:
    trigger_count: int
    false_positive_rate: float
    last_triggered: Optional[datetime] = None


@dataclass
class EngineConfig:
    """Configuration for the anomaly detection and early-warning engine"""

    # Window sizes (hourly samples)
    min_recent_samples: int = 10
    min_baseline_samples: int = 20
    detection_lookback_hours: int = 7 * 24
    warning_lookback_hours: int = 24

    # Fixed detectors
    z_score_threshold: float = 3.0
    seasonal_period: int = 24
    seasonal_index_tolerance: float = 0.5
    trend_change_threshold: float = 0.1
    min_trend_samples: int = 10

    # Retention
    max_anomalies: int = 1000
    max_warnings: int = 500

    # Early warnings
    utilization_thresholds: dict[str, float] = field(
        default_factory=lambda: {
            "compute": 0.8,
            "storage": 0.9,
            "bandwidth": 0.7,
            "ai_tokens": 0.85,
            "api_calls": 0.75,
        }
    )
    default_utilization_threshold: float = 0.8
    trend_alert_metrics: list[str] = field(
        default_factory=lambda: ["document_generation", "ai_usage", "user_activity", "cost_analysis"]
    )
    trend_alert_growth: float = 0.2
    capacity_resources: list[str] = field(default_factory=lambda: ["compute", "storage", "bandwidth"])
    capacity_utilization_limit: float = 0.8
    cost_metric: str = "cost_analysis"
    daily_budget: float = 1000.0

    # Scheduling
    detection_metrics: list[str] = field(
        default_factory=lambda: [
            "document_generation",
            "ai_usage",
            "user_activity",
            "system_performance",
            "cost_analysis",
        ]
    )
    detection_interval_seconds: float = 15 * 60
    warning_interval_seconds: float = 5 * 60
    gateway_timeout_seconds: float = 30.0
    gateway_workers: int = 4

    install_default_rules: bool = True
