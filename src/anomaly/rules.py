"""
Detection rule registry.

Rules are operator metadata: the fixed detectors run regardless, and a rule is
credited (trigger_count) whenever a pass on its metric yields anomalies.
A rule can also be evaluated on demand through its algorithm's strategy
(see methods.method_for_rule).
"""

import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import structlog

from .errors import RuleValidationError
from .models import DetectionRule, RuleAlgorithm, RuleParameters, RulePerformance, utcnow

logger = structlog.get_logger(__name__)

DEFAULT_RULES = [
    {
        "name": "Statistical Outlier Detection",
        "metric": "system_performance",
        "algorithm": "statistical",
        "parameters": {"sensitivity": 3, "window_size": 24},
    },
    {
        "name": "Utilization Threshold",
        "metric": "compute",
        "algorithm": "threshold",
        "parameters": {"threshold": 0.8},
    },
    {
        "name": "Cost Anomaly Detection",
        "metric": "cost_analysis",
        "algorithm": "statistical",
        "parameters": {"sensitivity": 2.5, "window_size": 48},
    },
]


def build_rule(spec: Mapping[str, Any], created_at: datetime) -> DetectionRule:
    """Validate a rule specification and build the rule

    Raises:
        RuleValidationError: On a missing metric, unknown algorithm or unknown parameter
    """
    metric = spec.get("metric")
    if not isinstance(metric, str) or not metric.strip():
        raise RuleValidationError("Rule metric must be a non-empty string")

    algorithm = spec.get("algorithm")
    try:
        algorithm = RuleAlgorithm(
            algorithm.value if isinstance(algorithm, RuleAlgorithm) else algorithm
        )
    except ValueError:
        available = ", ".join(a.value for a in RuleAlgorithm)
        raise RuleValidationError(
            f"Unknown algorithm '{algorithm}'. Available algorithms: {available}"
        ) from None

    parameters = spec.get("parameters") or {}
    if isinstance(parameters, RuleParameters):
        params = parameters
    else:
        try:
            params = RuleParameters(**parameters)
        except TypeError as e:
            raise RuleValidationError(f"Invalid rule parameters: {e}") from e

    return DetectionRule(
        name=spec.get("name") or f"{algorithm.value} rule for {metric}",
        metric=metric.strip(),
        algorithm=algorithm,
        parameters=params,
        enabled=bool(spec.get("enabled", True)),
        created_at=created_at,
    )


class RuleRegistry:
    """Thread-safe store of detection rules and their trigger statistics"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._rules: dict[str, DetectionRule] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def create_rule(self, spec: Mapping[str, Any]) -> str:
        rule = build_rule(spec, created_at=self._clock())
        with self._lock:
            self._rules[rule.id] = rule
        logger.info(
            "Detection rule created",
            rule_id=rule.id,
            name=rule.name,
            metric=rule.metric,
            algorithm=rule.algorithm.value,
        )
        return rule.id

    def install_defaults(self) -> list[str]:
        rule_ids = [self.create_rule(spec) for spec in DEFAULT_RULES]
        logger.info("Default detection rules initialized", count=len(rule_ids))
        return rule_ids

    def get_rule(self, rule_id: str) -> DetectionRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def list_rules(self) -> list[DetectionRule]:
        with self._lock:
            return sorted(self._rules.values(), key=lambda r: r.created_at)

    def rules_for_metric(self, metric: str) -> list[DetectionRule]:
        """Enabled rules watching a metric"""
        with self._lock:
            return [r for r in self._rules.values() if r.enabled and r.metric == metric]

    def set_enabled(self, rule_id: str, enabled: bool) -> bool:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return False
            rule.enabled = enabled
        logger.info("Detection rule toggled", rule_id=rule_id, enabled=enabled)
        return True

    def record_trigger(self, rule_id: str, at: datetime | None = None) -> None:
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return
            rule.trigger_count += 1
            rule.last_triggered = at or self._clock()

    def get_rule_performance(self, rule_id: str, false_positives: int) -> RulePerformance | None:
        """Trigger statistics, with false positives counted by the caller"""
        with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return None
            return RulePerformance(
                trigger_count=rule.trigger_count,
                false_positive_rate=false_positives / max(1, rule.trigger_count),
                last_triggered=rule.last_triggered,
            )

    def reset(self) -> None:
        """Drop every rule, including trigger statistics (administrative)"""
        with self._lock:
            self._rules.clear()
        logger.warning("Detection rule registry reset")
