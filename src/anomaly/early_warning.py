"""
Early-warning generation.

Four independent checks (threshold, trend, capacity, cost) look at the recent
samples of a fixed metric set, project the current value forward with the
normalized trend and estimate the minutes left before a threshold is crossed.
Each metric is evaluated in isolation: a gateway failure or a degenerate
series only skips that metric for that check.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog

from . import stats
from .errors import GatewayError
from .models import (
    EarlyWarning,
    EngineConfig,
    MetricSample,
    Severity,
    TimeRange,
    WarningAction,
    WarningType,
    utcnow,
)

logger = structlog.get_logger(__name__)

THRESHOLD_HORIZON_MINUTES = 60
TREND_HORIZON_MINUTES = 1440
CAPACITY_HORIZON_MINUTES = 60
COST_HORIZON_MINUTES = 1440

BREACH_WINDOW_MINUTES = 120
CRITICAL_BREACH_MINUTES = 30
MIN_TREND_SAMPLES = 10


@dataclass
class Projection:
    current_value: float
    trend: float
    projected_value: float
    threshold: float
    time_to_breach: float


def project(samples: list[MetricSample], horizon_minutes: float, threshold: float) -> Projection | None:
    """Linear projection of the last sample over the horizon

    None when the trend is undefined (zero first value).
    """
    values = stats.values_of(samples)
    trend = stats.calculate_trend(values)
    if trend is None:
        return None
    current = values[-1]
    projected = stats.project_value(current, trend, horizon_minutes)
    return Projection(
        current_value=current,
        trend=trend,
        projected_value=projected,
        threshold=threshold,
        time_to_breach=stats.time_to_breach(current, projected, threshold, horizon_minutes),
    )


class EarlyWarningGenerator:
    """Runs the four early-warning checks against the metric gateway"""

    def __init__(
        self,
        fetch: Callable[[str, TimeRange], list[MetricSample]],
        config: EngineConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.fetch = fetch
        self.config = config
        self.clock = clock

    def generate(self, time_range: TimeRange) -> list[EarlyWarning]:
        warnings = []
        warnings.extend(self.check_thresholds(time_range))
        warnings.extend(self.check_trends(time_range))
        warnings.extend(self.check_capacity(time_range))
        warnings.extend(self.check_cost(time_range))
        return warnings

    def _run_check(
        self,
        check: str,
        metrics: list[str],
        time_range: TimeRange,
        evaluate: Callable[[str, list[MetricSample]], EarlyWarning | None],
    ) -> list[EarlyWarning]:
        warnings = []
        for metric in metrics:
            try:
                samples = self.fetch(metric, time_range)
                if not samples:
                    continue
                warning = evaluate(metric, samples)
                if warning is not None:
                    warnings.append(warning)
            except GatewayError as e:
                logger.warning("Skipping metric, gateway failure", check=check, metric=metric, error=str(e))
            except Exception as e:
                logger.error(
                    "Early-warning check failed", check=check, metric=metric, error=str(e), exc_info=True
                )
        return warnings

    # ========================================
    # Threshold breach
    # ========================================

    def check_thresholds(self, time_range: TimeRange) -> list[EarlyWarning]:
        return self._run_check(
            "threshold", list(self.config.utilization_thresholds), time_range, self._threshold_warning
        )

    def threshold_for(self, metric: str) -> float:
        return self.config.utilization_thresholds.get(metric, self.config.default_utilization_threshold)

    def _threshold_warning(self, metric: str, samples: list[MetricSample]) -> EarlyWarning | None:
        threshold = self.threshold_for(metric)
        if samples[-1].value <= threshold * 0.9:
            return None

        p = project(samples, THRESHOLD_HORIZON_MINUTES, threshold)
        if p is None or p.time_to_breach >= BREACH_WINDOW_MINUTES:
            return None

        severity = Severity.CRITICAL if p.time_to_breach < CRITICAL_BREACH_MINUTES else Severity.HIGH
        return self._warning(
            WarningType.THRESHOLD_BREACH,
            severity,
            metric,
            p,
            title=f"{metric} approaching threshold",
            description=(
                f"{metric} utilization is approaching the threshold of {threshold} "
                f"(breach in ~{round(p.time_to_breach)} minutes)"
            ),
            confidence=0.85,
            context={"metric": metric, "threshold": threshold},
            action=WarningAction(
                action="Scale resources",
                priority=severity,
                timeframe="immediate",
                impact="Prevent service degradation",
            ),
        )

    # ========================================
    # Trend alert
    # ========================================

    def check_trends(self, time_range: TimeRange) -> list[EarlyWarning]:
        return self._run_check("trend", self.config.trend_alert_metrics, time_range, self._trend_warning)

    def _trend_warning(self, metric: str, samples: list[MetricSample]) -> EarlyWarning | None:
        if len(samples) < MIN_TREND_SAMPLES:
            return None

        current = samples[-1].value
        p = project(samples, TREND_HORIZON_MINUTES, threshold=current * 2)
        if p is None or p.trend <= self.config.trend_alert_growth:
            return None

        severity = Severity.CRITICAL if p.trend > 0.5 else Severity.HIGH
        return self._warning(
            WarningType.TREND_ALERT,
            severity,
            metric,
            p,
            title=f"Rapid growth detected in {metric}",
            description=f"{metric} showing {round(p.trend * 100)}% growth rate",
            confidence=0.75,
            context={"trend": p.trend, "metric": metric},
            action=WarningAction(
                action="Prepare for capacity scaling",
                priority=severity,
                timeframe="24 hours",
                impact="Support projected growth",
            ),
        )

    # ========================================
    # Capacity
    # ========================================

    def check_capacity(self, time_range: TimeRange) -> list[EarlyWarning]:
        return self._run_check(
            "capacity", self.config.capacity_resources, time_range, self._capacity_warning
        )

    def _capacity_warning(self, resource: str, samples: list[MetricSample]) -> EarlyWarning | None:
        utilization = samples[-1].value
        if utilization <= self.config.capacity_utilization_limit:
            return None

        p = project(samples, CAPACITY_HORIZON_MINUTES, threshold=1.0)
        if p is None:
            return None

        severity = Severity.CRITICAL if utilization > 0.9 else Severity.HIGH
        return self._warning(
            WarningType.CAPACITY_WARNING,
            severity,
            resource,
            p,
            title=f"High capacity utilization: {resource}",
            description=f"{resource} utilization is at {round(utilization * 100)}%",
            confidence=0.8,
            context={"resource": resource, "utilization": utilization},
            action=WarningAction(
                action="Scale up capacity",
                priority=severity,
                timeframe="immediate",
                impact="Prevent resource exhaustion",
            ),
        )

    # ========================================
    # Cost
    # ========================================

    def check_cost(self, time_range: TimeRange) -> list[EarlyWarning]:
        return self._run_check("cost", [self.config.cost_metric], time_range, self._cost_warning)

    def _cost_warning(self, metric: str, samples: list[MetricSample]) -> EarlyWarning | None:
        budget = self.config.daily_budget
        current = samples[-1].value
        if current <= budget * 0.8:
            return None

        p = project(samples, COST_HORIZON_MINUTES, threshold=budget)
        if p is None:
            return None

        severity = Severity.CRITICAL if current > budget * 0.9 else Severity.HIGH
        return self._warning(
            WarningType.COST_ALERT,
            severity,
            metric,
            p,
            title="Daily budget approaching limit",
            description=(
                f"Current cost is {round(current)} ({round(current / budget * 100)}% of daily budget)"
            ),
            confidence=0.85,
            context={"daily_budget": budget, "projected_cost": p.projected_value},
            action=WarningAction(
                action="Review and optimize costs",
                priority=severity,
                timeframe="immediate",
                impact="Prevent budget overrun",
            ),
        )

    def _warning(
        self,
        warning_type: WarningType,
        severity: Severity,
        metric: str,
        p: Projection,
        title: str,
        description: str,
        confidence: float,
        context: dict,
        action: WarningAction,
    ) -> EarlyWarning:
        warning = EarlyWarning(
            type=warning_type,
            severity=severity,
            title=title,
            description=description,
            metric=metric,
            current_value=p.current_value,
            threshold=p.threshold,
            projected_value=p.projected_value,
            time_to_breach=p.time_to_breach,
            confidence=confidence,
            created_at=self.clock(),
            context=context,
            actions=[action],
        )
        logger.info(
            "Early warning raised",
            type=warning_type.value,
            metric=metric,
            severity=severity.value,
            current=round(p.current_value, 4),
            projected=round(p.projected_value, 4),
            time_to_breach=None if math.isinf(p.time_to_breach) else round(p.time_to_breach, 1),
        )
        return warning
