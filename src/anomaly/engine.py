"""
Anomaly detection and early-warning engine.

AnomalyEngine is the one owner of detection state in a process: the anomaly
and warning stores and the rule registry. Construct it once and hand it to the
scheduler and to whatever serves queries.
"""

from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta
from typing import Any

import structlog

from .early_warning import EarlyWarningGenerator
from .errors import GatewayError
from .gateway import MetricGateway
from .methods import (
    AnomalyDetectionMethod,
    SeasonalPatternMethod,
    StatisticalOutlierMethod,
    TrendChangeMethod,
    method_for_rule,
)
from .models import (
    AnomalyDetection,
    AnomalyStatus,
    EarlyWarning,
    EngineConfig,
    MetricSample,
    RulePerformance,
    TimeRange,
    WarningStatus,
    utcnow,
)
from .rules import RuleRegistry
from .store import AnomalyStore, WarningStore, deduplicate
from .windows import WindowManager

logger = structlog.get_logger(__name__)

FALSE_POSITIVE = "false_positive"


class AnomalyEngine:
    """Runs detection and warning passes and serves their results"""

    def __init__(
        self,
        gateway: MetricGateway,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.config = config or EngineConfig()
        self.clock = clock

        self.anomalies = AnomalyStore(self.config.max_anomalies)
        self.warnings = WarningStore(self.config.max_warnings)
        self.rules = RuleRegistry(clock=clock)

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.gateway_workers, thread_name_prefix="metric-gateway"
        )
        self.windows = WindowManager(
            self.fetch_samples,
            min_recent=self.config.min_recent_samples,
            min_baseline=self.config.min_baseline_samples,
        )
        self.methods: list[AnomalyDetectionMethod] = [
            StatisticalOutlierMethod({"z_score_threshold": self.config.z_score_threshold}),
            SeasonalPatternMethod(
                {
                    "period": self.config.seasonal_period,
                    "index_tolerance": self.config.seasonal_index_tolerance,
                }
            ),
            TrendChangeMethod(
                {
                    "min_samples": self.config.min_trend_samples,
                    "change_threshold": self.config.trend_change_threshold,
                }
            ),
        ]
        self.warning_generator = EarlyWarningGenerator(self.fetch_samples, self.config, clock=clock)

        if self.config.install_default_rules:
            self.rules.install_defaults()

        logger.info(
            "Engine initialized",
            methods=[m.name for m in self.methods],
            max_anomalies=self.config.max_anomalies,
            max_warnings=self.config.max_warnings,
            gateway=type(gateway).__name__,
        )

    # ========================================
    # Gateway access
    # ========================================

    def fetch_samples(self, metric: str, time_range: TimeRange) -> list[MetricSample]:
        """Gateway call bounded by the configured timeout

        Raises:
            GatewayError: On gateway failure or timeout
        """
        future = self._executor.submit(self.gateway.get_recent_samples, metric, time_range)
        try:
            return future.result(timeout=self.config.gateway_timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            raise GatewayError(
                metric, f"timed out after {self.config.gateway_timeout_seconds}s"
            ) from None
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayError(metric, str(e)) from e

    # ========================================
    # Detection
    # ========================================

    def default_detection_range(self) -> TimeRange:
        return TimeRange.last(timedelta(hours=self.config.detection_lookback_hours), self.clock())

    def detect_anomalies(
        self, metric: str, time_range: TimeRange | None = None
    ) -> list[AnomalyDetection]:
        """Run one detection pass for a metric

        Returns the stored anomaly for each finding of this pass after in-pass
        deduplication: a finding whose dedup key is already stored comes back
        as the stored instance, so every returned id can be acknowledged or
        resolved. Gateway failures and insufficient data yield an empty list.
        """
        time_range = time_range or self.default_detection_range()
        logger.info(
            "Detecting anomalies",
            metric=metric,
            start=time_range.start.isoformat(),
            end=time_range.end.isoformat(),
        )

        try:
            windows = self.windows.load(metric, time_range)
        except GatewayError as e:
            logger.warning("Skipping metric, gateway failure", metric=metric, error=str(e))
            return []

        if windows is None:
            return []

        found = []
        for method in self.methods:
            try:
                found.extend(method.detect(windows))
            except Exception as e:
                logger.error(
                    "Detection method failed",
                    metric=metric,
                    method=method.name,
                    error=str(e),
                    exc_info=True,
                )

        unique = deduplicate(found)
        if not unique:
            return []

        rule_ids = [r.id for r in self.rules.rules_for_metric(metric)]
        for anomaly in unique:
            anomaly.rule_ids = list(rule_ids)

        resident = self.anomalies.add_many(unique)
        new = [a for a, stored in zip(unique, resident, strict=True) if a is stored]

        # Rules are credited once per pass that stores something new
        if new:
            now = self.clock()
            for rule_id in rule_ids:
                self.rules.record_trigger(rule_id, at=now)

        logger.info(
            "Anomaly detection completed",
            metric=metric,
            detected=len(unique),
            stored=len(new),
            total_stored=len(self.anomalies),
        )
        return resident

    # ========================================
    # Early warnings
    # ========================================

    def generate_early_warnings(self, time_range: TimeRange | None = None) -> list[EarlyWarning]:
        time_range = time_range or TimeRange.last(
            timedelta(hours=self.config.warning_lookback_hours), self.clock()
        )
        logger.info(
            "Generating early warnings",
            start=time_range.start.isoformat(),
            end=time_range.end.isoformat(),
        )

        generated = self.warning_generator.generate(time_range)
        warnings = self.warnings.add_or_refresh(generated)
        created = sum(1 for new, stored in zip(generated, warnings, strict=True) if new is stored)

        logger.info(
            "Early warning generation completed",
            generated=len(generated),
            created=created,
            refreshed=len(generated) - created,
            total_stored=len(self.warnings),
        )
        return warnings

    # ========================================
    # Queries and status transitions
    # ========================================

    def get_active_anomalies(self) -> list[AnomalyDetection]:
        return self.anomalies.select(lambda a: a.is_active)

    def get_active_warnings(self) -> list[EarlyWarning]:
        return self.warnings.select(lambda w: w.status == WarningStatus.ACTIVE)

    def get_anomaly(self, anomaly_id: str) -> AnomalyDetection | None:
        return self.anomalies.get(anomaly_id)

    def get_warning(self, warning_id: str) -> EarlyWarning | None:
        return self.warnings.get(warning_id)

    def acknowledge_anomaly(self, anomaly_id: str, user_id: str) -> bool:
        def mutate(anomaly: AnomalyDetection):
            anomaly.status = AnomalyStatus.INVESTIGATING
            anomaly.assigned_to = user_id

        updated = self.anomalies.update(anomaly_id, mutate)
        if updated:
            logger.info("Anomaly acknowledged", anomaly_id=anomaly_id, user_id=user_id)
        return updated

    def resolve_anomaly(self, anomaly_id: str, resolution: str) -> bool:
        """Resolve an anomaly; a resolution of "false_positive" marks it as such"""
        now = self.clock()

        def mutate(anomaly: AnomalyDetection):
            if resolution == FALSE_POSITIVE:
                anomaly.status = AnomalyStatus.FALSE_POSITIVE
            else:
                anomaly.status = AnomalyStatus.RESOLVED
            anomaly.resolved_at = now
            anomaly.resolution = resolution

        updated = self.anomalies.update(anomaly_id, mutate)
        if updated:
            logger.info("Anomaly resolved", anomaly_id=anomaly_id, resolution=resolution)
        return updated

    def acknowledge_warning(self, warning_id: str, user_id: str) -> bool:
        now = self.clock()

        def mutate(warning: EarlyWarning):
            warning.status = WarningStatus.ACKNOWLEDGED
            warning.acknowledged_at = now
            warning.acknowledged_by = user_id

        return self.warnings.update(warning_id, mutate)

    def resolve_warning(self, warning_id: str) -> bool:
        now = self.clock()

        def mutate(warning: EarlyWarning):
            warning.status = WarningStatus.RESOLVED
            warning.resolved_at = now

        return self.warnings.update(warning_id, mutate)

    def dismiss_warning(self, warning_id: str) -> bool:
        now = self.clock()

        def mutate(warning: EarlyWarning):
            warning.status = WarningStatus.DISMISSED
            warning.dismissed_at = now

        return self.warnings.update(warning_id, mutate)

    # ========================================
    # Detection rules
    # ========================================

    def create_detection_rule(self, spec: Mapping[str, Any]) -> str:
        """Register a rule; raises RuleValidationError on an invalid spec"""
        return self.rules.create_rule(spec)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        return self.rules.set_enabled(rule_id, enabled)

    def get_rule_performance(self, rule_id: str) -> RulePerformance | None:
        false_positives = len(
            self.anomalies.select(
                lambda a: a.status == AnomalyStatus.FALSE_POSITIVE and rule_id in a.rule_ids
            )
        )
        return self.rules.get_rule_performance(rule_id, false_positives)

    def evaluate_rule(
        self, rule_id: str, time_range: TimeRange | None = None
    ) -> list[AnomalyDetection]:
        """Run a rule's own strategy on demand and store what it finds

        Raises:
            KeyError: If the rule does not exist
            ValueError: If the rule's algorithm has no registered strategy
        """
        rule = self.rules.get_rule(rule_id)
        if rule is None:
            raise KeyError(rule_id)

        method = method_for_rule(rule)
        time_range = time_range or self.default_detection_range()

        try:
            windows = self.windows.load(rule.metric, time_range)
        except GatewayError as e:
            logger.warning("Rule evaluation skipped, gateway failure", rule_id=rule_id, error=str(e))
            return []
        if windows is None:
            return []

        found = deduplicate(method.detect(windows))
        for anomaly in found:
            anomaly.rule_ids = [rule.id]
        resident = self.anomalies.add_many(found)
        new = [a for a, stored in zip(found, resident, strict=True) if a is stored]
        if new:
            self.rules.record_trigger(rule.id)

        logger.info(
            "Rule evaluated",
            rule_id=rule_id,
            method=method.name,
            metric=rule.metric,
            detected=len(found),
            stored=len(new),
        )
        return resident

    def close(self):
        """Release the gateway worker pool and the gateway"""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.gateway.close()
        logger.info("Engine closed")
