"""
Baseline & window management.

A detection pass compares the recent window (the requested range) with the
baseline window: the immediately preceding range of identical length.
"""

from collections.abc import Callable
from dataclasses import dataclass

import structlog

from .models import MetricSample, TimeRange

logger = structlog.get_logger(__name__)

SampleFetcher = Callable[[str, TimeRange], list[MetricSample]]


@dataclass
class MetricWindows:
    metric: str
    recent: list[MetricSample]
    baseline: list[MetricSample]


class WindowManager:
    """Loads recent and baseline windows and enforces minimum sample counts"""

    def __init__(self, fetch: SampleFetcher, min_recent: int = 10, min_baseline: int = 20):
        self.fetch = fetch
        self.min_recent = min_recent
        self.min_baseline = min_baseline

    def load(self, metric: str, time_range: TimeRange) -> MetricWindows | None:
        """Fetch both windows, or None when either has too few samples

        Gateway errors propagate to the caller.
        """
        recent = self.fetch(metric, time_range)
        if len(recent) < self.min_recent:
            logger.debug(
                "Insufficient recent data, skipping",
                metric=metric,
                points=len(recent),
                required=self.min_recent,
            )
            return None

        baseline = self.fetch(metric, time_range.preceding())
        if len(baseline) < self.min_baseline:
            logger.debug(
                "Insufficient baseline data, skipping",
                metric=metric,
                points=len(baseline),
                required=self.min_baseline,
            )
            return None

        return MetricWindows(metric=metric, recent=recent, baseline=baseline)
