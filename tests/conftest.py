"""
Pytest configuration and shared fixtures.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.anomaly.gateway import MetricGateway
from src.anomaly.models import EngineConfig, MetricSample, TimeRange

# Midnight, so that sample position within a day equals its hour
NOW = datetime(2025, 10, 2, tzinfo=UTC)


def hourly(values, start: datetime) -> list[MetricSample]:
    """Hourly samples starting at `start`"""
    return [
        MetricSample(timestamp=start + timedelta(hours=i), value=float(v))
        for i, v in enumerate(values)
    ]


class FakeGateway(MetricGateway):
    """In-memory gateway filtering preset series by time range"""

    def __init__(self, series: dict | None = None, failing=()):
        self.series = series or {}
        self.failing = set(failing)
        self.calls = []
        self.closed = False

    def get_recent_samples(self, metric, time_range):
        self.calls.append((metric, time_range))
        if metric in self.failing:
            raise ConnectionError(f"connection reset while reading {metric}")
        return [
            s
            for s in self.series.get(metric, [])
            if time_range.start <= s.timestamp < time_range.end
        ]

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def day_range():
    """The last 24 hours before NOW; its baseline is the 24 hours before that"""
    return TimeRange(start=NOW - timedelta(hours=24), end=NOW)


@pytest.fixture
def spike_series():
    """48 hourly samples: baseline alternating 90/110, recent flat 100 ending in a spike of 250"""
    baseline = [90 if i % 2 == 0 else 110 for i in range(24)]
    recent = [100] * 23 + [250]
    return hourly(baseline + recent, start=NOW - timedelta(hours=48))


@pytest.fixture
def engine_config():
    """Engine configuration without default rules for predictable tests"""
    return EngineConfig(install_default_rules=False, gateway_timeout_seconds=2.0)
