"""
Statistics shared by the detectors and the early-warning checks.

All helpers take plain sequences of floats so they can be reused on sample
values, slices and test fixtures alike.
"""

import math
from collections.abc import Sequence

import numpy as np

from .models import MetricSample


def values_of(samples: Sequence[MetricSample]) -> list[float]:
    return [s.value for s in samples]


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation, 0 for fewer than two values"""
    if len(values) < 2:
        return 0.0
    return float(np.std(values))


def calculate_trend(values: Sequence[float]) -> float | None:
    """Normalized slope (last - first) / (first * n)

    Returns 0.0 for fewer than two values and None when the first value is zero,
    in which case the trend carries no signal.
    """
    if len(values) < 2:
        return 0.0
    first, last = values[0], values[-1]
    if first == 0:
        return None
    return (last - first) / (first * len(values))


def seasonal_indices(values: Sequence[float], period: int) -> list[float] | None:
    """Average value per bucket (index mod period) relative to the overall mean

    Buckets without samples get a neutral index of 1.0. Returns None when the
    overall mean is zero.
    """
    overall = mean(values)
    if overall == 0:
        return None

    sums = np.zeros(period)
    counts = np.zeros(period)
    for index, value in enumerate(values):
        sums[index % period] += value
        counts[index % period] += 1

    return [
        float(sums[b] / counts[b] / overall) if counts[b] > 0 else 1.0 for b in range(period)
    ]


def project_value(current: float, trend: float, horizon_minutes: float) -> float:
    """Project the current value forward using an hourly trend"""
    return current * (1 + trend * (horizon_minutes / 60))


def time_to_breach(
    current: float, projected: float, threshold: float, horizon_minutes: float
) -> float:
    """Minutes until the linear trajectory current -> projected crosses threshold

    math.inf when the trajectory does not grow. A value already past the
    threshold breaches immediately (0).
    """
    if projected <= current or horizon_minutes <= 0:
        return math.inf
    rate_per_minute = (projected - current) / horizon_minutes
    return max(0.0, (threshold - current) / rate_per_minute)
