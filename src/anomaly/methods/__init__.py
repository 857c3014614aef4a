"""
Anomaly detection methods registry and factory.
"""

from ..models import DetectionRule, RuleAlgorithm
from .base import AnomalyDetectionMethod
from .seasonal import SeasonalPatternMethod
from .statistical import StatisticalOutlierMethod
from .threshold import ThresholdMethod
from .trend import TrendChangeMethod

# Registry of available methods
METHOD_REGISTRY = {
    "statistical": StatisticalOutlierMethod,
    "seasonal": SeasonalPatternMethod,
    "trend": TrendChangeMethod,
    "threshold": ThresholdMethod,
}

# Strategy used when a detection rule is evaluated on demand
RULE_ALGORITHM_METHODS = {
    RuleAlgorithm.STATISTICAL: "statistical",
    RuleAlgorithm.PATTERN_BASED: "seasonal",
    RuleAlgorithm.THRESHOLD: "threshold",
    # RuleAlgorithm.MACHINE_LEARNING: no built-in strategy
}


def get_method(method_name: str, config: dict | None = None) -> AnomalyDetectionMethod:
    """Factory to create an anomaly detection method

    Args:
        method_name: Name of the method (e.g., 'statistical')
        config: Configuration dict for the method

    Returns:
        Instance of the detection method

    Raises:
        ValueError: If method_name is not registered
    """
    if method_name not in METHOD_REGISTRY:
        available = ", ".join(METHOD_REGISTRY.keys())
        raise ValueError(f"Unknown method '{method_name}'. Available methods: {available}")

    method_class = METHOD_REGISTRY[method_name]
    return method_class(config)


def method_for_rule(rule: DetectionRule) -> AnomalyDetectionMethod:
    """Build the detection method a rule's algorithm and parameters describe

    Raises:
        ValueError: If no strategy is registered for the rule's algorithm
    """
    method_name = RULE_ALGORITHM_METHODS.get(rule.algorithm)
    if method_name is None:
        raise ValueError(f"No detection strategy registered for algorithm '{rule.algorithm.value}'")

    params = rule.parameters
    config: dict = {}
    if method_name == "statistical":
        if params.sensitivity is not None:
            config["z_score_threshold"] = params.sensitivity
    elif method_name == "seasonal":
        if params.window_size is not None:
            config["period"] = params.window_size
        if params.sensitivity is not None:
            config["index_tolerance"] = params.sensitivity
        if params.confidence is not None:
            config["confidence"] = params.confidence
    elif method_name == "threshold":
        if params.threshold is not None:
            config["threshold"] = params.threshold
        if params.confidence is not None:
            config["confidence"] = params.confidence

    return get_method(method_name, config)


def list_methods() -> list[str]:
    """List all available detection methods"""
    return list(METHOD_REGISTRY.keys())


__all__ = [
    "AnomalyDetectionMethod",
    "SeasonalPatternMethod",
    "StatisticalOutlierMethod",
    "ThresholdMethod",
    "TrendChangeMethod",
    "get_method",
    "list_methods",
    "method_for_rule",
]
