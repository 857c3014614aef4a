"""
Exceptions raised by the anomaly engine.
"""


class GatewayError(RuntimeError):
    """The metric gateway failed or timed out for one metric"""

    def __init__(self, metric: str, message: str):
        super().__init__(f"Metric gateway failed for '{metric}': {message}")
        self.metric = metric


class RuleValidationError(ValueError):
    """A detection rule specification was rejected"""
