"""
Tests for the periodic detection scheduler.
"""

import time
from unittest.mock import MagicMock

import pytest

from src.anomaly.engine import AnomalyEngine
from src.anomaly.models import EngineConfig
from src.anomaly.scheduler import DetectionScheduler
from tests.conftest import FakeGateway


def wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.config = EngineConfig(
        install_default_rules=False,
        detection_metrics=["compute", "storage", "bandwidth"],
        detection_interval_seconds=0.05,
        warning_interval_seconds=0.05,
    )
    engine.detect_anomalies.return_value = []
    engine.generate_early_warnings.return_value = []
    return engine


class TestDetectionPass:
    """Tests for a single detection pass across metrics."""

    def test_gateway_failure_does_not_stop_pass(self, spike_series, clock):
        """A failing metric leaves the remaining metrics processed."""
        gateway = FakeGateway({"compute": spike_series}, failing={"storage"})
        config = EngineConfig(
            install_default_rules=False,
            detection_metrics=["storage", "compute", "bandwidth"],
        )
        engine = AnomalyEngine(gateway, config, clock=clock)
        scheduler = DetectionScheduler(engine)

        scheduler.run_detection_pass()

        assert [m for m, _ in gateway.calls][0] == "storage"
        assert {m for m, _ in gateway.calls} == {"storage", "compute", "bandwidth"}
        assert scheduler.stats["detection_passes"] == 1
        engine.close()

    def test_unexpected_metric_error_is_counted(self, mock_engine):
        def detect(metric):
            if metric == "storage":
                raise RuntimeError("store corrupted")
            return [MagicMock(), MagicMock()]

        mock_engine.detect_anomalies.side_effect = detect
        scheduler = DetectionScheduler(mock_engine)

        detected = scheduler.run_detection_pass()

        assert detected == 4
        assert [c.args[0] for c in mock_engine.detect_anomalies.call_args_list] == [
            "compute",
            "storage",
            "bandwidth",
        ]
        assert scheduler.stats["metric_failures"] == 1
        assert scheduler.stats["anomalies_detected"] == 4

    def test_warning_pass(self, mock_engine):
        mock_engine.generate_early_warnings.return_value = [MagicMock()] * 3
        scheduler = DetectionScheduler(mock_engine)

        assert scheduler.run_warning_pass() == 3
        assert scheduler.stats["warning_passes"] == 1
        assert scheduler.stats["warnings_generated"] == 3


class TestSchedulerLoops:
    def test_start_and_stop(self, mock_engine):
        scheduler = DetectionScheduler(mock_engine, run_immediately=True)

        scheduler.start()
        try:
            assert wait_for(
                lambda: scheduler.stats["detection_passes"] >= 2
                and scheduler.stats["warning_passes"] >= 2
            )
        finally:
            scheduler.stop(timeout=2.0)

        assert not scheduler.running

    def test_failing_pass_keeps_loop_alive(self, mock_engine):
        mock_engine.generate_early_warnings.side_effect = RuntimeError("gateway pool closed")
        scheduler = DetectionScheduler(mock_engine, run_immediately=True)

        scheduler.start()
        try:
            assert wait_for(lambda: scheduler.stats["pass_failures"] >= 2)
            assert scheduler.running
        finally:
            scheduler.stop(timeout=2.0)

    def test_start_twice(self, mock_engine):
        scheduler = DetectionScheduler(mock_engine)

        scheduler.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                scheduler.start()
        finally:
            scheduler.stop(timeout=2.0)

    def test_run_for_duration(self, mock_engine):
        scheduler = DetectionScheduler(mock_engine, run_immediately=True)

        scheduler.run(duration_seconds=0.2)

        assert not scheduler.running
        assert scheduler.stats["detection_passes"] >= 1
