"""
Tests for the engine CLI.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

from src.anomaly.run import build_config, build_gateway, main, parse_arguments


@pytest.fixture
def restore_root_level():
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


class TestArguments:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DAILY_BUDGET", raising=False)

        args = parse_arguments([])
        config = build_config(args)

        assert config.detection_interval_seconds == 900
        assert config.warning_interval_seconds == 300
        assert config.z_score_threshold == 3.0
        assert config.daily_budget == 1000
        assert config.gateway_timeout_seconds == 30
        assert "system_performance" in config.detection_metrics
        assert args.run_immediately is False

    def test_overrides(self):
        args = parse_arguments(
            [
                "--metrics",
                "compute",
                "storage",
                "--z-score-threshold",
                "2.5",
                "--daily-budget",
                "250",
                "--detection-interval",
                "60",
                "--run-immediately",
            ]
        )
        config = build_config(args)

        assert config.detection_metrics == ["compute", "storage"]
        assert config.z_score_threshold == 2.5
        assert config.daily_budget == 250
        assert config.detection_interval_seconds == 60
        assert args.run_immediately is True


class TestBuildGateway:
    @patch("src.anomaly.run.PostgresMetricGateway")
    def test_unhealthy_database(self, mock_gateway_cls):
        gateway = MagicMock()
        gateway.check_health.return_value = False
        mock_gateway_cls.return_value = gateway

        with pytest.raises(RuntimeError, match="health check failed"):
            build_gateway(parse_arguments([]))

        gateway.close.assert_called_once()


class TestMain:
    @patch("src.anomaly.run.build_gateway")
    def test_gateway_failure_exits_with_error(self, mock_build_gateway):
        mock_build_gateway.side_effect = RuntimeError("Database health check failed")

        assert main([]) == 1

    @patch("src.anomaly.run.DetectionScheduler")
    @patch("src.anomaly.run.build_gateway")
    def test_runs_scheduler_and_closes_engine(self, mock_build_gateway, mock_scheduler_cls):
        gateway = MagicMock()
        mock_build_gateway.return_value = gateway
        mock_scheduler_cls.return_value.stats = {}

        assert main(["--duration", "1", "--run-immediately"]) == 0

        mock_scheduler_cls.return_value.run.assert_called_once_with(duration_seconds=1)
        assert mock_scheduler_cls.call_args.kwargs["run_immediately"] is True
        gateway.close.assert_called_once()

    @patch("src.anomaly.run.build_gateway")
    def test_log_level_flag_sets_root_level(self, mock_build_gateway, restore_root_level):
        mock_build_gateway.side_effect = RuntimeError("Database health check failed")

        main(["--log-level", "WARNING"])

        assert logging.getLogger().level == logging.WARNING
        assert not logging.getLogger("src.anomaly.engine").isEnabledFor(logging.INFO)

    @patch("src.anomaly.run.build_gateway")
    def test_log_level_flag_can_lower_level(self, mock_build_gateway, restore_root_level):
        mock_build_gateway.side_effect = RuntimeError("Database health check failed")
        logging.getLogger().setLevel(logging.ERROR)

        main(["--log-level", "DEBUG"])

        assert logging.getLogger().level == logging.DEBUG
