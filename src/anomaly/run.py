"""
CLI for the anomaly detection and early-warning engine.

Usage:
    python -m src.anomaly.run [options]
"""

import argparse
import logging
import os
import sys

import structlog

from src.core.logger import setup_logging

from .engine import AnomalyEngine
from .gateway import PostgresMetricGateway
from .models import EngineConfig
from .scheduler import DetectionScheduler

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Anomaly detection and early-warning engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Basic usage
        python -m src.anomaly.run

        # Faster loops and a custom metric set
        python -m src.anomaly.run \\
            --detection-interval 300 \\
            --warning-interval 60 \\
            --metrics compute storage bandwidth

        # Test run for 10 minutes, first passes immediately
        python -m src.anomaly.run --duration 600 --run-immediately
        """,
    )

    # Detection settings
    parser.add_argument(
        "--metrics",
        nargs="+",
        default=EngineConfig().detection_metrics,
        help="Metrics scanned by the detection loop",
    )
    parser.add_argument(
        "--z-score-threshold",
        type=float,
        default=3.0,
        help="Standard deviations above which a sample is an outlier (default: 3.0)",
    )
    parser.add_argument(
        "--daily-budget",
        type=float,
        default=float(os.getenv("DAILY_BUDGET", "1000")),
        help="Daily cost budget used by the cost alert (default: 1000 or DAILY_BUDGET env var)",
    )

    # Scheduling
    parser.add_argument(
        "--detection-interval",
        type=float,
        default=15 * 60,
        help="Seconds between detection passes (default: 900)",
    )
    parser.add_argument(
        "--warning-interval",
        type=float,
        default=5 * 60,
        help="Seconds between early-warning passes (default: 300)",
    )
    parser.add_argument(
        "--gateway-timeout",
        type=float,
        default=30.0,
        help="Timeout in seconds for each metric query (default: 30)",
    )
    parser.add_argument(
        "--run-immediately",
        action="store_true",
        help="Run the first passes at startup instead of after one interval",
    )

    # PostgreSQL settings
    parser.add_argument(
        "--postgres-host",
        default=os.getenv("POSTGRES_HOST", "localhost"),
        help="PostgreSQL host (default: localhost or POSTGRES_HOST env var)",
    )
    parser.add_argument(
        "--postgres-port",
        type=int,
        default=int(os.getenv("POSTGRES_PORT", "5432")),
        help="PostgreSQL port (default: 5432)",
    )
    parser.add_argument(
        "--postgres-db",
        default=os.getenv("POSTGRES_DB", "mlops_db"),
        help="PostgreSQL database (default: mlops_db)",
    )
    parser.add_argument(
        "--postgres-user",
        default=os.getenv("POSTGRES_USER", "mlops"),
        help="PostgreSQL user (default: mlops)",
    )
    parser.add_argument(
        "--postgres-password",
        default=os.getenv("POSTGRES_PASSWORD", "mlops_password"),
        help="PostgreSQL password",
    )
    parser.add_argument(
        "--metrics-table",
        default=os.getenv("METRICS_TABLE", "metric_samples"),
        help="Table holding (timestamp, metric_name, value) rows (default: metric_samples)",
    )

    # Runtime settings
    parser.add_argument(
        "--duration",
        type=int,
        help="Run for N seconds then stop (default: infinite)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=os.getenv("LOG_FORMAT", "").lower() == "json",
        help="Emit JSON log lines",
    )

    return parser.parse_args(argv)


def build_config(args) -> EngineConfig:
    """Build configuration from arguments"""
    return EngineConfig(
        detection_metrics=args.metrics,
        z_score_threshold=args.z_score_threshold,
        daily_budget=args.daily_budget,
        detection_interval_seconds=args.detection_interval,
        warning_interval_seconds=args.warning_interval,
        gateway_timeout_seconds=args.gateway_timeout,
    )


def build_gateway(args) -> PostgresMetricGateway:
    gateway = PostgresMetricGateway(
        host=args.postgres_host,
        port=args.postgres_port,
        database=args.postgres_db,
        user=args.postgres_user,
        password=args.postgres_password,
        table=args.metrics_table,
    )
    if not gateway.check_health():
        gateway.close()
        raise RuntimeError("Database health check failed")
    return gateway


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level, json_output=args.log_json)

    logger.info("Starting anomaly detection engine")

    engine = None
    try:
        config = build_config(args)
        engine = AnomalyEngine(build_gateway(args), config)

        scheduler = DetectionScheduler(engine, run_immediately=args.run_immediately)
        scheduler.run(duration_seconds=args.duration)

        logger.info("Engine stopped", stats=scheduler.stats)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Engine failed", error=str(e), exc_info=True)
        return 1

    finally:
        if engine is not None:
            engine.close()


if __name__ == "__main__":
    sys.exit(main())
