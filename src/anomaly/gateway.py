"""
Metric gateway: the engine's only source of time-series data.

The engine depends on the abstract MetricGateway. PostgresMetricGateway reads
hourly averages from a TimescaleDB `metric_samples` table
(timestamp, metric_name, value).
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager

import pandas as pd
import psycopg2
import structlog

from .errors import GatewayError
from .models import MetricSample, TimeRange

logger = structlog.get_logger(__name__)


class MetricGateway(ABC):
    """Supplies ordered hourly samples for a metric over a time range"""

    @abstractmethod
    def get_recent_samples(self, metric: str, time_range: TimeRange) -> list[MetricSample]:
        """Return samples ordered by timestamp

        May return fewer samples than the range covers (or none). Raises only on
        a genuine I/O failure.
        """
        pass

    def close(self) -> None:
        """Release any held resources"""
        pass


def frame_to_samples(df: pd.DataFrame) -> list[MetricSample]:
    """Convert a ['timestamp', 'value'] frame into ordered samples, dropping gaps"""
    if df.empty:
        return []
    df = df.dropna(subset=["value"]).copy()
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.sort_values("timestamp")
    return [
        MetricSample(timestamp=ts.to_pydatetime(), value=float(value))
        for ts, value in zip(df["timestamp"], df["value"], strict=True)
    ]


class PostgresMetricGateway(MetricGateway):
    """Metric gateway backed by PostgreSQL/TimescaleDB"""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        table: str = "metric_samples",
        bucket: str = "1 hour",
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.table = table
        self.bucket = bucket
        self.connection = None
        self._connect()

    def _connect(self):
        """Establish connection to PostgreSQL"""
        try:
            self.connection = psycopg2.connect(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                connect_timeout=10,
            )
            logger.info(
                "PostgreSQL metric gateway connected",
                host=self.host,
                database=self.database,
                table=self.table,
            )
        except Exception as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise

    @contextmanager
    def get_cursor(self):
        """Cursor that rolls back on failure (reads only, nothing to commit)"""
        cursor = self.connection.cursor()
        try:
            yield cursor
        except Exception:
            self.connection.rollback()
            raise
        finally:
            cursor.close()

    def get_recent_samples(self, metric: str, time_range: TimeRange) -> list[MetricSample]:
        query = f"""
            SELECT
                time_bucket('{self.bucket}', timestamp) AS timestamp,
                AVG(value) AS value
            FROM {self.table}
            WHERE metric_name = %s
              AND timestamp >= %s
              AND timestamp < %s
            GROUP BY time_bucket('{self.bucket}', timestamp)
            ORDER BY timestamp
        """

        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, (metric, time_range.start, time_range.end))
                columns = [desc[0] for desc in cursor.description]
                rows = cursor.fetchall()
        except Exception as e:
            logger.error("Failed to query metric samples", metric=metric, error=str(e))
            raise GatewayError(metric, str(e)) from e

        samples = frame_to_samples(pd.DataFrame(rows, columns=columns))
        logger.debug(
            "Queried metric samples",
            metric=metric,
            start=time_range.start.isoformat(),
            end=time_range.end.isoformat(),
            rows=len(samples),
        )
        return samples

    def check_health(self) -> bool:
        """Check if database connection is healthy"""
        try:
            with self.get_cursor() as cursor:
                cursor.execute("SELECT 1")
                return cursor.fetchone()[0] == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    def close(self):
        if self.connection:
            self.connection.close()
            logger.info("PostgreSQL connection closed")
