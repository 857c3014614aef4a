"""
Periodic detection and early-warning loops.

Each loop owns one daemon thread: run a pass, then wait for the interval. A
pass never overlaps with the next one of the same loop; ticks that would fire
while a pass is still running are skipped. The two loops run concurrently and
share the engine's stores, whose locks serialize all mutations. Stopping is
cooperative: in-flight passes complete.
"""

import threading
import time

import structlog

from .engine import AnomalyEngine

logger = structlog.get_logger(__name__)


class DetectionScheduler:
    """Drives the engine's detection (15 min) and warning (5 min) passes"""

    def __init__(self, engine: AnomalyEngine, run_immediately: bool = False):
        self.engine = engine
        self.config = engine.config
        self.run_immediately = run_immediately
        self._stop = threading.Event()
        self._stats_lock = threading.Lock()
        self._threads: list[threading.Thread] = []

        self.stats = {
            "detection_passes": 0,
            "warning_passes": 0,
            "anomalies_detected": 0,
            "warnings_generated": 0,
            "metric_failures": 0,
            "pass_failures": 0,
        }

    def _count(self, key: str, amount: int = 1):
        with self._stats_lock:
            self.stats[key] += amount

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def run_detection_pass(self) -> int:
        """Detect anomalies for every configured metric, each in isolation"""
        start_time = time.time()
        detected = 0

        for metric in self.config.detection_metrics:
            try:
                detected += len(self.engine.detect_anomalies(metric))
            except Exception as e:
                self._count("metric_failures")
                logger.error("Detection failed for metric", metric=metric, error=str(e), exc_info=True)

        self._count("detection_passes")
        self._count("anomalies_detected", detected)
        logger.info(
            "Detection pass completed",
            metrics=len(self.config.detection_metrics),
            anomalies=detected,
            elapsed_sec=round(time.time() - start_time, 2),
        )
        return detected

    def run_warning_pass(self) -> int:
        start_time = time.time()
        generated = len(self.engine.generate_early_warnings())

        self._count("warning_passes")
        self._count("warnings_generated", generated)
        logger.info(
            "Warning pass completed",
            warnings=generated,
            elapsed_sec=round(time.time() - start_time, 2),
        )
        return generated

    def _loop(self, name: str, interval: float, run_pass):
        logger.info("Starting scheduled loop", loop=name, interval_seconds=interval)

        if self.run_immediately:
            self._guarded(name, run_pass)

        while not self._stop.wait(interval):
            self._guarded(name, run_pass)

        logger.info("Scheduled loop stopped", loop=name)

    def _guarded(self, name: str, run_pass):
        try:
            run_pass()
        except Exception as e:
            self._count("pass_failures")
            logger.error("Scheduled pass failed", loop=name, error=str(e), exc_info=True)

    def start(self):
        if self.running:
            raise RuntimeError("Scheduler already running")

        self._stop.clear()
        self._threads = [
            threading.Thread(
                target=self._loop,
                args=("detection", self.config.detection_interval_seconds, self.run_detection_pass),
                name="anomaly-detection-loop",
                daemon=True,
            ),
            threading.Thread(
                target=self._loop,
                args=("warning", self.config.warning_interval_seconds, self.run_warning_pass),
                name="early-warning-loop",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float | None = None):
        """Stop firing ticks and wait for in-flight passes to finish"""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        logger.info("Scheduler stopped", stats=self.stats)

    def run(self, duration_seconds: int | None = None):
        """Run both loops in the foreground

        Args:
            duration_seconds: Optional duration in seconds. If None, runs until interrupted.
        """
        self.start()
        try:
            if duration_seconds:
                self._stop.wait(duration_seconds)
            else:
                while not self._stop.wait(1.0):
                    pass
        except KeyboardInterrupt:
            logger.info("Received interrupt signal, stopping scheduler")
        finally:
            self.stop()
