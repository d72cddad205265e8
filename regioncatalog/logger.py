"""
Structured logging for regioncatalog.

Provides console and file outputs plus thread-safe counters that
summarize what a sync run fetched and stored.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

COUNTERS = (
    "pages_fetched",
    "regions_stored",
    "regions_existing",
    "institutions_stored",
    "institutions_existing",
    "worker_failures",
)


class StructuredLogger:
    """
    Logger with support for console and file outputs.
    Tracks ingestion counters; safe to share between worker threads.
    """

    def __init__(
        self,
        name: str = "regioncatalog",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.propagate = False
        self.logger.handlers.clear()

        self._lock = threading.Lock()
        self.metrics = {counter: 0 for counter in COUNTERS}
        self.metrics["errors_by_type"] = {}

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"regioncatalog_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def exception(self, message: str, **kwargs):
        """Log error message with the active exception's traceback."""
        if kwargs:
            message = f"{message} | Context: {json.dumps(kwargs, ensure_ascii=False, default=str)}"
        self.logger.exception(message)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, ensure_ascii=False, default=str)}"
        self.logger.log(level, message)

    def close(self):
        """Detach and close handlers (file handles stay open otherwise)."""
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    # Metric tracking

    def increment(self, counter: str, amount: int = 1):
        with self._lock:
            self.metrics[counter] += amount

    def record_failure(self, error_type: str):
        """Record a worker or producer failure by exception type."""
        with self._lock:
            by_type = self.metrics["errors_by_type"]
            by_type[error_type] = by_type.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return a snapshot of current metrics."""
        with self._lock:
            snapshot = dict(self.metrics)
            snapshot["errors_by_type"] = dict(self.metrics["errors_by_type"])
        return snapshot

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Sync Session Metrics ===")
        self.info(f"Pages fetched: {metrics['pages_fetched']}")
        self.info(f"Regions: {metrics['regions_stored']} stored, {metrics['regions_existing']} already present")
        self.info(
            f"Institutions: {metrics['institutions_stored']} stored, "
            f"{metrics['institutions_existing']} already present"
        )

        if metrics["worker_failures"]:
            self.info(f"Failed workers: {metrics['worker_failures']}")
        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")
