"""
Structured logging system for jobmatch.

Console and daily-file output with JSON context, plus thread-safe counters for
oracle health, cache effectiveness and match writes. Batch runs log a metrics
summary when they finish.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(threadName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

COUNTERS = (
    "oracle_calls",
    "oracle_successes",
    "oracle_failures",
    "fallbacks_used",
    "cache_hits",
    "cache_misses",
    "matches_created",
    "matches_updated",
)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_dir: Path, name: str) -> logging.Handler:
    """One file per day; the file always receives DEBUG and up."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{name}_{datetime.now():%Y%m%d}.log"
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class StructuredLogger:
    """
    Centralized logger with console and file outputs.

    Context keyword arguments are appended to the message as JSON.
    """

    def __init__(
        self,
        name: str = "jobmatch",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name, also the log file prefix
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        value = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(value)
        self.logger.handlers.clear()
        self.logger.propagate = False

        # Worker threads record metrics concurrently
        self._lock = threading.Lock()
        self.metrics = {key: 0 for key in COUNTERS}
        self.metrics["errors_by_type"] = {}

        if enable_console:
            self.logger.addHandler(_console_handler(value))
        if enable_file:
            self.logger.addHandler(_file_handler(log_dir or Path("logs"), name))

    def set_level(self, level: str):
        """Change the logger and console level; the file handler keeps DEBUG."""
        value = getattr(logging, level.upper())
        self.logger.setLevel(value)
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(value)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        # stacklevel points records at the caller, not this wrapper
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message, stacklevel=3)

    # Metric tracking methods

    def _incr(self, key: str, amount: int = 1):
        with self._lock:
            self.metrics[key] += amount

    def record_oracle_call(self):
        """Increment oracle call counter."""
        self._incr("oracle_calls")

    def record_oracle_success(self):
        self._incr("oracle_successes")

    def record_oracle_failure(self, error_type: str):
        """Record a failed oracle attempt by error type."""
        with self._lock:
            self.metrics["oracle_failures"] += 1
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def record_fallback(self):
        self._incr("fallbacks_used")

    def record_cache(self, hit: bool):
        self._incr("cache_hits" if hit else "cache_misses")

    def record_upserts(self, created: int, updated: int):
        with self._lock:
            self.metrics["matches_created"] += created
            self.metrics["matches_updated"] += updated

    def record_error(self, error_type: str):
        with self._lock:
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics with derived rates."""
        with self._lock:
            metrics_copy = dict(self.metrics)
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])

        calls = metrics_copy["oracle_calls"]
        metrics_copy["oracle_success_rate"] = (
            round(metrics_copy["oracle_successes"] / calls, 3) if calls else 0.0
        )
        lookups = metrics_copy["cache_hits"] + metrics_copy["cache_misses"]
        metrics_copy["cache_hit_rate"] = (
            round(metrics_copy["cache_hits"] / lookups, 3) if lookups else 0.0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Matching Session Metrics ===")
        self.info(
            f"Oracle calls: {metrics['oracle_successes']}/{metrics['oracle_calls']} "
            f"({metrics['oracle_success_rate'] * 100:.1f}% success)"
        )
        self.info(f"Fallbacks used: {metrics['fallbacks_used']}")
        self.info(
            f"Cache: {metrics['cache_hits']} hits, {metrics['cache_misses']} misses "
            f"({metrics['cache_hit_rate'] * 100:.1f}% hit rate)"
        )
        self.info(
            f"Matches: {metrics['matches_created']} created, {metrics['matches_updated']} updated"
        )

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "jobmatch",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
