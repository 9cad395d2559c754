"""
Structured logging system for meetpoint.

Provides centralized logging with console and file outputs, log levels,
and per-run metrics for monitoring source and geocoding health.
"""

import copy
import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for a pipeline run.
    """

    def __init__(
        self,
        name: str = "meetpoint",
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
        self.logger.setLevel(logging.DEBUG if enable_file else getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers
        self.logger.propagate = False

        self.metrics = self._empty_metrics()

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"meetpoint_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def set_level(self, level: str):
        """Change the console level; the file handler keeps DEBUG."""
        for handler in self.logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(getattr(logging, level.upper()))
        if not any(isinstance(h, logging.FileHandler) for h in self.logger.handlers):
            self.logger.setLevel(getattr(logging, level.upper()))

    @staticmethod
    def _empty_metrics() -> dict:
        return {
            "fetches_attempted": 0,
            "fetches_successful": 0,
            "fetches_failed": 0,
            "geocodes_successful": 0,
            "geocodes_failed": 0,
            "places_created": 0,
            "places_updated": 0,
            "places_removed": 0,
            "errors_by_type": {},
            "source_success_rate": {},
        }

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

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, ensure_ascii=False, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_fetch_attempt(self, source: str):
        """Record one fetch attempt for a source."""
        self.metrics["fetches_attempted"] += 1
        if source not in self.metrics["source_success_rate"]:
            self.metrics["source_success_rate"][source] = {
                "attempts": 0,
                "successes": 0
            }
        self.metrics["source_success_rate"][source]["attempts"] += 1

    def record_fetch_success(self, source: str):
        """Record successful fetch."""
        self.metrics["fetches_successful"] += 1
        if source in self.metrics["source_success_rate"]:
            self.metrics["source_success_rate"][source]["successes"] += 1

    def record_fetch_failure(self, source: str, error_type: str):
        """Record a failed fetch attempt."""
        self.metrics["fetches_failed"] += 1
        self._count_error(error_type)

    def record_geocode(self, success: bool, error_type: Optional[str] = None):
        """Record the outcome of one forward geocode."""
        if success:
            self.metrics["geocodes_successful"] += 1
            return
        self.metrics["geocodes_failed"] += 1
        if error_type:
            self._count_error(error_type)

    def record_registry_change(self, created: int = 0, updated: int = 0, removed: int = 0):
        """Add reconciliation counts for the current run."""
        self.metrics["places_created"] += created
        self.metrics["places_updated"] += updated
        self.metrics["places_removed"] += removed

    def _count_error(self, error_type: str):
        if error_type not in self.metrics["errors_by_type"]:
            self.metrics["errors_by_type"][error_type] = 0
        self.metrics["errors_by_type"][error_type] += 1

    def reset_metrics(self):
        """Clear all counters (start of a new run)."""
        self.metrics = self._empty_metrics()

    def get_metrics(self) -> dict:
        """Return a snapshot of the metrics with per-source success rates."""
        metrics_copy = copy.deepcopy(self.metrics)
        for stats in metrics_copy["source_success_rate"].values():
            if stats["attempts"] > 0:
                stats["success_rate"] = round(
                    stats["successes"] / stats["attempts"], 3
                )

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["fetches_attempted"]
        total_successes = metrics["fetches_successful"]
        overall_rate = 0
        if total_attempts > 0:
            overall_rate = round(total_successes / total_attempts * 100, 1)

        self.info("=== Run Metrics ===")
        self.info(f"Fetches: {total_successes}/{total_attempts} ({overall_rate}% success)")
        self.info(
            f"Places: created={metrics['places_created']} updated={metrics['places_updated']} "
            f"removed={metrics['places_removed']}"
        )
        self.info(f"Geocodes: ok={metrics['geocodes_successful']} failed={metrics['geocodes_failed']}")

        if metrics["source_success_rate"]:
            self.info("Source Success Rates:")
            for source, stats in metrics["source_success_rate"].items():
                rate = stats.get("success_rate", 0) * 100
                self.info(f"  {source}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "meetpoint",
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
