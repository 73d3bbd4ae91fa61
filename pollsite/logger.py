"""
Structured logging for the lookup service.

Provides centralized logging with console and file outputs, plus lookup
metrics (attempts, hits, error types) for monitoring.
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring lookup traffic.
    """

    def __init__(
        self,
        name: str = "pollsite",
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
        self.logger.handlers.clear()

        self._metrics_lock = threading.Lock()
        self.metrics = {
            "lookups_attempted": 0,
            "lookups_found": 0,
            "lookups_by_kind": {},
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"{name}_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
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

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_lookup(self, kind: str, found: bool):
        """Record one audited lookup."""
        with self._metrics_lock:
            self.metrics["lookups_attempted"] += 1
            if found:
                self.metrics["lookups_found"] += 1
            by_kind = self.metrics["lookups_by_kind"].setdefault(
                kind, {"attempts": 0, "found": 0}
            )
            by_kind["attempts"] += 1
            if found:
                by_kind["found"] += 1

    def record_error(self, error_type: str):
        """Count an error by its type name."""
        with self._metrics_lock:
            if error_type not in self.metrics["errors_by_type"]:
                self.metrics["errors_by_type"][error_type] = 0
            self.metrics["errors_by_type"][error_type] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        with self._metrics_lock:
            metrics_copy = {
                "lookups_attempted": self.metrics["lookups_attempted"],
                "lookups_found": self.metrics["lookups_found"],
                "lookups_by_kind": {
                    k: dict(v) for k, v in self.metrics["lookups_by_kind"].items()
                },
                "errors_by_type": dict(self.metrics["errors_by_type"]),
            }
        for stats in metrics_copy["lookups_by_kind"].values():
            if stats["attempts"] > 0:
                stats["found_rate"] = round(stats["found"] / stats["attempts"], 3)

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total = metrics["lookups_attempted"]
        found = metrics["lookups_found"]
        overall_rate = 0
        if total > 0:
            overall_rate = round(found / total * 100, 1)

        self.info("=== Lookup Session Metrics ===")
        self.info(f"Lookups: {found}/{total} found ({overall_rate}%)")

        if metrics["lookups_by_kind"]:
            self.info("By kind:")
            for kind, stats in metrics["lookups_by_kind"].items():
                rate = stats.get("found_rate", 0) * 100
                self.info(f"  {kind}: {stats['found']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "pollsite",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level; defaults to $LOG_LEVEL or INFO
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        level = level or os.getenv("LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and os.getenv("LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["LOG_DIR"])
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
