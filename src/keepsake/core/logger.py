"""
Logging and Error Handling System

Every Keepsake module logs through ``logging.getLogger(__name__)``, which
places it under the ``keepsake`` logger. ``initialize_logging`` attaches
the handlers to that logger once per process:

    logs/keepsake.log          everything from DEBUG up, rotated at 10MB
    logs/keepsake_errors.log   ERROR and above, rotated at 5MB
    stderr                     the configured level

``ErrorTracker`` records the encode and export failures a dispatcher
tolerates, so a long-lived process can report on them later.
"""

import logging
import logging.handlers
import os
import sys
import threading
import traceback
from collections import Counter, deque
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


APP_LOGGER = "keepsake"

FILE_FORMAT = '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


class KeepsakeLogger:
    """Owns the log directory and the handlers of the ``keepsake`` logger."""

    def __init__(self, log_dir: str = "logs", app_name: str = APP_LOGGER):
        self.log_dir = Path(log_dir)
        self.app_name = app_name
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def _rotating_handler(self, filename: str, max_bytes: int, backups: int,
                          level: int) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=max_bytes,
            backupCount=backups,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        return handler

    def setup_logger(self, level: int = logging.INFO) -> logging.Logger:
        """
        Attach file, error-file and console handlers to the app logger.

        A logger that already has handlers only gets its level updated.
        """
        logger = logging.getLogger(self.app_name)
        logger.setLevel(level)

        if logger.handlers:
            return logger

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))

        logger.addHandler(self._rotating_handler(f"{self.app_name}.log", 10*1024*1024, 5, logging.DEBUG))
        logger.addHandler(console_handler)
        logger.addHandler(self._rotating_handler(f"{self.app_name}_errors.log", 5*1024*1024, 3, logging.ERROR))
        return logger

    def log_system_info(self):
        logger = logging.getLogger(f"{self.app_name}.system")
        logger.info("=== Keepsake Started ===")
        logger.info(f"Python version: {sys.version}")
        logger.info(f"Platform: {sys.platform}")
        logger.info(f"Working directory: {os.getcwd()}")
        logger.info(f"Log directory: {self.log_dir.absolute()}")


class ErrorTracker:
    """
    Records tolerated failures with their context.

    Only the most recent ``history`` errors and warnings are kept in
    memory; totals and per-type counts cover the tracker's whole lifetime.
    Safe to share between worker threads.
    """

    def __init__(self, logger: logging.Logger, history: int = 100):
        self.logger = logger
        self.errors = deque(maxlen=history)
        self.warnings = deque(maxlen=history)
        self.error_count = 0
        self.warning_count = 0
        self.error_types = Counter()
        self._lock = threading.Lock()

    def log_error(self,
                  error: Exception,
                  context: str = None,
                  url: str = None,
                  additional_info: Dict[str, Any] = None) -> str:
        """
        Record and log a failure.

        Args:
            error: The exception that was caught
            context: Pipeline stage ("encode", "export")
            url: Bookmark URL being processed
            additional_info: Extra fields such as bookmark id and encoder name

        Returns:
            Error ID that also appears in the log line
        """
        details = additional_info or {}
        with self._lock:
            error_id = f"ERR_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{self.error_count:03d}"
            self.error_count += 1
            self.error_types[type(error).__name__] += 1
            record = {
                'id': error_id,
                'timestamp': datetime.now(),
                'type': type(error).__name__,
                'message': str(error),
                'context': context,
                'url': url,
                'traceback': ''.join(traceback.format_exception(type(error), error, error.__traceback__)),
                'additional_info': details
            }
            self.errors.append(record)

        self.logger.error(f"[{error_id}] {record['type']}: {record['message']}"
                          f"{_describe(context=context, url=url, **details)}")
        self.logger.debug(f"[{error_id}] Full traceback:\n{record['traceback']}")
        return error_id

    def log_warning(self, message: str, context: str = None, url: str = None) -> str:
        with self._lock:
            warning_id = f"WARN_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{self.warning_count:03d}"
            self.warning_count += 1
            self.warnings.append({
                'id': warning_id,
                'timestamp': datetime.now(),
                'message': message,
                'context': context,
                'url': url
            })

        self.logger.warning(f"[{warning_id}] {message}{_describe(context=context, url=url)}")
        return warning_id

    def get_error_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'total_errors': self.error_count,
                'total_warnings': self.warning_count,
                'error_types': dict(self.error_types),
                'recent_errors': list(self.errors)[-5:],
                'recent_warnings': list(self.warnings)[-5:]
            }


def _describe(**fields) -> str:
    """Render non-empty context fields as " (key: value)" suffixes."""
    return ''.join(f" ({key}: {value})" for key, value in fields.items() if value not in (None, ""))


_logger_instance: Optional[KeepsakeLogger] = None


def initialize_logging(log_dir: str = "logs", level: int = logging.INFO) -> logging.Logger:
    """
    Initialize the process-wide logging handlers and return the app logger.

    Args:
        log_dir: Directory for log files
        level: Logging level for the console and the app logger
    """
    global _logger_instance
    _logger_instance = KeepsakeLogger(log_dir)
    logger = _logger_instance.setup_logger(level)
    _logger_instance.log_system_info()
    return logger
