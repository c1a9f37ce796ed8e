"""
Event logging for the household confirmation pipeline.

Every line has the shape ``<timestamp> | <LEVEL> | <event> | <details>``
and passes through a filter that masks confirmation tokens and passwords.
"""

import logging
import re
import sys
from typing import Dict, Optional, TextIO

ROOT_LOGGER_NAME = "household"

LOG_LEVELS: Dict[str, int] = {
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}

# Display names follow the info/warn/error vocabulary of the configuration
LEVEL_LABELS: Dict[int, str] = {
    logging.DEBUG: 'DEBUG',
    logging.INFO: 'INFO',
    logging.WARNING: 'WARN',
    logging.ERROR: 'ERROR',
    logging.CRITICAL: 'ERROR',
}


class SensitiveDataFilter(logging.Filter):
    """Mask sensitive data in log records."""

    def __init__(self):
        super().__init__()
        self.sensitive_patterns = [
            (re.compile(r'(nftoken=)[^&\s"]+', re.IGNORECASE), r'\1***'),
            (re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^"\'\s&]+)', re.IGNORECASE), r'\1***'),
        ]

    def filter_message(self, message: str) -> str:
        """Filter sensitive data from a message string."""
        filtered = message
        for pattern, replacement in self.sensitive_patterns:
            filtered = pattern.sub(replacement, filtered)
        return filtered

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self.filter_message(record.getMessage())
        record.args = None
        return True


class EventFormatter(logging.Formatter):
    """Render records as ``timestamp | LEVEL | message``."""

    def __init__(self, datefmt: str = '%Y-%m-%d %H:%M:%S %z'):
        super().__init__(datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        level = LEVEL_LABELS.get(record.levelno, record.levelname)
        line = f"{timestamp} | {level} | {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class EventLogger:
    """Logger emitting named events with optional details."""

    def __init__(self, component: str):
        self.component = component
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")

    @staticmethod
    def _format(event: str, details: Optional[str]) -> str:
        return f"{event} | {details}" if details else event

    def info(self, event: str, details: Optional[str] = None):
        self.logger.info(self._format(event, details))

    def warning(self, event: str, details: Optional[str] = None):
        self.logger.warning(self._format(event, details))

    def error(self, event: str, details: Optional[str] = None):
        self.logger.error(self._format(event, details))

    def log_exception(self, event: str, exception: BaseException):
        """Log an unexpected exception with its traceback."""
        self.logger.error(self._format(event, f"{type(exception).__name__}: {exception}"), exc_info=exception)


def parse_log_level(level: str) -> int:
    """Map an info/warn/error level name to a logging level."""
    try:
        return LOG_LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r} (expected info, warn or error)")


def configure_logging(level: str = "info", stream: Optional[TextIO] = None) -> logging.Logger:
    """Configure the pipeline logger; safe to call more than once."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(parse_log_level(level))

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(EventFormatter())
    handler.addFilter(SensitiveDataFilter())
    logger.addHandler(handler)

    return logger
