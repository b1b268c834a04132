"""
Logging setup and in-memory log capture.

Provides a thread-safe circular buffer for recent log messages and a
formatter that stamps records in the home timezone.
"""

import logging
import os
import threading
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional

import pytz

from config.constants import DEFAULT_HOME_TIMEZONE, DEFAULT_LOG_FORMAT, DEFAULT_LOG_LEVEL


class HomeTimeFormatter(logging.Formatter):
    """Formatter that displays timestamps in the home timezone."""

    def __init__(self, fmt=None, datefmt=None, timezone_name: str = DEFAULT_HOME_TIMEZONE):
        super().__init__(fmt, datefmt)
        try:
            self.timezone = pytz.timezone(timezone_name)
        except pytz.UnknownTimeZoneError:
            self.timezone = pytz.timezone(DEFAULT_HOME_TIMEZONE)

    def formatTime(self, record, datefmt=None):
        """Override formatTime to use the home timezone."""
        dt = datetime.fromtimestamp(record.created, tz=self.timezone)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.strftime('%Y-%m-%d %H:%M:%S')


class InMemoryLogHandler(logging.Handler):
    """Logging handler that stores recent log messages in memory.

    Thread-safe circular buffer with configurable size. The CLI uses it to
    show the warnings raised while pricing a scenario.
    """

    def __init__(self, maxlen=500, timezone_name: str = DEFAULT_HOME_TIMEZONE):
        super().__init__()
        self.log_records = deque(maxlen=maxlen)
        self.lock = threading.Lock()
        self.setFormatter(HomeTimeFormatter(
            '%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            timezone_name=timezone_name,
        ))

    def emit(self, record):
        """Store formatted log record in buffer."""
        try:
            msg = self.format(record)
            with self.lock:
                self.log_records.append({
                    'timestamp': datetime.fromtimestamp(record.created),
                    'level': record.levelname,
                    'module': record.name,
                    'message': record.getMessage(),
                    'formatted': msg
                })
        except Exception:
            self.handleError(record)

    def get_logs(self, n=None, level=None, module=None, search=None) -> List[Dict]:
        """Get recent log records with optional filtering.

        Args:
            n: Number of recent logs to return (None = all)
            level: Filter by log level (e.g., 'INFO', 'ERROR')
            module: Filter by module name (partial match)
            search: Filter by message text (case-insensitive)

        Returns:
            List of log record dictionaries
        """
        with self.lock:
            logs = list(self.log_records)

        if level:
            logs = [log for log in logs if log['level'] == level]

        if module:
            logs = [log for log in logs if module.lower() in log['module'].lower()]

        if search:
            search_lower = search.lower()
            logs = [log for log in logs if search_lower in log['message'].lower()]

        if n:
            logs = logs[-n:]

        return logs

    def get_formatted_logs(self, n=None, level=None, module=None, search=None) -> List[str]:
        """Get formatted log strings. Arguments as for get_logs()."""
        logs = self.get_logs(n=n, level=level, module=module, search=search)
        return [log['formatted'] for log in logs]

    def clear(self):
        """Clear all log records."""
        with self.lock:
            self.log_records.clear()


# Global handler instance
_log_handler: Optional[InMemoryLogHandler] = None


def get_log_handler() -> InMemoryLogHandler:
    """Get the global in-memory log handler instance."""
    global _log_handler
    if _log_handler is None:
        _log_handler = InMemoryLogHandler(maxlen=500)
    return _log_handler


def setup_logging(settings=None, console: bool = True) -> logging.Logger:
    """Configure the root logger from settings.

    Attaches a console handler, a file handler when ``logging.file`` is set,
    and the global in-memory handler. Calling it again replaces the handlers
    it installed earlier.

    Args:
        settings: Settings instance (defaults to the global settings)
        console: Whether to log to stderr

    Returns:
        The configured root logger
    """
    if settings is None:
        from config.settings import get_settings
        settings = get_settings()

    config = settings.get_logging_config()
    level_name = str(config.get('level') or DEFAULT_LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = config.get('format') or DEFAULT_LOG_FORMAT
    timezone_name = settings.get_timezone_name()

    root = logging.getLogger()
    for handler in root.handlers[:]:
        if getattr(handler, '_ledger_handler', False):
            root.removeHandler(handler)

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())

    log_file = config.get('file')
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(HomeTimeFormatter(log_format, timezone_name=timezone_name))
        handler.setLevel(level)

    memory_handler = get_log_handler()
    memory_handler.setLevel(level)
    handlers.append(memory_handler)

    for handler in handlers:
        handler._ledger_handler = True
        root.addHandler(handler)
    root.setLevel(level)

    # Reduce yfinance noise but keep ERROR level for real failures
    logging.getLogger("yfinance").setLevel(logging.ERROR)

    return root
