"""Logging utility with support for LOG prefix and structured logging."""

import logging
import sys
from datetime import datetime
from typing import Optional
from enum import Enum


LOGGER_NAME = "remindly"


class LogLevel(Enum):
    """Log levels for the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors, a [LOG] prefix and an optional timestamp."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m',
        'BOLD': '\033[1m',
    }

    def __init__(self, date_format: Optional[str] = None):
        super().__init__()
        self.date_format = date_format

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with colors and LOG prefix."""
        log_prefix = f"{self.COLORS['BOLD']}[LOG]{self.COLORS['RESET']}"
        if self.date_format:
            stamp = datetime.fromtimestamp(record.created).strftime(self.date_format)
            log_prefix = f"{log_prefix} {stamp}"

        level_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])

        if record.levelname == 'INFO':
            # INFO messages are clean without level prefix
            formatted_msg = f"{log_prefix} {record.getMessage()}"
        else:
            formatted_msg = f"{log_prefix} {level_color}[{record.levelname}]{self.COLORS['RESET']} {record.getMessage()}"

        if record.exc_info:
            formatted_msg = f"{formatted_msg}\n{self.formatException(record.exc_info)}"
        return formatted_msg


class AppLogger:
    """Application logger with LOG prefix support."""

    _instance: Optional['AppLogger'] = None
    _logger: Optional[logging.Logger] = None

    def __new__(cls):
        """Singleton pattern to ensure single logger instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize the logger if not already initialized."""
        if self._logger is None:
            self._setup_logger()

    def _setup_logger(self, level: str = "INFO", date_format: Optional[str] = None):
        """Set up the logger with custom formatter."""
        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.setLevel(getattr(logging, level))

        self._logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level))
        console_handler.setFormatter(ColoredFormatter(date_format))
        self._logger.addHandler(console_handler)

        # Prevent propagation to root logger
        self._logger.propagate = False

    def configure(self, level: str, date_format: Optional[str] = None):
        """Rebuild the console handler with a new level and timestamp format."""
        self._setup_logger(level.upper(), date_format)

    def log(self, message: str, level: LogLevel = LogLevel.INFO, exc_info: bool = False):
        """Log a message with the specified level."""
        if self._logger:
            log_func = getattr(self._logger, level.value.lower())
            log_func(message, exc_info=exc_info)

    def debug(self, message: str):
        self.log(message, LogLevel.DEBUG)

    def info(self, message: str):
        self.log(message, LogLevel.INFO)

    def warning(self, message: str):
        self.log(message, LogLevel.WARNING)

    def error(self, message: str, exc_info: bool = False):
        self.log(message, LogLevel.ERROR, exc_info=exc_info)


# Global logger instance
logger = AppLogger()


def setup_logging(level: str = "INFO", date_format: Optional[str] = None):
    """Set up logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        date_format: strftime format for a timestamp prefix, or None for no timestamp
    """
    logger.configure(level, date_format)
    logger.debug("Logger initialized")


# Convenience functions
def log_info(message: str):
    """Log an info message."""
    logger.info(message)


def log_debug(message: str):
    """Log a debug message."""
    logger.debug(message)


def log_warning(message: str):
    """Log a warning message."""
    logger.warning(message)


def log_error(message: str, exc_info: bool = False):
    """Log an error message, optionally with the active traceback."""
    logger.error(message, exc_info=exc_info)
