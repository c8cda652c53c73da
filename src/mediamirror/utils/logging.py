"""
Logging configuration for MediaMirror.

Setup logging infrastructure with console and optional file output.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


class PlainFormatter(logging.Formatter):
    """'level: timestamp - msg', with file:line added for errors."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base_format = f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"
        if record.levelno >= logging.ERROR and record.pathname:
            filename = Path(record.pathname).name
            base_format = f"{record.levelname}: {self.formatTime(record)} - {filename}:{record.lineno} - {record.getMessage()}"
        if record.exc_info:
            base_format += "\n" + self.formatException(record.exc_info)
        return base_format


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int

    Returns:
        Logging level constant
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    # Default to INFO if invalid
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    formatter: logging.Formatter | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for MediaMirror.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        formatter: Optional formatter for the non-rich console handler
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite
        console: Optional Rich Console instance to use
        console_enabled: Whether to enable console logging
        use_rich: Whether to use RichHandler for console output

    Returns:
        Logger instance
    """
    logger = logging.getLogger("mediamirror")

    # Only clear handlers from this specific logger, not root or child loggers
    logger.handlers.clear()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    console=console or Console(stderr=True),
                    show_time=True,
                    show_path=True,
                    markup=False,
                    rich_tracebacks=True,
                    tracebacks_show_locals=False,
                    log_time_format="[%X]",
                    omit_repeated_times=False,
                )
            )
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(formatter or PlainFormatter())
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything; the logger level still filters
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    # Child loggers ("mediamirror.worker", ...) propagate to these handlers
    logger.propagate = True
    return logger


def setup_logging_from_config(config: dict[str, Any], project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from MediaMirror configuration.

    Args:
        config: Configuration dictionary (logging settings live under 'logging')
        project_dir: Optional project directory for resolving relative log file paths

    Returns:
        Logger instance
    """
    logging_config = config.get("logging", {}) or {}

    level = logging_config.get("level", logging.INFO)
    file_mode = logging_config.get("file_mode", "a")
    console_format = logging_config.get("format", "rich")

    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    formatter: logging.Formatter | None = None
    if console_format == "json":
        from mediamirror.observability.structured_logging import StructuredFormatter

        formatter = StructuredFormatter()

    return setup_logging(
        level=level,
        log_file=log_file,
        formatter=formatter,
        file_mode=file_mode,
        console_enabled=logging_config.get("console_enabled", True),
        use_rich=console_format == "rich",
    )


_logging_setup_done = False
_logging_setup_lock = threading.Lock()


def _auto_setup_logging() -> None:
    """
    Set up logging from the global config if it has not been configured yet.

    Called by get_logger() so library code logs sensibly even when the entry
    point never called setup_logging_from_config().
    """
    global _logging_setup_done

    if _logging_setup_done or logging.getLogger("mediamirror").handlers:
        _logging_setup_done = True
        return

    with _logging_setup_lock:
        if _logging_setup_done:
            return

        from mediamirror.config.singleton import get_config

        config_obj = get_config()
        if config_obj is not None:
            setup_logging_from_config(config_obj.data)
            _logging_setup_done = True


def get_logger(name: str = "mediamirror") -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "mediamirror")

    Returns:
        Logger instance
    """
    _auto_setup_logging()

    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
