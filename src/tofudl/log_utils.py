import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from tofudl.constants import (
    DEBUG_LOG_FORMAT,
    INFO_LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_FILE_NAME,
    LOG_LEVEL_ENV_VAR,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)

# Kept module-level so add_file_logging() can replace an earlier handler
_file_handler: Optional[RotatingFileHandler] = None


def _formatter_for(handler: logging.Handler, level: int) -> logging.Formatter:
    """
    Pick the formatter for a handler at the given level.

    The Rich console handler renders time and level itself, so it only ever
    receives the bare message. Other handlers get the informational format at
    INFO and above and the debug format (with logger name) below INFO.
    """
    if isinstance(handler, RichHandler):
        return logging.Formatter("%(message)s")
    if level >= logging.INFO:
        return logging.Formatter(INFO_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    return logging.Formatter(DEBUG_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def set_log_level(level_name: str) -> None:
    """
    Set the log level for the tofudl logger and reconfigure all attached handlers.

    If `level_name` is not a valid logging level name (e.g., "DEBUG", "INFO"), the
    function logs a warning and leaves the current configuration unchanged.

    Parameters:
        level_name (str): Case-insensitive name of the desired logging level.
    """
    level = getattr(logging, level_name.upper(), None)
    if not isinstance(level, int):
        logger.warning(f"Invalid log level name: {level_name}. Using current level.")
        return

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(_formatter_for(handler, level))

    logger.log(level, f"Log level set to {logging.getLevelName(level)}")


def add_file_logging(log_dir_path: Path, level_name: str = "INFO") -> None:
    """
    Enable rotating file logging for the tofudl logger.

    Creates the directory if necessary and attaches a RotatingFileHandler writing
    to `tofudl.log` inside it. Existing file logging configured by this module is
    removed and closed before reconfiguring.
    """
    global _file_handler
    if _file_handler and _file_handler in logger.handlers:
        logger.removeHandler(_file_handler)
        _file_handler.close()

    log_dir_path.mkdir(parents=True, exist_ok=True)
    log_file = log_dir_path / LOG_FILE_NAME

    resolved = getattr(logging, level_name.upper(), None)
    if not isinstance(resolved, int):
        logger.warning(
            f"Invalid file log level name: {level_name}. Defaulting to INFO."
        )
        resolved = logging.INFO

    _file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    _file_handler.setFormatter(_formatter_for(_file_handler, resolved))
    _file_handler.setLevel(resolved)

    logger.addHandler(_file_handler)
    logger.info(
        f"File logging enabled at {log_file} with level {logging.getLevelName(resolved)}"
    )


def _initialize_logger() -> None:
    """
    Initialize the tofudl logger with a console RichHandler and an initial log level.

    Removes any existing handlers, disables propagation to the root logger and
    reads the initial level from the environment variable named by
    LOG_LEVEL_ENV_VAR (INFO when unset or invalid).
    """
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        rich_tracebacks=True,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )

    default_log_level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    resolved = getattr(logging, default_log_level, None)
    if not isinstance(resolved, int):
        logger.warning(
            f"Invalid {LOG_LEVEL_ENV_VAR}={default_log_level}; defaulting to INFO."
        )
        resolved = logging.INFO

    console_handler.setFormatter(_formatter_for(console_handler, resolved))
    logger.addHandler(console_handler)

    logger.setLevel(resolved)
    console_handler.setLevel(resolved)


_initialize_logger()
