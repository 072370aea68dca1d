"""
Logging setup for wp-migrate.

The console shows what the operator asked for (LOG_LEVEL, --verbose or
--trace). A per-run log file, when given, records at DEBUG or lower no
matter what the console shows, so a failed import leaves a full account
behind next to its snapshot.

Environment Variables:
    LOG_LEVEL: TRACE, DEBUG, INFO, WARNING, ERROR or CRITICAL (any case).
               Unknown or empty values mean INFO.

TRACE (5) sits below DEBUG. WpCli logs each command line at TRACE before
running it.

Usage:
    from wp_migrate.logger_config import setup_logging
    setup_logging(level=TRACE, log_file="logs/migrate-archive-import-20240501-120000.log")
"""

import logging
import logging.config
import os
from typing import Any, Dict, Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

_NAMED_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level() -> int:
    """Level named by $LOG_LEVEL, INFO when unset or unknown."""
    return _NAMED_LEVELS.get(os.getenv("LOG_LEVEL", "").strip().upper(), logging.INFO)


def _console_handler(level: int) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": "standard",
        "stream": "ext://sys.stdout",
    }


def _file_handler(log_file: str, level: int) -> Dict[str, Any]:
    parent = os.path.dirname(log_file)
    if parent:
        os.makedirs(parent, exist_ok=True)
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "standard",
        "filename": log_file,
        "maxBytes": LOG_FILE_MAX_BYTES,
        "backupCount": LOG_FILE_BACKUPS,
    }


def setup_logging(
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger.

    Safe to call repeatedly: the CLI calls it once at import time and again
    once the arguments (and with them the log file name) are known. Each
    call replaces the previous handlers.

    Args:
        level: Console level. None reads LOG_LEVEL.
        format_string: Record format, LOG_FORMAT by default.
        log_file: Optional rotating log file. Records at min(level, DEBUG).
    """
    console_level = get_log_level() if level is None else level
    handlers = {"console": _console_handler(console_level)}
    root_level = console_level

    if log_file:
        file_level = min(console_level, logging.DEBUG)
        handlers["file"] = _file_handler(log_file, file_level)
        root_level = file_level

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {"format": format_string or LOG_FORMAT, "datefmt": DATE_FORMAT},
            },
            "handlers": handlers,
            "root": {"level": root_level, "handlers": list(handlers)},
        }
    )
