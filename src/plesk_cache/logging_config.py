# SPDX-License-Identifier: MIT
"""Logging for the Plesk domain cache.

Two named loggers are used throughout the package:

- ``plesk_cache.detail``: everything from DEBUG up, written to the log file
  only. Upstream requests, SQL failures and per-domain sync progress go here.
- ``plesk_cache.status``: INFO and above for the operator, written to stderr
  and to the same log file. Sync summaries, fallback warnings and errors.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

DETAIL_LOGGER_NAME = "plesk_cache.detail"
STATUS_LOGGER_NAME = "plesk_cache.status"

LOG_FILE_NAME = "plesk-cache.log"
DEFAULT_LOG_DIR_NAME = ".plesk-cache"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"


class FlushingStreamHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler that flushes each record, so CLI progress shows up at once."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        if self.stream and not self.stream.closed:
            self.flush()


def _reset(logger: logging.Logger, level: int) -> logging.Logger:
    """Drop and close existing handlers so repeated setup does not duplicate output."""
    for handler in logger.handlers[:]:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = False
    return logger


def setup_logging(log_dir: Path | None = None) -> tuple[logging.Logger, logging.Logger]:
    """Attach handlers to the detail and status loggers.

    Args:
        log_dir: Directory for ``plesk-cache.log``. Defaults to
            ``.plesk-cache/`` in the working directory.

    Returns:
        Tuple of (detail_logger, status_logger)
    """
    log_dir = log_dir or Path.cwd() / DEFAULT_LOG_DIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    # Appending keeps the history of earlier server runs
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))

    console_handler = FlushingStreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT)
    )

    detail_logger = _reset(logging.getLogger(DETAIL_LOGGER_NAME), logging.DEBUG)
    detail_logger.addHandler(file_handler)

    status_logger = _reset(logging.getLogger(STATUS_LOGGER_NAME), logging.INFO)
    status_logger.addHandler(console_handler)
    status_logger.addHandler(file_handler)

    detail_logger.info(f"Logging to {log_file}")
    return detail_logger, status_logger


def get_detail_logger() -> logging.Logger:
    """Logger for technical detail (file only)."""
    return logging.getLogger(DETAIL_LOGGER_NAME)


def get_status_logger() -> logging.Logger:
    """Logger for operator-facing messages (console and file)."""
    return logging.getLogger(STATUS_LOGGER_NAME)
