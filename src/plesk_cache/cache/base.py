# SPDX-License-Identifier: MIT
"""Shared setup for SQLite-backed caches."""

import sqlite3
from pathlib import Path

from ..config import get_config_manager
from ..constants import DEFAULT_DB_TIMEOUT
from ..logging_config import get_detail_logger, get_status_logger
from .schema import init_database


detail_logger = get_detail_logger()
status_logger = get_status_logger()


def _fail(message: str, error: Exception) -> RuntimeError:
    status_logger.error(message)
    detail_logger.exception(f"{message}: {error}")
    return RuntimeError(message)


class CacheBase:
    """Resolves the database location and makes sure the schema exists."""

    def __init__(self, db_path: Path | None = None, timeout: float | None = None):
        """
        Args:
            db_path: SQLite file. Defaults to ``cache.db_path`` from config.
            timeout: Lock wait in seconds. Defaults to ``cache.connection_timeout``
                when the path comes from config, otherwise DEFAULT_DB_TIMEOUT.

        Raises:
            RuntimeError: If the directory or the schema cannot be created
        """
        if db_path is None:
            cache_config = get_config_manager().load_config().cache
            db_path = Path(cache_config.db_path)
            timeout = cache_config.connection_timeout if timeout is None else timeout
            detail_logger.debug(f"Domain cache location from config: {db_path}")

        self.db_path = db_path
        self.timeout = DEFAULT_DB_TIMEOUT if timeout is None else timeout
        self._prepare_database()

    def _prepare_database(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _fail(
                f"Failed to create database directory: {self.db_path.parent}", e
            ) from e

        try:
            init_database(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise _fail(f"Failed to initialize database at {self.db_path}", e) from e
        detail_logger.debug(f"Domain cache ready at {self.db_path}")
