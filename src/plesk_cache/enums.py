# SPDX-License-Identifier: MIT
"""Enums for the Plesk domain cache."""

from enum import Enum


class DomainStatus(str, Enum):
    """Hosting status of a cached domain."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DISABLED = "disabled"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> "DomainStatus":
        """Map an upstream status value onto a known status.

        Anything that is not one of the known statuses becomes UNKNOWN.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return cls.UNKNOWN
        return cls.UNKNOWN


class UpdateStatus(str, Enum):
    """Status values for sync operations."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


class SyncState(str, Enum):
    """Phase the sync engine is currently in."""

    IDLE = "idle"
    LIST_SYNCING = "list_syncing"
    STATUS_SYNCING = "status_syncing"


class UpstreamErrorKind(str, Enum):
    """Classification of a failed upstream call."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    MALFORMED = "malformed"
