# SPDX-License-Identifier: MIT
"""Cache synchronization package for background domain cache maintenance."""

from .sync_manager import UPSTREAM_FAILURES, DomainSyncManager


__all__ = [
    "DomainSyncManager",
    "UPSTREAM_FAILURES",
]
