# SPDX-License-Identifier: MIT
"""Local SQLite cache of Plesk domains.

- DomainCache: read/write access to the ``domain_cache`` table
- init_database: schema creation
"""

from .domain_cache import DomainCache
from .schema import SCHEMA_VERSION, init_database


__all__ = [
    "DomainCache",
    "SCHEMA_VERSION",
    "init_database",
]
