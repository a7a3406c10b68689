# SPDX-License-Identifier: MIT
"""Constants used throughout the Plesk domain cache.

This module centralizes default values for:

- **Upstream access**: API prefix and per-call timeout
- **Sync pacing**: batch sizes and inter-batch delays that limit load on the Plesk server
- **Listing defaults**: values used when an upstream record omits a field
- **HTTP API**: default bind address
"""

# Upstream access
PLESK_API_PREFIX: str = "/api/v2"
DEFAULT_UPSTREAM_TIMEOUT: float = 30.0

# Status-only sync pacing
DEFAULT_STATUS_BATCH_SIZE: int = 5
DEFAULT_STATUS_BATCH_DELAY: float = 3.0

# Combined listing + status sync pacing
DEFAULT_FULL_BATCH_SIZE: int = 10
DEFAULT_FULL_BATCH_DELAY: float = 2.0

# SQLite busy timeout (seconds)
DEFAULT_DB_TIMEOUT: float = 30.0

# Fields filled in when an upstream listing item omits them
DEFAULT_OWNER: str = "admin"
DEFAULT_HOSTING_TYPE: str = "virtual"

# HTTP API
DEFAULT_SERVER_HOST: str = "127.0.0.1"
DEFAULT_SERVER_PORT: int = 3000

# Masked value shown instead of secrets
SECRET_MASK: str = "********"
