# SPDX-License-Identifier: MIT
"""Standard exceptions for the Plesk domain cache."""

from typing import Any


class PleskCacheError(Exception):
    """Base class for all plesk-cache exceptions."""


class ConfigurationError(PleskCacheError):
    """Raised when required configuration is missing or invalid."""


class UpstreamError(PleskCacheError):
    """Base class for failures talking to the Plesk API."""

    retryable = False

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        details: Any = None,
    ) -> None:
        self.http_status = http_status
        self.details = details
        super().__init__(message)


class UpstreamTransportError(UpstreamError):
    """Raised when the Plesk API could not be reached or timed out."""

    retryable = True


class UpstreamRejectionError(UpstreamError):
    """Raised when the Plesk API answered with an error status."""


class UpstreamResponseError(UpstreamError):
    """Raised when the Plesk API answered with an unusable body."""
