# SPDX-License-Identifier: MIT
"""Plesk REST API client.

Every call is normalized into an ``UpstreamResult``; transport failures,
HTTP error statuses and undecodable bodies never raise out of ``execute``.
Calls are not retried here, the caller decides what to do with a
retryable failure.
"""

import asyncio
import json
from typing import Any

import aiohttp

from .config import UpstreamConfig
from .constants import PLESK_API_PREFIX
from .enums import DomainStatus, UpstreamErrorKind
from .logging_config import get_detail_logger, get_status_logger
from .models import UpstreamResult


detail_logger = get_detail_logger()
status_logger = get_status_logger()

BODY_METHODS = {"POST", "PUT", "PATCH"}


class PleskClient:
    """Client for the Plesk ``/api/v2`` REST API."""

    def __init__(self, config: UpstreamConfig):
        """Initialize Plesk client.

        Args:
            config: Upstream connection settings

        Raises:
            ConfigurationError: If the URL or credentials are missing
        """
        base_url = config.require_credentials()

        self.base_url = base_url.rstrip("/") + PLESK_API_PREFIX
        self.timeout_seconds = config.timeout
        self.verify_ssl = config.verify_ssl
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if config.api_key:
            self.headers["X-API-Key"] = config.api_key
        elif config.username and config.password:
            self.headers["Authorization"] = aiohttp.BasicAuth(
                config.username, config.password
            ).encode()

        self.session: aiohttp.ClientSession | None = None

        if not self.verify_ssl:
            status_logger.warning(
                "TLS certificate verification is disabled for the Plesk API "
                f"({config.base_url}); any certificate will be accepted. "
                "Set upstream.verify_ssl to true once the panel has a trusted certificate."
            )

    async def __aenter__(self) -> "PleskClient":
        """Async context manager entry."""
        self._get_session()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                connector=aiohttp.TCPConnector(ssl=self.verify_ssl),
            )
        return self.session

    async def close(self) -> None:
        """Close the underlying HTTP session (safe to call repeatedly)."""
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, str] | None = None,
    ) -> UpstreamResult:
        """Execute a single Plesk API request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, ...)
            path: Endpoint path relative to ``/api/v2``
            body: JSON body, only sent for POST/PUT/PATCH
            params: Optional query string parameters

        Returns:
            Tagged result, ``ok`` is False for any kind of failure
        """
        method = method.upper()
        url = f"{self.base_url}/{path.lstrip('/')}"
        request_kwargs: dict[str, Any] = {}
        if body is not None and method in BODY_METHODS:
            request_kwargs["json"] = body
        if params:
            request_kwargs["params"] = params

        detail_logger.debug(f"Plesk API {method} {url}")

        try:
            session = self._get_session()
            async with session.request(method, url, **request_kwargs) as response:
                http_status = response.status
                reason = response.reason
                text = await response.text()
        except asyncio.TimeoutError:
            message = f"Plesk API request timed out after {self.timeout_seconds}s"
            detail_logger.warning(f"{method} {path}: {message}")
            return UpstreamResult(
                ok=False, error_message=message, error_kind=UpstreamErrorKind.TIMEOUT
            )
        except (aiohttp.ClientError, OSError) as e:
            message = f"Plesk API request failed: {e}"
            detail_logger.warning(f"{method} {path}: {message}")
            return UpstreamResult(
                ok=False,
                error_message=message,
                error_kind=UpstreamErrorKind.TRANSPORT,
            )

        payload, decode_error = self._decode_body(text)

        if 200 <= http_status < 300:
            if decode_error:
                detail_logger.warning(
                    f"{method} {path}: undecodable response body ({decode_error})"
                )
                return UpstreamResult(
                    ok=False,
                    http_status=http_status,
                    error_message=f"Malformed response from Plesk API: {decode_error}",
                    error_details=text[:500],
                    error_kind=UpstreamErrorKind.MALFORMED,
                )
            detail_logger.debug(f"{method} {path}: HTTP {http_status}")
            return UpstreamResult(ok=True, payload=payload, http_status=http_status)

        message = None
        if isinstance(payload, dict):
            message = payload.get("message")
        if not message:
            message = reason or f"HTTP {http_status}"

        detail_logger.warning(f"{method} {path}: HTTP {http_status} - {message}")
        return UpstreamResult(
            ok=False,
            http_status=http_status,
            error_message=str(message),
            error_details=payload if not decode_error else (text or None),
            error_kind=UpstreamErrorKind.REJECTED,
        )

    @staticmethod
    def _decode_body(text: str) -> tuple[Any, str | None]:
        """Decode a JSON body, returning (payload, error)."""
        if not text or not text.strip():
            return None, None
        try:
            return json.loads(text), None
        except ValueError as e:
            return None, str(e)

    async def get_server_info(self) -> UpstreamResult:
        """Get server information (used as a connectivity check)."""
        return await self.execute("GET", "/server")

    async def list_domains(self, name: str | None = None) -> UpstreamResult:
        """List all domains, optionally filtered by exact name."""
        params = {"name": name} if name else None
        return await self.execute("GET", "/domains", params=params)

    async def get_domain(self, domain_id: int) -> UpstreamResult:
        """Get a single domain by id."""
        return await self.execute("GET", f"/domains/{domain_id}")

    async def get_domain_status(self, domain_id: int) -> UpstreamResult:
        """Get the hosting status of a domain."""
        return await self.execute("GET", f"/domains/{domain_id}/status")

    async def update_domain_status(
        self, domain_id: int, status: DomainStatus
    ) -> UpstreamResult:
        """Change the hosting status of a domain."""
        return await self.execute(
            "PUT", f"/domains/{domain_id}/status", {"status": status.value}
        )

    async def suspend_domain(self, domain_id: int) -> UpstreamResult:
        return await self.update_domain_status(domain_id, DomainStatus.SUSPENDED)

    async def activate_domain(self, domain_id: int) -> UpstreamResult:
        return await self.update_domain_status(domain_id, DomainStatus.ACTIVE)
