# SPDX-License-Identifier: MIT
"""Core data models for the Plesk domain cache."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_HOSTING_TYPE, DEFAULT_OWNER
from .enums import DomainStatus, UpdateStatus, UpstreamErrorKind
from .exceptions import (
    UpstreamError,
    UpstreamRejectionError,
    UpstreamResponseError,
    UpstreamTransportError,
)


def _parse_timestamp(value: Any) -> datetime | None:
    """Best-effort conversion of an upstream timestamp."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        # fromisoformat() only accepts a trailing "Z" from 3.11 on
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


class CachedDomainRecord(BaseModel):
    """Last known projection of a Plesk domain plus sync metadata."""

    id: int = Field(..., description="Upstream domain id (primary key)")
    name: str = Field(..., description="Domain name")
    status: DomainStatus = Field(DomainStatus.UNKNOWN, description="Hosting status")
    created: datetime | None = Field(None, description="Upstream creation time")
    owner: str = Field(DEFAULT_OWNER, description="Owner login")
    hosting_type: str = Field(DEFAULT_HOSTING_TYPE, description="Hosting type")
    www_root: str = Field("", description="Document root path")
    ip_addresses: list[str] = Field(default_factory=list)
    last_updated: datetime | None = Field(
        None, description="Time of the last write to this record"
    )
    sync_error: str | None = Field(
        None, description="Last status enrichment error, if any"
    )

    @field_validator("created", "last_updated", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> datetime | None:
        return _parse_timestamp(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> DomainStatus:
        return DomainStatus.parse(v)

    @field_validator("ip_addresses", mode="before")
    @classmethod
    def parse_ip_addresses(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(ip) for ip in v]

    @classmethod
    def from_upstream(cls, item: dict[str, Any]) -> "CachedDomainRecord":
        """Build a skeleton record from a Plesk ``GET /domains`` item.

        Raises:
            ValueError: If the item has no usable id or name
        """
        if not isinstance(item, dict):
            raise ValueError(f"Domain item is not an object: {item!r}")

        raw_id = item.get("id")
        try:
            domain_id = int(raw_id)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise ValueError(f"Domain item has no valid id: {raw_id!r}") from e

        name = item.get("name") or item.get("ascii_name")
        if not name:
            raise ValueError(f"Domain {domain_id} has no name")

        return cls(
            id=domain_id,
            name=str(name),
            status=DomainStatus.UNKNOWN,
            created=item.get("created") or item.get("created_at"),
            owner=item.get("owner") or item.get("owner_login") or DEFAULT_OWNER,
            hosting_type=item.get("hosting_type") or DEFAULT_HOSTING_TYPE,
            www_root=item.get("www_root") or "",
            ip_addresses=item.get("ip_addresses") or [],
        )

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize for the HTTP API (camelCase IP list like the dashboard expects)."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "created": self.created.isoformat() if self.created else None,
            "owner": self.owner,
            "hosting_type": self.hosting_type,
            "www_root": self.www_root,
            "ipAddresses": list(self.ip_addresses),
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "syncError": self.sync_error,
        }


class UpstreamResult(BaseModel):
    """Uniform outcome of a single Plesk API call."""

    ok: bool
    payload: Any = None
    http_status: int | None = None
    error_message: str | None = None
    error_details: Any = None
    error_kind: UpstreamErrorKind | None = None

    @property
    def retryable(self) -> bool:
        """Whether the failure was a transport problem the caller may retry."""
        return self.error_kind in (
            UpstreamErrorKind.TRANSPORT,
            UpstreamErrorKind.TIMEOUT,
        )

    def raise_for_error(self) -> None:
        """Raise the matching UpstreamError if this result is a failure."""
        if self.ok:
            return

        message = self.error_message or "Plesk API request failed"
        error_class: type[UpstreamError]
        if self.retryable:
            error_class = UpstreamTransportError
        elif self.error_kind == UpstreamErrorKind.MALFORMED:
            error_class = UpstreamResponseError
        else:
            error_class = UpstreamRejectionError
        raise error_class(message, self.http_status, self.error_details)


class CacheStats(BaseModel):
    """Aggregate statistics over the domain cache."""

    total: int = 0
    per_status: dict[str, int] = Field(
        default_factory=lambda: {status.value: 0 for status in DomainStatus}
    )
    error_count: int = 0
    last_sync_time: datetime | None = None


class SyncResult(BaseModel):
    """Outcome of a sync engine operation."""

    status: UpdateStatus
    count: int = 0
    processed: int = 0
    updated: int = 0
    failed: int = 0
    errors: dict[int, str] = Field(default_factory=dict)
    error: str | None = None
    reason: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        """True when the operation produced usable data."""
        return self.status in (UpdateStatus.SUCCESS, UpdateStatus.PARTIAL)


class DomainListing(BaseModel):
    """Response of the query façade's ``list_domains``."""

    records: list[CachedDomainRecord] = Field(default_factory=list)
    from_cache: bool = False
    fallback: bool = False
    message: str = ""
