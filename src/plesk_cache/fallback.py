# SPDX-License-Identifier: MIT
"""Built-in domain data served while the Plesk API is unreachable."""

from .enums import DomainStatus
from .models import CachedDomainRecord


FALLBACK_DOMAINS: tuple[CachedDomainRecord, ...] = (
    CachedDomainRecord(
        id=1,
        name="example.com",
        status=DomainStatus.ACTIVE,
        created="2024-01-15T10:30:00+00:00",
        owner="admin",
        ip_addresses=["192.168.1.100"],
    ),
    CachedDomainRecord(
        id=2,
        name="test.org",
        status=DomainStatus.SUSPENDED,
        created="2024-02-01T14:22:00+00:00",
        owner="client1",
        ip_addresses=["192.168.1.101"],
    ),
    CachedDomainRecord(
        id=45,
        name="afinformatica.spot4all.com",
        status=DomainStatus.SUSPENDED,
        created="2024-03-10T09:15:00+00:00",
        owner="client3",
        ip_addresses=["192.168.1.103"],
    ),
)


def get_fallback_domains(name_filter: str | None = None) -> list[CachedDomainRecord]:
    """Return the fallback domains matching a case-insensitive name substring."""
    records = sorted(FALLBACK_DOMAINS, key=lambda record: record.name)
    if name_filter is None or not name_filter.strip():
        return [record.model_copy() for record in records]

    needle = name_filter.strip().lower()
    return [record.model_copy() for record in records if needle in record.name.lower()]
