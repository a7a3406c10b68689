# SPDX-License-Identifier: MIT
"""Protocol definitions for the upstream interface used by the sync engine."""

from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:
    from .models import UpstreamResult


@runtime_checkable
class DomainSource(Protocol):
    """Upstream listing/status fetch consumed by the sync engine.

    ``PleskClient`` satisfies this protocol; tests substitute in-memory fakes.
    Both methods report failures through the returned result instead of
    raising, although the sync engine also tolerates implementations that
    raise.
    """

    async def list_domains(self) -> "UpstreamResult":
        """Fetch the full domain listing as one logical call.

        Returns:
            Result whose payload is a list of domain objects
        """
        ...

    async def get_domain_status(self, domain_id: int) -> "UpstreamResult":
        """Fetch the status of one domain.

        Returns:
            Result whose payload is an object with a ``status`` key
        """
        ...
