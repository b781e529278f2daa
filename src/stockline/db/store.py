"""Interface the Stockline core needs from its backing store."""

from __future__ import annotations

from typing import Protocol

from stockline.core.models import Location, LocationBalance, Movement


class InventoryStore(Protocol):
    """Catalog, balance and movement persistence.

    Every method is a round trip to the backend and raises StoreError on
    transport or backend failure.
    """

    async def health_check(self) -> bool: ...

    async def find_product(self, code: str) -> bool: ...

    async def get_image_ref(self, code: str) -> str | None: ...

    async def resolve_image_url(self, path: str) -> str: ...

    async def get_global_on_hand(self, code: str) -> int:
        """Global on-hand for a product. A missing row is zero."""
        ...

    async def get_location_balances(self, code: str) -> list[LocationBalance]: ...

    async def list_locations(self) -> list[Location]: ...

    async def record_adjustment(
        self, code: str, delta: int, reason: str | None, note: str | None
    ) -> Movement: ...

    async def record_location_delta(
        self,
        code: str,
        location_id: str,
        delta: int,
        reason_tag: str,
        note: str | None,
    ) -> Movement:
        """Apply one signed delta at one location and append its movement."""
        ...

    async def list_recent_adjustments(self, code: str, limit: int) -> list[Movement]: ...

    async def list_recent_movements(self, code: str, limit: int) -> list[Movement]: ...
