"""In-memory view of product on-hand quantities."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from stockline.core.models import LocationBalance
from stockline.db.store import InventoryStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class BalanceSnapshot:
    """Global and per-location on-hand for one product at refresh time."""

    product_code: str
    global_on_hand: int
    by_location: tuple[LocationBalance, ...] = field(default_factory=tuple)

    def on_hand_at(self, location_id: str) -> int:
        for balance in self.by_location:
            if balance.location_id == location_id:
                return balance.on_hand
        return 0


class BalanceCache:
    """Last-refreshed balances per product.

    Figures are only as fresh as the last refresh; checks made against them
    are advisory.
    """

    def __init__(self, store: InventoryStore):
        self._store = store
        self._snapshots: dict[str, BalanceSnapshot] = {}

    async def fetch(self, product_code: str) -> BalanceSnapshot:
        """Fetch global and per-location on-hand without caching it.

        Raises:
            StoreError: If either fetch fails
        """
        global_on_hand = await self._store.get_global_on_hand(product_code)
        by_location = await self._store.get_location_balances(product_code)

        return BalanceSnapshot(
            product_code=product_code,
            global_on_hand=global_on_hand,
            by_location=tuple(
                sorted(by_location, key=lambda b: b.on_hand, reverse=True)
            ),
        )

    async def refresh(self, product_code: str) -> BalanceSnapshot:
        """Fetch global and per-location on-hand, replacing the cached view.

        Args:
            product_code: Product to refresh

        Returns:
            The new snapshot

        Raises:
            StoreError: If either fetch fails. The previous snapshot is kept.
        """
        snapshot = await self.fetch(product_code)
        self.put(snapshot)
        return snapshot

    def put(self, snapshot: BalanceSnapshot) -> None:
        """Replace the cached view of a product wholesale."""
        self._snapshots[snapshot.product_code] = snapshot
        logger.debug(
            "balances_refreshed",
            product_code=snapshot.product_code,
            global_on_hand=snapshot.global_on_hand,
            locations=len(snapshot.by_location),
        )

    def snapshot(self, product_code: str) -> BalanceSnapshot | None:
        return self._snapshots.get(product_code)

    def on_hand_at(self, product_code: str, location_id: str) -> int:
        """Cached on-hand at a location, zero if unknown."""
        snapshot = self._snapshots.get(product_code)
        if snapshot is None:
            return 0
        return snapshot.on_hand_at(location_id)

    def invalidate(self, product_code: str) -> None:
        self._snapshots.pop(product_code, None)

    def clear(self) -> None:
        self._snapshots.clear()
