from __future__ import annotations

import itertools
from datetime import datetime, timezone

import anyio
import pytest

from stockline.config import ScanSettings
from stockline.core.errors import InvalidMovementError, StoreError
from stockline.core.inventory_service import WorkflowSession, reset_sessions
from stockline.core.models import Location, LocationBalance, Movement, MovementType

RB = "RB-10-02-16"
AA = "AA-01-01-01"
BB = "BB-02-02-02"
CC = "CC-03-03-03"


class FakeStore:
    """In-memory InventoryStore with call recording and failure injection."""

    def __init__(self):
        self.products: dict[str, str | None] = {}
        self.locations: dict[str, str] = {}
        self.global_on_hand: dict[str, int] = {}
        self.by_location: dict[tuple[str, str], int] = {}
        self.movements: list[Movement] = []
        self.adjustments: list[Movement] = []
        self.calls: list[tuple] = []
        self._failures: list[tuple[str, object, str, type]] = []
        self._gates: dict[tuple[str, str], anyio.Event] = {}
        self._ids = itertools.count(1)

    # Test helpers

    def add_product(self, code: str, image_path: str | None = None) -> None:
        self.products[code] = image_path

    def add_location(self, location_id: str, code: str) -> None:
        self.locations[location_id] = code

    def set_balance(self, code: str, location_id: str, on_hand: int) -> None:
        previous = self.by_location.get((code, location_id), 0)
        self.by_location[(code, location_id)] = on_hand
        self.global_on_hand[code] = self.global_on_hand.get(code, 0) - previous + on_hand

    def fail(
        self, method: str, when=None, message: str = "connection reset", error=StoreError
    ) -> None:
        """Make method raise error when when(*args) is true (always if None)."""
        self._failures.append((method, when, message, error))

    def gate(self, method: str, code: str) -> anyio.Event:
        """Block method for code until the returned event is set."""
        event = self._gates[(method, code)] = anyio.Event()
        return event

    @property
    def writes(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("record_adjustment", "record_location_delta")]

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        gate = self._gates.get((method, args[0] if args else ""))
        if gate is not None:
            await gate.wait()
        for name, when, message, error in self._failures:
            if name == method and (when is None or when(*args)):
                raise error(message)

    # InventoryStore

    async def health_check(self) -> bool:
        return True

    async def find_product(self, code: str) -> bool:
        await self._enter("find_product", code)
        return code in self.products

    async def get_image_ref(self, code: str) -> str | None:
        await self._enter("get_image_ref", code)
        return self.products.get(code)

    async def resolve_image_url(self, path: str) -> str:
        await self._enter("resolve_image_url", path)
        return f"https://img.test/product-images/{path}"

    async def get_global_on_hand(self, code: str) -> int:
        await self._enter("get_global_on_hand", code)
        return self.global_on_hand.get(code, 0)

    async def get_location_balances(self, code: str) -> list[LocationBalance]:
        await self._enter("get_location_balances", code)
        return [
            LocationBalance(location_id=loc, on_hand=qty, location_code=self.locations.get(loc))
            for (product, loc), qty in self.by_location.items()
            if product == code
        ]

    async def list_locations(self) -> list[Location]:
        await self._enter("list_locations")
        return sorted(
            (Location(id=i, code=c) for i, c in self.locations.items()), key=lambda loc: loc.code
        )

    async def record_adjustment(self, code, delta, reason, note) -> Movement:
        await self._enter("record_adjustment", code, delta, reason, note)
        self.global_on_hand[code] = self.global_on_hand.get(code, 0) + delta
        movement = Movement(
            id=next(self._ids),
            type=MovementType.ADJUST,
            product_code=code,
            delta=delta,
            reason=reason,
            note=note,
            created_at=datetime.now(timezone.utc),
        )
        self.adjustments.append(movement)
        return movement

    async def record_location_delta(self, code, location_id, delta, reason_tag, note) -> Movement:
        await self._enter("record_location_delta", code, location_id, delta, reason_tag, note)
        if location_id not in self.locations:
            raise InvalidMovementError(f"Rejected by the store: unknown location {location_id}")
        new_on_hand = self.by_location.get((code, location_id), 0) + delta
        if new_on_hand < 0:
            raise StoreError("violates check constraint ck_location_on_hand_non_negative")
        self.by_location[(code, location_id)] = new_on_hand
        self.global_on_hand[code] = self.global_on_hand.get(code, 0) + delta
        movement = Movement(
            id=next(self._ids),
            type=MovementType(reason_tag),
            product_code=code,
            delta=delta,
            location_id=location_id,
            from_location_id=location_id if delta < 0 else None,
            to_location_id=location_id if delta > 0 else None,
            from_location_code=self.locations.get(location_id) if delta < 0 else None,
            to_location_code=self.locations.get(location_id) if delta > 0 else None,
            note=note,
            created_at=datetime.now(timezone.utc),
        )
        self.movements.append(movement)
        return movement

    async def list_recent_adjustments(self, code: str, limit: int) -> list[Movement]:
        await self._enter("list_recent_adjustments", code, limit)
        return [m for m in reversed(self.adjustments) if m.product_code == code][:limit]

    async def list_recent_movements(self, code: str, limit: int) -> list[Movement]:
        await self._enter("list_recent_movements", code, limit)
        return [m for m in reversed(self.movements) if m.product_code == code][:limit]


@pytest.fixture()
def store():
    fake = FakeStore()
    fake.add_product(RB, "tags/RB-10-02-16.jpg")
    fake.add_product(AA)
    fake.add_product(BB)
    fake.add_product(CC)
    fake.add_location("L1", "SHELF-A")
    fake.add_location("L2", "SHELF-B")
    return fake


@pytest.fixture()
def scan_settings():
    return ScanSettings(debounce_ms=900, history_limit=3)


@pytest.fixture()
def session(store, scan_settings):
    return WorkflowSession(store, station_id="test", settings=scan_settings)


@pytest.fixture(autouse=True)
def _clear_sessions():
    reset_sessions()
    yield
    reset_sessions()
