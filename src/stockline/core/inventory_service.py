"""Workflow sessions tying scans, lookups, movements and batches together."""

from __future__ import annotations

import structlog

from stockline.config import ScanSettings, get_settings
from stockline.core.balances import BalanceCache, BalanceSnapshot
from stockline.core.batch import BatchAggregator, BatchResult
from stockline.core.errors import (
    DuplicateScanError,
    InvalidFormatError,
    InvalidMovementError,
    NotFoundError,
    StocklineError,
    StoreError,
)
from stockline.core.models import Movement, Operation, ProductView, WorkflowState
from stockline.core.movements import MovementEngine, MovementOutcome
from stockline.core.product_code import normalize
from stockline.core.scan_guard import RequestGenerationGuard, ScanDebouncer
from stockline.db.store import InventoryStore

logger = structlog.get_logger()

_SUCCESS_MESSAGES = {
    Operation.RECEIVE: "Inventory received.",
    Operation.SEND: "Inventory sent.",
    Operation.TRANSFER: "Inventory moved.",
    Operation.ADJUST: "Inventory updated.",
}


async def describe_product(store: InventoryStore, raw: str) -> ProductView:
    """Resolve a code to its catalog image without loading balances.

    Raises:
        InvalidFormatError: If the code is malformed
        NotFoundError: If the product is not in the catalog
        StoreError: If the store fails
    """
    code = normalize(raw)
    if not await store.find_product(code):
        raise NotFoundError(f"No product found for: {code}")

    image_ref = await store.get_image_ref(code)
    image_url = await store.resolve_image_url(image_ref) if image_ref else None
    return ProductView(product_code=code, image_url=image_url)


class WorkflowSession:
    """State of one operator station.

    Owns the current product, the batch cart, the scan debouncer and the
    lookup generation counter. All methods run on one event loop; shared
    state is only touched between awaits, after the generation check.
    """

    def __init__(
        self,
        store: InventoryStore,
        station_id: str = "default",
        settings: ScanSettings | None = None,
    ):
        """Initialize a workflow session.

        Args:
            store: Backing store for lookups and movements
            station_id: Identifier for the scanning station
            settings: Scan settings. If None, uses global settings.
        """
        settings = settings or get_settings().scan
        self.station_id = station_id
        self.history_limit = settings.history_limit
        self._store = store

        self.debouncer = ScanDebouncer(settings.debounce_ms)
        self.guard = RequestGenerationGuard()
        self.balances = BalanceCache(store)
        self.engine = MovementEngine(store, self.balances)
        self.cart = BatchAggregator(self.engine)
        self.batch_mode = False

        self.state = WorkflowState.IDLE
        self._clear_product()

    def _clear_product(self) -> None:
        self.product_code: str | None = None
        self.image_url: str | None = None
        self.adjustments: list[Movement] = []
        self.movements: list[Movement] = []
        self.error: str | None = None
        self.success: str | None = None

    @property
    def snapshot(self) -> BalanceSnapshot | None:
        """Cached balances of the current product."""
        if self.product_code is None:
            return None
        return self.balances.snapshot(self.product_code)

    def preview(self, delta: int) -> int | None:
        """Global on-hand that an adjustment of delta would leave."""
        snapshot = self.snapshot
        if snapshot is None:
            return None
        return snapshot.global_on_hand + delta

    async def handle_scan(self, raw_text: str, now_ms: float | None = None) -> ProductView | None:
        """Process one decoded scan.

        In batch mode the product is added to the cart as soon as the catalog
        confirms it, even if a newer scan then supersedes its lookup.

        Args:
            raw_text: Payload as decoded by the scanner
            now_ms: Decode time in milliseconds

        Returns:
            The resolved product, or None if superseded by a newer lookup

        Raises:
            InvalidFormatError: If the payload is not a product code
            DuplicateScanError: If the same code was accepted moments ago
            NotFoundError: If the product is not in the catalog
            StoreError: If a lookup call fails
        """
        try:
            code = normalize(raw_text)
        except InvalidFormatError as e:
            self.error = str(e)
            raise

        if not self.debouncer.accept(code, now_ms):
            raise DuplicateScanError(f"Duplicate scan of {code} ignored.")

        return await self._resolve(code, add_to_cart=self.batch_mode)

    def _add_to_cart(self, code: str) -> None:
        line = self.cart.add_or_increment(code)
        logger.info(
            "batch_line_added",
            station_id=self.station_id,
            product_code=line.product_code,
            qty=line.qty,
            total_units=self.cart.total_units(),
        )

    async def lookup(self, raw: str) -> ProductView | None:
        """Resolve a product and load its image, balances and history.

        Steps run in order (existence, image, balances, history). A newer
        lookup supersedes this one; its results are then dropped silently.

        Args:
            raw: Scanned or typed product code

        Returns:
            The resolved product, or None if superseded

        Raises:
            InvalidFormatError: If the code is malformed
            NotFoundError: If the product is not in the catalog
            StoreError: If a lookup call fails
        """
        try:
            code = normalize(raw)
        except InvalidFormatError as e:
            self.error = str(e)
            raise
        return await self._resolve(code)

    async def _resolve(self, code: str, add_to_cart: bool = False) -> ProductView | None:
        gen = self.guard.begin()
        self._clear_product()
        self.product_code = code
        self.state = WorkflowState.RESOLVING

        try:
            exists = await self._store.find_product(code)
            # A confirmed scan counts even when a newer lookup took the display
            if exists and add_to_cart and self.batch_mode:
                self._add_to_cart(code)
            if not self.guard.is_current(gen):
                return self._superseded(code, gen)
            if not exists:
                raise NotFoundError(
                    f"No product found for: {code} -- Product might exist but not registered."
                )

            image_url = None
            image_ref = await self._store.get_image_ref(code)
            if not self.guard.is_current(gen):
                return self._superseded(code, gen)
            if image_ref:
                image_url = await self._store.resolve_image_url(image_ref)
                if not self.guard.is_current(gen):
                    return self._superseded(code, gen)
            self.image_url = image_url

            snapshot = await self.balances.fetch(code)
            if not self.guard.is_current(gen):
                return self._superseded(code, gen)
            self.balances.put(snapshot)

            adjustments = await self._store.list_recent_adjustments(code, self.history_limit)
            if not self.guard.is_current(gen):
                return self._superseded(code, gen)
            self.adjustments = adjustments

            movements = await self._store.list_recent_movements(code, self.history_limit)
            if not self.guard.is_current(gen):
                return self._superseded(code, gen)
            self.movements = movements

        except StocklineError as e:
            if not self.guard.is_current(gen):
                return self._superseded(code, gen)
            self._clear_product()
            self.state = WorkflowState.IDLE
            self.error = str(e)
            logger.warning(
                "lookup_failed", station_id=self.station_id, product_code=code, error=str(e)
            )
            raise

        self.state = WorkflowState.READY
        logger.info(
            "product_resolved",
            station_id=self.station_id,
            product_code=code,
            global_on_hand=snapshot.global_on_hand,
        )
        return ProductView(product_code=code, image_url=image_url)

    def _superseded(self, code: str, gen: int) -> None:
        logger.debug(
            "lookup_superseded",
            station_id=self.station_id,
            product_code=code,
            generation=gen,
            current_generation=self.guard.current,
        )
        return None

    async def apply(self, operation: Operation | str, **params) -> MovementOutcome:
        """Apply one movement to the current product.

        Args:
            operation: receive, send, transfer or adjust
            **params: qty, delta, from_location, to_location, reason, note

        Returns:
            MovementOutcome from the engine

        Raises:
            InvalidMovementError: If no product is ready or params are invalid
            InsufficientStockError: If a debit exceeds cached on-hand
            StoreError: If the store write fails
            NonAtomicTransferError: If a transfer credit fails after its debit
        """
        if self.product_code is None or self.state not in (
            WorkflowState.READY,
            WorkflowState.APPLIED,
            WorkflowState.FAILED,
        ):
            raise InvalidMovementError("No product is ready for a movement.")

        code = self.product_code
        gen = self.guard.current
        self.state = WorkflowState.SUBMITTING
        self.error = None
        self.success = None

        try:
            outcome = await self.engine.apply(operation, code, **params)
        except StocklineError as e:
            if self.guard.is_current(gen):
                self.state = WorkflowState.FAILED
                self.error = str(e)
            raise

        if not self.guard.is_current(gen):
            return outcome

        self.state = WorkflowState.APPLIED
        if outcome.refresh_error:
            self.success = f"Saved, but refresh failed: {outcome.refresh_error}"
        else:
            self.success = _SUCCESS_MESSAGES[outcome.operation]
        await self._reload_history(code, gen)
        return outcome

    async def _reload_history(self, code: str, gen: int) -> None:
        try:
            adjustments = await self._store.list_recent_adjustments(code, self.history_limit)
            movements = await self._store.list_recent_movements(code, self.history_limit)
        except StoreError as e:
            logger.warning("history_reload_failed", product_code=code, error=str(e))
            if self.guard.is_current(gen):
                self.error = f"History refresh failed: {e}"
            return
        if self.guard.is_current(gen):
            self.adjustments = adjustments
            self.movements = movements

    def set_batch_mode(self, enabled: bool) -> None:
        """Turn batch mode on or off. Turning it off discards the cart."""
        if not enabled:
            self.cart.clear()
        self.batch_mode = enabled

    async def submit_batch(self, operation: Operation | str, **shared) -> BatchResult:
        """Submit the cart with shared parameters.

        Raises:
            InvalidMovementError: If batch mode is off or the cart is empty
        """
        if not self.batch_mode:
            raise InvalidMovementError("Batch mode is off.")

        self.error = None
        self.success = None
        result = await self.cart.submit(operation, **shared)

        self.success = (
            f"{len(result.succeeded)} items ({result.units_succeeded} units) submitted."
        )
        if result.failed:
            self.error = f"{len(result.failed)} items failed and remain in the batch."
        return result

    def reset(self) -> None:
        """Return to Idle, dropping the product, the cart and in-flight lookups."""
        self.guard.begin()
        self._clear_product()
        self.cart.clear()
        self.batch_mode = False
        self.debouncer.reset()
        self.balances.clear()
        self.state = WorkflowState.IDLE


# Per-station sessions
_sessions: dict[str, WorkflowSession] = {}


def get_session(station_id: str, store: InventoryStore | None = None) -> WorkflowSession:
    """Get the workflow session for a station, creating it on first use."""
    session = _sessions.get(station_id)
    if session is None:
        if store is None:
            from stockline.db.postgres import get_db

            store = get_db()
        session = _sessions[station_id] = WorkflowSession(store, station_id=station_id)
    return session


def reset_sessions() -> None:
    """Drop all station sessions."""
    _sessions.clear()
