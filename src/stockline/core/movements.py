"""Movement engine: validates and applies single stock movements."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from stockline.core.balances import BalanceCache, BalanceSnapshot
from stockline.core.errors import (
    InsufficientStockError,
    InvalidMovementError,
    NonAtomicTransferError,
    StoreError,
)
from stockline.core.models import AdjustmentReason, Movement, MovementType, Operation
from stockline.db.store import InventoryStore

logger = structlog.get_logger()


@dataclass
class MovementOutcome:
    """Result of one applied operation."""

    operation: Operation
    product_code: str
    movements: list[Movement] = field(default_factory=list)
    balances: BalanceSnapshot | None = None
    # Set when the write went through but the follow-up refresh did not
    refresh_error: str | None = None

    @property
    def movement(self) -> Movement:
        """The final movement written (the credit leg for a transfer)."""
        return self.movements[-1]


class MovementEngine:
    """Applies receive, send, transfer and adjust operations.

    Validation runs before any store write. Sufficiency checks read the
    balance cache and are not serialized against concurrent submissions.
    """

    def __init__(self, store: InventoryStore, balances: BalanceCache):
        self._store = store
        self._balances = balances

    async def apply(
        self,
        operation: Operation | str,
        product_code: str,
        *,
        qty: int | None = None,
        delta: int | None = None,
        from_location: str | None = None,
        to_location: str | None = None,
        reason: str | None = None,
        note: str | None = None,
        fresh_balances: bool = False,
    ) -> MovementOutcome:
        """Validate and execute one operation, then refresh balances.

        Args:
            operation: receive, send, transfer or adjust
            product_code: Normalized product code
            qty: Units to move, for receive/send/transfer
            delta: Signed on-hand change, for adjust
            from_location: Source location id, for send/transfer
            to_location: Destination location id, for receive/transfer
            reason: Adjustment reason
            note: Free-text note stored with the movement
            fresh_balances: Re-read balances for the sufficiency check instead
                of trusting the cache

        Returns:
            MovementOutcome with the written movements and fresh balances

        Raises:
            InvalidMovementError: If parameters are missing or inconsistent
            InsufficientStockError: If a debit exceeds cached on-hand
            StoreError: If the (first) store write fails
            NonAtomicTransferError: If a transfer credit fails after its debit
        """
        try:
            operation = Operation(operation)
        except ValueError:
            raise InvalidMovementError(f"Unknown operation: '{operation}'") from None
        note = note or None

        if operation is Operation.ADJUST:
            movements = [await self._adjust(product_code, delta, reason, note)]
        elif operation is Operation.RECEIVE:
            movements = [await self._receive(product_code, qty, to_location, note)]
        elif operation is Operation.SEND:
            movements = [
                await self._send(product_code, qty, from_location, note, fresh_balances)
            ]
        else:
            movements = await self._transfer(
                product_code, qty, from_location, to_location, note, fresh_balances
            )

        outcome = MovementOutcome(
            operation=operation, product_code=product_code, movements=movements
        )
        try:
            outcome.balances = await self._balances.refresh(product_code)
        except StoreError as e:
            self._balances.invalidate(product_code)
            outcome.refresh_error = str(e)
            logger.warning(
                "balance_refresh_failed",
                product_code=product_code,
                operation=operation.value,
                error=str(e),
            )

        logger.info(
            "movement_applied",
            operation=operation.value,
            product_code=product_code,
            movement_ids=[m.id for m in movements],
            global_on_hand=outcome.balances.global_on_hand if outcome.balances else None,
        )
        return outcome

    async def _adjust(
        self, product_code: str, delta: int | None, reason: str | None, note: str | None
    ) -> Movement:
        if not delta:
            raise InvalidMovementError("Adjustment delta must be non-zero.")
        try:
            reason_value = AdjustmentReason(
                reason or AdjustmentReason.MONTHLY_CYCLE_COUNT
            ).value
        except ValueError:
            raise InvalidMovementError(f"Unknown adjustment reason: '{reason}'") from None

        # Corrections are applied as given, no sufficiency check
        return await self._store.record_adjustment(product_code, delta, reason_value, note)

    async def _receive(
        self, product_code: str, qty: int | None, to_location: str | None, note: str | None
    ) -> Movement:
        if not to_location:
            raise InvalidMovementError("Receive failed: select a To location.")
        qty = _require_qty(qty, "Receive")
        return await self._store.record_location_delta(
            product_code, to_location, qty, MovementType.RECEIVE.value, note
        )

    async def _send(
        self,
        product_code: str,
        qty: int | None,
        from_location: str | None,
        note: str | None,
        fresh: bool,
    ) -> Movement:
        if not from_location:
            raise InvalidMovementError("Send failed: select a From location.")
        qty = _require_qty(qty, "Send")
        await self._check_sufficient(product_code, from_location, qty, fresh)
        return await self._store.record_location_delta(
            product_code, from_location, -qty, MovementType.SEND.value, note
        )

    async def _transfer(
        self,
        product_code: str,
        qty: int | None,
        from_location: str | None,
        to_location: str | None,
        note: str | None,
        fresh: bool,
    ) -> list[Movement]:
        if not from_location or not to_location:
            raise InvalidMovementError("Move failed: select both From and To locations.")
        if from_location == to_location:
            raise InvalidMovementError(
                "Move failed: From and To locations must be different."
            )
        qty = _require_qty(qty, "Move")
        await self._check_sufficient(product_code, from_location, qty, fresh)

        # Two independent writes; the store offers no multi-location transaction
        debit = await self._store.record_location_delta(
            product_code, from_location, -qty, MovementType.TRANSFER_OUT.value, note
        )
        try:
            credit = await self._store.record_location_delta(
                product_code, to_location, qty, MovementType.TRANSFER_IN.value, note
            )
        except (StoreError, InvalidMovementError) as e:
            self._balances.invalidate(product_code)
            logger.error(
                "transfer_credit_failed",
                product_code=product_code,
                from_location=from_location,
                to_location=to_location,
                qty=qty,
                debit_movement_id=debit.id,
                error=str(e),
            )
            raise NonAtomicTransferError(debit, e) from e

        return [debit, credit]

    async def _check_sufficient(
        self, product_code: str, location_id: str, qty: int, fresh: bool
    ) -> None:
        snapshot = None if fresh else self._balances.snapshot(product_code)
        if snapshot is None:
            snapshot = await self._balances.refresh(product_code)

        available = snapshot.on_hand_at(location_id)
        if qty > available:
            logger.info(
                "insufficient_stock",
                product_code=product_code,
                location_id=location_id,
                requested=qty,
                available=available,
            )
            raise InsufficientStockError(product_code, location_id, qty, available)


def _require_qty(qty: int | None, action: str) -> int:
    if qty is None or qty < 1:
        raise InvalidMovementError(f"{action} failed: quantity must be at least 1.")
    return qty
