"""Batch aggregation of scanned items into one submission."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from stockline.core.errors import InvalidMovementError, PartialBatchFailure, StocklineError
from stockline.core.models import Operation
from stockline.core.movements import MovementEngine, MovementOutcome

logger = structlog.get_logger()


@dataclass
class CartLine:
    """Quantity-aggregated line for one product."""

    product_code: str
    qty: int = 1


@dataclass
class FailedLine:
    """A cart line that could not be applied, with the reason."""

    line: CartLine
    error: StocklineError


@dataclass
class BatchResult:
    """Per-line outcome of a batch submission."""

    operation: Operation
    succeeded: list[CartLine] = field(default_factory=list)
    failed: list[FailedLine] = field(default_factory=list)
    outcomes: list[MovementOutcome] = field(default_factory=list)

    @property
    def units_succeeded(self) -> int:
        return sum(line.qty for line in self.succeeded)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed)

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure if any line failed."""
        if self.failed:
            raise PartialBatchFailure(self)


class BatchAggregator:
    """Cart of product lines applied line by line on submit.

    Lines keep insertion order. Submit attempts every line and removes only
    what it applied, so failed lines stay for a retry.
    """

    def __init__(self, engine: MovementEngine):
        self._engine = engine
        self._lines: dict[str, CartLine] = {}

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def __len__(self) -> int:
        return len(self._lines)

    def add_or_increment(self, product_code: str) -> CartLine:
        line = self._lines.get(product_code)
        if line is None:
            line = self._lines[product_code] = CartLine(product_code=product_code)
        else:
            line.qty += 1
        return line

    def set_qty(self, product_code: str, qty: int) -> CartLine:
        if qty < 1:
            raise InvalidMovementError("Quantity must be at least 1.")
        line = self._lines.get(product_code)
        if line is None:
            raise InvalidMovementError(f"{product_code} is not in the batch.")
        line.qty = qty
        return line

    def remove(self, product_code: str) -> None:
        self._lines.pop(product_code, None)

    def total_units(self) -> int:
        return sum(line.qty for line in self._lines.values())

    def clear(self) -> None:
        self._lines.clear()

    def _take(self, submitted: CartLine) -> None:
        line = self._lines.get(submitted.product_code)
        if line is None:
            return
        line.qty -= submitted.qty
        if line.qty < 1:
            del self._lines[submitted.product_code]

    async def submit(
        self,
        operation: Operation | str,
        *,
        from_location: str | None = None,
        to_location: str | None = None,
        reason: str | None = None,
        note: str | None = None,
    ) -> BatchResult:
        """Apply every cart line with the shared parameters.

        Lines run sequentially in insertion order, using the quantities held
        when submit starts. Each debit is checked against freshly read
        balances, since lines are rarely looked up first. For adjust, each
        line's qty is used as a positive delta.

        Scans that land while submit awaits the store stay in the cart: only
        the submitted quantity of each succeeded line is removed.

        Args:
            operation: receive, send, transfer or adjust
            from_location: Shared source location
            to_location: Shared destination location
            reason: Shared adjustment reason
            note: Shared note

        Returns:
            BatchResult listing succeeded and failed lines

        Raises:
            InvalidMovementError: If the cart is empty or the operation unknown
        """
        try:
            operation = Operation(operation)
        except ValueError:
            raise InvalidMovementError(f"Unknown operation: '{operation}'") from None
        if not self._lines:
            raise InvalidMovementError("Batch is empty.")

        pending = [CartLine(line.product_code, line.qty) for line in self._lines.values()]
        result = BatchResult(operation=operation)
        for line in pending:
            try:
                outcome = await self._engine.apply(
                    operation,
                    line.product_code,
                    qty=line.qty,
                    delta=line.qty if operation is Operation.ADJUST else None,
                    from_location=from_location,
                    to_location=to_location,
                    reason=reason,
                    note=note,
                    fresh_balances=True,
                )
            except StocklineError as e:
                logger.warning(
                    "batch_line_failed",
                    operation=operation.value,
                    product_code=line.product_code,
                    qty=line.qty,
                    error=str(e),
                )
                result.failed.append(FailedLine(line=line, error=e))
                continue
            result.succeeded.append(line)
            result.outcomes.append(outcome)

        for line in result.succeeded:
            self._take(line)

        logger.info(
            "batch_submitted",
            operation=operation.value,
            lines_succeeded=len(result.succeeded),
            lines_failed=len(result.failed),
            units_succeeded=result.units_succeeded,
        )
        return result
