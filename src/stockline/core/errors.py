"""Exceptions raised by the Stockline core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stockline.core.batch import BatchResult
    from stockline.core.models import Movement


class StocklineError(Exception):
    """Base class for every failure the core reports to an operator."""


class InvalidFormatError(StocklineError, ValueError):
    """Raised when scanned or typed text is not a valid product code."""


class NotFoundError(StocklineError):
    """Raised when a product code is unknown to the catalog."""


class StoreError(StocklineError):
    """Raised when the backing store fails. Safe to retry."""


class InvalidMovementError(StocklineError, ValueError):
    """Raised when movement parameters are rejected before any store call."""


class InsufficientStockError(StocklineError):
    """Raised when a debit exceeds the cached on-hand at its location."""

    def __init__(self, product_code: str, location_id: str, requested: int, available: int):
        self.product_code = product_code
        self.location_id = location_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_code} at {location_id}: "
            f"requested {requested}, available {available}"
        )


class DuplicateScanError(StocklineError):
    """Raised when a scan is rejected due to debounce."""


class NonAtomicTransferError(StocklineError):
    """Raised when a transfer debit succeeded but its credit failed.

    The debit is not compensated. Stock has left the source location without
    arriving at the destination until an operator reconciles it.
    """

    def __init__(self, debit: Movement, cause: StocklineError):
        self.debit = debit
        self.cause = cause
        super().__init__(
            f"Transfer of {debit.qty} x {debit.product_code} was debited from "
            f"{debit.from_location_id} but the credit failed: {cause}. "
            "Manual reconciliation required."
        )


class PartialBatchFailure(StocklineError):
    """Raised when some lines of a batch submission failed."""

    def __init__(self, result: BatchResult):
        self.result = result
        super().__init__(
            f"{len(result.failed)} of {len(result.failed) + len(result.succeeded)} "
            "batch lines failed and were kept for retry"
        )
