"""Domain models for Stockline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import NewType

# Canonical four-segment code, only ever produced by normalize()
ProductCode = NewType("ProductCode", str)


class Operation(str, Enum):
    """Operation requested by the operator."""

    RECEIVE = "receive"
    SEND = "send"
    TRANSFER = "transfer"
    ADJUST = "adjust"


class MovementType(str, Enum):
    """Type of an applied movement record."""

    RECEIVE = "receive"
    SEND = "send"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    ADJUST = "adjust"


class AdjustmentReason(str, Enum):
    """Reason attached to an on-hand adjustment."""

    MONTHLY_CYCLE_COUNT = "monthly_cycle_count"
    INITIAL_COUNT = "initial_count"
    SALE = "sale"
    DAMAGE = "damage"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @classmethod
    def label_for(cls, value: str | None) -> str | None:
        """Display label for a stored reason, falling back to the raw value."""
        for reason in cls:
            if reason.value == value:
                return reason.label
        return value


class WorkflowState(str, Enum):
    """State of a single-item workflow."""

    IDLE = "idle"
    RESOLVING = "resolving"
    READY = "ready"
    SUBMITTING = "submitting"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class Location:
    """A stocking location."""

    id: str
    code: str


@dataclass(frozen=True)
class LocationBalance:
    """On-hand quantity of one product at one location."""

    location_id: str
    on_hand: int
    location_code: str | None = None


@dataclass(frozen=True)
class Movement:
    """Applied stock movement, as recorded by the store."""

    id: int
    type: MovementType
    product_code: str
    delta: int
    created_at: datetime
    location_id: str | None = None
    from_location_id: str | None = None
    to_location_id: str | None = None
    from_location_code: str | None = None
    to_location_code: str | None = None
    reason: str | None = None
    note: str | None = None

    @property
    def qty(self) -> int:
        return abs(self.delta)


@dataclass
class ProductView:
    """Product code with its image, as shown in lookup mode."""

    product_code: ProductCode
    image_url: str | None = None
