"""Pydantic request/response schemas for Stockline API."""

from datetime import datetime

from pydantic import BaseModel, Field

from stockline.core.models import (
    AdjustmentReason,
    MovementType,
    Operation,
    WorkflowState,
)


# Request models


class ScanRequest(BaseModel):
    """Request body for the scan endpoint."""

    raw_text: str = Field(..., description="Payload as decoded by the scanner")


class LookupRequest(BaseModel):
    """Request body for manual code entry."""

    code: str = Field(..., description="Typed product code")


class MovementRequest(BaseModel):
    """Request body for applying one movement to the current product."""

    operation: Operation
    qty: int | None = Field(default=None, description="Units for receive/send/transfer")
    delta: int | None = Field(default=None, description="Signed change for adjust")
    from_location: str | None = None
    to_location: str | None = None
    reason: AdjustmentReason | None = None
    note: str | None = None


class BatchModeRequest(BaseModel):
    """Request body for toggling batch mode."""

    enabled: bool


class CartQtyRequest(BaseModel):
    """Request body for setting a cart line quantity."""

    qty: int = Field(..., ge=1)


class BatchSubmitRequest(BaseModel):
    """Request body for submitting the batch with shared parameters."""

    operation: Operation
    from_location: str | None = None
    to_location: str | None = None
    reason: AdjustmentReason | None = None
    note: str | None = None


# Response models


class ProductResponse(BaseModel):
    """Product code with its image."""

    product_code: str
    image_url: str | None = None


class LocationResponse(BaseModel):
    """A stocking location."""

    id: str
    code: str


class LocationBalanceResponse(BaseModel):
    """On-hand at one location."""

    location_id: str
    location_code: str | None
    on_hand: int


class MovementResponse(BaseModel):
    """An applied movement or adjustment."""

    id: int
    type: MovementType
    product_code: str
    delta: int
    qty: int
    created_at: datetime
    location_id: str | None = None
    from_location_id: str | None = None
    to_location_id: str | None = None
    from_location_code: str | None = None
    to_location_code: str | None = None
    reason: str | None = None
    reason_label: str | None = None
    note: str | None = None

    model_config = {"from_attributes": True}


class CartLineResponse(BaseModel):
    """A batch cart line."""

    product_code: str
    qty: int

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    """Current state of a station's workflow session."""

    station_id: str
    state: WorkflowState
    product_code: str | None
    image_url: str | None
    global_on_hand: int | None
    balances: list[LocationBalanceResponse]
    recent_adjustments: list[MovementResponse]
    recent_movements: list[MovementResponse]
    batch_mode: bool
    cart: list[CartLineResponse]
    cart_units: int
    error: str | None
    success: str | None


class MovementOutcomeResponse(BaseModel):
    """Result of applying one movement."""

    operation: Operation
    product_code: str
    movements: list[MovementResponse]
    global_on_hand: int | None
    balances: list[LocationBalanceResponse]
    refresh_error: str | None = None


class FailedLineResponse(BaseModel):
    """A batch line that failed, with the reason."""

    product_code: str
    qty: int
    error: str


class BatchResultResponse(BaseModel):
    """Result of a batch submission."""

    operation: Operation
    succeeded: list[CartLineResponse]
    failed: list[FailedLineResponse]
    units_succeeded: int
    message: str | None = None


class PreviewResponse(BaseModel):
    """Resulting global on-hand for a proposed adjustment."""

    delta: int
    resulting_on_hand: int | None


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str
    version: str
    database: str
