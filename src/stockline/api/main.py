"""FastAPI application for Stockline."""

import logging

import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stockline import __version__
from stockline.api.schemas import (
    BatchModeRequest,
    BatchResultResponse,
    BatchSubmitRequest,
    CartLineResponse,
    CartQtyRequest,
    FailedLineResponse,
    HealthResponse,
    LocationBalanceResponse,
    LocationResponse,
    LookupRequest,
    MovementOutcomeResponse,
    MovementRequest,
    MovementResponse,
    PreviewResponse,
    ProductResponse,
    ScanRequest,
    SessionResponse,
)
from stockline.config import get_settings
from stockline.core.balances import BalanceSnapshot
from stockline.core.errors import (
    DuplicateScanError,
    InsufficientStockError,
    InvalidFormatError,
    InvalidMovementError,
    NonAtomicTransferError,
    NotFoundError,
    PartialBatchFailure,
    StocklineError,
    StoreError,
)
from stockline.core.inventory_service import WorkflowSession, describe_product, get_session
from stockline.core.models import AdjustmentReason, Movement
from stockline.core.product_code import normalize
from stockline.db.postgres import get_db
from stockline.db.store import InventoryStore

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(get_settings().log_level.upper())
    ),
)
logger = structlog.get_logger()

app = FastAPI(
    title="Stockline API",
    description="Scan-driven stock movements across locations",
    version=__version__,
)

# CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> InventoryStore:
    """Store dependency, overridable in tests."""
    return get_db()


def _http_error(e: StocklineError) -> HTTPException:
    """Map a core error to an HTTP error."""
    if isinstance(e, (InvalidFormatError, InvalidMovementError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InsufficientStockError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, DuplicateScanError):
        return HTTPException(status_code=429, detail=str(e))
    if isinstance(e, NonAtomicTransferError):
        logger.error("non_atomic_transfer", debit_movement_id=e.debit.id, error=str(e))
        return HTTPException(
            status_code=502,
            detail={
                "message": str(e),
                "debit": _movement_response(e.debit).model_dump(mode="json"),
            },
        )
    if isinstance(e, StoreError):
        logger.error("store_error", error=str(e))
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _movement_response(movement: Movement) -> MovementResponse:
    return MovementResponse(
        id=movement.id,
        type=movement.type,
        product_code=movement.product_code,
        delta=movement.delta,
        qty=movement.qty,
        created_at=movement.created_at,
        location_id=movement.location_id,
        from_location_id=movement.from_location_id,
        to_location_id=movement.to_location_id,
        from_location_code=movement.from_location_code,
        to_location_code=movement.to_location_code,
        reason=movement.reason,
        reason_label=AdjustmentReason.label_for(movement.reason),
        note=movement.note,
    )


def _balance_responses(snapshot: BalanceSnapshot | None) -> list[LocationBalanceResponse]:
    if snapshot is None:
        return []
    return [
        LocationBalanceResponse(
            location_id=b.location_id,
            location_code=b.location_code,
            on_hand=b.on_hand,
        )
        for b in snapshot.by_location
    ]


def _session_response(session: WorkflowSession) -> SessionResponse:
    snapshot = session.snapshot
    return SessionResponse(
        station_id=session.station_id,
        state=session.state,
        product_code=session.product_code,
        image_url=session.image_url,
        global_on_hand=snapshot.global_on_hand if snapshot else None,
        balances=_balance_responses(snapshot),
        recent_adjustments=[_movement_response(m) for m in session.adjustments],
        recent_movements=[_movement_response(m) for m in session.movements],
        batch_mode=session.batch_mode,
        cart=[CartLineResponse.model_validate(line) for line in session.cart.lines],
        cart_units=session.cart.total_units(),
        error=session.error,
        success=session.success,
    )


@app.get("/api/health", response_model=HealthResponse)
async def health(store: InventoryStore = Depends(get_store)) -> HealthResponse:
    """Health check endpoint with database connectivity status."""
    connected = await store.health_check()
    return HealthResponse(
        status="ok",
        version=__version__,
        database="connected" if connected else "disconnected",
    )


@app.get("/api/locations", response_model=list[LocationResponse])
async def list_locations(store: InventoryStore = Depends(get_store)) -> list[LocationResponse]:
    """List stocking locations ordered by code."""
    try:
        locations = await store.list_locations()
    except StoreError as e:
        raise _http_error(e)
    return [LocationResponse(id=loc.id, code=loc.code) for loc in locations]


@app.get("/api/products/{raw:path}", response_model=ProductResponse)
async def view_product(raw: str, store: InventoryStore = Depends(get_store)) -> ProductResponse:
    """Resolve a code to its product image, without touching any session."""
    try:
        view = await describe_product(store, raw)
    except StocklineError as e:
        raise _http_error(e)
    return ProductResponse(product_code=view.product_code, image_url=view.image_url)


@app.get("/api/normalize/{raw:path}", response_model=ProductResponse)
async def normalize_code(raw: str) -> ProductResponse:
    """Normalize a code without looking it up."""
    try:
        code = normalize(raw)
    except InvalidFormatError as e:
        raise _http_error(e)
    return ProductResponse(product_code=code)


@app.get("/api/stations/{station_id}", response_model=SessionResponse)
async def get_station(
    station_id: str, store: InventoryStore = Depends(get_store)
) -> SessionResponse:
    """Get the current workflow state of a station."""
    return _session_response(get_session(station_id, store))


@app.delete("/api/stations/{station_id}", response_model=SessionResponse)
async def reset_station(
    station_id: str, store: InventoryStore = Depends(get_store)
) -> SessionResponse:
    """Reset a station's workflow, dropping the product and the batch."""
    session = get_session(station_id, store)
    session.reset()
    return _session_response(session)


@app.post("/api/stations/{station_id}/scan", response_model=SessionResponse)
async def scan(
    station_id: str, request: ScanRequest, store: InventoryStore = Depends(get_store)
) -> SessionResponse:
    """Process a decoded scan.

    Repeat decodes of the same code inside the debounce window are rejected
    with 429. In batch mode the resolved product is added to the cart.
    """
    session = get_session(station_id, store)
    try:
        await session.handle_scan(request.raw_text)
    except StocklineError as e:
        raise _http_error(e)
    return _session_response(session)


@app.post("/api/stations/{station_id}/lookup", response_model=SessionResponse)
async def lookup(
    station_id: str, request: LookupRequest, store: InventoryStore = Depends(get_store)
) -> SessionResponse:
    """Resolve a typed product code and load its balances and history."""
    session = get_session(station_id, store)
    try:
        await session.lookup(request.code)
    except StocklineError as e:
        raise _http_error(e)
    return _session_response(session)


@app.get("/api/stations/{station_id}/preview", response_model=PreviewResponse)
async def preview(
    station_id: str, delta: int, store: InventoryStore = Depends(get_store)
) -> PreviewResponse:
    """Preview the global on-hand an adjustment would leave."""
    session = get_session(station_id, store)
    return PreviewResponse(delta=delta, resulting_on_hand=session.preview(delta))


@app.post("/api/stations/{station_id}/movements", response_model=MovementOutcomeResponse)
async def apply_movement(
    station_id: str, request: MovementRequest, store: InventoryStore = Depends(get_store)
) -> MovementOutcomeResponse:
    """Apply a receive, send, transfer or adjust to the current product."""
    session = get_session(station_id, store)
    try:
        outcome = await session.apply(
            request.operation,
            qty=request.qty,
            delta=request.delta,
            from_location=request.from_location,
            to_location=request.to_location,
            reason=request.reason.value if request.reason else None,
            note=request.note,
        )
    except StocklineError as e:
        raise _http_error(e)

    return MovementOutcomeResponse(
        operation=outcome.operation,
        product_code=outcome.product_code,
        movements=[_movement_response(m) for m in outcome.movements],
        global_on_hand=outcome.balances.global_on_hand if outcome.balances else None,
        balances=_balance_responses(outcome.balances),
        refresh_error=outcome.refresh_error,
    )


@app.post("/api/stations/{station_id}/batch", response_model=SessionResponse)
async def set_batch_mode(
    station_id: str, request: BatchModeRequest, store: InventoryStore = Depends(get_store)
) -> SessionResponse:
    """Turn batch mode on or off. Turning it off discards the cart."""
    session = get_session(station_id, store)
    session.set_batch_mode(request.enabled)
    return _session_response(session)


@app.put("/api/stations/{station_id}/batch/items/{code}", response_model=SessionResponse)
async def set_cart_qty(
    station_id: str,
    code: str,
    request: CartQtyRequest,
    store: InventoryStore = Depends(get_store),
) -> SessionResponse:
    """Set the quantity of a cart line."""
    session = get_session(station_id, store)
    try:
        session.cart.set_qty(normalize(code), request.qty)
    except StocklineError as e:
        raise _http_error(e)
    return _session_response(session)


@app.delete("/api/stations/{station_id}/batch/items/{code}", response_model=SessionResponse)
async def remove_cart_line(
    station_id: str, code: str, store: InventoryStore = Depends(get_store)
) -> SessionResponse:
    """Remove a line from the cart."""
    session = get_session(station_id, store)
    try:
        session.cart.remove(normalize(code))
    except InvalidFormatError as e:
        raise _http_error(e)
    return _session_response(session)


@app.post(
    "/api/stations/{station_id}/batch/submit",
    response_model=BatchResultResponse,
    responses={207: {"model": BatchResultResponse}},
)
async def submit_batch(
    station_id: str, request: BatchSubmitRequest, store: InventoryStore = Depends(get_store)
):
    """Submit every cart line with shared parameters.

    Returns 207 when some lines failed; those lines stay in the cart.
    """
    session = get_session(station_id, store)
    try:
        result = await session.submit_batch(
            request.operation,
            from_location=request.from_location,
            to_location=request.to_location,
            reason=request.reason.value if request.reason else None,
            note=request.note,
        )
    except StocklineError as e:
        raise _http_error(e)

    response = BatchResultResponse(
        operation=result.operation,
        succeeded=[CartLineResponse.model_validate(line) for line in result.succeeded],
        failed=[
            FailedLineResponse(
                product_code=f.line.product_code, qty=f.line.qty, error=str(f.error)
            )
            for f in result.failed
        ],
        units_succeeded=result.units_succeeded,
    )

    try:
        result.raise_for_failures()
    except PartialBatchFailure as e:
        response.message = str(e)
        return JSONResponse(status_code=207, content=response.model_dump(mode="json"))

    return response
