"""Supplies: CRUD, filtered lists and the live WebSocket feed."""
import asyncio
import logging
import threading
import warnings
from datetime import timedelta
from typing import Callable, List, Optional, TypeVar

from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status

from medsupply.api.deps import get_store, get_ws_store
from medsupply.core.exceptions import BusinessError, NotFoundError, PersistenceWarning, ValidationError
from medsupply.schemas.supply import QuantityUpdate, SupplyPayload, SupplyRecord
from medsupply.services.inventory_store import InventoryStore
from medsupply.services.live_view import LiveView
from medsupply.services.risk_classifier import RiskLevel

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

# warnings.catch_warnings swaps process-wide state
_capture_lock = threading.Lock()


def _apply(response: Response, mutation: Callable[[], T]) -> T:
    """
    Run a store mutation, mapping domain errors to HTTP errors.

    A durable-write failure does not fail the request: the change is live in
    memory, so the caller gets the normal response plus a Warning header.
    """
    with _capture_lock, warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            result = mutation()
        except NotFoundError as e:
            raise BusinessError.not_found("Supply item", str(e))
        except ValidationError as e:
            raise BusinessError.bad_request(str(e))

    for warning in caught:
        if issubclass(warning.category, PersistenceWarning):
            response.headers.append("Warning", f'199 - "{warning.message}"')
        else:
            warnings.warn_explicit(warning.message, warning.category, warning.filename, warning.lineno)
    return result


# ==============================================================================
# READS
# ==============================================================================

@router.get("", response_model=List[SupplyRecord])
def list_supplies(
    search: Optional[str] = Query(None, description="Case-insensitive name substring"),
    category: Optional[str] = Query(None),
    location: Optional[str] = Query(None),
    risk_level: Optional[RiskLevel] = Query(None),
    store: InventoryStore = Depends(get_store),
):
    """Supply list with search and filters, sorted by name."""
    with store.combined_view(search or "", category, location, risk_level) as view:
        return list(view.value)


@router.get("/critical", response_model=List[SupplyRecord])
def list_critical_supplies(store: InventoryStore = Depends(get_store)):
    """Items needing immediate attention, for the dashboard alert card."""
    with store.critical_items() as view:
        return list(view.value)


@router.get("/expiring", response_model=List[SupplyRecord])
def list_expiring_supplies(
    days: Optional[int] = Query(None, ge=0, description="Alert for items expiring within N days"),
    store: InventoryStore = Depends(get_store),
):
    """Items expiring within the window (already-expired included), soonest first."""
    window = store.expiry_alert_window if days is None else timedelta(days=days)
    with store.expiring_within(store.clock.now() + window) as view:
        return list(view.value)


@router.get("/{item_id}", response_model=SupplyRecord)
def get_supply(item_id: int, store: InventoryStore = Depends(get_store)):
    with store.get_by_id(item_id) as view:
        record = view.value
    if record is None:
        raise BusinessError.not_found("Supply item", f"id {item_id}")
    return record


# ==============================================================================
# MUTATIONS
# ==============================================================================
# Plain def: FastAPI runs these in its threadpool, so the durable write never
# blocks the event loop or the live WebSocket feeds.

@router.post("", response_model=SupplyRecord, status_code=status.HTTP_201_CREATED)
def create_supply(
    payload: SupplyPayload,
    response: Response,
    store: InventoryStore = Depends(get_store),
):
    """Add a supply item. Risk level is computed, never accepted from the caller."""
    return _apply(response, lambda: store.insert(payload.model_dump()))


@router.put("/{item_id}", response_model=SupplyRecord)
def replace_supply(
    item_id: int,
    payload: SupplyPayload,
    response: Response,
    store: InventoryStore = Depends(get_store),
):
    return _apply(response, lambda: store.update_record(item_id, payload.model_dump()))


@router.patch("/{item_id}/quantity", response_model=SupplyRecord)
def update_supply_quantity(
    item_id: int,
    update: QuantityUpdate,
    response: Response,
    store: InventoryStore = Depends(get_store),
):
    """Stock count correction; risk level is recomputed."""
    return _apply(response, lambda: store.update_quantity(item_id, update.current_quantity))


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_supply(
    item_id: int,
    response: Response,
    store: InventoryStore = Depends(get_store),
):
    _apply(response, lambda: store.delete(item_id))


@router.post("/reclassify", response_model=List[SupplyRecord])
def reclassify_supplies(response: Response, store: InventoryStore = Depends(get_store)):
    """Bring stored risk levels up to date with the current time. Returns changed items."""
    return _apply(response, store.reclassify)


# ==============================================================================
# LIVE FEED
# ==============================================================================

async def _close_on_disconnect(websocket: WebSocket, view: LiveView):
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        view.cancel()


@router.websocket("/live")
async def stream_supplies(
    websocket: WebSocket,
    search: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = None,
    risk_level: Optional[RiskLevel] = None,
    store: InventoryStore = Depends(get_ws_store),
):
    """Send the filtered supply list now and again after every change to it."""
    await websocket.accept()
    view = store.combined_view(search or "", category, location, risk_level)
    watcher = asyncio.create_task(_close_on_disconnect(websocket, view))
    try:
        async for items in view.stream():
            await websocket.send_json([item.model_dump(mode="json") for item in items])
    except WebSocketDisconnect:
        logger.info("Live supply feed client disconnected")
    finally:
        view.cancel()
        watcher.cancel()
