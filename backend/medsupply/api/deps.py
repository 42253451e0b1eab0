"""FastAPI dependencies: the process-wide inventory store.

The store is built once in the application lifespan and kept on app.state;
routes receive it through Depends(get_store) instead of importing a global.
"""
from fastapi import HTTPException, Request, WebSocket, status

from medsupply.services.inventory_store import InventoryStore


def _from_state(state) -> InventoryStore:
    store = getattr(state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inventory store not initialized",
        )
    return store


def get_store(request: Request) -> InventoryStore:
    return _from_state(request.app.state)


def get_ws_store(websocket: WebSocket) -> InventoryStore:
    return _from_state(websocket.app.state)
