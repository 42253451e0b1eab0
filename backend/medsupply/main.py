"""
MedSupply Guardian Backend - medical supply inventory with risk tracking.

ARCHITECTURE:
- InventoryStore: in-memory source of truth, live views, risk classification
- SQLAlchemy table: durable copy, loaded once at startup, written after each change
- FastAPI: JSON reads/writes and a WebSocket feed for dashboards

One store instance is built in the lifespan handler and handed to routes via
app.state; tests pass their own store to create_app().
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medsupply.api.routes import analytics, supplies
from medsupply.core.config import settings
from medsupply.db.init_db import init_db
from medsupply.services.inventory_store import InventoryStore
from medsupply.services.sample_data import seed_sample_data
from medsupply.services.supply_repository import SqlAlchemySupplyRepository

logger = logging.getLogger(__name__)


def build_store() -> InventoryStore:
    """Create tables, load the persisted inventory and seed it on first start."""
    logger.info("Initializing database...")
    init_db()
    repository = SqlAlchemySupplyRepository()
    first_start = repository.last_issued_id() == 0
    store = InventoryStore(repository)
    if first_start and settings.SEED_SAMPLE_DATA:
        seed_sample_data(store)
    return store


def create_app(store: Optional[InventoryStore] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None:
            app.state.store = build_store()
        logger.info("Inventory store ready")
        yield

    app = FastAPI(
        title="MedSupply Guardian API",
        description="Medical supply inventory with live risk classification.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "Accept",
            "Origin",
        ],
        max_age=600,
        expose_headers=["Content-Type", "Warning"],
    )

    @app.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    app.include_router(supplies.router, prefix="/supplies", tags=["supplies"])
    app.include_router(analytics.router, prefix="/analytics", tags=["analytics"])

    @app.get("/health")
    def health():
        current = app.state.store
        return {"status": "ok", "items": len(current.snapshot()) if current is not None else 0}

    return app


app = create_app()
