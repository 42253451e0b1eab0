"""
Shared fixtures for the backend tests.
"""
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medsupply.core.clock import Clock
from medsupply.db.init_db import init_db
from medsupply.main import create_app
from medsupply.schemas.supply import SupplyRecord
from medsupply.services.inventory_store import InventoryStore
from medsupply.services.supply_repository import SupplyRepository

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class FakeRepository(SupplyRepository):
    """In-memory repository; set failing=True to make every write raise."""

    def __init__(self, records: List[SupplyRecord] = None, last_id: int = 0):
        self.rows: Dict[int, SupplyRecord] = {r.id: r for r in records or []}
        self.last_id = last_id
        self.failing = False
        self.persisted: List[int] = []
        self.removed: List[int] = []

    def load_all(self) -> List[SupplyRecord]:
        return list(self.rows.values())

    def persist(self, record: SupplyRecord) -> None:
        if self.failing:
            raise OSError("disk full")
        self.rows[record.id] = record
        self.last_id = max(self.last_id, record.id)
        self.persisted.append(record.id)

    def remove(self, record_id: int) -> None:
        if self.failing:
            raise OSError("disk full")
        self.rows.pop(record_id, None)
        self.removed.append(record_id)

    def last_issued_id(self) -> int:
        return self.last_id


class BlockingRepository(FakeRepository):
    """Repository whose persist() holds until release is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def persist(self, record: SupplyRecord) -> None:
        self.entered.set()
        self.release.wait(timeout=5)
        super().persist(record)


def make_draft(**overrides) -> dict:
    draft = {
        "name": "Gauze",
        "category": "Surgical Kit",
        "minimum_required": 100,
        "current_quantity": 50,
        "expiry_date": None,
        "location": "A",
    }
    draft.update(overrides)
    return draft


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def store(repository, clock) -> InventoryStore:
    return InventoryStore(repository, clock, expiry_alert_days=30)


@pytest.fixture
def session_factory():
    """SQLAlchemy sessions on a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as test_client:
        yield test_client
