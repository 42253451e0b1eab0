"""Durable backing for the inventory store.

The store loads every record once at start-up and then pushes each applied
change through persist()/remove(). Implementations may raise on failure; the
store downgrades that to a PersistenceWarning.
"""
import logging
from abc import ABC, abstractmethod
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from medsupply.db.session import SessionLocal
from medsupply.models.supply_item import SupplyItem, SupplyIdSequence
from medsupply.schemas.supply import SupplyRecord

logger = logging.getLogger(__name__)

_SEQUENCE_ROW_ID = 1


class SupplyRepository(ABC):

    @abstractmethod
    def load_all(self) -> List[SupplyRecord]:
        pass

    @abstractmethod
    def persist(self, record: SupplyRecord) -> None:
        pass

    @abstractmethod
    def remove(self, record_id: int) -> None:
        pass

    @abstractmethod
    def last_issued_id(self) -> int:
        """Highest id ever persisted, including ids whose records were deleted."""
        pass


class SqlAlchemySupplyRepository(SupplyRepository):
    """Stores supply items in the supply_items table."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def load_all(self) -> List[SupplyRecord]:
        db: Session = self.session_factory()
        try:
            rows = db.query(SupplyItem).order_by(SupplyItem.id).all()
            return [SupplyRecord.model_validate(row) for row in rows]
        finally:
            db.close()

    def persist(self, record: SupplyRecord) -> None:
        db: Session = self.session_factory()
        try:
            db.merge(
                SupplyItem(
                    id=record.id,
                    name=record.name,
                    category=record.category,
                    minimum_required=record.minimum_required,
                    current_quantity=record.current_quantity,
                    expiry_date=record.expiry_date,
                    location=record.location,
                    risk_level=record.risk_level.value,
                )
            )
            sequence = db.get(SupplyIdSequence, _SEQUENCE_ROW_ID)
            if sequence is None:
                db.add(SupplyIdSequence(id=_SEQUENCE_ROW_ID, last_id=record.id))
            elif sequence.last_id < record.id:
                sequence.last_id = record.id
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def remove(self, record_id: int) -> None:
        db: Session = self.session_factory()
        try:
            deleted = db.query(SupplyItem).filter(SupplyItem.id == record_id).delete()
            db.commit()
            if not deleted:
                logger.warning(f"Supply item {record_id} was already absent from storage")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def last_issued_id(self) -> int:
        db: Session = self.session_factory()
        try:
            sequence = db.get(SupplyIdSequence, _SEQUENCE_ROW_ID)
            highest_row = db.query(func.max(SupplyItem.id)).scalar() or 0
            return max(sequence.last_id if sequence else 0, highest_row)
        finally:
            db.close()
