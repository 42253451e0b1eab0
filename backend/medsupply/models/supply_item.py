from sqlalchemy import Column, Integer, String, DateTime
from medsupply.db.base import Base


class SupplyItem(Base):
    """
    Durable row for one tracked supply item.

    The id is issued by the inventory store, not by the database, so the
    column has no autoincrement. risk_level is stored as last classified at
    write time and can go stale as expiry dates approach.
    """
    __tablename__ = "supply_items"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, index=True)
    category = Column(String(64), nullable=False, index=True)
    minimum_required = Column(Integer, nullable=False, default=0)
    current_quantity = Column(Integer, nullable=False, default=0)
    expiry_date = Column(DateTime(timezone=True), nullable=True)  # UTC
    location = Column(String(255), nullable=False, default="")
    risk_level = Column(String(16), nullable=False)

    def __repr__(self):
        return f"<SupplyItem id={self.id} name={self.name!r} risk={self.risk_level}>"


class SupplyIdSequence(Base):
    """
    Single-row high-water mark of issued supply ids.

    Deleting the newest item must not let its id be handed out again after a
    restart, so the highest id ever persisted is kept here.
    """
    __tablename__ = "supply_id_sequence"

    id = Column(Integer, primary_key=True)
    last_id = Column(Integer, nullable=False, default=0)
