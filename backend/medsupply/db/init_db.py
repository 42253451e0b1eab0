"""Create all tables. Run on app startup."""
from sqlalchemy.engine import Engine

from medsupply.db.base import Base
from medsupply.db.session import engine as default_engine
from medsupply.models import supply_item  # noqa: F401 - register models


def init_db(engine: Engine = None):
    Base.metadata.create_all(bind=engine or default_engine)
