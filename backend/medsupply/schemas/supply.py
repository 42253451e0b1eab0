from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime

from medsupply.core.clock import ensure_utc
from medsupply.services.risk_classifier import RiskLevel


class SupplyDraft(BaseModel):
    """Caller-settable fields of a supply item. risk_level is never accepted."""
    model_config = ConfigDict(extra="forbid")

    name: str
    category: str
    minimum_required: int = Field(ge=0)
    current_quantity: int = Field(ge=0)
    expiry_date: Optional[datetime] = None  # absent for non-perishables
    location: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value

    @field_validator("expiry_date")
    @classmethod
    def expiry_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class SupplyRecord(BaseModel):
    """Immutable snapshot of one stored supply item."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    category: str
    minimum_required: int
    current_quantity: int
    expiry_date: Optional[datetime] = None
    location: str
    risk_level: RiskLevel

    @field_validator("expiry_date")
    @classmethod
    def expiry_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive datetimes
        return ensure_utc(value)


class RiskSummary(BaseModel):
    """Dashboard counts over the whole inventory."""
    model_config = ConfigDict(frozen=True)

    total: int = 0
    critical: int = 0
    elevated: int = 0
    normal: int = 0
    expiring: int = 0  # expiry inside the alert window


# ==============================================================================
# API PAYLOADS
# ==============================================================================
# Range and emptiness checks are left to the store so HTTP callers get the
# same ValidationError messages as in-process callers. Unknown fields, such as
# risk_level, are rejected here with a 422.

class SupplyPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    category: str
    minimum_required: int
    current_quantity: int
    expiry_date: Optional[datetime] = None
    location: str = ""


class QuantityUpdate(BaseModel):
    current_quantity: int
