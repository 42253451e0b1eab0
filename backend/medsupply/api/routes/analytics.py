"""
Analytics API - dashboard card data.

Provides aggregated counts for:
- Risk levels (critical / elevated / normal) and expiring items
- Items per category, with how many of them are critical
"""
from collections import Counter
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from medsupply.api.deps import get_store
from medsupply.schemas.supply import RiskSummary
from medsupply.services.inventory_store import InventoryStore
from medsupply.services.risk_classifier import RiskLevel

router = APIRouter()


@router.get("/summary", response_model=RiskSummary)
def get_risk_summary(
    days: Optional[int] = Query(None, ge=0, description="Expiry alert window in days"),
    store: InventoryStore = Depends(get_store),
):
    """Counts for the dashboard alert cards."""
    window = None if days is None else timedelta(days=days)
    with store.risk_summary(window) as view:
        return view.value


@router.get("/categories")
def get_category_breakdown(store: InventoryStore = Depends(get_store)):
    """
    Items per category for the supplies overview chart.
    Returns: [{category, total, critical}] sorted by category name
    """
    items = store.snapshot()
    totals = Counter(item.category for item in items)
    critical = Counter(item.category for item in items if item.risk_level == RiskLevel.CRITICAL)
    return [
        {"category": category, "total": totals[category], "critical": critical[category]}
        for category in sorted(totals)
    ]
