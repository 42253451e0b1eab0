"""
Demo inventory loaded on first start.

Ten representative hospital supplies spread over the four standard
categories, with expiry dates relative to the moment of seeding so the
dashboard shows a mix of Critical, Elevated and Normal items.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Any

from medsupply.services.inventory_store import InventoryStore

logger = logging.getLogger(__name__)

# (name, category, minimum_required, current_quantity, expiry offset in days, location)
SAMPLE_SUPPLIES = [
    ("N95 Respirator Masks", "PPE", 500, 350, 5, "Storage Room A"),
    ("Surgical Gloves (Medium)", "PPE", 1000, 1200, 182, "Storage Room A"),
    ("Paracetamol 500mg", "Medication", 200, 180, 25, "Pharmacy Cabinet 3"),
    ("Insulin Vials", "Medication", 50, 30, 3, "Refrigerated Storage"),
    ("Sterile Scalpel Blades", "Surgical Kit", 100, 95, 730, "Operating Theater 2"),
    ("Suture Kits (Absorbable)", "Surgical Kit", 75, 120, 243, "Operating Theater 1"),
    ("Blood Pressure Monitors", "Device", 20, 25, None, "Ward Equipment Room"),
    ("IV Infusion Sets", "Device", 300, 280, 91, "Emergency Department"),
    ("Disposable Face Shields", "PPE", 400, 150, 365, "Storage Room B"),
    ("Antibiotic Amoxicillin 250mg", "Medication", 150, 200, 45, "Pharmacy Cabinet 1"),
]


def sample_drafts(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "name": name,
            "category": category,
            "minimum_required": minimum,
            "current_quantity": quantity,
            "expiry_date": now + timedelta(days=days) if days is not None else None,
            "location": location,
        }
        for name, category, minimum, quantity, days, location in SAMPLE_SUPPLIES
    ]


def seed_sample_data(store: InventoryStore) -> int:
    """Insert the demo inventory. Returns the number of items created."""
    created = store.insert_many(sample_drafts(store.clock.now()))
    logger.info(f"Seeded {len(created)} sample supply items")
    return len(created)
