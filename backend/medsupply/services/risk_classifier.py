"""
Risk classification for supply items.

Maps stock and expiry facts to a compliance urgency tier. Rules are checked
in a fixed order and the first match wins, so a Critical condition always
dominates an Elevated one:

    1. current_quantity < minimum_required               -> Critical
    2. expiry within 7 days (inclusive, or already past) -> Critical
    3. current_quantity <= floor(minimum_required * 1.5) -> Elevated
    4. expiry within 30 days (inclusive)                 -> Elevated
    5. otherwise                                         -> Normal

Windows are exact durations (7 * 24h, 30 * 24h), not calendar days.
`now` is always passed in; nothing here reads a clock.

Usage:
    from medsupply.services.risk_classifier import classify
    level = classify(50, 100, None, now)   # RiskLevel.CRITICAL
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

CRITICAL_EXPIRY_WINDOW = timedelta(days=7)
ELEVATED_EXPIRY_WINDOW = timedelta(days=30)


class RiskLevel(str, Enum):
    CRITICAL = "Critical"
    ELEVATED = "Elevated"
    NORMAL = "Normal"


def elevated_threshold(minimum_required: int) -> int:
    """Highest quantity still counted as Elevated: floor(minimum * 1.5)."""
    # Integer arithmetic keeps large minimums exact (151 -> 226)
    return (minimum_required * 3) // 2


def classify(
    current_quantity: int,
    minimum_required: int,
    expiry_date: Optional[datetime],
    now: datetime,
) -> RiskLevel:
    remaining = expiry_date - now if expiry_date is not None else None

    if current_quantity < minimum_required:
        return RiskLevel.CRITICAL
    if remaining is not None and remaining <= CRITICAL_EXPIRY_WINDOW:
        return RiskLevel.CRITICAL
    if current_quantity <= elevated_threshold(minimum_required):
        return RiskLevel.ELEVATED
    if remaining is not None and remaining <= ELEVATED_EXPIRY_WINDOW:
        return RiskLevel.ELEVATED
    return RiskLevel.NORMAL
