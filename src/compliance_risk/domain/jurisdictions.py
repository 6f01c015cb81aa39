from __future__ import annotations

from typing import Iterable, Optional, Tuple

LOW_RISK_JURISDICTIONS: Tuple[str, ...] = (
    "united states",
    "singapore",
    "japan",
    "united kingdom",
    "switzerland",
    "european union",
    "australia",
    "canada",
)

MEDIUM_RISK_JURISDICTIONS: Tuple[str, ...] = (
    "hong kong",
    "south korea",
    "uae",
    "brazil",
    "malaysia",
)


def jurisdiction_risk_tier(location: Optional[str]) -> Optional[str]:
    """Return "low", "medium" or "high" for a free-text location, None if blank."""
    text = (location or "").strip().lower()
    if not text:
        return None
    if any(j in text for j in LOW_RISK_JURISDICTIONS):
        return "low"
    if any(j in text for j in MEDIUM_RISK_JURISDICTIONS):
        return "medium"
    return "high"


_TIER_ORDER = ("low", "medium", "high")


def worst_jurisdiction_tier(locations: Iterable[Optional[str]]) -> Optional[str]:
    """Highest-risk tier across several locations, None if none is given."""
    tiers = [t for t in (jurisdiction_risk_tier(x) for x in locations) if t is not None]
    if not tiers:
        return None
    return max(tiers, key=_TIER_ORDER.index)
