from __future__ import annotations

from typing import Dict, List


DEFAULT_PLACE_TYPE = "establishment"

# UI category id -> Google Places type filter
CATEGORY_TYPES: Dict[str, str] = {
    "cafes": "cafe",
    "parks": "park",
    "historical": "tourist_attraction",
    "religious": "place_of_worship",
    "nature": "natural_feature",
    "museums": "museum",
    "shopping": "shopping_mall",
    "adventure": "amusement_park",
    "beaches": "natural_feature",
    "nightlife": "night_club",
    "bookstores": "book_store",
    "viewpoints": "tourist_attraction",
}


def map_category(category: str) -> str:
    return CATEGORY_TYPES.get((category or "").strip().lower(), DEFAULT_PLACE_TYPE)


def list_categories() -> List[Dict[str, str]]:
    return [{"id": cid, "place_type": ptype} for cid, ptype in CATEGORY_TYPES.items()]
