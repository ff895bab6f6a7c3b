"""
Listing quality checks and estimated item health.

Mercado Livre grades listings on photos, description and fiscal data. The
official health endpoint is not available to every seller, so we estimate
it from the same signals.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional

from app.schemas.mercado_livre import Item, ItemDescription

FISCAL_ATTRIBUTE_IDS = frozenset({"GTIN", "EAN", "NCM", "SELLER_SKU"})
PROFESSIONAL_MIN_PHOTOS = 5

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


def parse_picture_size(size: Optional[str]) -> Optional[int]:
    """Smaller side of a "1200x900" size string"""
    if not size:
        return None
    match = _SIZE_PATTERN.match(size)
    if not match:
        return None
    return min(int(match.group(1)), int(match.group(2)))


def min_photo_dimension(item: Item) -> Optional[int]:
    """Smallest side across all pictures, preferring max_size over size"""
    dims = [
        d for d in (parse_picture_size(p.max_size or p.size) for p in item.pictures)
        if d is not None
    ]
    return min(dims) if dims else None


def has_low_quality_photos(item: Item, min_px: int = 1200) -> bool:
    smallest = min_photo_dimension(item)
    return smallest is not None and smallest < min_px


def has_meaningful_description(description: Optional[ItemDescription], min_chars: int = 50) -> bool:
    if description is None:
        return False
    text = (description.plain_text or description.text or "").strip()
    return len(text) > min_chars


def has_tax_data(item: Item) -> bool:
    """Any of GTIN/EAN/NCM/SELLER_SKU filled in attributes or sale terms"""
    for attr in list(item.attributes) + list(item.sale_terms):
        if attr.id not in FISCAL_ATTRIBUTE_IDS:
            continue
        value = attr.value_name or attr.value_id or (attr.values[0].name if attr.values else None)
        if value and str(value).strip():
            return True
    return False


@dataclass
class ItemHealth:
    score: float
    level: str  # basic, standard, professional
    completed_actions: List[str] = field(default_factory=list)
    pending_actions: List[str] = field(default_factory=list)


def estimate_item_health(
    photo_count: int,
    low_quality_photos: bool,
    has_description: bool,
    has_tax: bool,
    status: Optional[str],
) -> ItemHealth:
    """
    Estimate a 0-1 health score.

    Base 0.5, plus 0.15 for five or more good photos, 0.15 for a description,
    0.10 for fiscal data and 0.10 for an active listing.
    """
    score = 0.5
    done: List[str] = []
    pending: List[str] = []

    if photo_count >= PROFESSIONAL_MIN_PHOTOS and not low_quality_photos:
        score += 0.15
        done.append("photos")
    else:
        pending.append("Add at least 5 photos of 1200px or more")

    if has_description:
        score += 0.15
        done.append("description")
    else:
        pending.append("Write a full description")

    if has_tax:
        score += 0.10
        done.append("tax_data")
    else:
        pending.append("Fill GTIN/EAN, NCM or SKU")

    if status == "active":
        score += 0.10
        done.append("active")
    else:
        pending.append("Reactivate the listing")

    score = round(min(score, 1.0), 2)
    if score >= 0.7:
        level = "professional"
    elif score >= 0.6:
        level = "standard"
    else:
        level = "basic"
    return ItemHealth(score=score, level=level, completed_actions=done, pending_actions=pending)
