"""
Shipping category classification for Mercado Livre listings.

Pure functions, no I/O. A listing's shipping configuration is described by
two ordered arrays (shipping_modes, logistic_types) with the legacy scalar
fields as a fallback when an array is empty. Each category predicate is
evaluated independently, so one listing can be FLEX and Correios at once.

Category    | Rule
------------|-----------------------------------------------
FULL        | me2 + fulfillment
FLEX        | me2 + self_service
Agências    | me2 + xd_drop_off
Coleta      | me2 + cross_docking
Correios    | drop_off mode, or me2 + drop_off
Envio Próprio | not_specified mode
Outro       | none of the above
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

# Shipping modes
MODE_ME2 = "me2"
MODE_DROP_OFF = "drop_off"
MODE_NOT_SPECIFIED = "not_specified"

# Logistic types
TYPE_FULFILLMENT = "fulfillment"
TYPE_SELF_SERVICE = "self_service"
TYPE_XD_DROP_OFF = "xd_drop_off"
TYPE_CROSS_DOCKING = "cross_docking"
TYPE_DROP_OFF = "drop_off"

# Shipping tags that signal a logistic type when the API omits it
SELF_SERVICE_TAGS = frozenset({"self_service_in", "self_service_available"})
MANDATORY_FREE_SHIPPING_TAG = "mandatory_free_shipping"
CROSS_DOCKING_TAGS = frozenset({"cross_docking", "cross_docking_in"})

# Category labels, in display order
FULL = "FULL"
FLEX = "FLEX"
AGENCIES = "Agências"
COLLECTION = "Coleta"
CORREIOS = "Correios"
ENVIO_PROPRIO = "Envio Próprio"
OTHER = "Outro"

# Keys used for metric columns (flex_count, agencies_percentage, ...)
CATEGORY_KEYS = {
    FULL: "full",
    FLEX: "flex",
    AGENCIES: "agencies",
    COLLECTION: "collection",
    CORREIOS: "correios",
    ENVIO_PROPRIO: "envio_proprio",
}


@dataclass
class ShippingInfo:
    """Minimal shipping view; MLProduct rows expose the same attributes"""
    shipping_modes: List[str] = field(default_factory=list)
    logistic_types: List[str] = field(default_factory=list)
    shipping_mode: Optional[str] = None
    logistic_type: Optional[str] = None
    status: str = "active"


def shipping_modes_of(listing) -> List[str]:
    modes = list(getattr(listing, "shipping_modes", None) or [])
    if not modes and getattr(listing, "shipping_mode", None):
        modes = [listing.shipping_mode]
    return modes


def logistic_types_of(listing) -> List[str]:
    types = list(getattr(listing, "logistic_types", None) or [])
    if not types and getattr(listing, "logistic_type", None):
        types = [listing.logistic_type]
    return types


def has_mode(listing, mode: str) -> bool:
    return mode in shipping_modes_of(listing)


def has_type(listing, logistic_type: str) -> bool:
    return logistic_type in logistic_types_of(listing)


# ---------------------------------------------------------------------------
# Category predicates
# ---------------------------------------------------------------------------

def is_flex(listing) -> bool:
    return has_mode(listing, MODE_ME2) and has_type(listing, TYPE_SELF_SERVICE)


def is_agency(listing) -> bool:
    return has_mode(listing, MODE_ME2) and has_type(listing, TYPE_XD_DROP_OFF)


def is_collection(listing) -> bool:
    return has_mode(listing, MODE_ME2) and has_type(listing, TYPE_CROSS_DOCKING)


def is_full(listing) -> bool:
    return has_mode(listing, MODE_ME2) and has_type(listing, TYPE_FULFILLMENT)


def is_correios(listing) -> bool:
    return has_mode(listing, MODE_DROP_OFF) or (
        has_mode(listing, MODE_ME2) and has_type(listing, TYPE_DROP_OFF)
    )


def is_envio_proprio(listing) -> bool:
    return has_mode(listing, MODE_NOT_SPECIFIED)


CATEGORY_PREDICATES: List[Tuple[str, Callable]] = [
    (FULL, is_full),
    (FLEX, is_flex),
    (AGENCIES, is_agency),
    (COLLECTION, is_collection),
    (CORREIOS, is_correios),
    (ENVIO_PROPRIO, is_envio_proprio),
]


def get_all_shipping_types(listing) -> List[str]:
    """Every category the listing belongs to, or ["Outro"]"""
    types = [label for label, predicate in CATEGORY_PREDICATES if predicate(listing)]
    return types or [OTHER]


def get_shipping_type_description(listing) -> str:
    """The first matching category label"""
    return get_all_shipping_types(listing)[0]


def has_shipping_type(listing, label: str) -> bool:
    return label in get_all_shipping_types(listing)


def group_by_shipping_type(listings: Iterable) -> Dict[str, List]:
    """Bucket listings per category; a listing can land in several buckets"""
    groups: Dict[str, List] = {label: [] for label, _ in CATEGORY_PREDICATES}
    groups[OTHER] = []
    for listing in listings:
        for label in get_all_shipping_types(listing):
            groups[label].append(listing)
    return groups


def calculate_basic_quality_score(has_description: bool, has_pictures: bool, has_tax_data: bool) -> int:
    """0-100 score from the three listing quality flags"""
    return 33 * bool(has_description) + 33 * bool(has_pictures) + 34 * bool(has_tax_data)


# ---------------------------------------------------------------------------
# Logistic type inference
# ---------------------------------------------------------------------------

@dataclass
class ShippingSignals:
    """Raw shipping attributes of an item as returned by the API"""
    mode: Optional[str] = None
    logistic_type: Optional[str] = None
    inventory_id: Optional[str] = None
    tags: Sequence[str] = ()

    def has_any_tag(self, tags: Iterable[str]) -> bool:
        return any(tag in self.tags for tag in tags)


def _has_inventory(s: ShippingSignals) -> bool:
    return bool(s.inventory_id)


def _has_self_service_tag(s: ShippingSignals) -> bool:
    return s.has_any_tag(SELF_SERVICE_TAGS)


def _has_mandatory_free_shipping(s: ShippingSignals) -> bool:
    return MANDATORY_FREE_SHIPPING_TAG in s.tags and not _has_self_service_tag(s)


def _has_cross_docking_tag(s: ShippingSignals) -> bool:
    return s.has_any_tag(CROSS_DOCKING_TAGS)


def _has_explicit_type(s: ShippingSignals) -> bool:
    return bool(s.logistic_type) and s.logistic_type != TYPE_SELF_SERVICE


# First match wins. A rule result of None means "use the upstream value".
INFERENCE_RULES: List[Tuple[str, Callable[[ShippingSignals], bool], Optional[str]]] = [
    ("inventory_id", _has_inventory, TYPE_FULFILLMENT),
    ("self_service_tag", _has_self_service_tag, TYPE_SELF_SERVICE),
    ("mandatory_free_shipping_tag", _has_mandatory_free_shipping, TYPE_XD_DROP_OFF),
    ("cross_docking_tag", _has_cross_docking_tag, TYPE_CROSS_DOCKING),
    ("explicit_logistic_type", _has_explicit_type, None),
]


def infer_logistic_type(signals: ShippingSignals) -> Optional[str]:
    """
    Resolve the effective logistic type of an item.

    The API frequently omits or misreports logistic_type for ME2 items, so
    ME2 goes through INFERENCE_RULES and defaults to self_service. Other
    modes keep whatever the API sent.
    """
    if signals.mode != MODE_ME2:
        return signals.logistic_type

    for _name, matches, result in INFERENCE_RULES:
        if matches(signals):
            return result if result is not None else signals.logistic_type
    return TYPE_SELF_SERVICE


def derive_logistic_types(signals: ShippingSignals) -> List[str]:
    """
    Ordered logistic_types array for storage.

    The inferred type comes first, followed by the other types the item
    signals (self-service tag, explicit upstream type).
    """
    candidates = [infer_logistic_type(signals)]
    if signals.mode == MODE_ME2 and _has_self_service_tag(signals):
        candidates.append(TYPE_SELF_SERVICE)
    if signals.mode != MODE_ME2 or _has_explicit_type(signals):
        # An upstream "self_service" on ME2 is unreliable and only the cascade may assert it
        candidates.append(signals.logistic_type)

    types: List[str] = []
    for candidate in candidates:
        if candidate and candidate not in types:
            types.append(candidate)
    return types
