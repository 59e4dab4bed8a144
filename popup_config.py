"""
popup_config.py
===============
Per-type popup configuration: defaults, merging and storage form.

Every popup type is described by a table of fields. Each field has a default
and a storage kind:

- plain:       stored as-is in its own column.
- json-array:  stored as JSON text, parsed back into a list on read.
- json-object: stored as JSON text, parsed back into a dict on read.

All five types share the same merge routine, so a config coming from the
admin form, from a stored row, or from nothing at all ends up with exactly the
same complete shape.

Config dicts use the camelCase keys the admin UI and storefront script use;
``column_for`` maps them to the snake_case columns of ``models.PopupConfig``.
"""

import copy
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic.alias_generators import to_snake

logger = logging.getLogger(__name__)

PLAIN = "plain"
JSON_ARRAY = "json-array"
JSON_OBJECT = "json-object"

POPUP_NAME_MAX_LENGTH = 50
SCRATCH_PERCENTAGE_DEFAULT = 15
SCRATCH_PERCENTAGE_RANGE = (1, 100)

TIMER_BOUNDS = {
    "timerDays": (0, 365),
    "timerHours": (0, 23),
    "timerMinutes": (0, 59),
    "timerSeconds": (0, 59),
}


class FieldSpec(NamedTuple):
    name: str
    default: Any
    kind: str = PLAIN


# ─────────────────────────── Schema table ───────────────────────────

def _behaviour(border_radius: int) -> List[FieldSpec]:
    return [
        FieldSpec("borderRadius", border_radius),
        FieldSpec("showCloseButton", True),
        FieldSpec("displayDelay", 3000),
        FieldSpec("frequency", "once"),
        FieldSpec("exitIntent", False),
        FieldSpec("exitIntentDelay", 1000),
    ]


DEFAULT_SEGMENTS = [
    {"label": "5% OFF", "color": "#ff6b6b", "code": "SAVE5"},
    {"label": "10% OFF", "color": "#4ecdc4", "code": "SAVE10"},
    {"label": "15% OFF", "color": "#45b7d1", "code": "SAVE15"},
    {"label": "20% OFF", "color": "#feca57", "code": "SAVE20"},
    {"label": "FREE SHIPPING", "color": "#ff9ff3", "code": "FREESHIP"},
    {"label": "TRY AGAIN", "color": "#54a0ff", "code": None},
]

DEFAULT_HOUSE_RULES = [
    "Winnings through cheating will not be processed.",
    "Only one spin allowed",
]

DEFAULT_SOCIAL_ICONS = [
    {"platform": "facebook", "url": "", "enabled": True},
    {"platform": "instagram", "url": "", "enabled": True},
    {"platform": "linkedin", "url": "", "enabled": True},
    {"platform": "x", "url": "", "enabled": True},
]

POPUP_SCHEMAS: Dict[str, List[FieldSpec]] = {
    "email": [
        FieldSpec("title", "Get 10% Off Your First Order!"),
        FieldSpec("description", "Subscribe to our newsletter and receive exclusive discounts"),
        FieldSpec("placeholder", "Enter your email address"),
        FieldSpec("buttonText", "Get Discount"),
        FieldSpec("discountCode", "WELCOME10"),
        FieldSpec("backgroundColor", "#ffffff"),
        FieldSpec("textColor", "#000000"),
        FieldSpec("buttonColor", "#007ace"),
        *_behaviour(8),
    ],
    "wheel-email": [
        FieldSpec("title", "GET YOUR CHANCE TO WIN"),
        FieldSpec("subtitle", "AMAZING DISCOUNTS!"),
        FieldSpec("description", "Enter your email below and spin the wheel to see if you're our next lucky winner!"),
        FieldSpec("placeholder", "Enter your email address"),
        FieldSpec("buttonText", "TRY YOUR LUCK"),
        FieldSpec("discountCode", "SAVE10"),
        FieldSpec("segments", DEFAULT_SEGMENTS, JSON_ARRAY),
        FieldSpec("backgroundColor", "linear-gradient(135deg, #1e3c72 0%, #2a5298 100%)"),
        FieldSpec("backgroundType", "gradient"),
        FieldSpec("textColor", "#ffffff"),
        FieldSpec("buttonColor", "#007ace"),
        FieldSpec("houseRules", DEFAULT_HOUSE_RULES, JSON_ARRAY),
        FieldSpec("showHouseRules", True),
        *_behaviour(12),
    ],
    "community": [
        FieldSpec("title", "JOIN OUR COMMUNITY"),
        FieldSpec("description", "Connect with us on social media and stay updated with our latest news and offers!"),
        FieldSpec("buttonText", "Follow Us"),
        FieldSpec("bannerImage", ""),
        FieldSpec("socialIcons", DEFAULT_SOCIAL_ICONS, JSON_ARRAY),
        FieldSpec("askMeLaterText", "Ask me later"),
        FieldSpec("showAskMeLater", True),
        FieldSpec("backgroundColor", "#ffffff"),
        FieldSpec("textColor", "#000000"),
        *_behaviour(12),
    ],
    "timer": [
        FieldSpec("title", "LIMITED TIME OFFER!"),
        FieldSpec("description", "Don't miss out on this exclusive deal. Time is running out!"),
        FieldSpec("placeholder", "Enter your email to claim this offer"),
        FieldSpec("buttonText", "CLAIM OFFER NOW"),
        FieldSpec("discountCode", "TIMER10"),
        FieldSpec("backgroundColor", "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"),
        FieldSpec("textColor", "#ffffff"),
        *_behaviour(16),
        FieldSpec("timerDays", 0),
        FieldSpec("timerHours", 0),
        FieldSpec("timerMinutes", 5),
        FieldSpec("timerSeconds", 0),
        FieldSpec("timerIcon", "⏰"),
        FieldSpec("onExpiration", "show_expired"),
        FieldSpec("expiredTitle", "OFFER EXPIRED"),
        FieldSpec("expiredMessage", "Sorry, this limited time offer has ended. But don't worry, we have other great deals waiting for you!"),
        FieldSpec("expiredIcon", "⏰"),
        FieldSpec("expiredButtonText", "CONTINUE SHOPPING"),
        FieldSpec("successTitle", "SUCCESS!"),
        FieldSpec("successMessage", "You've claimed your exclusive discount! Here's your code:"),
        FieldSpec("disclaimer", "Limited time offer. Valid while supplies last."),
    ],
    "scratch-card": [
        FieldSpec("title", "Scratch & Win!"),
        FieldSpec("description", "Scratch the card to reveal your exclusive discount and enter your email to claim it!"),
        FieldSpec("placeholder", "Enter your email"),
        FieldSpec("buttonText", "CLAIM DISCOUNT"),
        FieldSpec("discountCode", "SCRATCH10"),
        FieldSpec("backgroundColor", "#ffffff"),
        FieldSpec("textColor", "#000000"),
        *_behaviour(16),
        FieldSpec("scratchDiscountPercentage", SCRATCH_PERCENTAGE_DEFAULT),
    ],
}

DEFAULT_PAGE_TARGETING = {
    "targetAllPages": True,
    "targetSpecificPages": False,
    "selectedPages": [],
}

POPUP_TYPES = tuple(POPUP_SCHEMAS)


def _all_fields() -> Dict[str, str]:
    kinds: Dict[str, str] = {}
    for fields in POPUP_SCHEMAS.values():
        for spec in fields:
            kinds.setdefault(spec.name, spec.kind)
    return kinds


# field name -> storage kind, across every type
FIELD_KINDS = _all_fields()


def column_for(field: str) -> str:
    """'buttonText' -> 'button_text'"""
    return to_snake(field)


def _schema(popup_type: str) -> List[FieldSpec]:
    try:
        return POPUP_SCHEMAS[popup_type]
    except KeyError:
        raise ValueError(f"Unknown popup type: {popup_type}")


# ─────────────────────────── Single-field rules ───────────────────────────

def infer_background_type(background_color: Optional[str]) -> str:
    color = (background_color or "").strip()
    if "linear-gradient" in color or "radial-gradient" in color:
        return "gradient"
    if color.startswith(("#", "rgb", "hsl")):
        return "solid"
    return "custom"


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def clamp_scratch_percentage(value: Any) -> int:
    number = _to_int(value)
    if number is None:
        return SCRATCH_PERCENTAGE_DEFAULT
    low, high = SCRATCH_PERCENTAGE_RANGE
    return max(low, min(high, number))


def clamp_timer_field(field: str, value: Any) -> int:
    number = _to_int(value)
    if number is None:
        return 0
    low, high = TIMER_BOUNDS[field]
    return max(low, min(high, number))


def truncate_popup_name(name: str) -> str:
    return name[:POPUP_NAME_MAX_LENGTH]


def default_popup_name(popup_type: str, now: datetime) -> str:
    """'wheel-email' -> 'Wheel-email Popup - 10/18/2026, 2:05 PM'"""
    hour = now.hour % 12 or 12
    meridiem = "AM" if now.hour < 12 else "PM"
    stamp = f"{now.month}/{now.day}/{now.year}, {hour}:{now.minute:02d} {meridiem}"
    return truncate_popup_name(f"{popup_type[:1].upper()}{popup_type[1:]} Popup - {stamp}")


# ─────────────────────────── Structured fields ───────────────────────────

def _parse_structured(field: str, kind: str, value: Any, default: Any) -> Any:
    """
    Accepts the already-structured value or its JSON text. Anything that does
    not parse into the expected container falls back to a copy of the default.
    """
    expected = list if kind == JSON_ARRAY else dict
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("Malformed JSON in popup field %r, using default", field)
            return copy.deepcopy(default)
    if not isinstance(value, expected):
        logger.warning("Popup field %r is not a %s, using default", field, expected.__name__)
        return copy.deepcopy(default)
    return copy.deepcopy(value)


def merge_page_targeting(existing: Any) -> Dict[str, Any]:
    """Fill page targeting from a dict, its JSON text or nothing, keeping the flags consistent."""
    if existing is None:
        return copy.deepcopy(DEFAULT_PAGE_TARGETING)
    targeting = _parse_structured("pageTargeting", JSON_OBJECT, existing, DEFAULT_PAGE_TARGETING)

    target_all = targeting.get("targetAllPages")
    target_specific = bool(targeting.get("targetSpecificPages"))
    if target_all is None:
        target_all = not target_specific
    target_all = bool(target_all)

    selected = targeting.get("selectedPages")
    selected = [] if selected is None else _parse_structured("selectedPages", JSON_ARRAY, selected, [])

    if target_all or not target_specific:
        return {"targetAllPages": True, "targetSpecificPages": False, "selectedPages": []}
    return {"targetAllPages": False, "targetSpecificPages": True, "selectedPages": selected}


# ─────────────────────────── Build / merge ───────────────────────────

def build_default_config(popup_type: str) -> Dict[str, Any]:
    return {spec.name: copy.deepcopy(spec.default) for spec in _schema(popup_type)}


def merge_config(existing: Optional[Dict[str, Any]], popup_type: str) -> Dict[str, Any]:
    """
    Complete config for ``popup_type``: each field comes from ``existing`` when
    present (``False``, ``0`` and ``""`` count as present, ``None`` does not),
    otherwise from the type default. Fields outside the type's shape are dropped.
    """
    existing = existing or {}
    merged: Dict[str, Any] = {}
    for spec in _schema(popup_type):
        value = existing.get(spec.name)
        if value is None:
            merged[spec.name] = copy.deepcopy(spec.default)
        elif spec.kind == PLAIN:
            merged[spec.name] = value
        else:
            merged[spec.name] = _parse_structured(spec.name, spec.kind, value, spec.default)

    if popup_type == "wheel-email":
        merged["backgroundType"] = infer_background_type(merged["backgroundColor"])
    elif popup_type == "scratch-card":
        merged["scratchDiscountPercentage"] = clamp_scratch_percentage(merged["scratchDiscountPercentage"])
    elif popup_type == "timer":
        for field in TIMER_BOUNDS:
            merged[field] = clamp_timer_field(field, merged[field])
    return merged


# ─────────────────────────── Storage form ───────────────────────────

def serialize_config(config: Dict[str, Any], popup_type: str) -> Dict[str, Any]:
    """
    Column values for a full replace of a stored popup. Every type-specific
    column is written; the ones that do not belong to ``popup_type`` are None.
    """
    merged = merge_config(config, popup_type)
    columns: Dict[str, Any] = {}
    for field, kind in FIELD_KINDS.items():
        if field not in merged:
            columns[column_for(field)] = None
        elif kind == PLAIN:
            columns[column_for(field)] = merged[field]
        else:
            columns[column_for(field)] = json.dumps(merged[field])
    return columns


def deserialize_row(row: Any) -> Dict[str, Any]:
    """Complete config for a stored popup row, with JSON fields parsed."""
    stored = {field: getattr(row, column_for(field)) for field in FIELD_KINDS}
    return merge_config(stored, row.type)
