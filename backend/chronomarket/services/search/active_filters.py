from __future__ import annotations

from typing import Any

from chronomarket.services.search.filter_state import (
    FILTER_KEYS_BY_ATTR,
    KIND_MULTI,
    FilterState,
    RawQueryInput,
    raw_values,
    resolve_key,
)

CURRENCY = "EUR"

# Chip key -> filter attributes it stands for.
CHIP_GROUPS: dict[str, tuple[str, ...]] = {
    "q": ("q",),
    "brand": ("brand",),
    "model": ("model",),
    "reference": ("reference",),
    "movement": ("movement",),
    "price": ("price_min", "price_max"),
    "year": ("year", "year_from", "year_to"),
    "condition": ("condition",),
    "location": ("location",),
    "gender": ("gender",),
    "box": ("box_papers",),
    "verified": ("verified_only",),
    "authenticated": ("authenticated_only",),
}

CHIP_LABELS = {
    "q": "Search",
    "brand": "Brand",
    "model": "Model",
    "reference": "Reference",
    "movement": "Movement",
    "price": "Price",
    "year": "Year",
    "condition": "Condition",
    "location": "Location",
    "gender": "Gender",
    "box": "Box & papers",
    "verified": "Verified sellers",
    "authenticated": "Authenticated sellers",
}


def _bounds_label(low: str | None, high: str | None, suffix: str = "") -> str:
    tail = f" {suffix}" if suffix else ""
    if low and high:
        return f"{low} - {high}{tail}"
    if low:
        return f"From {low}{tail}"
    return f"Up to {high}{tail}"


def _chip(key: str, value: str, remove_value: str | None = None) -> dict[str, Any]:
    return {"key": key, "label": CHIP_LABELS[key], "value": value, "remove_value": remove_value}


def active_filters(state: FilterState) -> list[dict[str, Any]]:
    """Chips for the filters in ``state``; multi-valued filters give one chip per value."""
    chips: list[dict[str, Any]] = []
    for key, attrs in CHIP_GROUPS.items():
        if key == "price":
            if state.price_min or state.price_max:
                chips.append(_chip(key, _bounds_label(state.price_min, state.price_max, CURRENCY)))
            continue
        if key == "year":
            if state.year:
                chips.append(_chip(key, state.year))
            elif state.year_from or state.year_to:
                chips.append(_chip(key, _bounds_label(state.year_from, state.year_to)))
            continue
        value = getattr(state, attrs[0])
        if value is None:
            continue
        if isinstance(value, tuple):
            chips.extend(_chip(key, entry, entry) for entry in value)
        elif isinstance(value, bool):
            chips.append(_chip(key, "Yes"))
        else:
            chips.append(_chip(key, value))
    return chips


def _as_lists(raw: RawQueryInput) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for key in list(raw.keys()):
        values = raw_values(raw, key)
        if values:
            out[str(key)] = list(values)
    return out


def remove_filter_value(raw: RawQueryInput, key: str, value: str | None = None) -> dict[str, list[str]]:
    """Raw query with one chip removed.

    For a multi-valued filter and a ``value``, only that value goes; the rest
    are written back under the canonical key. Otherwise every synonym key of
    the chip's filters is dropped. The page is always reset.
    """
    out = _as_lists(raw)
    attrs = CHIP_GROUPS.get(key)
    if attrs is None:
        out.pop(key, None)
        out.pop("page", None)
        return out
    for attr in attrs:
        filter_key = FILTER_KEYS_BY_ATTR[attr]
        remaining: tuple[str, ...] = ()
        if value is not None and filter_key.kind == KIND_MULTI:
            current = resolve_key(raw, filter_key) or ()
            remaining = tuple(entry for entry in current if entry != value)
        for alias in filter_key.aliases:
            out.pop(alias, None)
        if remaining:
            out[filter_key.canonical_key] = list(remaining)
    out.pop("page", None)
    return out
