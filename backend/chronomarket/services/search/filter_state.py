"""Query-string normalization for catalog search.

Raw input is whatever the HTTP layer hands over: a mapping of string keys to a
string or a list of strings. ``normalize_query_params`` is the only place
where those loosely typed values are coerced; everything downstream works on
the immutable ``FilterState`` it returns.

Synonym keys are resolved in the order listed in ``FILTER_KEYS``. The first
key whose parsed value is non-empty wins, so ``cond`` beats ``condition`` and
``min`` beats ``minPrice`` when both are present.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping, Sequence, Union

RawQueryValue = Union[str, Sequence[str], None]
RawQueryInput = Mapping[str, RawQueryValue]

KIND_MULTI = "multi"
KIND_SINGLE = "single"
KIND_FLAG = "flag"

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class FilterKey:
    attr: str
    aliases: tuple[str, ...]
    kind: str

    @property
    def canonical_key(self) -> str:
        return self.aliases[0]


# Priority order inside each alias tuple is part of the public contract.
FILTER_KEYS: tuple[FilterKey, ...] = (
    FilterKey("q", ("q", "search"), KIND_SINGLE),
    FilterKey("brand", ("brand",), KIND_MULTI),
    FilterKey("model", ("model",), KIND_SINGLE),
    FilterKey("reference", ("reference",), KIND_SINGLE),
    FilterKey("movement", ("movement",), KIND_MULTI),
    FilterKey("price_min", ("min", "minPrice"), KIND_SINGLE),
    FilterKey("price_max", ("max", "maxPrice"), KIND_SINGLE),
    FilterKey("year", ("year",), KIND_SINGLE),
    FilterKey("year_from", ("yearFrom",), KIND_SINGLE),
    FilterKey("year_to", ("yearTo",), KIND_SINGLE),
    FilterKey("condition", ("cond", "condition"), KIND_MULTI),
    FilterKey("location", ("loc", "location"), KIND_SINGLE),
    FilterKey("gender", ("gender",), KIND_MULTI),
    FilterKey("box_papers", ("box",), KIND_MULTI),
    FilterKey("verified_only", ("verified",), KIND_FLAG),
    FilterKey("authenticated_only", ("authenticated",), KIND_FLAG),
    FilterKey("sort", ("sort",), KIND_SINGLE),
    FilterKey("page", ("page",), KIND_SINGLE),
)

FILTER_KEYS_BY_ATTR: dict[str, FilterKey] = {filter_key.attr: filter_key for filter_key in FILTER_KEYS}

# Keys that shape the result window rather than the result set.
PAGING_ATTRS = ("sort", "page")


@dataclass(frozen=True)
class FilterState:
    """Canonical search intent. ``None`` always means "no constraint"."""

    q: str | None = None
    brand: tuple[str, ...] | None = None
    model: str | None = None
    reference: str | None = None
    movement: tuple[str, ...] | None = None
    price_min: str | None = None
    price_max: str | None = None
    year: str | None = None
    year_from: str | None = None
    year_to: str | None = None
    condition: tuple[str, ...] | None = None
    location: str | None = None
    gender: tuple[str, ...] | None = None
    box_papers: tuple[str, ...] | None = None
    verified_only: bool | None = None
    authenticated_only: bool | None = None
    sort: str | None = None
    page: str | None = None

    def present(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = value
        return out

    def to_dict(self) -> dict[str, Any]:
        """Present fields keyed by their canonical query key."""
        out: dict[str, Any] = {}
        for attr, value in self.present().items():
            key = FILTER_KEYS_BY_ATTR[attr].canonical_key
            out[key] = list(value) if isinstance(value, tuple) else value
        return out

    def cache_params(self) -> dict[str, Any]:
        """Order-insensitive view of the filters, without sort and page."""
        out: dict[str, Any] = {}
        for attr, value in self.present().items():
            if attr in PAGING_ATTRS:
                continue
            out[attr] = sorted(value) if isinstance(value, tuple) else value
        return out

    @property
    def is_empty(self) -> bool:
        return not any(attr not in PAGING_ATTRS for attr in self.present())


def raw_values(raw: RawQueryInput, key: str) -> list[str]:
    getlist = getattr(raw, "getlist", None)
    if callable(getlist):
        values = getlist(key)
    else:
        values = raw.get(key)
    if values is None:
        return []
    if isinstance(values, str):
        return [values]
    return [v for v in values if isinstance(v, str)]


def parse_multi_value(values: list[str]) -> tuple[str, ...]:
    """Split comma-joined entries, trim, drop blanks, keep first occurrence."""
    seen: list[str] = []
    for entry in values:
        for token in entry.split(","):
            token = token.strip()
            if token and token not in seen:
                seen.append(token)
    return tuple(seen)


def first_value(values: list[str]) -> str | None:
    for entry in values:
        trimmed = entry.strip()
        if trimmed:
            return trimmed
    return None


def parse_flag(values: list[str]) -> bool | None:
    token = first_value(values)
    if token is not None and token.lower() in _TRUTHY:
        return True
    return None


def resolve_key(raw: RawQueryInput, filter_key: FilterKey):
    """Parsed value of one filter concept, honouring alias priority."""
    for alias in filter_key.aliases:
        values = raw_values(raw, alias)
        if filter_key.kind == KIND_MULTI:
            parsed = parse_multi_value(values)
            if parsed:
                return parsed
        elif filter_key.kind == KIND_FLAG:
            if first_value(values) is not None:
                return parse_flag(values)
        else:
            parsed = first_value(values)
            if parsed is not None:
                return parsed
    return None


def normalize_query_params(raw: RawQueryInput | None) -> FilterState:
    if not raw:
        return FilterState()
    values: dict[str, Any] = {}
    for filter_key in FILTER_KEYS:
        resolved = resolve_key(raw, filter_key)
        if resolved is not None:
            values[filter_key.attr] = resolved
    return FilterState(**values)
