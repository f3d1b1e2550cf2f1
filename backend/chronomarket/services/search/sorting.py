from __future__ import annotations

from dataclasses import dataclass

ASC = "asc"
DESC = "desc"
NULLS_FIRST = "first"
NULLS_LAST = "last"

SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"
SORT_PRICE_ASC = "price-asc"
SORT_PRICE_DESC = "price-desc"
SORT_YEAR_ASC = "year-asc"
SORT_YEAR_DESC = "year-desc"
SORT_RELEVANCE = "relevance"

DEFAULT_SORT = SORT_NEWEST


@dataclass(frozen=True)
class OrderDirective:
    field: str
    direction: str = DESC
    nulls: str | None = None

    def to_dict(self) -> dict:
        return {"field": self.field, "direction": self.direction, "nulls": self.nulls}


_NEWEST = OrderDirective("created_at", DESC)
# Final tie-breaker so paging is stable when the sort keys collide.
_ID_DESC = OrderDirective("id", DESC)

SORT_ORDERS: dict[str, tuple[OrderDirective, ...]] = {
    SORT_NEWEST: (_NEWEST, _ID_DESC),
    SORT_OLDEST: (OrderDirective("created_at", ASC), _ID_DESC),
    SORT_PRICE_ASC: (OrderDirective("price_minor_units", ASC), _ID_DESC),
    SORT_PRICE_DESC: (OrderDirective("price_minor_units", DESC), _ID_DESC),
    SORT_YEAR_ASC: (OrderDirective("year", ASC, NULLS_LAST), _NEWEST, _ID_DESC),
    SORT_YEAR_DESC: (OrderDirective("year", DESC, NULLS_LAST), _NEWEST, _ID_DESC),
    SORT_RELEVANCE: (OrderDirective("seller.is_verified", DESC, NULLS_LAST), _NEWEST, _ID_DESC),
}


def resolve_sort_key(raw: str | None) -> str:
    key = (raw or "").strip().lower().replace("_", "-")
    if key in SORT_ORDERS:
        return key
    return DEFAULT_SORT


def resolve_sort(raw: str | None) -> tuple[OrderDirective, ...]:
    """Map a sort key to its directives; unknown or missing keys sort newest first."""
    return SORT_ORDERS[resolve_sort_key(raw)]
