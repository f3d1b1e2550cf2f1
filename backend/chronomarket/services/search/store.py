from __future__ import annotations

from typing import Any, Sequence

from chronomarket.services.search.predicate import Predicate
from chronomarket.services.search.sorting import OrderDirective


class StoreError(RuntimeError):
    """Raised by listing stores for failures they recognise."""


class UnknownFieldError(StoreError):
    """A predicate or sort referenced a field the live schema does not have."""

    def __init__(self, field: str, message: str | None = None):
        safe_field = str(field or "").strip() or "unknown"
        self.field = safe_field
        super().__init__(message or f"Field '{safe_field}' does not exist in the current schema")


class ListingStore:
    """Read operations the search pipeline needs from storage."""

    # Whether find/count/facet reads may run on separate threads.
    supports_parallel_reads = True

    def find_listings(
        self,
        predicate: Predicate,
        order: Sequence[OrderDirective],
        *,
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def count_listings(self, predicate: Predicate) -> int:
        raise NotImplementedError

    def distinct_brands(self, *, limit: int) -> list[str]:
        """Distinct brands among publicly visible listings, ascending."""
        raise NotImplementedError

    def value_counts(self, predicate: Predicate, field: str) -> dict[str, int]:
        raise NotImplementedError

    def distinct_values(self, predicate: Predicate, field: str, *, limit: int) -> list[str]:
        raise NotImplementedError
