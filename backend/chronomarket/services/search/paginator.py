from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from flask import current_app, has_app_context

from chronomarket.services.search import facet_brand_limit, search_page_size
from chronomarket.services.search.compiler import parse_int
from chronomarket.services.search.predicate import Predicate
from chronomarket.services.search.sorting import OrderDirective
from chronomarket.services.search.store import ListingStore

# Deeper pages are treated as malformed input.
MAX_PAGE = 100_000


@dataclass(frozen=True)
class PageWindow:
    page: int
    page_size: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class PageData:
    items: list
    total: int
    facet_brands: list


@dataclass
class SearchResult:
    items: list[dict[str, Any]]
    total: int
    total_pages: int
    facet_brands: list[str]
    page: int
    page_size: int
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": list(self.items),
            "total": int(self.total),
            "total_pages": int(self.total_pages),
            "facet_brands": list(self.facet_brands),
            "page": int(self.page),
            "page_size": int(self.page_size),
            "degraded": bool(self.degraded),
        }


def resolve_page(raw: str | int | None) -> int:
    """1-based page number; missing, non-numeric, < 1 and > MAX_PAGE all mean page 1."""
    if isinstance(raw, int):
        value = raw
    else:
        value = parse_int(raw)
    if value is None or value < 1 or value > MAX_PAGE:
        return 1
    return int(value)


def page_window(raw_page: str | int | None, page_size: int | None = None) -> PageWindow:
    size = int(page_size) if page_size else search_page_size()
    return PageWindow(page=resolve_page(raw_page), page_size=max(1, size))


def total_pages(total: int, page_size: int) -> int:
    return int(math.ceil(int(total) / float(page_size))) if total > 0 else 0


def _bind_app_context(call: Callable[[], Any]) -> Callable[[], Any]:
    if not has_app_context():
        return call
    app = current_app._get_current_object()

    def run():
        with app.app_context():
            return call()

    return run


def run_concurrently(calls: Sequence[Callable[[], Any]], *, parallel: bool = True) -> list[Any]:
    """Run independent reads together and wait for all of them.

    Results come back in call order. When any call failed, the first failure
    in call order is raised as-is once every call has finished.
    """
    if not parallel or len(calls) < 2:
        return [call() for call in calls]
    with ThreadPoolExecutor(max_workers=len(calls)) as executor:
        futures = [executor.submit(_bind_app_context(call)) for call in calls]
        wait(futures)
    return [future.result() for future in futures]


def fetch_page(
    store: ListingStore,
    predicate: Predicate,
    order: Sequence[OrderDirective],
    window: PageWindow,
    *,
    facet_limit: int | None = None,
    parallel: bool = True,
) -> PageData:
    limit = int(facet_limit or facet_brand_limit())
    items, total, brands = run_concurrently(
        [
            lambda: store.find_listings(predicate, order, offset=window.offset, limit=window.page_size),
            lambda: store.count_listings(predicate),
            lambda: store.distinct_brands(limit=limit),
        ],
        parallel=parallel and bool(getattr(store, "supports_parallel_reads", True)),
    )
    return PageData(items=list(items)[: window.page_size], total=int(total), facet_brands=list(brands))


def build_result(data: PageData, window: PageWindow, *, degraded: bool = False) -> SearchResult:
    return SearchResult(
        items=list(data.items),
        total=int(data.total),
        total_pages=total_pages(data.total, window.page_size),
        facet_brands=list(data.facet_brands),
        page=window.page,
        page_size=window.page_size,
        degraded=bool(degraded),
    )
