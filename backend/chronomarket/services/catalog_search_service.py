from __future__ import annotations

import logging
from typing import Any

from flask import current_app, has_app_context

from chronomarket.services.search import parallel_queries_enabled
from chronomarket.services.search.compiler import (
    FIELD_BRAND,
    FIELD_CONDITION,
    FIELD_GENDER,
    FIELD_MODEL,
    FIELD_MOVEMENT,
    compile_filter_state,
    public_listings,
)
from chronomarket.services.search.executor import DegradingExecutor
from chronomarket.services.search.filter_state import FilterState, RawQueryInput, normalize_query_params
from chronomarket.services.search.paginator import (
    PageWindow,
    SearchResult,
    build_result,
    fetch_page,
    page_window,
    run_concurrently,
)
from chronomarket.services.search.predicate import all_of, icontains
from chronomarket.services.search.sorting import resolve_sort, resolve_sort_key
from chronomarket.services.search.sql_store import SqlListingStore
from chronomarket.services.search.store import ListingStore
from chronomarket.utils.cache_layer import SearchCache, build_cache_key

logger = logging.getLogger(__name__)

FACET_FIELDS = (FIELD_CONDITION, FIELD_MOVEMENT, FIELD_GENDER)
SUGGEST_KINDS = (FIELD_BRAND, FIELD_MODEL)
SUGGEST_LIMIT = 10
SUGGEST_MAX_QUERY_LENGTH = 50


def get_search_cache() -> SearchCache | None:
    if not has_app_context():
        return None
    return current_app.extensions.get("search_cache")


def search_cache_key(state: FilterState, window: PageWindow) -> str:
    params = state.cache_params()
    params.update(
        {
            "sort": resolve_sort_key(state.sort),
            "page": int(window.page),
            "page_size": int(window.page_size),
        }
    )
    return build_cache_key("catalog_search", params)


def run_search(
    state: FilterState,
    *,
    store: ListingStore | None = None,
    page_size: int | None = None,
    facet_limit: int | None = None,
    parallel: bool | None = None,
) -> SearchResult:
    """Compile, execute (degrading once if needed) and page one search."""
    store = store or SqlListingStore()
    use_parallel = parallel_queries_enabled() if parallel is None else bool(parallel)
    window = page_window(state.page, page_size)

    def run(predicate, order, page: PageWindow):
        return fetch_page(store, predicate, order, page, facet_limit=facet_limit, parallel=use_parallel)

    outcome = DegradingExecutor(run).execute(compile_filter_state(state), resolve_sort(state.sort), window)
    return build_result(outcome.value, window, degraded=outcome.degraded)


def search_catalog(
    raw: RawQueryInput | None,
    *,
    store: ListingStore | None = None,
    cache: SearchCache | None = None,
    page_size: int | None = None,
) -> tuple[FilterState, dict[str, Any]]:
    """Normalize ``raw`` and return its state with the (cached) result payload."""
    state = normalize_query_params(raw)
    window = page_window(state.page, page_size)
    cache = cache if cache is not None else get_search_cache()

    def compute() -> dict[str, Any]:
        return run_search(state, store=store, page_size=window.page_size).to_dict()

    if cache is None:
        logger.debug("catalog_search_cache_unavailable page=%s", window.page)
        return state, compute()
    return state, cache.get_or_compute(search_cache_key(state, window), compute)


def facet_counts(raw: RawQueryInput | None, *, store: ListingStore | None = None) -> dict[str, Any]:
    """Per-value counts of condition, movement and gender within the active filter."""
    state = normalize_query_params(raw)
    store = store or SqlListingStore()
    parallel = parallel_queries_enabled() and bool(getattr(store, "supports_parallel_reads", True))

    def run(predicate, order, _page):
        counts = run_concurrently(
            [lambda field=field: store.value_counts(predicate, field) for field in FACET_FIELDS],
            parallel=parallel,
        )
        return dict(zip(FACET_FIELDS, counts))

    outcome = DegradingExecutor(run).execute(compile_filter_state(state), ())
    payload: dict[str, Any] = dict(outcome.value)
    payload["degraded"] = outcome.degraded
    return payload


def suggest_values(kind: str, q: str | None, *, brand: str | None = None, store: ListingStore | None = None) -> list[str]:
    kind = (kind or "").strip().lower()
    if kind not in SUGGEST_KINDS:
        raise ValueError("type must be 'brand' or 'model'")
    text = (q or "").strip()
    if not text or len(text) > SUGGEST_MAX_QUERY_LENGTH:
        raise ValueError(f"q must be between 1 and {SUGGEST_MAX_QUERY_LENGTH} characters")
    brand_text = (brand or "").strip()[:SUGGEST_MAX_QUERY_LENGTH]
    predicate = all_of(
        public_listings(),
        icontains(kind, text),
        icontains(FIELD_BRAND, brand_text) if kind == FIELD_MODEL and brand_text else None,
    )
    store = store or SqlListingStore()
    return store.distinct_values(predicate, kind, limit=SUGGEST_LIMIT)
