from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 1000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def search_page_size() -> int:
    return _env_int("SEARCH_PAGE_SIZE", 24, minimum=1, maximum=100)


def facet_brand_limit() -> int:
    return _env_int("SEARCH_FACET_BRAND_LIMIT", 12, minimum=1, maximum=100)


def parallel_queries_enabled() -> bool:
    return _env_bool("SEARCH_PARALLEL_QUERIES", True)


def search_cache_enabled() -> bool:
    return _env_bool("SEARCH_CACHE_ENABLED", True)


def search_cache_ttl_seconds() -> int:
    return _env_int("SEARCH_CACHE_TTL_SECONDS", 300, minimum=1, maximum=86400)
