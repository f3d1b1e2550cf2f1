from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import redis

logger = logging.getLogger(__name__)

CATALOG_SEARCH_TAG = "catalog-search"

_LOCK = threading.Lock()

_STATS = {
    "hits": 0,
    "misses": 0,
    "sets": 0,
    "deletes": 0,
    "invalidations": 0,
    "errors": 0,
}


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 86400) -> int:
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


def cache_ttl_seconds(env_name: str, default: int) -> int:
    return _env_int(env_name, default, minimum=1, maximum=86400)


def default_cache_ttl_seconds() -> int:
    return cache_ttl_seconds("DEFAULT_CACHE_TTL_SECONDS", 300)


def _cache_redis_url() -> str:
    return (os.getenv("CACHE_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()


def _bump_stat(name: str, delta: int = 1) -> None:
    with _LOCK:
        _STATS[name] = int(_STATS.get(name, 0) or 0) + int(delta)


def _stable_param_value(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
        except Exception:
            return str(value)
    if value is None:
        return ""
    return str(value)


def build_cache_key(scope: str, params: dict[str, Any] | None = None) -> str:
    safe_scope = str(scope or "default").strip().lower().replace(" ", "_")
    payload = params or {}
    parts: list[str] = []
    for key in sorted(payload.keys()):
        parts.append(f"{str(key)}={_stable_param_value(payload.get(key))}")
    joined = "&".join(parts)
    if len(joined) > 420:
        joined = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    return f"v1:{safe_scope}:{joined}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: str
    tag: str
    created_at: float
    expires_at: float


class MemoryCacheBackend:
    """Process-local entries with TTL and a tag index."""

    name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic, max_entries: int = 2048):
        self._clock = clock
        self._max_entries = max(1, int(max_entries))
        self._entries: dict[str, CacheEntry] = {}
        self._tags: dict[str, set[str]] = {}
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    def generation(self, tag: str) -> int:
        with self._lock:
            return int(self._generations.get(tag, 0))

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            keys = self._tags.get(entry.tag)
            if keys is not None:
                keys.discard(key)

    def entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def get(self, key: str, *, tag: str) -> str | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.tag != tag:
                return None
            if entry.expires_at <= now:
                self._drop(key)
                return None
            return entry.payload

    def set(self, key: str, payload: str, *, ttl_seconds: int, tag: str, generation: int) -> bool:
        now = self._clock()
        with self._lock:
            if int(self._generations.get(tag, 0)) != int(generation):
                return False
            if key not in self._entries and len(self._entries) >= self._max_entries:
                oldest = min(self._entries.values(), key=lambda e: e.created_at)
                self._drop(oldest.key)
            self._drop(key)
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                tag=tag,
                created_at=now,
                expires_at=now + float(ttl_seconds),
            )
            self._tags.setdefault(tag, set()).add(key)
            return True

    def invalidate_tag(self, tag: str) -> int:
        with self._lock:
            self._generations[tag] = int(self._generations.get(tag, 0)) + 1
            keys = list(self._tags.pop(tag, set()))
            for key in keys:
                self._entries.pop(key, None)
            return len(keys)


class RedisCacheBackend:
    """Redis entries namespaced by a per-tag generation counter.

    Invalidation increments the counter, which makes every older entry
    unreachable at once; the old generation's keys are then swept.
    """

    name = "redis"

    def __init__(self, client, *, prefix: str = "v1:cache:"):
        self.client = client
        self.prefix = str(prefix)

    def _generation_key(self, tag: str) -> str:
        return f"{self.prefix}gen:{tag}"

    def _entry_key(self, key: str, tag: str, generation: int) -> str:
        return f"{self.prefix}{tag}:{int(generation)}:{key}"

    def generation(self, tag: str) -> int:
        return int(self.client.get(self._generation_key(tag)) or 0)

    def get(self, key: str, *, tag: str) -> str | None:
        return self.client.get(self._entry_key(key, tag, self.generation(tag)))

    def set(self, key: str, payload: str, *, ttl_seconds: int, tag: str, generation: int) -> bool:
        if self.generation(tag) != int(generation):
            return False
        self.client.setex(self._entry_key(key, tag, generation), int(ttl_seconds), payload)
        return True

    def _delete_prefix(self, prefix: str, *, scan_count: int = 200) -> int:
        pattern = f"{prefix}*"
        total = 0
        cursor = 0
        while True:
            cursor, keys = self.client.scan(cursor=cursor, match=pattern, count=int(scan_count))
            if keys:
                total += int(self.client.delete(*keys) or 0)
            if cursor == 0:
                break
        return int(total)

    def invalidate_tag(self, tag: str) -> int:
        new_generation = int(self.client.incr(self._generation_key(tag)))
        return self._delete_prefix(f"{self.prefix}{tag}:{new_generation - 1}:")


class SearchCache:
    """Memoizes search payloads under one shared invalidation tag.

    Values are stored as JSON text so readers only ever see a complete
    entry. Identical concurrent misses in one process wait for a single
    computation; across processes duplicates are possible.
    """

    def __init__(self, backend, *, ttl_seconds: int | None = None, tag: str = CATALOG_SEARCH_TAG, enabled: bool = True):
        self.backend = backend
        self.ttl_seconds = int(ttl_seconds or default_cache_ttl_seconds())
        self.tag = str(tag)
        self.enabled = bool(enabled)
        self._flights: dict[str, list] = {}
        self._flights_lock = threading.Lock()

    def _read(self, key: str) -> dict | list | None:
        try:
            raw = self.backend.get(key, tag=self.tag)
        except Exception as exc:
            _bump_stat("errors")
            logger.warning("search_cache_read_failed key=%s err=%s", key, exc)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            _bump_stat("errors")
            return None

    def _board(self, key: str) -> threading.Lock:
        with self._flights_lock:
            flight = self._flights.setdefault(key, [threading.Lock(), 0])
            flight[1] += 1
            return flight[0]

    def _land(self, key: str) -> None:
        with self._flights_lock:
            flight = self._flights.get(key)
            if flight is None:
                return
            flight[1] -= 1
            if flight[1] <= 0:
                self._flights.pop(key, None)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        if not self.enabled:
            return compute()
        cached = self._read(key)
        if cached is not None:
            _bump_stat("hits")
            return cached
        lock = self._board(key)
        try:
            with lock:
                cached = self._read(key)
                if cached is not None:
                    _bump_stat("hits")
                    return cached
                _bump_stat("misses")
                try:
                    generation = self.backend.generation(self.tag)
                except Exception as exc:
                    _bump_stat("errors")
                    logger.warning("search_cache_generation_failed err=%s", exc)
                    generation = None
                payload = json.dumps(compute(), sort_keys=True, separators=(",", ":"), default=str)
                if generation is not None:
                    try:
                        if self.backend.set(key, payload, ttl_seconds=self.ttl_seconds, tag=self.tag, generation=generation):
                            _bump_stat("sets")
                    except Exception as exc:
                        _bump_stat("errors")
                        logger.warning("search_cache_write_failed key=%s err=%s", key, exc)
                return json.loads(payload)
        finally:
            self._land(key)

    def invalidate(self) -> int:
        try:
            removed = int(self.backend.invalidate_tag(self.tag) or 0)
        except Exception as exc:
            _bump_stat("errors")
            logger.warning("search_cache_invalidate_failed tag=%s err=%s", self.tag, exc)
            return 0
        _bump_stat("invalidations")
        if removed > 0:
            _bump_stat("deletes", removed)
        return removed


def _redis_client(url: str):
    client = redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=0.75,
        socket_connect_timeout=0.75,
        health_check_interval=30,
    )
    client.ping()
    return client


def build_search_cache(*, ttl_seconds: int | None = None, enabled: bool = True) -> SearchCache:
    url = _cache_redis_url()
    backend = None
    if url:
        try:
            backend = RedisCacheBackend(_redis_client(url))
        except Exception as exc:
            _bump_stat("errors")
            logger.warning("search_cache_redis_unavailable err=%s", exc)
    if backend is None:
        backend = MemoryCacheBackend()
    return SearchCache(backend, ttl_seconds=ttl_seconds, enabled=enabled)


def cache_stats(cache: SearchCache | None = None) -> dict:
    base = {
        "enabled": bool(cache is not None and cache.enabled),
        "backend": getattr(getattr(cache, "backend", None), "name", "none"),
        "url_configured": bool(_cache_redis_url()),
    }
    with _LOCK:
        base.update({name: int(_STATS.get(name, 0) or 0) for name in _STATS})
    return base


def _reset_cache_state_for_tests() -> None:
    with _LOCK:
        for key in _STATS:
            _STATS[key] = 0
