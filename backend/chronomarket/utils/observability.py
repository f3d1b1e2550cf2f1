"""Request ids, the JSON access log and optional Sentry reporting.

Search endpoints attach their outcome with ``note_search`` so the access line
says whether the request degraded and how many listings matched. Query
values are never logged; free-text values are also scrubbed from Sentry
events because shoppers type names and places into them.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, urlencode

from flask import g, has_request_context, request

access_logger = logging.getLogger("chronomarket.access")

# Query keys whose values are typed by the shopper.
FREE_TEXT_KEYS = frozenset({"q", "search", "loc", "location", "model", "reference"})
_REDACTED = "[REDACTED]"
_SENSITIVE_HEADERS = ("authorization", "x-api-key", "cookie", "set-cookie")


def _hash_ip(ip: str, salt: str) -> str:
    raw = f"{salt}:{ip or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def get_request_id() -> str:
    return getattr(g, "request_id", "")


def note_search(*, endpoint: str, degraded: bool, total: int | None = None, filters: int = 0) -> None:
    """Record the search outcome of the current request for the access log."""
    if not has_request_context():
        return
    g.search_outcome = {
        "endpoint": endpoint,
        "degraded": bool(degraded),
        "total": None if total is None else int(total),
        "filters": int(filters),
    }


def search_outcome() -> dict[str, Any] | None:
    return getattr(g, "search_outcome", None)


def access_log_payload(response, *, started: float | None, salt: str) -> dict[str, Any]:
    latency_ms = None
    if started is not None:
        latency_ms = round((time.perf_counter() - float(started)) * 1000.0, 2)
    payload: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "request_id": get_request_id(),
        "path": request.path,
        "method": request.method,
        "status": int(response.status_code),
        "latency_ms": latency_ms,
        "query_keys": sorted(set(request.args.keys())),
        "ip_hash": _hash_ip(request.headers.get("X-Forwarded-For", request.remote_addr or ""), salt),
        "user_agent": (request.user_agent.string or "")[:180],
    }
    outcome = search_outcome()
    if outcome is not None:
        payload["search"] = dict(outcome)
    return payload


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        try:
            traces_rate = float((os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip())
        except ValueError:
            traces_rate = 0.0

        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("SENTRY_ENVIRONMENT") or os.getenv("CHRONOMARKET_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=max(0.0, min(traces_rate, 1.0)),
            before_send=_before_send_scrub,
        )
        app.logger.info("sentry_enabled env=%s", os.getenv("CHRONOMARKET_ENV") or "dev")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _scrub_query_string(query: Any) -> Any:
    if isinstance(query, str):
        pairs = parse_qsl(query, keep_blank_values=True)
        return urlencode([(k, _REDACTED if k.lower() in FREE_TEXT_KEYS else v) for k, v in pairs])
    if isinstance(query, (list, tuple)):
        return [
            (pair[0], _REDACTED) if len(pair) == 2 and str(pair[0]).lower() in FREE_TEXT_KEYS else pair
            for pair in query
        ]
    return query


def _before_send_scrub(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers.keys()):
        if key.lower() in _SENSITIVE_HEADERS:
            headers[key] = _REDACTED
    req["headers"] = headers
    if req.get("query_string"):
        req["query_string"] = _scrub_query_string(req["query_string"])
    event["request"] = req
    return event


def install_request_observers(app) -> None:
    salt = str(app.config.get("SECRET_KEY") or "chronomarket")

    @app.before_request
    def _request_observer_begin():
        rid = (request.headers.get("X-Request-Id") or "").strip()
        g.request_id = rid or uuid.uuid4().hex
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        if not getattr(g, "request_id", ""):
            g.request_id = uuid.uuid4().hex
        response.headers["X-Request-Id"] = g.request_id
        payload = access_log_payload(response, started=getattr(g, "request_started_at", None), salt=salt)
        outcome = payload.get("search") or {}
        level = logging.WARNING if outcome.get("degraded") else logging.INFO
        access_logger.log(level, json.dumps(payload))
        return response
