from __future__ import annotations

from urllib.parse import urlencode

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import BadRequest

from chronomarket.services.catalog_search_service import facet_counts, search_catalog, suggest_values
from chronomarket.services.search.active_filters import active_filters, remove_filter_value
from chronomarket.utils.observability import note_search

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")


def _chips_with_remove_links(state) -> list[dict]:
    chips = []
    for chip in active_filters(state):
        remaining = remove_filter_value(request.args, chip["key"], chip.get("remove_value"))
        chips.append({**chip, "remove_query": urlencode(remaining, doseq=True)})
    return chips


@listings_bp.get("")
def search_listings():
    state, payload = search_catalog(request.args)
    note_search(
        endpoint="search",
        degraded=bool(payload.get("degraded")),
        total=payload.get("total"),
        filters=len(state.cache_params()),
    )
    body = {"ok": True}
    body.update(payload)
    body["filters"] = state.to_dict()
    body["active_filters"] = _chips_with_remove_links(state)
    return jsonify(body), 200


@listings_bp.get("/facets")
def listing_facets():
    payload = facet_counts(request.args)
    note_search(endpoint="facets", degraded=bool(payload.get("degraded")))
    response = jsonify({"ok": True, **payload})
    response.headers["Cache-Control"] = "public, s-maxage=60, stale-while-revalidate=120"
    return response, 200


@listings_bp.get("/suggest")
def listing_suggestions():
    try:
        values = suggest_values(
            request.args.get("type") or "",
            request.args.get("q"),
            brand=request.args.get("brand"),
        )
    except ValueError as exc:
        raise BadRequest(str(exc))
    return jsonify({"ok": True, "items": values}), 200
