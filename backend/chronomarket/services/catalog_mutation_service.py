from __future__ import annotations

import logging
from typing import Any

from flask import current_app, has_app_context

from chronomarket.extensions import db
from chronomarket.models import Listing
from chronomarket.models.listing import LISTING_STATUSES

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "title",
    "description",
    "brand",
    "model",
    "reference",
    "movement",
    "condition",
    "gender",
    "year",
    "price_minor_units",
    "location",
    "box_papers",
    "image_url",
)


class InvalidListingStatus(ValueError):
    def __init__(self, status: str):
        self.status = str(status or "")
        super().__init__(f"Unknown listing status '{self.status}'")


def invalidate_catalog_search_cache(*, reason: str = "", listing_id: int | None = None) -> int:
    """Clear every cached catalog search result. Safe outside an app context."""
    if not has_app_context():
        return 0
    cache = current_app.extensions.get("search_cache")
    if cache is None:
        return 0
    removed = cache.invalidate()
    logger.info("catalog_search_cache_invalidated reason=%s listing_id=%s removed=%s", reason or "-", listing_id, removed)
    return removed


def _apply_fields(listing: Listing, fields: dict[str, Any]) -> None:
    for name, value in fields.items():
        if name not in _EDITABLE_FIELDS:
            raise ValueError(f"Field '{name}' cannot be set on a listing")
        setattr(listing, name, value)


def _normalize_status(status: str) -> str:
    value = str(status or "").strip().upper()
    if value not in LISTING_STATUSES:
        raise InvalidListingStatus(status)
    return value


def create_listing(*, seller_id: int, status: str | None = None, **fields: Any) -> Listing:
    listing = Listing(seller_id=int(seller_id))
    _apply_fields(listing, fields)
    if status is not None:
        listing.status = _normalize_status(status)
    db.session.add(listing)
    db.session.commit()
    invalidate_catalog_search_cache(reason="create", listing_id=listing.id)
    return listing


def update_listing(listing: Listing, **fields: Any) -> Listing:
    _apply_fields(listing, fields)
    db.session.commit()
    invalidate_catalog_search_cache(reason="update", listing_id=listing.id)
    return listing


def set_listing_status(listing: Listing, status: str) -> Listing:
    listing.status = _normalize_status(status)
    db.session.commit()
    invalidate_catalog_search_cache(reason=f"status:{listing.status.lower()}", listing_id=listing.id)
    return listing


def delete_listing(listing: Listing) -> None:
    listing_id = listing.id
    db.session.delete(listing)
    db.session.commit()
    invalidate_catalog_search_cache(reason="delete", listing_id=listing_id)
