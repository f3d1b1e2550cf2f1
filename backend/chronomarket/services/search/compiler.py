from __future__ import annotations

import re

from chronomarket.models.listing import STATUS_APPROVED
from chronomarket.models.user import AUTHENTICATION_APPROVED
from chronomarket.services.search.filter_state import FilterState
from chronomarket.services.search.predicate import (
    And,
    Predicate,
    all_of,
    any_of,
    between,
    eq,
    icontains,
    references,
)

FIELD_STATUS = "status"
FIELD_TITLE = "title"
FIELD_BRAND = "brand"
FIELD_MODEL = "model"
FIELD_REFERENCE = "reference"
FIELD_MOVEMENT = "movement"
FIELD_CONDITION = "condition"
FIELD_GENDER = "gender"
FIELD_YEAR = "year"
FIELD_PRICE = "price_minor_units"
FIELD_LOCATION = "location"
FIELD_BOX_PAPERS = "box_papers"
FIELD_SELLER_CITY = "seller.location_city"
FIELD_SELLER_COUNTRY = "seller.location_country"
FIELD_SELLER_VERIFIED = "seller.is_verified"
FIELD_SELLER_AUTHENTICATION = "seller.authentication.status"

# Prices arrive in whole euros and are stored in cents.
PRICE_SCALE = 100
# price_minor_units is a 32-bit column on Postgres.
PRICE_MAX_EUROS = (2**31 - 1) // PRICE_SCALE
YEAR_MIN = 1
YEAR_MAX = 9999
MAX_INT_DIGITS = 18

CONDITION_GRADES = ("New", "Like New", "Excellent", "Very Good", "Good", "Fair")
GENDERS = ("MALE", "FEMALE", "UNISEX")

_CONDITION_LOOKUP = {grade.casefold(): grade for grade in CONDITION_GRADES}
_LEADING_INT = re.compile(r"^[+-]?\d+")

_HAS_BOX = icontains(FIELD_BOX_PAPERS, "box")
_HAS_PAPERS = icontains(FIELD_BOX_PAPERS, "pap")

BOX_PAPERS_RULES: dict[str, tuple[Predicate, ...]] = {
    "box": (_HAS_BOX,),
    "papers": (_HAS_PAPERS,),
    "both": (all_of(_HAS_BOX, _HAS_PAPERS),),
    # Null and empty string are matched separately.
    "none": (eq(FIELD_BOX_PAPERS, None), eq(FIELD_BOX_PAPERS, "")),
}


def parse_int(raw: str | None, *, minimum: int | None = None, maximum: int | None = None) -> int | None:
    """Leading-integer parse; anything unparseable or outside ``[minimum, maximum]`` is ``None``."""
    if raw is None:
        return None
    match = _LEADING_INT.match(str(raw).strip())
    if not match:
        return None
    token = match.group(0)
    if len(token.lstrip("+-")) > MAX_INT_DIGITS:
        return None
    try:
        value = int(token)
    except ValueError:
        return None
    if minimum is not None and value < minimum:
        return None
    if maximum is not None and value > maximum:
        return None
    return value


def public_listings() -> Predicate:
    return eq(FIELD_STATUS, STATUS_APPROVED)


def _text_query(state: FilterState) -> Predicate | None:
    if not state.q:
        return None
    return any_of(
        icontains(FIELD_TITLE, state.q),
        icontains(FIELD_MODEL, state.q),
        icontains(FIELD_REFERENCE, state.q),
    )


def _brand(state: FilterState) -> Predicate | None:
    if not state.brand:
        return None
    return any_of(*(icontains(FIELD_BRAND, value) for value in state.brand))


def _contains(field: str, value: str | None) -> Predicate | None:
    if not value:
        return None
    return icontains(field, value)


def _price(state: FilterState) -> Predicate | None:
    low = parse_int(state.price_min, minimum=0, maximum=PRICE_MAX_EUROS)
    high = parse_int(state.price_max, minimum=0, maximum=PRICE_MAX_EUROS)
    return between(
        FIELD_PRICE,
        low * PRICE_SCALE if low is not None else None,
        high * PRICE_SCALE if high is not None else None,
    )


def _year(state: FilterState) -> Predicate | None:
    if state.year is not None:
        exact = parse_int(state.year, minimum=YEAR_MIN, maximum=YEAR_MAX)
        # An exact year shadows the range even when it fails to parse.
        return eq(FIELD_YEAR, exact) if exact is not None else None
    return between(
        FIELD_YEAR,
        parse_int(state.year_from, minimum=YEAR_MIN, maximum=YEAR_MAX),
        parse_int(state.year_to, minimum=YEAR_MIN, maximum=YEAR_MAX),
    )


def _movement(state: FilterState) -> Predicate | None:
    if not state.movement:
        return None
    return any_of(*(eq(FIELD_MOVEMENT, value) for value in state.movement))


def _condition(state: FilterState) -> Predicate | None:
    grades: list[str] = []
    for value in state.condition or ():
        grade = _CONDITION_LOOKUP.get(value.strip().casefold())
        if grade and grade not in grades:
            grades.append(grade)
    return any_of(*(eq(FIELD_CONDITION, grade) for grade in grades))


def _location(state: FilterState) -> Predicate | None:
    if not state.location:
        return None
    return any_of(
        icontains(FIELD_LOCATION, state.location),
        icontains(FIELD_SELLER_CITY, state.location),
        icontains(FIELD_SELLER_COUNTRY, state.location),
    )


def _gender(state: FilterState) -> Predicate | None:
    values: list[str] = []
    for value in state.gender or ():
        upper = value.strip().upper()
        if upper in GENDERS and upper not in values:
            values.append(upper)
    return any_of(*(eq(FIELD_GENDER, value) for value in values))


def _box_papers(state: FilterState) -> Predicate | None:
    fragments: list[Predicate] = []
    for token in state.box_papers or ():
        fragments.extend(BOX_PAPERS_RULES.get(token.strip().lower(), ()))
    return any_of(*fragments)


def _verified(state: FilterState) -> Predicate | None:
    if not state.verified_only:
        return None
    return eq(FIELD_SELLER_VERIFIED, True)


def _authenticated(state: FilterState) -> Predicate | None:
    if not state.authenticated_only:
        return None
    return eq(FIELD_SELLER_AUTHENTICATION, AUTHENTICATION_APPROVED)


_RULES = (
    _text_query,
    _brand,
    lambda s: _contains(FIELD_MODEL, s.model),
    lambda s: _contains(FIELD_REFERENCE, s.reference),
    _price,
    _year,
    _movement,
    _condition,
    _location,
    _gender,
    _box_papers,
    _verified,
    _authenticated,
)


def compile_filter_state(state: FilterState) -> And:
    """Build the listing predicate for ``state``.

    The result is always an AND whose first conjunct restricts to approved
    listings; each supplied filter adds one conjunct. Malformed values add
    nothing.
    """
    return all_of(public_listings(), *(rule(state) for rule in _RULES))


def is_seller_verification_clause(node: Predicate) -> bool:
    return references(node, FIELD_SELLER_VERIFIED)
