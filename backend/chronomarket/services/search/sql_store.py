from __future__ import annotations

import re
import threading
from typing import Any, Callable, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import ColumnProperty, RelationshipProperty, aliased, load_only, selectinload

from chronomarket.extensions import db
from chronomarket.models import Listing, User
from chronomarket.services.search.compiler import public_listings
from chronomarket.services.search.predicate import (
    OP_EQ,
    OP_ICONTAINS,
    OP_IN,
    OP_RANGE,
    And,
    Comparison,
    Or,
    Predicate,
)
from chronomarket.services.search.sorting import ASC, NULLS_FIRST, NULLS_LAST, OrderDirective
from chronomarket.services.search.store import ListingStore, UnknownFieldError

_SQLITE_MISSING_COLUMN = re.compile(r"no such column:\s*([\w.]+)", re.IGNORECASE)
_PG_MISSING_COLUMN = re.compile(r'column\s+"?([\w.]+)"?\s+does not exist', re.IGNORECASE)

_SELLER_CARD_COLUMNS = ("name", "location_city", "location_country", "is_verified")


def _dialect() -> str:
    try:
        return (db.engine.dialect.name or "").lower()
    except Exception:
        return ""


def missing_column_from_error(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    message = str(orig if orig is not None else exc)
    pgcode = str(getattr(orig, "pgcode", "") or "")
    match = _PG_MISSING_COLUMN.search(message) or _SQLITE_MISSING_COLUMN.search(message)
    if match:
        return match.group(1)
    if pgcode == "42703":
        return "unknown"
    return None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlListingStore(ListingStore):
    """Runs search predicates against the SQLAlchemy models.

    Fields are dotted attribute paths starting at ``Listing``; relationship
    hops compile to ``EXISTS`` via ``has()`` in filters and to outer joins in
    ORDER BY. A field that is not mapped, or whose column is missing from the
    live table, raises ``UnknownFieldError`` before any SQL is sent.
    """

    def __init__(self, session=None):
        self._session = session
        self._columns: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @property
    def supports_parallel_reads(self) -> bool:
        # SQLite shares one connection per in-memory database; keep reads serial.
        return self._session is None and _dialect() not in ("", "sqlite")

    def _table_columns(self, table_name: str) -> set[str]:
        with self._lock:
            cached = self._columns.get(table_name)
        if cached is not None:
            return cached
        # Inspector failures propagate and are not cached.
        cols = {str(c.get("name") or "") for c in sa.inspect(db.engine).get_columns(table_name)}
        with self._lock:
            self._columns[table_name] = cols
        return cols

    def _resolve(self, path: str) -> tuple[list, Any]:
        model = Listing
        relations = []
        parts = str(path or "").split(".")
        for name in parts[:-1]:
            attr = getattr(model, name, None)
            prop = getattr(attr, "property", None)
            if not isinstance(prop, RelationshipProperty):
                raise UnknownFieldError(path)
            relations.append(attr)
            model = prop.mapper.class_
        column = getattr(model, parts[-1], None)
        prop = getattr(column, "property", None)
        if not isinstance(prop, ColumnProperty):
            raise UnknownFieldError(path)
        column_name = prop.columns[0].name
        if column_name not in self._table_columns(model.__tablename__):
            raise UnknownFieldError(f"{model.__tablename__}.{column_name}")
        return relations, column

    @staticmethod
    def _leaf_clause(column, node: Comparison):
        if node.op == OP_EQ:
            if node.value is None or isinstance(node.value, bool):
                return column.is_(node.value)
            return column == node.value
        if node.op == OP_ICONTAINS:
            return column.ilike(f"%{_escape_like(str(node.value))}%", escape="\\")
        if node.op == OP_IN:
            return column.in_(list(node.value))
        if node.op == OP_RANGE:
            lower, upper = node.value
            parts = []
            if lower is not None:
                parts.append(column >= lower)
            if upper is not None:
                parts.append(column <= upper)
            return sa.and_(*parts) if parts else sa.true()
        raise ValueError(f"unsupported predicate operator: {node.op!r}")

    def to_clause(self, node: Predicate):
        if isinstance(node, And):
            if not node.children:
                return sa.true()
            return sa.and_(*(self.to_clause(child) for child in node.children))
        if isinstance(node, Or):
            if not node.children:
                return sa.false()
            return sa.or_(*(self.to_clause(child) for child in node.children))
        relations, column = self._resolve(node.field)
        clause = self._leaf_clause(column, node)
        for relation in reversed(relations):
            clause = relation.has(clause)
        return clause

    def _apply_order(self, query, order: Sequence[OrderDirective]):
        for directive in order:
            relations, column = self._resolve(directive.field)
            entity = Listing
            for relation in relations:
                target = aliased(relation.property.mapper.class_)
                query = query.outerjoin(getattr(entity, relation.key).of_type(target))
                entity = target
            if relations:
                column = getattr(entity, column.key)
            expr = column.asc() if directive.direction == ASC else column.desc()
            if directive.nulls == NULLS_LAST:
                expr = expr.nulls_last()
            elif directive.nulls == NULLS_FIRST:
                expr = expr.nulls_first()
            query = query.order_by(expr)
        return query

    def _seller_options(self):
        present = self._table_columns(User.__tablename__)
        cols = [getattr(User, name) for name in _SELLER_CARD_COLUMNS if name in present]
        return selectinload(Listing.seller).options(
            load_only(*cols),
            selectinload(User.authentication),
        )

    def _guarded(self, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except DBAPIError as exc:
            try:
                self.session.rollback()
            except Exception:
                pass
            missing = missing_column_from_error(exc)
            if missing:
                raise UnknownFieldError(missing) from exc
            raise

    def serialize(self, row: Listing) -> dict[str, Any]:
        payload = row.to_dict()
        seller = row.seller
        if seller is None:
            payload["seller"] = None
            return payload
        unloaded = sa.inspect(seller).unloaded
        authentication = seller.authentication
        payload["seller"] = {
            "id": int(seller.id),
            "name": seller.name or "",
            "location_city": seller.location_city or "",
            "location_country": seller.location_country or "",
            "is_verified": None if "is_verified" in unloaded else bool(seller.is_verified),
            "authentication_status": (authentication.status or "") if authentication is not None else "",
        }
        return payload

    def find_listings(self, predicate, order, *, offset, limit):
        def run():
            query = self.session.query(Listing).filter(self.to_clause(predicate))
            query = self._apply_order(query, order)
            rows = (
                query.options(self._seller_options())
                .offset(max(0, int(offset)))
                .limit(max(1, int(limit)))
                .all()
            )
            return [self.serialize(row) for row in rows]

        return self._guarded(run)

    def count_listings(self, predicate):
        def run():
            total = self.session.query(sa.func.count(Listing.id)).filter(self.to_clause(predicate)).scalar()
            return int(total or 0)

        return self._guarded(run)

    def distinct_brands(self, *, limit):
        return self.distinct_values(public_listings(), "brand", limit=limit)

    def value_counts(self, predicate, field):
        def run():
            _, column = self._resolve(field)
            rows = (
                self.session.query(column, sa.func.count(Listing.id))
                .filter(self.to_clause(predicate))
                .group_by(column)
                .all()
            )
            return {str(value): int(count or 0) for value, count in rows if value}

        return self._guarded(run)

    def distinct_values(self, predicate, field, *, limit):
        def run():
            _, column = self._resolve(field)
            rows = (
                self.session.query(column)
                .filter(self.to_clause(predicate))
                .filter(column.isnot(None))
                .distinct()
                .order_by(column.asc())
                .limit(max(1, int(limit)))
                .all()
            )
            return [str(value) for (value,) in rows if value]

        return self._guarded(run)
