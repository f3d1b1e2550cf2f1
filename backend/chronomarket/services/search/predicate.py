"""Storage-agnostic boolean expression trees over listing fields.

Nodes are frozen dataclasses holding plain values only, so a tree can be
compared, logged, serialized and rewritten without a database at hand. Field
names are dotted paths; ``seller.is_verified`` reaches through the seller
relation.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Union

OP_EQ = "eq"
OP_ICONTAINS = "icontains"
OP_IN = "in"
OP_RANGE = "range"

OPERATORS = (OP_EQ, OP_ICONTAINS, OP_IN, OP_RANGE)


@dataclass(frozen=True)
class Comparison:
    field: str
    op: str
    value: Any = None


@dataclass(frozen=True)
class And:
    children: tuple = ()


@dataclass(frozen=True)
class Or:
    children: tuple = ()


Predicate = Union[Comparison, And, Or]

MATCH_ALL = And(())


def eq(field: str, value: Any) -> Comparison:
    """Equality; ``None`` compares as IS NULL."""
    return Comparison(field, OP_EQ, value)


def icontains(field: str, text: str) -> Comparison:
    return Comparison(field, OP_ICONTAINS, str(text))


def one_of(field: str, values: Iterable[Any]) -> Comparison:
    return Comparison(field, OP_IN, tuple(values))


def between(field: str, minimum: int | None = None, maximum: int | None = None) -> Comparison | None:
    if minimum is None and maximum is None:
        return None
    return Comparison(field, OP_RANGE, (minimum, maximum))


def all_of(*parts: Predicate | None) -> And:
    return And(tuple(p for p in parts if p is not None))


def any_of(*parts: Predicate | None) -> Or | None:
    children = tuple(p for p in parts if p is not None)
    if not children:
        return None
    return Or(children)


def fields_referenced(node: Predicate) -> set[str]:
    if isinstance(node, Comparison):
        return {node.field}
    out: set[str] = set()
    for child in node.children:
        out |= fields_referenced(child)
    return out


def references(node: Predicate, field_prefix: str) -> bool:
    for name in fields_referenced(node):
        if name == field_prefix or name.startswith(field_prefix + "."):
            return True
    return False


def without_conjuncts(node: Predicate, drop: Callable[[Predicate], bool]) -> Predicate:
    """Remove AND-conjuncts for which ``drop`` holds.

    Only AND lists are walked (nested ANDs included). Any other child,
    an OR included, is kept or dropped as a whole. An AND left without
    children means "no constraint".
    """
    if isinstance(node, And):
        kept = []
        for child in node.children:
            if isinstance(child, And):
                kept.append(without_conjuncts(child, drop))
            elif not drop(child):
                kept.append(child)
        return And(tuple(kept))
    if drop(node):
        return MATCH_ALL
    return node


def is_match_all(node: Predicate) -> bool:
    return isinstance(node, And) and all(is_match_all(c) for c in node.children)


def to_dict(node: Predicate) -> dict:
    if isinstance(node, Comparison):
        value = list(node.value) if isinstance(node.value, tuple) else node.value
        return {"field": node.field, "op": node.op, "value": value}
    kind = "and" if isinstance(node, And) else "or"
    return {kind: [to_dict(c) for c in node.children]}


def from_dict(payload: dict) -> Predicate:
    if "and" in payload:
        return And(tuple(from_dict(c) for c in payload["and"]))
    if "or" in payload:
        return Or(tuple(from_dict(c) for c in payload["or"]))
    op = payload.get("op")
    if op not in OPERATORS:
        raise ValueError(f"unknown predicate operator: {op!r}")
    value = payload.get("value")
    if op in (OP_IN, OP_RANGE) and isinstance(value, list):
        value = tuple(value)
    return Comparison(str(payload.get("field") or ""), op, value)


def _describe_comparison(node: Comparison) -> str:
    if node.op == OP_EQ:
        if node.value is None:
            return f"{node.field} IS NULL"
        return f"{node.field}={node.value}"
    if node.op == OP_ICONTAINS:
        return f"{node.field}~{node.value}"
    if node.op == OP_IN:
        return f"{node.field} IN ({', '.join(str(v) for v in node.value)})"
    lower, upper = node.value
    parts = []
    if lower is not None:
        parts.append(f"{node.field}>={lower}")
    if upper is not None:
        parts.append(f"{node.field}<={upper}")
    return " AND ".join(parts)


def describe(node: Predicate, *, parent: str | None = None) -> str:
    """Human readable rendering, e.g. ``status=APPROVED AND (brand~Rolex OR brand~Omega)``."""
    if isinstance(node, Comparison):
        text = _describe_comparison(node)
        if parent == "or" and " AND " in text:
            return f"({text})"
        return text
    if isinstance(node, And):
        if not node.children:
            return "TRUE"
        text = " AND ".join(describe(c, parent="and") for c in node.children)
    else:
        if not node.children:
            return "FALSE"
        text = " OR ".join(describe(c, parent="or") for c in node.children)
    if parent is not None and len(node.children) > 1:
        return f"({text})"
    return text
