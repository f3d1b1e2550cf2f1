"""One-shot schema-mismatch recovery around a search run.

The seller verification column ships in a later migration than the rest of
the catalog schema. A database that has not caught up raises
``UnknownFieldError`` for any query touching it; the executor then strips the
verification conjuncts (and any ordering on that field) from the compiled
predicate and runs exactly one more time. A missing column other than the
verification one is raised as is, and nothing else is recovered.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Sequence, TypeVar

from chronomarket.services.search.compiler import FIELD_SELLER_VERIFIED
from chronomarket.services.search.predicate import Predicate, describe, references, without_conjuncts
from chronomarket.services.search.sorting import OrderDirective
from chronomarket.services.search.store import UnknownFieldError

logger = logging.getLogger(__name__)

STATE_FRESH = "fresh"
STATE_DEGRADING = "degrading"
STATE_DONE = "done"
STATE_FAILED = "failed"

T = TypeVar("T")


@dataclass(frozen=True)
class ExecutionOutcome(Generic[T]):
    value: T
    predicate: Predicate
    order: tuple
    degraded: bool = False


def _drop_field_from_order(order: Sequence[OrderDirective], field: str) -> tuple[OrderDirective, ...]:
    return tuple(
        d for d in order
        if not (d.field == field or d.field.startswith(field + "."))
    )


class DegradingExecutor:
    def __init__(
        self,
        run: Callable[[Predicate, tuple, Any], T],
        *,
        degradable_field: str = FIELD_SELLER_VERIFIED,
    ):
        self._run = run
        self.degradable_field = degradable_field
        self.state = STATE_FRESH

    def covers(self, missing: str | None) -> bool:
        """Whether a reported missing column can be the degradable field.

        Stores report the dotted path, the table column or the aliased SQL
        column, so only the final segment is compared. Postgres errors without
        a parseable name arrive as ``unknown``.
        """
        name = str(missing or "").strip().lower()
        if not name or name == "unknown":
            return True
        return name.rsplit(".", 1)[-1] == self.degradable_field.rsplit(".", 1)[-1]

    def degrade(self, predicate: Predicate, order: Sequence[OrderDirective]) -> tuple[Predicate, tuple]:
        field = self.degradable_field
        stripped = without_conjuncts(predicate, lambda node: references(node, field))
        return stripped, _drop_field_from_order(order, field)

    def execute(self, predicate: Predicate, order: Sequence[OrderDirective], page_args: Any = None) -> ExecutionOutcome[T]:
        order = tuple(order)
        self.state = STATE_FRESH
        try:
            value = self._run(predicate, order, page_args)
        except UnknownFieldError as exc:
            if not self.covers(exc.field):
                self.state = STATE_FAILED
                raise
            fallback_predicate, fallback_order = self.degrade(predicate, order)
            if fallback_predicate == predicate and fallback_order == order:
                self.state = STATE_FAILED
                raise
            self.state = STATE_DEGRADING
            logger.warning(
                "catalog_search_degraded field=%s predicate=%s",
                exc.field,
                describe(fallback_predicate),
            )
        except Exception:
            self.state = STATE_FAILED
            raise
        else:
            self.state = STATE_DONE
            return ExecutionOutcome(value=value, predicate=predicate, order=order, degraded=False)

        try:
            value = self._run(fallback_predicate, fallback_order, page_args)
        except Exception:
            self.state = STATE_FAILED
            raise
        self.state = STATE_DONE
        return ExecutionOutcome(value=value, predicate=fallback_predicate, order=fallback_order, degraded=True)
