from __future__ import annotations

import unittest

from chronomarket.services.search.compiler import FIELD_SELLER_VERIFIED, compile_filter_state, public_listings
from chronomarket.services.search.executor import STATE_DONE, STATE_FAILED, STATE_FRESH, DegradingExecutor
from chronomarket.services.search.filter_state import normalize_query_params
from chronomarket.services.search.predicate import And, eq, references
from chronomarket.services.search.sorting import resolve_sort
from chronomarket.services.search.store import StoreError, UnknownFieldError


class _ScriptedRun:
    """Fails with the queued errors, then returns ``value``."""

    def __init__(self, errors=(), value="rows"):
        self.errors = list(errors)
        self.value = value
        self.calls = []

    def __call__(self, predicate, order, page_args):
        self.calls.append((predicate, order, page_args))
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class DegradingExecutorTestCase(unittest.TestCase):
    def test_success_is_not_degraded(self):
        run = _ScriptedRun()
        executor = DegradingExecutor(run)
        self.assertEqual(executor.state, STATE_FRESH)
        predicate = compile_filter_state(normalize_query_params({"brand": "Omega"}))
        outcome = executor.execute(predicate, resolve_sort(None), "page-1")
        self.assertEqual(outcome.value, "rows")
        self.assertFalse(outcome.degraded)
        self.assertEqual(outcome.predicate, predicate)
        self.assertEqual(len(run.calls), 1)
        self.assertEqual(run.calls[0][2], "page-1")
        self.assertEqual(executor.state, STATE_DONE)

    def test_missing_verification_column_retries_once_without_it(self):
        run = _ScriptedRun(errors=[UnknownFieldError("users.is_verified")])
        predicate = And((eq(FIELD_SELLER_VERIFIED, True),))
        outcome = DegradingExecutor(run).execute(predicate, ())
        self.assertTrue(outcome.degraded)
        self.assertEqual(outcome.predicate, And(()))
        self.assertEqual(len(run.calls), 2)
        self.assertEqual(run.calls[1][0], And(()))

    def test_degraded_retry_keeps_other_filters(self):
        run = _ScriptedRun(errors=[UnknownFieldError("users.is_verified")])
        predicate = compile_filter_state(normalize_query_params({"brand": "Rolex", "verified": "1"}))
        outcome = DegradingExecutor(run).execute(predicate, resolve_sort("newest"))
        self.assertTrue(outcome.degraded)
        self.assertFalse(references(outcome.predicate, FIELD_SELLER_VERIFIED))
        self.assertEqual(outcome.predicate.children[0], public_listings())
        self.assertEqual(len(outcome.predicate.children), 2)

    def test_relevance_ordering_is_dropped_on_retry(self):
        run = _ScriptedRun(errors=[UnknownFieldError("users.is_verified")])
        outcome = DegradingExecutor(run).execute(And((public_listings(),)), resolve_sort("relevance"))
        self.assertTrue(outcome.degraded)
        self.assertEqual([d.field for d in outcome.order], ["created_at", "id"])

    def test_second_failure_propagates(self):
        second = UnknownFieldError("users.is_verified")
        run = _ScriptedRun(errors=[UnknownFieldError("users.is_verified"), second])
        executor = DegradingExecutor(run)
        with self.assertRaises(UnknownFieldError) as ctx:
            executor.execute(And((eq(FIELD_SELLER_VERIFIED, True),)), ())
        self.assertIs(ctx.exception, second)
        self.assertEqual(len(run.calls), 2)
        self.assertEqual(executor.state, STATE_FAILED)

    def test_unrelated_errors_are_not_retried(self):
        boom = StoreError("connection reset")
        run = _ScriptedRun(errors=[boom])
        with self.assertRaises(StoreError) as ctx:
            DegradingExecutor(run).execute(And((eq(FIELD_SELLER_VERIFIED, True),)), ())
        self.assertIs(ctx.exception, boom)
        self.assertEqual(len(run.calls), 1)

    def test_unknown_field_with_nothing_to_strip_is_raised(self):
        error = UnknownFieldError("listings.brand")
        run = _ScriptedRun(errors=[error])
        executor = DegradingExecutor(run)
        with self.assertRaises(UnknownFieldError) as ctx:
            executor.execute(And((public_listings(),)), resolve_sort("newest"))
        self.assertIs(ctx.exception, error)
        self.assertEqual(len(run.calls), 1)
        self.assertEqual(executor.state, STATE_FAILED)

    def test_other_missing_column_is_raised_even_with_verification_filter(self):
        error = UnknownFieldError("listings.year")
        run = _ScriptedRun(errors=[error])
        executor = DegradingExecutor(run)
        with self.assertRaises(UnknownFieldError) as ctx:
            executor.execute(And((eq(FIELD_SELLER_VERIFIED, True),)), resolve_sort("relevance"))
        self.assertIs(ctx.exception, error)
        self.assertEqual(len(run.calls), 1)
        self.assertEqual(executor.state, STATE_FAILED)

    def test_reported_verification_column_names(self):
        executor = DegradingExecutor(_ScriptedRun())
        for name in ("seller.is_verified", "users.is_verified", "users_1.is_verified", "is_verified", "unknown"):
            self.assertTrue(executor.covers(name), name)
        for name in ("listings.year", "users.location_city", "is_verified_at"):
            self.assertFalse(executor.covers(name), name)


if __name__ == "__main__":
    unittest.main()
