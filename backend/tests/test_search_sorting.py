from __future__ import annotations

import unittest

from chronomarket.services.search.sorting import (
    ASC,
    DESC,
    NULLS_LAST,
    SORT_ORDERS,
    OrderDirective,
    resolve_sort,
    resolve_sort_key,
)


class SortResolverTestCase(unittest.TestCase):
    def test_known_keys(self):
        self.assertEqual(resolve_sort("newest")[0], OrderDirective("created_at", DESC))
        self.assertEqual(resolve_sort("oldest")[0], OrderDirective("created_at", ASC))
        self.assertEqual(resolve_sort("price-asc")[0], OrderDirective("price_minor_units", ASC))
        self.assertEqual(resolve_sort("price-desc")[0], OrderDirective("price_minor_units", DESC))

    def test_year_sorts_push_missing_years_last_then_newest(self):
        for key, direction in (("year-asc", ASC), ("year-desc", DESC)):
            order = resolve_sort(key)
            self.assertEqual(order[0], OrderDirective("year", direction, NULLS_LAST))
            self.assertEqual(order[1], OrderDirective("created_at", DESC))

    def test_relevance_prefers_verified_sellers(self):
        order = resolve_sort("relevance")
        self.assertEqual(order[0], OrderDirective("seller.is_verified", DESC, NULLS_LAST))
        self.assertEqual(order[1], OrderDirective("created_at", DESC))

    def test_unknown_and_missing_keys_fall_back_to_newest(self):
        for raw in (None, "", "cheapest", "price"):
            self.assertEqual(resolve_sort(raw), SORT_ORDERS["newest"], raw)

    def test_key_spelling_is_forgiving(self):
        self.assertEqual(resolve_sort_key(" Price_Asc "), "price-asc")
        self.assertEqual(resolve_sort_key("YEAR-DESC"), "year-desc")

    def test_every_order_ends_with_id_tiebreaker(self):
        for key, order in SORT_ORDERS.items():
            self.assertEqual(order[-1], OrderDirective("id", DESC), key)


if __name__ == "__main__":
    unittest.main()
