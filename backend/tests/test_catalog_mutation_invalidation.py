from __future__ import annotations

import os
import unittest

from chronomarket import create_app
from chronomarket.extensions import db
from chronomarket.models import Listing, User
from chronomarket.services.catalog_mutation_service import (
    InvalidListingStatus,
    create_listing,
    delete_listing,
    set_listing_status,
    update_listing,
)
from chronomarket.utils.cache_layer import _reset_cache_state_for_tests


class CatalogMutationInvalidationTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        cls._prev_cache_url = os.getenv("CACHE_REDIS_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        os.environ["CACHE_REDIS_URL"] = ""
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        for key, value in (
            ("SQLALCHEMY_DATABASE_URI", cls._prev_db_uri),
            ("DATABASE_URL", cls._prev_db_url),
            ("CACHE_REDIS_URL", cls._prev_cache_url),
        ):
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def setUp(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.create_all()
            seller = User(name="Seller", email="seller@chronomarket.test", location_city="Geneva")
            db.session.add(seller)
            db.session.commit()
            self.seller_id = int(seller.id)
            listing = Listing(
                seller_id=self.seller_id,
                title="Zenith El Primero",
                brand="Zenith",
                price_minor_units=650000,
                status="APPROVED",
            )
            db.session.add(listing)
            db.session.commit()
            self.listing_id = int(listing.id)
        self.app.extensions["search_cache"].invalidate()
        _reset_cache_state_for_tests()

    def _total(self, query: str = "") -> int:
        res = self.client.get(f"/api/listings?{query}")
        self.assertEqual(res.status_code, 200)
        return int(res.get_json()["total"])

    def test_direct_writes_are_hidden_by_the_cache(self):
        self.assertEqual(self._total(), 1)
        with self.app.app_context():
            db.session.add(Listing(seller_id=self.seller_id, title="Grand Seiko", brand="Grand Seiko", status="APPROVED"))
            db.session.commit()
        self.assertEqual(self._total(), 1)

    def test_create_invalidates(self):
        self.assertEqual(self._total(), 1)
        with self.app.app_context():
            create_listing(seller_id=self.seller_id, status="approved", title="IWC Mark XVIII", brand="IWC")
        self.assertEqual(self._total(), 2)

    def test_update_invalidates(self):
        self.assertEqual(self._total("max=6000"), 0)
        with self.app.app_context():
            update_listing(db.session.get(Listing, self.listing_id), price_minor_units=590000)
        self.assertEqual(self._total("max=6000"), 1)

    def test_status_change_invalidates(self):
        self.assertEqual(self._total(), 1)
        with self.app.app_context():
            set_listing_status(db.session.get(Listing, self.listing_id), "SOLD")
        self.assertEqual(self._total(), 0)

    def test_delete_invalidates(self):
        self.assertEqual(self._total(), 1)
        with self.app.app_context():
            delete_listing(db.session.get(Listing, self.listing_id))
        self.assertEqual(self._total(), 0)

    def test_rejects_unknown_status_and_fields(self):
        with self.app.app_context():
            listing = db.session.get(Listing, self.listing_id)
            with self.assertRaises(InvalidListingStatus):
                set_listing_status(listing, "ARCHIVED")
            with self.assertRaises(ValueError):
                update_listing(listing, status="DRAFT")


if __name__ == "__main__":
    unittest.main()
