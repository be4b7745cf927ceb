"""Tests for PayArc linkages stored as entity metadata.

Covers:
- get/set by key, last write wins
- Reverse lookup by PayArc ID
- get_or_create: creates once, reuses afterwards
- Insert race: the committed winner is returned, the loser is discarded
- Processor errors from create_fn store nothing
"""

import pytest

from payarc_mid.extensions import db
from payarc_mid.models.meta import EntityMeta
from payarc_mid.models.user import User
from payarc_mid.services.linkage_service import (
    CUSTOMER_KEY,
    SUBSCRIPTION_KEY,
    find_entity_id,
    get_linkage,
    get_or_create,
    set_linkage,
)
from payarc_mid.services.payarc_client import PayArcAPIError


class TestGetSet:

    def test_missing_linkage_is_none(self, seed_data):
        assert get_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY) is None

    def test_set_then_get(self, seed_data):
        set_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY, "cus_1")
        db.session.commit()
        assert get_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY) == "cus_1"

    def test_last_write_wins(self, seed_data):
        set_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY, "cus_1")
        set_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY, "cus_2")
        db.session.commit()

        assert get_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY) == "cus_2"
        assert EntityMeta.query.count() == 1

    def test_keys_are_scoped_by_entity_type(self, seed_data):
        set_linkage("user", "42", CUSTOMER_KEY, "cus_1")
        db.session.commit()
        assert get_linkage("product", "42", CUSTOMER_KEY) is None


class TestFindEntity:

    def test_reverse_lookup(self, seed_data):
        set_linkage("subscription", seed_data["subscription_id"], SUBSCRIPTION_KEY, "sub_9")
        db.session.commit()

        found = find_entity_id("subscription", SUBSCRIPTION_KEY, "sub_9")
        assert found == seed_data["subscription_id"]

    def test_unknown_value(self, seed_data):
        assert find_entity_id("subscription", SUBSCRIPTION_KEY, "sub_missing") is None

    def test_empty_value_never_matches(self, seed_data):
        assert find_entity_id("subscription", SUBSCRIPTION_KEY, "") is None
        assert find_entity_id("subscription", SUBSCRIPTION_KEY, None) is None


class TestGetOrCreate:

    def test_creates_and_persists(self, seed_data):
        calls = []

        def _create():
            calls.append(1)
            return "cus_new"

        value, created = get_or_create(
            "user", seed_data["buyer_id"], CUSTOMER_KEY, _create, owner_model=User
        )

        assert (value, created) == ("cus_new", True)
        assert len(calls) == 1
        assert get_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY) == "cus_new"

    def test_existing_linkage_skips_create(self, seed_data):
        set_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY, "cus_old")
        db.session.commit()

        def _create():
            pytest.fail("create_fn must not run when a linkage exists")

        value, created = get_or_create(
            "user", seed_data["buyer_id"], CUSTOMER_KEY, _create, owner_model=User
        )
        assert (value, created) == ("cus_old", False)

    def test_race_returns_winner(self, seed_data):
        buyer_id = seed_data["buyer_id"]

        def _create_and_lose():
            # A concurrent checkout commits its customer first
            db.session.add(EntityMeta(
                entity_type="user",
                entity_id=buyer_id,
                meta_key=CUSTOMER_KEY,
                meta_value="cus_winner",
            ))
            db.session.commit()
            return "cus_loser"

        value, created = get_or_create("user", buyer_id, CUSTOMER_KEY, _create_and_lose)

        assert (value, created) == ("cus_winner", False)
        assert get_linkage("user", buyer_id, CUSTOMER_KEY) == "cus_winner"
        assert EntityMeta.query.filter_by(meta_key=CUSTOMER_KEY).count() == 1

    def test_create_error_stores_nothing(self, seed_data):
        def _create():
            raise PayArcAPIError("Payment error: Declined", 422)

        with pytest.raises(PayArcAPIError):
            get_or_create("user", seed_data["buyer_id"], CUSTOMER_KEY, _create)

        assert EntityMeta.query.count() == 0
