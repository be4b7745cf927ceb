"""Tests for the PayArc checkout flow.

Covers:
- Successful checkout: customer, token, attach, order pending, redirect
- Customer linkage reused across checkouts
- Card validation failures (no PayArc calls, no mutation)
- Processor failures at each step (failure recorded, earlier steps kept)
- Disabled gateway, already-paid orders
- Login and ownership enforcement on the checkout routes
"""

import pytest
import requests

from payarc_mid.extensions import db
from payarc_mid.models.meta import EntityMeta
from payarc_mid.models.order import Order
from payarc_mid.services.checkout_service import (
    GATEWAY_ID,
    CheckoutError,
    validate_card_fields,
)
from payarc_mid.services.linkage_service import CUSTOMER_KEY, get_linkage

TEST_CARD = {
    "payarc_card_number": "4012000098765439",
    "payarc_exp_month": "12",
    "payarc_exp_year": "2025",
    "payarc_cvv": "999",
}


def _checkout_url(order_id):
    return f"/orders/{order_id}/checkout"


def _checkout(client, order_id, card=None):
    return client.post(_checkout_url(order_id), data=card or TEST_CARD)


class TestValidateCardFields:

    def test_valid_card(self):
        fields = validate_card_fields({
            "card_number": "4012 0000 9876 5439",
            "exp_month": "12",
            "exp_year": "2025",
            "cvv": "999",
        })
        assert fields["card_number"] == "4012000098765439"

    def test_missing_field(self):
        with pytest.raises(CheckoutError, match="All card fields are required."):
            validate_card_fields({"card_number": "4012000098765439", "exp_month": "12",
                                  "exp_year": "2025", "cvv": ""})

    def test_bad_month(self):
        with pytest.raises(CheckoutError, match="expiration month"):
            validate_card_fields({"card_number": "4012000098765439", "exp_month": "13",
                                  "exp_year": "2025", "cvv": "999"})

    def test_two_digit_year(self):
        with pytest.raises(CheckoutError, match="expiration year"):
            validate_card_fields({"card_number": "4012000098765439", "exp_month": "12",
                                  "exp_year": "25", "cvv": "999"})


class TestCheckoutSuccess:

    def test_first_checkout(self, client, login, seed_data, payarc_api):
        login()
        order_id = seed_data["order_id"]

        resp = _checkout(client, order_id)

        assert resp.status_code == 302
        assert resp.location.endswith(f"/orders/{order_id}/pay")

        assert len(payarc_api.calls_to("POST", "customers")) == 1
        assert len(payarc_api.calls_to("POST", "tokens")) == 1
        assert len(payarc_api.calls_to("PATCH", "customers/cus_1")) == 1
        assert len(payarc_api.calls) == 3
        assert payarc_api.calls_to("PATCH", "customers/cus_1")[0][2] == {"token_id": "tok_2"}

        order = db.session.get(Order, order_id)
        assert order.status == "pending"
        assert order.payment_method == GATEWAY_ID
        assert order.failure_reason is None
        assert get_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY) == "cus_1"

    def test_customer_built_from_billing_profile(self, client, login, seed_data, payarc_api):
        login()
        _checkout(client, seed_data["order_id"])

        data = payarc_api.calls_to("POST", "customers")[0][2]
        assert data["name"] == "Jane Buyer"
        assert data["email"] == "buyer@test.com"
        assert data["city"] == "Austin"
        assert data["zip"] == "78701"
        assert data["phone"] == "555-0100"

    def test_existing_customer_is_reused(self, client, login, seed_data, payarc_api):
        login()
        _checkout(client, seed_data["order_id"])

        # Second order for the same buyer
        second = Order(user_id=seed_data["buyer_id"], total=seed_data["order"].total)
        db.session.add(second)
        db.session.commit()

        resp = _checkout(client, second.id)

        assert resp.status_code == 302
        assert len(payarc_api.calls_to("POST", "customers")) == 1
        assert len(payarc_api.calls_to("POST", "tokens")) == 2
        assert len(payarc_api.calls_to("PATCH", "customers/cus_1")) == 2

    def test_pay_page_after_checkout(self, client, login, seed_data, payarc_api):
        login()
        _checkout(client, seed_data["order_id"])

        resp = client.get(f"/orders/{seed_data['order_id']}/pay")
        assert resp.status_code == 200
        assert b"pending" in resp.data


class TestCheckoutValidation:

    def test_invalid_card_makes_no_calls(self, client, login, seed_data, payarc_api):
        login()
        card = dict(TEST_CARD, payarc_cvv="")

        resp = _checkout(client, seed_data["order_id"], card)

        assert resp.status_code == 422
        assert b"All card fields are required." in resp.data
        assert payarc_api.calls == []
        order = db.session.get(Order, seed_data["order_id"])
        assert order.status == "pending"
        assert order.payment_method is None

    def test_card_number_not_echoed(self, client, login, seed_data, payarc_api):
        login()
        # Not the test-mode hint card, which the form prints on its own
        card = dict(TEST_CARD, payarc_card_number="4111111111111111", payarc_exp_month="13")

        resp = _checkout(client, seed_data["order_id"], card)

        assert resp.status_code == 422
        assert b"4111111111111111" not in resp.data


class TestCheckoutFailures:

    def test_customer_create_failure(self, client, login, seed_data, payarc_api):
        login()
        payarc_api.fail("customers", status=422, message="Email is invalid")

        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 422
        assert b"Failed to create PayArc customer." in resp.data
        assert payarc_api.calls_to("POST", "tokens") == []
        assert EntityMeta.query.count() == 0
        order = db.session.get(Order, seed_data["order_id"])
        assert order.failure_reason.startswith("Failed to create PayArc customer.")

    def test_tokenize_failure_keeps_customer(self, client, login, seed_data, payarc_api):
        login()
        payarc_api.fail("tokens", status=402, message="Card declined")

        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 422
        assert b"Failed to tokenize card. Payment error: Card declined" in resp.data
        assert get_linkage("user", seed_data["buyer_id"], CUSTOMER_KEY) == "cus_1"
        order = db.session.get(Order, seed_data["order_id"])
        assert order.failure_reason == "Failed to tokenize card. Payment error: Card declined"
        assert order.payment_method is None

    def test_attach_failure(self, client, login, seed_data, payarc_api):
        login()
        payarc_api.fail("customers/cus_1", status=500, message=None)

        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 422
        assert b"Failed to attach card to customer." in resp.data
        order = db.session.get(Order, seed_data["order_id"])
        assert order.failure_reason.startswith("Failed to attach card to customer.")

    def test_retry_after_failure_succeeds(self, client, login, seed_data, payarc_api):
        login()
        payarc_api.fail("tokens", exc=requests.ConnectionError("reset"))
        _checkout(client, seed_data["order_id"])

        payarc_api.failures.clear()
        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 302
        assert len(payarc_api.calls_to("POST", "customers")) == 1
        order = db.session.get(Order, seed_data["order_id"])
        assert order.failure_reason is None
        assert order.payment_method == GATEWAY_ID

    def test_failure_note_is_admin_only(self, client, login, seed_data, payarc_api):
        login()
        payarc_api.fail("tokens", status=402, message="Card declined")
        _checkout(client, seed_data["order_id"])

        order = db.session.get(Order, seed_data["order_id"])
        notes = order.notes.all()
        assert any("PayArc checkout failed" in n.body for n in notes)
        assert not any(n.is_customer_note for n in notes)


class TestCheckoutGuards:

    def test_disabled_gateway(self, app, client, login, seed_data, payarc_api, monkeypatch):
        monkeypatch.setitem(app.config, "PAYARC_ENABLED", False)
        login()

        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 422
        assert b"This payment method is currently unavailable." in resp.data
        assert payarc_api.calls == []

    def test_paid_order_redirects_to_pay(self, client, login, seed_data, payarc_api):
        seed_data["order"].status = "processing"
        db.session.commit()
        login()

        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 302
        assert resp.location.endswith(f"/orders/{seed_data['order_id']}/pay")
        assert payarc_api.calls == []

    def test_checkout_form_shows_test_mode_notice(self, client, login, seed_data):
        login()
        resp = client.get(_checkout_url(seed_data["order_id"]))

        assert resp.status_code == 200
        assert b"TEST MODE ENABLED" in resp.data
        assert b"payarc_card_number" in resp.data

    def test_no_test_notice_in_live_mode(self, app, client, login, seed_data, monkeypatch):
        monkeypatch.setitem(app.config, "PAYARC_TESTMODE", False)
        login()

        resp = client.get(_checkout_url(seed_data["order_id"]))

        assert b"TEST MODE ENABLED" not in resp.data


class TestCheckoutAccess:

    def test_requires_login(self, client, seed_data, payarc_api):
        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 302
        assert "/auth/login" in resp.location
        assert payarc_api.calls == []

    def test_other_buyer_forbidden(self, client, login, seed_data, payarc_api):
        login("other@test.com", "otherpass123")

        resp = _checkout(client, seed_data["order_id"])

        assert resp.status_code == 403
        assert payarc_api.calls == []

    def test_unknown_order(self, client, login, seed_data):
        login()
        resp = client.get(_checkout_url("does-not-exist"))
        assert resp.status_code == 404
