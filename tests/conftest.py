"""Fixtures for the gateway tests.

- app: one "testing" app per session (in-memory SQLite, CSRF and limits off)
- db_session: fresh schema for every test, inside one app context
- client: test client sharing that app context
- seed_data: buyer, subscription product, subscription and its parent order
- payarc_api: fake PayArc API patched over requests.request
- login: logs the seeded buyer in through /auth/login
"""

import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.parse import urlparse

import pytest

from werkzeug.security import generate_password_hash

from payarc_mid import create_app
from payarc_mid.extensions import db as _db
from payarc_mid.models.user import User
from payarc_mid.models.product import Product
from payarc_mid.models.order import Order
from payarc_mid.models.subscription import Subscription

WEBHOOK_SECRET = "whsec_payarc_test"


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed a buyer with a $19.99/month subscription awaiting checkout.

    Returns a dict with all created objects (and plain IDs) for tests.
    """
    buyer = User(
        email="buyer@test.com",
        password_hash=generate_password_hash("buyerpass123"),
        full_name="Jane Buyer",
    )
    other = User(
        email="other@test.com",
        password_hash=generate_password_hash("otherpass123"),
        full_name="Other Buyer",
    )
    _db.session.add_all([buyer, other])
    _db.session.flush()

    product = Product(
        name="Premium Coffee Club",
        price=Decimal("19.99"),
        is_subscription=True,
        billing_interval="month",
    )
    _db.session.add(product)
    _db.session.flush()

    subscription = Subscription(
        user_id=buyer.id,
        product_id=product.id,
        total=Decimal("19.99"),
        billing_interval="month",
    )
    _db.session.add(subscription)
    _db.session.flush()

    order = Order(
        user_id=buyer.id,
        subscription_id=subscription.id,
        total=Decimal("19.99"),
        billing_first_name="Jane",
        billing_last_name="Buyer",
        billing_email="buyer@test.com",
        billing_phone="555-0100",
        billing_address_1="1 Main St",
        billing_city="Austin",
        billing_state="TX",
        billing_postcode="78701",
        billing_country="US",
    )
    _db.session.add(order)
    _db.session.commit()

    return {
        "buyer": buyer,
        "buyer_id": buyer.id,
        "other_id": other.id,
        "product": product,
        "product_id": product.id,
        "subscription": subscription,
        "subscription_id": subscription.id,
        "order": order,
        "order_id": order.id,
    }


@pytest.fixture
def login(client, seed_data):
    """Log in as the seeded buyer (or another user) through the login form."""

    def _login(email="buyer@test.com", password="buyerpass123"):
        return client.post(
            "/auth/login",
            data={"email": email, "password": password},
            follow_redirects=False,
        )

    return _login


class FakePayArc:
    """In-memory stand-in for the PayArc REST API.

    Records every call as (method, path, data) and answers with
    {"data": {"id": ...}}. Individual paths can be made to fail with
    fail(path, status, message) or to raise a transport error with
    fail(path, exc=requests.ConnectionError(...)).
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self._counter = 0

    def fail(self, path, status=422, message="Declined", exc=None):
        self.failures[path] = (status, message, exc)

    def calls_to(self, method, path):
        return [c for c in self.calls if c[0] == method and c[1] == path]

    def __call__(self, method, url, headers=None, data=None, timeout=None):
        path = urlparse(url).path
        prefix = "/v1/"
        path = path[len(prefix):] if path.startswith(prefix) else path
        self.calls.append((method, path, dict(data or {})))
        self.last_headers = headers
        self.last_timeout = timeout

        if path in self.failures:
            status, message, exc = self.failures[path]
            if exc is not None:
                raise exc
            return self._response(status, {"message": message})

        self._counter += 1
        resource = path.split("/")[0]
        prefixes = {
            "customers": "cus",
            "tokens": "tok",
            "plans": "plan",
            "subscriptions": "sub",
        }
        new_id = f"{prefixes.get(resource, 'obj')}_{self._counter}"
        if method == "PATCH" or path.endswith("/cancel"):
            return self._response(200, {"data": {"id": path.split("/")[1]}})
        return self._response(201, {"data": {"id": new_id, "object": resource}})

    @staticmethod
    def _response(status, body):
        resp = MagicMock()
        resp.status_code = status
        resp.json.return_value = body
        resp.text = json.dumps(body)
        return resp


@pytest.fixture
def payarc_api():
    """Patch requests.request in the PayArc client with a FakePayArc."""
    fake = FakePayArc()
    with patch(
        "payarc_mid.services.payarc_client.requests.request", side_effect=fake
    ):
        yield fake


def sign(body, secret=WEBHOOK_SECRET):
    """Hex HMAC-SHA256 signature as PayArc sends it."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@pytest.fixture
def post_webhook(client):
    """POST a signed webhook payload; pass signature= to override."""

    def _post(payload, signature=None, raw=None):
        body = raw if raw is not None else json.dumps(payload)
        sig = sign(body) if signature is None else signature
        headers = {"x-payarc-signature": sig} if sig else {}
        return client.post(
            "/payarc-mid/v1/webhook",
            data=body,
            content_type="application/json",
            headers=headers,
        )

    return _post


