"""PayArc client — all PayArc REST API calls.

Responsible for:
- Customers (create, attach a card token)
- Card tokenization
- Plans and subscriptions (create, cancel)
- Classifying responses: transport failures and HTTP >= 400 are raised as
  PayArcError subclasses carrying a human-readable message

Every request is form-encoded, carries the bearer access token for the
selected environment and is bounded by PAYARC_TIMEOUT (30s by default).
The client holds no state beyond its immutable PayArcSettings.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from urllib.parse import quote

import bleach
import requests

logger = logging.getLogger(__name__)

LIVE_ENDPOINT = "https://api.payarc.net/v1/"
TEST_ENDPOINT = "https://testapi.payarc.net/v1/"

# Fields never written to the debug log
REDACTED_FIELDS = {"card_number", "cvv", "exp_month", "exp_year"}

# Characters allowed in an email address sent to PayArc
_EMAIL_DISALLOWED = re.compile(r"[^A-Za-z0-9.!#$%&'*+/=?^_`{|}~@-]")


class PayArcError(Exception):
    """Base error for any failed PayArc call."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PayArcConnectionError(PayArcError):
    """No response from PayArc (DNS, TLS, timeout, ...)."""


class PayArcAPIError(PayArcError):
    """PayArc answered with an error status or an unusable body."""


@dataclass(frozen=True)
class PayArcSettings:
    """Immutable gateway settings, built once per call site from app config."""

    api_key: str
    webhook_secret: str = ""
    testmode: bool = True
    debug: bool = False
    enabled: bool = True
    title: str = "PayArc.Mid"
    description: str = ""
    transaction_type: str = "sale"
    timeout: int = 30

    @property
    def endpoint(self):
        return TEST_ENDPOINT if self.testmode else LIVE_ENDPOINT

    @classmethod
    def from_app_config(cls, config):
        """Build settings from a Flask config mapping.

        The access token is chosen by PAYARC_TESTMODE: test mode uses
        PAYARC_TEST_API_KEY, live mode uses PAYARC_API_KEY.
        """
        testmode = bool(config.get("PAYARC_TESTMODE", True))
        api_key = (
            config.get("PAYARC_TEST_API_KEY") if testmode
            else config.get("PAYARC_API_KEY")
        )
        return cls(
            api_key=api_key or "",
            webhook_secret=config.get("PAYARC_WEBHOOK_SECRET") or "",
            testmode=testmode,
            debug=bool(config.get("PAYARC_DEBUG", False)),
            enabled=bool(config.get("PAYARC_ENABLED", True)),
            title=config.get("PAYARC_TITLE", "PayArc.Mid"),
            description=config.get("PAYARC_DESCRIPTION", ""),
            transaction_type=config.get("PAYARC_TRANSACTION_TYPE", "sale"),
            timeout=int(config.get("PAYARC_TIMEOUT", 30)),
        )


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def to_minor_units(amount):
    """Convert a major-unit amount (dollars) to integer minor units (cents).

    Rounds half-up to the cent first so 19.99 -> 1999, 0.10 -> 10 and
    0.105 -> 11 regardless of float representation.
    """
    cents = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(cents * 100)


def sanitize_text(value):
    """Strip tags, line breaks and repeated whitespace from free text."""
    if value is None:
        return ""
    cleaned = bleach.clean(str(value), tags=[], strip=True)
    return re.sub(r"\s+", " ", cleaned).strip()


def sanitize_email(value):
    """Drop characters that cannot appear in an email address."""
    if value is None:
        return ""
    return _EMAIL_DISALLOWED.sub("", str(value).strip())


def _digits(value):
    """Keep only the digits of a card field (spaces and dashes are common)."""
    return re.sub(r"\D", "", str(value or ""))


def _redact(data):
    if not data:
        return data
    return {k: ("***" if k in REDACTED_FIELDS else v) for k, v in data.items()}


# ──────────────────────────────────────────────
# Client
# ──────────────────────────────────────────────

class PayArcClient:
    """Thin wrapper over the PayArc v1 REST API."""

    def __init__(self, settings):
        self.settings = settings

    @classmethod
    def from_app_config(cls, config):
        return cls(PayArcSettings.from_app_config(config))

    # --- Customers ---

    def create_customer(self, email, name, address=None):
        """Create a PayArc customer. Returns the customer ID."""
        data = {
            "name": sanitize_text(name),
            "email": sanitize_email(email),
        }
        if address:
            for field in ("address_1", "address_2", "city", "state",
                          "zip", "country", "phone"):
                data[field] = sanitize_text(address.get(field))
        response = self._request("POST", "customers", data)
        return self._extract_id(response, "customer")

    def tokenize_card(self, card_number, exp_month, exp_year, cvv):
        """Tokenize raw card data. Returns the single-use token ID.

        This is the only call that carries cardholder data; it is never
        written to the debug log.
        """
        response = self._request("POST", "tokens", {
            "card_source": "INTERNET",
            "card_number": _digits(card_number),
            "exp_month": int(_digits(exp_month) or 0),
            "exp_year": int(_digits(exp_year) or 0),
            "cvv": _digits(cvv),
            "authorize_card": 1,
        }, sensitive=True)
        return self._extract_id(response, "token")

    def attach_token(self, customer_id, token_id):
        """Attach a card token to a customer, making it the default card."""
        self._request("PATCH", f"customers/{quote(str(customer_id), safe='')}", {
            "token_id": sanitize_text(token_id),
        })

    # --- Plans & subscriptions ---

    def create_plan(self, amount, interval, name, plan_code):
        """Create a recurring plan. Returns the plan ID."""
        name = sanitize_text(name)
        response = self._request("POST", "plans", {
            "amount": to_minor_units(amount),
            "currency": "usd",
            "interval": sanitize_text(interval),
            "interval_count": 1,
            "name": name,
            "plan_code": sanitize_text(plan_code),
            "statement_descriptor": name[:25],
        })
        return self._extract_id(response, "plan")

    def create_subscription(self, customer_id, plan_id):
        """Subscribe a customer to a plan with automatic charging."""
        response = self._request("POST", "subscriptions", {
            "customer_id": sanitize_text(customer_id),
            "plan_id": sanitize_text(plan_id),
            "billing_type": 1,
        })
        return self._extract_id(response, "subscription")

    def cancel_subscription(self, subscription_id):
        """Cancel a PayArc subscription. Renewals stop on the PayArc side."""
        self._request(
            "POST", f"subscriptions/{quote(str(subscription_id), safe='')}/cancel"
        )

    # --- Transport ---

    def _request(self, method, path, data=None, sensitive=False):
        """Send one request and return the decoded JSON body.

        Raises PayArcConnectionError when no response arrives and
        PayArcAPIError on HTTP >= 400 or a non-JSON success body.
        """
        url = self.settings.endpoint + path
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/x-www-form-urlencoded",
        }

        try:
            resp = requests.request(
                method,
                url,
                headers=headers,
                data=data or None,
                timeout=self.settings.timeout,
            )
        except requests.exceptions.RequestException as e:
            message = f"Payment error: Unable to connect to PayArc API. {e}"
            logger.warning(f"PayArc API error: {method} {path}: {e}")
            raise PayArcConnectionError(message) from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            api_message = body.get("message") if isinstance(body, dict) else None
            message = f"Payment error: {api_message or 'Unknown error'}"
            logger.warning(
                f"PayArc API error: {method} {path} returned {resp.status_code}"
            )
            if self.settings.debug:
                logger.info(f"PayArc API error body: {resp.text}")
            raise PayArcAPIError(message, status_code=resp.status_code)

        if not isinstance(body, dict):
            raise PayArcAPIError(
                "Payment error: Invalid response from PayArc API.",
                status_code=resp.status_code,
            )

        if self.settings.debug:
            if sensitive:
                # Never echo cardholder data back into the log
                logged = f"token {(body.get('data') or {}).get('id')}"
            else:
                logged = resp.text
            logger.info(
                f"PayArc API request: {method} {url} {_redact(data)} | Response: {logged}"
            )

        return body

    @staticmethod
    def _extract_id(body, resource):
        data = body.get("data") if isinstance(body, dict) else None
        resource_id = data.get("id") if isinstance(data, dict) else None
        if not resource_id:
            raise PayArcAPIError(
                f"Payment error: PayArc did not return a {resource} ID."
            )
        return str(resource_id)
