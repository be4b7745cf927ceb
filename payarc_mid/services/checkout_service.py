"""Checkout service — first-payment flow for the PayArc gateway.

process_payment() drives:
  1. card field validation (no network call, no mutation on failure)
  2. get-or-create the PayArc customer for the order's user
  3. card tokenization
  4. attaching the token to the customer
  5. marking the order pending

Each step is a hard gate. A failure raises CheckoutError with the
buyer-facing message; steps that already succeeded are kept (a created
customer is never rolled back, the attach can simply be retried).
"""

import logging

from flask import current_app, url_for

from payarc_mid.extensions import db
from payarc_mid.models.user import User
from payarc_mid.services.linkage_service import CUSTOMER_KEY, get_or_create
from payarc_mid.services.order_service import add_note, update_order_status
from payarc_mid.services.payarc_client import PayArcClient, PayArcError

logger = logging.getLogger(__name__)

GATEWAY_ID = "payarc_mid"

CARD_FIELDS = ("card_number", "exp_month", "exp_year", "cvv")


class CheckoutError(Exception):
    """Checkout failed; message is safe to show to the buyer."""

    def __init__(self, message, detail=None):
        super().__init__(message)
        self.message = message
        self.detail = detail  # processor message, if any


def validate_card_fields(card):
    """Validate raw card input.

    Returns a dict of stripped card fields.
    Raises CheckoutError if a field is missing or malformed.
    """
    fields = {name: str(card.get(name) or "").strip() for name in CARD_FIELDS}

    if not all(fields.values()):
        raise CheckoutError("All card fields are required.")

    number = fields["card_number"].replace(" ", "").replace("-", "")
    if not number.isdigit() or not 12 <= len(number) <= 19:
        raise CheckoutError("Please enter a valid card number.")

    if not fields["exp_month"].isdigit() or not 1 <= int(fields["exp_month"]) <= 12:
        raise CheckoutError("Please enter a valid expiration month (MM).")

    if not fields["exp_year"].isdigit() or len(fields["exp_year"]) != 4:
        raise CheckoutError("Please enter a valid expiration year (YYYY).")

    if not fields["cvv"].isdigit() or not 3 <= len(fields["cvv"]) <= 4:
        raise CheckoutError("Please enter a valid CVV.")

    fields["card_number"] = number
    return fields


def _fail(order, message, error):
    """Record a processor failure on the order and raise CheckoutError."""
    order.failure_reason = f"{message} {error.message}"[:500]
    add_note(order, f"PayArc checkout failed: {error.message}")
    db.session.commit()
    logger.warning(f"Checkout failed for order {order.id}: {message} ({error.message})")
    raise CheckoutError(message, detail=error.message) from error


def ensure_customer(client, order):
    """Return the PayArc customer ID for the order's user, creating it once."""

    def _create():
        return client.create_customer(
            order.billing_email or order.user.email,
            order.billing_name or order.user.full_name or "",
            order.billing_address,
        )

    customer_id, created = get_or_create(
        "user", order.user_id, CUSTOMER_KEY, _create, owner_model=User
    )
    if created:
        logger.info(f"Created PayArc customer {customer_id} for user {order.user_id}")
    return customer_id


def process_payment(order, card):
    """Run the PayArc checkout for an order.

    Args:
        order: The Order being paid.
        card: Mapping with card_number, exp_month, exp_year, cvv.

    Returns the URL of the order's payment page.
    Raises CheckoutError on any failure.
    """
    client = PayArcClient.from_app_config(current_app.config)
    if not client.settings.enabled:
        raise CheckoutError("This payment method is currently unavailable.")

    if order.is_paid:
        raise CheckoutError("This order has already been paid.")

    # --- 1. Validate ---
    fields = validate_card_fields(card)

    # --- 2. Customer ---
    try:
        customer_id = ensure_customer(client, order)
    except PayArcError as e:
        _fail(order, "Failed to create PayArc customer.", e)

    # --- 3. Tokenize ---
    try:
        token_id = client.tokenize_card(
            fields["card_number"],
            fields["exp_month"],
            fields["exp_year"],
            fields["cvv"],
        )
    except PayArcError as e:
        _fail(order, "Failed to tokenize card.", e)

    # --- 4. Attach ---
    try:
        client.attach_token(customer_id, token_id)
    except PayArcError as e:
        _fail(order, "Failed to attach card to customer.", e)

    # --- 5. Pending ---
    order.payment_method = GATEWAY_ID
    order.failure_reason = None
    if not update_order_status(order, "pending", "Awaiting PayArc payment."):
        add_note(order, "Awaiting PayArc payment.")
    db.session.commit()

    logger.info(f"Checkout complete for order {order.id}, awaiting payment")
    return url_for("orders.pay", order_id=order.id)
