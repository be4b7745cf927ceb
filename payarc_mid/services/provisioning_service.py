"""Provisioning service — local subscriptions to PayArc-managed billing.

Responsible for:
- Turning a paid parent order into a PayArc subscription (plan get-or-create,
  customer lookup, subscription get-or-create)
- Cancelling the PayArc subscription when the subscription is cancelled locally

Renewals are charged by PayArc, never re-triggered from here: once a
subscription is linked, provisioning is a no-op. Failures mark the local
subscription "failed" and are not retried automatically; re-drive with
`flask redrive-subscription`.
"""

import logging
import time

from flask import current_app

from payarc_mid.extensions import db
from payarc_mid.models.product import Product
from payarc_mid.models.subscription import Subscription
from payarc_mid.services.linkage_service import (
    CUSTOMER_KEY,
    PLAN_KEY,
    SUBSCRIPTION_KEY,
    get_linkage,
    get_or_create,
)
from payarc_mid.services.order_service import add_note, update_subscription_status
from payarc_mid.services.payarc_client import PayArcClient, PayArcError

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """A precondition for provisioning is not met."""


def _plan_code(product_id):
    """Plan code unique per product and creation time."""
    return f"plan_{product_id}_{int(time.time())}"


def _fail(subscription, note):
    update_subscription_status(subscription, "failed", note)
    db.session.commit()
    logger.warning(f"Provisioning failed for subscription {subscription.id}: {note}")


def ensure_plan(client, subscription):
    """Return the PayArc plan ID for the subscription's product, creating it once.

    Amount and interval are taken from the subscription at creation time;
    an existing plan is never modified.
    """
    product = subscription.product
    interval = subscription.billing_interval or "month"
    if interval not in Product.INTERVALS:
        raise ProvisioningError(f"Unsupported billing interval '{interval}'.")

    def _create():
        return client.create_plan(
            subscription.total,
            interval,
            product.name,
            _plan_code(product.id),
        )

    plan_id, created = get_or_create(
        "product", product.id, PLAN_KEY, _create, owner_model=Product
    )
    if created:
        logger.info(f"Created PayArc plan {plan_id} for product {product.id}")
    return plan_id


def process_subscription_payment(subscription, order=None):
    """Provision a PayArc subscription after the first successful payment.

    Args:
        subscription: The local Subscription.
        order: The paid order that triggered provisioning (informational).

    Returns the PayArc subscription ID, or None when provisioning failed.
    Never raises for processor errors.
    """
    # --- 1. Already linked: renewals belong to PayArc ---
    existing = get_linkage("subscription", subscription.id, SUBSCRIPTION_KEY)
    if existing:
        # Linked but the "active" commit never landed
        if subscription.status in ("pending", "failed"):
            update_subscription_status(
                subscription, "active", "PayArc subscription already linked."
            )
            db.session.commit()
        logger.info(
            f"Subscription {subscription.id} already linked to {existing}, skipping"
        )
        return existing

    client = PayArcClient.from_app_config(current_app.config)

    # --- 2. Plan ---
    try:
        plan_id = ensure_plan(client, subscription)
    except ProvisioningError as e:
        _fail(subscription, str(e))
        return None
    except PayArcError as e:
        _fail(subscription, f"Failed to create PayArc plan. {e.message}")
        return None

    # --- 3. Customer (must exist from checkout) ---
    customer_id = get_linkage("user", subscription.user_id, CUSTOMER_KEY)
    if not customer_id:
        _fail(subscription, "No PayArc customer linked to this user.")
        return None

    # --- 4. Subscription ---
    def _create():
        return client.create_subscription(customer_id, plan_id)

    try:
        payarc_subscription_id, created = get_or_create(
            "subscription",
            subscription.id,
            SUBSCRIPTION_KEY,
            _create,
            owner_model=Subscription,
        )
    except PayArcError as e:
        _fail(subscription, f"Failed to create PayArc subscription. {e.message}")
        return None

    if created:
        update_subscription_status(
            subscription, "active", "PayArc subscription created."
        )
        db.session.commit()
        source = f" from order {order.id}" if order is not None else ""
        logger.info(
            f"Provisioned PayArc subscription {payarc_subscription_id} "
            f"for subscription {subscription.id}{source}"
        )
    return payarc_subscription_id


def redrive_subscription(subscription):
    """Retry provisioning for a subscription left "failed".

    Raises:
        ProvisioningError: If the subscription is not in a retryable state.
    """
    if subscription.status not in ("failed", "pending"):
        raise ProvisioningError(
            f"Subscription {subscription.id} is {subscription.status}; "
            "only failed or pending subscriptions can be re-driven."
        )
    update_subscription_status(subscription, "pending", "Provisioning re-driven.")
    db.session.commit()
    return process_subscription_payment(subscription, subscription.parent_order)


def cancel_subscription(subscription):
    """Cancel a subscription locally and stop billing at PayArc.

    The local status always becomes "cancelled"; the PayArc cancel result
    is recorded as a note. Returns True if PayArc confirmed the cancel.
    """
    update_subscription_status(subscription, "cancelled", "Subscription cancelled.")
    db.session.commit()

    payarc_subscription_id = get_linkage(
        "subscription", subscription.id, SUBSCRIPTION_KEY
    )
    if not payarc_subscription_id:
        return False

    client = PayArcClient.from_app_config(current_app.config)
    try:
        client.cancel_subscription(payarc_subscription_id)
    except PayArcError as e:
        add_note(subscription, "Failed to cancel PayArc subscription.", is_customer_note=True)
        db.session.commit()
        logger.error(
            f"PayArc cancel failed for {payarc_subscription_id}: {e.message}"
        )
        return False

    add_note(subscription, "PayArc subscription cancelled.")
    db.session.commit()
    logger.info(f"Cancelled PayArc subscription {payarc_subscription_id}")
    return True
