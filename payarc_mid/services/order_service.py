"""Order service — platform-side order and subscription state.

Responsible for:
- Status updates with a timeline note (no-op when the status is unchanged)
- Order / subscription notes (admin-only or buyer-visible)
- The platform "payment complete" signal, which hands subscription parent
  orders to the provisioner
- Payment success / failure hooks used by webhook reconciliation
- Most-recent-order lookup for a subscription

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import datetime, timezone

from payarc_mid.extensions import db
from payarc_mid.models.order import Order, OrderNote
from payarc_mid.models.subscription import Subscription

logger = logging.getLogger(__name__)


def add_note(target, body, is_customer_note=False):
    """Attach a note to an Order or a Subscription."""
    note = OrderNote(body=body, is_customer_note=bool(is_customer_note))
    if isinstance(target, Subscription):
        note.subscription_id = target.id
    else:
        note.order_id = target.id
    db.session.add(note)
    db.session.flush()
    return note


def update_order_status(order, status, note=None):
    """Move an order to a new status.

    Returns True if the status changed. Re-applying the current status
    records nothing, which keeps webhook redeliveries side-effect free.

    Raises:
        ValueError: If status is not one of Order.STATUSES.
    """
    if status not in Order.STATUSES:
        raise ValueError(
            f"Invalid order status '{status}'. Must be one of: {', '.join(Order.STATUSES)}"
        )
    if order.status == status:
        return False

    old_status = order.status
    order.status = status
    if note:
        add_note(order, note)
    db.session.flush()
    logger.info(f"Order {order.id}: {old_status} -> {status}")
    return True


def update_subscription_status(subscription, status, note=None):
    """Move a subscription to a new status. Same contract as update_order_status."""
    if status not in Subscription.STATUSES:
        raise ValueError(
            f"Invalid subscription status '{status}'. "
            f"Must be one of: {', '.join(Subscription.STATUSES)}"
        )
    if subscription.status == status:
        return False

    old_status = subscription.status
    subscription.status = status
    if note:
        add_note(subscription, note)
    db.session.flush()
    logger.info(f"Subscription {subscription.id}: {old_status} -> {status}")
    return True


def get_last_order(subscription):
    """Return the most recent order (parent or renewal) of a subscription."""
    return (
        Order.query
        .filter_by(subscription_id=subscription.id)
        .order_by(Order.created_at.desc(), Order.is_renewal.desc())
        .first()
    )


# ──────────────────────────────────────────────
# Payment hooks
# ──────────────────────────────────────────────

def payment_complete(order):
    """Platform signal: an order's payment has completed.

    Marks the order paid, then, for the parent order of a subscription,
    runs the provisioner once. Calling this for an already-paid order is
    a no-op, so it never re-triggers provisioning.

    Returns True if the order transitioned to paid.
    """
    if order.is_paid:
        return False

    order.paid_at = datetime.now(timezone.utc)
    update_order_status(order, "processing", "Payment complete.")

    subscription = order.subscription
    if subscription is not None and not order.is_renewal:
        # Lazy import: provisioning depends on this module
        from payarc_mid.services.provisioning_service import (
            process_subscription_payment,
        )
        process_subscription_payment(subscription, order)

    return True


def process_payment_success(order):
    """Record a processor-confirmed successful charge on an order."""
    if order is None:
        return False
    if order.failure_reason:
        order.failure_reason = None
    return payment_complete(order)


def process_payment_failure(order, reason=None):
    """Record a processor-reported failed charge on an order."""
    if order is None:
        return False
    if reason:
        order.failure_reason = reason[:500]
    return update_order_status(order, "failed", "Subscription payment failed.")
