"""Subscriptions blueprint — /subscriptions/<subscription_id>/*

Routes:
- POST /subscriptions/<subscription_id>/cancel — cancel locally and at PayArc
"""

import logging

from flask import Blueprint, flash, g, redirect, url_for

from payarc_mid.decorators import subscription_owner_required
from payarc_mid.services.provisioning_service import cancel_subscription

logger = logging.getLogger(__name__)

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/subscriptions")


@subscriptions_bp.route("/<subscription_id>/cancel", methods=["POST"])
@subscription_owner_required
def cancel(subscription_id):
    """Cancel the subscription; renewals stop at PayArc.

    A PayArc-side failure still cancels locally and is recorded as a
    note for support to follow up.
    """
    subscription = g.subscription
    if subscription.status == "cancelled":
        flash("This subscription is already cancelled.", "info")
    else:
        try:
            cancel_subscription(subscription)
            flash("Your subscription has been cancelled.", "success")
        except Exception as e:
            logger.error(f"Cancel error for subscription {subscription_id}: {e}", exc_info=True)
            flash("Something went wrong. Please try again.", "error")

    order = subscription.parent_order
    if order is not None:
        return redirect(url_for("orders.pay", order_id=order.id))
    return redirect("/")
