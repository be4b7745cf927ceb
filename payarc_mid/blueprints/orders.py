"""Orders blueprint — /orders/<order_id>/*

Buyer-facing PayArc checkout.

Routes:
- GET  /orders/<order_id>/checkout  — card form (test-mode notice in test mode)
- POST /orders/<order_id>/checkout  — run the PayArc checkout, redirect to pay page
- GET  /orders/<order_id>/pay       — payment / confirmation page
"""

import logging

from flask import (
    Blueprint,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    url_for,
)

from payarc_mid.decorators import order_owner_required
from payarc_mid.extensions import limiter
from payarc_mid.services.checkout_service import CARD_FIELDS, CheckoutError, process_payment
from payarc_mid.services.payarc_client import PayArcSettings

logger = logging.getLogger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")

# Published PayArc sandbox card, shown only in test mode
TEST_CARD_HINT = "4012000098765439, Exp: 12/2025, CVV: 999"


def _render_checkout(status=200):
    settings = PayArcSettings.from_app_config(current_app.config)
    return render_template(
        "orders/checkout.html",
        order=g.order,
        gateway=settings,
        test_card_hint=TEST_CARD_HINT if settings.testmode else None,
    ), status


# ──────────────────────────────────────────────
# GET/POST /orders/<order_id>/checkout
# ──────────────────────────────────────────────

@orders_bp.route("/<order_id>/checkout", methods=["GET", "POST"])
@limiter.limit("10 per minute", methods=["POST"])
@order_owner_required
def checkout(order_id):
    """Collect card details and run the PayArc checkout.

    Errors are flashed inline and the form is shown again; the order stays
    unpaid. Card fields are never echoed back into the form.
    """
    if g.order.is_paid:
        flash("This order has already been paid.", "info")
        return redirect(url_for("orders.pay", order_id=order_id))

    if request.method == "GET":
        return _render_checkout()

    card = {name: request.form.get(f"payarc_{name}", "") for name in CARD_FIELDS}

    try:
        redirect_url = process_payment(g.order, card)
    except CheckoutError as e:
        flash(e.message if not e.detail else f"{e.message} {e.detail}", "error")
        return _render_checkout(422)
    except Exception as e:
        logger.error(f"Checkout error for order {order_id}: {e}", exc_info=True)
        flash("Something went wrong processing your card. Please try again.", "error")
        return _render_checkout(500)

    return redirect(redirect_url)


# ──────────────────────────────────────────────
# GET /orders/<order_id>/pay
# ──────────────────────────────────────────────

@orders_bp.route("/<order_id>/pay")
@order_owner_required
def pay(order_id):
    """Payment / confirmation page.

    Shows the order status and buyer-visible notes. The order moves on
    from "pending" when the platform reports the payment complete.
    """
    customer_notes = g.order.notes.filter_by(is_customer_note=True).all()
    return render_template(
        "orders/pay.html",
        order=g.order,
        customer_notes=customer_notes,
    )
