import logging
import os

import click
from flask import Flask, redirect, render_template, url_for
from flask_login import current_user
from werkzeug.security import generate_password_hash

from payarc_mid.config import config_by_name
from payarc_mid.extensions import csrf, db, limiter, login_manager, migrate

# Card pages must never be framed, cached or posted elsewhere
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data:; "
        "base-uri 'self'; "
        "form-action 'self'; "
        "frame-ancestors 'none';"
    ),
}


def create_app(config_name=None):
    """Build the gateway app for "development", "testing" or "production"."""
    config_name = config_name or os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    for ext in (db, login_manager, csrf, limiter):
        ext.init_app(app)
    migrate.init_app(app, db)

    # Model classes must be registered on db.metadata before Alembic/create_all
    with app.app_context():
        from payarc_mid import models  # noqa: F401

    _register_blueprints(app)
    _register_error_pages(app)
    _register_security_headers(app)
    register_cli(app)

    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def _register_blueprints(app):
    from payarc_mid.blueprints.auth import auth_bp
    from payarc_mid.blueprints.orders import orders_bp
    from payarc_mid.blueprints.subscriptions import subscriptions_bp
    from payarc_mid.blueprints.webhooks import webhooks_bp

    for bp in (auth_bp, orders_bp, subscriptions_bp, webhooks_bp):
        app.register_blueprint(bp)

    # PayArc authenticates webhooks with an HMAC over the raw body, not a CSRF token
    csrf.exempt(webhooks_bp)

    @app.route("/")
    def index():
        """Send a signed-in buyer to their latest order, others to login."""
        if not current_user.is_authenticated:
            return redirect(url_for("auth.login"))

        from payarc_mid.models.order import Order

        latest = current_user.orders.order_by(Order.created_at.desc()).first()
        if latest is None:
            return render_template("index.html")
        return redirect(url_for("orders.pay", order_id=latest.id))


def _register_error_pages(app):
    for code in (403, 404, 500):
        app.register_error_handler(code, _error_page(code))


def _error_page(code):
    def handler(e):
        return render_template(f"errors/{code}.html"), code
    return handler


def _register_security_headers(app):
    @app.after_request
    def add_security_headers(response):
        response.headers.update(SECURITY_HEADERS)
        if not app.debug:
            # HSTS only where TLS terminates in front of us
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


def register_cli(app):
    """Operator commands: demo data, the payment-complete signal, re-drive and cancel."""

    def _get_or_abort(model, object_id):
        obj = db.session.get(model, object_id)
        if obj is None:
            raise click.ClickException(f"{model.__name__} {object_id} not found.")
        return obj

    @app.cli.command("seed-demo")
    @click.option("--email", default="buyer@payarc.local", help="Buyer email")
    @click.option("--password", default="buyer123", help="Buyer password")
    @click.option("--price", default="19.99", help="Monthly subscription price")
    def seed_demo(email, password, price):
        """Create a buyer + subscription product + pending order + subscription.

        Usage:
            flask seed-demo
            flask seed-demo --email buyer@example.com --price 49.00
        """
        from decimal import Decimal

        from payarc_mid.models.user import User
        from payarc_mid.models.product import Product
        from payarc_mid.models.order import Order
        from payarc_mid.models.subscription import Subscription

        # --- 1. Buyer ---
        user = User.query.filter_by(email=email).first()
        if user:
            click.echo(f"Buyer already exists: {email}")
        else:
            user = User(
                email=email,
                password_hash=generate_password_hash(password),
                full_name="Demo Buyer",
            )
            db.session.add(user)
            db.session.flush()
            click.echo(f"Created buyer: {email}")

        # --- 2. Subscription product ---
        amount = Decimal(price)
        product = Product(
            name="Monthly Membership",
            price=amount,
            is_subscription=True,
            billing_interval="month",
        )
        db.session.add(product)
        db.session.flush()

        # --- 3. Subscription + parent order ---
        subscription = Subscription(
            user_id=user.id,
            product_id=product.id,
            total=amount,
            billing_interval=product.billing_interval,
        )
        db.session.add(subscription)
        db.session.flush()

        order = Order(
            user_id=user.id,
            subscription_id=subscription.id,
            total=amount,
            billing_first_name="Demo",
            billing_last_name="Buyer",
            billing_email=email,
            billing_address_1="1 Main St",
            billing_city="Austin",
            billing_state="TX",
            billing_postcode="78701",
            billing_country="US",
        )
        db.session.add(order)
        db.session.commit()

        base_url = app.config["APP_BASE_URL"]

        click.echo("")
        click.echo("=" * 60)
        click.echo("Demo checkout ready")
        click.echo("=" * 60)
        click.echo(f"  Buyer:        {email} / {password}")
        click.echo(f"  Product:      {product.name} (id: {product.id})")
        click.echo(f"  Subscription: {subscription.id}")
        click.echo(f"  Checkout:     {base_url}/orders/{order.id}/checkout")
        click.echo("=" * 60)

    @app.cli.command("complete-order")
    @click.argument("order_id")
    def complete_order(order_id):
        """Report an order's payment as complete.

        For a subscription's parent order this provisions the PayArc
        subscription (plan + subscription). Already-paid orders are a no-op.
        """
        from payarc_mid.models.order import Order
        from payarc_mid.services.order_service import payment_complete

        order = _get_or_abort(Order, order_id)
        changed = payment_complete(order)
        db.session.commit()

        if not changed:
            click.echo(f"Order {order_id} was already paid; nothing to do.")
            return
        click.echo(f"Order {order_id} marked paid ({order.status}).")
        if order.subscription is not None:
            click.echo(f"  Subscription {order.subscription.id}: {order.subscription.status}")

    @app.cli.command("redrive-subscription")
    @click.argument("subscription_id")
    def redrive_subscription_cmd(subscription_id):
        """Retry PayArc provisioning for a failed subscription."""
        from payarc_mid.models.subscription import Subscription
        from payarc_mid.services.provisioning_service import (
            ProvisioningError,
            redrive_subscription,
        )

        subscription = _get_or_abort(Subscription, subscription_id)
        try:
            payarc_id = redrive_subscription(subscription)
        except ProvisioningError as e:
            raise click.ClickException(str(e))

        if payarc_id:
            click.echo(f"Subscription {subscription_id} linked to PayArc {payarc_id}.")
        else:
            click.echo(f"Provisioning failed again for {subscription_id}; see subscription notes.")

    @app.cli.command("cancel-subscription")
    @click.argument("subscription_id")
    def cancel_subscription_cmd(subscription_id):
        """Cancel a subscription locally and at PayArc."""
        from payarc_mid.models.subscription import Subscription
        from payarc_mid.services.provisioning_service import cancel_subscription

        subscription = _get_or_abort(Subscription, subscription_id)
        if cancel_subscription(subscription):
            click.echo(f"Subscription {subscription_id} cancelled at PayArc.")
        else:
            click.echo(
                f"Subscription {subscription_id} cancelled locally; "
                "no PayArc cancel confirmed (see subscription notes)."
            )
