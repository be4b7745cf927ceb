"""
Custom route decorators for access control.

- order_owner_required: ensures user is logged in AND owns the order in
  the URL. The order is loaded once and passed on as g.order.
- subscription_owner_required: same for subscriptions (g.subscription).
"""

from functools import wraps

from flask import abort, g
from flask_login import current_user, login_required

from payarc_mid.extensions import db


def _owner_required(model, url_arg, g_name):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated(*args, **kwargs):
            obj = db.session.get(model, kwargs.get(url_arg))
            if obj is None:
                abort(404)
            if obj.user_id != current_user.id and not current_user.is_admin:
                abort(403)
            setattr(g, g_name, obj)
            return f(*args, **kwargs)

        return decorated

    return decorator


def order_owner_required(f):
    """Require login + ownership of the order in the URL."""
    from payarc_mid.models.order import Order

    return _owner_required(Order, "order_id", "order")(f)


def subscription_owner_required(f):
    """Require login + ownership of the subscription in the URL."""
    from payarc_mid.models.subscription import Subscription

    return _owner_required(Subscription, "subscription_id", "subscription")(f)
