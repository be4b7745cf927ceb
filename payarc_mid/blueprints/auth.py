"""Auth blueprint — /auth/*

Buyers sign in before checkout because the PayArc customer belongs to
the user account. After login the buyer is returned to the page that
required it (usually /orders/<id>/checkout).
"""

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_user, logout_user
from werkzeug.security import check_password_hash

from payarc_mid.extensions import limiter
from payarc_mid.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _safe_next(next_url):
    """Relative paths only; anything else (including //host) goes to /."""
    if not next_url or not next_url.startswith("/") or next_url.startswith("//"):
        return "/"
    return next_url


def _authenticate(email, password):
    """Return (user, error_message); exactly one of them is None."""
    if not email or not password:
        return None, "Email and password are required."

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        return None, "Invalid email or password."
    if not user.is_active:
        return None, "This account has been deactivated."
    return user, None


@auth_bp.route("/login", methods=["GET", "POST"])
@limiter.limit("15 per minute", methods=["POST"])
def login():
    """Email + password login, then back to ?next= (or the form's next)."""
    next_url = request.form.get("next") or request.args.get("next", "")

    if current_user.is_authenticated:
        return redirect(_safe_next(next_url))

    if request.method == "GET":
        return render_template("auth/login.html", next_url=next_url)

    email = request.form.get("email", "").strip().lower()
    user, error = _authenticate(email, request.form.get("password", ""))
    if error:
        flash(error, "error")
        return render_template("auth/login.html", email=email, next_url=next_url)

    login_user(user, remember=bool(request.form.get("remember")))
    return redirect(_safe_next(next_url))


@auth_bp.route("/logout")
def logout():
    logout_user()
    flash("You have been signed out.", "info")
    return redirect(url_for("auth.login"))
