"""
Flask extensions shared by the gateway.

Instantiated unbound at import time so services and models can import
them; create_app() attaches each one with init_app().
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()

# Limits are declared on the login and checkout routes only
limiter = Limiter(get_remote_address, storage_uri="memory://")

login_manager = LoginManager()
login_manager.login_view = "auth.login"
login_manager.login_message = "Please log in to complete your order."
login_manager.login_message_category = "info"


@login_manager.user_loader
def load_user(user_id):
    """Resolve the session's user id to a User (lazy import: models use db)."""
    from payarc_mid.models.user import User

    return db.session.get(User, user_id)
