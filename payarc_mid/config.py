import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _database_url():
    # Heroku/Railway still hand out postgres:// URLs; SQLAlchemy wants postgresql://
    url = os.environ.get("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or None


class Config:
    """Settings shared by every environment, read from the process env."""

    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- PayArc gateway ---
    PAYARC_ENABLED = _env_flag("PAYARC_ENABLED", "true")
    PAYARC_TITLE = os.environ.get("PAYARC_TITLE", "PayArc.Mid")
    PAYARC_DESCRIPTION = os.environ.get(
        "PAYARC_DESCRIPTION", "Pay securely using your credit card."
    )
    # Test mode selects testapi.payarc.net and PAYARC_TEST_API_KEY
    PAYARC_TESTMODE = _env_flag("PAYARC_TESTMODE", "true")
    PAYARC_API_KEY = os.environ.get("PAYARC_API_KEY")            # live access token
    PAYARC_TEST_API_KEY = os.environ.get("PAYARC_TEST_API_KEY")  # test access token
    PAYARC_WEBHOOK_SECRET = os.environ.get("PAYARC_WEBHOOK_SECRET")
    PAYARC_DEBUG = _env_flag("PAYARC_DEBUG")
    # sale | authorize. Accepted but not wired: payments always behave as "sale".
    PAYARC_TRANSACTION_TYPE = os.environ.get("PAYARC_TRANSACTION_TYPE", "sale")
    PAYARC_TIMEOUT = int(os.environ.get("PAYARC_TIMEOUT", 30))

    # --- Cookies / CSRF ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Raise RuntimeError when the env cannot run the gateway."""
        required = ["SECRET_KEY", "DATABASE_URL", "PAYARC_WEBHOOK_SECRET"]
        # Only the access token for the selected environment is needed
        if _env_flag("PAYARC_TESTMODE", "true"):
            required.append("PAYARC_TEST_API_KEY")
        else:
            required.append("PAYARC_API_KEY")

        missing = [name for name in required if not os.environ.get(name)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        transaction_type = os.environ.get("PAYARC_TRANSACTION_TYPE", "sale")
        if transaction_type not in ("sale", "authorize"):
            raise RuntimeError(
                f"PAYARC_TRANSACTION_TYPE must be 'sale' or 'authorize', got '{transaction_type}'"
            )


class DevConfig(Config):
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """pytest: in-memory SQLite, fake PayArc credentials, CSRF and rate limits off."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "payarc-mid-test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SERVER_NAME = "localhost"
    APP_BASE_URL = "http://localhost:5000"

    PAYARC_ENABLED = True
    PAYARC_TITLE = "PayArc.Mid"
    PAYARC_DESCRIPTION = "Pay securely using your credit card."
    PAYARC_TESTMODE = True
    PAYARC_API_KEY = "live_token_fake"
    PAYARC_TEST_API_KEY = "test_token_fake"
    PAYARC_WEBHOOK_SECRET = "whsec_payarc_test"
    PAYARC_DEBUG = False
    PAYARC_TRANSACTION_TYPE = "sale"
    PAYARC_TIMEOUT = 30

    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False

    @staticmethod
    def validate():
        pass


class ProdConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "testing": TestConfig,
    "production": ProdConfig,
}
