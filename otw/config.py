import os


def _flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- Stripe ---
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_CURRENCY = os.environ.get("STRIPE_CURRENCY", "usd")

    # --- Geocoding / routing (Google Maps web services) ---
    GOOGLE_MAPS_API_KEY = os.environ.get("GOOGLE_MAPS_API_KEY")
    MAPS_TIMEOUT_SECONDS = float(os.environ.get("MAPS_TIMEOUT_SECONDS", 5))

    # --- Rate limiting ---
    # "<max requests>/<window seconds>"
    RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
    RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "100/60")
    RATE_LIMIT_ADMIN = os.environ.get("RATE_LIMIT_ADMIN", "500/60")
    RATE_LIMIT_STORAGE_URI = os.environ.get("RATE_LIMIT_STORAGE_URI", "memory://")
    RATE_LIMIT_SWEEP_INTERVAL = int(os.environ.get("RATE_LIMIT_SWEEP_INTERVAL", 60))

    # --- Auth tokens (identity provider) ---
    AUTH_TOKEN_MAX_AGE = int(os.environ.get("AUTH_TOKEN_MAX_AGE", 60 * 60 * 24 * 14))

    # --- Screenshot uploads ---
    SUPABASE_URL = os.environ.get("SUPABASE_URL")                 # e.g. https://xyz.supabase.co
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY") # service_role key for storage
    SUPABASE_STORAGE_BUCKET = os.environ.get("SUPABASE_STORAGE_BUCKET", "screenshots")
    MAX_SCREENSHOT_SIZE = int(os.environ.get("MAX_SCREENSHOT_SIZE", 10 * 1024 * 1024))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # Flask-Limiter (per-route throttles on public intake)
    RATELIMIT_STORAGE_URI = "memory://"

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
            "STRIPE_SECRET_KEY",
            "STRIPE_WEBHOOK_SECRET",
            "GOOGLE_MAPS_API_KEY",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///otw-dev.db"


class TestConfig(Config):
    """Testing: in-memory SQLite, fake credentials, limiter off by default."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_fake"
    STRIPE_WEBHOOK_SECRET = "whsec_test_fake"
    GOOGLE_MAPS_API_KEY = "maps_test_fake"
    APP_BASE_URL = "http://localhost:5000"
    RATELIMIT_ENABLED = False  # Flask-Limiter
    RATE_LIMIT_ENABLED = False  # tiered limiter; tests switch it on explicitly
    RATE_LIMIT_STORAGE_URI = "memory://"
    RATE_LIMIT_SWEEP_INTERVAL = 0  # no background thread in tests
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode, everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
