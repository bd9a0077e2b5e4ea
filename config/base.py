# config/base.py
import os
import warnings

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

SQLITE_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 5}}


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value, default, *, minimum=None, maximum=None):
    """
    Parse an integer environment value, falling back to ``default`` when invalid.

    Values outside the optional bounds are clamped.
    """
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None:
        number = max(number, minimum)
    if maximum is not None:
        number = min(number, maximum)
    return number


def _env_int(name, default, **bounds):
    return _parse_int(os.environ.get(name), default, **bounds)


def _resolve_secret_key(flask_env):
    """
    Production refuses to start without SECRET_KEY; development warns and
    falls back to a throwaway key.
    """
    secret_key = os.environ.get("SECRET_KEY")
    if secret_key:
        return secret_key
    if flask_env == "production":
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if flask_env == "testing":
        return "test-secret-key-placeholder"
    warnings.warn(
        "SECRET_KEY not set; using an insecure development key.",
        UserWarning,
    )
    return "dev-secret-key-change-in-production"


def _local_sqlite_uri(filename):
    instance_path = os.path.join(PROJECT_ROOT, "instance")
    os.makedirs(instance_path, exist_ok=True)
    # Three slashes plus an absolute path
    return "sqlite:///" + os.path.join(instance_path, filename).replace("\\", "/")


class Config:
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    SECRET_KEY = _resolve_secret_key(FLASK_ENV)

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Employee importer
    IMPORTER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_ENABLED"), default=True)
    IMPORTER_MAX_RECORDS = _env_int("IMPORTER_MAX_RECORDS", 5000, minimum=1)
    IMPORTER_BATCH_SIZE = _env_int("IMPORTER_BATCH_SIZE", 100, minimum=1, maximum=1000)
    IMPORTER_MIN_AGE = _env_int("IMPORTER_MIN_AGE", 16, minimum=0)
    IMPORTER_MAX_AGE = _env_int("IMPORTER_MAX_AGE", 80, minimum=1)
    if IMPORTER_MAX_AGE < IMPORTER_MIN_AGE:
        raise ValueError("IMPORTER_MAX_AGE must be greater than or equal to IMPORTER_MIN_AGE.")

    # Remote backend used by the CLI when --remote is not given
    IMPORTER_API_BASE_URL = os.environ.get("IMPORTER_API_BASE_URL")
    IMPORTER_API_TOKEN = os.environ.get("IMPORTER_API_TOKEN")
    # Large batches take minutes server-side; there is no automatic retry
    IMPORTER_HTTP_TIMEOUT_SECONDS = _env_int("IMPORTER_HTTP_TIMEOUT_SECONDS", 300, minimum=1)
    IMPORTER_EXISTING_CACHE_TTL_SECONDS = _env_int("IMPORTER_EXISTING_CACHE_TTL_SECONDS", 60, minimum=0)
    IMPORTER_MAX_UPLOAD_MB = _env_int("IMPORTER_MAX_UPLOAD_MB", 25, minimum=1)
    MAX_CONTENT_LENGTH = IMPORTER_MAX_UPLOAD_MB * 1024 * 1024

    # Header carrying the caller's counterparty id on API requests
    IMPORTER_COUNTERPARTY_HEADER = os.environ.get("IMPORTER_COUNTERPARTY_HEADER", "X-Counterparty-Id")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _local_sqlite_uri("personnel_dev.db")
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    SQLALCHEMY_ENGINE_OPTIONS = SQLITE_ENGINE_OPTIONS if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = SQLITE_ENGINE_OPTIONS
    IMPORTER_EXISTING_CACHE_TTL_SECONDS = 0


class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_ECHO = False
    # Heroku-style URLs use the scheme SQLAlchemy 1.4+ no longer accepts
    SQLALCHEMY_DATABASE_URI = (os.environ.get("DATABASE_URL") or "").replace("postgres://", "postgresql://", 1) or None


CONFIG_BY_ENV = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
