"""
Smart Clearance
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'clearance_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(default=None):
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Auth / signup
    RECAPTCHA_SECRET_KEY = os.getenv("RECAPTCHA_SECRET_KEY", "")
    RECAPTCHA_VERIFY_URL = os.getenv(
        "RECAPTCHA_VERIFY_URL", "https://www.google.com/recaptcha/api/siteverify"
    )
    RECAPTCHA_TIMEOUT_SECONDS = float(os.getenv("RECAPTCHA_TIMEOUT_SECONDS", "10"))
    SIGNUP_RATE_LIMIT = os.getenv("SIGNUP_RATE_LIMIT", "5 per hour")
    FACE_AUTO_APPROVE_SIMILARITY = float(os.getenv("FACE_AUTO_APPROVE_SIMILARITY", "90"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Certificates
    CERTIFICATE_STORAGE = os.getenv("CERTIFICATE_STORAGE", "local")   # local | s3
    CERTIFICATE_STORAGE_DIR = os.getenv(
        "CERTIFICATE_STORAGE_DIR", os.path.join(basedir, "instance", "certificates")
    )
    CERTIFICATE_PUBLIC_BASE_URL = os.getenv(
        "CERTIFICATE_PUBLIC_BASE_URL", "http://localhost:5000/certificates"
    )
    CERTIFICATE_S3_BUCKET = os.getenv("CERTIFICATE_S3_BUCKET", "certificates")
    CERTIFICATE_S3_PREFIX = os.getenv("CERTIFICATE_S3_PREFIX", "clearance-certificates")
    AWS_REGION = os.getenv("AWS_REGION", "")
    CERTIFICATE_VERIFY_BASE_URL = os.getenv(
        "CERTIFICATE_VERIFY_BASE_URL", "http://localhost:3000/verify"
    )
    CERTIFICATE_NUMBER_MAX_ATTEMPTS = int(os.getenv("CERTIFICATE_NUMBER_MAX_ATTEMPTS", "5"))

    # Lifecycle
    CONCURRENT_TRANSITION_POLICY = os.getenv("CONCURRENT_TRANSITION_POLICY", "reject")  # reject | merge

    # Escalation / scheduled jobs
    ESCALATION_DEFAULT_THRESHOLD_HOURS = int(os.getenv("ESCALATION_DEFAULT_THRESHOLD_HOURS", "72"))
    SCHEDULER_LEASE_SECONDS = int(os.getenv("SCHEDULER_LEASE_SECONDS", "900"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    RATELIMIT_ENABLED = False
    BCRYPT_ROUNDS = 4
    RECAPTCHA_SECRET_KEY = "test-recaptcha-secret"
    CERTIFICATE_STORAGE = "local"
    CERTIFICATE_STORAGE_DIR = os.path.join(basedir, "instance", "test-certificates")
    CERTIFICATE_PUBLIC_BASE_URL = "http://testserver/certificates"
    CERTIFICATE_VERIFY_BASE_URL = "http://testserver/verify"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
