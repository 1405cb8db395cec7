"""
Environment-aware configuration.

Token secrets have no defaults: the app factory refuses to build an app
without ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET.
"""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()  # Read .env if present


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _bool_env(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


def _rate_limits() -> dict:
    window = _int_env("RATE_LIMIT_WINDOW_SECONDS", 600)
    return {
        "public": (_int_env("RATE_LIMIT_PUBLIC_MAX", 20), window),
        "auth": (_int_env("RATE_LIMIT_AUTH_MAX", 10), window),
        "sensitive": (_int_env("RATE_LIMIT_SENSITIVE_MAX", 5), window),
        "user": (_int_env("RATE_LIMIT_USER_MAX", 200), window),
        "unauthenticated": (_int_env("RATE_LIMIT_UNAUTHENTICATED_MAX", 20), window),
    }


class BaseConfig:
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    VERSION = "1.0.0"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///fintrack.db")
    SQL_ECHO = _bool_env("SQL_ECHO", False)
    DB_POOL_TIMEOUT = _int_env("DB_POOL_TIMEOUT", 10)
    DB_CONNECT_TIMEOUT = _int_env("DB_CONNECT_TIMEOUT", 10)

    REDIS_URL = os.getenv("UPSTASH_REDIS_URL") or os.getenv("REDIS_URL")
    REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2.0"))

    # JWT
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET")
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "fintrack-api")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=_int_env("ACCESS_TOKEN_EXPIRES_SECONDS", 3600))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=_int_env("REFRESH_TOKEN_EXPIRES_SECONDS", 7 * 24 * 3600))
    ONE_TIME_TOKEN_EXPIRES = timedelta(seconds=_int_env("ONE_TIME_TOKEN_EXPIRES_SECONDS", 3600))

    REFRESH_COOKIE_NAME = "refreshToken"
    REFRESH_COOKIE_SECURE = _bool_env("REFRESH_COOKIE_SECURE", False)

    # Argon2id cost parameters
    ARGON2_TIME_COST = _int_env("ARGON2_TIME_COST", 3)
    ARGON2_MEMORY_COST = _int_env("ARGON2_MEMORY_COST", 2 ** 16)
    ARGON2_PARALLELISM = _int_env("ARGON2_PARALLELISM", 2)

    # Rate limiting
    RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI") or REDIS_URL or "memory://"
    RATE_LIMITS = _rate_limits()

    # Mail
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = _int_env("SMTP_PORT", 587)
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS = _bool_env("SMTP_USE_TLS", True)
    MAIL_FROM = os.getenv("MAIL_FROM")
    CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
    # "background" sends mail from a worker thread, "inline" from the request
    MAIL_DISPATCH = os.getenv("MAIL_DISPATCH", "background")
    MAIL_DISPATCH_WORKERS = _int_env("MAIL_DISPATCH_WORKERS", 2)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class ProductionConfig(BaseConfig):
    DEBUG = False
    REFRESH_COOKIE_SECURE = True


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    DATABASE_URL = "sqlite://"
    REDIS_URL = None
    RATE_LIMIT_STORAGE_URI = "memory://"
    ACCESS_TOKEN_SECRET = "test-access-secret-that-is-long-enough"
    REFRESH_TOKEN_SECRET = "test-refresh-secret-that-is-long-enough"
    # cheap hashes keep the suite fast
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1
    SMTP_HOST = None
    MAIL_DISPATCH = "inline"


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
