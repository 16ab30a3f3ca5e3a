"""Django settings for the CMS admin backend.

Environment-driven configuration for Postgres, Redis, rate limits, audit
retention and security defaults.
"""
import os
from pathlib import Path
from urllib.parse import urlparse

from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent


def _get_env(name: str, default: str | None = None) -> str | None:
    """Read an environment variable with an optional fallback."""
    return os.environ.get(name, default)


def _get_int_env(name: str, default: int) -> int:
    value = _get_env(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{name} must be an integer") from exc


def _parse_database_url(url: str) -> dict:
    """Parse a PostgreSQL or SQLite DATABASE_URL into a Django DATABASES entry."""
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        name = parsed.path.lstrip("/") or ":memory:"
        return {"ENGINE": "django.db.backends.sqlite3", "NAME": name}
    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": parsed.path.lstrip("/"),
        "USER": parsed.username,
        "PASSWORD": parsed.password,
        "HOST": parsed.hostname,
        "PORT": parsed.port or "5432",
    }


SECRET_KEY = _get_env("SECRET_KEY", "dev-secret-key-change-me")
DEBUG = _get_env("DEBUG", "True") == "True"
if not DEBUG and SECRET_KEY in ("change-me", "dev-secret-key-change-me"):
    raise ImproperlyConfigured("SECRET_KEY must be set in production")
ALLOWED_HOSTS = [
    h.strip()
    for h in _get_env("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0").split(",")
    if h.strip()
]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "core",
    "authentication",
    "access_control",
    "audit",
    "users",
    "pages",
    "products",
    "scripts",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    # Runs last so every request reaching a view has been authorized and audited.
    "core.middleware.AuthorizationMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"

DATABASE_URL = _get_env("DATABASE_URL")
if DATABASE_URL:
    DATABASES = {"default": _parse_database_url(DATABASE_URL)}
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": _get_env("POSTGRES_DB", "cms_admin"),
            "USER": _get_env("POSTGRES_USER", "cms_admin"),
            "PASSWORD": _get_env("POSTGRES_PASSWORD", "cms_admin"),
            "HOST": _get_env("POSTGRES_HOST", "localhost"),
            "PORT": _get_env("POSTGRES_PORT", "5433"),
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
        "OPTIONS": {"min_length": 8},
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "authentication.User"

DEBUG_AUTH_ERRORS = _get_env("DEBUG_AUTH_ERRORS", "False") == "True"
REDIS_URL = _get_env("REDIS_URL", "redis://localhost:6380/0")

# Bearer token lifetimes, in seconds.
ACCESS_TOKEN_LIFETIME = _get_int_env("ACCESS_TOKEN_LIFETIME", 15 * 60)
REFRESH_TOKEN_LIFETIME = _get_int_env("REFRESH_TOKEN_LIFETIME", 24 * 60 * 60)
BCRYPT_ROUNDS = _get_int_env("BCRYPT_ROUNDS", 12)

# Browser routes redirect here (with callbackUrl) when authentication is missing.
LOGIN_URL = _get_env("LOGIN_URL", "/auth/login")

# Requests per fixed window, keyed by route class and client IP.
RATE_LIMITS = {
    "auth": {
        "limit": _get_int_env("RATE_LIMIT_AUTH", 5),
        "window": _get_int_env("RATE_LIMIT_AUTH_WINDOW", 60),
    },
    "sensitive": {
        "limit": _get_int_env("RATE_LIMIT_SENSITIVE", 30),
        "window": _get_int_env("RATE_LIMIT_SENSITIVE_WINDOW", 60),
    },
    "public": {
        "limit": _get_int_env("RATE_LIMIT_PUBLIC", 100),
        "window": _get_int_env("RATE_LIMIT_PUBLIC_WINDOW", 60),
    },
}
# X-Forwarded-For is honoured only when the direct peer is one of these.
TRUSTED_PROXIES = [
    p.strip() for p in _get_env("TRUSTED_PROXIES", "127.0.0.1,::1").split(",") if p.strip()
]
AUTH_FAILURE_THRESHOLD = _get_int_env("AUTH_FAILURE_THRESHOLD", 5)

AUDIT_RETENTION_DAYS = _get_int_env("AUDIT_RETENTION_DAYS", 365)
if AUDIT_RETENTION_DAYS < 1:
    raise ImproperlyConfigured("AUDIT_RETENTION_DAYS must be at least 1")
AUDIT_EXPORT_MAX_ROWS = _get_int_env("AUDIT_EXPORT_MAX_ROWS", 10000)

LOG_LEVEL = _get_env("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "security": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ["core.authentication.MiddlewareUserAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": [],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    # `format` is an audit export parameter, not a renderer override.
    "URL_FORMAT_OVERRIDE": None,
    "EXCEPTION_HANDLER": "core.exceptions.custom_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "CMS Admin API",
    "DESCRIPTION": (
        "OpenAPI schema for the CMS admin backend: role-based authorization, "
        "rate limiting, and an append-only audit and compliance trail."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SERVE_PUBLIC": True,
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "bearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
    },
    # Apply JWT bearer auth by default to operations unless overridden.
    "SECURITY": [{"bearerAuth": []}],
}
