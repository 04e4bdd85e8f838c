from pathlib import Path
import os
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

# Django env vars (with backward-compatible fallbacks)
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY") or os.getenv("SECRET_KEY", "dev-key")
_dj_debug = os.getenv("DJANGO_DEBUG")
if _dj_debug is not None:
    DEBUG = _dj_debug.lower() in {"1", "true", "yes", "on"}
else:
    DEBUG = bool(int(os.getenv("DEBUG", "1")))

_allowed_hosts = os.getenv("DJANGO_ALLOWED_HOSTS", "").strip()
if _allowed_hosts:
    ALLOWED_HOSTS = [h.strip() for h in _allowed_hosts.split(",") if h.strip()]
else:
    ALLOWED_HOSTS = ["*"]

CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "http://localhost:8000").split(",")

SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_htmx",
    "apps.common",
    "apps.accounts",
    "apps.ordering",
    "apps.dashboard",
    "apps.bulkupload",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django_htmx.middleware.HtmxMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.messages.context_processors.messages",
                "apps.accounts.context_processors.admin_user",
            ],
            "libraries": {
                # Ensure custom template tags are always registered
                "currency": "apps.common.templatetags.currency",
            },
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Database: Prefer DATABASE_URL, else use POSTGRES_* vars (UTF-8 client + UTC).
# Only the session table lives here (carts, bulk-upload drafts, API credentials).
POSTGRES_DB = os.getenv("POSTGRES_DB", "app")
POSTGRES_USER = os.getenv("POSTGRES_USER", "app")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "app")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "127.0.0.1")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
DATABASE_URL = os.getenv("DATABASE_URL", "")

if DATABASE_URL:
    from urllib.parse import urlparse

    u = urlparse(DATABASE_URL)
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": u.path.lstrip("/"),
            "USER": u.username,
            "PASSWORD": u.password,
            "HOST": u.hostname,
            "PORT": u.port or "5432",
            "CONN_MAX_AGE": 600,
            "OPTIONS": {"options": "-c client_encoding=UTF8 -c timezone=UTC"},
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": POSTGRES_DB,
            "USER": POSTGRES_USER,
            "PASSWORD": POSTGRES_PASSWORD,
            "HOST": POSTGRES_HOST,
            "PORT": POSTGRES_PORT,
            "CONN_MAX_AGE": 600,
            "OPTIONS": {"options": "-c client_encoding=UTF8 -c timezone=UTC"},
        }
    }

LANGUAGE_CODE = "en-au"
# Allow timezone override via environment (e.g., TIME_ZONE=Asia/Jakarta)
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATICFILES_DIRS = [BASE_DIR / "static"]
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Sessions hold the cart, so keep them around for a browsing week
SESSION_COOKIE_AGE = int(os.getenv("SESSION_COOKIE_AGE", str(60 * 60 * 24 * 7)))

# Cache (Redis)
CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        "OPTIONS": {"CLIENT_CLASS": "django_redis.client.DefaultClient"},
        "KEY_PREFIX": "dorder",
    }
}

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND") or CELERY_BROKER_URL
# Celery will use Django's TIME_ZONE by default; allow override via CELERY_TIMEZONE env
CELERY_TIMEZONE = os.getenv("CELERY_TIMEZONE", TIME_ZONE)
CELERY_TASK_ALWAYS_EAGER = False

# Backend REST API (merchant, balance, transactions, auth)
BACKEND_API_URL = os.getenv("BACKEND_API_URL", "http://localhost:3000").rstrip("/")
BACKEND_API_TIMEOUT = int(os.getenv("BACKEND_API_TIMEOUT", "10"))
QUERY_DEDUP_SECONDS = int(os.getenv("QUERY_DEDUP_SECONDS", "2"))

# Polling intervals in milliseconds (0 disables polling)
POLL_INTERVALS = {
    "balance": int(os.getenv("POLL_BALANCE_MS", "10000")),
    "transactions": int(os.getenv("POLL_TRANSACTIONS_MS", "30000")),
    "merchants": int(os.getenv("POLL_MERCHANTS_MS", "30000")),
    "static": 0,
}

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "IDR")
DASHBOARD_PAGE_SIZE = int(os.getenv("DASHBOARD_PAGE_SIZE", "20"))

ORDERING = {
    "default_mode": os.getenv("ORDERING_DEFAULT_MODE", "takeaway"),
    "max_notes_length": int(os.getenv("ORDERING_MAX_NOTES", "200")),
    "default_phone_region": os.getenv("ORDERING_PHONE_REGION", "ID"),
}

BULK_UPLOAD = {
    "max_rows": int(os.getenv("BULK_UPLOAD_MAX_ROWS", "500")),
    "max_bytes": int(os.getenv("BULK_UPLOAD_MAX_BYTES", str(2 * 1024 * 1024))),
}

# Seconds during which a repeated submit of the same form is ignored
SUBMIT_GUARD_SECONDS = int(os.getenv("SUBMIT_GUARD_SECONDS", "5"))

ADMIN_LOGIN_URL = "/admin/login"

# Logging (prints our app logs at INFO level to console)
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[%(levelname)s] %(asctime)s %(name)s: %(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        }
    },
    "loggers": {
        # Capture all our project app logs (e.g., apps.common.api)
        "apps": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}

# Basic production security (configurable via env)
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "true").lower() == "true"
CSRF_COOKIE_SECURE = os.getenv("CSRF_COOKIE_SECURE", "true").lower() == "true"
SECURE_HSTS_SECONDS = int(os.getenv("SECURE_HSTS_SECONDS", "0"))


FORCE_SCRIPT_NAME = os.getenv("DJANGO_FORCE_SCRIPT_NAME")
if FORCE_SCRIPT_NAME:
    if not FORCE_SCRIPT_NAME.startswith("/"):
        FORCE_SCRIPT_NAME = f"/{FORCE_SCRIPT_NAME}"
    STATIC_URL = f"{FORCE_SCRIPT_NAME}/static/"
    ADMIN_LOGIN_URL = f"{FORCE_SCRIPT_NAME}/admin/login"
    USE_X_FORWARDED_HOST = True
