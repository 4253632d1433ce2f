"""
Django settings for aadhaar_backend project.

Configuration baseline for the Aadhaar verification backend:
- DRF + JWT (SimpleJWT)
- CORS Headers
- PostgreSQL via environment variables with a SQLite fallback for development
- Custom user model in `users.User`
- Field-level encryption keys for verification records
"""

import base64
import hashlib
import os
from pathlib import Path

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "DJANGO_SECRET_KEY",
    "django-insecure-7n$w0c5qz!k2v8@d1xg^r4e3pa9l#mfhu6tj*yb0s%i&o2cw",
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"

ALLOWED_HOSTS = (
    os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",")
    if os.getenv("DJANGO_ALLOWED_HOSTS")
    else (["*"] if DEBUG else [])
)


# Application definition

INSTALLED_APPS = [
    # Django core
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",
    "corsheaders",
    "django_filters",

    # Local apps
    "users",
    "audit",
    "verification",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    # CORS must sit as high as possible, right after SecurityMiddleware
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "aadhaar_backend.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "aadhaar_backend.wsgi.application"


# Database
# PostgreSQL via environment variables; SQLite fallback for local development
if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "CONN_MAX_AGE": 60,
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


LANGUAGE_CODE = "en-in"

TIME_ZONE = "Asia/Kolkata"

USE_I18N = True

USE_TZ = True


STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Django REST Framework
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_FILTER_BACKENDS": (
        "django_filters.rest_framework.DjangoFilterBackend",
    ),
    "DEFAULT_THROTTLE_RATES": {
        "public_qr": "30/min",
    },
    "EXCEPTION_HANDLER": "aadhaar_backend.exceptions.envelope_exception_handler",
}

# CORS
CORS_ALLOWED_ORIGINS = [
    origin
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
    if origin.strip()
]

if DEBUG and not CORS_ALLOWED_ORIGINS:
    CORS_ALLOW_ALL_ORIGINS = True

CORS_ALLOW_CREDENTIALS = True

# Custom user model
AUTH_USER_MODEL = "users.User"


def _default_field_key() -> str:
    # Development fallback: a stable Fernet key derived from SECRET_KEY.
    digest = hashlib.sha256(f"field-encryption:{SECRET_KEY}".encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


# Comma-separated Fernet keys. The first one encrypts; all of them decrypt.
FIELD_ENCRYPTION_KEYS = [
    key.strip()
    for key in os.getenv("FIELD_ENCRYPTION_KEYS", "").split(",")
    if key.strip()
] or [_default_field_key()]

# Aadhaar OTP provider
AADHAAR_PROVIDER = os.getenv("AADHAAR_PROVIDER", "simulated" if DEBUG else "sandbox").strip().lower()
AADHAAR_SANDBOX_BASE_URL = os.getenv("AADHAAR_SANDBOX_BASE_URL", "https://api.sandbox.co.in")
AADHAAR_SANDBOX_API_KEY = os.getenv("AADHAAR_SANDBOX_API_KEY", "")
AADHAAR_SANDBOX_API_SECRET = os.getenv("AADHAAR_SANDBOX_API_SECRET", "")
AADHAAR_SANDBOX_API_VERSION = os.getenv("AADHAAR_SANDBOX_API_VERSION", "2.0")
AADHAAR_PROVIDER_TIMEOUT = int(os.getenv("AADHAAR_PROVIDER_TIMEOUT", "30"))
AADHAAR_OTP_REASON = os.getenv("AADHAAR_OTP_REASON", "KYC verification")

# Selfies
SELFIE_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
SELFIE_LEGACY_ROOT = Path(os.getenv("SELFIE_LEGACY_ROOT", str(MEDIA_ROOT)))

# Public QR endpoints
PUBLIC_QR_THROTTLE_RATE = os.getenv("PUBLIC_QR_THROTTLE_RATE", "")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        name: {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "INFO"),
            "propagate": False,
        }
        for name in ("verification", "audit", "users", "aadhaar_backend")
    },
}
