import os
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes")


def env_days(name, default):
    """
    Parse a day-of-month list such as "25-31" or "1,2,15".

    An empty value or "all" means every day of the month.
    """
    raw = os.environ.get(name, default).strip()
    if not raw or raw.lower() == "all":
        return None
    days = []
    for part in raw.split(","):
        if "-" in part:
            start, end = part.split("-", 1)
            days.extend(range(int(start), int(end) + 1))
        else:
            days.append(int(part))
    return sorted(set(days))


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = env_bool("DJANGO_DEBUG")
ALLOWED_HOSTS = os.environ.get(
    "DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver"
).split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "payments.middleware.RequestResponseLoggingMiddleware",
]

ROOT_URLCONF = "craftnet.urls"
WSGI_APPLICATION = "craftnet.wsgi.application"

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

if os.environ.get("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ["POSTGRES_DB"],
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("TIME_ZONE", "Africa/Lagos")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
MEDIA_URL = "media/"
MEDIA_ROOT = Path(os.environ.get("MEDIA_ROOT", BASE_DIR / "media"))

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "payments.authentication.GatewayHeaderAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": int(os.environ.get("API_PAGE_SIZE", 50)),
    "COERCE_DECIMAL_TO_STRING": True,
}

# Celery
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND") or None
# Inline execution would run webhook retries inside the request thread.
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER")
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_TASK_ACKS_LATE = True
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    "release-due-escrows": {
        "task": "payments.tasks.process_due_escrow_releases",
        "schedule": crontab(minute=0),
    },
    "reconcile-referral-earnings": {
        "task": "payments.tasks.reconcile_referral_earnings",
        "schedule": crontab(minute=30, hour="*/6"),
    },
}

# Payments
MIN_FUNDING_NGN = os.environ.get("MIN_FUNDING_NGN", "1000")
FUNDING_FEE_RATE = os.environ.get("FUNDING_FEE_RATE", "0")
FUNDING_CREDIT_MODE = os.environ.get("FUNDING_CREDIT_MODE", "balance")
FUNDING_PROOF_REQUIRED = env_bool("FUNDING_PROOF_REQUIRED", True)
MIN_WITHDRAWAL_POINTS = os.environ.get("MIN_WITHDRAWAL_POINTS", "20")
WITHDRAWAL_WINDOW_DAYS = env_days("WITHDRAWAL_WINDOW_DAYS", "25-31")
WITHDRAWAL_FEE_RATES = {
    "apprentice": os.environ.get("APPRENTICE_WITHDRAWAL_FEE_RATE", "0.10"),
    "member": os.environ.get("MEMBER_WITHDRAWAL_FEE_RATE", "0"),
}
POINTS_EXCHANGE_RATE = {
    "version": os.environ.get("POINTS_RATE_VERSION", "v1"),
    "ngn_per_point": os.environ.get("NGN_PER_POINT", "150"),
}
PLATFORM_COMMISSION_RATE = os.environ.get("PLATFORM_COMMISSION_RATE", "0.10")
REFERRAL_ESCROW_RATE = os.environ.get("REFERRAL_ESCROW_RATE", "0.05")
REFERRAL_SUBSCRIPTION_RATE = os.environ.get("REFERRAL_SUBSCRIPTION_RATE", "0.10")
ESCROW_GRACE_PERIOD_DAYS = int(os.environ.get("ESCROW_GRACE_PERIOD_DAYS", 7))
SUBSCRIPTION_PLANS = {
    "basic": {"amount_ngn": "5000", "duration_days": 30},
    "pro": {"amount_ngn": "15000", "duration_days": 30},
    "premium": {"amount_ngn": "30000", "duration_days": 30},
}
PLATFORM_BANK_ACCOUNTS = [
    {
        "bank_name": os.environ.get("PLATFORM_BANK_NAME", ""),
        "account_number": os.environ.get("PLATFORM_ACCOUNT_NUMBER", ""),
        "account_name": os.environ.get("PLATFORM_ACCOUNT_NAME", "Craftnet Ltd"),
    }
] if os.environ.get("PLATFORM_ACCOUNT_NUMBER") else []
PROOF_MAX_UPLOAD_BYTES = int(os.environ.get("PROOF_MAX_UPLOAD_BYTES", 5 * 1024 * 1024))

NOTIFICATION_WEBHOOK_URL = os.environ.get("NOTIFICATION_WEBHOOK_URL", "")
NOTIFICATION_TIMEOUT = int(os.environ.get("NOTIFICATION_TIMEOUT", 10))
IDENTITY_GATEWAY_SECRET = os.environ.get("IDENTITY_GATEWAY_SECRET", "")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "payments": {
            "handlers": ["console"],
            "level": os.environ.get("PAYMENTS_LOG_LEVEL", "INFO"),
        },
    },
}
