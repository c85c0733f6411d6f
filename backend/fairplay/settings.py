from pathlib import Path
import os
from decimal import Decimal
BASE_DIR = Path(__file__).resolve().parent.parent
from dotenv import load_dotenv
load_dotenv()
SECRET_KEY = os.getenv("SECRET_KEY", "django-insecure-change-me")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'channels',
    'rest_framework',
    'rest_framework.authtoken',
    'corsheaders',
    'core',
    'accounts',
    'wallets',
    'referrals',
    'plinko',
]


MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

AUTH_USER_MODEL = 'accounts.User'

ROOT_URLCONF = 'fairplay.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'fairplay.wsgi.application'
ASGI_APPLICATION = 'fairplay.asgi.application'

# Channels + Redis
REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [REDIS_URL],
        },
    },
}
RECONCILE_LOCK_TTL = int(os.getenv("RECONCILE_LOCK_TTL", "60"))  # seconds

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}


# Ledger
# DatabaseLedger settles against this project's own wallets tables;
# HttpLedger talks to a remote wallets service over LEDGER_API_URL.
LEDGER_BACKEND = os.getenv("LEDGER_BACKEND", "wallets.ledger.DatabaseLedger")
LEDGER_API_URL = os.getenv("LEDGER_API_URL", "http://127.0.0.1:8000/api/wallet/ledger")
LEDGER_API_TOKEN = os.getenv("LEDGER_API_TOKEN")
LEDGER_CONNECT_TIMEOUT = float(os.getenv("LEDGER_CONNECT_TIMEOUT", "1.5"))
LEDGER_READ_TIMEOUT = float(os.getenv("LEDGER_READ_TIMEOUT", "3"))
LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", "0"))


# Plinko
PLINKO_MIN_BET = Decimal(os.getenv("PLINKO_MIN_BET", "0.01"))
PLINKO_MAX_BET = Decimal(os.getenv("PLINKO_MAX_BET", "1000000"))
PLINKO_MIN_ROWS = 8
PLINKO_MAX_ROWS = 16
PLINKO_HISTORY_LIMIT = int(os.getenv("PLINKO_HISTORY_LIMIT", "20"))
PLINKO_DEFAULT_TOKEN_ID = int(os.getenv("PLINKO_DEFAULT_TOKEN_ID", "2"))
PLINKO_UNSETTLED_GRACE_SECONDS = int(os.getenv("PLINKO_UNSETTLED_GRACE_SECONDS", "60"))
PLINKO_FEATURES = {
    "fairness_verification": True,
    "history_tracking": True,
    "stats_tracking": True,
}


# Referrals
REFERRAL_ASYNC = True
REFERRAL_WORKERS = int(os.getenv("REFERRAL_WORKERS", "4"))
REFERRAL_HOUSE_EDGE = Decimal("0.03")
REFERRAL_COMMISSION_RATE = Decimal("0.30")


CORS_ALLOW_CREDENTIALS = True

CORS_ALLOWED_ORIGINS = [
    origin for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",") if origin
]

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.TokenAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ]
}


# CSRF settings
CSRF_COOKIE_HTTPONLY = False
CSRF_COOKIE_SAMESITE = 'Lax'
CSRF_COOKIE_SECURE = not DEBUG

SESSION_ENGINE = "django.contrib.sessions.backends.db"
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SECURE = not DEBUG

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "core": {"handlers": ["console"], "level": "INFO"},
        "wallets": {"handlers": ["console"], "level": "INFO"},
        "referrals": {"handlers": ["console"], "level": "INFO"},
        "plinko": {"handlers": ["console"], "level": os.getenv("PLINKO_LOG_LEVEL", "INFO")},
    },
}


# Internationalization
# https://docs.djangoproject.com/en/5.2/topics/i18n/

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True


# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/5.2/howto/static-files/

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / "staticfiles"
# Default primary key field type
# https://docs.djangoproject.com/en/5.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
