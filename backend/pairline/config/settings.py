# pairline/config/settings.py
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # backend/
load_dotenv(BASE_DIR / ".env")

REDIS_HOST = os.environ.get("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.environ.get("REDIS_PORT", "6379"))

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-key")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")
    if h.strip()
]
CORS_ALLOW_ALL_ORIGINS = True

# 상태는 전부 메모리. DB 안 씀
DATABASES = {}

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    # third party
    "rest_framework",
    "channels",
    "corsheaders",
    # local apps
    "pairline.users",
    "pairline.matches",
    "pairline.calls",
    "pairline.signaling",
]

ROOT_URLCONF = "pairline.config.urls"
ASGI_APPLICATION = "pairline.config.asgi.application"  # channels(websocket)용

# memory: 테스트/로컬 단일 프로세스용
CHANNEL_LAYER_BACKEND = os.environ.get("CHANNEL_LAYER_BACKEND", "redis")
if CHANNEL_LAYER_BACKEND == "memory":
    CHANNEL_LAYERS = {
        "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
    }
else:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels_redis.core.RedisChannelLayer",
            "CONFIG": {
                "hosts": [(REDIS_HOST, REDIS_PORT)],
            },
        }
    }

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.AllowAny",),
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "pairline.common.exceptions.custom_exception_handler",
}

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
APPEND_SLASH = False
USE_TZ = True

# ---- broker ----
BROKER_MIN_WAIT_SECONDS = int(os.environ.get("BROKER_MIN_WAIT_SECONDS", "5"))
BROKER_PER_USER_WAIT_SECONDS = int(os.environ.get("BROKER_PER_USER_WAIT_SECONDS", "3"))
BROKER_QUEUE_STALE_SECONDS = int(os.environ.get("BROKER_QUEUE_STALE_SECONDS", "90"))
BROKER_SWEEP_INTERVAL_SECONDS = int(
    os.environ.get("BROKER_SWEEP_INTERVAL_SECONDS", "30")
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "pairline": {
            "handlers": ["console"],
            "level": os.environ.get("BROKER_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}
