import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./farmshop.db")

# Empty REDIS_URL turns the product cache off
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
PRODUCTS_CACHE_TTL = int(os.getenv("PRODUCTS_CACHE_TTL", "600"))

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL or "redis://redis:6379/0")
CELERY_TASK_ALWAYS_EAGER = _flag("CELERY_TASK_ALWAYS_EAGER")

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "farmshop_session")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", str(24 * 7)))
SESSION_COOKIE_SECURE = _flag("SESSION_COOKIE_SECURE")

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
