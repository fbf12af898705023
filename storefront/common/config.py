import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    INSTANCE_ID: str = os.getenv("INSTANCE_ID", "unknown")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite file next to the app by default)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:///./storefront.db")
    DB_ECHO: bool = _get_bool("DB_ECHO", False)
    SEED_ON_STARTUP: bool = _get_bool("SEED_ON_STARTUP", False)

    # Identity is resolved upstream and forwarded in this header
    AUTH_HEADER: str = os.getenv("AUTH_HEADER", "X-User-Id")

    # Orders
    MAX_ORDER_ITEMS: int = int(os.getenv("MAX_ORDER_ITEMS", "100"))

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    REDIS_STOCK_CHANNEL: str = os.getenv("REDIS_STOCK_CHANNEL", "stock-updates")
    # Seconds; bounds how long a request can wait on an unreachable Redis
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2.0"))


settings = Settings()
