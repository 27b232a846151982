from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "Vital Alerts"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = ""  # local, dev, prod (from .env)

    # Storage: "mongo" in deployments, "memory" for local runs without a database
    STORE_BACKEND: Literal["mongo", "memory"] = "mongo"

    # MongoDB (from .env)
    MONGODB_URL: str = ""
    MONGODB_DB_NAME: str = ""
    # Multi-document transactions need a replica set
    MONGODB_USE_TRANSACTIONS: bool = False

    # CORS (from .env, comma-separated)
    BACKEND_CORS_ORIGINS: List[str] = []

    # Logging & Sentry
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None

    # Redis is used for per-reading evaluation locks (set empty to use in-process locks)
    REDIS_URL: str | None = None
    EVALUATION_LOCK_TIMEOUT_SECONDS: int = 30

    # Security: bearer tokens are issued elsewhere, we only verify them (from .env)
    SECRET_KEY: str = ""

    # Alert rules
    SEED_DEFAULT_ALERT_RULES: bool = True
    DEFAULT_RULE_COOLDOWN_MINUTES: int = 30

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


settings = Settings()
