from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Activity Ledger"
    secret_key: str = "dev-only-change-me-to-a-long-random-secret"
    jwt_alg: str = "HS256"
    access_token_expire_minutes: int = 30
    database_url: str = "sqlite:///./activity_ledger.db"

    # Seed for the first entry of the hash chain; generated on first append if unset
    chain_seed: Optional[str] = None

    # History paging
    history_default_limit: int = 50
    history_max_limit: int = 100

    # Lookback per subscription tier, -1 means unlimited
    retention_days_by_tier: dict[str, int] = {
        "free": 7,
        "pro": 30,
        "founder": 90,
        "business": -1,
    }
    default_tier: str = "free"

    # Housekeeping: activities older than this are flagged archived
    archive_after_days: int = 365

    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
