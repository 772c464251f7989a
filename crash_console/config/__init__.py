"""
Application Settings
Load from environment variables
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = True
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CONFIG_DIR: str = str(_DEFAULT_CONFIG_DIR)

    # ======================
    # Logging
    # ======================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_MAX_BYTES: int = 10_485_760
    LOG_BACKUP_COUNT: int = 5

    # ======================
    # Pricing backend
    # ======================
    PRICING_API_BASE_URL: str = "http://localhost:5000/api"
    PRICING_API_TOKEN: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # ======================
    # Market crash timing
    # ======================
    CRASH_POLL_INTERVAL_SECONDS: float = 10.0
    CRASH_TICK_SECONDS: float = 1.0
    CRASH_EXPIRY_RECHECK_SECONDS: float = 5.0

    # ======================
    # Notifications
    # ======================
    NOTIFICATION_FEED_SIZE: int = 50
    TELEGRAM_ENABLED: bool = False
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
