"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Sticker Bot"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True
    PORT: int = 3000

    # ==========================================================================
    # Infrastructure
    # ==========================================================================
    # Presence of REDIS_HOST selects the distributed (Celery) queue
    REDIS_HOST: Optional[str] = None
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ==========================================================================
    # Queue Settings
    # ==========================================================================
    QUEUE_NAME: str = "stickerQueue"
    QUEUE_MIN_INTERVAL_SECONDS: float = 2.0  # At most one job start per interval
    EMBEDDED_QUEUE_DELAY_SECONDS: float = 1.0
    QUEUE_PROBE_BROKER: bool = False  # Ping the broker at startup
    JOB_LOCK_TIMEOUT_SECONDS: int = 600
    # Must stay below the Celery soft time limit (JOB_LOCK_TIMEOUT_SECONDS - 60)
    QUEUE_SLOT_WAIT_SECONDS: float = 240.0

    # ==========================================================================
    # Admission Settings
    # ==========================================================================
    DAILY_LIMIT: int = 25
    MAX_FILE_SIZE_BYTES: int = 204800  # 200KB
    RATE_LIMIT_TIMEZONE: Optional[str] = None  # None = process-local date
    IGNORED_IDENTITY_SUFFIXES: str = "@g.us"
    IGNORED_IDENTITIES: str = "status@broadcast"

    # ==========================================================================
    # Storage Settings
    # ==========================================================================
    STAGING_PATH: str = "./temp"

    # ==========================================================================
    # Pipeline Settings
    # ==========================================================================
    STICKER_CANVAS_SIZE: int = 512
    STICKER_INNER_SIZE: int = 400  # Leaves a border for the outline stroke
    OUTLINE_BLUR_RADIUS: float = 15
    OUTLINE_THRESHOLD: int = 50

    # Sticker metadata
    STICKER_PACK: str = "Sticker Bot"
    STICKER_AUTHOR: str = "Seu Nome"
    STICKER_TYPE: str = "full"  # full, crop
    STICKER_QUALITY: int = 100
    STICKER_BACKGROUND: str = "transparent"
    STICKER_EMOJIS: str = ""

    # ==========================================================================
    # Delivery Settings
    # ==========================================================================
    DELIVERY_WEBHOOK_URL: str = "http://localhost:3001/outbound"
    DELIVERY_TIMEOUT_SECONDS: float = 30.0

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def redis_url(self) -> str:
        host = self.REDIS_HOST or "localhost"
        return f"redis://{host}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def use_distributed_queue(self) -> bool:
        return bool(self.REDIS_HOST)

    @property
    def ignored_identity_suffixes(self) -> List[str]:
        return [s.strip() for s in self.IGNORED_IDENTITY_SUFFIXES.split(",") if s.strip()]

    @property
    def ignored_identities(self) -> List[str]:
        return [s.strip() for s in self.IGNORED_IDENTITIES.split(",") if s.strip()]

    @property
    def sticker_emojis(self) -> List[str]:
        return [s.strip() for s in self.STICKER_EMOJIS.split(",") if s.strip()]


# Global settings instance
settings = Settings()

# Ensure staging directory exists
Path(settings.STAGING_PATH).mkdir(parents=True, exist_ok=True)
