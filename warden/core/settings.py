"""
WARDEN Settings

Environment-based settings for process-level options.
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "WARDEN"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # Structured configuration file (YAML or JSON)
    CONFIG_PATH: Optional[str] = None

    # Field encryption (MaskType.ENCRYPT)
    MASTER_ENCRYPTION_KEY: str = "change-me-warden-master-key"
    ENCRYPTION_ITERATIONS: int = 480000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
