from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Expiry sweeper period
    SWEEP_INTERVAL_SECONDS: float = 30.0

    # Proximity search
    DEFAULT_RADIUS_KM: float = 50.0

    # Reference point used when no device location is available (Manila)
    DEFAULT_LATITUDE: float = 14.676
    DEFAULT_LONGITUDE: float = 121.0437


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Global settings instance
settings = get_settings()
