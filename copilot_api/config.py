"""Environment configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Mock control (opt-in feature gate for testing)
    mock_ai_provider: bool = False  # Use mock text generation (don't call the provider)

    # Generation provider
    ai_text_base_url: str = "https://text.pollinations.ai"
    ai_image_base_url: str = "https://image.pollinations.ai/prompt"
    ai_model: str = "openai"
    ai_temperature: float = 0.7
    ai_seed: int = 42
    ai_timeout_seconds: float = 60.0

    # Response cache
    ai_cache_ttl: int = 3600  # 1 hour
    ai_image_cache_ttl: int = 86400  # 24 hours
    ai_fallback_ttl: int = 604800  # 7 days, stale copies for degraded responses
    ai_cache_max_entries: int = 2048

    # Retry and circuit breaker
    ai_max_retries: int = 3
    ai_retry_base_delay: float = 1.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: float = 60.0

    # Image defaults
    image_default_width: int = 1200
    image_default_height: int = 630

    # Auth
    jwt_secret: str = "access-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 15
    session_cache_ttl: int = 1800  # 30 minutes
    max_cached_sessions: int = 10000

    # Rate limiting (per user, falling back to client IP)
    ai_rate_limit_per_minute: int = 100

    # Server configuration
    port: int = 3001
    host: str = "0.0.0.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    environment: Literal["development", "production"] = "development"
    cors_origins: str = "*"

    # Gateway client
    api_base_url: str = "http://localhost:3001"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def cors_origin_list(self) -> list[str]:
        """Split the comma separated CORS origins."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def has_default_jwt_secret(self) -> bool:
        """Check whether the built-in development secret is still in use."""
        return self.jwt_secret == "access-secret-key-change-in-production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    if not settings.is_development and settings.has_default_jwt_secret:
        logger.warning("JWT_SECRET not set, using development default in production")
    return settings
