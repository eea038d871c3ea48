"""Service-level settings and logging setup."""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ServiceSettings(BaseSettings):
    """Tunables for the bias analysis service.

    All values can be overridden via environment variables with BIAS_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix="BIAS_", populate_by_name=True, extra="ignore")

    # Circuit breaker settings
    circuit_failure_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures before a provider's circuit opens"
    )
    circuit_failure_window_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Failures older than this no longer count toward the threshold"
    )
    circuit_cooldown_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Seconds an open circuit waits before allowing a trial request"
    )

    # Fallback settings
    cached_confidence_penalty: float = Field(
        default=20.0,
        ge=0,
        le=100,
        description="Confidence subtracted from a cached result served after total failure"
    )

    # Cache settings
    cache_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        gt=0,
        description="Lifetime of fresh cached analyses"
    )
    stale_cache_ttl_seconds: int = Field(
        default=30 * 24 * 3600,
        gt=0,
        description="Lifetime of the copy kept for outage fallback"
    )
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_URL", "BIAS_REDIS_URL"),
        description="Redis cache URL; in-process cache when unset"
    )

    # Batch and health settings
    batch_concurrency: int = Field(
        default=5,
        ge=1,
        description="Maximum articles analyzed concurrently in a batch"
    )
    health_check_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a single provider health check"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(default=None, description="Optional rotating log file path")
    log_max_file_size_mb: int = 50
    log_backup_count: int = 5


def setup_logging(settings: ServiceSettings) -> None:
    """Set up logging based on settings.

    Args:
        settings: Service settings instance
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if settings.log_file:
        log_file = Path(settings.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=settings.log_max_file_size_mb * 1024 * 1024,
            backupCount=settings.log_backup_count
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = handlers

    logger.debug("Logging configured successfully")
