"""Provider configuration loaded from the environment.

Handles environment variable parsing, defaults and validation for every
supported provider. The environment is read at construction and on an
explicit ``reload_configuration()`` only.
"""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ..llm.exceptions import ProviderError, ProviderErrorType
from ..llm.models import FactoryConfig, ProviderConfig, ProviderType

logger = logging.getLogger(__name__)

CONFIG_SOURCE = "config"

PROVIDER_DEFAULTS: Dict[ProviderType, Dict[str, Any]] = {
    ProviderType.OPENAI: {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-3.5-turbo",
        "timeout_seconds": 30.0,
        "max_retries": 3,
        "rate_limit_per_minute": 60,
    },
    ProviderType.GROK: {
        "base_url": "https://api.x.ai/v1",
        "model": "grok-beta",
        "timeout_seconds": 30.0,
        "max_retries": 3,
        "rate_limit_per_minute": 60,
    },
    ProviderType.OLLAMA: {
        "base_url": "http://localhost:11434",
        "model": "llama2:7b",
        "timeout_seconds": 60.0,
        "max_retries": 2,
        "rate_limit_per_minute": 30,
    },
}

# Providers that authenticate with a bearer key
KEYED_PROVIDERS = frozenset({ProviderType.OPENAI, ProviderType.GROK})

DEFAULT_PRIMARY = "openai"
DEFAULT_FALLBACKS = "openai,ollama"
DEFAULT_HEALTH_CHECK_INTERVAL = 300.0


def _parse_provider_type(value: str) -> ProviderType:
    try:
        return ProviderType(value.strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in ProviderType)
        raise ProviderError(
            ProviderErrorType.CONFIGURATION,
            CONFIG_SOURCE,
            f"Invalid provider type: {value!r}. Valid types: {valid}",
        )


class ProviderConfigManager:
    """Owns the provider chain and per-provider configuration."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ
        self._config = self._load_from_environment()

    # ------------------------------------------------------------------
    # Environment parsing
    # ------------------------------------------------------------------

    def _env(self, name: str) -> Optional[str]:
        value = self._environ.get(name)
        if value is None or not value.strip():
            return None
        return value.strip()

    def _parse_number(self, name: str, default, cast, allow_zero: bool):
        raw = self._env(name)
        if raw is None:
            return default
        try:
            value = cast(raw)
        except ValueError:
            value = None
        if value is None or not (value > 0 or (allow_zero and value == 0)):
            logger.warning(f"Invalid value {raw!r} for {name}, using default {default}")
            return default
        return value

    def _parse_flag(self, name: str, default: bool) -> bool:
        raw = self._env(name)
        if raw is None:
            return default
        return raw.lower() not in ("false", "0", "no")

    def _load_provider_config(self, provider_type: ProviderType) -> ProviderConfig:
        prefix = provider_type.value.upper()
        defaults = PROVIDER_DEFAULTS[provider_type]
        return ProviderConfig(
            provider_type=provider_type,
            api_key=self._env(f"{prefix}_API_KEY"),
            base_url=self._env(f"{prefix}_BASE_URL") or defaults["base_url"],
            model=self._env(f"{prefix}_MODEL") or defaults["model"],
            timeout_seconds=self._parse_number(
                f"{prefix}_TIMEOUT", defaults["timeout_seconds"], float, allow_zero=False
            ),
            max_retries=self._parse_number(
                f"{prefix}_MAX_RETRIES", defaults["max_retries"], int, allow_zero=True
            ),
            rate_limit_per_minute=self._parse_number(
                f"{prefix}_RATE_LIMIT", defaults["rate_limit_per_minute"], int, allow_zero=False
            ),
            pull_missing_model=self._parse_flag(f"{prefix}_PULL_MODEL", default=False),
        )

    def _load_from_environment(self) -> FactoryConfig:
        primary = _parse_provider_type(self._env("BIAS_ANALYSIS_PROVIDER") or DEFAULT_PRIMARY)

        fallbacks: List[ProviderType] = []
        raw_fallbacks = self._environ.get("BIAS_ANALYSIS_FALLBACK_PROVIDERS", DEFAULT_FALLBACKS)
        for name in raw_fallbacks.split(","):
            if not name.strip():
                continue
            provider_type = _parse_provider_type(name)
            if provider_type != primary and provider_type not in fallbacks:
                fallbacks.append(provider_type)

        return FactoryConfig(
            primary_provider=primary,
            fallback_providers=fallbacks,
            provider_configs={t: self._load_provider_config(t) for t in ProviderType},
            health_check_interval_seconds=self._parse_number(
                "LLM_HEALTH_CHECK_INTERVAL", DEFAULT_HEALTH_CHECK_INTERVAL, float, allow_zero=False
            ),
            enable_failover=self._parse_flag("LLM_ENABLE_FAILOVER", default=True),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_factory_config(self) -> FactoryConfig:
        return self._config.model_copy(deep=True)

    def get_provider_config(self, provider_type: ProviderType) -> ProviderConfig:
        config = self._config.provider_configs.get(provider_type)
        if config is None:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION,
                CONFIG_SOURCE,
                f"No configuration found for provider: {provider_type.value}",
            )
        return config

    def get_primary_provider(self) -> ProviderType:
        return self._config.primary_provider

    def get_fallback_providers(self) -> List[ProviderType]:
        return list(self._config.fallback_providers)

    def is_provider_configured(self, provider_type: ProviderType) -> bool:
        """Check that the credential or endpoint and a model are present."""
        config = self._config.provider_configs.get(provider_type)
        if config is None or not config.model:
            return False
        if provider_type in KEYED_PROVIDERS:
            return bool(config.api_key)
        return bool(config.base_url)

    def get_configured_providers(self) -> List[ProviderType]:
        return [t for t in self._config.provider_configs if self.is_provider_configured(t)]

    def validate_configuration(self) -> None:
        """Raise when the service could not analyze anything with this config."""
        primary = self._config.primary_provider
        if not self.is_provider_configured(primary):
            raise ProviderError(
                ProviderErrorType.CONFIGURATION,
                CONFIG_SOURCE,
                f"Primary provider {primary.value} is not configured",
            )

        for provider_type in self._config.fallback_providers:
            if not self.is_provider_configured(provider_type):
                logger.warning(f"Fallback provider {provider_type.value} is not configured and will be skipped")

        logger.info("Provider configuration validation passed")

    def get_config_summary(self) -> Dict[str, Any]:
        """Summary for logging and diagnostics. API keys are never included."""
        return {
            "primary_provider": self._config.primary_provider.value,
            "fallback_providers": [t.value for t in self._config.fallback_providers],
            "configured_providers": [t.value for t in self.get_configured_providers()],
            "health_check_interval_seconds": self._config.health_check_interval_seconds,
            "enable_failover": self._config.enable_failover,
            "providers": {
                t.value: {
                    **c.model_dump(mode="json", exclude={"api_key"}),
                    "api_key_configured": bool(c.api_key),
                }
                for t, c in self._config.provider_configs.items()
            },
        }

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def set_primary_provider(self, provider_type: ProviderType) -> None:
        if provider_type not in self._config.provider_configs:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION,
                CONFIG_SOURCE,
                f"Cannot set unconfigured provider as primary: {provider_type.value}",
            )
        fallbacks = [t for t in self._config.fallback_providers if t != provider_type]
        self._config = self._config.model_copy(
            update={"primary_provider": provider_type, "fallback_providers": fallbacks}
        )
        logger.info(f"Primary provider updated to {provider_type.value}")

    def set_fallback_providers(self, providers: List[ProviderType]) -> None:
        fallbacks: List[ProviderType] = []
        for provider_type in providers:
            if provider_type not in self._config.provider_configs:
                raise ProviderError(
                    ProviderErrorType.CONFIGURATION,
                    CONFIG_SOURCE,
                    f"Cannot set unconfigured provider as fallback: {provider_type.value}",
                )
            if provider_type != self._config.primary_provider and provider_type not in fallbacks:
                fallbacks.append(provider_type)
        self._config = self._config.model_copy(update={"fallback_providers": fallbacks})
        logger.info(f"Fallback providers updated to {[t.value for t in fallbacks]}")

    def update_provider_config(self, provider_type: ProviderType, **updates: Any) -> ProviderConfig:
        current = self.get_provider_config(provider_type)
        try:
            updated = ProviderConfig.model_validate({**current.model_dump(), **updates})
        except ValidationError as e:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION,
                CONFIG_SOURCE,
                f"Invalid configuration for {provider_type.value}: {e}",
                cause=e,
            )
        configs = dict(self._config.provider_configs)
        configs[provider_type] = updated
        self._config = self._config.model_copy(update={"provider_configs": configs})
        logger.info(f"Provider configuration updated for {provider_type.value}: {sorted(updates)}")
        return updated

    def reload_configuration(self) -> None:
        logger.info("Reloading provider configuration from environment")
        self._config = self._load_from_environment()
        logger.info("Provider configuration reloaded successfully")
