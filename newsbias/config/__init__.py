"""Configuration for providers and the bias analysis service."""

from .provider_config import PROVIDER_DEFAULTS, ProviderConfigManager
from .settings import ServiceSettings, setup_logging

__all__ = [
    "PROVIDER_DEFAULTS",
    "ProviderConfigManager",
    "ServiceSettings",
    "setup_logging",
]
