"""Provider factory: builds and owns one provider instance per configured type."""

import logging
from typing import Callable, Dict, List, Mapping, Optional

from .base import BaseLLMProvider
from .exceptions import ProviderError, ProviderErrorType
from .models import FactoryConfig, ProviderConfig, ProviderType
from .providers import GrokProvider, OllamaProvider, OpenAIProvider

logger = logging.getLogger(__name__)

ProviderConstructor = Callable[[ProviderConfig], BaseLLMProvider]

DEFAULT_REGISTRY: Dict[ProviderType, ProviderConstructor] = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.GROK: GrokProvider,
    ProviderType.OLLAMA: OllamaProvider,
}


class ProviderFactory:
    """Creates, initializes and looks up providers.

    Explicitly constructed and passed to whoever needs it; there is no
    process-wide instance.
    """

    def __init__(
        self,
        config: Optional[FactoryConfig],
        registry: Optional[Mapping[ProviderType, ProviderConstructor]] = None,
    ):
        if config is None:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, "factory", "Factory configuration is required"
            )
        self.config = config
        self.registry: Dict[ProviderType, ProviderConstructor] = dict(registry or DEFAULT_REGISTRY)
        self._providers: Dict[ProviderType, BaseLLMProvider] = {}
        self._initialization_errors: Dict[ProviderType, str] = {}
        self._initialized = False

    def _create(self, provider_type: ProviderType) -> BaseLLMProvider:
        constructor = self.registry.get(provider_type)
        if constructor is None:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, provider_type.value, f"No provider registered for {provider_type.value}"
            )
        provider_config = self.config.provider_configs.get(provider_type)
        if provider_config is None:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, provider_type.value, f"No configuration for {provider_type.value}"
            )
        return constructor(provider_config)

    async def initialize(self) -> None:
        """Initialize every provider in the chain.

        A provider that fails is recorded and skipped; the others still start.
        """
        if self._initialized:
            return

        for provider_type in self.config.provider_chain:
            try:
                provider = self._create(provider_type)
                await provider.initialize()
            except Exception as e:
                message = e.message if isinstance(e, ProviderError) else str(e)
                self._initialization_errors[provider_type] = message
                logger.error(f"Failed to initialize provider {provider_type.value}: {message}")
                continue

            self._providers[provider_type] = provider
            self._initialization_errors.pop(provider_type, None)

        self._initialized = True
        logger.info(
            f"Provider factory initialized: {len(self._providers)} available "
            f"({', '.join(p.value for p in self._providers) or 'none'})"
        )

    def get_provider(self, provider_type: ProviderType) -> Optional[BaseLLMProvider]:
        provider = self._providers.get(provider_type)
        if provider is None or not provider.is_initialized():
            return None
        return provider

    def get_all_providers(self) -> Dict[ProviderType, BaseLLMProvider]:
        return dict(self._providers)

    def get_available_providers(self) -> List[ProviderType]:
        return [t for t, p in self._providers.items() if p.is_initialized()]

    def get_initialization_errors(self) -> Dict[ProviderType, str]:
        return dict(self._initialization_errors)

    def is_initialized(self) -> bool:
        return self._initialized

    async def cleanup(self) -> None:
        """Tear down every provider. Never raises."""
        for provider_type, provider in list(self._providers.items()):
            try:
                await provider.cleanup()
            except Exception as e:
                logger.error(f"Failed to clean up provider {provider_type.value}: {e}")
        self._providers.clear()
        self._initialization_errors.clear()
        self._initialized = False
        logger.info("Provider factory cleaned up")
