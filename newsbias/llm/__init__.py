"""Multi-provider LLM integration for bias analysis.

This package provides:
- Provider abstraction layer (OpenAI, Grok, Ollama)
- Provider factory and background health monitoring
- Circuit-breaker failover with cached and neutral fallbacks
- Request/result models and the provider error taxonomy
"""

from .base import BaseLLMProvider
from .circuit_breaker import CircuitBreaker, CircuitPermit, CircuitState
from .exceptions import LLMError, ProviderError, ProviderErrorType
from .factory import DEFAULT_REGISTRY, ProviderFactory
from .fallback_manager import ProviderFallbackManager
from .health_monitor import ProviderHealthMonitor
from .models import (
    BiasAnalysis,
    BiasAnalysisRequest,
    BiasAnalysisResult,
    FactoryConfig,
    PoliticalLean,
    ProviderConfig,
    ProviderHealth,
    ProviderPerformance,
    ProviderTestResult,
    ProviderType,
)
from .providers import GrokProvider, OllamaProvider, OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "CircuitBreaker",
    "CircuitPermit",
    "CircuitState",
    "LLMError",
    "ProviderError",
    "ProviderErrorType",
    "DEFAULT_REGISTRY",
    "ProviderFactory",
    "ProviderFallbackManager",
    "ProviderHealthMonitor",
    "BiasAnalysis",
    "BiasAnalysisRequest",
    "BiasAnalysisResult",
    "FactoryConfig",
    "PoliticalLean",
    "ProviderConfig",
    "ProviderHealth",
    "ProviderPerformance",
    "ProviderTestResult",
    "ProviderType",
    "GrokProvider",
    "OllamaProvider",
    "OpenAIProvider",
]
