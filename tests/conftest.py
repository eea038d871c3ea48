"""Global test fixtures for the newsbias test suite."""

import asyncio
from typing import Dict, List, Mapping, Optional

import pytest

from newsbias.llm.base import BaseLLMProvider
from newsbias.llm.exceptions import ProviderError, ProviderErrorType
from newsbias.llm.models import (
    BiasAnalysis,
    BiasAnalysisRequest,
    BiasAnalysisResult,
    FactoryConfig,
    PoliticalLean,
    ProviderConfig,
    ProviderType,
)


# ==========================================
# Pytest Configuration
# ==========================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "slow: Slow tests")


# ==========================================
# Helpers
# ==========================================

def make_result(
    provider: str = "openai",
    bias_score: float = 62,
    confidence: float = 80,
    lean: PoliticalLean = PoliticalLean.RIGHT,
) -> BiasAnalysisResult:
    return BiasAnalysisResult(
        bias_score=bias_score,
        bias_analysis=BiasAnalysis(
            political_lean=lean,
            factual_accuracy=75,
            emotional_tone=-10,
            confidence=confidence,
        ),
        provider=provider,
        confidence=confidence,
        processing_time_ms=120,
    )


def make_provider_config(provider_type: ProviderType, **overrides) -> ProviderConfig:
    values = {
        "provider_type": provider_type,
        "api_key": "test-key",
        "base_url": "http://test.invalid",
        "model": "test-model",
        "timeout_seconds": 5.0,
        "max_retries": 0,
        "rate_limit_per_minute": 1000,
        "retry_base_delay_seconds": 0.0,
    }
    values.update(overrides)
    return ProviderConfig(**values)


def make_factory_config(
    primary: ProviderType = ProviderType.OPENAI,
    fallbacks: Optional[List[ProviderType]] = None,
    enable_failover: bool = True,
) -> FactoryConfig:
    fallbacks = [ProviderType.GROK, ProviderType.OLLAMA] if fallbacks is None else fallbacks
    return FactoryConfig(
        primary_provider=primary,
        fallback_providers=fallbacks,
        provider_configs={t: make_provider_config(t) for t in ProviderType},
        health_check_interval_seconds=300,
        enable_failover=enable_failover,
    )


# ==========================================
# Mock LLM Provider
# ==========================================

class MockProvider(BaseLLMProvider):
    """Mock provider with scriptable failures."""

    def __init__(
        self,
        config: ProviderConfig,
        should_fail: bool = False,
        fail_count: int = 0,
        error_type: ProviderErrorType = ProviderErrorType.NETWORK,
        healthy: bool = True,
        init_error: Optional[Exception] = None,
        result: Optional[BiasAnalysisResult] = None,
        delay: float = 0.0,
    ):
        super().__init__(config)
        self.provider_type = config.provider_type
        self.name = config.provider_type.value
        self.should_fail = should_fail
        self.error_type = error_type
        self.healthy = healthy
        self.init_error = init_error
        self.result = result
        self.delay = delay
        self.call_count = 0
        self.requests: List[BiasAnalysisRequest] = []
        self._failures_remaining = fail_count

    async def _perform_initialization(self) -> None:
        if self.init_error is not None:
            raise self.init_error

    async def _perform_analysis(self, request: BiasAnalysisRequest) -> BiasAnalysisResult:
        self.call_count += 1
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.should_fail:
            raise ProviderError(self.error_type, self.name, f"Provider {self.name} failed")
        if self._failures_remaining > 0:
            self._failures_remaining -= 1
            raise ProviderError(self.error_type, self.name, f"Provider {self.name} temporary failure")

        return self.result or make_result(provider=self.name)

    async def _perform_health_check(self) -> None:
        if not self.healthy:
            raise ProviderError(ProviderErrorType.NETWORK, self.name, "unreachable")


def registry_for(providers: Mapping[ProviderType, BaseLLMProvider]) -> Dict:
    """Factory registry that hands out pre-built provider instances."""
    return {t: (lambda config, p=p: p) for t, p in providers.items()}


def make_mock_providers(**kwargs_by_name) -> Dict[ProviderType, MockProvider]:
    """Build one MockProvider per type; keyword args keyed by provider value."""
    return {
        t: MockProvider(make_provider_config(t), **kwargs_by_name.get(t.value, {}))
        for t in ProviderType
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ==========================================
# Fixtures
# ==========================================

@pytest.fixture
def sample_request() -> BiasAnalysisRequest:
    return BiasAnalysisRequest(
        title="Senate passes infrastructure bill",
        content="The Senate voted 69-30 to approve the bipartisan infrastructure package on Tuesday.",
        summary="Infrastructure bill clears the Senate.",
        source="Example Wire",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def factory_config() -> FactoryConfig:
    return make_factory_config()
