"""Data models for multi-provider bias analysis.

This module defines the request/result structures exchanged with LLM
providers, per-provider configuration, and the health and performance
snapshots reported by the orchestration layer.
"""

import hashlib
import re
import unicodedata
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


CACHED_FALLBACK_PROVIDER = "cached_fallback"
NEUTRAL_FALLBACK_PROVIDER = "neutral_fallback"
CACHED_DATABASE_PROVIDER = "cached_database"

DEGRADED_PROVIDER_TAGS = frozenset({
    CACHED_FALLBACK_PROVIDER,
    NEUTRAL_FALLBACK_PROVIDER,
    CACHED_DATABASE_PROVIDER,
})

_WHITESPACE = re.compile(r"\s+")
_FIELD_SEPARATOR = "\x1f"


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class ProviderType(str, Enum):
    """Supported bias-analysis providers."""

    OPENAI = "openai"
    GROK = "grok"
    OLLAMA = "ollama"  # Self-hosted via Ollama


class PoliticalLean(str, Enum):
    """Coarse political orientation of an article."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ProviderConfig(BaseModel):
    """Configuration for a single provider."""

    model_config = ConfigDict(frozen=True)

    provider_type: ProviderType = Field(..., description="Provider identifier")
    api_key: Optional[str] = Field(None, description="Bearer credential")
    base_url: Optional[str] = Field(None, description="API endpoint root")
    model: str = Field(..., description="Model identifier")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-attempt timeout")
    max_retries: int = Field(default=3, ge=0, description="Retries for transient failures")
    rate_limit_per_minute: int = Field(default=60, gt=0, description="Outbound request budget")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=1)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0.0)
    pull_missing_model: bool = Field(default=False, description="Ollama only: pull the model on initialize")


class FactoryConfig(BaseModel):
    """Ordered provider chain plus per-provider configuration."""

    primary_provider: ProviderType
    fallback_providers: List[ProviderType] = Field(default_factory=list)
    provider_configs: Dict[ProviderType, ProviderConfig] = Field(default_factory=dict)
    health_check_interval_seconds: float = Field(default=300.0, ge=0)
    enable_failover: bool = True

    @property
    def provider_chain(self) -> List[ProviderType]:
        """Primary followed by fallbacks, without duplicates."""
        chain: List[ProviderType] = []
        for provider_type in [self.primary_provider, *self.fallback_providers]:
            if provider_type not in chain:
                chain.append(provider_type)
        return chain


def _normalize(value: Optional[str]) -> str:
    if not value:
        return ""
    value = unicodedata.normalize("NFKC", value)
    return _WHITESPACE.sub(" ", value).strip().lower()


class BiasAnalysisRequest(BaseModel):
    """Article content submitted for bias analysis."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    summary: Optional[str] = None
    source: Optional[str] = None

    @property
    def has_content(self) -> bool:
        """True when both title and content contain non-whitespace text."""
        return bool(self.title.strip() and self.content.strip())

    def fingerprint(self) -> str:
        """Stable hash of the normalized fields, used as cache key."""
        parts = [_normalize(self.title), _normalize(self.content),
                 _normalize(self.summary), _normalize(self.source)]
        return hashlib.sha256(_FIELD_SEPARATOR.join(parts).encode("utf-8")).hexdigest()


class BiasAnalysis(BaseModel):
    """Structured bias assessment."""

    model_config = ConfigDict(frozen=True)

    political_lean: PoliticalLean
    factual_accuracy: float = Field(..., ge=0, le=100)
    emotional_tone: float = Field(..., ge=-100, le=100)
    confidence: float = Field(..., ge=0, le=100)


class BiasAnalysisResult(BaseModel):
    """Outcome of one analysis, genuine or degraded."""

    model_config = ConfigDict(frozen=True)

    bias_score: float = Field(..., ge=0, le=100)
    bias_analysis: BiasAnalysis
    provider: str = Field(..., description="Provider tag")
    confidence: float = Field(..., ge=0, le=100)
    processing_time_ms: int = Field(default=0, ge=0)

    @property
    def is_genuine(self) -> bool:
        """True when produced by a real provider rather than a fallback path."""
        return self.provider not in DEGRADED_PROVIDER_TAGS


def neutral_result() -> BiasAnalysisResult:
    """Zero-confidence placeholder used when nothing better is available."""
    return BiasAnalysisResult(
        bias_score=50,
        bias_analysis=BiasAnalysis(
            political_lean=PoliticalLean.CENTER,
            factual_accuracy=50,
            emotional_tone=0,
            confidence=0,
        ),
        provider=NEUTRAL_FALLBACK_PROVIDER,
        confidence=0,
        processing_time_ms=0,
    )


class ProviderHealth(BaseModel):
    """Point-in-time availability of a provider."""

    model_config = ConfigDict(frozen=True)

    available: bool
    response_time_ms: Optional[float] = None
    error: Optional[str] = None
    last_checked: datetime = Field(default_factory=utc_now)

    @field_serializer("last_checked")
    def serialize_last_checked(self, value: datetime) -> str:
        """Serialize datetime to ISO format."""
        return value.isoformat()


class ProviderPerformance(BaseModel):
    """Rolling performance aggregate for one provider."""

    average_response_time_ms: float = 0.0
    success_rate: float = Field(default=0.0, ge=0, le=100)
    total_requests: int = 0
    recent_errors: int = 0


class ProviderTestResult(BaseModel):
    """Outcome of a direct, fallback-free provider invocation."""

    provider: str
    success: bool
    result: Optional[BiasAnalysisResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    response_time_ms: float = 0.0


def coerce_provider_type(value: Union[str, ProviderType, None]) -> Optional[ProviderType]:
    """Map a user-supplied provider name to ``ProviderType`` or ``None``."""
    if value is None or isinstance(value, ProviderType):
        return value
    try:
        return ProviderType(value.strip().lower())
    except ValueError:
        return None


def sample_request() -> BiasAnalysisRequest:
    """Short neutral article used for provider diagnostics."""
    return BiasAnalysisRequest(
        title="Test Article: Economic Policy Changes",
        content=(
            "The government announced new economic policies that aim to reduce "
            "inflation and stimulate growth."
        ),
        summary="Government announces new economic policies.",
        source="Test Source",
    )
