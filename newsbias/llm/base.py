"""Base LLM provider interface for bias analysis."""

import asyncio
import json
import logging
import random
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from .exceptions import ProviderError, ProviderErrorType
from .models import (
    BiasAnalysis,
    BiasAnalysisRequest,
    BiasAnalysisResult,
    PoliticalLean,
    ProviderConfig,
    ProviderHealth,
    ProviderType,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert media analyst specializing in detecting bias in news "
    "articles. Provide accurate, objective analysis in the requested JSON format."
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

REQUIRED_FIELDS = ("political_lean", "factual_accuracy", "emotional_tone", "confidence", "bias_score")


def build_bias_prompt(request: BiasAnalysisRequest) -> str:
    """Render the analysis prompt shared by every provider."""
    lines = [
        "Analyze the following news article for bias and provide a structured assessment:",
        "",
        f"Title: {request.title}",
        "",
        f"Content: {request.content}",
    ]
    if request.summary:
        lines += ["", f"Summary: {request.summary}"]
    if request.source:
        lines += ["", f"Source: {request.source}"]
    lines += [
        "",
        "Please analyze this article and provide:",
        "1. Political lean (left, center, right)",
        "2. Factual accuracy score (0-100, where 100 is most accurate)",
        "3. Emotional tone score (-100 to 100, where -100 is very negative, 0 is neutral, 100 is very positive)",
        "4. Overall confidence in your analysis (0-100)",
        "5. Overall bias score (0-100, where 0 is heavily biased left, 50 is neutral, 100 is heavily biased right)",
        "",
        "Respond with a JSON object containing these fields:",
        '{"political_lean": "left|center|right", "factual_accuracy": number, '
        '"emotional_tone": number, "confidence": number, "bias_score": number}',
    ]
    return "\n".join(lines)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class BaseLLMProvider(ABC):
    """Abstract base class for bias-analysis providers.

    Subclasses implement the protocol mapping only; timing, validation,
    throttling, retries and error wrapping live here.
    """

    name: str = "base"
    provider_type: ProviderType

    def __init__(self, config: ProviderConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.rate_limiter = RateLimiter(max_requests=config.rate_limit_per_minute)
        self._client = http_client
        self._owns_client = http_client is None
        self._initialized = False
        self._last_health_check: Optional[ProviderHealth] = None

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "newsbias/0.1",
        }
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url or "",
                timeout=self.config.timeout_seconds,
                headers=self._default_headers(),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _classify_http_error(self, error: Exception) -> ProviderError:
        if isinstance(error, ProviderError):
            return error

        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            detail = self._error_detail(error.response)
            retry_after = self._retry_after(error.response)
            if status in (401, 403):
                kind = ProviderErrorType.AUTHENTICATION
            elif status == 429:
                kind = ProviderErrorType.RATE_LIMIT
            elif status in (400, 404, 422):
                kind = ProviderErrorType.MODEL
            elif status >= 500:
                kind = ProviderErrorType.NETWORK
            else:
                kind = ProviderErrorType.UNKNOWN
            return ProviderError(
                kind, self.name, f"HTTP {status}: {detail}",
                status_code=status, retry_after=retry_after, cause=error,
            )

        if isinstance(error, httpx.TimeoutException):
            return ProviderError(ProviderErrorType.TIMEOUT, self.name, f"Request timed out: {error}", cause=error)

        if isinstance(error, httpx.TransportError):
            return ProviderError(ProviderErrorType.NETWORK, self.name, f"Transport error: {error}", cause=error)

        if isinstance(error, (json.JSONDecodeError, ValidationError, KeyError, IndexError, TypeError)):
            return ProviderError(
                ProviderErrorType.INVALID_RESPONSE, self.name, f"Malformed response: {error}", cause=error
            )

        return ProviderError(ProviderErrorType.UNKNOWN, self.name, str(error) or type(error).__name__, cause=error)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                return str(error.get("message", error))
            if error:
                return str(error)
        return str(data)[:200]

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[float]:
        value = response.headers.get("retry-after")
        if not value:
            return None
        try:
            return max(0.0, float(value))
        except ValueError:
            return None

    def _backoff_delay(self, attempt: int, error: ProviderError) -> float:
        """Exponential backoff with jitter, capped at the provider timeout."""
        if error.retry_after is not None:
            delay = error.retry_after
        else:
            delay = self.config.retry_base_delay_seconds * (2 ** attempt)
            delay += random.uniform(-0.1 * delay, 0.1 * delay)
        return max(0.0, min(delay, self.config.timeout_seconds))

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        retry: bool = True,
    ) -> Dict[str, Any]:
        """Issue a request and return the decoded JSON body.

        Transient failures are retried up to ``config.max_retries`` times.
        """
        attempts = self.config.max_retries + 1 if retry else 1
        last_error: Optional[ProviderError] = None

        for attempt in range(attempts):
            try:
                response = await self.client.request(method, path, json=payload)
                response.raise_for_status()
                data = response.json()
                if not isinstance(data, dict):
                    raise ProviderError(
                        ProviderErrorType.INVALID_RESPONSE, self.name, "Expected a JSON object"
                    )
                return data
            except Exception as e:
                last_error = self._classify_http_error(e)
                if not last_error.retryable or attempt == attempts - 1:
                    raise last_error
                delay = self._backoff_delay(attempt, last_error)
                logger.warning(
                    f"{self.name} request failed (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay:.2f}s: {last_error.message}"
                )
                await asyncio.sleep(delay)

        raise last_error  # pragma: no cover

    # ------------------------------------------------------------------
    # Result parsing
    # ------------------------------------------------------------------

    def parse_bias_payload(self, content: str) -> BiasAnalysisResult:
        """Convert the model's JSON answer into a result.

        Scores outside their documented ranges are rejected rather than
        clamped, since they indicate the model misread the instructions.
        """
        if not content or not content.strip():
            raise ProviderError(ProviderErrorType.INVALID_RESPONSE, self.name, "Empty model response")

        text = content.strip()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            match = _JSON_OBJECT.search(text)
            if not match:
                raise ProviderError(
                    ProviderErrorType.INVALID_RESPONSE, self.name, "No JSON object in model response"
                )
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                raise ProviderError(
                    ProviderErrorType.INVALID_RESPONSE, self.name, f"Unparseable JSON: {e}", cause=e
                )

        if not isinstance(data, dict):
            raise ProviderError(ProviderErrorType.INVALID_RESPONSE, self.name, "Expected a JSON object")

        missing = [f for f in REQUIRED_FIELDS if f not in data]
        if missing:
            raise ProviderError(
                ProviderErrorType.INVALID_RESPONSE, self.name, f"Missing required fields: {', '.join(missing)}"
            )

        try:
            lean = PoliticalLean(str(data["political_lean"]).strip().lower())
            analysis = BiasAnalysis(
                political_lean=lean,
                factual_accuracy=float(data["factual_accuracy"]),
                emotional_tone=float(data["emotional_tone"]),
                confidence=float(data["confidence"]),
            )
            return BiasAnalysisResult(
                bias_score=float(data["bias_score"]),
                bias_analysis=analysis,
                provider=self.provider_type.value,
                confidence=analysis.confidence,
            )
        except (ValueError, TypeError, ValidationError) as e:
            raise ProviderError(
                ProviderErrorType.INVALID_RESPONSE, self.name, f"Invalid bias analysis values: {e}", cause=e
            )

    # ------------------------------------------------------------------
    # Public capability
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Validate configuration and run provider-specific setup. Idempotent."""
        if self._initialized:
            return

        logger.info(f"Initializing LLM provider {self.name}")
        try:
            self._validate_config()
            await self._perform_initialization()
        except ProviderError as e:
            logger.error(f"Failed to initialize {self.name}: {e.message}")
            if e.error_type == ProviderErrorType.CONFIGURATION:
                raise
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, self.name, f"Initialization failed: {e.message}", cause=e
            )
        except Exception as e:
            logger.error(f"Failed to initialize {self.name}: {e}")
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, self.name, f"Initialization failed: {e}", cause=e
            )

        self._initialized = True
        logger.info(f"LLM provider {self.name} initialized")

    async def analyze_article(self, request: BiasAnalysisRequest) -> BiasAnalysisResult:
        """Analyze article content for bias.

        Raises:
            ProviderError: Typed failure for any unsuccessful attempt
        """
        if not self._initialized:
            raise ProviderError(ProviderErrorType.CONFIGURATION, self.name, "Provider not initialized")

        self._validate_request(request)
        start_time = time.perf_counter()

        if not await self.rate_limiter.wait(self.config.timeout_seconds):
            raise ProviderError(
                ProviderErrorType.RATE_LIMIT, self.name,
                f"Local rate limit of {self.config.rate_limit_per_minute}/min exhausted",
            )

        try:
            result = await self._perform_analysis(request)
        except Exception as e:
            error = self._classify_http_error(e)
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"Bias analysis failed for {self.name} after {elapsed_ms:.0f}ms: {error.message}")
            raise error

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        normalized = result.model_copy(update={
            "bias_score": round(_clamp(result.bias_score, 0, 100)),
            "confidence": _clamp(result.confidence, 0, 100),
            "processing_time_ms": elapsed_ms,
            "provider": self.provider_type.value,
        })
        logger.info(
            f"Bias analysis completed by {self.name}: score={normalized.bias_score}, "
            f"lean={normalized.bias_analysis.political_lean.value}, {elapsed_ms}ms"
        )
        return normalized

    async def check_health(self) -> ProviderHealth:
        """Check provider health. Never raises."""
        start_time = time.perf_counter()
        try:
            await self._perform_health_check()
            health = ProviderHealth(
                available=True,
                response_time_ms=(time.perf_counter() - start_time) * 1000,
            )
            logger.debug(f"Health check passed for {self.name}: {health.response_time_ms:.1f}ms")
        except Exception as e:
            error = self._classify_http_error(e)
            health = ProviderHealth(
                available=False,
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                error=error.message,
            )
            logger.warning(f"Health check failed for {self.name}: {error.message}")

        self._last_health_check = health
        return health

    async def cleanup(self) -> None:
        """Release provider resources. Never raises."""
        try:
            if self._initialized:
                logger.info(f"Cleaning up LLM provider {self.name}")
                await self._perform_cleanup()
        except Exception as e:
            logger.error(f"Failed to clean up {self.name}: {e}")
        finally:
            try:
                await self.close()
            except Exception as e:
                logger.error(f"Failed to close HTTP client for {self.name}: {e}")
            self._initialized = False
            self._last_health_check = None

    def is_initialized(self) -> bool:
        return self._initialized

    def get_last_health_check(self) -> Optional[ProviderHealth]:
        return self._last_health_check

    def get_model_info(self) -> Dict[str, Any]:
        """Get information about the configured model."""
        return {
            "provider": self.provider_type.value,
            "model": self.config.model,
            "base_url": self.config.base_url,
            "initialized": self._initialized,
        }

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_config(self) -> None:
        if not self.config.model or not self.config.model.strip():
            raise ProviderError(ProviderErrorType.CONFIGURATION, self.name, "Model name is required")

    def _validate_request(self, request: BiasAnalysisRequest) -> None:
        if not request.title or not request.title.strip():
            raise ProviderError(ProviderErrorType.CONFIGURATION, self.name, "Article title is required")
        if not request.content or not request.content.strip():
            raise ProviderError(ProviderErrorType.CONFIGURATION, self.name, "Article content is required")

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _perform_analysis(self, request: BiasAnalysisRequest) -> BiasAnalysisResult:
        """Run the provider-specific request/response mapping."""
        pass

    @abstractmethod
    async def _perform_health_check(self) -> None:
        """Raise if the provider is not usable."""
        pass

    async def _perform_initialization(self) -> None:
        pass

    async def _perform_cleanup(self) -> None:
        pass
