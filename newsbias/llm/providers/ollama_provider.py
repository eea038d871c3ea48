"""Ollama provider implementation.

Ollama runs models locally and exposes a small REST API. Analysis goes
through ``/api/chat`` with JSON output enforced; health checks list the
pulled models via ``/api/tags`` and verify the configured one is present.
With ``pull_missing_model`` set, a missing model is pulled during
initialization.
"""

import logging
from typing import Any, Dict, List

from ..base import SYSTEM_PROMPT, BaseLLMProvider, build_bias_prompt
from ..exceptions import ProviderError, ProviderErrorType
from ..models import BiasAnalysisRequest, BiasAnalysisResult, ProviderType

logger = logging.getLogger(__name__)

# Pulling downloads gigabytes; the per-request timeout does not apply
PULL_TIMEOUT_SECONDS = 300.0


class OllamaProvider(BaseLLMProvider):
    """Ollama local LLM provider implementation."""

    name = "ollama"
    provider_type = ProviderType.OLLAMA

    def _validate_config(self) -> None:
        super()._validate_config()
        if not self.config.base_url:
            raise ProviderError(ProviderErrorType.CONFIGURATION, self.name, "Ollama base URL is required")

    async def _list_models(self) -> List[str]:
        data = await self._request_json("GET", "/api/tags", retry=False)
        return [m.get("name", "") for m in data.get("models") or []]

    def _has_model(self, models: List[str]) -> bool:
        wanted = self.config.model
        # Ollama reports untagged models with an implicit ":latest"
        return wanted in models or f"{wanted}:latest" in models

    async def _pull_model(self) -> None:
        logger.info(f"Pulling Ollama model {self.config.model}")
        response = await self.client.post(
            "/api/pull",
            json={"name": self.config.model, "stream": False},
            timeout=PULL_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        logger.info(f"Pulled Ollama model {self.config.model}")

    async def _perform_initialization(self) -> None:
        models = await self._list_models()
        logger.info(f"Ollama server reachable at {self.config.base_url}")
        if self._has_model(models):
            return

        if not self.config.pull_missing_model:
            # Health checks report the model missing until it is pulled
            logger.warning(f"Model {self.config.model} is not pulled on the Ollama server")
            return

        await self._pull_model()
        if not self._has_model(await self._list_models()):
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, self.name, f"Model {self.config.model} could not be pulled"
            )

    async def _perform_health_check(self) -> None:
        if not self._has_model(await self._list_models()):
            raise ProviderError(
                ProviderErrorType.MODEL, self.name,
                f"Model {self.config.model} is not available on the Ollama server",
            )

    def _build_payload(self, request: BiasAnalysisRequest) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_bias_prompt(request)},
            ],
            "format": "json",
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }

    async def _perform_analysis(self, request: BiasAnalysisRequest) -> BiasAnalysisResult:
        data = await self._request_json("POST", "/api/chat", self._build_payload(request))
        message = data.get("message") or {}
        content = message.get("content")
        if content is None:
            raise ProviderError(ProviderErrorType.INVALID_RESPONSE, self.name, "Response has no message content")
        return self.parse_bias_payload(content)
