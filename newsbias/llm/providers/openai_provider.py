"""OpenAI provider implementation for bias analysis."""

import logging
from typing import Any, Dict

from ..base import SYSTEM_PROMPT, BaseLLMProvider, build_bias_prompt
from ..exceptions import ProviderError, ProviderErrorType
from ..models import BiasAnalysisRequest, BiasAnalysisResult, ProviderType

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat-completions provider."""

    name = "openai"
    provider_type = ProviderType.OPENAI

    def _validate_config(self) -> None:
        super()._validate_config()
        if not self.config.api_key:
            raise ProviderError(
                ProviderErrorType.CONFIGURATION, self.name, f"{self.name} API key is required"
            )

    def _build_payload(self, request: BiasAnalysisRequest) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_bias_prompt(request)},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "response_format": {"type": "json_object"},
        }

    async def _perform_analysis(self, request: BiasAnalysisRequest) -> BiasAnalysisResult:
        data = await self._request_json("POST", "/chat/completions", self._build_payload(request))

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(ProviderErrorType.INVALID_RESPONSE, self.name, "Response has no choices")

        content = (choices[0].get("message") or {}).get("content")
        usage = data.get("usage") or {}
        logger.debug(f"{self.name} response received: {usage.get('total_tokens', 0)} tokens")
        return self.parse_bias_payload(content or "")

    async def _perform_health_check(self) -> None:
        await self._request_json("GET", "/models", retry=False)
