"""Unit tests for the HTTP provider implementations."""

import json
from typing import Callable, List

import httpx
import pytest

from newsbias.llm.exceptions import ProviderError, ProviderErrorType
from newsbias.llm.models import BiasAnalysisRequest, PoliticalLean, ProviderType
from newsbias.llm.providers import GrokProvider, OllamaProvider, OpenAIProvider

from conftest import make_provider_config

GOOD_ANALYSIS = {
    "political_lean": "left",
    "factual_accuracy": 82,
    "emotional_tone": -15,
    "confidence": 77,
    "bias_score": 31.6,
}


def chat_completion(content: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"total_tokens": 42},
    }


class Recorder:
    """Transport handler replaying queued responses and recording requests."""

    def __init__(self, *responses: Callable[[httpx.Request], httpx.Response]):
        self.responses: List = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return responder(request)


def respond(status: int, body=None, headers=None) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, json=body if body is not None else {}, headers=headers)


def make_openai(recorder: Recorder, provider_cls=OpenAIProvider, provider_type=ProviderType.OPENAI, **overrides):
    config = make_provider_config(provider_type, base_url="https://api.example.test/v1", **overrides)
    client = httpx.AsyncClient(
        base_url=config.base_url,
        transport=httpx.MockTransport(recorder),
        headers={"Authorization": f"Bearer {config.api_key}"},
    )
    return provider_cls(config, http_client=client)


def make_ollama(recorder: Recorder, **overrides):
    values = {"api_key": None, "base_url": "http://ollama.test:11434", "model": "llama2:7b", **overrides}
    config = make_provider_config(ProviderType.OLLAMA, **values)
    client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(recorder))
    return OllamaProvider(config, http_client=client)


class TestOpenAIProvider:
    """OpenAI chat-completions mapping."""

    @pytest.mark.asyncio
    async def test_successful_analysis(self, sample_request):
        recorder = Recorder(respond(200, chat_completion(json.dumps(GOOD_ANALYSIS))))
        provider = make_openai(recorder)
        await provider.initialize()

        result = await provider.analyze_article(sample_request)

        assert result.provider == "openai"
        assert result.bias_score == 32
        assert result.confidence == 77
        assert result.bias_analysis.political_lean == PoliticalLean.LEFT
        assert result.bias_analysis.emotional_tone == -15
        assert result.processing_time_ms >= 0

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        payload = json.loads(request.content)
        assert payload["model"] == "test-model"
        assert payload["response_format"] == {"type": "json_object"}
        assert sample_request.title in payload["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_json_wrapped_in_prose_is_accepted(self, sample_request):
        content = "Here is my assessment:\n" + json.dumps(GOOD_ANALYSIS) + "\nThanks."
        provider = make_openai(Recorder(respond(200, chat_completion(content))))
        await provider.initialize()

        result = await provider.analyze_article(sample_request)
        assert result.bias_analysis.factual_accuracy == 82

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, expected", [
        (401, ProviderErrorType.AUTHENTICATION),
        (403, ProviderErrorType.AUTHENTICATION),
        (404, ProviderErrorType.MODEL),
        (400, ProviderErrorType.MODEL),
    ])
    async def test_non_retryable_statuses(self, sample_request, status, expected):
        recorder = Recorder(respond(status, {"error": {"message": "nope"}}))
        provider = make_openai(recorder, max_retries=3)
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)

        assert exc_info.value.error_type == expected
        assert exc_info.value.status_code == status
        assert "nope" in exc_info.value.message
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, sample_request):
        recorder = Recorder(
            respond(429, {"error": {"message": "slow down"}}, headers={"Retry-After": "0"}),
            respond(200, chat_completion(json.dumps(GOOD_ANALYSIS))),
        )
        provider = make_openai(recorder, max_retries=2)
        await provider.initialize()

        result = await provider.analyze_article(sample_request)

        assert result.provider == "openai"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, sample_request):
        recorder = Recorder(respond(503, {"error": "unavailable"}))
        provider = make_openai(recorder, max_retries=2)
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)

        assert exc_info.value.error_type == ProviderErrorType.NETWORK
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_timeout_is_classified(self, sample_request):
        def time_out(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = make_openai(Recorder(time_out))
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)
        assert exc_info.value.error_type == ProviderErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error_is_network(self, sample_request):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_openai(Recorder(refuse))
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)
        assert exc_info.value.error_type == ProviderErrorType.NETWORK

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        "I cannot answer that.",
        json.dumps({**GOOD_ANALYSIS, "bias_score": 140}),
        json.dumps({**GOOD_ANALYSIS, "political_lean": "libertarian"}),
        json.dumps({k: v for k, v in GOOD_ANALYSIS.items() if k != "confidence"}),
        "",
    ])
    async def test_malformed_payload_is_invalid_response(self, sample_request, content):
        provider = make_openai(Recorder(respond(200, chat_completion(content))))
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)
        assert exc_info.value.error_type == ProviderErrorType.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_missing_choices_is_invalid_response(self, sample_request):
        provider = make_openai(Recorder(respond(200, {"choices": []})))
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)
        assert exc_info.value.error_type == ProviderErrorType.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_analyze_before_initialize_fails(self, sample_request):
        recorder = Recorder(respond(200, chat_completion(json.dumps(GOOD_ANALYSIS))))
        provider = make_openai(recorder)

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION
        assert recorder.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title, content", [("", "body"), ("Title", "   ")])
    async def test_empty_fields_are_rejected(self, title, content):
        recorder = Recorder(respond(200, chat_completion(json.dumps(GOOD_ANALYSIS))))
        provider = make_openai(recorder)
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(BiasAnalysisRequest(title=title, content=content))
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_initialize_requires_api_key(self):
        provider = make_openai(Recorder(respond(200, {})), api_key=None)

        with pytest.raises(ProviderError) as exc_info:
            await provider.initialize()
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION
        assert not provider.is_initialized()

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self):
        provider = make_openai(Recorder(respond(200, {})))
        await provider.initialize()
        await provider.initialize()
        assert provider.is_initialized()
        assert provider.get_model_info()["initialized"] is True
        assert provider.get_model_info()["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_health_check_uses_models_endpoint(self):
        recorder = Recorder(respond(200, {"data": [{"id": "test-model"}]}))
        provider = make_openai(recorder)

        health = await provider.check_health()

        assert health.available is True
        assert health.error is None
        assert recorder.requests[0].url.path == "/v1/models"
        assert provider.get_last_health_check() == health

    @pytest.mark.asyncio
    async def test_health_check_never_raises(self):
        provider = make_openai(Recorder(respond(401, {"error": {"message": "bad key"}})))

        health = await provider.check_health()

        assert health.available is False
        assert "bad key" in health.error

    @pytest.mark.asyncio
    async def test_cleanup_resets_state(self):
        provider = make_openai(Recorder(respond(200, {})))
        await provider.initialize()

        await provider.cleanup()
        await provider.cleanup()

        assert not provider.is_initialized()


class TestGrokProvider:
    """Grok reuses the OpenAI-compatible mapping."""

    @pytest.mark.asyncio
    async def test_results_are_tagged_grok(self, sample_request):
        recorder = Recorder(respond(200, chat_completion(json.dumps(GOOD_ANALYSIS))))
        provider = make_openai(recorder, provider_cls=GrokProvider, provider_type=ProviderType.GROK, model="grok-beta")
        await provider.initialize()

        result = await provider.analyze_article(sample_request)

        assert result.provider == "grok"
        assert json.loads(recorder.requests[0].content)["model"] == "grok-beta"


class TestOllamaProvider:
    """Ollama REST API mapping."""

    TAGS = {"models": [{"name": "llama2:7b"}, {"name": "mistral:latest"}]}

    @pytest.mark.asyncio
    async def test_successful_analysis(self, sample_request):
        recorder = Recorder(
            respond(200, self.TAGS),
            respond(200, {"message": {"role": "assistant", "content": json.dumps(GOOD_ANALYSIS)}, "done": True}),
        )
        provider = make_ollama(recorder)
        await provider.initialize()

        result = await provider.analyze_article(sample_request)

        assert result.provider == "ollama"
        assert result.bias_score == 32
        chat_request = recorder.requests[1]
        assert chat_request.url.path == "/api/chat"
        payload = json.loads(chat_request.content)
        assert payload["format"] == "json"
        assert payload["stream"] is False
        assert "Authorization" not in chat_request.headers

    @pytest.mark.asyncio
    async def test_initialize_fails_when_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_ollama(Recorder(refuse))

        with pytest.raises(ProviderError) as exc_info:
            await provider.initialize()
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION

    @pytest.mark.asyncio
    async def test_missing_model_is_pulled_when_enabled(self):
        recorder = Recorder(
            respond(200, {"models": [{"name": "mistral:latest"}]}),
            respond(200, {"status": "success"}),
            respond(200, self.TAGS),
        )
        provider = make_ollama(recorder, pull_missing_model=True)

        await provider.initialize()

        assert [r.url.path for r in recorder.requests] == ["/api/tags", "/api/pull", "/api/tags"]
        pull = recorder.requests[1]
        assert pull.method == "POST"
        assert json.loads(pull.content)["name"] == "llama2:7b"

    @pytest.mark.asyncio
    async def test_missing_model_is_not_pulled_by_default(self):
        recorder = Recorder(respond(200, {"models": [{"name": "mistral:latest"}]}))
        provider = make_ollama(recorder)

        await provider.initialize()

        assert [r.url.path for r in recorder.requests] == ["/api/tags"]

    @pytest.mark.asyncio
    async def test_model_still_missing_after_pull(self):
        missing = respond(200, {"models": []})
        recorder = Recorder(missing, respond(200, {"status": "success"}), missing)
        provider = make_ollama(recorder, pull_missing_model=True)

        with pytest.raises(ProviderError) as exc_info:
            await provider.initialize()
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION
        assert "could not be pulled" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_failed_pull_is_configuration_error(self):
        recorder = Recorder(respond(200, {"models": []}), respond(500, {"error": "disk full"}))
        provider = make_ollama(recorder, pull_missing_model=True)

        with pytest.raises(ProviderError) as exc_info:
            await provider.initialize()
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_health_check_requires_model(self):
        provider = make_ollama(Recorder(respond(200, {"models": [{"name": "phi3:mini"}]})))

        health = await provider.check_health()

        assert health.available is False
        assert "llama2:7b" in health.error

    @pytest.mark.asyncio
    async def test_health_check_accepts_latest_tag(self):
        provider = make_ollama(Recorder(respond(200, self.TAGS)), model="mistral")

        health = await provider.check_health()
        assert health.available is True

    @pytest.mark.asyncio
    async def test_missing_message_is_invalid_response(self, sample_request):
        recorder = Recorder(respond(200, self.TAGS), respond(200, {"done": True}))
        provider = make_ollama(recorder)
        await provider.initialize()

        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_article(sample_request)
        assert exc_info.value.error_type == ProviderErrorType.INVALID_RESPONSE
