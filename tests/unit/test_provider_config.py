"""Unit tests for ProviderConfigManager."""

import logging

import pytest

from newsbias.config.provider_config import ProviderConfigManager
from newsbias.llm.exceptions import ProviderError, ProviderErrorType
from newsbias.llm.models import ProviderType


class TestDefaults:
    """Configuration with an empty environment."""

    def test_default_chain(self):
        manager = ProviderConfigManager(environ={})
        assert manager.get_primary_provider() == ProviderType.OPENAI
        # The primary is removed from the fallback list
        assert manager.get_fallback_providers() == [ProviderType.OLLAMA]

    @pytest.mark.parametrize(
        "provider_type, base_url, model, timeout, retries, rate",
        [
            (ProviderType.OPENAI, "https://api.openai.com/v1", "gpt-3.5-turbo", 30, 3, 60),
            (ProviderType.GROK, "https://api.x.ai/v1", "grok-beta", 30, 3, 60),
            (ProviderType.OLLAMA, "http://localhost:11434", "llama2:7b", 60, 2, 30),
        ],
    )
    def test_provider_defaults(self, provider_type, base_url, model, timeout, retries, rate):
        config = ProviderConfigManager(environ={}).get_provider_config(provider_type)
        assert config.base_url == base_url
        assert config.model == model
        assert config.timeout_seconds == timeout
        assert config.max_retries == retries
        assert config.rate_limit_per_minute == rate
        assert config.api_key is None

    def test_failover_and_interval_defaults(self):
        config = ProviderConfigManager(environ={}).get_factory_config()
        assert config.enable_failover is True
        assert config.health_check_interval_seconds == 300


class TestEnvironmentOverrides:

    def test_overrides_are_applied(self):
        manager = ProviderConfigManager(environ={
            "BIAS_ANALYSIS_PROVIDER": "grok",
            "BIAS_ANALYSIS_FALLBACK_PROVIDERS": "ollama, openai,ollama",
            "GROK_API_KEY": "xai-key",
            "GROK_MODEL": "grok-2",
            "GROK_TIMEOUT": "12.5",
            "GROK_MAX_RETRIES": "0",
            "GROK_RATE_LIMIT": "10",
            "LLM_ENABLE_FAILOVER": "false",
            "LLM_HEALTH_CHECK_INTERVAL": "60",
        })
        assert manager.get_primary_provider() == ProviderType.GROK
        assert manager.get_fallback_providers() == [ProviderType.OLLAMA, ProviderType.OPENAI]

        grok = manager.get_provider_config(ProviderType.GROK)
        assert grok.api_key == "xai-key"
        assert grok.model == "grok-2"
        assert grok.timeout_seconds == 12.5
        assert grok.max_retries == 0
        assert grok.rate_limit_per_minute == 10

        factory_config = manager.get_factory_config()
        assert factory_config.enable_failover is False
        assert factory_config.health_check_interval_seconds == 60

    @pytest.mark.parametrize("name, value", [
        ("OPENAI_TIMEOUT", "soon"),
        ("OPENAI_TIMEOUT", "-5"),
        ("OPENAI_TIMEOUT", "0"),
        ("OPENAI_RATE_LIMIT", "0"),
        ("OPENAI_MAX_RETRIES", "-1"),
        ("OPENAI_MAX_RETRIES", "two"),
    ])
    def test_invalid_numbers_revert_to_default(self, name, value, caplog):
        with caplog.at_level(logging.WARNING):
            config = ProviderConfigManager(environ={name: value}).get_provider_config(ProviderType.OPENAI)

        assert config.timeout_seconds == 30
        assert config.max_retries == 3
        assert config.rate_limit_per_minute == 60
        assert name in caplog.text

    def test_ollama_model_pull_is_opt_in(self):
        default = ProviderConfigManager(environ={}).get_provider_config(ProviderType.OLLAMA)
        enabled = ProviderConfigManager(environ={"OLLAMA_PULL_MODEL": "true"}).get_provider_config(
            ProviderType.OLLAMA
        )

        assert default.pull_missing_model is False
        assert enabled.pull_missing_model is True

    def test_unknown_primary_is_rejected(self):
        with pytest.raises(ProviderError) as exc_info:
            ProviderConfigManager(environ={"BIAS_ANALYSIS_PROVIDER": "claude"})
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION

    def test_unknown_fallback_is_rejected(self):
        with pytest.raises(ProviderError) as exc_info:
            ProviderConfigManager(environ={"BIAS_ANALYSIS_FALLBACK_PROVIDERS": "ollama,bard"})
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION

    def test_environment_read_only_on_reload(self):
        environ = {"OPENAI_MODEL": "gpt-4o-mini"}
        manager = ProviderConfigManager(environ=environ)
        environ["OPENAI_MODEL"] = "gpt-4o"
        assert manager.get_provider_config(ProviderType.OPENAI).model == "gpt-4o-mini"

        manager.reload_configuration()
        assert manager.get_provider_config(ProviderType.OPENAI).model == "gpt-4o"


class TestConfiguredProviders:

    def test_keyed_providers_need_api_key(self):
        manager = ProviderConfigManager(environ={"GROK_API_KEY": "k"})
        assert not manager.is_provider_configured(ProviderType.OPENAI)
        assert manager.is_provider_configured(ProviderType.GROK)
        # Ollama only needs its endpoint, which has a default
        assert manager.is_provider_configured(ProviderType.OLLAMA)
        assert manager.get_configured_providers() == [ProviderType.GROK, ProviderType.OLLAMA]

    def test_validate_fails_without_primary_credentials(self):
        manager = ProviderConfigManager(environ={})
        with pytest.raises(ProviderError) as exc_info:
            manager.validate_configuration()
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION

    def test_validate_passes_with_primary_credentials(self):
        ProviderConfigManager(environ={"OPENAI_API_KEY": "sk-test"}).validate_configuration()

    def test_summary_never_contains_api_keys(self):
        manager = ProviderConfigManager(environ={"OPENAI_API_KEY": "sk-secret"})
        summary = manager.get_config_summary()
        assert "sk-secret" not in str(summary)
        assert summary["providers"]["openai"]["api_key_configured"] is True
        assert summary["providers"]["grok"]["api_key_configured"] is False


class TestUpdates:

    def test_set_primary_removes_it_from_fallbacks(self):
        manager = ProviderConfigManager(environ={"BIAS_ANALYSIS_FALLBACK_PROVIDERS": "grok,ollama"})
        manager.set_primary_provider(ProviderType.GROK)
        assert manager.get_primary_provider() == ProviderType.GROK
        assert manager.get_fallback_providers() == [ProviderType.OLLAMA]

    def test_set_fallbacks_deduplicates(self):
        manager = ProviderConfigManager(environ={})
        manager.set_fallback_providers([ProviderType.GROK, ProviderType.OPENAI, ProviderType.GROK])
        assert manager.get_fallback_providers() == [ProviderType.GROK]

    def test_update_provider_config(self):
        manager = ProviderConfigManager(environ={})
        updated = manager.update_provider_config(ProviderType.OLLAMA, model="mistral:7b")
        assert updated.model == "mistral:7b"
        assert manager.get_provider_config(ProviderType.OLLAMA).model == "mistral:7b"

    def test_invalid_update_is_rejected(self):
        manager = ProviderConfigManager(environ={})
        with pytest.raises(ProviderError) as exc_info:
            manager.update_provider_config(ProviderType.OLLAMA, timeout_seconds=0)
        assert exc_info.value.error_type == ProviderErrorType.CONFIGURATION
        assert manager.get_provider_config(ProviderType.OLLAMA).timeout_seconds == 60
