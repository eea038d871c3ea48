"""Grok (x.ai) provider implementation.

x.ai exposes an OpenAI-compatible API, so only the identity and the
defaults differ.
"""

from ..models import ProviderType
from .openai_provider import OpenAIProvider


class GrokProvider(OpenAIProvider):
    """x.ai Grok provider."""

    name = "grok"
    provider_type = ProviderType.GROK
