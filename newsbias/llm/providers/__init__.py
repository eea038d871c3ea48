"""Bias-analysis provider implementations."""

from .grok_provider import GrokProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "OpenAIProvider",
    "GrokProvider",
    "OllamaProvider",
]
