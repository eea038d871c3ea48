"""newsbias: resilient multi-provider political bias analysis for news articles.

Articles are scored by one of several LLM providers with automatic failover,
circuit breaking, result caching and a degraded answer when every provider
is unavailable.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
