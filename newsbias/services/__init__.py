"""Service layer for bias analysis."""

from .article_store import Article, ArticleFilters, ArticleStore, InMemoryArticleStore
from .bias_analysis import BiasAnalysisService

__all__ = [
    "Article",
    "ArticleFilters",
    "ArticleStore",
    "InMemoryArticleStore",
    "BiasAnalysisService",
]
