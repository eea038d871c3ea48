"""Persistence interface the bias analysis service depends on.

The relational model lives elsewhere; the service only needs to look up an
article, write its analysis back and list articles still awaiting one.
"""

from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from ..llm.models import BiasAnalysis


class Article(BaseModel):
    """The subset of a stored article used for bias analysis."""

    id: int
    title: str
    content: str
    summary: Optional[str] = None
    source: Optional[str] = None
    bias_score: Optional[float] = None
    bias_analysis: Optional[BiasAnalysis] = None

    @property
    def has_bias_analysis(self) -> bool:
        return self.bias_score is not None and self.bias_analysis is not None


class ArticleFilters(BaseModel):
    """Query filters understood by ``ArticleStore.find_with_filters``."""

    needs_analysis: bool = False
    source: Optional[str] = None
    bias_score_min: Optional[float] = Field(default=None, ge=0, le=100)
    bias_score_max: Optional[float] = Field(default=None, ge=0, le=100)


class ArticleStore(Protocol):
    """Async article repository."""

    async def find_by_id(self, article_id: int) -> Optional[Article]:
        ...

    async def update_bias_analysis(
        self, article_id: int, bias_score: float, bias_analysis: BiasAnalysis
    ) -> None:
        ...

    async def find_with_filters(self, filters: ArticleFilters, limit: int = 50) -> List[Article]:
        ...


class InMemoryArticleStore:
    """Dictionary-backed store for development and tests."""

    def __init__(self, articles: Optional[List[Article]] = None):
        self._articles: Dict[int, Article] = {a.id: a for a in articles or []}

    def add(self, article: Article) -> None:
        self._articles[article.id] = article

    async def find_by_id(self, article_id: int) -> Optional[Article]:
        return self._articles.get(article_id)

    async def update_bias_analysis(
        self, article_id: int, bias_score: float, bias_analysis: BiasAnalysis
    ) -> None:
        article = self._articles.get(article_id)
        if article is None:
            raise KeyError(f"Article {article_id} not found")
        self._articles[article_id] = article.model_copy(
            update={"bias_score": bias_score, "bias_analysis": bias_analysis}
        )

    async def find_with_filters(self, filters: ArticleFilters, limit: int = 50) -> List[Article]:
        matches = []
        for article in self._articles.values():
            if filters.needs_analysis and article.has_bias_analysis:
                continue
            if filters.source is not None and article.source != filters.source:
                continue
            if filters.bias_score_min is not None and (
                article.bias_score is None or article.bias_score < filters.bias_score_min
            ):
                continue
            if filters.bias_score_max is not None and (
                article.bias_score is None or article.bias_score > filters.bias_score_max
            ):
                continue
            matches.append(article)
            if len(matches) >= limit:
                break
        return matches
