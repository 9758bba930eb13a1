"""Help articles: storage, search and body encoding."""

from .codec import Base64Codec, BodyCodec
from .models import ArticleDetails, ArticleSummary, GroupArticle, LevelStatistics, SearchResult
from .repository import ALL, ArticleRepository

__all__ = [
    "ALL",
    "ArticleRepository",
    "ArticleDetails",
    "ArticleSummary",
    "GroupArticle",
    "LevelStatistics",
    "SearchResult",
    "Base64Codec",
    "BodyCodec",
]
