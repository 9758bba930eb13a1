"""
Article data models.
"""

from dataclasses import dataclass


# Keyword markers counted by level statistics, in display order
LEVELS = ("beginner", "intermediate", "advanced", "expert")

# Sentinel shown instead of the body when a member lacks view rights
NO_PERMISSION = "No Permission"


@dataclass
class ArticleSummary:
    """
    One row of the article list.

    Attributes:
        display_id: Gap-free 1..N position by creation order
        id: Internal generated id
        title: Article title
        authors: Article authors
    """
    display_id: int
    id: int
    title: str
    authors: str

    def __str__(self) -> str:
        return f"ID: {self.display_id}, Title: {self.title}, Authors: {self.authors}"


@dataclass
class ArticleDetails:
    """
    A full article with its body already decoded.
    """
    display_id: int
    id: int
    title: str
    authors: str
    abstract_text: str
    keywords: str
    body: str
    references: str
    is_encrypted: bool

    def __str__(self) -> str:
        return (
            f"ID: {self.display_id}\n"
            f"Title: {self.title}\n"
            f"Authors: {self.authors}\n"
            f"Abstract: {self.abstract_text}\n"
            f"Keywords: {self.keywords}\n"
            f"Body: {self.body}\n"
            f"References: {self.references}"
        )


@dataclass
class SearchResult:
    sequence: int
    id: int
    title: str
    authors: str
    abstract_text: str
    keywords: str

    def __str__(self) -> str:
        return (
            f"Seq: {self.sequence}, Title: {self.title}, "
            f"Authors: {self.authors}, Abstract: {self.abstract_text}"
        )


@dataclass
class LevelStatistics:
    """
    Number of articles whose keywords mention each level.

    Levels are not exclusive; one article can count towards several.
    """
    beginner: int = 0
    intermediate: int = 0
    advanced: int = 0
    expert: int = 0

    def __str__(self) -> str:
        return (
            f"Beginner: {self.beginner}, Intermediate: {self.intermediate}, "
            f"Advanced: {self.advanced}, Expert: {self.expert}"
        )


@dataclass
class GroupArticle:
    """
    An article as seen by one member of a group.

    ``body`` holds NO_PERMISSION when the member cannot view.
    """
    id: int
    title: str
    body: str
