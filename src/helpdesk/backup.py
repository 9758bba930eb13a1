"""
Backup documents for articles and groups.

Backups are JSON files validated with pydantic on restore, so a truncated
or hand-edited file is rejected before anything in the store is touched.
"""

from pathlib import Path
from typing import List, Literal, Optional, Type, TypeVar

import pydantic
from loguru import logger
from pydantic import BaseModel

from .errors import PersistenceError


BACKUP_FORMAT_VERSION = 1


class ArticleRecord(BaseModel):
    id: int
    title: str
    authors: str = ""
    abstract_text: str = ""
    keywords: str = ""
    body: str = ""
    references: str = ""
    is_encrypted: bool = False
    can_view: Optional[bool] = None
    can_admin: Optional[bool] = None


class ArticleBackup(BaseModel):
    version: int = BACKUP_FORMAT_VERSION
    articles: List[ArticleRecord] = []


class MembershipRecord(BaseModel):
    username: str
    role: str = ""
    can_view: bool = False
    can_admin: bool = False


class GroupRecord(BaseModel):
    group_id: str
    group_name: str
    group_type: Literal["Special", "General"] = "General"
    members: List[MembershipRecord] = []
    article_ids: List[int] = []


class GroupBackup(BaseModel):
    version: int = BACKUP_FORMAT_VERSION
    groups: List[GroupRecord] = []


DocumentT = TypeVar("DocumentT", bound=BaseModel)


def write_backup(path: Path, document: BaseModel) -> None:
    """
    Raises:
        PersistenceError: If the file cannot be written
    """
    try:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document.model_dump_json(indent=2), encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write backup {path}: {e}")
        raise PersistenceError("backing up", e) from e
    logger.info(f"Backup written to {path}")


def read_backup(path: Path, document_type: Type[DocumentT]) -> DocumentT:
    """
    Raises:
        PersistenceError: If the file is missing, unreadable or malformed
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
        return document_type.model_validate_json(raw)
    except OSError as e:
        logger.error(f"Failed to read backup {path}: {e}")
        raise PersistenceError("restoring", e) from e
    except pydantic.ValidationError as e:
        logger.error(f"Malformed backup {path}: {e}")
        raise PersistenceError("restoring", e) from e
