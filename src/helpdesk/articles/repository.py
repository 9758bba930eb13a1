"""
Article repository.

CRUD over articles, display-id resolution, search, level statistics,
per-group visibility and JSON backup/restore.

Display ids are positions 1..N over articles ordered by internal id, so
deleting an article renumbers everything after it. Internal ids never
change.
"""

import sqlite3
from pathlib import Path
from typing import List, Optional, Sequence

from loguru import logger

from ..access.models import Rights
from ..access.rights import AccessRightsTable
from ..backup import ArticleBackup, ArticleRecord, read_backup, write_backup
from ..errors import NotFoundError, ValidationError
from ..storage import Database
from .codec import Base64Codec, BodyCodec
from .models import (
    LEVELS,
    NO_PERMISSION,
    ArticleDetails,
    ArticleSummary,
    GroupArticle,
    LevelStatistics,
    SearchResult,
)


# Value of the level and group filters that disables them
ALL = "All"

# Defaults written for the article-{id} scope at creation
ENCRYPTED_DEFAULT_RIGHTS = Rights(can_view=False, can_admin=True)
PLAIN_DEFAULT_RIGHTS = Rights(can_view=True, can_admin=False)


def article_scope(article_id: int) -> str:
    return f"article-{article_id}"


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class ArticleRepository:
    """
    Articles stored in the shared database handle.
    """

    def __init__(self, db: Database, codec: Optional[BodyCodec] = None):
        """
        Args:
            db: Open database handle
            codec: Transform applied to bodies of encrypted articles
        """
        self.db = db
        self.codec = codec or Base64Codec()
        self.rights = AccessRightsTable(db)

    # ========================================================================
    # CRUD
    # ========================================================================

    def add_article(
        self,
        title: str,
        authors: str = "",
        abstract_text: str = "",
        keywords: str = "",
        body: str = "",
        references: str = "",
        is_encrypted: bool = False,
    ) -> int:
        """
        Insert an article and its default access-rights record.

        Encrypted articles default to admin-only, others to viewable.

        Returns:
            Generated internal id

        Raises:
            ValidationError: If the title is empty
        """
        if not title or not title.strip():
            raise ValidationError("Article title cannot be empty.")

        stored_body = self.codec.encode(body) if is_encrypted else body

        with self.db.transaction("adding article") as cursor:
            cursor.execute("""
                INSERT INTO articles (title, authors, abstract_text, keywords, body, refs, is_encrypted)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (title.strip(), authors, abstract_text, keywords, stored_body, references, int(is_encrypted)))
            article_id = cursor.lastrowid

            defaults = ENCRYPTED_DEFAULT_RIGHTS if is_encrypted else PLAIN_DEFAULT_RIGHTS
            self.rights.set(article_scope(article_id), defaults)

        logger.info(f"Article added: {article_id} '{title.strip()}' (encrypted={is_encrypted})")
        return article_id

    def list_articles(self) -> List[ArticleSummary]:
        with self.db.transaction("listing articles") as cursor:
            cursor.execute("SELECT id, title, authors FROM articles ORDER BY id")
            return [
                ArticleSummary(display_id=n, id=row["id"], title=row["title"], authors=row["authors"] or "")
                for n, row in enumerate(cursor.fetchall(), start=1)
            ]

    def get_database_id(self, display_id: int) -> int:
        """
        Resolve a display id to the internal id.

        Raises:
            NotFoundError: If the display id is out of range
        """
        with self.db.transaction("resolving article id") as cursor:
            return self._resolve(cursor, display_id)

    def get_article_details(self, sequence: int) -> ArticleDetails:
        """
        Full article at a display position, body decoded.

        Raises:
            NotFoundError: If the position is out of range
        """
        with self.db.transaction("reading article") as cursor:
            article_id = self._resolve(cursor, sequence)
            cursor.execute("SELECT * FROM articles WHERE id = ?", (article_id,))
            row = cursor.fetchone()

        is_encrypted = bool(row["is_encrypted"])
        body = row["body"] or ""
        return ArticleDetails(
            display_id=sequence,
            id=row["id"],
            title=row["title"],
            authors=row["authors"] or "",
            abstract_text=row["abstract_text"] or "",
            keywords=row["keywords"] or "",
            body=self.codec.decode(body) if is_encrypted else body,
            references=row["refs"] or "",
            is_encrypted=is_encrypted,
        )

    def view_article(self, display_id: int) -> ArticleDetails:
        details = self.get_article_details(display_id)
        logger.debug(f"Article {details.id} viewed as display id {display_id}")
        return details

    def is_article_encrypted(self, article_id: int) -> bool:
        with self.db.transaction("reading article") as cursor:
            cursor.execute("SELECT is_encrypted FROM articles WHERE id = ?", (article_id,))
            row = cursor.fetchone()
        return bool(row and row["is_encrypted"])

    def article_rights(self, display_id: int) -> Rights:
        return self.rights.get(article_scope(self.get_database_id(display_id)))

    def delete_article(self, display_id: int) -> int:
        """
        Delete the article at a display position with its group links and
        access-rights record.

        Returns:
            The internal id that was deleted
        """
        with self.db.transaction("deleting article") as cursor:
            article_id = self._resolve(cursor, display_id)
            cursor.execute("DELETE FROM group_articles WHERE article_id = ?", (article_id,))
            self.rights.remove(article_scope(article_id))
            cursor.execute("DELETE FROM articles WHERE id = ?", (article_id,))

        logger.info(f"Article deleted: {article_id} (display id {display_id})")
        return article_id

    # ========================================================================
    # Groups
    # ========================================================================

    def add_article_to_group(self, group_id: str, display_id: int) -> int:
        """
        Link an article to a group.

        Returns:
            The internal id of the linked article

        Raises:
            NotFoundError: If the group or display id is unknown
            ValidationError: If the article is already in the group
        """
        with self.db.transaction("adding article to group") as cursor:
            cursor.execute("SELECT 1 FROM access_groups WHERE group_id = ?", (group_id,))
            if not cursor.fetchone():
                raise NotFoundError(f"No group found with ID: {group_id}")

            article_id = self._resolve(cursor, display_id)
            cursor.execute(
                "SELECT 1 FROM group_articles WHERE group_id = ? AND article_id = ?",
                (group_id, article_id),
            )
            if cursor.fetchone():
                raise ValidationError(f"Article {display_id} is already in this group.")

            cursor.execute(
                "INSERT INTO group_articles (group_id, article_id) VALUES (?, ?)",
                (group_id, article_id),
            )

        logger.info(f"Article {article_id} added to group {group_id}")
        return article_id

    def get_articles_in_group(self, group_id: str, username: str) -> List[GroupArticle]:
        """
        Articles of a group as seen by one member.

        Rows are returned only when ``username`` is a member. Without view
        rights the body is replaced by the NO_PERMISSION sentinel.

        Raises:
            NotFoundError: If the group does not exist
        """
        with self.db.transaction("reading group articles") as cursor:
            cursor.execute("SELECT 1 FROM access_groups WHERE group_id = ?", (group_id,))
            if not cursor.fetchone():
                raise NotFoundError(f"No group found with ID: {group_id}")

            cursor.execute("""
                SELECT a.id, a.title, a.body, a.is_encrypted, gu.can_view
                FROM articles a
                JOIN group_articles ga ON a.id = ga.article_id
                JOIN group_users gu ON ga.group_id = gu.group_id
                WHERE ga.group_id = ? AND gu.username = ?
                ORDER BY a.id
            """, (group_id, username))
            rows = cursor.fetchall()

        articles = []
        for row in rows:
            if row["can_view"]:
                body = row["body"] or ""
                body = self.codec.decode(body) if row["is_encrypted"] else body
            else:
                body = NO_PERMISSION
            articles.append(GroupArticle(id=row["id"], title=row["title"], body=body))
        return articles

    # ========================================================================
    # Search
    # ========================================================================

    def search_articles(
        self,
        query: str = "",
        level: str = ALL,
        group: str = ALL,
        username: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Search articles.

        Args:
            query: Substring matched against title, authors and abstract
            level: Keyword substring, or "All" to skip the filter
            group: Group name, or "All" to skip the filter. Otherwise only
                articles linked to that group where ``username`` has view
                rights are returned.
            username: The requester, needed for the group filter

        Returns:
            Matches in ascending id order, numbered from 1

        Raises:
            NotFoundError: If the named group does not exist
        """
        sql = "SELECT id, title, authors, abstract_text, keywords FROM articles WHERE 1=1"
        parameters: List[object] = []

        query = (query or "").strip()
        if query:
            sql += (
                " AND (title LIKE ? ESCAPE '\\' OR authors LIKE ? ESCAPE '\\'"
                " OR abstract_text LIKE ? ESCAPE '\\')"
            )
            parameters.extend([_like_pattern(query)] * 3)

        with self.db.transaction("searching articles") as cursor:
            if level and level.lower() != ALL.lower():
                sql += " AND keywords LIKE ? ESCAPE '\\'"
                parameters.append(_like_pattern(level))

            if group and group.lower() != ALL.lower():
                cursor.execute("SELECT group_id FROM access_groups WHERE group_name = ?", (group,))
                row = cursor.fetchone()
                if not row:
                    raise NotFoundError(f"Group not found: {group}")
                sql += """
                    AND id IN (
                        SELECT ga.article_id FROM group_articles ga
                        JOIN group_users gu ON ga.group_id = gu.group_id
                        WHERE ga.group_id = ? AND gu.username = ? AND gu.can_view = 1
                    )
                """
                parameters.extend([row["group_id"], username or ""])

            sql += " ORDER BY id"
            cursor.execute(sql, parameters)
            rows = cursor.fetchall()

        return [
            SearchResult(
                sequence=n,
                id=row["id"],
                title=row["title"],
                authors=row["authors"] or "",
                abstract_text=row["abstract_text"] or "",
                keywords=row["keywords"] or "",
            )
            for n, row in enumerate(rows, start=1)
        ]

    @staticmethod
    def get_level_statistics(results: Sequence[SearchResult]) -> LevelStatistics:
        """Count level markers in the keywords of each result, ignoring case."""
        counts = dict.fromkeys(LEVELS, 0)
        for result in results:
            keywords = result.keywords.lower()
            for level in LEVELS:
                if level in keywords:
                    counts[level] += 1
        return LevelStatistics(**counts)

    # ========================================================================
    # Backup / Restore
    # ========================================================================

    def backup_articles(self, path: Path) -> int:
        """
        Write all articles, as stored, to a JSON file.

        Returns:
            Number of articles written
        """
        with self.db.transaction("backing up articles") as cursor:
            cursor.execute("SELECT * FROM articles ORDER BY id")
            rows = cursor.fetchall()

        records = []
        for row in rows:
            rights = self.rights.find(article_scope(row["id"]))
            records.append(ArticleRecord(
                id=row["id"],
                title=row["title"],
                authors=row["authors"] or "",
                abstract_text=row["abstract_text"] or "",
                keywords=row["keywords"] or "",
                body=row["body"] or "",
                references=row["refs"] or "",
                is_encrypted=bool(row["is_encrypted"]),
                can_view=rights.can_view if rights else None,
                can_admin=rights.can_admin if rights else None,
            ))

        write_backup(path, ArticleBackup(articles=records))
        return len(records)

    def restore_articles(self, path: Path) -> int:
        """
        Replace the article table with the content of a backup file.

        Group links survive for articles whose id is present in the backup.
        The whole restore is one transaction, and encrypted bodies are
        decoded up front so a corrupted file leaves the store untouched.

        Returns:
            Number of articles restored

        Raises:
            PersistenceError: If the file is unreadable, malformed or holds
                an encrypted body that does not decode
        """
        document = read_backup(path, ArticleBackup)
        for record in document.articles:
            if record.is_encrypted:
                self.codec.decode(record.body)

        with self.db.transaction("restoring articles") as cursor:
            cursor.execute("SELECT group_id, article_id FROM group_articles")
            links = [(row["group_id"], row["article_id"]) for row in cursor.fetchall()]

            cursor.execute("DELETE FROM group_articles")
            cursor.execute("DELETE FROM access_rights WHERE scope LIKE 'article-%'")
            cursor.execute("DELETE FROM articles")

            for record in document.articles:
                cursor.execute("""
                    INSERT INTO articles (id, title, authors, abstract_text, keywords, body, refs, is_encrypted)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.id,
                    record.title,
                    record.authors,
                    record.abstract_text,
                    record.keywords,
                    record.body,
                    record.references,
                    int(record.is_encrypted),
                ))
                defaults = ENCRYPTED_DEFAULT_RIGHTS if record.is_encrypted else PLAIN_DEFAULT_RIGHTS
                self.rights.set(article_scope(record.id), Rights(
                    can_view=defaults.can_view if record.can_view is None else record.can_view,
                    can_admin=defaults.can_admin if record.can_admin is None else record.can_admin,
                ))

            restored_ids = {record.id for record in document.articles}
            cursor.executemany(
                "INSERT INTO group_articles (group_id, article_id) VALUES (?, ?)",
                [link for link in links if link[1] in restored_ids],
            )

        logger.info(f"Restored {len(document.articles)} article(s) from {path}")
        return len(document.articles)

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _resolve(cursor: sqlite3.Cursor, display_id: int) -> int:
        cursor.execute("SELECT id FROM articles ORDER BY id")
        ids = [row["id"] for row in cursor.fetchall()]
        if not 1 <= display_id <= len(ids):
            raise NotFoundError(f"Invalid display ID: {display_id}")
        return ids[display_id - 1]
