"""
SQLite storage handle for the help desk.

One shared connection per application with an explicit open/close
lifecycle. Every read and write goes through ``transaction()``, which
commits on success and rolls back on any error.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from loguru import logger

from .errors import PersistenceError


MEMORY = ":memory:"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        username TEXT PRIMARY KEY,
        password_hash TEXT NOT NULL,
        email TEXT,
        first_name TEXT,
        middle_name TEXT,
        last_name TEXT,
        preferred_first_name TEXT,
        account_setup_complete INTEGER NOT NULL DEFAULT 0,
        one_time_password TEXT,
        password_expiry TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_roles (
        username TEXT NOT NULL,
        role TEXT NOT NULL,
        PRIMARY KEY (username, role),
        FOREIGN KEY (username) REFERENCES users(username) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invitations (
        code TEXT PRIMARY KEY,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invitation_roles (
        code TEXT NOT NULL,
        role TEXT NOT NULL,
        PRIMARY KEY (code, role),
        FOREIGN KEY (code) REFERENCES invitations(code) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS access_groups (
        group_id TEXT PRIMARY KEY,
        group_name TEXT UNIQUE NOT NULL,
        group_type TEXT NOT NULL DEFAULT 'General'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_users (
        group_id TEXT NOT NULL,
        username TEXT NOT NULL,
        role TEXT,
        can_view INTEGER NOT NULL DEFAULT 0,
        can_admin INTEGER NOT NULL DEFAULT 0,
        joined_at TEXT NOT NULL,
        PRIMARY KEY (group_id, username),
        FOREIGN KEY (group_id) REFERENCES access_groups(group_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS articles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        authors TEXT,
        abstract_text TEXT,
        keywords TEXT,
        body TEXT,
        refs TEXT,
        is_encrypted INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_articles (
        group_id TEXT NOT NULL,
        article_id INTEGER NOT NULL,
        PRIMARY KEY (group_id, article_id),
        FOREIGN KEY (group_id) REFERENCES access_groups(group_id) ON DELETE CASCADE,
        FOREIGN KEY (article_id) REFERENCES articles(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS access_rights (
        scope TEXT PRIMARY KEY,
        can_view INTEGER NOT NULL DEFAULT 0,
        can_admin INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS help_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        query TEXT,
        message TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_group_users_user ON group_users(username)",
    "CREATE INDEX IF NOT EXISTS idx_group_articles_article ON group_articles(article_id)",
    "CREATE INDEX IF NOT EXISTS idx_help_messages_query ON help_messages(query)",
]


class Database:
    """
    Shared handle to the help desk store.

    The connection is guarded by a ``threading.RLock``. Transactions nest:
    an inner ``transaction()`` joins the outer one, and only the outermost
    block commits or rolls back.
    """

    def __init__(self, db_path: Union[Path, str] = MEMORY):
        """
        Args:
            db_path: SQLite file path, or ":memory:"
        """
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "Database":
        """Connect and create tables if they don't exist."""
        with self._lock:
            if self._conn is not None:
                return self

            if str(self.db_path) != MEMORY:
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            try:
                conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                for statement in SCHEMA:
                    conn.execute(statement)
                conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to open database {self.db_path}: {e}")
                raise PersistenceError("opening the database", e) from e

            self._conn = conn
            logger.info(f"Help desk database opened: {self.db_path}")
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            self._depth = 0
            logger.info(f"Help desk database closed: {self.db_path}")

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def transaction(self, action: str = "accessing the database") -> Iterator[sqlite3.Cursor]:
        """
        Scoped unit of work.

        Args:
            action: Phrase used in the PersistenceError message on failure

        Yields:
            A cursor on the shared connection

        Raises:
            PersistenceError: If SQLite fails; the whole unit is rolled back
        """
        with self._lock:
            if self._conn is None:
                raise PersistenceError(action, RuntimeError("database is not open"))

            conn = self._conn
            outermost = self._depth == 0
            self._depth += 1
            cursor = conn.cursor()
            try:
                yield cursor
                if outermost:
                    conn.commit()
            except sqlite3.Error as e:
                if outermost:
                    conn.rollback()
                logger.error(f"Database error while {action}: {e}")
                raise PersistenceError(action, e) from e
            except BaseException:
                if outermost:
                    conn.rollback()
                raise
            finally:
                self._depth -= 1
                cursor.close()
