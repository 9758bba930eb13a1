"""
Student help messages.

Students send either a generic message or a message about a specific query;
instructors and administrators read them back grouped by query.
"""

from datetime import datetime
from typing import List

from loguru import logger

from .errors import ValidationError
from .storage import Database


class HelpSystem:
    """Help messages kept in the shared database handle."""

    def __init__(self, db: Database):
        self.db = db

    def send_generic_message(self, message: str) -> None:
        """
        Raises:
            ValidationError: If the message is blank
        """
        if not message or not message.strip():
            raise ValidationError("Please enter a message.")

        with self.db.transaction("sending help message") as cursor:
            cursor.execute(
                "INSERT INTO help_messages (query, message, created_at) VALUES (NULL, ?, ?)",
                (message, datetime.now().isoformat()),
            )
        logger.info("Generic help message received")

    def send_specific_message(self, query: str, message: str) -> None:
        """
        Raises:
            ValidationError: If the query or the message is blank
        """
        if not query or not query.strip() or not message or not message.strip():
            raise ValidationError("Please enter a query and message.")

        with self.db.transaction("sending help message") as cursor:
            cursor.execute(
                "INSERT INTO help_messages (query, message, created_at) VALUES (?, ?, ?)",
                (query.strip(), message, datetime.now().isoformat()),
            )
        logger.info(f"Help message received for query: {query.strip()}")

    def generic_messages(self) -> List[str]:
        with self.db.transaction("reading help messages") as cursor:
            cursor.execute("SELECT message FROM help_messages WHERE query IS NULL ORDER BY id")
            return [row["message"] for row in cursor.fetchall()]

    def specific_messages(self, query: str) -> List[str]:
        with self.db.transaction("reading help messages") as cursor:
            cursor.execute(
                "SELECT message FROM help_messages WHERE query = ? ORDER BY id",
                (query.strip(),),
            )
            return [row["message"] for row in cursor.fetchall()]

    def specific_queries(self) -> List[str]:
        with self.db.transaction("reading help messages") as cursor:
            cursor.execute(
                "SELECT query FROM help_messages WHERE query IS NOT NULL "
                "GROUP BY query ORDER BY MIN(id)"
            )
            return [row["query"] for row in cursor.fetchall()]

    def clear(self) -> None:
        with self.db.transaction("clearing help messages") as cursor:
            cursor.execute("DELETE FROM help_messages")
        logger.info("Help messages cleared")
