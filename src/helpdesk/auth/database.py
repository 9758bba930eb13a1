"""
Credential and user store.

Users, their roles, profiles and password-reset state, kept in the shared
SQLite handle. Lookups read straight from the database so every mutation is
visible to the next call.
"""

import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional, Union

import bcrypt
from loguru import logger

from ..errors import NotFoundError, ValidationError
from ..storage import Database
from .models import Profile, Role, RoleSet, User


# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class UserDatabase:
    """
    User store.

    Passwords are hashed with bcrypt; ``verify_password`` is the only way a
    submitted password is compared with the stored one.
    """

    def __init__(self, db: Database, bcrypt_rounds: int = 12):
        """
        Initialize store.

        Args:
            db: Open database handle
            bcrypt_rounds: bcrypt cost factor
        """
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds

    # ========================================================================
    # Password hashing
    # ========================================================================

    def hash_password(self, password: str) -> str:
        """
        Hash a plain text password.

        Raises:
            ValidationError: If the password is empty or longer than bcrypt accepts
        """
        if not password:
            raise ValidationError("Password fields cannot be empty.")
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode("utf-8")

    def verify_password(self, user: User, password: str) -> bool:
        """
        Verify password against user's hash.

        Args:
            user: User object
            password: Plain text password to verify

        Returns:
            True if password matches, False otherwise
        """
        encoded = password.encode("utf-8")
        if not password or len(encoded) > MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(encoded, user.password_hash.encode("utf-8"))

    # ========================================================================
    # User Operations
    # ========================================================================

    def add(
        self,
        username: str,
        password: str,
        roles: Union[RoleSet, Iterable[Union[Role, str]]],
    ) -> User:
        """
        Create a new user.

        Args:
            username: Unique username
            password: Plain text password (will be hashed)
            roles: Roles to assign (must be non-empty)

        Returns:
            Created User object

        Raises:
            ValidationError: If the username is empty or already taken, or roles are empty
        """
        username = username.strip()
        if not username:
            raise ValidationError("Username cannot be empty.")
        role_set = roles if isinstance(roles, RoleSet) else RoleSet(roles)
        password_hash = self.hash_password(password)

        user = User(
            username=username,
            password_hash=password_hash,
            roles=role_set,
            created_at=datetime.now(),
        )

        with self.db.transaction("creating user") as cursor:
            cursor.execute("SELECT 1 FROM users WHERE username = ?", (username,))
            if cursor.fetchone():
                raise ValidationError("Username already exists.")

            cursor.execute("""
                INSERT INTO users (username, password_hash, created_at)
                VALUES (?, ?, ?)
            """, (user.username, user.password_hash, user.created_at.isoformat()))
            self._write_roles(cursor, username, role_set)

        logger.info(f"User created: {username} with roles: {', '.join(role_set.names())}")
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        """
        Get user by username (exact match).

        Returns:
            User object if found, None otherwise
        """
        with self.db.transaction("looking up user") as cursor:
            cursor.execute("SELECT * FROM users WHERE username = ?", (username,))
            row = cursor.fetchone()
            if not row:
                return None
            return self._row_to_user(cursor, row)

    def get(self, username: str) -> User:
        """
        Get user by username.

        Raises:
            NotFoundError: If no such user exists
        """
        user = self.find_by_username(username)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def list_users(self) -> List[User]:
        """All users ordered by username."""
        with self.db.transaction("listing users") as cursor:
            cursor.execute("SELECT * FROM users ORDER BY username")
            rows = cursor.fetchall()
            return [self._row_to_user(cursor, row) for row in rows]

    def is_empty(self) -> bool:
        with self.db.transaction("counting users") as cursor:
            cursor.execute("SELECT COUNT(*) FROM users")
            return cursor.fetchone()[0] == 0

    def remove(self, username: str) -> bool:
        """
        Delete user and their role assignments.

        Returns:
            True if a user was deleted
        """
        with self.db.transaction("deleting user") as cursor:
            cursor.execute("DELETE FROM user_roles WHERE username = ?", (username,))
            cursor.execute("DELETE FROM users WHERE username = ?", (username,))
            success = cursor.rowcount > 0

        if success:
            logger.info(f"User deleted: {username}")
        return success

    def update_roles(self, username: str, roles: Union[RoleSet, Iterable[Union[Role, str]]]) -> RoleSet:
        """
        Replace a user's roles wholesale.

        Raises:
            ValidationError: If roles are empty
            NotFoundError: If the user does not exist
        """
        role_set = roles if isinstance(roles, RoleSet) else RoleSet(roles)

        with self.db.transaction("updating roles") as cursor:
            self._require_user(cursor, username)
            cursor.execute("DELETE FROM user_roles WHERE username = ?", (username,))
            self._write_roles(cursor, username, role_set)

        logger.info(f"Roles for {username} set to: {', '.join(role_set.names())}")
        return role_set

    def set_password(self, username: str, password: str) -> None:
        password_hash = self.hash_password(password)
        with self.db.transaction("setting password") as cursor:
            self._require_user(cursor, username)
            cursor.execute(
                "UPDATE users SET password_hash = ? WHERE username = ?",
                (password_hash, username),
            )
        logger.info(f"Password changed for {username}")

    def set_one_time_password(self, username: str, code: str, expiry: datetime) -> None:
        """Put the user in reset-pending state until ``expiry``."""
        with self.db.transaction("setting one-time password") as cursor:
            self._require_user(cursor, username)
            cursor.execute("""
                UPDATE users SET one_time_password = ?, password_expiry = ?
                WHERE username = ?
            """, (code, expiry.isoformat(), username))
        logger.info(f"One-time password issued for {username}, expires {expiry.isoformat()}")

    def clear_reset(self, username: str) -> None:
        with self.db.transaction("clearing password reset") as cursor:
            self._require_user(cursor, username)
            cursor.execute("""
                UPDATE users SET one_time_password = NULL, password_expiry = NULL
                WHERE username = ?
            """, (username,))

    def complete_profile(self, username: str, profile: Profile) -> None:
        """
        Store profile details and mark account setup complete.

        Raises:
            ValidationError: If email, first name or last name is blank
        """
        if not profile.is_complete():
            raise ValidationError("Please fill in all required fields.")

        with self.db.transaction("saving profile") as cursor:
            self._require_user(cursor, username)
            cursor.execute("""
                UPDATE users
                SET email = ?, first_name = ?, middle_name = ?, last_name = ?,
                    preferred_first_name = ?, account_setup_complete = 1
                WHERE username = ?
            """, (
                profile.email.strip(),
                profile.first_name.strip(),
                profile.middle_name.strip(),
                profile.last_name.strip(),
                profile.preferred_first_name.strip(),
                username,
            ))
        logger.info(f"Account setup completed for {username}")

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _require_user(cursor: sqlite3.Cursor, username: str) -> None:
        cursor.execute("SELECT 1 FROM users WHERE username = ?", (username,))
        if not cursor.fetchone():
            raise NotFoundError("User not found.")

    @staticmethod
    def _write_roles(cursor: sqlite3.Cursor, username: str, roles: RoleSet) -> None:
        cursor.executemany(
            "INSERT INTO user_roles (username, role) VALUES (?, ?)",
            [(username, role.value) for role in roles.ordered()],
        )

    @staticmethod
    def _row_to_user(cursor: sqlite3.Cursor, row: sqlite3.Row) -> User:
        cursor.execute("SELECT role FROM user_roles WHERE username = ?", (row["username"],))
        roles = RoleSet(r["role"] for r in cursor.fetchall())
        expiry = row["password_expiry"]

        return User(
            username=row["username"],
            password_hash=row["password_hash"],
            roles=roles,
            profile=Profile(
                email=row["email"] or "",
                first_name=row["first_name"] or "",
                middle_name=row["middle_name"] or "",
                last_name=row["last_name"] or "",
                preferred_first_name=row["preferred_first_name"] or "",
            ),
            account_setup_complete=bool(row["account_setup_complete"]),
            one_time_password=row["one_time_password"],
            password_expiry=datetime.fromisoformat(expiry) if expiry else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )
