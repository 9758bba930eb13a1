"""
Invitation registry.

Maps one-time codes to the roles granted on registration. A code is
consumed exactly once, inside the transaction that creates the user.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Union

from loguru import logger

from ..errors import NotFoundError
from ..storage import Database
from .models import Invitation, Role, RoleSet


class InvitationRegistry:
    """Invitation codes stored alongside users."""

    def __init__(self, db: Database, code_length: int = 4):
        self.db = db
        self.code_length = code_length

    def _generate_code(self) -> str:
        return uuid.uuid4().hex[:self.code_length]

    def create(self, roles: Union[RoleSet, Iterable[Union[Role, str]]]) -> Invitation:
        """
        Issue a new invitation code.

        Args:
            roles: Roles granted by the code (must be non-empty)

        Returns:
            The stored Invitation

        Raises:
            ValidationError: If no roles were selected
        """
        role_set = roles if isinstance(roles, RoleSet) else RoleSet(roles)
        created_at = datetime.now()

        with self.db.transaction("creating invitation") as cursor:
            # Short codes can collide; draw again until one is free
            while True:
                code = self._generate_code()
                cursor.execute("SELECT 1 FROM invitations WHERE code = ?", (code,))
                if not cursor.fetchone():
                    break

            cursor.execute(
                "INSERT INTO invitations (code, created_at) VALUES (?, ?)",
                (code, created_at.isoformat()),
            )
            cursor.executemany(
                "INSERT INTO invitation_roles (code, role) VALUES (?, ?)",
                [(code, role.value) for role in role_set.ordered()],
            )

        logger.info(f"Invitation {code} created for roles: {', '.join(role_set.names())}")
        return Invitation(code=code, roles=role_set, created_at=created_at)

    def find(self, code: str) -> Optional[Invitation]:
        """
        Look up an invitation code.

        Returns:
            Invitation if the code is live, None otherwise
        """
        with self.db.transaction("looking up invitation") as cursor:
            cursor.execute("SELECT * FROM invitations WHERE code = ?", (code,))
            row = cursor.fetchone()
            if not row:
                return None

            cursor.execute("SELECT role FROM invitation_roles WHERE code = ?", (code,))
            roles = RoleSet(r["role"] for r in cursor.fetchall())
            return Invitation(
                code=row["code"],
                roles=roles,
                created_at=datetime.fromisoformat(row["created_at"]),
            )

    def consume(self, code: str) -> None:
        """
        Delete a code after a successful registration.

        Raises:
            NotFoundError: If the code was already used or never existed
        """
        if not self.remove(code):
            raise NotFoundError("Invalid invitation code.")
        logger.info(f"Invitation {code} consumed")

    def remove(self, code: str) -> bool:
        with self.db.transaction("removing invitation") as cursor:
            cursor.execute("DELETE FROM invitation_roles WHERE code = ?", (code,))
            cursor.execute("DELETE FROM invitations WHERE code = ?", (code,))
            return cursor.rowcount > 0

    def list_invitations(self) -> List[Invitation]:
        with self.db.transaction("listing invitations") as cursor:
            cursor.execute("SELECT code FROM invitations ORDER BY created_at")
            codes = [row["code"] for row in cursor.fetchall()]
        return [invitation for invitation in map(self.find, codes) if invitation]
