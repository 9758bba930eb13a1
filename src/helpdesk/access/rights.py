"""
Scope-level access rights.

A scope is a free-form key such as ``article-7``. Each scope has one
``Rights`` record; missing scopes have no rights.
"""

from typing import Optional

from ..storage import Database
from .models import Rights


class AccessRightsTable:
    """Upsert and lookup of per-scope view/admin flags."""

    def __init__(self, db: Database):
        self.db = db

    def _modify(self, scope: str, column: str, value: bool) -> None:
        # column is always one of the two literals below
        with self.db.transaction("updating access rights") as cursor:
            cursor.execute(
                f"INSERT INTO access_rights (scope, {column}) VALUES (?, ?) "
                f"ON CONFLICT(scope) DO UPDATE SET {column} = excluded.{column}",
                (scope, int(value)),
            )

    def set_view(self, scope: str, can_view: bool) -> None:
        self._modify(scope, "can_view", can_view)

    def set_admin(self, scope: str, can_admin: bool) -> None:
        self._modify(scope, "can_admin", can_admin)

    def set(self, scope: str, rights: Rights) -> None:
        with self.db.transaction("updating access rights"):
            self.set_view(scope, rights.can_view)
            self.set_admin(scope, rights.can_admin)

    def find(self, scope: str) -> Optional[Rights]:
        with self.db.transaction("reading access rights") as cursor:
            cursor.execute("SELECT can_view, can_admin FROM access_rights WHERE scope = ?", (scope,))
            row = cursor.fetchone()
        if not row:
            return None
        return Rights(can_view=bool(row["can_view"]), can_admin=bool(row["can_admin"]))

    def get(self, scope: str) -> Rights:
        return self.find(scope) or Rights()

    def has_view_rights(self, scope: str) -> bool:
        return self.get(scope).can_view

    def has_admin_rights(self, scope: str) -> bool:
        return self.get(scope).can_admin

    def remove(self, scope: str) -> bool:
        with self.db.transaction("removing access rights") as cursor:
            cursor.execute("DELETE FROM access_rights WHERE scope = ?", (scope,))
            return cursor.rowcount > 0
