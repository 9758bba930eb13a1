"""
Access groups and memberships.

Groups hold members with per-user view/admin rights. Two rules are enforced
here:

- The first member added to an empty group as an Instructor becomes its
  administrator.
- Once a group has members, it keeps at least one administrator; changes
  that would remove the last one raise ``InvariantViolation``.
"""

import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..backup import GroupBackup, GroupRecord, MembershipRecord, read_backup, write_backup
from ..errors import InvariantViolation, NotFoundError, ValidationError
from ..storage import Database
from .models import Group, GroupMembership, GroupType, Rights


LAST_ADMIN_MESSAGE = "There must be at least one admin in the group."


class GroupManager:
    """
    Group access-control operations over the shared database handle.
    """

    def __init__(self, db: Database):
        self.db = db

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(self, group_name: str, is_special: bool = False) -> Group:
        """
        Create a group with a generated id.

        Args:
            group_name: Unique name
            is_special: Special group if True, General otherwise

        Raises:
            ValidationError: If the name is empty or already used
        """
        group_name = group_name.strip()
        if not group_name:
            raise ValidationError("Group name cannot be empty.")

        group = Group(
            group_id=str(uuid.uuid4()),
            group_name=group_name,
            group_type=GroupType.SPECIAL if is_special else GroupType.GENERAL,
        )

        with self.db.transaction("creating group") as cursor:
            cursor.execute("SELECT 1 FROM access_groups WHERE group_name = ?", (group_name,))
            if cursor.fetchone():
                raise ValidationError(f"Group '{group_name}' already exists.")
            cursor.execute(
                "INSERT INTO access_groups (group_id, group_name, group_type) VALUES (?, ?, ?)",
                (group.group_id, group.group_name, group.group_type.value),
            )

        logger.info(f"Group '{group_name}' created as a {group.group_type.value} group ({group.group_id})")
        return group

    def get_group(self, group_id: str) -> Group:
        """
        Raises:
            NotFoundError: If no group has this id
        """
        with self.db.transaction("reading group") as cursor:
            row = self._fetch_group(cursor, group_id)
        return self._row_to_group(row)

    def find_group_by_name(self, group_name: str) -> Group:
        """
        Raises:
            NotFoundError: If no group has this name
        """
        group_name = group_name.strip()
        with self.db.transaction("reading group") as cursor:
            cursor.execute("SELECT * FROM access_groups WHERE group_name = ?", (group_name,))
            row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"Group not found: {group_name}")
        return self._row_to_group(row)

    def list_groups(self) -> List[Group]:
        with self.db.transaction("listing groups") as cursor:
            cursor.execute("SELECT * FROM access_groups ORDER BY group_name")
            return [self._row_to_group(row) for row in cursor.fetchall()]

    def delete_group(self, group_id: str) -> None:
        """
        Delete a group with its memberships and article links.

        Raises:
            NotFoundError: If no group has this id
        """
        with self.db.transaction("deleting group") as cursor:
            cursor.execute("DELETE FROM group_users WHERE group_id = ?", (group_id,))
            cursor.execute("DELETE FROM group_articles WHERE group_id = ?", (group_id,))
            cursor.execute("DELETE FROM access_groups WHERE group_id = ?", (group_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"No group found with ID: {group_id}")

        logger.info(f"Group deleted: {group_id}")

    # ========================================================================
    # Memberships
    # ========================================================================

    def add_user_to_group(self, group_id: str, username: str, role: str) -> GroupMembership:
        """
        Add a member with no rights, except that an Instructor joining an
        empty group becomes its administrator.

        Args:
            group_id: Target group
            username: Member to add
            role: Free-text role inside the group

        Raises:
            NotFoundError: If the group does not exist
            ValidationError: If the username is empty or already a member
        """
        username = username.strip()
        role = role.strip()
        if not username:
            raise ValidationError("Username cannot be empty.")

        with self.db.transaction("adding user to group") as cursor:
            group = self._row_to_group(self._fetch_group(cursor, group_id))
            if self._fetch_membership(cursor, group_id, username):
                raise ValidationError(
                    f"User '{username}' is already a member of group '{group.group_name}'."
                )

            cursor.execute("SELECT COUNT(*) FROM group_users WHERE group_id = ?", (group_id,))
            is_first_instructor = cursor.fetchone()[0] == 0 and role.lower() == "instructor"
            rights = Rights(can_view=False, can_admin=is_first_instructor)

            cursor.execute("""
                INSERT INTO group_users (group_id, username, role, can_view, can_admin, joined_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                group_id,
                username,
                role,
                int(rights.can_view),
                int(rights.can_admin),
                datetime.now().isoformat(),
            ))

        if is_first_instructor:
            logger.info(f"First instructor {username} is admin of group '{group.group_name}'")
        logger.info(f"User '{username}' added to group '{group.group_name}' as {role}")
        return GroupMembership(group_id=group_id, username=username, role=role, rights=rights)

    def get_membership(self, group_id: str, username: str) -> Optional[GroupMembership]:
        with self.db.transaction("reading membership") as cursor:
            row = self._fetch_membership(cursor, group_id, username)
        return self._row_to_membership(row) if row else None

    def list_members(self, group_id: str) -> List[GroupMembership]:
        """
        Members of a group in the order they joined.

        Raises:
            NotFoundError: If the group does not exist
        """
        with self.db.transaction("listing group users") as cursor:
            self._fetch_group(cursor, group_id)
            cursor.execute(
                "SELECT * FROM group_users WHERE group_id = ? ORDER BY joined_at, username",
                (group_id,),
            )
            return [self._row_to_membership(row) for row in cursor.fetchall()]

    def count_admins(self, group_id: str) -> int:
        with self.db.transaction("counting group admins") as cursor:
            return self._count_admins(cursor, group_id)

    def update_view_rights(self, group_id: str, username: str, can_view: bool) -> Rights:
        with self.db.transaction("updating view rights") as cursor:
            member = self._require_membership(cursor, group_id, username)
            rights = Rights(can_view=can_view, can_admin=member.can_admin)
            self._write_rights(cursor, group_id, username, rights)

        logger.info(f"View rights for '{username}' in {group_id} set to {can_view}")
        return rights

    def update_admin_rights(self, group_id: str, username: str, can_admin: bool) -> Rights:
        """
        Set a member's admin flag.

        Raises:
            NotFoundError: If the member does not exist
            InvariantViolation: If this would remove the group's only admin
        """
        with self.db.transaction("updating admin rights") as cursor:
            member = self._require_membership(cursor, group_id, username)
            if not can_admin:
                self._ensure_another_admin(cursor, member)
            rights = Rights(can_view=member.can_view, can_admin=can_admin)
            self._write_rights(cursor, group_id, username, rights)

        logger.info(f"Admin rights for '{username}' in {group_id} set to {can_admin}")
        return rights

    def grant_admin_rights(self, group_id: str, username: str) -> Rights:
        """Give a member both view and admin rights."""
        return self._update_permissions(group_id, username, Rights(can_view=True, can_admin=True))

    def grant_view_rights(self, group_id: str, username: str) -> Rights:
        """Make a member a viewer: view rights on, admin rights off."""
        return self._update_permissions(group_id, username, Rights(can_view=True, can_admin=False))

    def delete_user_from_group(self, group_id: str, username: str) -> bool:
        """
        Remove a member.

        Returns:
            True if a membership row existed and was removed

        Raises:
            InvariantViolation: If the member is the only admin and others remain
        """
        with self.db.transaction("removing user from group") as cursor:
            row = self._fetch_membership(cursor, group_id, username)
            if not row:
                return False

            member = self._row_to_membership(row)
            cursor.execute(
                "SELECT COUNT(*) FROM group_users WHERE group_id = ? AND username != ?",
                (group_id, username),
            )
            if cursor.fetchone()[0] > 0:
                self._ensure_another_admin(cursor, member)

            cursor.execute(
                "DELETE FROM group_users WHERE group_id = ? AND username = ?",
                (group_id, username),
            )

        logger.info(f"User '{username}' removed from group {group_id}")
        return True

    def list_admin_accounts(self) -> List[str]:
        """Usernames holding admin rights in at least one group."""
        with self.db.transaction("listing admin accounts") as cursor:
            cursor.execute(
                "SELECT DISTINCT username FROM group_users WHERE can_admin = 1 ORDER BY username"
            )
            return [row["username"] for row in cursor.fetchall()]

    # ========================================================================
    # Backup / Restore
    # ========================================================================

    def backup_groups(self, path: Path) -> int:
        """
        Write every group with its members and article links to a JSON file.

        Returns:
            Number of groups written
        """
        records = []
        with self.db.transaction("backing up groups") as cursor:
            cursor.execute("SELECT * FROM access_groups ORDER BY group_name")
            for group_row in cursor.fetchall():
                group_id = group_row["group_id"]
                cursor.execute(
                    "SELECT * FROM group_users WHERE group_id = ? ORDER BY joined_at, username",
                    (group_id,),
                )
                members = [
                    MembershipRecord(
                        username=row["username"],
                        role=row["role"] or "",
                        can_view=bool(row["can_view"]),
                        can_admin=bool(row["can_admin"]),
                    )
                    for row in cursor.fetchall()
                ]
                cursor.execute(
                    "SELECT article_id FROM group_articles WHERE group_id = ? ORDER BY article_id",
                    (group_id,),
                )
                article_ids = [row["article_id"] for row in cursor.fetchall()]
                records.append(GroupRecord(
                    group_id=group_id,
                    group_name=group_row["group_name"],
                    group_type=group_row["group_type"],
                    members=members,
                    article_ids=article_ids,
                ))

        write_backup(path, GroupBackup(groups=records))
        return len(records)

    def restore_groups(self, path: Path) -> int:
        """
        Replace all groups with the content of a backup file.

        Article links pointing at articles that no longer exist are dropped.

        Returns:
            Number of groups restored
        """
        document = read_backup(path, GroupBackup)

        with self.db.transaction("restoring groups") as cursor:
            cursor.execute("DELETE FROM group_articles")
            cursor.execute("DELETE FROM group_users")
            cursor.execute("DELETE FROM access_groups")

            now = datetime.now().isoformat()
            for record in document.groups:
                cursor.execute(
                    "INSERT INTO access_groups (group_id, group_name, group_type) VALUES (?, ?, ?)",
                    (record.group_id, record.group_name, GroupType(record.group_type).value),
                )
                cursor.executemany("""
                    INSERT INTO group_users (group_id, username, role, can_view, can_admin, joined_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (record.group_id, m.username, m.role, int(m.can_view), int(m.can_admin), now)
                    for m in record.members
                ])
                for article_id in record.article_ids:
                    cursor.execute(
                        "INSERT INTO group_articles (group_id, article_id) "
                        "SELECT ?, id FROM articles WHERE id = ?",
                        (record.group_id, article_id),
                    )

        logger.info(f"Restored {len(document.groups)} group(s) from {path}")
        return len(document.groups)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _update_permissions(self, group_id: str, username: str, rights: Rights) -> Rights:
        with self.db.transaction("updating permissions") as cursor:
            member = self._require_membership(cursor, group_id, username)
            if not rights.can_admin:
                self._ensure_another_admin(cursor, member)
            self._write_rights(cursor, group_id, username, rights)

        logger.info(f"Permissions for '{username}' in {group_id} set to {rights}")
        return rights

    def _ensure_another_admin(self, cursor: sqlite3.Cursor, member: GroupMembership) -> None:
        if member.can_admin and self._count_admins(cursor, member.group_id) <= 1:
            logger.warning(f"Refused to remove last admin '{member.username}' of group {member.group_id}")
            raise InvariantViolation(LAST_ADMIN_MESSAGE)

    @staticmethod
    def _count_admins(cursor: sqlite3.Cursor, group_id: str) -> int:
        cursor.execute(
            "SELECT COUNT(*) FROM group_users WHERE group_id = ? AND can_admin = 1",
            (group_id,),
        )
        return cursor.fetchone()[0]

    @staticmethod
    def _write_rights(cursor: sqlite3.Cursor, group_id: str, username: str, rights: Rights) -> None:
        cursor.execute(
            "UPDATE group_users SET can_view = ?, can_admin = ? WHERE group_id = ? AND username = ?",
            (int(rights.can_view), int(rights.can_admin), group_id, username),
        )

    @staticmethod
    def _fetch_group(cursor: sqlite3.Cursor, group_id: str) -> sqlite3.Row:
        cursor.execute("SELECT * FROM access_groups WHERE group_id = ?", (group_id,))
        row = cursor.fetchone()
        if not row:
            raise NotFoundError(f"No group found with ID: {group_id}")
        return row

    @staticmethod
    def _fetch_membership(cursor: sqlite3.Cursor, group_id: str, username: str) -> Optional[sqlite3.Row]:
        cursor.execute(
            "SELECT * FROM group_users WHERE group_id = ? AND username = ?",
            (group_id, username),
        )
        return cursor.fetchone()

    def _require_membership(self, cursor: sqlite3.Cursor, group_id: str, username: str) -> GroupMembership:
        row = self._fetch_membership(cursor, group_id, username)
        if not row:
            raise NotFoundError(f"User '{username}' not found in group {group_id}.")
        return self._row_to_membership(row)

    @staticmethod
    def _row_to_group(row: sqlite3.Row) -> Group:
        return Group(
            group_id=row["group_id"],
            group_name=row["group_name"],
            group_type=GroupType(row["group_type"]),
        )

    @staticmethod
    def _row_to_membership(row: sqlite3.Row) -> GroupMembership:
        return GroupMembership(
            group_id=row["group_id"],
            username=row["username"],
            role=row["role"] or "",
            rights=Rights(can_view=bool(row["can_view"]), can_admin=bool(row["can_admin"])),
        )
