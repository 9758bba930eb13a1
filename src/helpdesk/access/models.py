"""
Group access-control data models.
"""

from dataclasses import dataclass
from enum import Enum


class GroupType(str, Enum):
    SPECIAL = "Special"
    GENERAL = "General"


@dataclass(frozen=True)
class Rights:
    """
    Per-member (or per-scope) access flags.

    Attributes:
        can_view: Member may read bodies of the group's articles
        can_admin: Member may administer the group
    """
    can_view: bool = False
    can_admin: bool = False


@dataclass
class Group:
    """
    Access group.

    Attributes:
        group_id: Unique identifier (UUID)
        group_name: Unique display name
        group_type: Special or General
    """
    group_id: str
    group_name: str
    group_type: GroupType = GroupType.GENERAL


@dataclass
class GroupMembership:
    """
    A user's membership in a group.

    Attributes:
        group_id: Group the row belongs to
        username: Member
        role: Free-text role inside the group (e.g. Instructor, Viewer)
        rights: View/admin flags
    """
    group_id: str
    username: str
    role: str
    rights: Rights

    @property
    def can_view(self) -> bool:
        return self.rights.can_view

    @property
    def can_admin(self) -> bool:
        return self.rights.can_admin
