"""Access groups, memberships and scoped access rights."""

from .models import Group, GroupMembership, GroupType, Rights
from .groups import GroupManager, LAST_ADMIN_MESSAGE
from .rights import AccessRightsTable

__all__ = [
    "Group",
    "GroupMembership",
    "GroupType",
    "Rights",
    "GroupManager",
    "LAST_ADMIN_MESSAGE",
    "AccessRightsTable",
]
