"""
Role-based access control for help desk panels.

This module provides:
- Permission definitions for each panel action
- The role to permission map applied to the session role
- Permission checking helpers
"""

from enum import Enum
from typing import Dict, List, Optional, Set, Union

from ..errors import HelpdeskError
from .models import Role


class Permission(str, Enum):
    """
    Enum of all panel actions.

    Each permission controls access to one action offered on the home page.
    """
    # Articles
    ADD_ARTICLE = "add_article"
    LIST_ARTICLES = "list_articles"
    VIEW_ARTICLE = "view_article"
    DELETE_ARTICLE = "delete_article"
    BACKUP_ARTICLES = "backup_articles"
    RESTORE_ARTICLES = "restore_articles"
    SEARCH_ARTICLES = "search_articles"

    # User administration
    INVITE_USER = "invite_user"
    RESET_ACCOUNT = "reset_account"
    DELETE_USER = "delete_user"
    LIST_USERS = "list_users"
    MANAGE_ROLES = "manage_roles"

    # Groups
    MANAGE_GROUPS = "manage_groups"
    VIEW_GROUP_USERS = "view_group_users"
    VIEW_GROUP_ARTICLES = "view_group_articles"

    # Help
    SEND_HELP_MESSAGE = "send_help_message"
    VIEW_HELP_MESSAGES = "view_help_messages"


# Map each role to its permissions
ROLE_PERMISSIONS: Dict[Role, Set[Permission]] = {
    Role.ADMINISTRATOR: {
        Permission.ADD_ARTICLE,
        Permission.LIST_ARTICLES,
        Permission.DELETE_ARTICLE,
        Permission.BACKUP_ARTICLES,
        Permission.RESTORE_ARTICLES,
        Permission.INVITE_USER,
        Permission.RESET_ACCOUNT,
        Permission.DELETE_USER,
        Permission.LIST_USERS,
        Permission.MANAGE_ROLES,
        Permission.MANAGE_GROUPS,
        Permission.VIEW_GROUP_USERS,
        Permission.VIEW_GROUP_ARTICLES,
        Permission.VIEW_HELP_MESSAGES,
    },

    Role.INSTRUCTOR: {
        Permission.ADD_ARTICLE,
        Permission.LIST_ARTICLES,
        Permission.VIEW_ARTICLE,
        Permission.DELETE_ARTICLE,
        Permission.BACKUP_ARTICLES,
        Permission.RESTORE_ARTICLES,
        Permission.SEARCH_ARTICLES,
        Permission.MANAGE_GROUPS,
        Permission.VIEW_GROUP_USERS,
        Permission.VIEW_GROUP_ARTICLES,
        Permission.VIEW_HELP_MESSAGES,
    },

    Role.STUDENT: {
        Permission.SEND_HELP_MESSAGE,
        Permission.SEARCH_ARTICLES,
        Permission.VIEW_ARTICLE,
        Permission.VIEW_GROUP_ARTICLES,
    },
}


class PermissionChecker:
    """
    Checks whether a session role may perform an action.
    """

    def __init__(self):
        self.role_permissions = ROLE_PERMISSIONS

    def has_permission(self, role: Union[Role, str], permission: Permission) -> bool:
        """
        Check if a role has a specific permission.

        Args:
            role: The effective session role
            permission: The permission to check

        Returns:
            bool: True if the role has the permission, False otherwise
        """
        try:
            role_enum = Role.parse(role)
        except HelpdeskError:
            # Unknown role, no permissions
            return False
        return permission in self.role_permissions.get(role_enum, set())

    def get_role_permissions(self, role: Union[Role, str]) -> Set[Permission]:
        try:
            return set(self.role_permissions.get(Role.parse(role), set()))
        except HelpdeskError:
            return set()

    def get_allowed_actions(self, role: Union[Role, str]) -> List[Permission]:
        """
        Permissions of a role in declaration order, for building menus.
        """
        allowed = self.get_role_permissions(role)
        return [permission for permission in Permission if permission in allowed]


class PermissionDeniedError(HelpdeskError):
    """
    Raised when a session role attempts an action it is not allowed.

    Attributes:
        username: The user who was denied
        role: The role the user acts under
        required_permission: The permission that was required
    """

    def __init__(
        self,
        username: str,
        role: Union[Role, str],
        required_permission: Optional[Permission] = None,
    ):
        self.username = username
        self.role = role
        self.required_permission = required_permission

        role_name = role.value if isinstance(role, Role) else role
        message = f"User {username} acting as {role_name} is not allowed to do that"
        if required_permission:
            message += f" (requires: {required_permission.value})"

        super().__init__(message)


# Global permission checker instance
_permission_checker = PermissionChecker()


def check_permission(role: Union[Role, str], permission: Permission) -> bool:
    """
    Global helper to check if a role has a permission.
    """
    return _permission_checker.has_permission(role, permission)


def require_permission(username: str, role: Union[Role, str], permission: Permission) -> None:
    """
    Require a permission, raising PermissionDeniedError if not authorized.

    Args:
        username: The user's name
        role: The effective session role
        permission: The required permission

    Raises:
        PermissionDeniedError: If the role doesn't have the permission
    """
    if not check_permission(role, permission):
        raise PermissionDeniedError(
            username=username,
            role=role,
            required_permission=permission,
        )
