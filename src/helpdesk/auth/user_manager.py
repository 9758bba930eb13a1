"""
Administrator actions on user accounts.

Combines the user store and the invitation registry for the invite, reset,
delete, list and manage-roles panels.
"""

import uuid
from datetime import datetime
from typing import Iterable, List, Union

from loguru import logger

from ..errors import NotFoundError
from .database import UserDatabase
from .invitations import InvitationRegistry
from .models import Invitation, Role, RoleSet, User


class UserManager:
    """
    User administration.

    Provides:
    - Invitation codes for role-scoped registration
    - One-time passwords for account resets
    - Account deletion, listing and role management
    """

    def __init__(
        self,
        users: UserDatabase,
        invitations: InvitationRegistry,
        one_time_password_length: int = 4,
    ):
        self.users = users
        self.invitations = invitations
        self.one_time_password_length = one_time_password_length

    def invite_user(self, roles: Iterable[Union[Role, str]]) -> Invitation:
        """
        Create an invitation code for the given roles.

        Raises:
            ValidationError: If no role was selected
        """
        return self.invitations.create(roles)

    def reset_account(self, username: str, expiry: datetime) -> str:
        """
        Issue a one-time password that must be used before ``expiry``.

        Args:
            username: Account to reset
            expiry: Moment the one-time password stops being accepted

        Returns:
            The one-time password to hand to the user

        Raises:
            NotFoundError: If the user does not exist
        """
        username = username.strip()
        one_time_password = uuid.uuid4().hex[:self.one_time_password_length]
        self.users.set_one_time_password(username, one_time_password, expiry)
        return one_time_password

    def delete_user(self, username: str) -> None:
        """
        Raises:
            NotFoundError: If the user does not exist
        """
        if not self.users.remove(username.strip()):
            raise NotFoundError("User not found.")

    def list_users(self) -> List[User]:
        return self.users.list_users()

    def update_roles(self, username: str, roles: Iterable[Union[Role, str]]) -> RoleSet:
        role_set = self.users.update_roles(username.strip(), roles)
        logger.debug(f"Manage roles: {username} -> {role_set!r}")
        return role_set


def describe_user(user: User) -> str:
    """One line for the user list panel."""
    return f"Username: {user.username}, Name: {user.full_name}, Roles: {', '.join(user.roles.names())}"
