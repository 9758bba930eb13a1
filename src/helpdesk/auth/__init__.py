"""
Authentication module for the help desk.

Provides the user store, invitation codes, the login workflow and
role-based access control for the home page panels.
"""

from .models import User, Role, RoleSet, Profile, Invitation
from .database import UserDatabase
from .invitations import InvitationRegistry
from .user_manager import UserManager, describe_user
from .workflow import (
    AuthWorkflow,
    Outcome,
    LoggedOut,
    AwaitingInvitationRegistration,
    AwaitingOpenRegistration,
    AwaitingProfileSetup,
    AwaitingRoleSelection,
    AwaitingPasswordReset,
    Authenticated,
    LoginSubmitted,
    InvitationRegistrationSubmitted,
    RolesSelected,
    ProfileSubmitted,
    RoleChosen,
    NewPasswordSubmitted,
    LogoutRequested,
)
from .permissions import (
    Permission,
    PermissionChecker,
    PermissionDeniedError,
    check_permission,
    require_permission,
    ROLE_PERMISSIONS,
)

__all__ = [
    # User models and store
    "User",
    "Role",
    "RoleSet",
    "Profile",
    "Invitation",
    "UserDatabase",
    "InvitationRegistry",
    "UserManager",
    "describe_user",
    # Workflow
    "AuthWorkflow",
    "Outcome",
    "LoggedOut",
    "AwaitingInvitationRegistration",
    "AwaitingOpenRegistration",
    "AwaitingProfileSetup",
    "AwaitingRoleSelection",
    "AwaitingPasswordReset",
    "Authenticated",
    "LoginSubmitted",
    "InvitationRegistrationSubmitted",
    "RolesSelected",
    "ProfileSubmitted",
    "RoleChosen",
    "NewPasswordSubmitted",
    "LogoutRequested",
    # RBAC permissions
    "Permission",
    "PermissionChecker",
    "PermissionDeniedError",
    "check_permission",
    "require_permission",
    "ROLE_PERMISSIONS",
]
