"""
User account data models.

Data classes for users, profiles, roles and invitations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Union

from ..errors import ValidationError


class Role(str, Enum):
    """
    Roles a user can act under for a session.
    """
    ADMINISTRATOR = "Administrator"
    INSTRUCTOR = "Instructor"
    STUDENT = "Student"

    @classmethod
    def parse(cls, value: Union["Role", str]) -> "Role":
        """
        Resolve a role from its name, ignoring case and surrounding spaces.

        Raises:
            ValidationError: If the name is not a known role
        """
        if isinstance(value, Role):
            return value
        name = str(value).strip().lower()
        for role in cls:
            if role.value.lower() == name:
                return role
        raise ValidationError(f"Unknown role: {value}")


# Display order, matching the role checkboxes
ROLE_ORDER = [Role.STUDENT, Role.INSTRUCTOR, Role.ADMINISTRATOR]

# Roles a user may pick without an invitation
SELF_REGISTRATION_ROLES = frozenset({Role.STUDENT, Role.INSTRUCTOR})


class RoleSet(frozenset):
    """
    Non-empty set of roles.

    Built from Role members or role names; an empty selection is rejected.
    """

    def __new__(cls, roles: Iterable[Union[Role, str]] = ()):
        parsed = frozenset(Role.parse(role) for role in roles)
        if not parsed:
            raise ValidationError("Select at least one role.")
        return super().__new__(cls, parsed)

    def ordered(self) -> List[Role]:
        return [role for role in ROLE_ORDER if role in self]

    def names(self) -> List[str]:
        return [role.value for role in self.ordered()]

    def __repr__(self) -> str:
        return f"RoleSet({self.names()})"


@dataclass
class Profile:
    """
    Personal details collected at first login.

    Attributes:
        email: Email address (required)
        first_name: First name (required)
        middle_name: Middle name
        last_name: Last name (required)
        preferred_first_name: Name used in greetings, if given
    """
    email: str = ""
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    preferred_first_name: str = ""

    def is_complete(self) -> bool:
        required = (self.email, self.first_name, self.last_name)
        return all(value and value.strip() for value in required)


@dataclass
class User:
    """
    User account.

    Attributes:
        username: Unique username
        password_hash: Bcrypt hashed password
        roles: Assigned roles (never empty)
        profile: Personal details
        account_setup_complete: Whether the profile step has been finished
        one_time_password: Pending reset code set by an administrator
        password_expiry: Moment the one-time password stops being accepted
        created_at: Account creation timestamp
    """
    username: str
    password_hash: str
    roles: RoleSet
    profile: Profile = field(default_factory=Profile)
    account_setup_complete: bool = False
    one_time_password: Optional[str] = None
    password_expiry: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def is_password_reset_required(self, now: datetime) -> bool:
        """True while a one-time password is set and has not yet expired."""
        return (
            self.one_time_password is not None
            and self.password_expiry is not None
            and now < self.password_expiry
        )

    @property
    def preferred_first_name_or_default(self) -> str:
        return self.profile.preferred_first_name or self.profile.first_name

    @property
    def full_name(self) -> str:
        parts = [self.profile.first_name, self.profile.middle_name, self.profile.last_name]
        return " ".join(part for part in parts if part)


@dataclass
class Invitation:
    """
    One-time registration code.

    Attributes:
        code: Short random token
        roles: Roles granted to whoever registers with the code
        created_at: Creation timestamp
    """
    code: str
    roles: RoleSet
    created_at: Optional[datetime] = None
