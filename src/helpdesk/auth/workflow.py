"""
Login, registration and password-reset workflow.

An explicit finite-state machine. ``AuthWorkflow.handle`` takes the current
state and a submitted form and returns an ``Outcome``: the next state plus
the message to display. Nothing here knows how forms are rendered.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Tuple, Type, Union

from loguru import logger

from ..errors import HelpdeskError, NotFoundError, ValidationError
from ..storage import Database
from .database import UserDatabase
from .invitations import InvitationRegistry
from .models import Profile, Role, RoleSet, SELF_REGISTRATION_ROLES, User


# ============================================================================
# States
# ============================================================================

@dataclass(frozen=True)
class LoggedOut:
    pass


@dataclass(frozen=True)
class AwaitingInvitationRegistration:
    """A valid invitation code was entered; waiting for username and password."""
    code: str
    roles: RoleSet


@dataclass(frozen=True)
class AwaitingOpenRegistration:
    """Unknown username with a valid password pair; waiting for role selection."""
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class AwaitingProfileSetup:
    username: str


@dataclass(frozen=True)
class AwaitingRoleSelection:
    username: str
    roles: RoleSet


@dataclass(frozen=True)
class AwaitingPasswordReset:
    username: str


@dataclass(frozen=True)
class Authenticated:
    """
    Logged in and acting under exactly one role.

    Attributes:
        username: The logged in user
        role: The effective session role
    """
    username: str
    role: Role


State = Union[
    LoggedOut,
    AwaitingInvitationRegistration,
    AwaitingOpenRegistration,
    AwaitingProfileSetup,
    AwaitingRoleSelection,
    AwaitingPasswordReset,
    Authenticated,
]


# ============================================================================
# Inputs
# ============================================================================

@dataclass(frozen=True)
class LoginSubmitted:
    username: str = ""
    password: str = field(default="", repr=False)
    confirm_password: str = field(default="", repr=False)
    invitation_code: str = ""


@dataclass(frozen=True)
class InvitationRegistrationSubmitted:
    username: str = ""
    password: str = field(default="", repr=False)
    confirm_password: str = field(default="", repr=False)


@dataclass(frozen=True)
class RolesSelected:
    roles: Tuple[Union[Role, str], ...] = ()


@dataclass(frozen=True)
class ProfileSubmitted:
    email: str = ""
    first_name: str = ""
    middle_name: str = ""
    last_name: str = ""
    preferred_first_name: str = ""


@dataclass(frozen=True)
class RoleChosen:
    role: Union[Role, str, None] = None


@dataclass(frozen=True)
class NewPasswordSubmitted:
    password: str = field(default="", repr=False)
    confirm_password: str = field(default="", repr=False)


@dataclass(frozen=True)
class LogoutRequested:
    pass


Event = Union[
    LoginSubmitted,
    InvitationRegistrationSubmitted,
    RolesSelected,
    ProfileSubmitted,
    RoleChosen,
    NewPasswordSubmitted,
    LogoutRequested,
]


@dataclass(frozen=True)
class Outcome:
    """
    Result of one transition.

    Attributes:
        state: Next workflow state
        message: Text for the presentation layer to display
        clear_fields: Whether the submitted form should be emptied
    """
    state: State
    message: str = ""
    clear_fields: bool = False


# ============================================================================
# Password rule shared by every registration path
# ============================================================================

def validate_passwords(password: str, confirm_password: str) -> None:
    """
    Raises:
        ValidationError: If either field is empty or they differ
    """
    if not password or not confirm_password:
        raise ValidationError("Password fields cannot be empty.")
    if password != confirm_password:
        raise ValidationError("Passwords do not match.")


def passwords_valid(password: str, confirm_password: str) -> bool:
    try:
        validate_passwords(password, confirm_password)
    except ValidationError:
        return False
    return True


def welcome_message(role: Role, user: User) -> str:
    return f"Welcome, {role.value} {user.preferred_first_name_or_default}!"


# ============================================================================
# Workflow
# ============================================================================

class AuthWorkflow:
    """
    Authentication state machine.

    Consults the user store and the invitation registry to decide between
    login, bootstrap of the first administrator, invitation registration,
    open registration and one-time-password reset.
    """

    def __init__(
        self,
        db: Database,
        users: UserDatabase,
        invitations: InvitationRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            db: Shared handle, used to group multi-step registrations
            users: User store
            invitations: Invitation registry
            clock: Source of "now" for one-time password expiry
        """
        self.db = db
        self.users = users
        self.invitations = invitations
        self.clock = clock

        self._transitions: Dict[Tuple[Type, Type], Callable] = {
            (LoggedOut, LoginSubmitted): self._login,
            (AwaitingInvitationRegistration, InvitationRegistrationSubmitted): self._register_with_invitation,
            (AwaitingOpenRegistration, RolesSelected): self._register_with_roles,
            (AwaitingProfileSetup, ProfileSubmitted): self._complete_profile,
            (AwaitingRoleSelection, RoleChosen): self._choose_role,
            (AwaitingPasswordReset, NewPasswordSubmitted): self._reset_password,
        }

    def handle(self, state: State, event: Event) -> Outcome:
        """
        Apply one submitted form to the current state.

        Every HelpdeskError is turned into a message; the state is kept
        unless the transition says otherwise.
        """
        if isinstance(event, LogoutRequested):
            if isinstance(state, Authenticated):
                logger.info(f"User logged out: {state.username}")
            return Outcome(LoggedOut(), "Logged out.", clear_fields=True)

        transition = self._transitions.get((type(state), type(event)))
        if transition is None:
            logger.warning(f"Ignored {type(event).__name__} while in {type(state).__name__}")
            return Outcome(state, "That action is not available right now.")

        clear_fields = isinstance(event, LoginSubmitted)
        try:
            outcome = transition(state, event)
        except HelpdeskError as e:
            logger.warning(f"{type(event).__name__} rejected: {e}")
            return Outcome(state, str(e), clear_fields=clear_fields)

        if clear_fields and not outcome.clear_fields:
            outcome = Outcome(outcome.state, outcome.message, clear_fields=True)
        return outcome

    # ------------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------------

    def _login(self, state: LoggedOut, event: LoginSubmitted) -> Outcome:
        username = event.username.strip()
        code = event.invitation_code.strip()

        if code:
            invitation = self.invitations.find(code)
            if invitation is None:
                logger.warning(f"Unknown invitation code submitted: {code}")
                return Outcome(LoggedOut(), "Invalid invitation code.")
            return Outcome(
                AwaitingInvitationRegistration(code=code, roles=invitation.roles),
                f"Invitation accepted for roles: {', '.join(invitation.roles.names())}.",
            )

        if self.users.is_empty():
            validate_passwords(event.password, event.confirm_password)
            self.users.add(username, event.password, [Role.ADMINISTRATOR])
            logger.info(f"Bootstrap administrator created: {username}")
            return Outcome(LoggedOut(), "Admin account created. Please log in again.")

        user = self.users.find_by_username(username)
        if user is not None:
            now = self.clock()
            if user.is_password_reset_required(now):
                return self._check_one_time_password(user, event.password, now)

            if self.users.verify_password(user, event.password):
                if not user.account_setup_complete:
                    logger.info(f"User {username} must finish account setup")
                    return Outcome(
                        AwaitingProfileSetup(username=username),
                        "Please finish setting up your account.",
                    )
                return self._proceed_after_login(user)

            logger.warning(f"Login failed: invalid password for '{username}'")
            return Outcome(LoggedOut(), "Invalid username or password.")

        if username and passwords_valid(event.password, event.confirm_password):
            return Outcome(
                AwaitingOpenRegistration(username=username, password=event.password),
                "Select your roles.",
            )

        logger.warning(f"Login failed: user '{username}' not found")
        return Outcome(LoggedOut(), "Invalid login or registration details.")

    def _check_one_time_password(self, user: User, submitted: str, now: datetime) -> Outcome:
        if submitted == user.one_time_password and now < user.password_expiry:
            logger.info(f"One-time password accepted for {user.username}")
            return Outcome(
                AwaitingPasswordReset(username=user.username),
                "Enter a new password.",
            )
        logger.warning(f"Rejected one-time password for {user.username}")
        return Outcome(LoggedOut(), "Invalid or expired one-time password.")

    def _register_with_invitation(
        self,
        state: AwaitingInvitationRegistration,
        event: InvitationRegistrationSubmitted,
    ) -> Outcome:
        validate_passwords(event.password, event.confirm_password)

        try:
            with self.db.transaction("registering user"):
                self.users.add(event.username, event.password, state.roles)
                self.invitations.consume(state.code)
        except NotFoundError as e:
            return Outcome(LoggedOut(), str(e))

        logger.info(f"User {event.username.strip()} registered with invitation {state.code}")
        return Outcome(LoggedOut(), "Registration successful. Please log in.", clear_fields=True)

    def _register_with_roles(self, state: AwaitingOpenRegistration, event: RolesSelected) -> Outcome:
        if not event.roles:
            raise ValidationError("Please select at least one role.")
        roles = RoleSet(event.roles)
        if not roles <= SELF_REGISTRATION_ROLES:
            raise ValidationError("Only Student and Instructor roles can be chosen without an invitation.")

        self.users.add(state.username, state.password, roles)
        return Outcome(LoggedOut(), "Registration successful. Please log in.", clear_fields=True)

    def _complete_profile(self, state: AwaitingProfileSetup, event: ProfileSubmitted) -> Outcome:
        profile = Profile(
            email=event.email,
            first_name=event.first_name,
            middle_name=event.middle_name,
            last_name=event.last_name,
            preferred_first_name=event.preferred_first_name,
        )
        self.users.complete_profile(state.username, profile)
        return self._proceed_after_login(self.users.get(state.username))

    def _choose_role(self, state: AwaitingRoleSelection, event: RoleChosen) -> Outcome:
        if event.role is None:
            raise ValidationError("Please select a role.")
        role = Role.parse(event.role)
        if role not in state.roles:
            raise ValidationError("Please select one of your roles.")

        user = self.users.get(state.username)
        logger.info(f"User logged in: {user.username} as {role.value}")
        return Outcome(Authenticated(username=user.username, role=role), welcome_message(role, user))

    def _reset_password(self, state: AwaitingPasswordReset, event: NewPasswordSubmitted) -> Outcome:
        if not event.password or event.password != event.confirm_password:
            raise ValidationError("Passwords do not match or are empty.")

        with self.db.transaction("resetting password"):
            self.users.set_password(state.username, event.password)
            self.users.clear_reset(state.username)

        return Outcome(LoggedOut(), "Password reset. Please log in with your new password.", clear_fields=True)

    def _proceed_after_login(self, user: User) -> Outcome:
        if len(user.roles) > 1:
            return Outcome(
                AwaitingRoleSelection(username=user.username, roles=user.roles),
                "Select a role for this session.",
            )

        role = user.roles.ordered()[0]
        logger.info(f"User logged in: {user.username} as {role.value}")
        return Outcome(Authenticated(username=user.username, role=role), welcome_message(role, user))
