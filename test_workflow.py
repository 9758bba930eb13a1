"""
Tests for the login, registration and password-reset workflow.
"""

from datetime import timedelta

import pytest

from helpdesk.auth.models import Profile, Role
from helpdesk.auth.workflow import (
    AwaitingInvitationRegistration,
    AwaitingOpenRegistration,
    AwaitingPasswordReset,
    AwaitingProfileSetup,
    AwaitingRoleSelection,
    Authenticated,
    InvitationRegistrationSubmitted,
    LoggedOut,
    LoginSubmitted,
    LogoutRequested,
    NewPasswordSubmitted,
    ProfileSubmitted,
    RoleChosen,
    RolesSelected,
    passwords_valid,
    validate_passwords,
)
from helpdesk.errors import ValidationError


def make_user(helpdesk, username, password, roles, first_name="Sam"):
    """Create a user whose account setup is already finished."""
    helpdesk.users.add(username, password, roles)
    helpdesk.users.complete_profile(
        username,
        Profile(email=f"{username}@example.com", first_name=first_name, last_name="Tester"),
    )


class TestPasswordRule:
    """Test the password rule shared by every registration path."""

    def test_empty_fields(self):
        """Either empty field is rejected."""
        with pytest.raises(ValidationError, match="Password fields cannot be empty."):
            validate_passwords("", "pw")
        with pytest.raises(ValidationError, match="Password fields cannot be empty."):
            validate_passwords("pw", "")

    def test_mismatch(self):
        """Different non-empty passwords are rejected."""
        with pytest.raises(ValidationError, match="Passwords do not match."):
            validate_passwords("pw1", "pw2")

    def test_valid(self):
        assert passwords_valid("pw", "pw")
        assert not passwords_valid("pw", "")


class TestBootstrap:
    """Test creation of the first administrator on an empty store."""

    def test_first_registration_is_administrator(self, helpdesk, workflow):
        """The first user always gets exactly the Administrator role."""
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1", "pw1"))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Admin account created. Please log in again."
        assert outcome.clear_fields
        assert helpdesk.users.get("alice").roles == {Role.ADMINISTRATOR}

    def test_bootstrap_mismatched_passwords(self, helpdesk, workflow):
        """Mismatched passwords create nothing."""
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1", "pw2"))

        assert outcome.message == "Passwords do not match."
        assert helpdesk.users.is_empty()

    def test_bootstrap_empty_password(self, helpdesk, workflow):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("alice", "", ""))

        assert outcome.message == "Password fields cannot be empty."
        assert helpdesk.users.is_empty()

    def test_bootstrap_requires_username(self, helpdesk, workflow):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("   ", "pw1", "pw1"))

        assert outcome.message == "Username cannot be empty."
        assert helpdesk.users.is_empty()

    def test_invitation_code_checked_before_bootstrap(self, helpdesk, workflow):
        """An unknown code is reported even when the store is empty."""
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1", "pw1", "zzzz"))

        assert outcome.message == "Invalid invitation code."
        assert helpdesk.users.is_empty()


class TestAliceScenario:
    """Test the full first-administrator journey."""

    def test_register_login_and_finish_profile(self, helpdesk, workflow):
        """Bootstrap, then profile setup, then home."""
        workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1", "pw1"))
        assert helpdesk.users.get("alice").roles == {Role.ADMINISTRATOR}

        outcome = workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1"))
        assert outcome.state == AwaitingProfileSetup(username="alice")

        outcome = workflow.handle(
            outcome.state,
            ProfileSubmitted(email="", first_name="Alice", last_name="Liddell"),
        )
        assert outcome.state == AwaitingProfileSetup(username="alice")
        assert outcome.message == "Please fill in all required fields."
        assert not helpdesk.users.get("alice").account_setup_complete

        outcome = workflow.handle(
            outcome.state,
            ProfileSubmitted(email="alice@example.com", first_name="Alice", last_name="Liddell"),
        )
        assert outcome.state == Authenticated(username="alice", role=Role.ADMINISTRATOR)
        assert outcome.message == "Welcome, Administrator Alice!"
        assert helpdesk.users.get("alice").account_setup_complete

    def test_preferred_name_used_in_greeting(self, helpdesk, workflow):
        workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1", "pw1"))
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("alice", "pw1"))
        outcome = workflow.handle(
            outcome.state,
            ProfileSubmitted(
                email="alice@example.com",
                first_name="Alice",
                last_name="Liddell",
                preferred_first_name="Al",
            ),
        )

        assert outcome.message == "Welcome, Administrator Al!"


class TestLogin:
    """Test login against existing accounts."""

    def test_wrong_password(self, helpdesk, workflow, admin_session):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("admin", "nope"))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Invalid username or password."
        assert outcome.clear_fields

    def test_single_role_skips_selection(self, helpdesk, workflow, admin_session):
        make_user(helpdesk, "stu", "stupw", [Role.STUDENT])

        outcome = workflow.handle(LoggedOut(), LoginSubmitted("stu", "stupw"))

        assert outcome.state == Authenticated(username="stu", role=Role.STUDENT)

    def test_multiple_roles_require_selection(self, helpdesk, workflow, admin_session):
        """A user with several roles must pick one for the session."""
        make_user(helpdesk, "multi", "pw", [Role.ADMINISTRATOR, Role.STUDENT])

        outcome = workflow.handle(LoggedOut(), LoginSubmitted("multi", "pw"))

        assert isinstance(outcome.state, AwaitingRoleSelection)
        assert outcome.state.roles.ordered() == [Role.STUDENT, Role.ADMINISTRATOR]
        assert outcome.message == "Select a role for this session."

        chosen = workflow.handle(outcome.state, RoleChosen(Role.STUDENT))
        assert chosen.state == Authenticated(username="multi", role=Role.STUDENT)

    def test_role_choice_by_name(self, helpdesk, workflow, admin_session):
        make_user(helpdesk, "multi", "pw", [Role.INSTRUCTOR, Role.STUDENT])
        state = workflow.handle(LoggedOut(), LoginSubmitted("multi", "pw")).state

        outcome = workflow.handle(state, RoleChosen("instructor"))

        assert outcome.state == Authenticated(username="multi", role=Role.INSTRUCTOR)

    def test_role_choice_must_be_made(self, helpdesk, workflow, admin_session):
        make_user(helpdesk, "multi", "pw", [Role.INSTRUCTOR, Role.STUDENT])
        state = workflow.handle(LoggedOut(), LoginSubmitted("multi", "pw")).state

        outcome = workflow.handle(state, RoleChosen(None))

        assert outcome.state == state
        assert outcome.message == "Please select a role."

    def test_role_choice_limited_to_assigned_roles(self, helpdesk, workflow, admin_session):
        make_user(helpdesk, "multi", "pw", [Role.INSTRUCTOR, Role.STUDENT])
        state = workflow.handle(LoggedOut(), LoginSubmitted("multi", "pw")).state

        outcome = workflow.handle(state, RoleChosen(Role.ADMINISTRATOR))

        assert outcome.state == state
        assert outcome.message == "Please select one of your roles."

    def test_unknown_user_without_confirmation(self, helpdesk, workflow, admin_session):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("ghost", "pw"))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Invalid login or registration details."

    def test_logout(self, workflow, admin_session):
        outcome = workflow.handle(admin_session, LogoutRequested())

        assert outcome.state == LoggedOut()
        assert outcome.message == "Logged out."

    def test_unavailable_action(self, workflow):
        """A form that does not belong to the current state is ignored."""
        outcome = workflow.handle(LoggedOut(), RoleChosen(Role.STUDENT))

        assert outcome.state == LoggedOut()
        assert outcome.message == "That action is not available right now."


class TestOpenRegistration:
    """Test self-registration without an invitation code."""

    @pytest.fixture
    def pending(self, workflow, admin_session):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("newbie", "pw", "pw"))
        assert outcome.message == "Select your roles."
        return outcome.state

    def test_pending_state(self, pending):
        assert isinstance(pending, AwaitingOpenRegistration)
        assert pending.username == "newbie"

    def test_no_role_selected(self, helpdesk, workflow, pending):
        outcome = workflow.handle(pending, RolesSelected(()))

        assert outcome.state == pending
        assert outcome.message == "Please select at least one role."
        assert helpdesk.users.find_by_username("newbie") is None

    def test_register_student(self, helpdesk, workflow, pending):
        outcome = workflow.handle(pending, RolesSelected((Role.STUDENT,)))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Registration successful. Please log in."
        assert helpdesk.users.get("newbie").roles == {Role.STUDENT}

    def test_administrator_not_self_assignable(self, helpdesk, workflow, pending):
        outcome = workflow.handle(pending, RolesSelected(("Administrator",)))

        assert outcome.state == pending
        assert helpdesk.users.find_by_username("newbie") is None

    def test_new_user_must_finish_setup(self, helpdesk, workflow, pending):
        workflow.handle(pending, RolesSelected((Role.STUDENT, Role.INSTRUCTOR)))

        outcome = workflow.handle(LoggedOut(), LoginSubmitted("newbie", "pw"))

        assert outcome.state == AwaitingProfileSetup(username="newbie")


class TestInvitationRegistration:
    """Test registration with an invitation code."""

    @pytest.fixture
    def code(self, helpdesk, admin_session, monkeypatch):
        monkeypatch.setattr(helpdesk.invitations, "_generate_code", lambda: "abcd")
        return helpdesk.user_manager.invite_user([Role.STUDENT, Role.INSTRUCTOR]).code

    def test_code_opens_registration(self, workflow, code):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted(invitation_code=code))

        assert isinstance(outcome.state, AwaitingInvitationRegistration)
        assert outcome.state.code == "abcd"
        assert outcome.state.roles == {Role.STUDENT, Role.INSTRUCTOR}

    def test_code_is_single_use(self, helpdesk, workflow, code):
        """bob registers with 'abcd'; the second attempt is rejected."""
        state = workflow.handle(LoggedOut(), LoginSubmitted(invitation_code=code)).state
        outcome = workflow.handle(state, InvitationRegistrationSubmitted("bob", "bobpw", "bobpw"))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Registration successful. Please log in."
        assert helpdesk.users.get("bob").roles == {Role.STUDENT, Role.INSTRUCTOR}

        again = workflow.handle(LoggedOut(), LoginSubmitted(invitation_code="abcd"))
        assert again.state == LoggedOut()
        assert again.message == "Invalid invitation code."

    def test_mismatched_passwords_keep_code(self, helpdesk, workflow, code):
        state = workflow.handle(LoggedOut(), LoginSubmitted(invitation_code=code)).state
        outcome = workflow.handle(state, InvitationRegistrationSubmitted("bob", "a", "b"))

        assert outcome.state == state
        assert outcome.message == "Passwords do not match."
        assert helpdesk.invitations.find(code) is not None
        assert helpdesk.users.find_by_username("bob") is None

    def test_taken_username_keeps_code(self, helpdesk, workflow, code):
        """A failed registration does not consume the code."""
        state = workflow.handle(LoggedOut(), LoginSubmitted(invitation_code=code)).state
        outcome = workflow.handle(state, InvitationRegistrationSubmitted("admin", "pw", "pw"))

        assert outcome.message == "Username already exists."
        assert helpdesk.invitations.find(code) is not None


class TestPasswordReset:
    """Test one-time password resets."""

    @pytest.fixture
    def otp(self, helpdesk, clock, admin_session):
        make_user(helpdesk, "stu", "oldpw", [Role.STUDENT])
        return helpdesk.user_manager.reset_account("stu", clock.now + timedelta(hours=1))

    def test_one_time_password_accepted(self, workflow, otp):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("stu", otp))

        assert outcome.state == AwaitingPasswordReset(username="stu")
        assert outcome.message == "Enter a new password."

    def test_regular_password_refused_while_pending(self, workflow, otp):
        outcome = workflow.handle(LoggedOut(), LoginSubmitted("stu", "oldpw"))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Invalid or expired one-time password."

    def test_new_password_must_match(self, workflow, otp):
        state = workflow.handle(LoggedOut(), LoginSubmitted("stu", otp)).state

        outcome = workflow.handle(state, NewPasswordSubmitted("new", "other"))

        assert outcome.state == state
        assert outcome.message == "Passwords do not match or are empty."

    def test_reset_completes(self, helpdesk, workflow, otp):
        state = workflow.handle(LoggedOut(), LoginSubmitted("stu", otp)).state

        outcome = workflow.handle(state, NewPasswordSubmitted("newpw", "newpw"))

        assert outcome.state == LoggedOut()
        assert outcome.message == "Password reset. Please log in with your new password."
        user = helpdesk.users.get("stu")
        assert user.one_time_password is None
        assert user.password_expiry is None

        login = workflow.handle(LoggedOut(), LoginSubmitted("stu", "newpw"))
        assert login.state == Authenticated(username="stu", role=Role.STUDENT)

    def test_expired_one_time_password_falls_back(self, helpdesk, workflow, clock, otp):
        """After expiry the account is no longer reset-pending."""
        clock.advance(hours=2)

        assert not helpdesk.users.get("stu").is_password_reset_required(clock.now)
        refused = workflow.handle(LoggedOut(), LoginSubmitted("stu", otp))
        assert refused.message == "Invalid username or password."

        login = workflow.handle(LoggedOut(), LoginSubmitted("stu", "oldpw"))
        assert login.state == Authenticated(username="stu", role=Role.STUDENT)
