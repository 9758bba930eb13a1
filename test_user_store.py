"""
Tests for the user store, invitation registry and user administration.
"""

from datetime import datetime, timedelta

import pytest

from helpdesk.auth.models import Profile, Role, RoleSet
from helpdesk.auth.user_manager import describe_user
from helpdesk.errors import NotFoundError, ValidationError


class TestRoles:
    """Test role parsing and role sets."""

    def test_parse_ignores_case(self):
        assert Role.parse(" student ") is Role.STUDENT
        assert Role.parse("ADMINISTRATOR") is Role.ADMINISTRATOR

    def test_parse_unknown(self):
        with pytest.raises(ValidationError, match="Unknown role"):
            Role.parse("Janitor")

    def test_empty_role_set_rejected(self):
        with pytest.raises(ValidationError):
            RoleSet([])

    def test_ordered(self):
        roles = RoleSet(["Administrator", Role.STUDENT, "instructor"])
        assert roles.names() == ["Student", "Instructor", "Administrator"]


class TestUserDatabase:
    """Test user creation, lookup and mutation."""

    def test_add_and_find(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        user = helpdesk.users.find_by_username("carol")
        assert user is not None
        assert user.roles == {Role.STUDENT}
        assert not user.account_setup_complete
        assert user.one_time_password is None

    def test_password_is_hashed(self, helpdesk):
        """The stored credential is never the plain text."""
        user = helpdesk.users.add("carol", "secret", [Role.STUDENT])

        assert user.password_hash != "secret"
        assert user.password_hash.startswith("$2")
        assert helpdesk.users.verify_password(user, "secret")
        assert not helpdesk.users.verify_password(user, "Secret")
        assert not helpdesk.users.verify_password(user, "")

    def test_duplicate_username(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        with pytest.raises(ValidationError, match="Username already exists."):
            helpdesk.users.add("carol", "other", [Role.INSTRUCTOR])

    def test_exact_match_lookup(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        assert helpdesk.users.find_by_username("Carol") is None
        with pytest.raises(NotFoundError, match="User not found."):
            helpdesk.users.get("Carol")

    def test_roles_required(self, helpdesk):
        with pytest.raises(ValidationError):
            helpdesk.users.add("carol", "secret", [])
        assert helpdesk.users.is_empty()

    def test_update_roles_replaces_set(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT, Role.INSTRUCTOR])

        helpdesk.users.update_roles("carol", [Role.ADMINISTRATOR])

        assert helpdesk.users.get("carol").roles == {Role.ADMINISTRATOR}

    def test_update_roles_rejects_empty(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        with pytest.raises(ValidationError):
            helpdesk.users.update_roles("carol", [])
        assert helpdesk.users.get("carol").roles == {Role.STUDENT}

    def test_set_password(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        helpdesk.users.set_password("carol", "changed")

        user = helpdesk.users.get("carol")
        assert helpdesk.users.verify_password(user, "changed")
        assert not helpdesk.users.verify_password(user, "secret")

    def test_complete_profile(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        helpdesk.users.complete_profile(
            "carol",
            Profile(email="c@example.com", first_name="Carol", middle_name="Ann", last_name="Jones"),
        )

        user = helpdesk.users.get("carol")
        assert user.account_setup_complete
        assert user.full_name == "Carol Ann Jones"
        assert user.preferred_first_name_or_default == "Carol"

    def test_incomplete_profile_rejected(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        with pytest.raises(ValidationError, match="Please fill in all required fields."):
            helpdesk.users.complete_profile("carol", Profile(email="c@example.com", first_name="Carol"))
        assert not helpdesk.users.get("carol").account_setup_complete

    def test_remove(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        assert helpdesk.users.remove("carol")
        assert not helpdesk.users.remove("carol")
        assert helpdesk.users.is_empty()


class TestResetPending:
    """Test the reset-pending condition on a user."""

    def test_pending_until_expiry(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])
        expiry = datetime(2026, 5, 1, 12, 0)
        helpdesk.users.set_one_time_password("carol", "1a2b", expiry)

        user = helpdesk.users.get("carol")
        assert user.password_expiry == expiry
        assert user.is_password_reset_required(expiry - timedelta(minutes=1))
        assert not user.is_password_reset_required(expiry)

    def test_clear_reset(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])
        helpdesk.users.set_one_time_password("carol", "1a2b", datetime(2026, 5, 1))

        helpdesk.users.clear_reset("carol")

        assert not helpdesk.users.get("carol").is_password_reset_required(datetime(2026, 1, 1))


class TestInvitationRegistry:
    """Test invitation codes."""

    def test_create_and_find(self, helpdesk):
        invitation = helpdesk.invitations.create([Role.INSTRUCTOR])

        assert len(invitation.code) == 4
        found = helpdesk.invitations.find(invitation.code)
        assert found is not None
        assert found.roles == {Role.INSTRUCTOR}

    def test_roles_required(self, helpdesk):
        with pytest.raises(ValidationError):
            helpdesk.invitations.create([])

    def test_consume_once(self, helpdesk):
        code = helpdesk.invitations.create([Role.STUDENT]).code

        helpdesk.invitations.consume(code)

        assert helpdesk.invitations.find(code) is None
        with pytest.raises(NotFoundError, match="Invalid invitation code."):
            helpdesk.invitations.consume(code)

    def test_collision_draws_again(self, helpdesk, monkeypatch):
        codes = iter(["aaaa", "aaaa", "bbbb"])
        monkeypatch.setattr(helpdesk.invitations, "_generate_code", lambda: next(codes))

        first = helpdesk.invitations.create([Role.STUDENT])
        second = helpdesk.invitations.create([Role.STUDENT])

        assert (first.code, second.code) == ("aaaa", "bbbb")
        assert len(helpdesk.invitations.list_invitations()) == 2


class TestUserManager:
    """Test administrator actions on accounts."""

    def test_reset_account(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])
        expiry = datetime(2026, 5, 1, 12, 0)

        one_time_password = helpdesk.user_manager.reset_account("carol", expiry)

        user = helpdesk.users.get("carol")
        assert len(one_time_password) == 4
        assert user.one_time_password == one_time_password
        assert user.password_expiry == expiry

    def test_reset_unknown_user(self, helpdesk):
        with pytest.raises(NotFoundError, match="User not found."):
            helpdesk.user_manager.reset_account("nobody", datetime(2026, 5, 1))

    def test_delete_user(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        helpdesk.user_manager.delete_user("carol")

        assert helpdesk.users.find_by_username("carol") is None
        with pytest.raises(NotFoundError):
            helpdesk.user_manager.delete_user("carol")

    def test_list_and_describe(self, helpdesk):
        helpdesk.users.add("zed", "pw", [Role.STUDENT])
        helpdesk.users.add("amy", "pw", [Role.INSTRUCTOR, Role.STUDENT])
        helpdesk.users.complete_profile("amy", Profile(email="a@x.org", first_name="Amy", last_name="Pond"))

        users = helpdesk.user_manager.list_users()

        assert [u.username for u in users] == ["amy", "zed"]
        assert describe_user(users[0]) == "Username: amy, Name: Amy Pond, Roles: Student, Instructor"

    def test_update_roles_by_name(self, helpdesk):
        helpdesk.users.add("carol", "secret", [Role.STUDENT])

        roles = helpdesk.user_manager.update_roles("carol", ["Instructor", "Student"])

        assert roles == {Role.INSTRUCTOR, Role.STUDENT}
        assert helpdesk.users.get("carol").roles == roles
