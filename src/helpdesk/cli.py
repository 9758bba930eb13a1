#!/usr/bin/env python3
"""
Help Desk Terminal Client

A prompt-driven front end for the login workflow and the home-page panels.
Every panel action is offered only when the session role allows it.

Usage:
    helpdesk --db data/helpdesk.db
"""

import argparse
import getpass
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pydantic
from loguru import logger

from .app import Helpdesk
from .articles.repository import ALL
from .auth.permissions import Permission, PermissionChecker
from .auth.user_manager import describe_user
from .auth.workflow import (
    AwaitingInvitationRegistration,
    AwaitingOpenRegistration,
    AwaitingPasswordReset,
    AwaitingProfileSetup,
    AwaitingRoleSelection,
    Authenticated,
    Event,
    InvitationRegistrationSubmitted,
    LoggedOut,
    LoginSubmitted,
    LogoutRequested,
    NewPasswordSubmitted,
    ProfileSubmitted,
    RoleChosen,
    RolesSelected,
    State,
)
from .config import load_config
from .errors import HelpdeskError, PersistenceError, ValidationError
from .log import configure_logging


LEVEL_CHOICES = ("All", "Beginner", "Intermediate", "Advanced", "Expert")

QUIT_WORDS = {"quit", "exit"}


class QuitRequested(Exception):
    """Raised by a prompt when the user asks to leave."""


class TerminalApp:
    """Terminal presentation of the help desk."""

    def __init__(
        self,
        helpdesk: Helpdesk,
        prompt: Callable[[str], str] = input,
        secret_prompt: Callable[[str], str] = getpass.getpass,
        echo: Callable[[str], None] = print,
    ):
        self.helpdesk = helpdesk
        self.prompt = prompt
        self.secret_prompt = secret_prompt
        self.echo = echo
        self.checker = PermissionChecker()
        self.state: State = LoggedOut()

        self.actions: Dict[Permission, Tuple[str, Callable[[Authenticated], None]]] = {
            Permission.ADD_ARTICLE: ("Add Article", self._add_article),
            Permission.LIST_ARTICLES: ("List Articles", self._list_articles),
            Permission.VIEW_ARTICLE: ("View Article", self._view_article),
            Permission.DELETE_ARTICLE: ("Delete Article", self._delete_article),
            Permission.BACKUP_ARTICLES: ("Backup Articles", self._backup_articles),
            Permission.RESTORE_ARTICLES: ("Restore Articles", self._restore_articles),
            Permission.SEARCH_ARTICLES: ("Search Articles", self._search_articles),
            Permission.INVITE_USER: ("Invite User", self._invite_user),
            Permission.RESET_ACCOUNT: ("Reset Account", self._reset_account),
            Permission.DELETE_USER: ("Delete User", self._delete_user),
            Permission.LIST_USERS: ("List Users", self._list_users),
            Permission.MANAGE_ROLES: ("Manage Roles", self._manage_roles),
            Permission.MANAGE_GROUPS: ("Manage Groups", self._manage_groups),
            Permission.VIEW_GROUP_USERS: ("View Group Users", self._view_group_users),
            Permission.VIEW_GROUP_ARTICLES: ("View Articles in Group", self._view_group_articles),
            Permission.SEND_HELP_MESSAGE: ("Help System", self._send_help_message),
            Permission.VIEW_HELP_MESSAGES: ("Read Help Messages", self._read_help_messages),
        }

    # ========================================================================
    # Main loop
    # ========================================================================

    def run(self) -> None:
        """Drive the workflow until the user quits or input ends."""
        self.echo("Help Desk. Type 'quit' at any prompt to leave.")
        try:
            while True:
                if isinstance(self.state, Authenticated):
                    self._home(self.state)
                else:
                    self.step(self._read_event(self.state))
        except (QuitRequested, EOFError, KeyboardInterrupt):
            self.echo("Goodbye.")

    def step(self, event: Event) -> None:
        outcome = self.helpdesk.workflow.handle(self.state, event)
        self.state = outcome.state
        if outcome.message:
            self.echo(outcome.message)

    def _read_event(self, state: State) -> Event:
        if isinstance(state, LoggedOut):
            self.echo("\n== Login / Register ==")
            return LoginSubmitted(
                username=self._ask("Username"),
                password=self._ask_secret("Password"),
                confirm_password=self._ask_secret("Confirm Password"),
                invitation_code=self._ask("Invitation Code"),
            )

        if isinstance(state, AwaitingInvitationRegistration):
            self.echo(f"\n== Register ({', '.join(state.roles.names())}) ==")
            return InvitationRegistrationSubmitted(
                username=self._ask("Username"),
                password=self._ask_secret("Password"),
                confirm_password=self._ask_secret("Confirm Password"),
            )

        if isinstance(state, AwaitingOpenRegistration):
            self.echo("\n== Select your roles ==")
            return RolesSelected(roles=tuple(self._ask_list("Roles (Student, Instructor)")))

        if isinstance(state, AwaitingProfileSetup):
            self.echo("\n== Finish account setup ==")
            return ProfileSubmitted(
                email=self._ask("Email"),
                first_name=self._ask("First Name"),
                middle_name=self._ask("Middle Name"),
                last_name=self._ask("Last Name"),
                preferred_first_name=self._ask("Preferred First Name"),
            )

        if isinstance(state, AwaitingRoleSelection):
            self.echo("\n== Select a role ==")
            roles = state.roles.ordered()
            for number, role in enumerate(roles, start=1):
                self.echo(f"  {number}. {role.value}")
            return RoleChosen(role=self._pick(roles, self._ask("Role")))

        if isinstance(state, AwaitingPasswordReset):
            self.echo("\n== Reset password ==")
            return NewPasswordSubmitted(
                password=self._ask_secret("New Password"),
                confirm_password=self._ask_secret("Confirm New Password"),
            )

        raise ValueError(f"No form for state: {type(state).__name__}")

    def _home(self, session: Authenticated) -> None:
        allowed = [p for p in self.checker.get_allowed_actions(session.role) if p in self.actions]
        self.echo(f"\n== Home ({session.role.value}) ==")
        for number, permission in enumerate(allowed, start=1):
            self.echo(f"  {number}. {self.actions[permission][0]}")
        self.echo("  0. Logout")

        choice = self._ask("Choice")
        if choice == "0" or choice.lower() == "logout":
            self.step(LogoutRequested())
            return

        permission = self._pick(allowed, choice)
        if permission is None:
            self.echo("Invalid choice.")
            return
        self.perform(session, permission)

    def perform(self, session: Authenticated, permission: Permission) -> None:
        """Run one panel action, displaying any error as a message."""
        try:
            self.helpdesk.require(session, permission)
            self.actions[permission][1](session)
        except HelpdeskError as e:
            self.echo(str(e))

    # ========================================================================
    # Prompts
    # ========================================================================

    def _ask(self, label: str) -> str:
        answer = self.prompt(f"{label}: ").strip()
        if answer.lower() in QUIT_WORDS:
            raise QuitRequested()
        return answer

    def _ask_secret(self, label: str) -> str:
        return self.secret_prompt(f"{label}: ")

    def _ask_list(self, label: str) -> List[str]:
        return [part.strip() for part in self._ask(label).split(",") if part.strip()]

    def _ask_int(self, label: str) -> int:
        answer = self._ask(label)
        try:
            return int(answer)
        except ValueError:
            raise ValidationError(f"Please enter a number, got: {answer!r}")

    def _ask_yes_no(self, label: str) -> bool:
        return self._ask(f"{label} [y/N]").lower() in ("y", "yes")

    @staticmethod
    def _pick(options: Sequence, answer: str):
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return options[int(answer) - 1]
        for option in options:
            if getattr(option, "value", option).lower() == answer.lower():
                return option
        return None

    def _group_id(self) -> str:
        return self.helpdesk.groups.find_group_by_name(self._ask("Group Name")).group_id

    # ========================================================================
    # Articles
    # ========================================================================

    def _add_article(self, session: Authenticated) -> None:
        self.helpdesk.articles.add_article(
            title=self._ask("Title"),
            authors=self._ask("Authors"),
            abstract_text=self._ask("Abstract"),
            keywords=self._ask("Keywords"),
            body=self._ask("Body"),
            references=self._ask("References"),
            is_encrypted=self._ask_yes_no("Encrypt body?"),
        )
        self.echo("Article added successfully!")

    def _list_articles(self, session: Authenticated) -> None:
        articles = self.helpdesk.articles.list_articles()
        if not articles:
            self.echo("No articles found.")
        for article in articles:
            self.echo(str(article))

    def _view_article(self, session: Authenticated) -> None:
        self.echo(str(self.helpdesk.articles.view_article(self._ask_int("Article ID"))))

    def _delete_article(self, session: Authenticated) -> None:
        self.helpdesk.articles.delete_article(self._ask_int("Article ID"))
        self.echo("Article deleted successfully!")

    def _backup_articles(self, session: Authenticated) -> None:
        count = self.helpdesk.articles.backup_articles(Path(self._ask("Backup File")))
        self.echo(f"Backup completed successfully! ({count} article(s))")

    def _restore_articles(self, session: Authenticated) -> None:
        count = self.helpdesk.articles.restore_articles(Path(self._ask("Backup File")))
        self.echo(f"Restore completed successfully! ({count} article(s))")

    def _search_articles(self, session: Authenticated) -> None:
        query = self._ask("Search Text")
        level = self._pick(LEVEL_CHOICES, self._ask(f"Content Level ({'/'.join(LEVEL_CHOICES)})")) or ALL
        group = self._ask("Group (All or a group name)") or ALL

        results = self.helpdesk.articles.search_articles(query, level, group, session.username)
        for result in results:
            self.echo(str(result))
        self.echo(f"Active Group: {group}")
        self.echo(str(self.helpdesk.articles.get_level_statistics(results)))

    # ========================================================================
    # Users
    # ========================================================================

    def _invite_user(self, session: Authenticated) -> None:
        invitation = self.helpdesk.user_manager.invite_user(
            self._ask_list("Roles (Student, Instructor, Administrator)")
        )
        self.echo(f"Invitation Code: {invitation.code}")

    def _reset_account(self, session: Authenticated) -> None:
        username = self._ask("Username")
        date_text = self._ask("Expiry Date (YYYY-MM-DD)")
        time_text = self._ask("Expiry Time (HH:MM)")
        try:
            expiry = datetime.strptime(f"{date_text} {time_text}", "%Y-%m-%d %H:%M")
        except ValueError:
            raise ValidationError("Please enter the expiry as YYYY-MM-DD and HH:MM.")

        one_time_password = self.helpdesk.user_manager.reset_account(username, expiry)
        self.echo(f"One-time password set: {one_time_password}")

    def _delete_user(self, session: Authenticated) -> None:
        username = self._ask("Username")
        if self.helpdesk.users.find_by_username(username) is None:
            self.echo("User not found.")
            return
        if self._ask_yes_no("Are you sure?"):
            self.helpdesk.user_manager.delete_user(username)
            self.echo("User account deleted.")

    def _list_users(self, session: Authenticated) -> None:
        for user in self.helpdesk.user_manager.list_users():
            self.echo(describe_user(user))

    def _manage_roles(self, session: Authenticated) -> None:
        username = self._ask("Username")
        roles = self._ask_list("Assign Roles (Student, Instructor, Administrator)")
        self.helpdesk.user_manager.update_roles(username, roles)
        self.echo("Roles updated.")

    # ========================================================================
    # Groups
    # ========================================================================

    def _manage_groups(self, session: Authenticated) -> None:
        groups = self.helpdesk.groups
        choices = [
            "Create Group",
            "Add User to Group",
            "Remove User from Group",
            "Add Article to Group",
            "Delete Group",
            "List Groups",
            "Backup Groups",
            "Restore Groups",
        ]
        for number, label in enumerate(choices, start=1):
            self.echo(f"  {number}. {label}")
        choice = self._pick(choices, self._ask("Choice"))

        if choice == "Create Group":
            name = self._ask("Group Name")
            group = groups.create_group(name, is_special=self._ask_yes_no("Special group?"))
            self.echo(f"Group '{group.group_name}' created successfully as a {group.group_type.value} group.")
        elif choice == "Add User to Group":
            group_id = self._group_id()
            username = self._ask("Username")
            role = self._ask("Role in Group (e.g. Instructor, Viewer)")
            member = groups.add_user_to_group(group_id, username, role)
            self.echo(f"User '{member.username}' added to group as {member.role}.")
        elif choice == "Remove User from Group":
            group_id = self._group_id()
            username = self._ask("Username")
            if groups.delete_user_from_group(group_id, username):
                self.echo(f"User '{username}' removed from group.")
            else:
                self.echo(f"User '{username}' not found in group.")
        elif choice == "Add Article to Group":
            group_id = self._group_id()
            display_id = self._ask_int("Article ID")
            self.helpdesk.articles.add_article_to_group(group_id, display_id)
            self.echo(f"Article '{display_id}' added to group.")
        elif choice == "Delete Group":
            groups.delete_group(self._group_id())
            self.echo("Group deleted successfully.")
        elif choice == "List Groups":
            for group in groups.list_groups():
                self.echo(f"{group.group_name} ({group.group_type.value}) id={group.group_id}")
        elif choice == "Backup Groups":
            groups.backup_groups(Path(self._ask("Backup File")))
            self.echo("Group(s) have been successfully backed up.")
        elif choice == "Restore Groups":
            groups.restore_groups(Path(self._ask("Backup File")))
            self.echo("Group(s) have been successfully restored.")
        else:
            self.echo("Invalid choice.")

    def _view_group_users(self, session: Authenticated) -> None:
        groups = self.helpdesk.groups
        group_id = self._group_id()
        for member in groups.list_members(group_id):
            self.echo(
                f"{member.username} ({member.role}) "
                f"View: {'Yes' if member.can_view else 'No'}, "
                f"Admin: {'Yes' if member.can_admin else 'No'}"
            )

        username = self._ask("Username to update (blank to skip)")
        if not username:
            return
        member = groups.get_membership(group_id, username)
        if member is None:
            self.echo(f"User '{username}' not found in group.")
            return

        if self._ask_yes_no("Toggle viewing rights?"):
            rights = groups.update_view_rights(group_id, username, not member.can_view)
            self.echo(f"Viewing rights for user '{username}' updated to {'Yes' if rights.can_view else 'No'}.")
        if self._ask_yes_no("Toggle admin rights?"):
            rights = groups.update_admin_rights(group_id, username, not member.can_admin)
            self.echo(f"Admin rights for user '{username}' updated to {'Yes' if rights.can_admin else 'No'}.")

    def _view_group_articles(self, session: Authenticated) -> None:
        articles = self.helpdesk.articles.get_articles_in_group(self._group_id(), session.username)
        if not articles:
            self.echo("No articles found in group.")
        for article in articles:
            self.echo(f"ID: {article.id}, Title: {article.title}\n{article.body}")

    # ========================================================================
    # Help
    # ========================================================================

    def _send_help_message(self, session: Authenticated) -> None:
        query = self._ask("Specific Query (blank for a generic message)")
        message = self._ask("Message")
        if query:
            self.helpdesk.help.send_specific_message(query, message)
            self.echo(f"Specific message sent for query: {query}")
        else:
            self.helpdesk.help.send_generic_message(message)
            self.echo("Generic message sent.")

    def _read_help_messages(self, session: Authenticated) -> None:
        help_system = self.helpdesk.help
        for message in help_system.generic_messages():
            self.echo(f"[generic] {message}")
        for query in help_system.specific_queries():
            for message in help_system.specific_messages(query):
                self.echo(f"[{query}] {message}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Help desk terminal client")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database file")
    parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    parser.add_argument("--log-level", default=None, help="Log level for stderr (default from config)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except pydantic.ValidationError as e:
        print(f"✗ Invalid configuration file {args.config}: {e}")
        return 1
    configure_logging(args.log_level or config.log_level, config.log_file)

    helpdesk = Helpdesk(config, db_path=args.db)
    try:
        helpdesk.open()
    except PersistenceError as e:
        print(f"✗ {e}")
        return 1

    try:
        TerminalApp(helpdesk).run()
    finally:
        helpdesk.close()
        logger.debug("Terminal client stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
