"""
Help desk application.

Wires the shared database handle into every component. Nothing is a
module-level singleton: each Helpdesk owns its store and closes it.
"""

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from loguru import logger

from .access.groups import GroupManager
from .articles.codec import BodyCodec
from .articles.repository import ArticleRepository
from .auth.database import UserDatabase
from .auth.invitations import InvitationRegistry
from .auth.permissions import Permission, PermissionDeniedError, require_permission
from .auth.user_manager import UserManager
from .auth.workflow import Authenticated, AuthWorkflow
from .config import HelpdeskConfig
from .help_system import HelpSystem
from .storage import Database


class Helpdesk:
    """
    Composition root.

    Usage:
        with Helpdesk(config) as helpdesk:
            outcome = helpdesk.workflow.handle(state, event)
    """

    def __init__(
        self,
        config: Optional[HelpdeskConfig] = None,
        db_path: Optional[Union[Path, str]] = None,
        codec: Optional[BodyCodec] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            config: Settings (defaults if None)
            db_path: Overrides ``config.db_path``
            codec: Body transform for encrypted articles
            clock: Source of "now" for one-time password expiry
        """
        self.config = config or HelpdeskConfig()
        self.db = Database(db_path if db_path is not None else self.config.db_path)

        self.users = UserDatabase(self.db, bcrypt_rounds=self.config.bcrypt_rounds)
        self.invitations = InvitationRegistry(self.db, code_length=self.config.invitation_code_length)
        self.user_manager = UserManager(
            self.users,
            self.invitations,
            one_time_password_length=self.config.one_time_password_length,
        )
        self.groups = GroupManager(self.db)
        self.articles = ArticleRepository(self.db, codec=codec)
        self.help = HelpSystem(self.db)
        self.workflow = AuthWorkflow(self.db, self.users, self.invitations, clock=clock)

    def open(self) -> "Helpdesk":
        self.db.open()
        return self

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "Helpdesk":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def require(session: Authenticated, permission: Permission) -> None:
        """
        Check the session role before running a panel action.

        Raises:
            PermissionDeniedError: If the role lacks the permission
        """
        try:
            require_permission(session.username, session.role, permission)
        except PermissionDeniedError:
            logger.warning(f"{session.username} ({session.role.value}) denied: {permission.value}")
            raise
