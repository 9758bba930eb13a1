"""
Shared fixtures for the help desk tests.
"""

from datetime import datetime, timedelta

import pytest

from helpdesk import Helpdesk, HelpdeskConfig
from helpdesk.auth.models import Role
from helpdesk.auth.workflow import Authenticated, LoggedOut, LoginSubmitted, ProfileSubmitted


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 9, 0))


@pytest.fixture
def helpdesk(clock):
    """In-memory help desk with cheap bcrypt rounds."""
    config = HelpdeskConfig(db_path=":memory:", bcrypt_rounds=4)
    with Helpdesk(config, clock=clock) as hd:
        yield hd


@pytest.fixture
def workflow(helpdesk):
    return helpdesk.workflow


@pytest.fixture
def admin_session(helpdesk):
    """Bootstrap 'admin', finish its profile and return the session."""
    workflow = helpdesk.workflow
    workflow.handle(LoggedOut(), LoginSubmitted("admin", "adminpw", "adminpw"))
    outcome = workflow.handle(LoggedOut(), LoginSubmitted("admin", "adminpw"))
    outcome = workflow.handle(
        outcome.state,
        ProfileSubmitted(email="admin@example.com", first_name="Ada", last_name="Admin"),
    )
    assert outcome.state == Authenticated(username="admin", role=Role.ADMINISTRATOR)
    return outcome.state


@pytest.fixture
def backup_dir(tmp_path):
    return tmp_path / "backups"
