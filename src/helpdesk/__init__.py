"""
Help desk for a course: user accounts, articles, access groups and help messages.

Usage:
    from helpdesk import Helpdesk, HelpdeskConfig

    with Helpdesk(HelpdeskConfig(db_path="data/helpdesk.db")) as helpdesk:
        ...
"""

from .app import Helpdesk
from .config import HelpdeskConfig, load_config
from .errors import (
    HelpdeskError,
    InvariantViolation,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    "Helpdesk",
    "HelpdeskConfig",
    "load_config",
    "HelpdeskError",
    "InvariantViolation",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
]
