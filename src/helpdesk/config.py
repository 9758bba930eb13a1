"""
Help desk configuration.

Settings are a pydantic model so a JSON file can be validated on load.
"""

from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field


DEFAULT_DB_PATH = Path("data") / "helpdesk.db"


class HelpdeskConfig(BaseModel):
    """
    Runtime settings.

    Attributes:
        db_path: SQLite database file (":memory:" for a throwaway store)
        bcrypt_rounds: Cost factor for password hashing
        invitation_code_length: Length of generated invitation codes
        one_time_password_length: Length of generated one-time passwords
        log_level: Minimum level for the stderr log sink
        log_file: Optional file sink (rotated)
    """
    db_path: Path = DEFAULT_DB_PATH
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    invitation_code_length: int = Field(default=4, ge=4, le=32)
    one_time_password_length: int = Field(default=4, ge=4, le=32)
    log_level: str = "INFO"
    log_file: Optional[Path] = None


def load_config(path: Optional[Path] = None) -> HelpdeskConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: Config file path. Defaults are used when None or missing.

    Returns:
        Validated HelpdeskConfig

    Raises:
        pydantic.ValidationError: If the file content is invalid
    """
    if path is None or not path.exists():
        if path is not None:
            logger.warning(f"Config file not found: {path}, using defaults")
        return HelpdeskConfig()

    config = HelpdeskConfig.model_validate_json(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded configuration from {path}")
    return config
