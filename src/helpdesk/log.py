"""Loguru sink setup."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """
    Replace loguru's default sink.

    Args:
        level: Minimum level for stderr output
        log_file: Optional file that receives DEBUG and above, rotated at 1 MB
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper())

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(str(log_file), level="DEBUG", rotation="1 MB", retention=5)
