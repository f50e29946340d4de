# log.py
from __future__ import annotations

import sys
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {module}:{line} - {message}"


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """Replace loguru's default sink with ours; optionally tee everything to a file."""
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level="DEBUG" if debug else "INFO")
    if log_file:
        logger.add(log_file, format=FILE_FORMAT, level="DEBUG", enqueue=True)
