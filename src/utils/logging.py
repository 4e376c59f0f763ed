"""
Logging helpers shared by the application, the CLI and the one-shot tools.

Every module obtains its logger through get_logger(__name__) so that all
output lands under a single namespace and can be configured in one place.
"""

import logging
import os
import sys
from typing import Optional

ROOT_LOGGER_NAME = "storefront"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# CLI verbosity (0-4) to logging level
VERBOSITY_LEVELS = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger nested under the application namespace.

    Module paths such as 'src.utils.rbac.engine' become
    'storefront.utils.rbac.engine'.
    """
    if name.startswith("src."):
        name = name[len("src."):]
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the application root logger with a single stream handler.

    Args:
        level: Level name (e.g. 'INFO'). Defaults to LOG_LEVEL env var, then INFO.
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(numeric_level)

    # Avoid stacking handlers when called more than once
    if not any(getattr(h, "_storefront_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._storefront_handler = True
        root.addHandler(handler)


def setup_cli_logging(verbosity: int = 3) -> None:
    """Configure logging from the CLI's 0-4 verbosity flag."""
    level = VERBOSITY_LEVELS[max(0, min(verbosity, 4))]
    setup_logging(logging.getLevelName(level))
