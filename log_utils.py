"""Logging setup for the command line; library modules only create loggers."""

import logging
import sys
from typing import Optional


def setup_logging(verbose: bool = False, level: Optional[int] = None) -> None:
    """Configure the root logger.

    Args:
        verbose: If True, log at DEBUG, otherwise WARNING
        level: Optional explicit log level (overrides verbose)
    """
    if level is not None:
        log_level = level
    else:
        log_level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
