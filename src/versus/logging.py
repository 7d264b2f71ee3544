"""Logging setup for versus.

Every module logs to the ``"versus"`` logger.  The CLI calls
:func:`setup_logging` once per command; library users who never call it
get Python's default (silent unless they configure logging themselves).
"""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "versus"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s %(threadName)s %(name)s: %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(message)s"


def setup_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Configure and return the ``versus`` logger.

    The console level is INFO by default, DEBUG with *verbose* (which wins
    over *quiet*) and WARNING with *quiet*.  Per-process timings are logged
    at DEBUG, so ``-v`` or a log file shows every invocation.

    Args:
        verbose: Show DEBUG messages on the console.
        quiet: Only show warnings and errors on the console.
        log_file: If given, also log everything at DEBUG to this file.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    # Handled here only; never re-emitted by the root logger.
    logger.propagate = False

    # Reconfiguring replaces handlers instead of stacking them.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    if verbose:
        console.setLevel(logging.DEBUG)
    elif quiet:
        console.setLevel(logging.WARNING)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(fh)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return the child logger ``versus.<name>``."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
