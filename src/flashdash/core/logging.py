"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)`` and attach structured
context via ``extra={...}``. Entry points call configure_logging() once.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for a FlashDash process.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
