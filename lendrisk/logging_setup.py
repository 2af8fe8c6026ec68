"""Root logger configuration."""
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging; unknown level names fall back to INFO."""
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(format=LOG_FORMAT, force=True)
    logging.getLogger().setLevel(resolved)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
