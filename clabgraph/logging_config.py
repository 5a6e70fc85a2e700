"""Logging setup for command-line use.

Library modules only create loggers; handlers are installed here, once,
by the entry point.
"""
from __future__ import annotations

import logging

from clabgraph.config import settings

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger from settings.

    Args:
        level: Optional level name overriding ``settings.log_level``
    """
    global _configured
    resolved = (level or settings.log_level).upper()
    if _configured:
        logging.getLogger().setLevel(resolved)
        return
    logging.basicConfig(level=resolved, format=settings.log_format)
    _configured = True
