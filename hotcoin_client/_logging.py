# =============================================================================
# HOTCOIN Python Client -- Package Logger
# =============================================================================

from __future__ import annotations

import logging

logger = logging.getLogger("hotcoin_client")
logger.addHandler(logging.NullHandler())


def enable_debug() -> None:
    """Lower the package logger to DEBUG (used by ``ClientConfig.debug``)."""
    logger.setLevel(logging.DEBUG)
