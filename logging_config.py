"""Configure loguru once; every other module just imports ``logger``."""

import sys

from loguru import logger

_configured = False


def configure_logging(level: str = "INFO"):
    """Call once from the app factory or a script entry point."""
    global _configured

    if _configured:
        return

    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {name} | <level>{message}</level>",
        colorize=True,
    )

    _configured = True
    logger.debug("Logging configured")
