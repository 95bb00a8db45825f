"""
Logging setup driven by application settings.
"""

import logging

from app.config import get_settings


def setup_logging() -> None:
    """Configure the root logger from LOG_LEVEL / LOG_FORMAT."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
