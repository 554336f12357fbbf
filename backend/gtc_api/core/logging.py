"""
Logging setup shared by the API process and management scripts.
"""
import logging
import sys

from gtc_api.core.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(settings: Settings) -> None:
    """Attach a single stream handler to the package logger."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logger = logging.getLogger("gtc_api")
    logger.setLevel(level)

    # Avoid stacking handlers when the app is re-created (tests, reload)
    if any(getattr(h, "_gtc_handler", False) for h in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._gtc_handler = True
    logger.addHandler(handler)
