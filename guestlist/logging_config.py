"""Logging setup for the API process."""
import logging
import sys

from guestlist.config import settings


def setup_logging() -> None:
    """Configure root logging once at startup."""
    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL.upper())
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(handler)

    # Silence noisy libraries
    for name in ("uvicorn", "sqlalchemy", "httpx", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
