"""Logging configuration."""
import logging
import sys

from phonebot.core.config import settings

# Client libraries that log every request or frame at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "websockets", "aiosqlite")


def setup_logging(service: str = "controller") -> None:
    """
    Configure application logging for one of the two services.

    Both services usually write to the same log stream, so every line
    carries the service name.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=f"%(asctime)s - {service} - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
