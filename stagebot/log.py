"""
Logging configuration.

Console output always; a log file as well when STAGEBOT_LOG points somewhere
writable. Request handling logs through RequestLogger so every line carries
the correlation id of the event being processed.
"""

import logging
import os
from typing import Any, MutableMapping, Optional, Tuple

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = os.getenv("STAGEBOT_LOG", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    debug: bool = False,
) -> logging.Logger:
    """Attach handlers to the ``stagebot`` logger. Safe to call more than once."""
    logger = logging.getLogger("stagebot")
    level_name = "DEBUG" if debug else (level or LOG_LEVEL)
    logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    path = log_file if log_file is not None else LOG_FILE
    if path:
        try:
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except PermissionError:
            pass

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # python-telegram-bot and httpx are chatty at INFO
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("telegram").setLevel(logging.WARNING)

    return logger


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every record with the event's correlation id."""

    def __init__(self, logger: logging.Logger, correlation_id: str):
        super().__init__(logger, {"correlation_id": correlation_id})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[ts={self.extra['correlation_id']}] {msg}", kwargs
