"""
Logging for jewelcart.

Every module takes its logger from here so the root handler is installed once:

    from jewelcart.logging import get_logger
    logger = get_logger(__name__)

Cart keys and user ids end up in log lines; pass them through
sanitize_key_for_logging / sanitize_id_for_logging first.
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Device builds: the platform log already carries timestamps
DEVICE_LOG_FORMAT = "%(levelname)s - %(name)s - %(message)s"

ID_LOG_LENGTH = 8
_CONTROL_ESCAPES = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def _setup() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    device = os.environ.get("JEWELCART_ENV") == "production"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(DEVICE_LOG_FORMAT if device else LOG_FORMAT))
    root.setLevel(level)
    root.addHandler(handler)

    # Order API and Upstash REST calls log every request at INFO
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_setup()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: str | None) -> str:
    """First ID_LOG_LENGTH chars of an id, control characters escaped."""
    if not id_value:
        return "N/A"
    return str(id_value).translate(_CONTROL_ESCAPES)[:ID_LOG_LENGTH]


def sanitize_key_for_logging(key: str | None) -> str:
    """cart_65f1c2d9e4b0... -> cart_65f1c2d9; keys without an id part pass through."""
    if not key:
        return "N/A"
    prefix, sep, rest = str(key).partition("_")
    if not sep:
        return sanitize_id_for_logging(prefix)
    return f"{prefix.translate(_CONTROL_ESCAPES)}_{sanitize_id_for_logging(rest)}"


__all__ = [
    "LOG_FORMAT",
    "DEVICE_LOG_FORMAT",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_key_for_logging",
]
