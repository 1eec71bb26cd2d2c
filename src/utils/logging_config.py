"""Logging setup for the matching service."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_PATH = "logs/service.log"

# Client libraries that log every request at DEBUG/INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "google", "grpc")


def _rotating_file_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    handler = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(*, debug: bool = False, log_file: Optional[str] = LOG_FILE_PATH) -> None:
    """Configure Python logging for the service.

    Console output goes to stdout at INFO+ (DEBUG+ with ``debug``). When
    ``log_file`` is set, a rotating file keeps DEBUG+ for deeper digging.
    Firestore and HTTP client chatter is held at WARNING either way.
    """

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if debug else logging.INFO)
    console.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # Reloads in dev would otherwise stack handlers.
    root.handlers.clear()
    root.addHandler(console)
    if log_file:
        root.addHandler(_rotating_file_handler(log_file, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


logger = logging.getLogger(__name__)
