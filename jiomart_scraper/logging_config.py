"""Logging setup shared by every JioMart scraper module."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOG_FILE_NAME = "app.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def log_dir() -> str:
    return os.getenv("JIOMART_LOG_DIR", "logs")


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


class SafeStreamHandler(logging.StreamHandler):
    """Console handler that degrades to ASCII when the terminal rejects rupee signs."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:
            self.handleError(record)
            return
        try:
            self.stream.write(msg + self.terminator)
        except UnicodeEncodeError:
            safe_msg = msg.encode("ascii", "replace").decode("ascii")
            self.stream.write(safe_msg + self.terminator)
        self.flush()


def get_logger(name: str) -> logging.Logger:
    """Return a logger for *name* writing to stdout and ``<JIOMART_LOG_DIR>/app.log``.

    Directory and level are read when the logger is first configured, so the
    environment can be adjusted before the package is imported.
    """

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = log_level()
    directory = log_dir()
    os.makedirs(directory, exist_ok=True)

    logger.setLevel(level)
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        os.path.join(directory, LOG_FILE_NAME),
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    console_handler = SafeStreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger
