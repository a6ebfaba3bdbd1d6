"""Logging configuration for the points claimer.

Sets up a dual-handler logging pipeline on the root logger:

1. **Console** -- :class:`SafeStreamHandler`, which keeps emoji progress
   lines from crashing narrow Windows code pages.
2. **File** -- :class:`CompressedRotatingFileHandler` writing to
   ``logs/mi_points.log`` with gzip rotation (5 MiB per file, 5 backups).

Usage::

    from core.logging_setup import setup_logging
    setup_logging("DEBUG")
"""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from core.config import LOGS_DIR

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DEFAULT_LOG_FILE = str(LOGS_DIR / "mi_points.log")

# Chatty third-party loggers that drown the DEBUG stream
_QUIET_LOGGERS = ("asyncio", "aiohttp", "urllib3")


class CompressedRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that stores rotated files as ``.gz``."""

    def rotation_filename(self, default_name: str) -> str:
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        """Compress *source* into *dest* and remove *source*."""
        with open(source, "rb") as f_in:
            with gzip.open(dest, "wb") as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that never fails on unencodable characters.

    When the console encoding cannot represent a character (typically
    emoji on ``cp1252`` consoles) the message is re-encoded with
    replacement characters instead of raising.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            stream = self.stream
            try:
                stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                encoding = getattr(stream, "encoding", None) or "ascii"
                safe_msg = msg.encode(
                    encoding, errors="replace",
                ).decode(encoding)
                stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger with console and file handlers.

    Calling it again replaces the previously installed handlers, so the
    level can be raised after CLI flags are parsed.

    Args:
        log_level: Logging level name (e.g. ``"DEBUG"``, ``"INFO"``).
            Unknown names fall back to ``INFO``.
        log_file: Destination of the rotating log file. Defaults to
            ``logs/mi_points.log``.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    log_path = log_file or DEFAULT_LOG_FILE
    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    file_handler = CompressedRotatingFileHandler(
        log_path,
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    stream_handler = SafeStreamHandler(sys.stdout)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[file_handler, stream_handler],
        force=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
