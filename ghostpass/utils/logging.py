"""Logging for ghostpass.

Everything goes to stderr through Rich so that stdout stays clean for
command output, with an optional debug file. Every handler carries a
RedactFilter, which replaces raw key material in log arguments with a
placeholder before a record is formatted.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler


LOGGER_NAME = "ghostpass"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
REDACTED = "<redacted>"


def _is_secret(value: Any) -> bool:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return True
    # SecretBuffer and SecretStore both expose wipe()
    return callable(getattr(value, "wipe", None))


def _scrub(value: Any) -> Any:
    return REDACTED if _is_secret(value) else value


class RedactFilter(logging.Filter):
    """Replace secret-looking log arguments with a placeholder."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _is_secret(record.msg):
            record.msg = REDACTED
        if isinstance(record.args, tuple):
            record.args = tuple(_scrub(arg) for arg in record.args)
        elif isinstance(record.args, dict):
            record.args = {key: _scrub(arg) for key, arg in record.args.items()}
        return True


def setup_logging(
    level: str = "WARNING",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure the ghostpass logger.

    Calling this again replaces the handlers from the previous call.

    Args:
        level: Level for stderr output (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives every record at DEBUG

    Returns:
        The "ghostpass" logger
    """
    stderr_level = getattr(logging, level.upper(), logging.WARNING)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file else stderr_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stderr_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    stderr_handler.setLevel(stderr_level)
    handlers: list[logging.Handler] = [stderr_handler]

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    # Logger-level filters skip records propagated from child loggers
    for handler in handlers:
        handler.addFilter(RedactFilter())
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a module logger under the ghostpass namespace."""
    return logging.getLogger(name)
