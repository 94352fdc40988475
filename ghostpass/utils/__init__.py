"""Utility modules for ghostpass."""

from .logging import (
    RedactFilter,
    get_logger,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "RedactFilter",
]
