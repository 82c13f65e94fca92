"""Utility exports."""

from .file_helper import atomic_write_bytes, atomic_write_text, ensure_parent, read_text, write_new_bytes
from .logging import configure_logging, get_logger

__all__ = [
    "atomic_write_bytes",
    "atomic_write_text",
    "ensure_parent",
    "read_text",
    "write_new_bytes",
    "configure_logging",
    "get_logger",
]
