"""Observability module for SpellTree.

Provides structured logging for parse, repair and injection passes.
"""

from spelltree.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "get_logger",
]
