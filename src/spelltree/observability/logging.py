"""Structured logging for SpellTree.

Console output goes through rich on stderr; ``-v`` raises it to INFO and
``-vv`` to DEBUG. Passing a log directory additionally records every event,
at DEBUG, as one JSON object per line in ``{log_dir}/debug.jsonl``.

Repair, orphan and injection passes log one event per structural change
(``prerequisite_replaced``, ``node_reconnected``, ``orphan_attached``,
``prerequisite_injected`` ...) with ``school`` and node ids as keyword
context, so the JSONL file is a replayable repair trail for a tree.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import Processor

TRAIL_FILENAME = "debug.jsonl"

_configured = False
_trail_handler: RepairTrailHandler | None = None


class RepairTrailHandler(logging.FileHandler):
    """Append each record to the trail as a flat JSON object.

    structlog hands over its event dict as ``record.msg``; its keys become
    top-level fields next to ``ts``, ``level``, ``logger`` and ``event``.
    Plain stdlib records carry their formatted message as ``event``.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "ts": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
            }
            if isinstance(record.msg, dict):
                context = {
                    k: v for k, v in record.msg.items() if k not in ("level", "timestamp")
                }
                entry["event"] = context.pop("event", "")
                entry.update(context)
            else:
                entry["event"] = record.getMessage()

            if self.stream is None:
                return
            self.stream.write(json.dumps(entry, default=str) + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int = 0, log_dir: Path | None = None) -> None:
    """Configure console and optional file logging.

    Safe to call repeatedly; a previously opened trail file is closed first.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_dir: When given, created if needed and used for ``debug.jsonl``.
    """
    global _configured, _trail_handler

    close_file_logging()

    console_level = _console_level(verbosity)
    handlers: list[logging.Handler] = [
        RichHandler(
            console=Console(stderr=True),
            level=console_level,
            markup=False,
            rich_tracebacks=True,
            show_time=verbosity >= 1,
            show_path=verbosity >= 2,
        )
    ]

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        _trail_handler = RepairTrailHandler(str(log_dir / TRAIL_FILENAME), mode="a")
        _trail_handler.setLevel(logging.DEBUG)
        handlers.append(_trail_handler)

    # The trail wants everything; the console handler filters on its own.
    root_level = logging.DEBUG if log_dir is not None else console_level
    logging.basicConfig(level=root_level, format="%(message)s", handlers=handlers, force=True)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Return a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def close_file_logging() -> None:
    """Close the repair trail file, if one is open."""
    global _trail_handler
    if _trail_handler is not None:
        _trail_handler.close()
        _trail_handler = None
