"""Observer hooks notified when a parse, injection or reroll completes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Protocol

from spelltree.observability.logging import get_logger

if TYPE_CHECKING:
    from spelltree.pipeline.parser import ParseResult

TreeEvent = Literal["parsed", "injected", "rerolled"]

log = get_logger(__name__)


class TreeObserver(Protocol):
    """Protocol for observers of completed tree operations.

    Observers take the place of re-render and save callbacks: the parser
    itself never performs I/O or UI work.
    """

    def on_tree_event(self, event: TreeEvent, result: ParseResult) -> None:
        """Called after an operation has finished mutating the graph.

        Args:
            event: Which operation completed.
            result: The parse result whose graph was produced or changed.
        """
        ...


class LoggingObserver:
    """Observer that logs a one-line summary of each completed operation."""

    def on_tree_event(self, event: TreeEvent, result: ParseResult) -> None:
        """Log the event with node, edge and fix counts."""
        if not result.success or result.graph is None:
            log.warning("tree_event_failed", tree_event=event, error=result.error)
            return
        log.info(
            "tree_event",
            tree_event=event,
            nodes=len(result.graph.nodes),
            edges=len(result.graph.edges),
            fixes=result.total_fixes,
            injected=result.injection.count if result.injection else 0,
        )
