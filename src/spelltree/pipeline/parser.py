"""Spell tree parsing session.

Runs the full pipeline over one generated tree document:

1. decode the source (JSON text, bytes or an already decoded mapping)
2. ingest schools and nodes into a fresh SpellGraph
3. reconcile child and prerequisite lists into one edge list
4. per school: cycle / unreachability repair
5. per school: depth pass with orphan reattachment, statistics, root
   marked available
6. invariant check
7. optional procedural prerequisite injection, then a depth refresh
8. observers notified

Bad input never raises from :meth:`SpellTreeParser.parse`; an undecodable
document yields ``ParseResult(success=False)``. A failed invariant check
raises GraphCorruptionError because it can only mean a bug in a pass.
"""

from __future__ import annotations

import copy
import json
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from spelltree.graph.errors import GraphCorruptionError, TreeParseError
from spelltree.graph.graph import SpellGraph
from spelltree.graph.injection import inject_prerequisites
from spelltree.graph.orphans import refresh_depths
from spelltree.graph.repair import repair_school
from spelltree.models.tree import InjectionSummary, RepairSummary, SchoolSkip
from spelltree.observability.logging import get_logger
from spelltree.pipeline.config import TreeConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from spelltree.pipeline.hooks import TreeEvent, TreeObserver

log = get_logger(__name__)

TreeSource = str | bytes | Mapping[str, Any]


@dataclass
class ParseResult:
    """Outcome of parsing one tree document.

    Attributes:
        success: False only when the document could not be decoded.
        error: Failure reason when ``success`` is False.
        graph: The repaired working graph.
        raw: Private copy of the decoded source; never mutated, used by reroll.
        all_form_ids: Every ingested node id, in ingestion order.
        skipped_schools: Schools that could not be ingested, with reasons.
        repairs: Repair summary per school.
        orphans_fixed: Number of orphans attached per school.
        injection: Summary of the latest injection run, if any.
    """

    success: bool
    error: str | None = None
    graph: SpellGraph | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    all_form_ids: list[str] = field(default_factory=list)
    skipped_schools: list[SchoolSkip] = field(default_factory=list)
    repairs: dict[str, RepairSummary] = field(default_factory=dict)
    orphans_fixed: dict[str, int] = field(default_factory=dict)
    injection: InjectionSummary | None = None

    @property
    def total_fixes(self) -> int:
        """Repair fixes plus attached orphans across all schools."""
        return sum(r.fixes for r in self.repairs.values()) + sum(self.orphans_fixed.values())

    def to_dict(self) -> dict[str, Any]:
        """Layout-stage output plus parse diagnostics."""
        data: dict[str, Any] = {"success": self.success}
        if not self.success:
            data["error"] = self.error
            return data
        if self.graph is not None:
            data.update(self.graph.to_dict())
        data["skippedSchools"] = [s.model_dump() for s in self.skipped_schools]
        return data


def decode_source(source: TreeSource) -> dict[str, Any]:
    """Decode a tree document into a fresh top-level mapping.

    Raises:
        TreeParseError: If the source is not valid UTF-8 JSON or the top
            level is not a mapping.
    """
    if isinstance(source, bytes):
        try:
            source = source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TreeParseError(f"Invalid encoding: {e}") from e
    if isinstance(source, str):
        try:
            data = json.loads(source)
        except json.JSONDecodeError as e:
            raise TreeParseError(f"Invalid JSON: {e}") from e
    else:
        data = source
    if not isinstance(data, Mapping):
        raise TreeParseError(f"Top level must be an object, got {type(data).__name__}")
    return copy.deepcopy(dict(data))


class SpellTreeParser:
    """Parse, repair and optionally densify spell tree documents.

    Args:
        config: Repair and injection settings (defaults when None).
        rng: Random source for injection. When None, one is created from
            ``config.injection.seed``.
        observers: Notified after parse, inject and reroll complete.
    """

    def __init__(
        self,
        config: TreeConfig | None = None,
        rng: random.Random | None = None,
        observers: Iterable[TreeObserver] = (),
    ) -> None:
        self.config = config or TreeConfig()
        self.rng = rng if rng is not None else random.Random(self.config.injection.seed)
        self.observers: list[TreeObserver] = list(observers)

    def add_observer(self, observer: TreeObserver) -> None:
        self.observers.append(observer)

    def _notify(self, event: TreeEvent, result: ParseResult) -> None:
        for observer in self.observers:
            observer.on_tree_event(event, result)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def parse(self, source: TreeSource) -> ParseResult:
        """Parse and repair a tree document.

        Injection runs as well when ``config.injection.enabled`` is set.

        Returns:
            ParseResult; ``success`` is False only for undecodable input.

        Raises:
            GraphCorruptionError: If a pass broke edge/list consistency.
        """
        result = self._build(source)
        if result.success and self.config.injection.enabled:
            self._inject(result)
        self._notify("parsed", result)
        return result

    def inject(self, result: ParseResult) -> InjectionSummary:
        """Run procedural injection on a parsed result's graph, ignoring ``enabled``.

        Raises:
            ValueError: If the result has no graph.
        """
        if not result.success or result.graph is None:
            raise ValueError(f"Cannot inject into a failed parse: {result.error}")
        summary = self._inject(result)
        self._notify("injected", result)
        return summary

    def reroll(self, result: ParseResult) -> ParseResult:
        """Discard repairs and injections by re-parsing the stored raw source.

        Injection runs again when ``config.injection.enabled`` is set.
        """
        if not result.success:
            log.warning("reroll_skipped", reason=result.error)
            return result
        log.info("reroll_started", nodes=len(result.all_form_ids))
        fresh = self._build(result.raw)
        if fresh.success and self.config.injection.enabled:
            self._inject(fresh)
        self._notify("rerolled", fresh)
        return fresh

    # -------------------------------------------------------------------------
    # Pipeline steps
    # -------------------------------------------------------------------------

    def _build(self, source: TreeSource) -> ParseResult:
        try:
            raw = decode_source(source)
        except TreeParseError as e:
            log.error("tree_parse_failed", reason=e.reason)
            return ParseResult(success=False, error=e.reason)

        schools = raw.get("schools")
        if not schools or not isinstance(schools, Mapping):
            log.error("tree_parse_failed", reason="Missing schools")
            return ParseResult(success=False, error="Missing schools", raw=raw)

        graph = SpellGraph()
        # Ingest a copy so the stored raw document is never shared with the graph.
        ingest = graph.ingest(copy.deepcopy(dict(schools)))
        graph.reconcile_edges()

        result = ParseResult(
            success=True,
            graph=graph,
            raw=raw,
            all_form_ids=ingest.all_form_ids,
            skipped_schools=ingest.skipped,
        )

        for school_name in graph.schools:
            result.repairs[school_name] = repair_school(
                graph,
                school_name,
                preserve_multi_prereqs=self.config.repair.preserve_multi_prereqs,
            )
            result.orphans_fixed[school_name] = len(refresh_depths(graph, school_name))
            graph.root_of(school_name).state = "available"

        self._check_invariants(graph, "repair")
        log.info(
            "tree_parsed",
            schools=len(graph.schools),
            nodes=len(graph.nodes),
            edges=len(graph.edges),
            fixes=result.total_fixes,
        )
        return result

    def _inject(self, result: ParseResult) -> InjectionSummary:
        graph = result.graph
        assert graph is not None
        summary = inject_prerequisites(graph, self.config.injection, self.rng)
        for school_name in graph.schools:
            refresh_depths(graph, school_name)
        self._check_invariants(graph, "injection")
        result.injection = summary
        return summary

    @staticmethod
    def _check_invariants(graph: SpellGraph, stage: str) -> None:
        violations = graph.validate_invariants()
        if violations:
            log.error("graph_corruption", stage=stage, violations=len(violations))
            raise GraphCorruptionError(violations, stage=stage)
