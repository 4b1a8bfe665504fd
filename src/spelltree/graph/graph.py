"""Spell prerequisite graph storage.

The graph is the single working copy of one parsed tree. It owns node and
edge identity for the duration of a parse; repair and injection passes
borrow it and mutate it in place.

Two views of the same relation are kept in lockstep:
- node-level lists (``prerequisites`` on the dependent, ``children`` on the parent)
- the flat edge list consumed by the layout stage

All structural changes go through :meth:`SpellGraph.add_prerequisite` and
:meth:`SpellGraph.remove_prerequisite`, which update both views together.
:meth:`SpellGraph.validate_invariants` checks the symmetry after each pass.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from spelltree.graph.errors import NodeNotFoundError
from spelltree.models.tree import DEFAULT_LAYOUT_STYLE, RawNode, RawSchool, SchoolSkip
from spelltree.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

log = get_logger(__name__)

NodeState = str  # "locked" | "available" | "learned"


@dataclass
class SpellNode:
    """One spell in the prerequisite graph.

    Positional fields belong to the layout stage; they are carried through
    untouched and never read by the repair passes.
    """

    id: str
    school: str
    tier: int = 0
    depth: int = 0
    children: list[str] = field(default_factory=list)
    prerequisites: list[str] = field(default_factory=list)
    state: NodeState = "locked"
    is_root: bool = False
    is_flower: bool = False
    flower_type: str | None = None
    from_visual_first: bool = False
    x: float = 0.0
    y: float = 0.0
    angle: float = 0.0
    radius: float = 0.0
    hard_prereqs: list[str] = field(default_factory=list)
    soft_prereqs: list[str] = field(default_factory=list)
    soft_needed: int = 0

    @classmethod
    def from_raw(cls, raw: RawNode, node_id: str, school: str) -> SpellNode:
        """Build a node from a validated raw node, copying every list.

        Self references and duplicate ids are dropped from the child and
        prerequisite lists; order of first occurrence is kept.
        """
        keep_position = raw.has_precomputed_position
        return cls(
            id=node_id,
            school=school,
            tier=raw.tier,
            children=_unique_without(raw.children, node_id),
            prerequisites=_unique_without(raw.prerequisites, node_id),
            is_root=raw.is_root,
            is_flower=raw.is_flower,
            flower_type=raw.flower_type,
            from_visual_first=raw.from_visual_first,
            x=(raw.x or 0.0) if keep_position else 0.0,
            y=(raw.y or 0.0) if keep_position else 0.0,
            angle=raw.angle,
            radius=raw.radius,
            hard_prereqs=list(raw.hard_prereqs),
            soft_prereqs=list(raw.soft_prereqs),
            soft_needed=raw.soft_needed,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the camelCase shape the layout stage expects."""
        return {
            "id": self.id,
            "formId": self.id,
            "school": self.school,
            "tier": self.tier,
            "depth": self.depth,
            "children": list(self.children),
            "prerequisites": list(self.prerequisites),
            "state": self.state,
            "x": self.x,
            "y": self.y,
            "angle": self.angle,
            "radius": self.radius,
            "isRoot": self.is_root,
            "isFlower": self.is_flower,
            "flowerType": self.flower_type,
            "_fromVisualFirst": self.from_visual_first,
            "hardPrereqs": list(self.hard_prereqs),
            "softPrereqs": list(self.soft_prereqs),
            "softNeeded": self.soft_needed,
        }


@dataclass(frozen=True)
class Edge:
    """Directed edge: ``from_id`` is a prerequisite of ``to_id``."""

    from_id: str
    to_id: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_id, "to": self.to_id}


@dataclass
class School:
    """Per-school metadata and computed statistics."""

    name: str
    root: str
    node_ids: list[str] = field(default_factory=list)
    max_depth: int = 0
    max_width: int = 0
    layout_style: str = DEFAULT_LAYOUT_STYLE
    slice_info: Any = None
    config: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "nodeIds": list(self.node_ids),
            "maxDepth": self.max_depth,
            "maxWidth": self.max_width,
            "layoutStyle": self.layout_style,
            "sliceInfo": copy.deepcopy(self.slice_info),
            "config": copy.deepcopy(self.config),
        }


@dataclass
class IngestResult:
    """What ingestion produced: every node id seen, and schools it skipped."""

    all_form_ids: list[str] = field(default_factory=list)
    skipped: list[SchoolSkip] = field(default_factory=list)


def _unique_without(ids: list[str], exclude: str) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in ids:
        if item == exclude or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


class SpellGraph:
    """Working graph for one parse of a spell tree document.

    Attributes:
        nodes: node id -> SpellNode, in ingestion order.
        schools: school name -> School, in document order.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, SpellNode] = {}
        self.schools: dict[str, School] = {}
        self._edges: list[Edge] = []
        self._edge_index: set[tuple[str, str]] = set()

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def ingest(self, schools: Mapping[str, Any]) -> IngestResult:
        """Create node records for every usable school in *schools*.

        Fails softly: a school without a root or node list (or whose root is
        not one of its nodes) is skipped and reported; a node without an
        identifier, with an identifier already used, or that fails
        validation is skipped with a log record.

        Args:
            schools: Mapping of school name -> raw school dict.

        Returns:
            IngestResult with all ingested node ids and the skipped schools.
        """
        result = IngestResult()

        for school_name, school_data in schools.items():
            skip_reason = self._ingest_school(str(school_name), school_data, result)
            if skip_reason:
                log.warning("school_skipped", school=school_name, reason=skip_reason)
                result.skipped.append(SchoolSkip(school=str(school_name), reason=skip_reason))

        log.info(
            "tree_ingested",
            schools=len(self.schools),
            nodes=len(self.nodes),
            skipped=len(result.skipped),
        )
        return result

    def _ingest_school(
        self, school_name: str, school_data: Any, result: IngestResult
    ) -> str | None:
        """Ingest one school. Returns a skip reason, or None on success."""
        if not isinstance(school_data, dict):
            return "school entry is not an object"
        try:
            raw_school = RawSchool.model_validate(school_data)
        except ValidationError as e:
            return f"invalid school entry: {e.error_count()} validation error(s)"

        if raw_school.root is None:
            return "missing root"
        if raw_school.nodes is None:
            return "missing node list"

        raw_nodes: list[tuple[str, RawNode]] = []
        for index, node_data in enumerate(raw_school.nodes):
            try:
                raw_node = RawNode.model_validate(node_data)
            except ValidationError as e:
                log.warning(
                    "node_skipped_invalid",
                    school=school_name,
                    index=index,
                    errors=e.error_count(),
                )
                continue
            node_id = raw_node.identifier
            if node_id is None:
                log.debug("node_skipped_missing_id", school=school_name, index=index)
                continue
            raw_nodes.append((node_id, raw_node))

        if raw_school.root not in {node_id for node_id, _ in raw_nodes}:
            return f"root '{raw_school.root}' is not among the school's nodes"
        if raw_school.root in self.nodes:
            owner = self.nodes[raw_school.root].school
            return f"root '{raw_school.root}' already belongs to school '{owner}'"

        school = School(
            name=school_name,
            root=raw_school.root,
            layout_style=raw_school.layout_style,
            slice_info=copy.deepcopy(raw_school.slice_info),
            config=copy.deepcopy(raw_school.config_used),
        )
        self.schools[school_name] = school

        for node_id, raw_node in raw_nodes:
            if node_id in self.nodes:
                log.warning(
                    "node_skipped_duplicate",
                    school=school_name,
                    node_id=node_id,
                    existing_school=self.nodes[node_id].school,
                )
                continue
            if node_id in raw_node.prerequisites or node_id in raw_node.children:
                log.warning("self_reference_removed", school=school_name, node_id=node_id)
            self.nodes[node_id] = SpellNode.from_raw(raw_node, node_id, school_name)
            school.node_ids.append(node_id)
            result.all_form_ids.append(node_id)

        log.debug(
            "school_ingested",
            school=school_name,
            root=school.root,
            nodes=len(school.node_ids),
            layout_style=school.layout_style,
        )
        return None

    def reconcile_edges(self) -> int:
        """Derive the edge list from both child and prerequisite lists.

        Generated content populates one direction or the other
        inconsistently, so both are merged:

        1. every listed child becomes an edge node -> child, and the parent
           is appended to the child's prerequisites if missing
        2. every listed prerequisite becomes an edge prereq -> node unless
           step 1 already created it, and the node is appended to the
           prerequisite's children

        Ids with no matching node are left in the lists and produce no edge.

        Returns:
            Number of edges that only existed on the prerequisite side.
        """
        for node in self.nodes.values():
            for child_id in node.children:
                child = self.nodes.get(child_id)
                if child is None:
                    continue
                self._append_edge(node.id, child_id)
                if node.id not in child.prerequisites:
                    child.prerequisites.append(node.id)

        added = 0
        for node in self.nodes.values():
            for prereq_id in node.prerequisites:
                parent = self.nodes.get(prereq_id)
                if parent is None or self.has_edge(prereq_id, node.id):
                    continue
                log.debug(
                    "edge_added_from_prerequisite",
                    school=node.school,
                    from_id=prereq_id,
                    to_id=node.id,
                )
                self._append_edge(prereq_id, node.id)
                if node.id not in parent.children:
                    parent.children.append(node.id)
                added += 1

        if added:
            log.info("edges_reconciled", added_from_prerequisites=added, edges=len(self._edges))
        return added

    # -------------------------------------------------------------------------
    # Node lookup
    # -------------------------------------------------------------------------

    def get_node(self, node_id: str) -> SpellNode | None:
        """Get a node by ID, or None if not found."""
        return self.nodes.get(node_id)

    def require_node(self, node_id: str, *, context: str = "") -> SpellNode:
        """Get a node by ID.

        Raises:
            NodeNotFoundError: If the node doesn't exist.
        """
        node = self.nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id, available=list(self.nodes), context=context)
        return node

    def school_nodes(self, school_name: str) -> Iterator[SpellNode]:
        """Yield the nodes of a school in ingestion order."""
        for node_id in self.schools[school_name].node_ids:
            node = self.nodes.get(node_id)
            if node is not None:
                yield node

    def root_of(self, school_name: str) -> SpellNode:
        """Return the root node of a school."""
        return self.require_node(self.schools[school_name].root, context=f"root of {school_name}")

    # -------------------------------------------------------------------------
    # Edge operations
    # -------------------------------------------------------------------------

    @property
    def edges(self) -> list[Edge]:
        """The edge list (live view; mutate only through the graph)."""
        return self._edges

    def has_edge(self, from_id: str, to_id: str) -> bool:
        return (from_id, to_id) in self._edge_index

    def _append_edge(self, from_id: str, to_id: str) -> None:
        if (from_id, to_id) in self._edge_index:
            return
        self._edge_index.add((from_id, to_id))
        self._edges.append(Edge(from_id, to_id))

    def _drop_edge(self, from_id: str, to_id: str) -> None:
        if (from_id, to_id) not in self._edge_index:
            return
        self._edge_index.discard((from_id, to_id))
        self._edges = [e for e in self._edges if not (e.from_id == from_id and e.to_id == to_id)]

    def add_prerequisite(self, node_id: str, parent_id: str) -> bool:
        """Make *parent_id* a prerequisite of *node_id* in every view.

        Returns:
            True if anything changed, False if the edge was already complete.

        Raises:
            NodeNotFoundError: If either node doesn't exist.
            ValueError: If the edge would be a self loop.
        """
        if node_id == parent_id:
            raise ValueError(f"Node '{node_id}' cannot be its own prerequisite")
        node = self.require_node(node_id, context="add_prerequisite")
        parent = self.require_node(parent_id, context="add_prerequisite")

        changed = False
        if parent_id not in node.prerequisites:
            node.prerequisites.append(parent_id)
            changed = True
        if node_id not in parent.children:
            parent.children.append(node_id)
            changed = True
        if not self.has_edge(parent_id, node_id):
            self._append_edge(parent_id, node_id)
            changed = True
        return changed

    def remove_prerequisite(self, node_id: str, parent_id: str) -> bool:
        """Remove *parent_id* as a prerequisite of *node_id* in every view.

        A dangling prerequisite (no such parent node) is simply dropped from
        the node's list.

        Returns:
            True if anything changed.
        """
        node = self.require_node(node_id, context="remove_prerequisite")
        changed = False
        if parent_id in node.prerequisites:
            node.prerequisites.remove(parent_id)
            changed = True
        parent = self.nodes.get(parent_id)
        if parent is not None and node_id in parent.children:
            parent.children.remove(node_id)
            changed = True
        if self.has_edge(parent_id, node_id):
            self._drop_edge(parent_id, node_id)
            changed = True
        return changed

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_invariants(self) -> list[str]:
        """Check structural invariants and return any violations.

        Invariants checked:
        1. Edge endpoints exist and no edge is duplicated or a self loop
        2. Every edge is mirrored in both node lists
        3. Every resolvable child / prerequisite id is mirrored by an edge
        4. No node lists itself as child or prerequisite

        Dangling ids (no matching node) are tolerated in node lists.

        Returns:
            List of violation messages (empty if valid).
        """
        violations: list[str] = []

        seen: set[tuple[str, str]] = set()
        for edge in self._edges:
            key = (edge.from_id, edge.to_id)
            if key in seen:
                violations.append(f"Duplicate edge {edge.from_id} -> {edge.to_id}")
            seen.add(key)
            if edge.from_id == edge.to_id:
                violations.append(f"Self-loop edge on '{edge.from_id}'")
            parent = self.nodes.get(edge.from_id)
            child = self.nodes.get(edge.to_id)
            if parent is None or child is None:
                violations.append(f"Edge {edge.from_id} -> {edge.to_id} has a missing endpoint")
                continue
            if edge.to_id not in parent.children:
                violations.append(
                    f"Edge {edge.from_id} -> {edge.to_id} missing from children of '{edge.from_id}'"
                )
            if edge.from_id not in child.prerequisites:
                violations.append(
                    f"Edge {edge.from_id} -> {edge.to_id} missing from prerequisites of '{edge.to_id}'"
                )
        if seen != self._edge_index:
            violations.append("Edge index out of sync with edge list")

        for node in self.nodes.values():
            if node.id in node.prerequisites or node.id in node.children:
                violations.append(f"Node '{node.id}' references itself")
            for child_id in node.children:
                child = self.nodes.get(child_id)
                if child is None:
                    continue
                if (node.id, child_id) not in seen:
                    violations.append(f"Child '{child_id}' of '{node.id}' has no edge")
                if node.id not in child.prerequisites:
                    violations.append(f"Child '{child_id}' does not list '{node.id}' as prerequisite")
            for prereq_id in node.prerequisites:
                parent = self.nodes.get(prereq_id)
                if parent is None:
                    continue
                if (prereq_id, node.id) not in seen:
                    violations.append(f"Prerequisite '{prereq_id}' of '{node.id}' has no edge")
                if node.id not in parent.children:
                    violations.append(f"Prerequisite '{prereq_id}' does not list '{node.id}' as child")

        return violations

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the layout stage: nodes, edges, schools, allFormIds."""
        return {
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges],
            "schools": {name: school.to_dict() for name, school in self.schools.items()},
            "allFormIds": list(self.nodes),
        }

    def to_raw_document(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of *raw* whose node lists reflect this graph.

        Used when saving a repaired or injected tree back in source format.
        The input document is never modified.
        """
        document = copy.deepcopy(dict(raw))
        for school_data in (document.get("schools") or {}).values():
            if not isinstance(school_data, dict):
                continue
            for raw_node in school_data.get("nodes") or []:
                if not isinstance(raw_node, dict):
                    continue
                node_id = raw_node.get("formId") or raw_node.get("spellId") or raw_node.get("id")
                node = self.nodes.get(str(node_id)) if node_id is not None else None
                if node is None:
                    continue
                raw_node["prerequisites"] = list(node.prerequisites)
                raw_node["children"] = list(node.children)
        return document

    def __repr__(self) -> str:
        """Return string representation of graph."""
        return (
            f"SpellGraph(schools={len(self.schools)}, nodes={len(self.nodes)}, "
            f"edges={len(self._edges)})"
        )
