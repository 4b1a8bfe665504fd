"""Depth assignment and orphan reattachment.

A breadth-first pass from each school root along child edges assigns
depths. Any school node the pass never reaches is an orphan: usually a node
whose only link is a prerequisite that was itself cut off, or a data error.
Orphans are grafted onto an already visited node of similar tier.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from spelltree.graph.algorithms import descendants
from spelltree.models.tree import RepairAction
from spelltree.observability.logging import get_logger

if TYPE_CHECKING:
    from spelltree.graph.graph import SpellGraph, SpellNode

log = get_logger(__name__)


@dataclass
class DepthPass:
    """State of one breadth-first depth pass over a school.

    Attributes:
        school: School the pass ran over.
        visited: Visited node ids in first-seen order (values unused).
        max_depth: Deepest depth assigned so far.
        width: Number of visited nodes at each depth.
    """

    school: str
    visited: dict[str, None] = field(default_factory=dict)
    max_depth: int = 0
    width: Counter[int] = field(default_factory=Counter)

    def visit(self, node: SpellNode, depth: int) -> None:
        node.depth = depth
        self.visited[node.id] = None
        self.width[depth] += 1
        self.max_depth = max(self.max_depth, depth)

    @property
    def max_width(self) -> int:
        return max(max(self.width.values(), default=0), 1)


def assign_depths(graph: SpellGraph, school_name: str) -> DepthPass:
    """Breadth-first traversal from the root along child edges.

    Only nodes of the same school are followed. Unvisited nodes keep their
    previous depth until :func:`reattach_orphans` assigns one.
    """
    school = graph.schools[school_name]
    members = set(school.node_ids)
    depth_pass = DepthPass(school=school_name)

    root = graph.root_of(school_name)
    depth_pass.visit(root, 0)
    queue: deque[SpellNode] = deque([root])
    while queue:
        current = queue.popleft()
        for child_id in current.children:
            if child_id in depth_pass.visited or child_id not in members:
                continue
            child = graph.nodes.get(child_id)
            if child is None:
                continue
            depth_pass.visit(child, current.depth + 1)
            queue.append(child)

    return depth_pass


def _pick_orphan_parent(
    graph: SpellGraph, orphan: SpellNode, depth_pass: DepthPass, root_id: str
) -> str:
    """Choose a visited node of tier ``orphan.tier - 1`` or ``orphan.tier``.

    Ranked by tier distance, then child count, then first-seen order.
    Descendants of the orphan are excluded. Falls back to the root.
    """
    below = descendants(graph, orphan.id)
    best_id: str | None = None
    best_key: tuple[int, int] | None = None
    for candidate_id in depth_pass.visited:
        if candidate_id == orphan.id or candidate_id in below:
            continue
        candidate = graph.nodes[candidate_id]
        if candidate.school != orphan.school:
            continue
        if not orphan.tier - 1 <= candidate.tier <= orphan.tier:
            continue
        key = (orphan.tier - candidate.tier, len(candidate.children))
        if best_key is None or key < best_key:
            best_id, best_key = candidate_id, key
    return best_id if best_id is not None else root_id


def reattach_orphans(
    graph: SpellGraph, school_name: str, depth_pass: DepthPass
) -> list[RepairAction]:
    """Attach every node the depth pass missed, then depth its subtree.

    Orphans are processed in school order; each one becomes visited as soon
    as it is attached, so later orphans may attach under earlier ones.

    Returns:
        One ``orphan_attached`` action per orphan.
    """
    school = graph.schools[school_name]
    orphans = [nid for nid in school.node_ids if nid not in depth_pass.visited]
    if not orphans:
        return []

    actions: list[RepairAction] = []
    for orphan_id in orphans:
        orphan = graph.nodes[orphan_id]
        parent_id = _pick_orphan_parent(graph, orphan, depth_pass, school.root)
        parent = graph.nodes[parent_id]
        graph.add_prerequisite(orphan_id, parent_id)
        depth_pass.visit(orphan, parent.depth + 1)
        log.warning(
            "orphan_attached",
            school=school_name,
            node_id=orphan_id,
            parent=parent_id,
            tier=orphan.tier,
            parent_tier=parent.tier,
        )
        actions.append(
            RepairAction(
                kind="orphan_attached", school=school_name, node_id=orphan_id, added=[parent_id]
            )
        )

    members = set(school.node_ids)
    for orphan_id in orphans:
        queue: deque[SpellNode] = deque([graph.nodes[orphan_id]])
        while queue:
            current = queue.popleft()
            for child_id in current.children:
                if child_id in depth_pass.visited or child_id not in members:
                    continue
                child = graph.nodes.get(child_id)
                if child is None:
                    continue
                depth_pass.visit(child, current.depth + 1)
                queue.append(child)

    log.info("orphans_reattached", school=school_name, count=len(actions))
    return actions


def refresh_depths(graph: SpellGraph, school_name: str) -> list[RepairAction]:
    """Recompute depths for a school, reattaching orphans, and store statistics.

    Returns:
        Actions for any orphans that had to be attached.
    """
    school = graph.schools[school_name]
    depth_pass = assign_depths(graph, school_name)
    actions = reattach_orphans(graph, school_name, depth_pass)
    school.max_depth = depth_pass.max_depth
    school.max_width = depth_pass.max_width
    log.debug(
        "depths_assigned",
        school=school_name,
        max_depth=school.max_depth,
        max_width=school.max_width,
    )
    return actions
