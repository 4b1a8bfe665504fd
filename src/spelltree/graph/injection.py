"""Procedural prerequisite injection.

Optionally densifies a repaired graph by giving some nodes an extra
prerequisite. Every added edge comes from a shallower node of the same
school that is not downstream of the target, so injection can never create
a cycle or strand a node.

Injection only touches the working graph. The stored raw document is left
alone, so re-parsing it discards every injected edge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spelltree.graph.algorithms import descendants, has_path_to_root
from spelltree.models.tree import InjectedEdge, InjectionSummary
from spelltree.observability.logging import get_logger

if TYPE_CHECKING:
    import random

    from spelltree.graph.graph import SpellGraph, SpellNode
    from spelltree.pipeline.config import InjectionConfig

log = get_logger(__name__)


def injection_candidates(graph: SpellGraph, node: SpellNode) -> list[SpellNode]:
    """Nodes that can safely become an extra prerequisite of *node*.

    Same school, not the node itself, not already a prerequisite, not a
    descendant, strictly shallower, and with a first-prerequisite chain that
    ends at a root.
    """
    below = descendants(graph, node.id)
    candidates: list[SpellNode] = []
    for candidate in graph.school_nodes(node.school):
        if candidate.id == node.id or candidate.id in node.prerequisites:
            continue
        if candidate.id in below:
            continue
        if candidate.depth >= node.depth:
            continue
        if not has_path_to_root(graph, candidate.id):
            continue
        candidates.append(candidate)
    return candidates


def inject_prerequisites(
    graph: SpellGraph, config: InjectionConfig, rng: random.Random
) -> InjectionSummary:
    """Add extra prerequisite edges to randomly chosen eligible nodes.

    ``config.enabled`` is the caller's gate and is not checked here. A node
    is eligible when it is not a root, has fewer than ``max_prereqs``
    prerequisites and sits at depth ``min_depth`` or deeper; each eligible
    node then passes an independent ``chance`` percent roll.

    Depths are not refreshed; callers run the depth pass afterwards.

    Args:
        graph: Repaired graph to densify in place.
        config: Injection settings.
        rng: Random source. Seed it for reproducible runs.

    Returns:
        InjectionSummary listing every added edge.
    """
    summary = InjectionSummary()
    log.debug(
        "injection_started",
        chance=config.chance,
        max_prereqs=config.max_prereqs,
        min_depth=config.min_depth,
        same_tier_preference=config.same_tier_preference,
    )

    for node in list(graph.nodes.values()):
        if not node.prerequisites:
            continue
        if len(node.prerequisites) >= config.max_prereqs:
            continue
        if node.depth < config.min_depth:
            continue
        summary.considered += 1
        if rng.random() * 100 >= config.chance:
            continue

        candidates = injection_candidates(graph, node)
        if not candidates:
            continue

        pool = candidates
        if config.same_tier_preference:
            adjacent = [c for c in candidates if c.depth == node.depth - 1]
            if adjacent:
                pool = adjacent

        selected = rng.choice(pool)
        graph.add_prerequisite(node.id, selected.id)
        summary.injected.append(
            InjectedEdge(school=node.school, node_id=node.id, prerequisite=selected.id)
        )
        log.info(
            "prerequisite_injected",
            school=node.school,
            node_id=node.id,
            prerequisite=selected.id,
        )

    log.info("injection_complete", considered=summary.considered, injected=summary.count)
    return summary
