"""Read-only graph algorithms shared by the repair and injection passes.

Pure functions that operate on the graph without modifying it. Reachability
is never cached: callers recompute after every mutation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spelltree.models.tree import UnreachableNode, UnreachableReport
from spelltree.observability.logging import get_logger

if TYPE_CHECKING:
    from spelltree.graph.graph import SpellGraph

log = get_logger(__name__)

SIMULATION_PASS_MARGIN = 10


def simulate_unlocks(graph: SpellGraph, school_name: str) -> dict[str, int]:
    """Compute which nodes of a school can be unlocked from its root.

    A node unlocks once every id in its prerequisite list is unlocked (AND
    semantics). The root starts unlocked; a non-root node with no
    prerequisites is treated like a root and unlocks immediately. Dangling or
    cross-school prerequisites never unlock.

    Iteration stops at a fixed point or after ``node_count + 10`` passes.

    Args:
        graph: Graph to analyze.
        school_name: School to simulate.

    Returns:
        Mapping of unlocked node id -> pass in which it unlocked (root is 0),
        in unlock order. That order is the first-seen order used for every
        tie break in the repair passes.
    """
    school = graph.schools[school_name]
    unlocked: dict[str, int] = {school.root: 0}
    max_passes = len(school.node_ids) + SIMULATION_PASS_MARGIN

    for wave in range(1, max_passes + 1):
        added = False
        for node_id in school.node_ids:
            if node_id in unlocked:
                continue
            node = graph.nodes.get(node_id)
            if node is None:
                continue
            if all(p in unlocked for p in node.prerequisites):
                unlocked[node_id] = wave
                added = True
        if not added:
            break
    else:
        log.warning("simulation_pass_cap_reached", school=school_name, passes=max_passes)

    return unlocked


def unreachable_ids(graph: SpellGraph, school_name: str) -> list[str]:
    """Return the school's node ids the simulator cannot unlock, in school order."""
    unlocked = simulate_unlocks(graph, school_name)
    return [nid for nid in graph.schools[school_name].node_ids if nid not in unlocked]


def descendants(graph: SpellGraph, node_id: str) -> set[str]:
    """Collect every node reachable from *node_id* by following child lists.

    Dangling child ids are included but not expanded. The start node is only
    included if it lies on a cycle through its own children.
    """
    node = graph.nodes.get(node_id)
    if node is None:
        return set()

    seen: set[str] = set()
    queue = list(node.children)
    while queue:
        current = queue.pop()
        if current in seen:
            continue
        seen.add(current)
        child = graph.nodes.get(current)
        if child is not None:
            queue.extend(child.children)
    return seen


def is_descendant(graph: SpellGraph, candidate_id: str, ancestor_id: str) -> bool:
    """True if *candidate_id* can be reached from *ancestor_id* via child edges."""
    return candidate_id in descendants(graph, ancestor_id)


def has_path_to_root(graph: SpellGraph, node_id: str) -> bool:
    """Follow first-listed prerequisites until a node with none is reached.

    Returns False when the walk hits a dangling id or revisits a node.
    """
    visited: set[str] = set()
    current = graph.nodes.get(node_id)
    while current is not None:
        if current.id in visited:
            return False
        visited.add(current.id)
        if not current.prerequisites:
            return True
        current = graph.nodes.get(current.prerequisites[0])
    return False


def find_cycle_nodes(graph: SpellGraph) -> list[str]:
    """Find every node that lies on a prerequisite cycle.

    Uses an iterative Tarjan strongly-connected-components sweep over the
    resolvable prerequisite -> dependent relation. A node is on a cycle if
    its component has more than one member or it lists itself.

    Returns:
        Node ids on cycles, in graph order. Empty for an acyclic graph.
    """
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    cyclic: set[str] = set()
    counter = 0

    def successors(nid: str) -> list[str]:
        return [c for c in graph.nodes[nid].children if c in graph.nodes]

    for start in graph.nodes:
        if start in index_of:
            continue
        work: list[tuple[str, int]] = [(start, 0)]
        index_of[start] = lowlink[start] = counter
        counter += 1
        stack.append(start)
        on_stack.add(start)

        while work:
            nid, pos = work[-1]
            succ = successors(nid)
            if pos < len(succ):
                work[-1] = (nid, pos + 1)
                nxt = succ[pos]
                if nxt not in index_of:
                    index_of[nxt] = lowlink[nxt] = counter
                    counter += 1
                    stack.append(nxt)
                    on_stack.add(nxt)
                    work.append((nxt, 0))
                elif nxt in on_stack:
                    lowlink[nid] = min(lowlink[nid], index_of[nxt])
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[nid])
            if lowlink[nid] == index_of[nid]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == nid:
                        break
                if len(component) > 1 or nid in graph.nodes[nid].children:
                    cyclic.update(component)

    return [nid for nid in graph.nodes if nid in cyclic]


def unreachable_report(graph: SpellGraph, school_name: str) -> UnreachableReport:
    """Describe which nodes of a school cannot be unlocked and why.

    Each unreachable node lists its current prerequisites and the subset
    that blocks it (not unlocked). The report formats itself as correction
    feedback for the content generator.
    """
    school = graph.schools[school_name]
    unlocked = simulate_unlocks(graph, school_name)
    entries: list[UnreachableNode] = []
    for node in graph.school_nodes(school_name):
        if node.id in unlocked:
            continue
        entries.append(
            UnreachableNode(
                node_id=node.id,
                tier=node.tier,
                current_prereqs=list(node.prerequisites),
                blocking_prereqs=[p for p in node.prerequisites if p not in unlocked],
            )
        )
    return UnreachableReport(
        school=school_name,
        total=len(school.node_ids),
        reachable=len(school.node_ids) - len(entries),
        unreachable=entries,
    )
