"""Cycle and unreachability repair.

Transforms one school so the reachability simulator, run from the school
root, unlocks every node. Phases run in order, each starting from a fresh
simulation:

0. Root normalization: strip any prerequisite from the root.
1. Diagnosis: stop early if everything is already reachable.
2. Iterative repair: replace or drop unobtainable prerequisites, or
   reconnect fully cut-off nodes. At most ``MAX_REPAIR_PASSES`` passes.
3. Gentle fix: add one extra prerequisite to anything still unreachable,
   keeping the authored ones.
3b. Forced release: drop whatever unobtainable prerequisites remain.

Every edge change goes through the graph's symmetric helpers.

The replacement score is ``tier bonus - child count``. The bonus tables are
tunable heuristics; changing them changes which parent is picked but not
whether the school ends up reachable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spelltree.graph.algorithms import simulate_unlocks
from spelltree.models.tree import RepairAction, RepairKind, RepairSummary
from spelltree.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from spelltree.graph.graph import SpellGraph, SpellNode

log = get_logger(__name__)

MAX_REPAIR_PASSES = 10

# Tier distance -> bonus when replacing a prerequisite (candidate tier strictly lower).
REPLACEMENT_TIER_BONUS: dict[int, int] = {1: 20, 2: 10}
# Tier distance -> bonus when reconnecting a cut-off node (candidate tier <= node tier).
RECONNECT_TIER_BONUS: dict[int, int] = {0: 20, 1: 10}
DEFAULT_TIER_BONUS = 5


def _best_candidate(
    graph: SpellGraph,
    node: SpellNode,
    unlocked: Mapping[str, int],
    *,
    tier_ok: Callable[[int], bool],
    bonus_table: Mapping[int, int],
) -> str | None:
    """Highest scoring unlocked node, first-seen order winning ties."""
    best_id: str | None = None
    best_score: int | None = None
    for candidate_id in unlocked:
        if candidate_id == node.id or candidate_id in node.prerequisites:
            continue
        candidate = graph.nodes[candidate_id]
        if not tier_ok(candidate.tier):
            continue
        bonus = bonus_table.get(node.tier - candidate.tier, DEFAULT_TIER_BONUS)
        score = bonus - len(candidate.children)
        if best_score is None or score > best_score:
            best_id, best_score = candidate_id, score
    return best_id


def find_replacement(
    graph: SpellGraph, node: SpellNode, unlocked: Mapping[str, int]
) -> str | None:
    """Best unlocked candidate with a strictly lower tier than *node*."""
    return _best_candidate(
        graph,
        node,
        unlocked,
        tier_ok=lambda tier: tier < node.tier,
        bonus_table=REPLACEMENT_TIER_BONUS,
    )


def find_reconnect_parent(
    graph: SpellGraph, node: SpellNode, unlocked: Mapping[str, int]
) -> str | None:
    """Best unlocked candidate with a tier no higher than *node*'s."""
    return _best_candidate(
        graph,
        node,
        unlocked,
        tier_ok=lambda tier: tier <= node.tier,
        bonus_table=RECONNECT_TIER_BONUS,
    )


class _SchoolRepair:
    """Mutable bookkeeping for one :func:`repair_school` call."""

    def __init__(self, graph: SpellGraph, school_name: str, preserve_multi_prereqs: bool):
        self.graph = graph
        self.school = graph.schools[school_name]
        self.preserve_multi_prereqs = preserve_multi_prereqs
        self.summary = RepairSummary(school=school_name)

    def record(
        self,
        kind: RepairKind,
        node_id: str,
        *,
        removed: list[str] | None = None,
        added: list[str] | None = None,
    ) -> None:
        self.summary.fixes += 1
        self.summary.actions.append(
            RepairAction(
                kind=kind,
                school=self.school.name,
                node_id=node_id,
                removed=removed or [],
                added=added or [],
            )
        )

    def unreachable(self, unlocked: Mapping[str, int]) -> list[str]:
        return [nid for nid in self.school.node_ids if nid not in unlocked]

    # -- phase 0 ---------------------------------------------------------------

    def normalize_root(self) -> None:
        root = self.graph.nodes[self.school.root]
        for prereq_id in list(root.prerequisites):
            self.graph.remove_prerequisite(root.id, prereq_id)
            log.warning(
                "root_prerequisite_removed",
                school=self.school.name,
                node_id=root.id,
                prerequisite=prereq_id,
            )
            self.record("root_prerequisite_removed", root.id, removed=[prereq_id])

    # -- phase 1 ---------------------------------------------------------------

    def diagnose(self, unlocked: Mapping[str, int], unreachable: list[str]) -> None:
        log.warning(
            "unreachable_nodes_detected",
            school=self.school.name,
            count=len(unreachable),
            total=len(self.school.node_ids),
        )
        for node_id in unreachable:
            node = self.graph.nodes[node_id]
            log.info(
                "unreachable_node",
                school=self.school.name,
                node_id=node_id,
                tier=node.tier,
                blocking=[p for p in node.prerequisites if p not in unlocked],
            )

    # -- phase 2 ---------------------------------------------------------------

    def repair_pass(self) -> int:
        """Run one repair pass. Returns the number of changes made."""
        unlocked = simulate_unlocks(self.graph, self.school.name)
        changes = 0
        for node_id in self.unreachable(unlocked):
            node = self.graph.nodes[node_id]
            obtainable = [p for p in node.prerequisites if p in unlocked]
            unobtainable = [p for p in node.prerequisites if p not in unlocked]
            if not unobtainable:
                continue
            if obtainable:
                changes += self._repair_mixed(node, unobtainable, unlocked)
            else:
                changes += self._reconnect(node, unobtainable, unlocked)
        return changes

    def _repair_mixed(
        self, node: SpellNode, unobtainable: list[str], unlocked: Mapping[str, int]
    ) -> int:
        if self.preserve_multi_prereqs:
            log.info(
                "multi_prerequisite_preserved",
                school=self.school.name,
                node_id=node.id,
                blocking=unobtainable,
            )
            return 0

        for prereq_id in unobtainable:
            self.graph.remove_prerequisite(node.id, prereq_id)
            replacement = find_replacement(self.graph, node, unlocked)
            if replacement is not None:
                self.graph.add_prerequisite(node.id, replacement)
                log.warning(
                    "prerequisite_replaced",
                    school=self.school.name,
                    node_id=node.id,
                    removed=prereq_id,
                    added=replacement,
                )
                self.record(
                    "prerequisite_replaced", node.id, removed=[prereq_id], added=[replacement]
                )
            else:
                log.warning(
                    "prerequisite_dropped",
                    school=self.school.name,
                    node_id=node.id,
                    removed=prereq_id,
                )
                self.record("prerequisite_dropped", node.id, removed=[prereq_id])
        return len(unobtainable)

    def _reconnect(
        self, node: SpellNode, unobtainable: list[str], unlocked: Mapping[str, int]
    ) -> int:
        parent_id = find_reconnect_parent(self.graph, node, unlocked) or self.school.root
        for prereq_id in unobtainable:
            self.graph.remove_prerequisite(node.id, prereq_id)
        self.graph.add_prerequisite(node.id, parent_id)
        log.warning(
            "node_reconnected",
            school=self.school.name,
            node_id=node.id,
            removed=unobtainable,
            added=parent_id,
        )
        self.record("reconnected", node.id, removed=list(unobtainable), added=[parent_id])
        return 1

    # -- phase 3 ---------------------------------------------------------------

    def gentle_fix(self) -> None:
        unlocked = simulate_unlocks(self.graph, self.school.name)
        for node_id in self.unreachable(unlocked):
            node = self.graph.nodes[node_id]
            parent_id = find_replacement(self.graph, node, unlocked)
            if parent_id is None and self.school.root not in node.prerequisites:
                parent_id = self.school.root
            if parent_id is None:
                continue
            self.graph.add_prerequisite(node_id, parent_id)
            log.warning(
                "gentle_fix_applied",
                school=self.school.name,
                node_id=node_id,
                added=parent_id,
            )
            self.record("gentle_fix", node_id, added=[parent_id])

    # -- phase 3b --------------------------------------------------------------

    def force_release(self) -> None:
        for _ in range(MAX_REPAIR_PASSES):
            unlocked = simulate_unlocks(self.graph, self.school.name)
            unreachable = self.unreachable(unlocked)
            if not unreachable:
                return
            for node_id in unreachable:
                node = self.graph.nodes[node_id]
                blocking = [p for p in node.prerequisites if p not in unlocked]
                if not blocking:
                    continue
                for prereq_id in blocking:
                    self.graph.remove_prerequisite(node_id, prereq_id)
                added: list[str] = []
                if not node.prerequisites:
                    self.graph.add_prerequisite(node_id, self.school.root)
                    added.append(self.school.root)
                log.warning(
                    "forced_release",
                    school=self.school.name,
                    node_id=node_id,
                    removed=blocking,
                    added=added,
                )
                self.record("forced_release", node_id, removed=blocking, added=added)


def repair_school(
    graph: SpellGraph, school_name: str, *, preserve_multi_prereqs: bool = False
) -> RepairSummary:
    """Make every node of a school reachable from its root.

    Args:
        graph: Graph to repair in place.
        school_name: School to repair.
        preserve_multi_prereqs: Leave nodes with a mix of obtainable and
            unobtainable prerequisites alone during the iterative phase.
            Anything that stays unreachable is still released afterwards.

    Returns:
        RepairSummary with fix count, passes used and recorded actions.
    """
    state = _SchoolRepair(graph, school_name, preserve_multi_prereqs)
    summary = state.summary

    state.normalize_root()

    unlocked = simulate_unlocks(graph, school_name)
    unreachable = state.unreachable(unlocked)
    summary.unreachable_before = unreachable
    if not unreachable:
        log.debug("school_fully_reachable", school=school_name, fixes=summary.fixes)
        return summary

    state.diagnose(unlocked, unreachable)

    for _ in range(MAX_REPAIR_PASSES):
        if not state.unreachable(simulate_unlocks(graph, school_name)):
            break
        summary.passes += 1
        if state.repair_pass() == 0:
            break

    state.gentle_fix()
    state.force_release()

    summary.unreachable_after = state.unreachable(simulate_unlocks(graph, school_name))
    if summary.unreachable_after:
        log.warning(
            "school_still_unreachable",
            school=school_name,
            nodes=summary.unreachable_after,
        )
    else:
        log.info(
            "school_repaired",
            school=school_name,
            fixes=summary.fixes,
            passes=summary.passes,
            repaired=len(unreachable),
        )
    return summary
