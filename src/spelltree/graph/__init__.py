"""Graph package - spell prerequisite graph storage and repair passes.

The graph holds one parsed tree: spell nodes, prerequisite edges and
per-school metadata. Repair, orphan and injection passes mutate it in place
through the symmetric edge helpers; the algorithms module is read-only.
"""

from spelltree.graph.algorithms import (
    descendants,
    find_cycle_nodes,
    has_path_to_root,
    is_descendant,
    simulate_unlocks,
    unreachable_ids,
    unreachable_report,
)
from spelltree.graph.errors import (
    GraphCorruptionError,
    GraphIntegrityError,
    NodeNotFoundError,
    TreeParseError,
)
from spelltree.graph.graph import Edge, IngestResult, School, SpellGraph, SpellNode
from spelltree.graph.injection import inject_prerequisites, injection_candidates
from spelltree.graph.orphans import DepthPass, assign_depths, reattach_orphans, refresh_depths
from spelltree.graph.repair import MAX_REPAIR_PASSES, repair_school
from spelltree.graph.validation import run_tree_checks
from spelltree.graph.validation_types import ValidationCheck, ValidationReport

__all__ = [
    "MAX_REPAIR_PASSES",
    "DepthPass",
    "Edge",
    "GraphCorruptionError",
    "GraphIntegrityError",
    "IngestResult",
    "NodeNotFoundError",
    "School",
    "SpellGraph",
    "SpellNode",
    "TreeParseError",
    "ValidationCheck",
    "ValidationReport",
    "assign_depths",
    "descendants",
    "find_cycle_nodes",
    "has_path_to_root",
    "inject_prerequisites",
    "injection_candidates",
    "is_descendant",
    "reattach_orphans",
    "refresh_depths",
    "repair_school",
    "run_tree_checks",
    "simulate_unlocks",
    "unreachable_ids",
    "unreachable_report",
]
