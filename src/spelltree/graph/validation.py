"""Structural checks over a finalized spell graph.

Pure, deterministic functions. Each returns a ValidationCheck; run_tree_checks
aggregates them into a ValidationReport for the CLI and tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spelltree.graph.algorithms import find_cycle_nodes, unreachable_ids
from spelltree.graph.validation_types import ValidationCheck, ValidationReport

if TYPE_CHECKING:
    from spelltree.graph.graph import SpellGraph

__all__ = [
    "ValidationCheck",
    "ValidationReport",
    "check_acyclic",
    "check_edge_consistency",
    "check_full_reachability",
    "check_no_self_loops",
    "check_single_root",
    "run_tree_checks",
]


def _preview(ids: list[str], limit: int = 5) -> str:
    shown = ", ".join(ids[:limit])
    if len(ids) > limit:
        shown += f" (+{len(ids) - limit} more)"
    return shown


def check_single_root(graph: SpellGraph) -> ValidationCheck:
    """Verify each school has exactly one prerequisite-free node: its root."""
    problems: list[str] = []
    for name, school in graph.schools.items():
        roots = [n.id for n in graph.school_nodes(name) if not n.prerequisites]
        if roots != [school.root]:
            problems.append(f"{name}: {_preview(roots) or 'none'}")

    if problems:
        return ValidationCheck(
            name="single_root",
            severity="fail",
            message=f"Schools without a single root: {'; '.join(problems)}",
        )
    return ValidationCheck(
        name="single_root",
        severity="pass",
        message=f"{len(graph.schools)} school(s) each have a single root",
    )


def check_full_reachability(graph: SpellGraph) -> ValidationCheck:
    """Verify the simulator unlocks every node of every school."""
    problems: list[str] = []
    for name in graph.schools:
        missing = unreachable_ids(graph, name)
        if missing:
            problems.append(f"{name}: {_preview(missing)}")

    if problems:
        return ValidationCheck(
            name="full_reachability",
            severity="fail",
            message=f"Unreachable spells: {'; '.join(problems)}",
        )
    return ValidationCheck(
        name="full_reachability",
        severity="pass",
        message=f"All {len(graph.nodes)} spells are reachable",
    )


def check_edge_consistency(graph: SpellGraph) -> ValidationCheck:
    """Verify the edge list mirrors every child and prerequisite list."""
    violations = [v for v in graph.validate_invariants() if "itself" not in v]
    if violations:
        return ValidationCheck(
            name="edge_consistency",
            severity="fail",
            message=f"{len(violations)} inconsistency(ies), first: {violations[0]}",
        )
    return ValidationCheck(
        name="edge_consistency",
        severity="pass",
        message=f"{len(graph.edges)} edges consistent with node lists",
    )


def check_no_self_loops(graph: SpellGraph) -> ValidationCheck:
    """Verify no node lists itself as child or prerequisite."""
    looping = [
        n.id for n in graph.nodes.values() if n.id in n.prerequisites or n.id in n.children
    ]
    looping.extend(e.from_id for e in graph.edges if e.from_id == e.to_id)
    if looping:
        return ValidationCheck(
            name="no_self_loops",
            severity="fail",
            message=f"Self-referencing spells: {_preview(sorted(set(looping)))}",
        )
    return ValidationCheck(name="no_self_loops", severity="pass", message="No self loops")


def check_acyclic(graph: SpellGraph) -> ValidationCheck:
    """Verify the prerequisite relation has no cycles."""
    cyclic = find_cycle_nodes(graph)
    if cyclic:
        return ValidationCheck(
            name="acyclic",
            severity="fail",
            message=f"Spells on prerequisite cycles: {_preview(cyclic)}",
        )
    return ValidationCheck(name="acyclic", severity="pass", message="No prerequisite cycles")


def run_tree_checks(graph: SpellGraph) -> ValidationReport:
    """Run every structural check and aggregate the results."""
    return ValidationReport(
        checks=[
            check_single_root(graph),
            check_full_reachability(graph),
            check_edge_consistency(graph),
            check_no_self_loops(graph),
            check_acyclic(graph),
        ]
    )
