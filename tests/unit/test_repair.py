"""Tests for the cycle / unreachability repairer."""

from __future__ import annotations

import pytest

from spelltree.graph import repair as repair_module
from spelltree.graph.algorithms import find_cycle_nodes, simulate_unlocks, unreachable_ids
from spelltree.graph.orphans import refresh_depths
from spelltree.graph.repair import (
    MAX_REPAIR_PASSES,
    find_reconnect_parent,
    find_replacement,
    repair_school,
)
from tests.fixtures.tree_fixtures import (
    build_graph,
    document,
    make_healthy_tree,
    make_mixed_block_tree,
    make_root_cycle_tree,
    make_two_cycle_tree,
    node,
    school,
)


def _protected_cycle_tree() -> dict:
    """X and Y each need the root and each other; Y also has a tier-1 option A."""
    return document(
        Mysticism=school(
            "R",
            [
                node("R", 0, [], ["A", "X", "Y"]),
                node("A", 1, ["R"]),
                node("X", 1, ["Y", "R"], ["Y"]),
                node("Y", 2, ["X", "R"], ["X"]),
            ],
        )
    )


class TestRepairNoop:
    """Repair on already valid schools."""

    def test_healthy_school_untouched(self) -> None:
        """A fully reachable school needs zero fixes."""
        graph = build_graph(make_healthy_tree())
        before = graph.to_dict()

        summary = repair_school(graph, "Destruction")

        assert summary.fixes == 0
        assert summary.passes == 0
        assert summary.unreachable_before == []
        assert summary.fully_reachable
        assert graph.to_dict() == before


class TestRepairCycles:
    """Repair of cycles cut off from the root."""

    def test_destruction_two_cycle_without_orphan_pass(self) -> None:
        """B <-> C is fully cut off, so both are reconnected to a reachable parent."""
        graph = build_graph(make_two_cycle_tree())

        summary = repair_school(graph, "Destruction")

        assert summary.unreachable_before == ["B", "C"]
        assert summary.fixes >= 1
        assert summary.fully_reachable
        assert set(graph.nodes["B"].prerequisites) <= {"R", "A"}
        assert set(graph.nodes["C"].prerequisites) <= {"R", "A"}
        assert find_cycle_nodes(graph) == []
        assert graph.validate_invariants() == []

    def test_reconnect_prefers_same_tier_low_fanout(self) -> None:
        """All-unobtainable nodes attach to the best tier match (A, tier 1)."""
        graph = build_graph(make_two_cycle_tree())

        summary = repair_school(graph, "Destruction")

        assert graph.nodes["B"].prerequisites == ["A"]
        assert graph.nodes["C"].prerequisites == ["A"]
        assert [a.kind for a in summary.actions] == ["reconnected", "reconnected"]
        assert summary.actions[0].removed == ["C"]

    def test_destruction_after_orphan_pass(self) -> None:
        """After orphan reattachment B and C are mixed; repair replaces the cycle link."""
        graph = build_graph(make_two_cycle_tree())
        refresh_depths(graph, "Destruction")

        summary = repair_school(graph, "Destruction")

        assert summary.unreachable_before == ["B", "C"]
        assert summary.fixes == 2
        assert summary.fully_reachable
        assert graph.nodes["B"].prerequisites == ["A", "R"]
        assert graph.nodes["C"].prerequisites == ["A", "R"]
        assert {a.kind for a in summary.actions} == {"prerequisite_replaced"}

    def test_root_in_cycle_is_normalized(self) -> None:
        """A -> B -> C -> A with A as root: the root's prerequisite is stripped."""
        graph = build_graph(make_root_cycle_tree())

        summary = repair_school(graph, "Alteration")

        assert graph.nodes["A"].prerequisites == []
        assert summary.actions[0].kind == "root_prerequisite_removed"
        assert summary.actions[0].removed == ["C"]
        assert summary.fixes == 1
        assert summary.unreachable_before == []
        assert unreachable_ids(graph, "Alteration") == []
        assert find_cycle_nodes(graph) == []

    def test_three_cycle_with_separate_root(self) -> None:
        """A three-node cycle beside the root terminates fully reachable."""
        doc = document(
            Alteration=school(
                "R",
                [
                    node("R"),
                    node("A", 1, ["C"]),
                    node("B", 1, ["A"]),
                    node("C", 1, ["B"]),
                ],
            )
        )
        graph = build_graph(doc)

        summary = repair_school(graph, "Alteration")

        assert summary.fully_reachable
        assert summary.passes <= MAX_REPAIR_PASSES
        assert find_cycle_nodes(graph) == []

    def test_dangling_prerequisite_replaced(self) -> None:
        """A prerequisite on an unknown id counts as unobtainable."""
        doc = document(
            Alteration=school("R", [node("R"), node("A", 1, ["ghost"])])
        )
        graph = build_graph(doc)

        summary = repair_school(graph, "Alteration")

        assert summary.fully_reachable
        assert graph.nodes["A"].prerequisites == ["R"]


class TestMixedPrerequisites:
    """Mixed obtainable / unobtainable prerequisite handling."""

    def test_mixed_replaced_or_dropped(self) -> None:
        """Unobtainable links are replaced by a lower-tier node or dropped."""
        graph = build_graph(make_mixed_block_tree())

        summary = repair_school(graph, "Conjuration")

        assert summary.fully_reachable
        assert graph.nodes["X"].prerequisites == ["R"]
        assert graph.nodes["Y"].prerequisites == ["A"]
        assert graph.nodes["M"].prerequisites == ["A", "R"]
        kinds = [(a.kind, a.node_id) for a in summary.actions]
        assert kinds == [
            ("prerequisite_dropped", "X"),
            ("reconnected", "Y"),
            ("prerequisite_replaced", "M"),
        ]
        assert summary.fixes == 3

    def test_preserve_keeps_multi_prerequisites(self) -> None:
        """With preservation, M keeps both authored prerequisites."""
        graph = build_graph(make_mixed_block_tree())

        summary = repair_school(graph, "Conjuration", preserve_multi_prereqs=True)

        assert summary.fully_reachable
        assert graph.nodes["M"].prerequisites == ["A", "X"]
        assert graph.nodes["X"].prerequisites == ["Y", "R"]
        assert graph.nodes["Y"].prerequisites == ["A"]
        assert summary.fixes == 1

    def test_preserve_falls_back_to_forced_release(self) -> None:
        """A preserved mutual block is still released so nothing stays locked."""
        graph = build_graph(_protected_cycle_tree())

        summary = repair_school(graph, "Mysticism", preserve_multi_prereqs=True)

        kinds = [a.kind for a in summary.actions]
        assert "gentle_fix" in kinds
        assert "forced_release" in kinds
        assert summary.fully_reachable
        assert graph.nodes["X"].prerequisites == ["R"]
        assert graph.nodes["Y"].prerequisites == ["R", "A"]
        assert graph.validate_invariants() == []

    def test_without_preserve_no_forced_release(self) -> None:
        """The iterative phase alone resolves the same tree."""
        graph = build_graph(_protected_cycle_tree())

        summary = repair_school(graph, "Mysticism")

        assert summary.fully_reachable
        assert "forced_release" not in {a.kind for a in summary.actions}


class TestScoring:
    """Tests for the replacement and reconnect scoring."""

    def test_replacement_prefers_one_tier_below(self) -> None:
        """Tier distance 1 beats distance 2 at equal fan-out."""
        doc = document(
            Alteration=school(
                "R",
                [
                    node("R", 0),
                    node("T1", 1, ["R"]),
                    node("T2", 2, ["T1"]),
                    node("N", 3, ["ghost"]),
                ],
            )
        )
        graph = build_graph(doc)
        unlocked = simulate_unlocks(graph, "Alteration")

        assert find_replacement(graph, graph.nodes["N"], unlocked) == "T2"

    def test_replacement_penalizes_children(self) -> None:
        """A heavily used parent loses to a less used one of the same tier."""
        doc = document(
            Alteration=school(
                "R",
                [
                    node("R", 0),
                    node("busy", 1, ["R"], ["c1", "c2", "c3"]),
                    node("quiet", 1, ["R"]),
                    node("c1", 2),
                    node("c2", 2),
                    node("c3", 2),
                    node("N", 2, ["ghost"]),
                ],
            )
        )
        graph = build_graph(doc)
        unlocked = simulate_unlocks(graph, "Alteration")

        assert find_replacement(graph, graph.nodes["N"], unlocked) == "quiet"

    def test_ties_go_to_first_seen(self) -> None:
        """Equal scores keep the first unlocked candidate."""
        doc = document(
            Alteration=school(
                "R",
                [node("R", 0), node("P", 1, ["R"]), node("Q", 1, ["R"]), node("N", 2, ["ghost"])],
            )
        )
        graph = build_graph(doc)
        unlocked = simulate_unlocks(graph, "Alteration")

        assert find_replacement(graph, graph.nodes["N"], unlocked) == "P"

    def test_replacement_requires_strictly_lower_tier(self) -> None:
        """Same-tier nodes are never replacements."""
        doc = document(
            Alteration=school("R", [node("R", 1), node("N", 1, ["ghost"])])
        )
        graph = build_graph(doc)
        unlocked = simulate_unlocks(graph, "Alteration")

        assert find_replacement(graph, graph.nodes["N"], unlocked) is None
        assert find_reconnect_parent(graph, graph.nodes["N"], unlocked) == "R"

    def test_bonus_tables_are_tunable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Changing the bonus table changes which parent wins."""
        doc = document(
            Alteration=school(
                "R",
                [
                    node("R", 0),
                    node("T1", 1, ["R"]),
                    node("T2", 2, ["T1"]),
                    node("N", 3, ["ghost"]),
                ],
            )
        )
        graph = build_graph(doc)
        unlocked = simulate_unlocks(graph, "Alteration")
        monkeypatch.setattr(repair_module, "REPLACEMENT_TIER_BONUS", {1: 0, 2: 50})

        assert find_replacement(graph, graph.nodes["N"], unlocked) == "T1"


class TestTermination:
    """Repair terminates on adversarial input."""

    def test_all_nodes_in_one_cycle_with_self_loops(self) -> None:
        """A dense cycle with self references ends fully reachable."""
        doc = document(
            Chaos=school(
                "a",
                [
                    node("a", 0, ["e", "a"]),
                    node("b", 1, ["a", "e", "b"]),
                    node("c", 1, ["b", "d"]),
                    node("d", 2, ["c"]),
                    node("e", 2, ["d", "c"]),
                ],
            )
        )
        graph = build_graph(doc)

        summary = repair_school(graph, "Chaos")

        assert summary.fully_reachable
        assert summary.passes <= MAX_REPAIR_PASSES
        assert find_cycle_nodes(graph) == []
        assert graph.validate_invariants() == []
