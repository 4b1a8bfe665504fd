"""Tests for the read-only graph algorithms."""

from __future__ import annotations

from spelltree.graph.algorithms import (
    descendants,
    find_cycle_nodes,
    has_path_to_root,
    is_descendant,
    simulate_unlocks,
    unreachable_ids,
    unreachable_report,
)
from tests.fixtures.tree_fixtures import (
    build_graph,
    document,
    make_healthy_tree,
    make_two_cycle_tree,
    node,
    school,
)


class TestSimulateUnlocks:
    """Tests for the AND-semantics reachability simulator."""

    def test_healthy_school_fully_unlocked(self) -> None:
        """Every node of a valid school unlocks, root first."""
        graph = build_graph(make_healthy_tree())

        unlocked = simulate_unlocks(graph, "Destruction")

        assert list(unlocked) == ["D0", "D1", "D2", "D3"]
        assert unlocked["D0"] == 0

    def test_and_semantics_requires_every_prerequisite(self) -> None:
        """A node with one locked prerequisite stays locked."""
        doc = document(
            Alteration=school(
                "r", [node("r"), node("a", 1, ["r"]), node("b", 1, ["r", "ghost"])]
            )
        )
        graph = build_graph(doc)

        unlocked = simulate_unlocks(graph, "Alteration")

        assert "a" in unlocked
        assert "b" not in unlocked

    def test_cycle_stays_locked(self) -> None:
        """Nodes on a cycle cut off from the root never unlock."""
        graph = build_graph(make_two_cycle_tree())

        assert unreachable_ids(graph, "Destruction") == ["B", "C"]

    def test_non_root_without_prerequisites_unlocks(self) -> None:
        """A prerequisite-free non-root node is treated like a root."""
        doc = document(Alteration=school("r", [node("r"), node("loose", 3)]))
        graph = build_graph(doc)

        assert "loose" in simulate_unlocks(graph, "Alteration")

    def test_cross_school_prerequisite_blocks(self) -> None:
        """Prerequisites in another school never count as unlocked."""
        doc = document(
            One=school("a", [node("a")]),
            Two=school("b", [node("b"), node("c", 1, ["a"])]),
        )
        graph = build_graph(doc)

        assert unreachable_ids(graph, "Two") == ["c"]

    def test_order_is_first_seen(self) -> None:
        """Later waves come after earlier ones regardless of school order."""
        doc = document(
            Alteration=school(
                "r", [node("c", 2, ["b"]), node("b", 1, ["r"]), node("r")]
            )
        )
        graph = build_graph(doc)

        unlocked = simulate_unlocks(graph, "Alteration")

        assert list(unlocked) == ["r", "b", "c"]

    def test_simulator_does_not_mutate(self) -> None:
        """Simulation leaves nodes and edges untouched."""
        graph = build_graph(make_two_cycle_tree())
        before = graph.to_dict()

        simulate_unlocks(graph, "Destruction")

        assert graph.to_dict() == before


class TestDescendants:
    """Tests for forward traversal over child lists."""

    def test_descendants_follow_children(self) -> None:
        """All transitive children are collected."""
        graph = build_graph(make_healthy_tree())

        assert descendants(graph, "D0") == {"D1", "D2", "D3"}
        assert descendants(graph, "D3") == set()

    def test_is_descendant(self) -> None:
        """is_descendant checks the candidate is below the ancestor."""
        graph = build_graph(make_healthy_tree())

        assert is_descendant(graph, "D3", "D0") is True
        assert is_descendant(graph, "D0", "D3") is False

    def test_descendants_terminate_on_cycle(self) -> None:
        """Traversal over a cycle stops and includes the start node."""
        graph = build_graph(make_two_cycle_tree())

        assert descendants(graph, "B") == {"B", "C"}


class TestHasPathToRoot:
    """Tests for the first-prerequisite walk."""

    def test_path_found(self) -> None:
        """A chain ending at a prerequisite-free node succeeds."""
        graph = build_graph(make_healthy_tree())

        assert has_path_to_root(graph, "D3") is True
        assert has_path_to_root(graph, "D0") is True

    def test_cycle_fails(self) -> None:
        """Revisiting a node fails."""
        graph = build_graph(make_two_cycle_tree())

        assert has_path_to_root(graph, "B") is False

    def test_dangling_fails(self) -> None:
        """A first prerequisite with no node fails."""
        doc = document(Alteration=school("r", [node("r"), node("a", 1, ["ghost", "r"])]))
        graph = build_graph(doc)

        assert has_path_to_root(graph, "a") is False


class TestFindCycleNodes:
    """Tests for the strongly-connected-component cycle sweep."""

    def test_acyclic_graph(self) -> None:
        """A DAG has no cycle nodes."""
        graph = build_graph(make_healthy_tree())

        assert find_cycle_nodes(graph) == []

    def test_two_cycle(self) -> None:
        """Both members of a 2-cycle are reported."""
        graph = build_graph(make_two_cycle_tree())

        assert find_cycle_nodes(graph) == ["B", "C"]

    def test_nodes_downstream_of_cycle_not_reported(self) -> None:
        """Only nodes on the cycle itself are reported."""
        doc = document(
            Alteration=school(
                "r",
                [
                    node("r"),
                    node("a", 1, ["r", "c"]),
                    node("b", 1, ["a"]),
                    node("c", 1, ["b"]),
                    node("tail", 2, ["c"]),
                ],
            )
        )
        graph = build_graph(doc)

        assert find_cycle_nodes(graph) == ["a", "b", "c"]


class TestUnreachableReport:
    """Tests for the per-school unreachable report."""

    def test_report_lists_blockers(self) -> None:
        """Each unreachable node lists its blocking prerequisites."""
        graph = build_graph(make_two_cycle_tree())

        report = unreachable_report(graph, "Destruction")

        assert report.valid is False
        assert (report.total, report.reachable) == (4, 2)
        assert [u.node_id for u in report.unreachable] == ["B", "C"]
        assert report.unreachable[0].blocking_prereqs == ["C"]
        assert report.unreachable[0].tier == 1

    def test_feedback_text(self) -> None:
        """Feedback names the school and each blocked spell."""
        graph = build_graph(make_two_cycle_tree())

        feedback = unreachable_report(graph, "Destruction").to_llm_feedback()

        assert "Unreachable Spells in Destruction" in feedback
        assert "`B` (tier 1) blocked by `C`" in feedback

    def test_valid_report_feedback(self) -> None:
        """A fully reachable school reports success."""
        graph = build_graph(make_healthy_tree())

        report = unreachable_report(graph, "Restoration")

        assert report.valid is True
        assert report.to_llm_feedback() == "All 3 spells in Restoration are obtainable."
