"""Tests for the dependency resolver."""

from dataclasses import dataclass, field

from ateam.orchestrator.dependencies import (
    compute_depths,
    final_review_ready,
    find_cycles,
    group_waves,
    resolve_dependencies,
    would_create_cycle,
)
from ateam.state import Stage


@dataclass
class Node:
    """Minimal item shape the resolver needs."""

    id: str
    stage: Stage = Stage.BRIEFINGS
    dependencies: list[str] = field(default_factory=list)


class TestFindCycles:
    """Tests for cycle detection."""

    def test_no_cycles(self):
        assert find_cycles({"WI-001": [], "WI-002": ["WI-001"]}) == []

    def test_mutual_dependency(self):
        """A -> B -> A is reported as a closed path."""
        cycles = find_cycles({"WI-001": ["WI-002"], "WI-002": ["WI-001"]})
        assert cycles == [["WI-001", "WI-002", "WI-001"]]

    def test_self_dependency(self):
        assert find_cycles({"WI-001": ["WI-001"]}) == [["WI-001", "WI-001"]]

    def test_unknown_ids_ignored(self):
        assert find_cycles({"WI-001": ["WI-404"]}) == []


class TestDepths:
    """Tests for depth and wave computation."""

    def test_chain(self):
        depths = compute_depths({"WI-001": [], "WI-002": ["WI-001"], "WI-003": ["WI-002"]})
        assert depths == {"WI-001": 0, "WI-002": 1, "WI-003": 2}

    def test_depth_uses_deepest_dependency(self):
        depths = compute_depths(
            {
                "WI-001": [],
                "WI-002": ["WI-001"],
                "WI-003": [],
                "WI-004": ["WI-002", "WI-003"],
            }
        )
        assert depths["WI-004"] == 2

    def test_cycle_and_downstream_undefined(self):
        """Items in a cycle and items depending on them get no depth."""
        depths = compute_depths(
            {
                "WI-001": ["WI-002"],
                "WI-002": ["WI-001"],
                "WI-003": ["WI-001"],
                "WI-004": [],
            }
        )
        assert depths == {"WI-004": 0}

    def test_missing_dependency_counts_as_none(self):
        assert compute_depths({"WI-002": ["WI-001"]}) == {"WI-002": 0}

    def test_group_waves_sorted(self):
        waves = group_waves({"WI-010": 1, "WI-002": 0, "WI-001": 0, "WI-003": 1})
        assert waves == {0: ["WI-001", "WI-002"], 1: ["WI-003", "WI-010"]}


class TestResolveDependencies:
    """Tests for the full report."""

    def test_ready_when_dependency_done(self):
        """B is ready once A is done."""
        report = resolve_dependencies(
            [Node("WI-001", Stage.DONE), Node("WI-002", Stage.BRIEFINGS, ["WI-001"])]
        )
        assert "WI-002" in report.ready_items

    def test_not_ready_while_dependency_in_flight(self):
        """B is not ready while A is still testing."""
        report = resolve_dependencies(
            [Node("WI-001", Stage.TESTING), Node("WI-002", Stage.BRIEFINGS, ["WI-001"])]
        )
        assert "WI-002" not in report.ready_items
        assert "WI-002" in report.waiting_items

    def test_only_briefings_items_are_ready(self):
        report = resolve_dependencies([Node("WI-001", Stage.READY), Node("WI-002", Stage.BRIEFINGS)])
        assert report.ready_items == ["WI-002"]

    def test_cycle_reported_with_undefined_depths(self):
        report = resolve_dependencies(
            [Node("WI-001", dependencies=["WI-002"]), Node("WI-002", dependencies=["WI-001"])]
        )
        assert report.cycles
        assert not report.valid
        assert "WI-001" not in report.depths
        assert "WI-002" not in report.depths
        assert report.ready_items == []

    def test_waves_and_summary(self):
        report = resolve_dependencies(
            [
                Node("WI-001"),
                Node("WI-002"),
                Node("WI-003", dependencies=["WI-001"]),
                Node("WI-004", dependencies=["WI-003", "WI-002"]),
            ]
        )
        assert report.waves == {0: ["WI-001", "WI-002"], 1: ["WI-003"], 2: ["WI-004"]}
        assert report.max_depth == 2
        assert report.parallel_waves == 3

    def test_missing_dependencies_reported(self):
        report = resolve_dependencies([Node("WI-002", dependencies=["WI-001"])])
        assert report.missing_dependencies == {"WI-002": ["WI-001"]}
        assert report.depths == {"WI-002": 0}
        assert report.ready_items == []

    def test_deterministic(self):
        """Input order does not change the report."""
        nodes = [
            Node("WI-003", dependencies=["WI-001"]),
            Node("WI-001", Stage.DONE),
            Node("WI-002", dependencies=["WI-001"]),
        ]
        first = resolve_dependencies(nodes).to_dict()
        second = resolve_dependencies(list(reversed(nodes))).to_dict()
        assert first == second
        assert first["ready_items"] == ["WI-002", "WI-003"]

    def test_to_dict_uses_string_wave_keys(self):
        data = resolve_dependencies([Node("WI-001")]).to_dict()
        assert data["waves"] == {"0": ["WI-001"]}
        assert data["valid"] is True


class TestFinalReviewReady:
    """Tests for the final-review-ready signal."""

    def test_all_done(self):
        assert final_review_ready([Node("WI-001", Stage.DONE), Node("WI-002", Stage.DONE)])

    def test_one_item_active(self):
        assert not final_review_ready([Node("WI-001", Stage.DONE), Node("WI-002", Stage.REVIEW)])

    def test_blocked_item_prevents_review(self):
        assert not final_review_ready([Node("WI-001", Stage.DONE), Node("WI-002", Stage.BLOCKED)])

    def test_empty_board(self):
        assert not final_review_ready([])


class TestWouldCreateCycle:
    def test_detects_new_cycle(self):
        nodes = [Node("WI-001"), Node("WI-002", dependencies=["WI-001"])]
        assert would_create_cycle(nodes, "WI-001", ["WI-002"]) == ["WI-001", "WI-002", "WI-001"]

    def test_acyclic_change(self):
        nodes = [Node("WI-001"), Node("WI-002")]
        assert would_create_cycle(nodes, "WI-002", ["WI-001"]) is None
