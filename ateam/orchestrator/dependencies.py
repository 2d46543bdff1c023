"""
Dependency Resolver - dependency waves and readiness

Pure functions over a snapshot of work items. Nothing here touches the
store, so the same snapshot always yields the same report.

Graph model:
- An edge runs from each dependency to its dependent
- depth(item) = 0 without dependencies, else 1 + max(depth(dep))
- Items in a cycle, or depending on one, have no depth
- Dependencies on unknown ids are ignored and reported as missing
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from ateam.persistence.models import item_number
from ateam.state import ACTIVE_STAGES, Stage


class GraphItem(Protocol):
    """Anything with an id, a stage and a dependency list (WorkItem fits)."""

    id: str
    stage: Stage
    dependencies: list[str]


@dataclass
class DependencyReport:
    """Result of resolving the dependency graph of a board snapshot."""

    cycles: list[list[str]] = field(default_factory=list)
    depths: dict[str, int] = field(default_factory=dict)
    waves: dict[int, list[str]] = field(default_factory=dict)
    ready_items: list[str] = field(default_factory=list)
    waiting_items: list[str] = field(default_factory=list)
    missing_dependencies: dict[str, list[str]] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        """False when the graph has a cycle and nothing should be scheduled."""
        return not self.cycles

    @property
    def max_depth(self) -> int:
        return max(self.waves, default=0)

    @property
    def parallel_waves(self) -> int:
        return len(self.waves)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "cycles": [list(c) for c in self.cycles],
            "depths": dict(self.depths),
            "waves": {str(depth): list(ids) for depth, ids in self.waves.items()},
            "max_depth": self.max_depth,
            "parallel_waves": self.parallel_waves,
            "ready_items": list(self.ready_items),
            "waiting_items": list(self.waiting_items),
            "missing_dependencies": {k: list(v) for k, v in self.missing_dependencies.items()},
        }


def _sort_key(item_id: str) -> tuple[int, str]:
    number = item_number(item_id)
    return (number if number is not None else -1, item_id)


def find_cycles(graph: Mapping[str, list[str]]) -> list[list[str]]:
    """
    Find dependency cycles with a depth-first search.

    Args:
        graph: item id -> ids it depends on (unknown ids are skipped)

    Returns:
        Each cycle as a path closed by its first id, e.g. [A, B, A]
    """
    visited: set[str] = set()
    on_path: set[str] = set()
    path: list[str] = []
    cycles: list[list[str]] = []

    def visit(node: str) -> None:
        visited.add(node)
        on_path.add(node)
        path.append(node)

        for dep in graph.get(node, []):
            if dep not in graph:
                continue
            if dep in on_path:
                start = path.index(dep)
                cycles.append(path[start:] + [dep])
            elif dep not in visited:
                visit(dep)

        path.pop()
        on_path.discard(node)

    for node in sorted(graph, key=_sort_key):
        if node not in visited:
            visit(node)

    return cycles


def compute_depths(graph: Mapping[str, list[str]]) -> dict[str, int]:
    """
    Compute the dependency depth of every item whose depth is defined.

    Items inside a cycle, or downstream of one, are left out.
    """
    depths: dict[str, int] = {}
    state: dict[str, str] = {}  # "visiting" | "done" | "undefined"

    def depth_of(node: str) -> int | None:
        status = state.get(node)
        if status == "done":
            return depths[node]
        if status in ("visiting", "undefined"):
            # Back edge: node sits on a cycle
            return None

        state[node] = "visiting"
        best = -1
        defined = True
        for dep in graph.get(node, []):
            if dep not in graph:
                continue
            dep_depth = depth_of(dep)
            if dep_depth is None:
                defined = False
                continue
            best = max(best, dep_depth)

        if not defined:
            state[node] = "undefined"
            return None

        state[node] = "done"
        depths[node] = best + 1
        return depths[node]

    for node in sorted(graph, key=_sort_key):
        depth_of(node)

    return depths


def group_waves(depths: Mapping[str, int]) -> dict[int, list[str]]:
    """Group item ids by depth; ids within a wave are sorted."""
    waves: dict[int, list[str]] = {}
    for item_id, depth in depths.items():
        waves.setdefault(depth, []).append(item_id)
    return {depth: sorted(ids, key=_sort_key) for depth, ids in sorted(waves.items())}


def resolve_dependencies(items: Iterable[GraphItem]) -> DependencyReport:
    """
    Resolve a snapshot of items into cycles, depths, waves and readiness.

    An item is ready when it sits in briefings and every one of its
    dependencies exists and is done. Cycles are reported, never raised.
    """
    snapshot = sorted(items, key=lambda i: _sort_key(i.id))
    graph = {item.id: list(item.dependencies) for item in snapshot}
    stages = {item.id: item.stage for item in snapshot}

    report = DependencyReport()
    report.cycles = find_cycles(graph)
    report.depths = compute_depths(graph)
    report.waves = group_waves(report.depths)

    for item in snapshot:
        missing = [dep for dep in item.dependencies if dep not in graph]
        if missing:
            report.missing_dependencies[item.id] = missing

        deps_done = all(stages.get(dep) == Stage.DONE for dep in item.dependencies)
        if item.stage == Stage.BRIEFINGS and deps_done:
            report.ready_items.append(item.id)
        elif item.stage != Stage.DONE and not deps_done:
            report.waiting_items.append(item.id)

    return report


def final_review_ready(items: Iterable[GraphItem]) -> bool:
    """
    True when the board is non-empty, every item is done and none is active.
    """
    snapshot = list(items)
    if not snapshot:
        return False
    return all(i.stage == Stage.DONE for i in snapshot) and not any(
        i.stage in ACTIVE_STAGES for i in snapshot
    )


def would_create_cycle(
    items: Iterable[GraphItem],
    item_id: str,
    dependencies: list[str],
) -> list[str] | None:
    """
    Check whether giving `item_id` these dependencies closes a cycle.

    Returns:
        The cycle path through item_id, or None
    """
    graph = {item.id: list(item.dependencies) for item in items}
    graph[item_id] = list(dependencies)
    for cycle in find_cycles(graph):
        if item_id in cycle:
            return cycle
    return None
