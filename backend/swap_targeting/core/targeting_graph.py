"""Targeting Graph — adjacency view over active edges and bounded reachability.

Invariants:
    - All functions are PURE: built from an edge snapshot, never from a long-lived object
    - find_path visits each swap at most once (visited set); work is bounded by the
      number of active edges, never exponential
    - Iterative DFS: no recursion-depth limit regardless of chain length

Design Decisions:
    - Adjacency rebuilt per transaction from the store snapshot so the cycle check
      and the insert see the same data
    - Returns the path (not just a bool): the coordinator logs which chain would close
"""

from collections.abc import Iterable, Mapping
from uuid import UUID

Adjacency = Mapping[UUID, list[UUID]]


def build_adjacency(
    edges: Iterable[tuple[UUID, UUID]],
    exclude_source: UUID | None = None,
) -> dict[UUID, list[UUID]]:
    """Map source swap -> target swaps for the given (source, target) pairs.

    exclude_source drops that swap's outgoing edges (the edge being replaced
    during a retarget must not participate in the cycle check).
    """
    adjacency: dict[UUID, list[UUID]] = {}
    for source, target in edges:
        if source == exclude_source:
            continue
        adjacency.setdefault(source, []).append(target)
    return adjacency


def edge_count(adjacency: Adjacency) -> int:
    return sum(len(targets) for targets in adjacency.values())


def find_path(adjacency: Adjacency, start: UUID, goal: UUID) -> list[UUID] | None:
    """Return a chain of swaps start -> ... -> goal through active edges, or None."""
    if start == goal:
        return [start]

    budget = edge_count(adjacency)
    visited: set[UUID] = {start}
    parents: dict[UUID, UUID] = {}
    stack: list[UUID] = [start]
    steps = 0

    while stack and steps <= budget:
        node = stack.pop()
        for nxt in adjacency.get(node, ()):
            steps += 1
            if nxt in visited:
                continue
            parents[nxt] = node
            if nxt == goal:
                return _unwind(parents, start, goal)
            visited.add(nxt)
            stack.append(nxt)
    return None


def would_close_cycle(adjacency: Adjacency, source: UUID, target: UUID) -> bool:
    """Adding source -> target closes a cycle iff source is reachable from target."""
    return find_path(adjacency, target, source) is not None


def _unwind(parents: dict[UUID, UUID], start: UUID, goal: UUID) -> list[UUID]:
    path = [goal]
    while path[-1] != start:
        path.append(parents[path[-1]])
    path.reverse()
    return path
