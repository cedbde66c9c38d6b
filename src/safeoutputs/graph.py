"""Dependency ordering for a batch of safe-output messages.

Message ``i`` depends on message ``j`` when ``i`` references a temporary ID
that ``j`` creates, so ``j`` must run first. For an acyclic batch a single
pass in topological order resolves every same-batch reference.

Ordering is deterministic: nodes are visited in ascending index order and,
among messages that become ready at the same time, the earlier one in the
original batch runs first. With no dependencies the original order is kept.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .logging import get_logger
from .references import extract_temporary_id_references, get_created_temporary_id

Dependencies = Mapping[int, frozenset[int]]


@dataclass(frozen=True)
class DuplicateTemporaryId:
    temporary_id: str
    first_index: int
    duplicate_index: int


@dataclass(frozen=True)
class DependencyGraph:
    dependencies: Dependencies
    providers: Mapping[str, int]
    duplicates: tuple[DuplicateTemporaryId, ...] = ()

    @property
    def dependent_count(self) -> int:
        return sum(1 for deps in self.dependencies.values() if deps)


@dataclass(frozen=True)
class ExecutionPlan:
    order: list[int]
    graph: DependencyGraph
    cycle: list[int] = field(default_factory=list)

    @property
    def reordered(self) -> bool:
        return any(idx != pos for pos, idx in enumerate(self.order))


def build_dependency_graph(messages: Sequence[Any]) -> DependencyGraph:
    providers: dict[str, int] = {}
    duplicates: list[DuplicateTemporaryId] = []
    logger = get_logger()

    for index, message in enumerate(messages):
        created = get_created_temporary_id(message)
        if created is None:
            continue
        if created in providers:
            first = providers[created]
            duplicates.append(DuplicateTemporaryId(created, first, index))
            logger.warning(
                f"Duplicate temporary_id '{created}' at message indices {first} and {index}. "
                "Only the first occurrence will be used.",
                temporary_id=created,
            )
            continue
        providers[created] = index

    dependencies: dict[int, frozenset[int]] = {}
    for index, message in enumerate(messages):
        deps: set[int] = set()
        for temp_id in extract_temporary_id_references(message):
            provider = providers.get(temp_id)
            # Unknown providers may come from an earlier run's map.
            if provider is not None and provider != index:
                deps.add(provider)
        dependencies[index] = frozenset(deps)

    return DependencyGraph(
        dependencies=dependencies, providers=providers, duplicates=tuple(duplicates)
    )


def detect_cycle(dependencies: Mapping[int, frozenset[int] | set[int]]) -> list[int]:
    """Return the indices forming the first cycle found, or ``[]``.

    Depth-first search over nodes in ascending order with edges in ascending
    order; the cycle is the part of the current path starting at the node
    that was re-entered.
    """
    visited: set[int] = set()
    on_path: set[int] = set()

    for start in sorted(dependencies):
        if start in visited:
            continue
        path: list[int] = [start]
        visited.add(start)
        on_path.add(start)
        iterators = [iter(sorted(dependencies.get(start, ())))]
        while iterators:
            try:
                nxt = next(iterators[-1])
            except StopIteration:
                iterators.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                return path[path.index(nxt):]
            if nxt in visited:
                continue
            visited.add(nxt)
            on_path.add(nxt)
            path.append(nxt)
            iterators.append(iter(sorted(dependencies.get(nxt, ()))))
    return []


def topological_sort(
    messages: Sequence[Any], dependencies: Mapping[int, frozenset[int] | set[int]]
) -> list[int]:
    """Kahn's algorithm; stable with respect to the original index order."""
    count = len(messages)
    in_degree: dict[int, int] = {}
    dependents: dict[int, list[int]] = {i: [] for i in range(count)}
    for i in range(count):
        deps = dependencies.get(i, frozenset())
        in_degree[i] = len(deps)
        for dep in deps:
            dependents.setdefault(dep, []).append(i)

    queue: deque[int] = deque(i for i in range(count) if in_degree[i] == 0)
    ordered: list[int] = []
    while queue:
        node = queue.popleft()
        ordered.append(node)
        for other in sorted(dependents.get(node, ())):
            in_degree[other] -= 1
            if in_degree[other] == 0:
                queue.append(other)

    if len(ordered) < count:
        placed = set(ordered)
        unsorted = [i for i in range(count) if i not in placed]
        get_logger().warning(
            f"Topological sort incomplete: {len(ordered)}/{count} messages sorted. "
            f"Messages {', '.join(str(i) for i in unsorted)} may be part of a dependency cycle.",
        )
    return ordered


def _describe(messages: Sequence[Any], index: int) -> str:
    message = messages[index]
    type_name = message.get("type") if isinstance(message, Mapping) else None
    created = get_created_temporary_id(message)
    suffix = f", creates {created}" if created else ""
    return f"{index} ({type_name}{suffix})"


def plan_execution_order(messages: Sequence[Any]) -> ExecutionPlan:
    logger = get_logger()
    graph = build_dependency_graph(messages)
    logger.info(
        f"Dependency analysis: {len(graph.providers)} message(s) create temporary IDs, "
        f"{graph.dependent_count} message(s) have dependencies",
        operation="dependency_analysis",
    )

    original = list(range(len(messages)))
    cycle = detect_cycle(graph.dependencies)
    if cycle:
        chain = " -> ".join(_describe(messages, i) for i in cycle)
        logger.warning(
            f"Dependency cycle detected in safe output messages: {chain}. "
            "Temporary IDs may not resolve correctly. "
            "Messages will be processed in original order.",
            operation="dependency_cycle",
            cycle=cycle,
        )
        return ExecutionPlan(order=original, graph=graph, cycle=cycle)

    order = topological_sort(messages, graph.dependencies)
    if len(order) < len(messages):
        # Defense in depth; detect_cycle should already have caught this.
        return ExecutionPlan(order=original, graph=graph)
    plan = ExecutionPlan(order=order, graph=graph)
    if plan.reordered:
        logger.info(
            f"Topological sort reordered {len(messages)} message(s) to resolve temporary ID "
            f"dependencies. New order: [{', '.join(str(i) for i in order)}]",
            operation="reorder",
        )
    elif order:
        logger.info(
            "Topological sort: Messages already in optimal order (no reordering needed)",
            operation="reorder",
        )
    return plan


def sort_safe_output_messages(messages: Sequence[Any]) -> list[Any]:
    if not messages:
        return list(messages)
    plan = plan_execution_order(messages)
    return [messages[i] for i in plan.order]


__all__ = [
    "DependencyGraph",
    "DuplicateTemporaryId",
    "ExecutionPlan",
    "build_dependency_graph",
    "detect_cycle",
    "plan_execution_order",
    "sort_safe_output_messages",
    "topological_sort",
]
