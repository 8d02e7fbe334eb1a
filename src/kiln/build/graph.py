"""Build graph — source items and the "depends-on" edges between them.

An edge ``page -> layout`` means the page must be rebuilt when the layout
changes.  The graph must stay acyclic: ``check_acyclic`` raises
``CycleError`` and the generation aborts; a cycle is never broken
silently.

Iteration is always in sorted node order so that traversal, cycle reports
and topological order are reproducible.
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING

from kiln._errors import CycleError

if TYPE_CHECKING:
    from kiln._types import ContentKind, NodeId

_WHITE, _GRAY, _BLACK = 0, 1, 2


class BuildGraph:
    """Dependency graph over source items.

    Thread Safety:
        Not locked.  Owned and mutated by the scheduler thread only.

    """

    __slots__ = ("_dependencies", "_dependents", "_kinds")

    def __init__(self) -> None:
        self._kinds: dict[NodeId, ContentKind] = {}
        self._dependencies: dict[NodeId, set[NodeId]] = defaultdict(set)
        self._dependents: dict[NodeId, set[NodeId]] = defaultdict(set)

    def __len__(self) -> int:
        return len(self._kinds)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._kinds

    @property
    def nodes(self) -> tuple[NodeId, ...]:
        return tuple(sorted(self._kinds))

    def kind(self, node_id: NodeId) -> ContentKind:
        return self._kinds[node_id]

    def add_node(self, node_id: NodeId, kind: ContentKind) -> None:
        self._kinds[node_id] = kind

    def remove_node(self, node_id: NodeId) -> None:
        """Remove a node and every edge touching it."""
        self._kinds.pop(node_id, None)
        for dep in self._dependencies.pop(node_id, set()):
            self._dependents[dep].discard(node_id)
        for dependent in self._dependents.pop(node_id, set()):
            self._dependencies[dependent].discard(node_id)

    def set_dependencies(self, node_id: NodeId, dependencies: Iterable[NodeId]) -> None:
        """Replace the outgoing edges of *node_id*.

        Targets that are not nodes of the graph are ignored.
        """
        new = {d for d in dependencies if d in self._kinds}
        old = self._dependencies.get(node_id, set())
        for dep in old - new:
            self._dependents[dep].discard(node_id)
        for dep in new - old:
            self._dependents[dep].add(node_id)
        self._dependencies[node_id] = new

    def dependencies(self, node_id: NodeId) -> frozenset[NodeId]:
        return frozenset(self._dependencies.get(node_id, ()))

    def dependents(self, node_id: NodeId) -> frozenset[NodeId]:
        return frozenset(self._dependents.get(node_id, ()))

    def descendants(self, node_ids: Iterable[NodeId]) -> set[NodeId]:
        """Every node that transitively depends on any of *node_ids*."""
        seen: set[NodeId] = set()
        stack = list(node_ids)
        while stack:
            for dependent in self._dependents.get(stack.pop(), ()):
                if dependent not in seen:
                    seen.add(dependent)
                    stack.append(dependent)
        return seen

    def dirty_closure(self, changed: Iterable[NodeId]) -> set[NodeId]:
        """*changed* plus everything downstream of it."""
        changed = {n for n in changed if n in self._kinds}
        return changed | self.descendants(changed)

    # ----- ordering -----

    def find_cycle(self) -> list[NodeId] | None:
        """Return the members of a dependency cycle, or None.

        Depth-first traversal with an explicit recursion stack; a node seen
        again while still on the stack closes a cycle.
        """
        color = dict.fromkeys(self._kinds, _WHITE)
        for start in sorted(self._kinds):
            if color[start] != _WHITE:
                continue
            path: list[NodeId] = [start]
            stack = [iter(sorted(self._dependencies.get(start, ())))]
            color[start] = _GRAY
            while stack:
                advanced = False
                for dep in stack[-1]:
                    if color[dep] == _GRAY:
                        return path[path.index(dep) :]
                    if color[dep] == _WHITE:
                        color[dep] = _GRAY
                        path.append(dep)
                        stack.append(iter(sorted(self._dependencies.get(dep, ()))))
                        advanced = True
                        break
                if not advanced:
                    color[path.pop()] = _BLACK
                    stack.pop()
        return None

    def check_acyclic(self) -> None:
        """Raise ``CycleError`` naming the cycle's members, if there is one."""
        cycle = self.find_cycle()
        if cycle is not None:
            raise CycleError(cycle)

    def topological_order(self, subset: Iterable[NodeId] | None = None) -> list[NodeId]:
        """Dependencies before dependents, ties broken by node id.

        Only edges inside *subset* (default: the whole graph) constrain the
        order.

        Raises:
            CycleError: If the subset contains a cycle.

        """
        members = set(self._kinds) if subset is None else {n for n in subset if n in self._kinds}
        pending = {n: len(self._dependencies.get(n, set()) & members) for n in members}
        ready = [n for n, count in pending.items() if count == 0]
        heapq.heapify(ready)
        order: list[NodeId] = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for dependent in self._dependents.get(node, ()):
                if dependent in pending:
                    pending[dependent] -= 1
                    if pending[dependent] == 0:
                        heapq.heappush(ready, dependent)
        if len(order) != len(members):
            stuck = sorted(n for n in members if pending[n] > 0)
            raise CycleError(stuck)
        return order

    def predecessors_within(self, node_id: NodeId, subset: set[NodeId]) -> set[NodeId]:
        return self._dependencies.get(node_id, set()) & subset
