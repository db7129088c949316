"""
Working-set entries and the dependency graph built during planning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Sequence, Set, Tuple

from ..schema.relations import RelationDescriptor
from .node import Node, Status


class Intent(str, Enum):
    PERSIST = "persist"
    DELETE = "delete"


@dataclass(eq=False)
class Entry:
    """
    One entity registered with a unit of work.
    """

    node: Node
    intent: Intent
    index: int
    cascade: bool

    @property
    def inserts(self) -> bool:
        return self.intent is Intent.PERSIST and self.node.status is Status.NEW


@dataclass(frozen=True)
class Edge:
    """
    ``parent`` must be inserted before ``child`` can store ``child_field``,
    which receives the value of the parent's ``parent_field``.
    """

    parent: Node
    child: Node
    relation: RelationDescriptor
    parent_field: str
    child_field: str
    deferrable: bool


@dataclass(frozen=True)
class PivotChange:
    """
    A row to add to or remove from a many-to-many pivot table.

    ``key`` is the committed outer key of the related entity, or ``None`` when
    the related entity is inserted in the same run.
    """

    owner: Node
    relation: RelationDescriptor
    related: Optional[Node]
    added: bool
    key: Any = None


@dataclass
class DependencyGraph:
    edges: List[Edge] = field(default_factory=list)
    pivots: List[PivotChange] = field(default_factory=list)
    deferred: List[Tuple[Edge, FrozenSet[Node]]] = field(default_factory=list)
    _seen: Set[Tuple[int, int, str]] = field(default_factory=set, repr=False)
    _deferred_edges: Set[Edge] = field(default_factory=set, repr=False)

    def add_edge(self, edge: Edge) -> None:
        marker = (id(edge.parent), id(edge.child), edge.child_field)
        if marker in self._seen:
            return
        self._seen.add(marker)
        self.edges.append(edge)

    def defer(self, edge: Edge, members: FrozenSet[Node]) -> None:
        self._deferred_edges.add(edge)
        self.deferred.append((edge, members))

    def is_deferred(self, edge: Edge) -> bool:
        return edge in self._deferred_edges

    def active_edges(self) -> Iterator[Edge]:
        return (edge for edge in self.edges if edge not in self._deferred_edges)

    def incoming(self, node: Node) -> List[Edge]:
        return [edge for edge in self.edges if edge.child is node]

    def cyclic_components(self, nodes: Sequence[Node], order: Callable[[Node], int]) -> List[List[Node]]:
        """
        Strongly connected components that contain a cycle, over active edges.

        Iterative Tarjan so long dependency chains do not hit the recursion limit.
        """
        adjacency: Dict[Node, List[Node]] = {node: [] for node in nodes}
        self_loops: Set[Node] = set()
        for edge in self.active_edges():
            adjacency.setdefault(edge.parent, []).append(edge.child)
            adjacency.setdefault(edge.child, [])
            if edge.parent is edge.child:
                self_loops.add(edge.parent)

        index: Dict[Node, int] = {}
        low: Dict[Node, int] = {}
        stack: List[Node] = []
        on_stack: Set[Node] = set()
        counter = 0
        components: List[List[Node]] = []

        for root in adjacency:
            if root in index:
                continue
            index[root] = low[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            work = [(root, iter(adjacency[root]))]
            while work:
                current, children = work[-1]
                descended = False
                for child in children:
                    if child not in index:
                        index[child] = low[child] = counter
                        counter += 1
                        stack.append(child)
                        on_stack.add(child)
                        work.append((child, iter(adjacency[child])))
                        descended = True
                        break
                    if child in on_stack:
                        low[current] = min(low[current], index[child])
                if descended:
                    continue
                work.pop()
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[current])
                if low[current] == index[current]:
                    component: List[Node] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member is current:
                            break
                    if len(component) > 1 or current in self_loops:
                        components.append(sorted(component, key=order))

        components.sort(key=lambda component: order(component[0]))
        return components
