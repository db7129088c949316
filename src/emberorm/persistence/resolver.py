"""
Relation resolver: expands registrations along cascades and derives the
dependency edges between nodes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..core.reference import Resolved, Unresolved, is_loaded, related_entities, unwrap
from ..errors import UnscheduledDependency
from ..schema.provider import RoleSchema
from ..schema.relations import RelationDescriptor
from ..utils import get_logger
from .graph import DependencyGraph, Edge, Entry, Intent, PivotChange
from .journal import Journal
from .node import Node, Status

if TYPE_CHECKING:
    from .session import Session


Request = Tuple[Any, Intent, bool]


class RelationResolver:
    """
    Walks relation descriptors of registered nodes.

    During collection it yields further registrations implied by cascade
    policies; during planning it builds the :class:`DependencyGraph` and
    breaks cycles among owning edges by deferring nullable foreign keys.
    """

    def __init__(self, session: "Session", journal: Optional[Journal] = None) -> None:
        self.session = session
        self.journal = journal if journal is not None else Journal()
        self.heap = session.heap
        self.schema = session.schema
        self.logger = get_logger("persistence.resolver")

    # Collection ------------------------------------------------------------
    def expand(self, entry: Entry) -> Iterator[Request]:
        if not entry.cascade:
            return
        node = entry.node
        role_schema = self.schema.describe(node.role)
        entity = node.require_entity()
        values = role_schema.mapper.extract(entity)

        if entry.intent is Intent.PERSIST:
            for relation in role_schema.relations:
                value = values.get(relation.name)
                if not relation.cascade.persists or not is_loaded(value):
                    continue
                for related in related_entities(value):
                    yield related, Intent.PERSIST, True
            return

        if node.status is Status.NEW:
            return
        for relation in role_schema.relations:
            if not relation.kind.referenced:
                continue
            if not (relation.cascade.deletes or relation.cascade.nullifies):
                continue
            children = self._materialize(entity, role_schema, relation, values.get(relation.name))
            for child in children:
                if relation.cascade.deletes:
                    yield child, Intent.DELETE, True
                elif self._is_managed(child):
                    self._nullify(child, relation, entity)
                    yield child, Intent.PERSIST, False

    def _materialize(self, entity: Any, role_schema: RoleSchema, relation: RelationDescriptor, value: Any) -> List[Any]:
        if isinstance(value, Unresolved):
            self.logger.debug("Loading %s.%s for delete propagation", role_schema.role, relation.name)
            value = self.session.resolve(value)
            self.journal.write(entity, role_schema.mapper, {relation.name: value})
        return related_entities(value)

    def _is_managed(self, entity: Any) -> bool:
        # Unsaved children have no row to update.
        node = self.heap.get(entity)
        return node is not None and node.status is Status.MANAGED

    def _nullify(self, child: Any, relation: RelationDescriptor, parent: Any) -> None:
        child_schema = self.schema.describe(relation.target)
        child_values = child_schema.mapper.extract(child)
        changes: Dict[str, Any] = {relation.outer_key: None}
        for inverse in child_schema.relations:
            if not inverse.kind.owning or inverse.inner_key != relation.outer_key:
                continue
            current = child_values.get(inverse.name)
            if isinstance(current, Unresolved) or _points_to(current, parent):
                changes[inverse.name] = None
        self.journal.write(child, child_schema.mapper, changes)

    # Planning --------------------------------------------------------------
    def build_graph(self, entries: Sequence[Entry]) -> DependencyGraph:
        graph = DependencyGraph()
        index: Dict[Node, Entry] = {entry.node: entry for entry in entries}
        for entry in entries:
            entry.node.dependencies = []
            if entry.intent is not Intent.PERSIST:
                continue
            role_schema = self.schema.describe(entry.node.role)
            values = role_schema.mapper.extract(entry.node.require_entity())
            for relation in role_schema.relations:
                value = values.get(relation.name)
                if not is_loaded(value):
                    continue
                if relation.kind.owning:
                    self._owning(graph, entry, relation, value, index)
                elif relation.kind.referenced:
                    self._referenced(graph, entry, relation, value, index)
                else:
                    self._pivots(graph, entry, relation, value, index)
        for edge in graph.edges:
            if edge.parent not in edge.child.dependencies:
                edge.child.dependencies.append(edge.parent)
        return graph

    def _owning(
        self,
        graph: DependencyGraph,
        entry: Entry,
        relation: RelationDescriptor,
        value: Any,
        index: Dict[Node, Entry],
    ) -> None:
        related = unwrap(value)
        if related is None:
            return
        related_node, related_entry = self._lookup(entry, relation, related, index)
        if related_entry is not None and related_entry.inserts:
            graph.add_edge(
                Edge(related_node, entry.node, relation, relation.outer_key, relation.inner_key, relation.nullable)
            )
            return
        self._assign(entry.node, relation.inner_key, self._read(related_node, relation.outer_key))

    def _referenced(
        self,
        graph: DependencyGraph,
        entry: Entry,
        relation: RelationDescriptor,
        value: Any,
        index: Dict[Node, Entry],
    ) -> None:
        for child in related_entities(value):
            child_node = self.heap.get(child)
            child_entry = index.get(child_node) if child_node is not None else None
            if child_entry is None or child_entry.intent is not Intent.PERSIST:
                continue
            if entry.inserts:
                graph.add_edge(
                    Edge(entry.node, child_node, relation, relation.inner_key, relation.outer_key, relation.nullable)
                )
            else:
                self._assign(child_node, relation.outer_key, self._read(entry.node, relation.inner_key))

    def _pivots(
        self,
        graph: DependencyGraph,
        entry: Entry,
        relation: RelationDescriptor,
        value: Any,
        index: Dict[Node, Entry],
    ) -> None:
        node = entry.node
        snapshot = node.state.relations.get(relation.name, frozenset())
        current = set()
        for related in related_entities(value):
            related_node, related_entry = self._lookup(entry, relation, related, index)
            if related_entry is not None and related_entry.inserts:
                graph.pivots.append(PivotChange(node, relation, related_node, True))
                continue
            key = related_node.state.data.get(relation.outer_key)
            current.add(key)
            if key not in snapshot:
                graph.pivots.append(PivotChange(node, relation, related_node, True, key))
        for key in sorted(snapshot - current, key=repr):
            graph.pivots.append(PivotChange(node, relation, None, False, key))

    def _lookup(
        self,
        entry: Entry,
        relation: RelationDescriptor,
        related: Any,
        index: Dict[Node, Entry],
    ) -> Tuple[Node, Optional[Entry]]:
        """
        Find the node of an entity this one depends on, or fail when it can
        neither be read from the database nor will be written in this run.
        """
        related_node = self.heap.get(related)
        related_entry = index.get(related_node) if related_node is not None else None
        if related_entry is not None:
            if related_entry.intent is Intent.DELETE:
                raise UnscheduledDependency(entry.node.role, relation.name, relation.target)
            return related_node, related_entry
        if related_node is None or related_node.status is not Status.MANAGED:
            raise UnscheduledDependency(entry.node.role, relation.name, relation.target)
        return related_node, None

    def _read(self, node: Node, name: str) -> Any:
        role_schema = self.schema.describe(node.role)
        return role_schema.mapper.fetch_fields(node.require_entity()).get(name)

    def _assign(self, node: Node, name: str, value: Any) -> None:
        role_schema = self.schema.describe(node.role)
        entity = node.require_entity()
        if role_schema.mapper.fetch_fields(entity).get(name) != value:
            self.journal.write(entity, role_schema.mapper, {name: value})

    # Cycles ------------------------------------------------------------------
    def break_cycles(self, graph: DependencyGraph, entries: Sequence[Entry]) -> None:
        """
        Defer one nullable edge per cycle until the remaining graph is acyclic
        or only non-deferrable cycles are left; those are reported by the
        scheduler.
        """
        order = {entry.node: entry.index for entry in entries}
        nodes = [entry.node for entry in entries]

        def position(node: Node) -> int:
            return order.get(node, len(order))

        while True:
            progressed = False
            for component in graph.cyclic_components(nodes, position):
                members = frozenset(component)
                candidates = [
                    edge
                    for edge in graph.active_edges()
                    if edge.deferrable and edge.parent in members and edge.child in members
                ]
                if not candidates:
                    continue
                chosen = min(
                    candidates,
                    key=lambda edge: (position(edge.child), position(edge.parent), edge.relation.name),
                )
                self.logger.debug(
                    "Deferring %s.%s to break a cycle of %d node(s)",
                    chosen.child.role,
                    chosen.child_field,
                    len(members),
                )
                graph.defer(chosen, members)
                progressed = True
            if not progressed:
                return


def _points_to(value: Any, target: Any) -> bool:
    if isinstance(value, Resolved):
        value = value.value
    return value is target
