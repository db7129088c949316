"""
Command generator: turns registered nodes into Insert/Update/Delete commands.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..errors import StaleState
from ..schema.provider import RoleSchema
from ..utils import get_logger
from .commands import Command, Delete, Insert, Link, Update
from .graph import DependencyGraph, Edge, Entry, Intent, PivotChange
from .node import Node, Status

if TYPE_CHECKING:
    from ..schema.provider import SchemaProvider


DEFERRED_ORDINAL = 10_000


class CommandGenerator:
    """
    Diffs every entry against its snapshot and emits the commands needed to
    bring the database in line, wired with their dependencies.

    Returns the commands in generation order together with the primary
    command of each node (its Insert, Update or Delete).
    """

    def __init__(self, schema: "SchemaProvider") -> None:
        self.schema = schema
        self.logger = get_logger("persistence.generator")

    def generate(
        self, entries: Sequence[Entry], graph: DependencyGraph
    ) -> Tuple[List[Command], Dict[Node, Command]]:
        commands: List[Command] = []
        primary: Dict[Node, Command] = {}
        cleanups: Dict[Any, List[Command]] = {}
        deletes: List[Entry] = []

        for entry in entries:
            node = entry.node
            role_schema = self.schema.describe(node.role)
            if entry.intent is Intent.DELETE:
                if node.status is Status.NEW:
                    continue
                command = self._delete(entry, role_schema, commands, cleanups)
                deletes.append(entry)
            elif node.status is Status.NEW:
                command = self._insert(entry, role_schema, graph)
            else:
                command = self._update(entry, role_schema, graph)
            if command is None:
                continue
            primary[node] = command
            commands.append(command)

        for command in commands:
            for link in command.links:
                if link.source is not command.node:
                    command.after(primary.get(link.source))

        for entry in deletes:
            command = primary[entry.node]
            command.after(*cleanups.get(entry.node, ()))
            command.after(*cleanups.get(entry.node.role, ()))
            for dependent in self._dependents_of(entry, entries):
                command.after(primary.get(dependent))

        commands.extend(self._deferred(graph, entries, primary))
        commands.extend(self._pivots(graph, entries, primary))
        return commands, primary

    # Node commands -----------------------------------------------------------
    def _insert(self, entry: Entry, role_schema: RoleSchema, graph: DependencyGraph) -> Insert:
        node = entry.node
        current = role_schema.mapper.fetch_fields(node.require_entity())
        values: Dict[str, Any] = {}
        fields: Dict[str, str] = {}
        returning: Optional[str] = None
        returning_field: Optional[str] = None
        for name, value in current.items():
            column = role_schema.column(name)
            if name == role_schema.primary_key and role_schema.generated and value is None:
                returning, returning_field = column, name
                continue
            values[column] = value
            fields[column] = name
        links = self._incoming_links(node, role_schema, graph, values, fields)
        return Insert(
            role_schema.table,
            database=role_schema.database,
            node=node,
            fields=fields,
            links=links,
            seq=(entry.index, 0),
            values=values,
            returning=returning,
            returning_field=returning_field,
        )

    def _update(self, entry: Entry, role_schema: RoleSchema, graph: DependencyGraph) -> Optional[Update]:
        node = entry.node
        current = role_schema.mapper.fetch_fields(node.require_entity())
        snapshot = node.state.data
        pk = role_schema.primary_key
        if pk in snapshot and current.get(pk) != snapshot[pk]:
            raise StaleState(
                f"Primary key of {node!r} changed from {snapshot[pk]!r} to {current.get(pk)!r}"
            )
        values: Dict[str, Any] = {}
        fields: Dict[str, str] = {}
        for name, value in current.items():
            if name == pk or (name in snapshot and snapshot[name] == value):
                continue
            column = role_schema.column(name)
            values[column] = value
            fields[column] = name
        links = self._incoming_links(node, role_schema, graph, values, fields)
        if not values:
            return None
        return Update(
            role_schema.table,
            database=role_schema.database,
            node=node,
            fields=fields,
            links=links,
            seq=(entry.index, 0),
            values=values,
            where={role_schema.pk_column: snapshot.get(pk)},
            expect_rows=True,
        )

    def _delete(
        self,
        entry: Entry,
        role_schema: RoleSchema,
        commands: List[Command],
        cleanups: Dict[Any, List[Command]],
    ) -> Delete:
        """
        Delete keyed by the committed primary key. Pivot rows of the entity's
        many-to-many relations are removed first; ``cleanups`` collects those
        commands per node and per target role.
        """
        node = entry.node
        snapshot = node.state.data
        ordinal = 0
        for relation in role_schema.relations:
            if relation.kind.owning or relation.kind.referenced:
                continue
            ordinal += 1
            cleanup = Delete(
                relation.through,
                database=role_schema.database,
                node=node,
                seq=(entry.index, ordinal),
                pivot=(relation.name, relation.through_outer_key),
                where={relation.through_inner_key: snapshot.get(relation.inner_key)},
            )
            commands.append(cleanup)
            cleanups.setdefault(node, []).append(cleanup)
            cleanups.setdefault(relation.target, []).append(cleanup)
        return Delete(
            role_schema.table,
            database=role_schema.database,
            node=node,
            seq=(entry.index, 0),
            where={role_schema.pk_column: snapshot.get(role_schema.primary_key)},
            expect_rows=True,
        )

    def _incoming_links(
        self,
        node: Node,
        role_schema: RoleSchema,
        graph: DependencyGraph,
        values: Dict[str, Any],
        fields: Dict[str, str],
    ) -> List[Link]:
        """
        Foreign keys filled in from parents inserted earlier in the run.

        Deferred edges keep the column null; the deferred update sets it.
        """
        links: List[Link] = []
        for edge in graph.incoming(node):
            column = role_schema.column(edge.child_field)
            values[column] = None
            fields[column] = edge.child_field
            if graph.is_deferred(edge):
                continue
            links.append(Link(column, edge.parent, edge.parent_field, write_back=edge.child_field))
        return links

    # Ordering ----------------------------------------------------------------
    def _dependents_of(self, entry: Entry, entries: Sequence[Entry]) -> List[Node]:
        """
        Nodes whose committed row references the row deleted by ``entry``.
        """
        parent = entry.node
        parent_schema = self.schema.describe(parent.role)
        found: List[Node] = []
        for other in entries:
            child = other.node
            if child is parent or child.status is Status.NEW:
                continue
            if self._references(child, parent, parent_schema):
                found.append(child)
        return found

    def _references(self, child: Node, parent: Node, parent_schema: RoleSchema) -> bool:
        for relation in parent_schema.relations:
            if relation.kind.referenced and relation.target == child.role:
                key = parent.state.data.get(relation.inner_key)
                if key is not None and child.state.data.get(relation.outer_key) == key:
                    return True
        for relation in self.schema.describe(child.role).relations:
            if relation.kind.owning and relation.target == parent.role:
                key = child.state.data.get(relation.inner_key)
                if key is not None and parent.state.data.get(relation.outer_key) == key:
                    return True
        return False

    # Auxiliary commands ------------------------------------------------------
    def _deferred(
        self, graph: DependencyGraph, entries: Sequence[Entry], primary: Dict[Node, Command]
    ) -> List[Command]:
        order = {entry.node: entry.index for entry in entries}
        commands: List[Command] = []
        for offset, (edge, members) in enumerate(graph.deferred):
            commands.append(self._deferred_update(edge, members, order, primary, offset))
        return commands

    def _deferred_update(
        self,
        edge: Edge,
        members: FrozenSet[Node],
        order: Dict[Node, int],
        primary: Dict[Node, Command],
        offset: int,
    ) -> Update:
        child = edge.child
        role_schema = self.schema.describe(child.role)
        column = role_schema.column(edge.child_field)
        command = Update(
            role_schema.table,
            database=role_schema.database,
            node=child,
            fields={column: edge.child_field},
            links=[
                Link(column, edge.parent, edge.parent_field, write_back=edge.child_field),
                Link(role_schema.pk_column, child, role_schema.primary_key, clause="where"),
            ],
            seq=(order.get(child, len(order)), DEFERRED_ORDINAL + offset),
            values={column: None},
            where={role_schema.pk_column: None},
            expect_rows=True,
        )
        command.after(*(primary.get(member) for member in sorted(members, key=lambda node: order.get(node, 0))))
        self.logger.debug("Deferred update of %s.%s", child.role, edge.child_field)
        return command

    def _pivots(
        self, graph: DependencyGraph, entries: Sequence[Entry], primary: Dict[Node, Command]
    ) -> List[Command]:
        order = {entry.node: entry.index for entry in entries}
        ordinals: Dict[Node, int] = {}
        commands: List[Command] = []
        for change in graph.pivots:
            owner = change.owner
            ordinal = ordinals.get(owner, 0) + 1
            ordinals[owner] = ordinal
            commands.append(self._pivot(change, order.get(owner, len(order)), ordinal, primary))
        return commands

    def _pivot(self, change: PivotChange, index: int, ordinal: int, primary: Dict[Node, Command]) -> Command:
        owner = change.owner
        relation = change.relation
        role_schema = self.schema.describe(owner.role)
        inner = relation.through_inner_key
        outer = relation.through_outer_key
        seq = (index, ordinal)
        if not change.added:
            return Delete(
                relation.through,
                database=role_schema.database,
                node=owner,
                seq=seq,
                pivot=(relation.name, outer),
                where={inner: owner.state.data.get(relation.inner_key), outer: change.key},
            ).after(primary.get(owner))

        links = [Link(inner, owner, relation.inner_key)]
        if change.related is not None and change.key is None:
            links.append(Link(outer, change.related, relation.outer_key))
        command = Insert(
            relation.through,
            database=role_schema.database,
            node=owner,
            links=links,
            seq=seq,
            pivot=(relation.name, outer),
            values={inner: None, outer: change.key},
        )
        return command.after(primary.get(owner), primary.get(change.related) if change.related is not None else None)
