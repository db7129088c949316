"""
Identity map ensuring a single tracked node per live entity.
"""

from __future__ import annotations

import itertools
from threading import RLock
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..errors import ConcurrentModification
from ..schema.provider import SchemaProvider
from .node import Node, State, Status


class Heap:
    """
    Stores nodes keyed by entity identity, with a secondary index keyed by
    (role, primary key) for entities whose row is known to exist.

    The heap never touches the database. Entities are referenced weakly:
    when one is garbage-collected its node is dropped.
    """

    def __init__(self, schema: SchemaProvider) -> None:
        self.schema = schema
        self._nodes: Dict[int, Node] = {}
        self._index: Dict[Tuple[str, Any], int] = {}
        self._index_keys: Dict[int, Tuple[str, Any]] = {}
        self._claims: Dict[int, object] = {}
        self._counter = itertools.count(1)
        self._lock = RLock()

    # Lookup ----------------------------------------------------------------
    def get(self, entity: Any) -> Optional[Node]:
        with self._lock:
            node = self._nodes.get(id(entity))
            if node is not None and node.entity is entity:
                return node
            return None

    def has(self, entity: Any) -> bool:
        return self.get(entity) is not None

    def __contains__(self, entity: Any) -> bool:
        return self.has(entity)

    def find(self, role: str, pk: Any) -> Any:
        """
        Return the tracked entity of ``role`` whose committed primary key is ``pk``.
        """
        with self._lock:
            ident = self._index.get((role, pk))
            if ident is None:
                return None
            node = self._nodes.get(ident)
            return node.entity if node is not None else None

    def nodes(self) -> List[Node]:
        with self._lock:
            return list(self._nodes.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes())

    # Registration ------------------------------------------------------------
    def attach(
        self,
        entity: Any,
        status: Status = Status.NEW,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Node:
        """
        Track ``entity``; attaching an already tracked entity returns its node.
        """
        with self._lock:
            existing = self.get(entity)
            if existing is not None:
                return existing
            role = self.schema.role_of(entity)
            self.schema.describe(role)
            ident = id(entity)
            stale = self._nodes.get(ident)
            if stale is not None:
                self._drop(stale)
            node = Node(
                role,
                entity,
                State(status, dict(data or {})),
                next(self._counter),
                on_collect=lambda ref, ident=ident: self._evict(ident, ref),
            )
            self._nodes[ident] = node
            if status is Status.MANAGED:
                self._index_node(node)
            return node

    def detach(self, entity: Any) -> None:
        with self._lock:
            node = self.get(entity)
            if node is None:
                return
            self._drop(node)

    def reindex(self, node: Node) -> None:
        """
        Refresh the primary key index after the node's snapshot changed.
        """
        with self._lock:
            self._unindex(node)
            if node.state.status is Status.MANAGED:
                self._index_node(node)

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()
            self._index.clear()
            self._index_keys.clear()
            self._claims.clear()

    # Run ownership ---------------------------------------------------------
    def claim(self, node: Node, owner: object) -> None:
        """
        Reserve ``node`` for one in-flight run.
        """
        with self._lock:
            current = self._claims.get(node.ident)
            if current is not None and current is not owner:
                raise ConcurrentModification(f"{node!r} is already scheduled by another run")
            self._claims[node.ident] = owner

    def release(self, node: Node, owner: object) -> None:
        with self._lock:
            if self._claims.get(node.ident) is owner:
                del self._claims[node.ident]

    def owner_of(self, node: Node) -> Optional[object]:
        with self._lock:
            return self._claims.get(node.ident)

    # Internals ---------------------------------------------------------------
    def _pk_of(self, node: Node) -> Any:
        primary_key = self.schema.describe(node.role).primary_key
        return node.state.data.get(primary_key)

    def _index_node(self, node: Node) -> None:
        pk = self._pk_of(node)
        if pk is not None:
            key = (node.role, pk)
            self._index[key] = node.ident
            self._index_keys[node.ident] = key

    def _unindex(self, node: Node) -> None:
        key = self._index_keys.pop(node.ident, None)
        if key is not None and self._index.get(key) == node.ident:
            del self._index[key]

    def _drop(self, node: Node) -> None:
        self._unindex(node)
        self._nodes.pop(node.ident, None)
        self._claims.pop(node.ident, None)

    def _evict(self, ident: int, ref: Any) -> None:
        with self._lock:
            node = self._nodes.get(ident)
            if node is not None and node.owns(ref):
                self._drop(node)
