"""
Per-entity persistence bookkeeping: status tags, snapshots and nodes.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional


class Status(str, Enum):
    NEW = "new"
    MANAGED = "managed"
    DELETED = "deleted"
    SCHEDULED_INSERT = "scheduled_insert"
    SCHEDULED_UPDATE = "scheduled_update"
    SCHEDULED_DELETE = "scheduled_delete"

    @property
    def scheduled(self) -> bool:
        return self in (Status.SCHEDULED_INSERT, Status.SCHEDULED_UPDATE, Status.SCHEDULED_DELETE)


@dataclass
class State:
    """
    Last committed snapshot of one entity.

    ``data`` maps field names to the values stored in the row; ``relations``
    maps many-to-many relation names to the primary keys present in the pivot
    table.
    """

    status: Status = Status.NEW
    data: Dict[str, Any] = field(default_factory=dict)
    relations: Dict[str, FrozenSet[Any]] = field(default_factory=dict)

    def copy(self) -> "State":
        return State(self.status, dict(self.data), dict(self.relations))


class Node:
    """
    Tracks one entity: its role, state, dependencies and a weak link back to
    the instance.
    """

    def __init__(
        self,
        role: str,
        entity: Any,
        state: State,
        order: int,
        on_collect: Optional[Callable[["weakref.ref[Any]"], None]] = None,
    ) -> None:
        self.role = role
        self.state = state
        self.order = order
        self.dependencies: List["Node"] = []
        self.ident = id(entity)
        try:
            self._ref: Callable[[], Any] = weakref.ref(entity, on_collect)
        except TypeError:
            # Instances without __weakref__ support are held strongly.
            self._ref = lambda entity=entity: entity

    @property
    def entity(self) -> Any:
        return self._ref()

    def require_entity(self) -> Any:
        entity = self._ref()
        if entity is None:
            raise ReferenceError(f"Entity tracked by {self!r} was garbage-collected")
        return entity

    def owns(self, ref: Any) -> bool:
        return self._ref is ref

    @property
    def status(self) -> Status:
        return self.state.status

    def __repr__(self) -> str:
        return f"<Node {self.role}#{self.order} {self.state.status.value}>"
