"""
Hook dispatcher coordinating lifecycle events.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


HookHandler = Callable[..., None]


@dataclass(frozen=True)
class HookEvent:
    name: str


BEFORE_SAVE = HookEvent("before_save")
AFTER_SAVE = HookEvent("after_save")
BEFORE_DELETE = HookEvent("before_delete")
AFTER_DELETE = HookEvent("after_delete")
AFTER_COMMIT = HookEvent("after_commit")
AFTER_ROLLBACK = HookEvent("after_rollback")

EVENTS = frozenset(
    event.name for event in (BEFORE_SAVE, AFTER_SAVE, BEFORE_DELETE, AFTER_DELETE, AFTER_COMMIT, AFTER_ROLLBACK)
)


class HookDispatcher:
    """
    Maintains global and per-role hook handlers for one session.

    Handlers are called as ``handler(entity, **context)``; run level events
    (``after_commit``, ``after_rollback``) pass ``None`` as the entity.
    """

    def __init__(self) -> None:
        self._global_handlers: Dict[str, List[HookHandler]] = defaultdict(list)
        self._role_handlers: Dict[str, Dict[str, List[HookHandler]]] = defaultdict(lambda: defaultdict(list))

    def register(self, event: str | HookEvent, handler: HookHandler, *, role: Optional[str] = None) -> None:
        name = event.name if isinstance(event, HookEvent) else event
        if name not in EVENTS:
            raise ValueError(f"Unknown hook event '{name}'")
        if role:
            self._role_handlers[role][name].append(handler)
        else:
            self._global_handlers[name].append(handler)

    def fire(self, event: str | HookEvent, entity: Any, *, role: Optional[str] = None, **context: Any) -> None:
        name = event.name if isinstance(event, HookEvent) else event
        handlers = list(self._global_handlers.get(name, []))
        if role:
            handlers.extend(self._role_handlers.get(role, {}).get(name, []))
        for handler in handlers:
            handler(entity, **context)

    def clear(self) -> None:
        self._global_handlers.clear()
        self._role_handlers.clear()
