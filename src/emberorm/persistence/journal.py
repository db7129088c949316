"""
Undo log of entity field writes performed while a run is in flight.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Tuple

from ..core.mapper import Mapper


class Journal:
    """
    Records the previous value of every field the engine writes into an
    entity (resolved foreign keys, generated keys, nullified references) so a
    failed run can restore the caller's objects.
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[Any, Mapper, Dict[str, Any]]] = []

    def write(self, entity: Any, mapper: Mapper, changes: Mapping[str, Any]) -> None:
        current = mapper.extract(entity)
        previous = {name: current.get(name) for name in changes}
        self._entries.append((entity, mapper, previous))
        mapper.hydrate(entity, changes)

    def undo(self) -> None:
        while self._entries:
            entity, mapper, previous = self._entries.pop()
            mapper.hydrate(entity, previous)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
