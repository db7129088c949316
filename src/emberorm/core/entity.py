"""
Field-map entity container with a fixed, schema-derived key set.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from ..errors import UnmappedField


class Entity:
    """
    Generic entity for roles that are not bound to a Python class.

    Only the keys supplied at construction (the role's columns and relations)
    can be read or written; anything else raises :class:`UnmappedField`.
    Entities compare and hash by identity so the heap can track them.
    """

    __slots__ = ("_role", "_keys", "_values", "__weakref__")

    def __init__(self, role: str, keys: Iterable[str], values: Optional[Mapping[str, Any]] = None) -> None:
        object.__setattr__(self, "_role", role)
        object.__setattr__(self, "_keys", tuple(keys))
        object.__setattr__(self, "_values", {})
        for name, value in (values or {}).items():
            self[name] = value

    @property
    def role(self) -> str:
        return self._role

    def keys(self) -> Tuple[str, ...]:
        return self._keys

    # Access --------------------------------------------------------------
    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value

    def __getitem__(self, name: str) -> Any:
        if name not in self._keys:
            raise UnmappedField(self._role, name)
        return self._values.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self._keys:
            raise UnmappedField(self._role, name)
        self._values[name] = value

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self._keys:
            return default
        return self._values.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {name: self._values.get(name) for name in self._keys}

    def __repr__(self) -> str:
        field_parts = ", ".join(
            f"{name}={self._values[name]!r}" for name in self._keys if name in self._values
        )
        return f"<Entity {self._role} {field_parts}>"
