"""
Relation values that have not been loaded yet.

A relation field holds either a concrete value (an entity, a list of
entities or ``None``) or one of the two reference variants below. Loading
happens only through :meth:`emberorm.persistence.Session.resolve`; nothing is
fetched on attribute access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Unresolved:
    """
    Lookup key for a related entity or collection.

    ``scope`` holds field values of the target role that identify the related
    rows. Many-to-many references carry ``via`` instead: the pivot table, its
    column holding related keys and the target field those keys match; their
    ``scope`` then filters pivot rows.
    """

    role: str
    scope: Dict[str, Any] = field(default_factory=dict)
    many: bool = False
    via: Optional[Tuple[str, str, str]] = None


@dataclass(frozen=True)
class Resolved:
    """A materialized relation value."""

    value: Any


Reference = Union[Unresolved, Resolved]


def is_loaded(value: Any) -> bool:
    return not isinstance(value, Unresolved)


def unwrap(value: Any) -> Any:
    """
    Return the concrete value behind a relation field.
    """
    if isinstance(value, Resolved):
        return value.value
    if isinstance(value, Unresolved):
        raise ValueError(f"Reference to '{value.role}' is not resolved")
    return value


def related_entities(value: Any) -> List[Any]:
    """
    Flatten a loaded relation value into a list of entities.
    """
    value = unwrap(value)
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [item for item in value if item is not None]
    return [value]
