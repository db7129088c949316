"""
Relation descriptors consumed by the relation resolver.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..utils.naming import foreign_key_name


class RelationKind(str, Enum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    MANY_TO_MANY = "many_to_many"

    @property
    def owning(self) -> bool:
        """The declaring role stores the foreign key."""
        return self is RelationKind.BELONGS_TO

    @property
    def referenced(self) -> bool:
        """The target role stores a foreign key back to the declaring role."""
        return self in (RelationKind.HAS_ONE, RelationKind.HAS_MANY)

    @property
    def many(self) -> bool:
        return self in (RelationKind.HAS_MANY, RelationKind.MANY_TO_MANY)


class Cascade(str, Enum):
    """
    Propagation policy of persist and delete requests along a relation.

    ``NULLIFY`` persists related entities like ``PERSIST`` and, when the
    declaring entity is deleted, clears the dependents' foreign key instead of
    deleting them.
    """

    NONE = "none"
    PERSIST = "persist"
    DELETE_ONLY = "delete_only"
    CASCADE = "cascade"
    NULLIFY = "nullify"

    @property
    def persists(self) -> bool:
        return self in (Cascade.PERSIST, Cascade.CASCADE, Cascade.NULLIFY)

    @property
    def deletes(self) -> bool:
        return self in (Cascade.DELETE_ONLY, Cascade.CASCADE)

    @property
    def nullifies(self) -> bool:
        return self is Cascade.NULLIFY


@dataclass(frozen=True)
class RelationDescriptor:
    """
    Immutable description of one relation declared on a role.

    ``inner_key`` is a field of the declaring role and ``outer_key`` a field of
    the target role. For ``BELONGS_TO`` the inner key is the foreign key; for
    ``HAS_ONE``/``HAS_MANY`` the outer key is. Many-to-many relations store
    pairs of keys in ``through`` using the ``through_inner_key`` and
    ``through_outer_key`` columns.
    """

    name: str
    kind: RelationKind
    target: str
    inner_key: str
    outer_key: str
    cascade: Cascade = Cascade.PERSIST
    nullable: bool = True
    through: Optional[str] = None
    through_inner_key: Optional[str] = None
    through_outer_key: Optional[str] = None

    @classmethod
    def belongs_to(
        cls, name: str, target: str, *, inner_key: Optional[str] = None, outer_key: str = "id", **kwargs
    ) -> "RelationDescriptor":
        inner_key = inner_key or foreign_key_name(target, outer_key)
        return cls(name, RelationKind.BELONGS_TO, target, inner_key, outer_key, **kwargs)

    @classmethod
    def has_one(cls, name: str, target: str, *, outer_key: str, inner_key: str = "id", **kwargs) -> "RelationDescriptor":
        return cls(name, RelationKind.HAS_ONE, target, inner_key, outer_key, **kwargs)

    @classmethod
    def has_many(cls, name: str, target: str, *, outer_key: str, inner_key: str = "id", **kwargs) -> "RelationDescriptor":
        return cls(name, RelationKind.HAS_MANY, target, inner_key, outer_key, **kwargs)

    @classmethod
    def many_to_many(
        cls,
        name: str,
        target: str,
        *,
        through: str,
        through_inner_key: str,
        through_outer_key: str,
        inner_key: str = "id",
        outer_key: str = "id",
        **kwargs,
    ) -> "RelationDescriptor":
        return cls(
            name,
            RelationKind.MANY_TO_MANY,
            target,
            inner_key,
            outer_key,
            through=through,
            through_inner_key=through_inner_key,
            through_outer_key=through_outer_key,
            **kwargs,
        )
