"""
Error hierarchy shared by the persistence engine.
"""

from __future__ import annotations

from typing import Any


class ORMError(RuntimeError):
    """Base error for every failure raised by EmberORM."""


class SchemaError(ORMError):
    """Raised when schema declarations are inconsistent."""


class UnmappedEntity(ORMError):
    """Raised when an entity or role has no schema entry."""


class UnmappedField(UnmappedEntity, AttributeError):
    """Raised when an entity is accessed through a key its schema does not declare."""

    def __init__(self, role: str, field: str) -> None:
        super().__init__(f"Role '{role}' does not declare field '{field}'")
        self.role = role
        self.field = field


class UnscheduledDependency(ORMError):
    """
    Raised when a related entity must exist before the owner can be stored
    but it is neither persisted nor scheduled, and the cascade policy does not
    allow attaching it automatically.
    """

    def __init__(self, role: str, relation: str, target: str) -> None:
        super().__init__(
            f"Relation '{role}.{relation}' points to a new '{target}' entity that is not "
            "scheduled for persistence and does not cascade"
        )
        self.role = role
        self.relation = relation
        self.target = target


class DependencyCycle(ORMError):
    """Raised when commands form a cycle that cannot be broken by a deferred update."""

    def __init__(self, members: list[Any]) -> None:
        labels = ", ".join(str(member) for member in members)
        super().__init__(f"Irreducible dependency cycle between: {labels}")
        self.members = members


class ConcurrentModification(ORMError):
    """Raised when an entity is already claimed by another in-flight run."""


class StaleState(ORMError):
    """Raised when the tracked snapshot no longer describes the stored row."""


class RunStateError(ORMError):
    """Raised when a unit of work is used outside the state that allows the call."""


class RunAborted(ORMError):
    """Raised when a run is cancelled before it completes."""
