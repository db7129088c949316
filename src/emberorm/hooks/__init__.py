"""
Lifecycle hooks for EmberORM sessions.
"""

from .dispatcher import (
    AFTER_COMMIT,
    AFTER_DELETE,
    AFTER_ROLLBACK,
    AFTER_SAVE,
    BEFORE_DELETE,
    BEFORE_SAVE,
    EVENTS,
    HookDispatcher,
    HookEvent,
)

__all__ = [
    "AFTER_COMMIT",
    "AFTER_DELETE",
    "AFTER_ROLLBACK",
    "AFTER_SAVE",
    "BEFORE_DELETE",
    "BEFORE_SAVE",
    "EVENTS",
    "HookDispatcher",
    "HookEvent",
]
