"""
Persistence engine: heap, nodes, relation resolver, command generator,
scheduler, unit of work and session.
"""

from .commands import Command, Delete, Insert, Link, Update
from .generator import CommandGenerator
from .graph import DependencyGraph, Edge, Entry, Intent, PivotChange
from .heap import Heap
from .journal import Journal
from .node import Node, State, Status
from .resolver import RelationResolver
from .result import RunResult, RunStatus
from .scheduler import Plan, Scheduler
from .session import Session
from .transaction import TransactionError, TransactionManager
from .unit_of_work import UnitOfWork

__all__ = [
    "Command",
    "CommandGenerator",
    "Delete",
    "DependencyGraph",
    "Edge",
    "Entry",
    "Heap",
    "Insert",
    "Intent",
    "Journal",
    "Link",
    "Node",
    "PivotChange",
    "Plan",
    "RelationResolver",
    "RunResult",
    "RunStatus",
    "Scheduler",
    "Session",
    "State",
    "Status",
    "TransactionError",
    "TransactionManager",
    "UnitOfWork",
    "Update",
]
