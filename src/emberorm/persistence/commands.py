"""
Database commands produced by the generator and consumed by the runner.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .node import Node


@dataclass(frozen=True)
class Link:
    """
    A command value copied from another node right before execution.

    The runner reads ``field`` from the ``source`` node's entity, stores it in
    the command's ``clause`` (``"values"`` or ``"where"``) under ``column`` and,
    when ``write_back`` is set, assigns it to that field of the command's own
    entity.
    """

    column: str
    source: Node
    field: str
    clause: str = "values"
    write_back: Optional[str] = None


@dataclass(eq=False)
class Command:
    """
    One atomic database operation.

    ``fields`` maps the columns written by this command back to fields of the
    owning node so the runner can advance its pending snapshot.
    """

    table: str
    database: str = "default"
    node: Optional[Node] = None
    fields: Dict[str, str] = field(default_factory=dict)
    links: List[Link] = field(default_factory=list)
    depends_on: List["Command"] = field(default_factory=list)
    seq: Tuple[int, int] = (0, 0)
    pivot: Optional[Tuple[str, str]] = None
    expect_rows: bool = False

    def after(self, *commands: Optional["Command"]) -> "Command":
        for command in commands:
            if command is not None and command is not self and command not in self.depends_on:
                self.depends_on.append(command)
        return self

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def entity(self) -> Any:
        return self.node.entity if self.node is not None else None

    def describe(self) -> str:
        role = self.node.role if self.node is not None else self.table
        return f"{self.kind}({role})"

    def __repr__(self) -> str:
        return f"<{self.describe()} {self.table}>"


@dataclass(eq=False, repr=False)
class Insert(Command):
    values: Dict[str, Any] = field(default_factory=dict)
    returning: Optional[str] = None
    returning_field: Optional[str] = None


@dataclass(eq=False, repr=False)
class Update(Command):
    values: Dict[str, Any] = field(default_factory=dict)
    where: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False, repr=False)
class Delete(Command):
    where: Dict[str, Any] = field(default_factory=dict)
