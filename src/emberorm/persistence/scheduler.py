"""
Dependency scheduler producing a deterministic execution plan.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from ..errors import DependencyCycle
from ..utils import get_logger
from .commands import Command
from .graph import Entry


@dataclass
class Plan:
    """
    Ordered commands of one run, the entries they were generated from and the
    database bindings the runner must open transactions on.
    """

    commands: List[Command] = field(default_factory=list)
    entries: List[Entry] = field(default_factory=list)
    databases: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.commands)

    def __iter__(self):
        return iter(self.commands)

    def describe(self) -> List[str]:
        return [command.describe() for command in self.commands]


class Scheduler:
    """
    Kahn topological sort over ``Command.depends_on``.

    Among ready commands the one with the smallest ``seq`` (registration
    index of its entity, then command ordinal) runs first, so identical
    registration sequences always yield identical plans.
    """

    def __init__(self) -> None:
        self.logger = get_logger("persistence.scheduler")

    def schedule(self, commands: Sequence[Command], entries: Sequence[Entry] = ()) -> Plan:
        position = {id(command): index for index, command in enumerate(commands)}
        pending: Dict[int, int] = {}
        dependents: Dict[int, List[Command]] = {id(command): [] for command in commands}
        for command in commands:
            requirements = {id(dep) for dep in command.depends_on if id(dep) in position}
            pending[id(command)] = len(requirements)
            for dep in command.depends_on:
                if id(dep) in position and command not in dependents[id(dep)]:
                    dependents[id(dep)].append(command)

        ready: List[Tuple[Tuple[int, int], int, Command]] = []
        for command in commands:
            if pending[id(command)] == 0:
                heapq.heappush(ready, (command.seq, position[id(command)], command))

        ordered: List[Command] = []
        while ready:
            _, _, command = heapq.heappop(ready)
            ordered.append(command)
            for dependent in dependents[id(command)]:
                pending[id(dependent)] -= 1
                if pending[id(dependent)] == 0:
                    heapq.heappush(ready, (dependent.seq, position[id(dependent)], dependent))

        if len(ordered) != len(commands):
            scheduled = {id(command) for command in ordered}
            leftover = [command.describe() for command in commands if id(command) not in scheduled]
            raise DependencyCycle(leftover)

        databases: List[str] = []
        for command in ordered:
            if command.database not in databases:
                databases.append(command.database)
        self.logger.debug("Scheduled %d command(s) over %d database(s)", len(ordered), len(databases))
        return Plan(ordered, list(entries), databases)
