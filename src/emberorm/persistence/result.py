"""
Run status and the result object handed back to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from ..errors import RunStateError
from .commands import Command


class RunStatus(str, Enum):
    COLLECTING = "collecting"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMMITTED, RunStatus.ROLLED_BACK, RunStatus.ABORTED)


@dataclass
class RunResult:
    """
    Outcome of one unit of work run.

    ``entities`` lists every entity the run registered, in registration
    order; ``commands`` the executed (or planned, on failure) commands.
    ``hook_error`` holds a failure raised by an ``after_*`` hook once the
    data was committed; it does not affect ``ok`` or ``raise_for_error()``.
    """

    status: RunStatus
    entities: List[Any] = field(default_factory=list)
    commands: List[Command] = field(default_factory=list)
    error: Optional[BaseException] = None
    hook_error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMMITTED and self.error is None

    def raise_for_error(self) -> "RunResult":
        if self.error is not None:
            raise self.error
        if self.status is not RunStatus.COMMITTED:
            raise RunStateError(f"Run ended in state '{self.status.value}'")
        return self

    def __bool__(self) -> bool:
        return self.ok
