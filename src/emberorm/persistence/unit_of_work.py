"""
Unit of Work implementation batching persistence operations.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional

from ..adapters.base import ExecutionResult, TransactionHandle
from ..errors import RunAborted, RunStateError, StaleState
from ..utils import get_logger, set_correlation_id, time_call
from .commands import Command, Delete, Insert
from .generator import CommandGenerator
from .graph import Entry, Intent
from .journal import Journal
from .node import Node, State, Status
from .resolver import RelationResolver, Request
from .result import RunResult, RunStatus
from .scheduler import Plan, Scheduler

if TYPE_CHECKING:
    from .session import Session


class UnitOfWork:
    """
    Collects persist/delete requests, plans the commands they imply and
    executes them atomically.

    A unit of work runs once: ``COLLECTING -> PLANNING -> EXECUTING`` and then
    ``COMMITTED`` or ``ROLLED_BACK``; ``abort()`` ends it as ``ABORTED``
    before anything is written.
    """

    def __init__(self, session: "Session") -> None:
        self.session = session
        self.heap = session.heap
        self.schema = session.schema
        self.journal = Journal()
        self.resolver = RelationResolver(session, self.journal)
        self.generator = CommandGenerator(session.schema)
        self.scheduler = Scheduler()
        self.logger = get_logger("persistence.unit_of_work")
        self.status = RunStatus.COLLECTING
        self.error: Optional[BaseException] = None
        self.hook_error: Optional[BaseException] = None
        self.correlation_id: Optional[str] = None
        self._entries: List[Entry] = []
        self._by_node: Dict[Node, Entry] = {}
        self._entities: List[Any] = []
        self._plan: Optional[Plan] = None
        self._backups: Dict[Node, State] = {}
        self._pending: Dict[Node, State] = {}
        self._cancelled = threading.Event()

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            if not self.status.terminal and self.status is not RunStatus.EXECUTING:
                self.abort()
            return False
        if not self.status.terminal:
            self.run_or_raise()
        return False

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def persist(self, entity: Any, cascade: bool = True) -> "UnitOfWork":
        self._require(RunStatus.COLLECTING)
        self._register((entity, Intent.PERSIST, cascade))
        return self

    def delete(self, entity: Any, cascade: bool = True) -> "UnitOfWork":
        self._require(RunStatus.COLLECTING)
        self._register((entity, Intent.DELETE, cascade))
        return self

    @property
    def entries(self) -> List[Entry]:
        return list(self._entries)

    def _register(self, request: Request) -> None:
        queue: Deque[Request] = deque([request])
        try:
            while queue:
                entry = self._enqueue(*queue.popleft())
                if entry is not None:
                    queue.extend(self.resolver.expand(entry))
        except Exception as exc:
            self._abandon(exc)
            raise

    def _enqueue(self, entity: Any, intent: Intent, cascade: bool) -> Optional[Entry]:
        node = self.heap.attach(entity)
        self.heap.claim(node, self)
        existing = self._by_node.get(node)
        if existing is None:
            entry = Entry(node, intent, len(self._entries), cascade)
            self._entries.append(entry)
            self._by_node[node] = entry
            self._entities.append(entity)
            return entry
        if intent is Intent.DELETE and existing.intent is Intent.PERSIST:
            existing.intent = Intent.DELETE
            existing.cascade = cascade
            return existing
        if intent is existing.intent and cascade and not existing.cascade:
            existing.cascade = True
            return existing
        return None

    # ------------------------------------------------------------------ #
    # Planning
    # ------------------------------------------------------------------ #
    def plan(self) -> Plan:
        """
        Close the working set and compute the ordered command list.
        """
        if self._plan is not None and self.status is RunStatus.PLANNING:
            return self._plan
        self._require(RunStatus.COLLECTING)
        self.status = RunStatus.PLANNING
        try:
            self._fire_before_hooks()
            graph = self.resolver.build_graph(self._entries)
            self.resolver.break_cycles(graph, self._entries)
            commands, _ = self.generator.generate(self._entries, graph)
            plan = self.scheduler.schedule(commands, self._entries)
        except Exception as exc:
            self._abandon(exc)
            raise
        self._mark_scheduled()
        self._plan = plan
        self.logger.debug("Planned %d command(s) for %d entit(y/ies)", len(plan), len(self._entries))
        return plan

    def _fire_before_hooks(self) -> None:
        hooks = self.session.hooks
        for entry in self._entries:
            entity = entry.node.require_entity()
            if entry.intent is Intent.DELETE:
                hooks.fire("before_delete", entity, role=entry.node.role, session=self.session)
            else:
                created = entry.node.status is Status.NEW
                hooks.fire("before_save", entity, role=entry.node.role, session=self.session, created=created)

    def _mark_scheduled(self) -> None:
        for entry in self._entries:
            node = entry.node
            self._backups[node] = node.state.copy()
            self._pending[node] = node.state.copy()
            if entry.intent is Intent.DELETE:
                node.state.status = Status.SCHEDULED_DELETE
            elif node.state.status is Status.NEW:
                node.state.status = Status.SCHEDULED_INSERT
            else:
                node.state.status = Status.SCHEDULED_UPDATE

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #
    def run(self) -> RunResult:
        """
        Plan (if needed) and execute the run; failures are reported on the result.
        """
        if self.status.terminal or self.status is RunStatus.EXECUTING:
            raise RunStateError(f"Unit of work already {self.status.value}; runs are not resumable")
        self.correlation_id = set_correlation_id()
        try:
            plan = self.plan()
        except Exception as exc:
            return self._result(exc)

        self.status = RunStatus.EXECUTING
        try:
            if plan.commands:
                with time_call("unit_of_work.execute", self.logger, threshold_ms=1000):
                    with self.session.transactions.transaction(plan.databases) as handles:
                        for command in plan.commands:
                            if self._cancelled.is_set():
                                raise RunAborted("Run cancelled before completion")
                            self._execute(command, handles)
        except Exception as exc:
            self._rollback(exc)
            return self._result(exc)

        self._commit()
        try:
            self._fire_after_hooks()
        except Exception as exc:
            self.hook_error = exc
            self.logger.error("After-commit hook failed: %s", exc)
        return self._result(None)

    def run_or_raise(self) -> RunResult:
        return self.run().raise_for_error()

    def _execute(self, command: Command, handles: Dict[str, TransactionHandle]) -> None:
        adapter = self.session.adapter_for(command.database)
        self._bind(command)
        result = adapter.execute(handles[command.database], command)
        if command.expect_rows and result.affected_rows == 0:
            raise StaleState(f"{command.describe()} matched no row in '{command.table}'")
        self._apply(command, result)

    def _bind(self, command: Command) -> None:
        for link in command.links:
            source_schema = self.schema.describe(link.source.role)
            value = source_schema.mapper.fetch_fields(link.source.require_entity()).get(link.field)
            if value is None:
                raise StaleState(f"{link.source!r} has no value for '{link.field}' required by {command.describe()}")
            getattr(command, link.clause)[link.column] = value
            if link.write_back and command.node is not None:
                mapper = self.schema.describe(command.node.role).mapper
                self.journal.write(command.node.require_entity(), mapper, {link.write_back: value})

    def _apply(self, command: Command, result: ExecutionResult) -> None:
        node = command.node
        if node is None:
            return
        pending = self._pending[node]
        if command.pivot is not None:
            relation, column = command.pivot
            keys = set(pending.relations.get(relation, frozenset()))
            if isinstance(command, Insert):
                keys.add(command.values[column])
            elif column in command.where:
                keys.discard(command.where[column])
            else:
                keys.clear()
            pending.relations[relation] = frozenset(keys)
            return
        if isinstance(command, Delete):
            pending.status = Status.DELETED
            return
        for column, name in command.fields.items():
            pending.data[name] = command.values[column]
        if isinstance(command, Insert) and command.returning_field:
            key = result.generated_key
            if key is None:
                raise StaleState(f"{command.describe()} returned no generated key")
            mapper = self.schema.describe(node.role).mapper
            self.journal.write(node.require_entity(), mapper, {command.returning_field: key})
            pending.data[command.returning_field] = key
        pending.status = Status.MANAGED

    # ------------------------------------------------------------------ #
    # Terminal transitions
    # ------------------------------------------------------------------ #
    def _commit(self) -> None:
        for entry in self._entries:
            node = entry.node
            pending = self._pending[node]
            if entry.intent is Intent.DELETE:
                node.state = State(Status.DELETED, pending.data)
                self.heap.detach(node.entity)
            else:
                node.state = State(Status.MANAGED, pending.data, pending.relations)
                self.heap.reindex(node)
        self.journal.clear()
        self._release()
        self.status = RunStatus.COMMITTED
        self.logger.info(
            "Run committed: %d command(s), %d entit(y/ies)", len(self._plan or ()), len(self._entries)
        )

    def _fire_after_hooks(self) -> None:
        hooks = self.session.hooks
        for entry, entity in zip(self._entries, self._entities):
            if entry.intent is Intent.DELETE:
                hooks.fire("after_delete", entity, role=entry.node.role, session=self.session)
            else:
                created = self._backups[entry.node].status is Status.NEW
                hooks.fire("after_save", entity, role=entry.node.role, session=self.session, created=created)
        hooks.fire("after_commit", None, session=self.session, unit_of_work=self)

    def _rollback(self, exc: BaseException) -> None:
        self._restore()
        self.status = RunStatus.ROLLED_BACK
        self.error = exc
        self.logger.warning("Run rolled back: %s", exc)
        self.session.hooks.fire("after_rollback", None, session=self.session, unit_of_work=self, error=exc)

    def _abandon(self, exc: Optional[BaseException]) -> None:
        self._restore()
        self.status = RunStatus.ABORTED
        self.error = exc
        if exc is not None:
            self.logger.warning("Run aborted: %s", exc)

    def _restore(self) -> None:
        self.journal.undo()
        for node, state in self._backups.items():
            node.state = state
        self._release()

    def _release(self) -> None:
        for entry in self._entries:
            self.heap.release(entry.node, self)

    def abort(self) -> None:
        """
        Discard the run before execution; nothing has been written.
        """
        self._require(RunStatus.COLLECTING, RunStatus.PLANNING)
        self._abandon(None)

    def cancel(self) -> None:
        """
        Ask an executing run to stop; it rolls back before its next command.
        """
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------ #
    def _require(self, *allowed: RunStatus) -> None:
        if self.status not in allowed:
            names = ", ".join(status.value for status in allowed)
            raise RunStateError(f"Unit of work is {self.status.value}; expected {names}")

    def _result(self, error: Optional[BaseException]) -> RunResult:
        commands = list(self._plan.commands) if self._plan is not None else []
        return RunResult(self.status, list(self._entities), commands, error, self.hook_error)
