"""
Transaction manager spanning the database bindings touched by one run.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Dict, Generator, Iterable, List

from ..adapters.base import DatabaseAdapter, TransactionHandle
from ..errors import ORMError
from ..utils import get_logger


class TransactionError(ORMError):
    pass


class TransactionManager:
    """
    Opens one adapter transaction per database binding and commits or rolls
    them back together.

    A session shares one manager between its runs. ``transaction()`` holds
    ``lock`` for its whole block, so runs of one session execute one after
    another; planning and registration are not serialized.
    """

    def __init__(self, adapter_for: Callable[[str], DatabaseAdapter]) -> None:
        self.adapter_for = adapter_for
        self.lock = threading.RLock()
        self._handles: Dict[str, TransactionHandle] = {}
        self.logger = get_logger("persistence.transaction")

    @property
    def active(self) -> bool:
        with self.lock:
            return bool(self._handles)

    @property
    def databases(self) -> List[str]:
        with self.lock:
            return list(self._handles)

    def handle(self, database: str) -> TransactionHandle:
        with self.lock:
            try:
                return self._handles[database]
            except KeyError:
                raise TransactionError(f"No open transaction for database '{database}'.") from None

    def begin(self, databases: Iterable[str]) -> Dict[str, TransactionHandle]:
        with self.lock:
            if self._handles:
                raise TransactionError("A transaction is already active for this session.")
            try:
                for database in databases:
                    if database not in self._handles:
                        self._handles[database] = self.adapter_for(database).begin()
            except Exception:
                self.rollback()
                raise
            return dict(self._handles)

    def commit(self) -> None:
        with self.lock:
            if not self._handles:
                raise TransactionError("No active transaction to commit.")
            pending = list(self._handles.items())
            committed = 0
            try:
                for database, handle in pending:
                    self.adapter_for(database).commit(handle)
                    committed += 1
            except Exception:
                if committed:
                    self.logger.error(
                        "Commit failed after %d of %d database(s) committed", committed, len(pending)
                    )
                for database, handle in pending[committed + 1 :]:
                    self._rollback_one(database, handle)
                raise
            finally:
                self._handles.clear()

    def rollback(self) -> None:
        with self.lock:
            handles = list(self._handles.items())
            self._handles.clear()
            for database, handle in reversed(handles):
                self._rollback_one(database, handle)

    def _rollback_one(self, database: str, handle: TransactionHandle) -> None:
        if not handle.active:
            return
        try:
            self.adapter_for(database).rollback(handle)
        except Exception:
            # The failure that triggered the rollback is re-raised by the caller.
            self.logger.exception("Rollback failed for database '%s'", database)

    @contextmanager
    def transaction(self, databases: Iterable[str]) -> Generator[Dict[str, TransactionHandle], None, None]:
        with self.lock:
            handles = self.begin(databases)
            try:
                yield handles
            except BaseException:
                self.rollback()
                raise
            else:
                self.commit()
