import pytest

from emberorm.adapters import AdapterTransactionError, TransactionHandle
from emberorm.persistence import TransactionError, TransactionManager


class RecordingAdapter:
    def __init__(self, name, log, fail_on=None):
        self.name = name
        self.log = log
        self.fail_on = fail_on

    def begin(self):
        self._maybe_fail("begin")
        self.log.append(("begin", self.name))
        return TransactionHandle(self.name)

    def commit(self, tx):
        self._maybe_fail("commit")
        tx.active = False
        self.log.append(("commit", self.name))

    def rollback(self, tx):
        tx.active = False
        self.log.append(("rollback", self.name))

    def _maybe_fail(self, step):
        if self.fail_on == step:
            raise AdapterTransactionError(f"{self.name} failed to {step}")


def make_manager(**failures):
    log = []
    adapters = {
        name: RecordingAdapter(name, log, failures.get(name)) for name in ("default", "audit", "archive")
    }
    return TransactionManager(adapters.__getitem__), log


def test_transaction_commits_every_database():
    manager, log = make_manager()
    with manager.transaction(["default", "audit"]) as handles:
        assert set(handles) == {"default", "audit"}
        assert manager.active
        assert manager.handle("audit").adapter == "audit"
    assert log == [("begin", "default"), ("begin", "audit"), ("commit", "default"), ("commit", "audit")]
    assert not manager.active


def test_errors_roll_back_in_reverse_order():
    manager, log = make_manager()
    with pytest.raises(RuntimeError):
        with manager.transaction(["default", "audit"]):
            raise RuntimeError("statement failed")
    assert log[-2:] == [("rollback", "audit"), ("rollback", "default")]
    assert not manager.active


def test_failed_begin_rolls_back_opened_transactions():
    manager, log = make_manager(audit="begin")
    with pytest.raises(AdapterTransactionError):
        manager.begin(["default", "audit"])
    assert log == [("begin", "default"), ("rollback", "default")]


def test_failed_commit_rolls_back_remaining_databases():
    manager, log = make_manager(audit="commit")
    manager.begin(["default", "audit", "archive"])
    with pytest.raises(AdapterTransactionError):
        manager.commit()
    assert ("commit", "default") in log
    assert ("rollback", "archive") in log
    assert ("rollback", "default") not in log
    assert not manager.active


def test_nested_begin_and_missing_handles_are_rejected():
    manager, _ = make_manager()
    manager.begin(["default"])
    with pytest.raises(TransactionError):
        manager.begin(["audit"])
    with pytest.raises(TransactionError):
        manager.handle("audit")
    manager.rollback()
    with pytest.raises(TransactionError):
        manager.commit()
