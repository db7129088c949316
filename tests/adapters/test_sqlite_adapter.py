import logging
import sqlite3

import pytest

from emberorm.adapters import (
    AdapterConnectionError,
    AdapterExecutionError,
    AdapterTransactionError,
    ConnectionConfig,
    ConstraintViolation,
    SQLiteAdapter,
)
from emberorm.persistence import Delete, Insert, Update


@pytest.fixture
def adapter(tmp_path):
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'test.db'}")
    adapter.connect(config)
    adapter.execute_sql("CREATE TABLE example (id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)")
    yield adapter
    adapter.close()


def test_connect_creates_database(tmp_path):
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'connect.db'}")
    connection = adapter.connect(config)
    assert isinstance(connection, sqlite3.Connection)
    assert (tmp_path / "connect.db").exists()
    adapter.close()


def test_dsn_query_options_are_not_part_of_the_path(tmp_path):
    adapter = SQLiteAdapter()
    config = ConnectionConfig.from_dsn(f"sqlite:///{tmp_path / 'opts.db'}?timeout=1")
    adapter.connect(config)
    assert config.timeout == 1.0
    assert (tmp_path / "opts.db").exists()
    adapter.close()


def test_execute_commands_in_transaction(adapter):
    tx = adapter.begin()
    inserted = adapter.execute(tx, Insert("example", values={"name": "Alice"}, returning="id"))
    assert inserted.generated_key == 1
    assert inserted.affected_rows == 1

    updated = adapter.execute(tx, Update("example", values={"name": "Alicia"}, where={"id": 1}))
    assert updated.affected_rows == 1
    missing = adapter.execute(tx, Delete("example", where={"id": 42}))
    assert missing.affected_rows == 0
    adapter.commit(tx)

    assert tx.active is False
    assert tx.statements == 3
    assert adapter.fetch("example", ["id", "name"], {"id": 1}) == [{"id": 1, "name": "Alicia"}]


def test_rollback_discards_changes(adapter):
    tx = adapter.begin()
    adapter.execute(tx, Insert("example", values={"name": "Bob"}))
    adapter.rollback(tx)
    assert adapter.fetch("example", ["id"], {}) == []


def test_only_one_transaction_at_a_time(adapter):
    tx = adapter.begin()
    with pytest.raises(AdapterTransactionError):
        adapter.begin()
    adapter.commit(tx)
    with pytest.raises(AdapterTransactionError):
        adapter.commit(tx)


def test_integrity_errors_are_constraint_violations(adapter):
    tx = adapter.begin()
    adapter.execute(tx, Insert("example", values={"name": "dup"}))
    with pytest.raises(ConstraintViolation):
        adapter.execute(tx, Insert("example", values={"name": "dup"}))
    adapter.rollback(tx)


def test_other_errors_are_execution_errors(adapter):
    with pytest.raises(AdapterExecutionError):
        adapter.execute_sql("SELECT * FROM missing_table")


def test_isolation_level_selects_begin_mode(tmp_path):
    adapter = SQLiteAdapter()
    adapter.connect(ConnectionConfig(url=f"sqlite:///{tmp_path / 'iso.db'}", isolation_level="immediate"))
    tx = adapter.begin()
    adapter.rollback(tx)
    adapter.close()

    with pytest.raises(AdapterConnectionError):
        SQLiteAdapter().connect(ConnectionConfig(url="sqlite:///:memory:", isolation_level="serializable"))


def test_unconnected_adapter_raises():
    with pytest.raises(AdapterConnectionError):
        SQLiteAdapter().begin()


def test_in_memory_database():
    adapter = SQLiteAdapter()
    config = ConnectionConfig(url="sqlite:///:memory:")
    adapter.connect(config)
    adapter.execute_sql("CREATE TABLE sample (value TEXT)")
    adapter.execute_sql("INSERT INTO sample (value) VALUES (?)", ("hello",))
    row = adapter.execute_sql("SELECT value FROM sample").fetchone()
    assert row[0] == "hello"
    adapter.close()


def test_slow_statements_are_logged_with_redacted_params(adapter, caplog):
    caplog.set_level(logging.DEBUG, logger="emberorm.adapters.sqlite")
    adapter.slow_query_ms = 0
    adapter.execute_sql("SELECT ? AS token", ("Bearer abc",))
    records = [record for record in caplog.records if record.name == "emberorm.adapters.sqlite"]
    assert records
    assert records[-1].levelno == logging.WARNING
    assert records[-1].params == ["***"]


def test_slow_query_threshold_reads_environment(monkeypatch):
    monkeypatch.setenv("EMBERORM_SLOW_QUERY_MS", "25")
    assert SQLiteAdapter().slow_query_ms == 25
    assert SQLiteAdapter(slow_query_ms=5).slow_query_ms == 5
