import pytest

from emberorm import RoleSchema, RunStatus, Schema, Session, Status, UnmappedEntity, UnmappedField
from emberorm.adapters import ConnectionConfig, SQLiteAdapter


class Account:
    def __init__(self, email, active=True):
        self.id = None
        self.email = email
        self.active = active


class Unmapped:
    pass


def account_schema() -> Schema:
    return Schema(
        [
            RoleSchema("account", ["id", "email", "active"], entity_class=Account, typecast={"active": "bool"}),
            RoleSchema("note", {"id": "note_id", "body": "note_body"}, table="notes"),
        ]
    )


def create_tables(session: Session) -> None:
    session.execute_sql(
        "CREATE TABLE IF NOT EXISTS account (id INTEGER PRIMARY KEY AUTOINCREMENT, email TEXT, active INTEGER)"
    )
    session.execute_sql("CREATE TABLE IF NOT EXISTS notes (note_id INTEGER PRIMARY KEY AUTOINCREMENT, note_body TEXT)")


def make_session(tmp_path, name: str = "session.db") -> Session:
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / name}")
    session = Session(account_schema(), SQLiteAdapter(), connection_config=config)
    create_tables(session)
    return session


def test_plain_objects_round_trip(tmp_path):
    session = make_session(tmp_path)
    account = Account("ada@example.com")
    assert session.save(account).ok
    assert account.id is not None

    other = make_session(tmp_path)
    loaded = other.find("account", account.id)
    assert isinstance(loaded, Account)
    assert loaded.email == "ada@example.com"
    assert loaded.active is True
    other.close()
    session.close()


def test_find_returns_tracked_instance(tmp_path):
    session = make_session(tmp_path)
    session.execute_sql("INSERT INTO account (email, active) VALUES (?, ?)", ("bob@example.com", 0))

    first = session.find("account", 1)
    second = session.find("account", 1)
    assert first is second
    assert first.active is False
    assert session.heap.get(first).status is Status.MANAGED
    assert session.find("account", 99) is None
    session.close()


def test_find_all_filters_by_field(tmp_path):
    session = make_session(tmp_path)
    session.unit_of_work().persist(Account("a@example.com")).persist(
        Account("b@example.com", active=False)
    ).run_or_raise()

    active = session.find_all("account", active=True)
    assert [account.email for account in active] == ["a@example.com"]
    assert len(session.find_all("account")) == 2
    session.close()


def test_columns_can_differ_from_field_names(tmp_path):
    session = make_session(tmp_path)
    note = session.make("note", body="hello")
    result = session.save(note)
    assert result.ok
    assert result.commands[0].table == "notes"
    assert result.commands[0].values == {"note_body": "hello"}

    row = session.execute_sql("SELECT note_id, note_body FROM notes").fetchone()
    assert row["note_id"] == note.id
    assert session.find("note", note.id) is note
    session.close()


def test_make_tracks_new_entity(tmp_path):
    session = make_session(tmp_path)
    note = session.make("note", body="draft")
    assert session.heap.get(note).status is Status.NEW
    assert note.role == "note"
    with pytest.raises(UnmappedField):
        session.make("note", title="nope")
    with pytest.raises(UnmappedEntity):
        session.make("missing")
    session.close()


def test_unmapped_entities_are_rejected(tmp_path):
    session = make_session(tmp_path)
    with pytest.raises(UnmappedEntity):
        session.unit_of_work().persist(Unmapped())
    session.close()


def test_detach_forgets_entity(tmp_path):
    session = make_session(tmp_path)
    account = Account("c@example.com")
    session.save(account)
    session.detach(account)
    assert account not in session.heap
    assert session.find("account", account.id) is not account
    session.close()


def test_dsn_and_connection_config_are_exclusive(tmp_path):
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'x.db'}")
    with pytest.raises(ValueError):
        Session(account_schema(), connection_config=config, dsn="sqlite:///:memory:")


def test_default_session_uses_in_memory_sqlite():
    session = Session(account_schema())
    assert isinstance(session.adapter, SQLiteAdapter)
    create_tables(session)
    assert session.save(Account("mem@example.com")).ok
    session.close()


def test_dsn_builds_adapter(tmp_path):
    session = Session(account_schema(), dsn=f"sqlite:///{tmp_path / 'dsn.db'}")
    assert isinstance(session.adapter, SQLiteAdapter)
    session.close()


def test_roles_bound_to_other_databases_use_their_adapter(tmp_path):
    schema = Schema(
        [
            RoleSchema("account", ["id", "email", "active"], entity_class=Account),
            RoleSchema("event", ["id", "kind"], database="audit"),
        ]
    )
    audit = SQLiteAdapter()
    audit.connect(ConnectionConfig(url=f"sqlite:///{tmp_path / 'audit.db'}"))
    config = ConnectionConfig(url=f"sqlite:///{tmp_path / 'main.db'}")
    session = Session(schema, SQLiteAdapter(), connection_config=config, databases={"audit": audit})
    create_tables(session)
    session.execute_sql("CREATE TABLE event (id INTEGER PRIMARY KEY AUTOINCREMENT, kind TEXT)", database="audit")

    account = Account("multi@example.com")
    event = session.make("event", kind="signup")
    uow = session.unit_of_work().persist(account).persist(event)
    assert uow.plan().databases == ["default", "audit"]
    assert uow.run().ok

    assert session.execute_sql("SELECT COUNT(*) FROM event", database="audit").fetchone()[0] == 1
    with pytest.raises(UnmappedEntity):
        session.adapter_for("reporting")
    session.close()


def test_session_context_manager_closes(tmp_path):
    with make_session(tmp_path) as session:
        session.save(Account("ctx@example.com"))
    assert len(session.heap) == 0


def test_failed_run_result_is_falsy(tmp_path):
    session = make_session(tmp_path)
    session.execute_sql("DROP TABLE account")
    result = session.save(Account("gone@example.com"))
    assert not result
    assert result.status is RunStatus.ROLLED_BACK
    session.close()
