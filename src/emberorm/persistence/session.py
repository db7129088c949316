"""
Session management coordinating adapters, the heap and units of work.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..adapters import create_adapter
from ..adapters.base import ConnectionConfig, DatabaseAdapter
from ..core.reference import Resolved, Unresolved, is_loaded
from ..errors import UnmappedEntity
from ..hooks import HookDispatcher
from ..schema.provider import RoleSchema, SchemaProvider
from ..schema.relations import RelationDescriptor, RelationKind
from ..security.redaction import redact_params
from ..utils import get_logger, time_call
from .heap import Heap
from .node import Status
from .result import RunResult
from .transaction import TransactionManager
from .unit_of_work import UnitOfWork


DEFAULT_DATABASE = "default"


class Session:
    """
    Explicit persistence context: one schema, one heap, one hook dispatcher
    and the adapters of every database binding.

    ``databases`` maps extra binding names to connected adapters; the
    ``adapter`` argument (or one built from ``dsn``/``connection_config``)
    serves the ``"default"`` binding and is connected here.
    """

    def __init__(
        self,
        schema: SchemaProvider,
        adapter: Optional[DatabaseAdapter] = None,
        *,
        connection_config: Optional[ConnectionConfig] = None,
        dsn: Optional[str] = None,
        databases: Optional[Mapping[str, DatabaseAdapter]] = None,
    ) -> None:
        if dsn is not None and connection_config is not None:
            raise ValueError("Pass either dsn or connection_config, not both.")
        if dsn is not None:
            connection_config = ConnectionConfig.from_dsn(dsn)
        self.connection_config = connection_config or ConnectionConfig(url="sqlite:///:memory:")
        self.adapter = adapter if adapter is not None else create_adapter(self.connection_config)
        self.schema = schema
        self.heap = Heap(schema)
        self.hooks = HookDispatcher()
        self.logger = get_logger("persistence.session")
        self._adapters: Dict[str, DatabaseAdapter] = {DEFAULT_DATABASE: self.adapter}
        self._adapters.update(databases or {})
        self.transactions = TransactionManager(self.adapter_for)
        self.adapter.connect(self.connection_config)

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        for adapter in self._adapters.values():
            adapter.close()
        self.heap.clear()

    def adapter_for(self, database: str) -> DatabaseAdapter:
        try:
            return self._adapters[database]
        except KeyError:
            raise UnmappedEntity(f"No adapter bound to database '{database}'") from None

    # ------------------------------------------------------------------ #
    # Entities
    # ------------------------------------------------------------------ #
    def make(self, role: str, **values: Any) -> Any:
        """
        Create a new entity of ``role`` through its mapper and track it as NEW.
        """
        role_schema = self.schema.describe(role)
        entity = role_schema.mapper.init(values, role)
        self.heap.attach(entity)
        return entity

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self)

    def save(self, entity: Any, cascade: bool = True) -> RunResult:
        return self.unit_of_work().persist(entity, cascade=cascade).run()

    def delete(self, entity: Any, cascade: bool = True) -> RunResult:
        return self.unit_of_work().delete(entity, cascade=cascade).run()

    def detach(self, entity: Any) -> None:
        self.heap.detach(entity)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def find(self, role: str, pk: Any) -> Optional[Any]:
        """
        Return the entity of ``role`` with primary key ``pk``: the tracked
        instance when there is one, otherwise a freshly loaded MANAGED one.
        """
        cached = self.heap.find(role, pk)
        if cached is not None:
            return cached
        role_schema = self.schema.describe(role)
        rows = self._fetch(role_schema, {role_schema.pk_column: pk})
        if not rows:
            return None
        return self._hydrate(role_schema, rows[0])

    def find_all(self, role: str, **where: Any) -> List[Any]:
        role_schema = self.schema.describe(role)
        rows = self._fetch(role_schema, role_schema.to_columns(where))
        return [self._hydrate(role_schema, row) for row in rows]

    def resolve(self, reference: Any) -> Any:
        """
        Materialize a relation value. Loaded values are returned unchanged.
        """
        if isinstance(reference, Resolved):
            return reference.value
        if not isinstance(reference, Unresolved):
            return reference
        if reference.via is not None:
            return self._resolve_pivot(reference)
        found = self.find_all(reference.role, **reference.scope)
        if reference.many:
            return found
        return found[0] if found else None

    def load(self, entity: Any, relation: str) -> Any:
        """
        Resolve one relation field of ``entity`` in place and return its value.
        """
        role_schema = self.schema.describe(self.schema.role_of(entity))
        descriptor = role_schema.relation(relation)
        mapper = role_schema.mapper
        current = mapper.extract(entity).get(relation)
        if is_loaded(current):
            return current.value if isinstance(current, Resolved) else current
        value = self.resolve(current)
        mapper.hydrate(entity, {relation: value})
        if descriptor.kind is RelationKind.MANY_TO_MANY:
            node = self.heap.get(entity)
            if node is not None:
                node.state.relations[relation] = frozenset(
                    self.schema.describe(descriptor.target).mapper.fetch_fields(item).get(descriptor.outer_key)
                    for item in value
                )
        return value

    def _fetch(self, role_schema: RoleSchema, where: Mapping[str, Any]) -> List[Dict[str, Any]]:
        adapter = self.adapter_for(role_schema.database)
        columns = list(role_schema.columns.values())
        with time_call(
            "session.fetch",
            self.logger,
            sql=role_schema.table,
            params=redact_params(where.values()),
            threshold_ms=200,
        ):
            return adapter.fetch(role_schema.table, columns, where)

    def _hydrate(self, role_schema: RoleSchema, row: Mapping[str, Any]) -> Any:
        values = role_schema.from_row(row)
        pk = values.get(role_schema.primary_key)
        cached = self.heap.find(role_schema.role, pk)
        if cached is not None:
            return cached
        fields = dict(values)
        for descriptor in role_schema.relations:
            fields[descriptor.name] = self._reference(descriptor, values)
        entity = role_schema.mapper.init(fields, role_schema.role)
        self.heap.attach(entity, Status.MANAGED, values)
        return entity

    def _reference(self, descriptor: RelationDescriptor, values: Mapping[str, Any]) -> Any:
        key = values.get(descriptor.inner_key)
        if descriptor.kind is RelationKind.BELONGS_TO:
            if key is None:
                return None
            return Unresolved(descriptor.target, {descriptor.outer_key: key})
        if descriptor.kind is RelationKind.MANY_TO_MANY:
            via = (descriptor.through, descriptor.through_outer_key, descriptor.outer_key)
            return Unresolved(descriptor.target, {descriptor.through_inner_key: key}, many=True, via=via)
        return Unresolved(
            descriptor.target,
            {descriptor.outer_key: key},
            many=descriptor.kind is RelationKind.HAS_MANY,
        )

    def _resolve_pivot(self, reference: Unresolved) -> List[Any]:
        through, outer_column, outer_key = reference.via
        target = self.schema.describe(reference.role)
        adapter = self.adapter_for(target.database)
        rows = adapter.fetch(through, [outer_column], reference.scope)
        related = []
        for row in rows:
            related.extend(self.find_all(reference.role, **{outer_key: row[outer_column]}))
        return related

    # ------------------------------------------------------------------ #
    def execute_sql(self, sql: str, params: Iterable[Any] | None = None, *, database: str = DEFAULT_DATABASE):
        param_list = list(params or [])
        with time_call("session.execute_sql", self.logger, sql=sql, params=redact_params(param_list), threshold_ms=200):
            return self.adapter_for(database).execute_sql(sql, param_list)
