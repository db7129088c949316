"""
Schema provider: per-role mapping metadata consumed read-only by the engine.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple

from ..core.entity import Entity
from ..errors import SchemaError, UnmappedEntity
from ..utils import camel_to_snake
from .relations import RelationDescriptor, RelationKind
from .typecast import Caster, resolve_caster

if TYPE_CHECKING:
    from ..core.mapper import Mapper


MapperFactory = Callable[["RoleSchema"], "Mapper"]


@dataclass
class RoleSchema:
    """
    Mapping metadata for one role: table binding, field/column map, primary
    key, relations and typecast rules.

    ``columns`` maps field names to column names; a plain sequence of names
    maps every field onto a column of the same name.
    """

    role: str
    columns: Mapping[str, str] | Iterable[str]
    table: str = ""
    primary_key: str = "id"
    generated: bool = True
    database: str = "default"
    relations: Tuple[RelationDescriptor, ...] = ()
    typecast: Mapping[str, Any] = field(default_factory=dict)
    entity_class: Optional[type] = None
    mapper_class: Optional[MapperFactory] = None

    def __post_init__(self) -> None:
        if isinstance(self.columns, Mapping):
            self.columns = OrderedDict(self.columns)
        else:
            self.columns = OrderedDict((name, name) for name in self.columns)
        if not self.table:
            self.table = camel_to_snake(self.role)
        if self.primary_key not in self.columns:
            raise SchemaError(f"Primary key '{self.primary_key}' of role '{self.role}' is not a mapped column")
        self.relations = tuple(self.relations)
        self._relations: Dict[str, RelationDescriptor] = {}
        for relation in self.relations:
            if relation.name in self._relations:
                raise SchemaError(f"Duplicate relation '{relation.name}' on role '{self.role}'")
            if relation.name in self.columns:
                raise SchemaError(f"Relation '{relation.name}' on role '{self.role}' shadows a column")
            self._relations[relation.name] = relation
        self._casters: Dict[str, Caster] = {name: resolve_caster(rule) for name, rule in self.typecast.items()}
        self._by_column: Dict[str, str] = {column: name for name, column in self.columns.items()}
        self._mapper: Optional["Mapper"] = None

    # Metadata helpers ----------------------------------------------------
    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.columns)

    @property
    def keys(self) -> Tuple[str, ...]:
        """Every key an entity of this role exposes: columns first, then relations."""
        return self.fields + tuple(self._relations)

    @property
    def pk_column(self) -> str:
        return self.columns[self.primary_key]

    def column(self, name: str) -> str:
        try:
            return self.columns[name]
        except KeyError as exc:
            raise SchemaError(f"Unknown field '{name}' on role '{self.role}'") from exc

    def relation(self, name: str) -> RelationDescriptor:
        try:
            return self._relations[name]
        except KeyError as exc:
            raise SchemaError(f"Unknown relation '{name}' on role '{self.role}'") from exc

    @property
    def mapper(self) -> "Mapper":
        if self._mapper is None:
            if self.mapper_class is not None:
                self._mapper = self.mapper_class(self)
            else:
                from ..core.mapper import EntityMapper, ObjectMapper

                self._mapper = ObjectMapper(self) if self.entity_class else EntityMapper(self)
        return self._mapper

    # Row conversion ------------------------------------------------------
    def from_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Convert a raw row keyed by column into typecast field values.
        """
        values: Dict[str, Any] = {}
        for column, raw in row.items():
            name = self._by_column.get(column)
            if name is None:
                continue
            caster = self._casters.get(name)
            values[name] = caster(raw) if caster else raw
        return values

    def to_columns(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {self.column(name): value for name, value in values.items()}


class SchemaProvider(Protocol):
    """
    Read-only schema interface consumed by the heap, resolver and runner.
    """

    def describe(self, role: str) -> RoleSchema: ...

    def role_of(self, entity: object) -> str: ...


class Schema:
    """
    In-memory schema provider built from :class:`RoleSchema` declarations.
    """

    def __init__(self, roles: Iterable[RoleSchema] = ()) -> None:
        self._roles: "OrderedDict[str, RoleSchema]" = OrderedDict()
        self._classes: Dict[type, str] = {}
        for role_schema in roles:
            self.add(role_schema)

    def add(self, role_schema: RoleSchema) -> None:
        if role_schema.role in self._roles:
            raise SchemaError(f"Role '{role_schema.role}' is already declared")
        if role_schema.entity_class is not None:
            if role_schema.entity_class in self._classes:
                raise SchemaError(f"Class '{role_schema.entity_class.__name__}' is mapped twice")
            self._classes[role_schema.entity_class] = role_schema.role
        self._roles[role_schema.role] = role_schema

    def describe(self, role: str) -> RoleSchema:
        try:
            return self._roles[role]
        except KeyError as exc:
            raise UnmappedEntity(f"Role '{role}' has no schema entry") from exc

    def role_of(self, entity: object) -> str:
        if isinstance(entity, Entity):
            if entity.role not in self._roles:
                raise UnmappedEntity(f"Role '{entity.role}' has no schema entry")
            return entity.role
        for klass in type(entity).__mro__:
            role = self._classes.get(klass)
            if role is not None:
                return role
        raise UnmappedEntity(f"Class '{type(entity).__name__}' is not mapped to a role")

    def roles(self) -> List[str]:
        return list(self._roles)

    def __contains__(self, role: object) -> bool:
        return role in self._roles

    def __iter__(self) -> Iterator[RoleSchema]:
        return iter(self._roles.values())

    # Validation ----------------------------------------------------------
    def validate(self) -> None:
        """
        Check relation declarations against the declared roles and flag
        conflicting cascade policies on inverse relation pairs.
        """
        problems: List[str] = []
        for role_schema in self:
            for relation in role_schema.relations:
                problems.extend(self._check_relation(role_schema, relation))
        problems.extend(self._check_conflicts())
        if problems:
            raise SchemaError("; ".join(problems))

    def _check_relation(self, role_schema: RoleSchema, relation: RelationDescriptor) -> List[str]:
        label = f"{role_schema.role}.{relation.name}"
        if relation.target not in self._roles:
            return [f"{label}: unknown target role '{relation.target}'"]
        target = self._roles[relation.target]
        problems: List[str] = []
        if relation.inner_key not in role_schema.columns:
            problems.append(f"{label}: inner key '{relation.inner_key}' is not a field of '{role_schema.role}'")
        if relation.outer_key not in target.columns:
            problems.append(f"{label}: outer key '{relation.outer_key}' is not a field of '{target.role}'")
        if relation.kind is RelationKind.MANY_TO_MANY:
            if not (relation.through and relation.through_inner_key and relation.through_outer_key):
                problems.append(f"{label}: many-to-many relations need a through table and both pivot keys")
            if target.database != role_schema.database:
                problems.append(f"{label}: many-to-many relations cannot span databases")
        if relation.kind.owning and (relation.cascade.deletes or relation.cascade.nullifies):
            problems.append(f"{label}: delete propagation is not allowed on an owning relation")
        if relation.cascade.nullifies and not relation.nullable:
            problems.append(f"{label}: nullify requires a nullable foreign key")
        return problems

    def _check_conflicts(self) -> List[str]:
        # Group every foreign key edge by (holder role, fk field, referenced role).
        declared: Dict[Tuple[str, str, str], List[Tuple[str, RelationDescriptor]]] = {}
        for role_schema in self:
            for relation in role_schema.relations:
                if relation.target not in self._roles:
                    continue
                if relation.kind.owning:
                    key = (role_schema.role, relation.inner_key, relation.target)
                elif relation.kind.referenced:
                    key = (relation.target, relation.outer_key, role_schema.role)
                else:
                    continue
                declared.setdefault(key, []).append((role_schema.role, relation))

        problems: List[str] = []
        for (holder, fk, parent), relations in declared.items():
            nullable = {relation.nullable for _, relation in relations}
            if len(nullable) > 1:
                problems.append(f"{holder}.{fk}: relations disagree on whether the foreign key is nullable")
            policies = {
                relation.cascade
                for _, relation in relations
                if relation.kind.referenced and (relation.cascade.deletes or relation.cascade.nullifies)
            }
            if len(policies) > 1:
                names = ", ".join(sorted(policy.value for policy in policies))
                problems.append(f"{holder}.{fk}: conflicting delete policies towards '{parent}' ({names})")
        return problems
