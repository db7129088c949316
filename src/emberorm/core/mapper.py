"""
Mapper contract converting between field values and entity instances.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Protocol

from ..errors import UnmappedField
from .entity import Entity

if TYPE_CHECKING:
    from ..schema.provider import RoleSchema


class Mapper(Protocol):
    """
    Capability set every role mapper provides.

    Rows handed to ``init``/``hydrate`` are keyed by field name; the schema
    converts raw column rows beforehand.
    """

    def init(self, row: Mapping[str, Any], role: str) -> Any: ...

    def hydrate(self, entity: Any, row: Mapping[str, Any]) -> Any: ...

    def extract(self, entity: Any) -> Dict[str, Any]: ...

    def fetch_fields(self, entity: Any) -> Dict[str, Any]: ...


class EntityMapper:
    """
    Mapper for roles represented by the generic :class:`Entity` container.
    """

    def __init__(self, schema: "RoleSchema") -> None:
        self.schema = schema

    def init(self, row: Mapping[str, Any], role: str) -> Entity:
        entity = Entity(role, self.schema.keys)
        return self.hydrate(entity, row)

    def hydrate(self, entity: Entity, row: Mapping[str, Any]) -> Entity:
        for name, value in row.items():
            entity[name] = value
        return entity

    def extract(self, entity: Entity) -> Dict[str, Any]:
        return entity.to_dict()

    def fetch_fields(self, entity: Entity) -> Dict[str, Any]:
        return {name: entity[name] for name in self.schema.fields}


class ObjectMapper:
    """
    Mapper for plain Python classes; keys are stored as instance attributes.
    """

    def __init__(self, schema: "RoleSchema") -> None:
        if schema.entity_class is None:
            raise TypeError(f"Role '{schema.role}' has no entity class for ObjectMapper")
        self.schema = schema
        self.entity_class = schema.entity_class

    def init(self, row: Mapping[str, Any], role: str) -> Any:
        entity = self.entity_class.__new__(self.entity_class)
        for name in self.schema.keys:
            setattr(entity, name, None)
        return self.hydrate(entity, row)

    def hydrate(self, entity: Any, row: Mapping[str, Any]) -> Any:
        keys = self.schema.keys
        for name, value in row.items():
            if name not in keys:
                raise UnmappedField(self.schema.role, name)
            setattr(entity, name, value)
        return entity

    def extract(self, entity: Any) -> Dict[str, Any]:
        return {name: getattr(entity, name, None) for name in self.schema.keys}

    def fetch_fields(self, entity: Any) -> Dict[str, Any]:
        return {name: getattr(entity, name, None) for name in self.schema.fields}
