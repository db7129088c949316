"""
Core building blocks: the entity container, relation references and mappers.
"""

from .entity import Entity
from .mapper import EntityMapper, Mapper, ObjectMapper
from .reference import Reference, Resolved, Unresolved, is_loaded, related_entities, unwrap

__all__ = [
    "Entity",
    "EntityMapper",
    "Mapper",
    "ObjectMapper",
    "Reference",
    "Resolved",
    "Unresolved",
    "is_loaded",
    "related_entities",
    "unwrap",
]
