"""
Schema provider: role metadata, relation descriptors and typecast rules.
"""

from .provider import RoleSchema, Schema, SchemaProvider
from .relations import Cascade, RelationDescriptor, RelationKind
from .typecast import CASTERS, resolve_caster

__all__ = [
    "CASTERS",
    "Cascade",
    "RelationDescriptor",
    "RelationKind",
    "RoleSchema",
    "Schema",
    "SchemaProvider",
    "resolve_caster",
]
