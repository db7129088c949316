"""
Dialect strategy registry.
"""

from .base import Dialect, DialectCapabilities
from .compiler import CommandCompiler, CompiledStatement
from .postgres import PostgresDialect
from .sqlite import SQLiteDialect

__all__ = [
    "CommandCompiler",
    "CompiledStatement",
    "Dialect",
    "DialectCapabilities",
    "PostgresDialect",
    "SQLiteDialect",
]
