"""
Dialect strategy interfaces describing SQL compilation behaviors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DialectCapabilities:
    """
    Feature flags describing backend capabilities.
    """

    supports_returning: bool = False


class Dialect(Protocol):
    """
    Strategy interface consumed by the command compiler and the adapters.
    """

    @property
    def name(self) -> str: ...

    @property
    def capabilities(self) -> DialectCapabilities: ...

    def quote_identifier(self, identifier: str) -> str: ...

    def format_table(self, table_name: str) -> str: ...

    def limit_clause(self, limit: int | None, offset: int | None) -> str: ...

    def parameter_placeholder(self, position: int | None = None) -> str: ...

    def returning_clause(self, column: str) -> str: ...