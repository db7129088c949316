"""
Utility helpers shared across EmberORM packages.
"""

from .logging import configure_logging, get_correlation_id, get_logger, set_correlation_id, time_call
from .naming import camel_to_snake, foreign_key_name

__all__ = [
    "camel_to_snake",
    "configure_logging",
    "foreign_key_name",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "time_call",
]
