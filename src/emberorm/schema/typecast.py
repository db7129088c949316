"""
Typecast rules applied to raw column values when rows are hydrated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict


Caster = Callable[[Any], Any]


def to_int(value: Any) -> int | None:
    if value is None:
        return value
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer value '{value}'") from exc


def to_float(value: Any) -> float | None:
    if value is None:
        return value
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid float value '{value}'") from exc


def to_bool(value: Any) -> bool | None:
    if value is None:
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in {"true", "t", "1"}:
            return True
        if lowered in {"false", "f", "0"}:
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    raise ValueError(f"Invalid boolean value '{value}'")


def to_str(value: Any) -> str | None:
    if value is None:
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def to_datetime(value: Any) -> datetime | None:
    if value is None:
        return value
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(f"Invalid datetime value '{value}'") from exc
    raise ValueError(f"Expected datetime, received {value!r}")


CASTERS: Dict[str, Caster] = {
    "int": to_int,
    "float": to_float,
    "bool": to_bool,
    "str": to_str,
    "datetime": to_datetime,
}


def resolve_caster(rule: str | Caster) -> Caster:
    """
    Turn a typecast rule (a registered name or any callable) into a caster.
    """
    if callable(rule):
        return rule
    try:
        return CASTERS[rule]
    except KeyError as exc:
        raise ValueError(f"Unknown typecast rule '{rule}'") from exc
