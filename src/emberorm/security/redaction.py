"""Redaction of credentials in DSNs and of sensitive statement parameters."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

REDACTED_VALUE = "***"

_SENSITIVE_TOKENS = (
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "apikey",
    "api_key",
    "access_key",
    "private_key",
)

_SENSITIVE_KEY_TOKENS = _SENSITIVE_TOKENS + (
    "sslkey",
    "ssl_key",
    "sslcert",
    "ssl_cert",
    "sslrootcert",
)

_SENSITIVE_VALUE_TOKENS = _SENSITIVE_TOKENS + ("bearer", "authorization")


def _compact(value: str) -> str:
    return "".join(ch for ch in value if ch.isalnum())


def is_sensitive_key(key: str) -> bool:
    """
    True when a column, option or query key names a credential.
    """
    normalized = key.lower()
    compact = _compact(normalized)
    return any(token in normalized or _compact(token) in compact for token in _SENSITIVE_KEY_TOKENS)


def is_sensitive_value(value: str) -> bool:
    normalized = value.lower()
    return any(token in normalized for token in _SENSITIVE_VALUE_TOKENS)


def redact_query_params(query: Mapping[str, str]) -> dict[str, str]:
    return {key: REDACTED_VALUE if is_sensitive_key(key) else val for key, val in query.items()}


def redact_value(value: Any, *, key: str | None = None) -> Any:
    if key is not None and is_sensitive_key(str(key)):
        return REDACTED_VALUE
    if isinstance(value, Mapping):
        return redact_mapping(value)
    if isinstance(value, tuple):
        return tuple(redact_value(item) for item in value)
    if isinstance(value, list):
        return [redact_value(item) for item in value]
    if isinstance(value, bytes):
        decoded = value.decode("utf-8", errors="ignore")
        return REDACTED_VALUE if decoded and is_sensitive_value(decoded) else value
    if isinstance(value, str) and is_sensitive_value(value):
        return REDACTED_VALUE
    return value


def redact_mapping(values: Mapping[str, Any]) -> dict[str, Any]:
    """
    Redact a column -> value mapping such as the values of a command.
    """
    return {column: redact_value(value, key=str(column)) for column, value in values.items()}


def redact_params(params: Iterable[Any]) -> list[Any]:
    return [redact_value(value) for value in params]
