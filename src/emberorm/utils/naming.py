"""
Naming conventions for tables and foreign keys.
"""

import re


_FIRST_CAP_RE = re.compile("(.)([A-Z][a-z]+)")
_ALL_CAP_RE = re.compile("([a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    """
    Convert ``CamelCase`` role names to ``snake_case`` table names.
    """
    step1 = _FIRST_CAP_RE.sub(r"\1_\2", name)
    return _ALL_CAP_RE.sub(r"\1_\2", step1).lower()


def foreign_key_name(role: str, key: str = "id") -> str:
    """
    Default foreign key field pointing at ``role``: ``blogPost`` -> ``blog_post_id``.
    """
    return f"{camel_to_snake(role)}_{key}"
