"""Quote SQL identifiers."""

from functools import cache


@cache
def quote_identifier(name: str) -> str:
    """Return name as a double-quoted identifier (embedded quotes doubled)."""
    return '"' + name.replace('"', '""') + '"'
