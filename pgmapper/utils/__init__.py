"""Literal escaping, placeholder formatting and identifier quoting."""

from .escape import escape, escape_csv, to_hstore
from .format_sql import format_sql
from .quote_identifier import quote_identifier

__all__ = [
    "escape",
    "escape_csv",
    "to_hstore",
    "format_sql",
    "quote_identifier",
]
