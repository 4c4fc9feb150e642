"""Convert Python values to PostgreSQL literals."""

import re
import math
import datetime
from decimal import Decimal
from collections.abc import Mapping
from typing import Any, Iterable, Optional


_SPECIAL_CHARACTERS = re.compile(r"['\\\0\n\r\b\t\x1a]")

_REPLACEMENTS = {
    "\0": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\b": "\\b",
    "\t": "\\t",
    "\x1a": "\\Z",
    "'": "''",
    "\\": "\\\\",
}


def _escape_string(value: str) -> str:
    escaped = _SPECIAL_CHARACTERS.sub(lambda match: _REPLACEMENTS[match.group(0)], value)
    return f"'{escaped}'"


def _hstore_item(value: Any) -> str:
    if value is None:
        return "NULL"
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def to_hstore(mapping: Mapping) -> str:
    """Encode a mapping as hstore text, e.g. `"a"=>"1", "b"=>NULL`."""
    return ", ".join(
        f"{_hstore_item(key)}=>{_hstore_item(value)}"
        for key, value in mapping.items()
    )


def escape(value: Any) -> str:
    """Return the SQL literal for value.

    Sequences become a comma-separated list of literals without parentheses,
    so templates write `IN (?)` themselves. Nested sequences are flattened.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and math.isnan(value):
            return "NULL"
        return str(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        if not value:
            return "NULL"
        return ",".join(escape(item) for item in value)
    if isinstance(value, Mapping):
        return _escape_string(to_hstore(value))
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return _escape_string(value.isoformat())
    if isinstance(value, str):
        return _escape_string(value)
    return _escape_string(str(value))


def escape_csv(row: Mapping, keys: Optional[Iterable[str]] = None) -> str:
    """Escape the values of a row (in `keys` order when given), joined by `, `."""
    if keys is None:
        keys = row.keys()
    return ", ".join(escape(row.get(key)) for key in keys)
