"""Shared test helpers."""

from pgmapper.schema import ColumnInfo, Schema


def make_schema(table_name: str, columns: list, primary_key: str = "id") -> Schema:
    """Build a Schema directly, without going through a database."""
    return Schema.build(table_name, [ColumnInfo(column_name=name) for name in columns], primary_key)


def ids(rows) -> list:
    """The `id` of each row, in order."""
    return [row["id"] for row in rows]


def unescape_literal(literal: str) -> str:
    """Read back a quoted string literal the way a backslash-escaping backend would."""
    assert literal[0] == "'" and literal[-1] == "'", f"not a string literal: {literal!r}"
    body = literal[1:-1]
    backslash_escapes = {"0": "\0", "n": "\n", "r": "\r", "b": "\b", "t": "\t", "Z": "\x1a", "\\": "\\"}
    result = []
    index = 0
    while index < len(body):
        char = body[index]
        if char == "\\":
            result.append(backslash_escapes[body[index + 1]])
            index += 2
        elif char == "'":
            assert body[index + 1] == "'", f"unpaired quote in {literal!r}"
            result.append("'")
            index += 2
        else:
            result.append(char)
            index += 1
    return "".join(result)
