"""Clause-buffer SQL builder.

A QueryBuilder assembles one statement at a time. Each clause lives in a
fixed Slot of the buffer; to_sql() joins the non-empty slots in slot order,
resets the builder and marks it finalized so that a stray modifier cannot
silently extend into an unrelated statement.

    builder = QueryBuilder(schema)
    builder.select(["id", "title"]).where({"published": True}).order("id").to_sql()
    # SELECT "id", "title" FROM "posts" WHERE "published" = true ORDER BY id;
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from typing import Any, Iterable, Optional, Sequence, TYPE_CHECKING

from .errors import BuilderStateError, ValidationError
from .utils import escape, escape_csv, format_sql

if TYPE_CHECKING:
    from .schema import Schema

logger = logging.getLogger(__name__)


class QueryType(enum.Enum):
    SELECT = "SELECT"
    INSERT = "INSERT INTO"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SQL = "SQL"


class Slot(enum.IntEnum):
    """Buffer positions, in the order they are rendered."""

    HEAD = 0
    SET = 1
    FROM = 2
    WHERE = 3
    ORDER = 4
    LIMIT = 5
    OFFSET = 6
    RETURNING = 7


_PREFIXES: tuple[tuple[Slot, str], ...] = (
    (Slot.SET, "SET"),
    (Slot.FROM, "FROM"),
    (Slot.WHERE, "WHERE"),
    (Slot.ORDER, "ORDER BY"),
    (Slot.LIMIT, "LIMIT"),
    (Slot.OFFSET, "OFFSET"),
    (Slot.RETURNING, "RETURNING"),
)

_NEGATED_NULL_OPERATORS = {"!=", "<>", "IS NOT", "NOT"}


def _split_key(key: str) -> tuple[str, Optional[str]]:
    """Split a predicate key such as `"age >"` or `"title NOT IN"` into column and operator."""
    column, _, operator = key.strip().partition(" ")
    return column, (operator.strip() or None)


def _build_expression(quoted_column: str, operator: Optional[str], value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"{quoted_column} {operator or 'IN'} ({escape(value)})"
    if value is None:
        if operator and operator.upper() in _NEGATED_NULL_OPERATORS:
            return f"{quoted_column} IS NOT NULL"
        return f"{quoted_column} IS NULL"
    return f"{quoted_column} {operator or '='} {escape(value)}"


class QueryBuilder:
    """Builds SELECT, INSERT, UPDATE, DELETE and raw statements for one table.

    Args:
        schema: Table schema used to validate and quote column names.
        strict: Raise ValidationError for unknown columns and for UPDATE/DELETE
            without WHERE, instead of silently dropping or allowing them.
    """

    def __init__(self, schema: Optional["Schema"] = None, strict: bool = False):
        self.schema = schema
        self.escaped_table_name = schema.escaped_table_name if schema is not None else ""
        self.strict = strict
        self.select()

    # state

    def reset(self) -> "QueryBuilder":
        """Drop every clause and start over as an empty SELECT."""
        self.type = QueryType.SELECT
        self.buffer: dict[Slot, Any] = {}
        self._changed: set[Slot] = set()
        self._finalized = False
        return self

    def _start(self, query_type: QueryType) -> None:
        self.reset()
        self.type = query_type

    def _check_open(self) -> None:
        if self._finalized:
            raise BuilderStateError(
                "Statement already finalized by to_sql(); start a new one with "
                "select(), insert(), update(), delete(), sql() or reset()"
            )

    def get_buffer(self, slot: Slot) -> Any:
        return self.buffer.get(slot)

    def set_buffer(self, slot: Slot, template: str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Replace a slot with a formatted template."""
        self._check_open()
        self.buffer[slot] = format_sql(template, params)
        self._changed.add(slot)
        return self

    def append_buffer(self, slot: Slot, template: str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Append a formatted template to a slot."""
        self._check_open()
        self.buffer[slot] = (self.buffer.get(slot) or "") + format_sql(template, params)
        self._changed.add(slot)
        return self

    def is_changed(self, slot: Slot) -> bool:
        """True if the slot was set explicitly since the statement started."""
        return slot in self._changed

    # columns

    def _has_column(self, name: str) -> bool:
        return self.schema is not None and name in self.schema.escaped_columns

    def _valid_columns(self, names: Iterable[str]) -> list[str]:
        """Known columns among names, unknown ones dropped."""
        return [name for name in names if self._has_column(name)]

    def _valid_fields(self, row: Mapping) -> list[str]:
        """Known columns among the keys of row; unknown ones raise in strict mode."""
        fields = []
        for key in row:
            if self._has_column(key):
                fields.append(key)
            elif self.strict:
                raise ValidationError(f"STRICT: Invalid column {key}")
        return fields

    def csv(self, fields: Iterable[str], separator: str = ", ") -> str:
        """Quoted column names joined by separator."""
        return separator.join(self.schema.escaped_columns[name] for name in fields)

    # statements

    def select(self, *fields: str | Sequence[str]) -> "QueryBuilder":
        """Start a SELECT.

        `select()` selects `*`; `select("id, title AS t")` is used verbatim;
        `select(["id", "title"])` or `select("id", "title")` keeps only known
        columns and falls back to `*` if none are left.
        """
        self._start(QueryType.SELECT)
        if not fields:
            self.buffer[Slot.HEAD] = "*"
        elif len(fields) == 1 and isinstance(fields[0], str):
            self.buffer[Slot.HEAD] = fields[0]
            self._changed.add(Slot.HEAD)
        else:
            names = fields[0] if len(fields) == 1 else fields
            valid = self._valid_columns(names)
            self.buffer[Slot.HEAD] = self.csv(valid) if valid else "*"
        self.buffer[Slot.FROM] = self.escaped_table_name
        return self

    def insert(self, values: Mapping | Sequence[Mapping] | str, params: Any = None) -> "QueryBuilder":
        """Start an INSERT of one row, several rows, or a raw column list.

        `insert({"title": "a"})`, `insert([{"title": "a"}, {"title": "b"}])`
        or `insert("title, body", ["a", "b"])`. The primary key is returned.
        """
        self._start(QueryType.INSERT)
        if isinstance(values, str):
            body = f"({values}) VALUES ({escape(params)})"
        elif isinstance(values, Mapping):
            fields = self._valid_fields(values)
            if not fields:
                raise ValidationError("Invalid fields or empty INSERT")
            body = f"({self.csv(fields)}) VALUES ({escape_csv(values, fields)})"
        else:
            if not values:
                raise ValidationError("Invalid fields or empty INSERT")
            fields = self._valid_fields(values[0])
            if not fields:
                raise ValidationError("Invalid fields or empty INSERT")
            rows = ", ".join(f"({escape_csv(row, fields)})" for row in values)
            body = f"({self.csv(fields)}) VALUES {rows}"
        self.buffer[Slot.HEAD] = f"{self.escaped_table_name} {body}"
        if self.schema is not None and self.schema.primary_key:
            self.buffer[Slot.RETURNING] = self.schema.escaped_columns[self.schema.primary_key]
        return self

    def update(self, clause: Optional[str] = None) -> "QueryBuilder":
        """Start an UPDATE of this table, or of `clause` when given."""
        self._start(QueryType.UPDATE)
        self.buffer[Slot.HEAD] = clause or self.escaped_table_name
        return self

    def delete(self, where: Any = None, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Start a DELETE, optionally with its WHERE predicate."""
        self._start(QueryType.DELETE)
        self.buffer[Slot.FROM] = self.escaped_table_name
        if where is not None:
            self.where(where, params)
        return self

    def sql(self, *parts: str | Sequence[Any]) -> "QueryBuilder":
        """Start a raw statement.

        Fragments are joined by spaces; a trailing list holds the parameters:
        `sql("select title", "from posts where id = ?", [1])`.
        """
        self._start(QueryType.SQL)
        if parts and isinstance(parts[-1], (list, tuple)):
            self.buffer[Slot.HEAD] = format_sql(" ".join(parts[:-1]), parts[-1])
        else:
            self.buffer[Slot.HEAD] = " ".join(parts)
        return self

    # clauses

    def set(self, values: Mapping | str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Set the SET clause from a mapping of column values or a template."""
        self._check_open()
        if isinstance(values, str):
            clause = format_sql(values, params)
        else:
            fields = self._valid_fields(values)
            clause = ", ".join(
                f"{self.schema.escaped_columns[field]} = {escape(values[field])}"
                for field in fields
            )
        if not clause:
            raise ValidationError("Invalid fields or empty SET clause")
        self.buffer[Slot.SET] = clause
        self._changed.add(Slot.SET)
        return self

    def where(self, predicate: Mapping | str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Set the WHERE clause.

        `where("id = ?", [1])` formats a template; `where({"age >": 3,
        "title NOT IN": ["a", "b"], "blurb": None})` builds ANDed expressions
        over known columns. A predicate that ends up empty raises
        ValidationError rather than dropping the filter.
        """
        self._check_open()
        if isinstance(predicate, str):
            clause = format_sql(predicate, params)
        elif isinstance(predicate, Mapping):
            expressions = []
            for key, value in predicate.items():
                column, operator = _split_key(key)
                if not self._has_column(column):
                    if self.strict:
                        raise ValidationError(f"STRICT: Invalid column {column}")
                    logger.debug("Dropping unknown column %s from WHERE", column)
                    continue
                quoted = self.schema.escaped_columns[column]
                expressions.append(_build_expression(quoted, operator, value))
            clause = " AND ".join(expressions)
        else:
            raise TypeError(f"where() expects a str or a mapping, got {type(predicate)}")
        if not clause.strip():
            raise ValidationError("Invalid fields or empty WHERE clause")
        self.buffer[Slot.WHERE] = clause
        self._changed.add(Slot.WHERE)
        return self

    def and_where(self, predicate: Mapping | str, params: Optional[Sequence[Any]] = None) -> "QueryBuilder":
        """Combine predicate with an explicitly set WHERE clause using AND."""
        existing = self.buffer.get(Slot.WHERE) if self.is_changed(Slot.WHERE) else None
        self.where(predicate, params)
        if existing:
            self.buffer[Slot.WHERE] = f"({existing}) AND {self.buffer[Slot.WHERE]}"
        return self

    def id(self, value: Any) -> "QueryBuilder":
        """Filter by primary key; a list of keys becomes `IN (...)`."""
        self._check_open()
        if self.schema is None or not self.schema.primary_key:
            table_name = self.schema.table_name if self.schema is not None else "?"
            raise ValidationError(f"No primary key defined for `{table_name}`")
        quoted = self.schema.escaped_columns[self.schema.primary_key]
        if isinstance(value, (list, tuple, set, frozenset)):
            return self.where(f"{quoted} IN (?)", [list(value)])
        return self.where(f"{quoted} = ?", [value])

    def from_(self, clause: str) -> "QueryBuilder":
        self._check_open()
        self.buffer[Slot.FROM] = clause
        self._changed.add(Slot.FROM)
        return self

    def order(self, clause: str) -> "QueryBuilder":
        self._check_open()
        self.buffer[Slot.ORDER] = clause
        self._changed.add(Slot.ORDER)
        return self

    order_by = order

    def limit(self, count: int) -> "QueryBuilder":
        self._check_open()
        self.buffer[Slot.LIMIT] = int(count)
        self._changed.add(Slot.LIMIT)
        return self

    def offset(self, count: int) -> "QueryBuilder":
        self._check_open()
        self.buffer[Slot.OFFSET] = int(count)
        self._changed.add(Slot.OFFSET)
        return self

    def page(self, index: int, size: int) -> "QueryBuilder":
        """Zero-based page `index` of `size` rows."""
        self.limit(size)
        return self.offset(int(index) * int(size))

    def returning(self, fields: str | Sequence[str]) -> "QueryBuilder":
        """Set RETURNING verbatim from a string, or from known columns of a list."""
        self._check_open()
        if isinstance(fields, str):
            self.buffer[Slot.RETURNING] = fields
        else:
            self.buffer[Slot.RETURNING] = self.csv(self._valid_columns(fields))
        self._changed.add(Slot.RETURNING)
        return self

    # output

    def peek_sql(self) -> str:
        """Render the current statement without finalizing the builder."""
        buffer = self.buffer
        if self.type is QueryType.SQL:
            return buffer.get(Slot.HEAD, "")
        head = buffer.get(Slot.HEAD)
        parts = [f"{self.type.value} {head}" if head else self.type.value]
        for slot, prefix in _PREFIXES:
            value = buffer.get(slot)
            if value is None or value == "":
                continue
            if slot is Slot.OFFSET and value == 0:
                continue
            parts.append(f"{prefix} {value}")
        return " ".join(parts) + ";"

    def to_sql(self) -> str:
        """Render the statement, then reset and finalize the builder."""
        self._check_open()
        if self.strict and self.type in (QueryType.UPDATE, QueryType.DELETE):
            if not self.buffer.get(Slot.WHERE):
                raise ValidationError(
                    f"STRICT: WHERE clause missing for {self.type.name} operation"
                )
        sql = self.peek_sql()
        self.select()
        self._finalized = True
        return sql
