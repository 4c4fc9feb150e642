"""Table metadata read from information_schema, loaded once per table."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, TYPE_CHECKING

from pydantic import BaseModel, Field

from .utils import quote_identifier

if TYPE_CHECKING:
    from .client import Client

logger = logging.getLogger(__name__)


COLUMNS_QUERY = [
    "SELECT column_name, is_nullable, data_type, character_maximum_length, column_default",
    "FROM information_schema.columns",
    "WHERE table_catalog = ? AND table_name = ?;",
]

PRIMARY_KEY_QUERY = [
    "SELECT column_name",
    "FROM information_schema.table_constraints TC",
    "INNER JOIN information_schema.key_column_usage KCU ON TC.constraint_name = KCU.constraint_name",
    "WHERE constraint_type = 'PRIMARY KEY' AND TC.table_catalog = ? AND TC.table_name = ?;",
]


class ColumnInfo(BaseModel):
    """One row of information_schema.columns."""

    column_name: str
    is_nullable: Optional[str] = None
    data_type: Optional[str] = None
    character_maximum_length: Optional[int] = None
    column_default: Optional[Any] = None


class Schema(BaseModel):
    """Columns, primary key and pre-quoted identifiers of a table."""

    model_config = {"frozen": True}

    table_name: str
    columns: list[str] = Field(default_factory=list)
    escaped_columns: dict[str, str] = Field(default_factory=dict)
    escaped_table_name: str
    primary_key: Optional[str] = None
    fields: list[ColumnInfo] = Field(default_factory=list)

    @classmethod
    def build(cls, table_name: str, fields: list[ColumnInfo],
              primary_key: Optional[str] = None) -> "Schema":
        """Build a schema, quoting the table and column names once."""
        columns = [field.column_name for field in fields]
        return cls(
            table_name=table_name,
            columns=columns,
            escaped_columns={name: quote_identifier(name) for name in columns},
            escaped_table_name=quote_identifier(table_name),
            primary_key=primary_key,
            fields=fields,
        )

    def with_primary_key(self, primary_key: str) -> "Schema":
        """Return a copy using primary_key."""
        return self.model_copy(update={"primary_key": primary_key})


class SchemaCatalog:
    """Memoized schemas keyed by table name.

    Concurrent first loads of the same table share one pending task, so the
    introspection queries run once per table.
    """

    def __init__(self):
        self._schemas: dict[str, Schema] = {}
        self._pending: dict[str, asyncio.Task] = {}

    def __contains__(self, table_name: str) -> bool:
        return table_name in self._schemas

    def get(self, table_name: str) -> Optional[Schema]:
        return self._schemas.get(table_name)

    def clear(self) -> None:
        self._schemas.clear()

    async def load(self, client: "Client", table_name: str) -> Schema:
        """Return the schema for table_name, introspecting it on first use."""
        schema = self._schemas.get(table_name)
        if schema is not None:
            return schema
        task = self._pending.get(table_name)
        if task is None:
            task = asyncio.ensure_future(self._introspect(client, table_name))
            self._pending[table_name] = task
            task.add_done_callback(lambda _task: self._pending.pop(table_name, None))
        return await asyncio.shield(task)

    async def _introspect(self, client: "Client", table_name: str) -> Schema:
        database = client.config.database_name
        column_rows, primary_key_rows = await client.series([
            *COLUMNS_QUERY, [database, table_name],
            *PRIMARY_KEY_QUERY, [database, table_name],
        ])
        fields = [ColumnInfo.model_validate(row) for row in column_rows]
        primary_key = primary_key_rows[0]["column_name"] if primary_key_rows else None
        if primary_key is None and client.strict:
            logger.warning(
                "STRICT WARNING: Primary Key not defined in database for `%s`.", table_name
            )
        schema = Schema.build(table_name, fields, primary_key)
        self._schemas[table_name] = schema
        return schema
