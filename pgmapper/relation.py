"""Fluent statements bound to one table, with eager loading of declared relations.

A Relation wraps a QueryBuilder for its Dao's table. Queued relations are
resolved after the base query with one extra query per relation (two for
has-many-through), whatever the number of parent rows:

    posts = await Post.where({"published": True}).load("comments").all()
    # SELECT * FROM "posts" WHERE "published" = true;
    # SELECT * FROM "comments" WHERE "post_id" IN (1,3);
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional, Sequence, TYPE_CHECKING

from pydantic import BaseModel, model_validator

from .drivers import QueryResult
from .errors import BuilderStateError, ValidationError
from .query import QueryBuilder, QueryType, Slot
from .utils import quote_identifier

if TYPE_CHECKING:
    from .dao import Dao

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class RelationKind(enum.Enum):
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    HAS_MANY_THROUGH = "has_many_through"
    BELONGS_TO = "belongs_to"


class RelationDefinition(BaseModel):
    """A declared association from an owner table to a target table.

    `foreign_key` is the column holding the owner's primary key on the target
    (has-one, has-many), on the owner itself (belongs-to), or on the join
    table (has-many-through, where `join_foreign_key` is the join table
    column holding the target's primary key).
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    name: str
    kind: RelationKind
    target: Any
    foreign_key: str
    through: Any = None
    join_foreign_key: Optional[str] = None

    @model_validator(mode="after")
    def _check_through(self) -> "RelationDefinition":
        if self.kind is RelationKind.HAS_MANY_THROUGH:
            if self.through is None or not self.join_foreign_key:
                raise ValueError(
                    f"Relation `{self.name}`: has-many-through needs a join table and join foreign key"
                )
        return self


class RelationState(enum.Enum):
    UNBOUND = "unbound"
    CONFIGURED = "configured"
    EXECUTED = "executed"


def _distinct(values: Iterable[Any]) -> list[Any]:
    """Non-null values in first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def _quoted(dao: "Dao", column: str) -> str:
    quoted = dao.schema.escaped_columns.get(column)
    if quoted is not None:
        return quoted
    if dao.strict:
        raise ValidationError(f"STRICT: Invalid column {column}")
    return quote_identifier(column)


def _primary_key(dao: "Dao") -> str:
    if not dao.primary_key:
        raise ValidationError(f"No primary key defined for `{dao.table_name}`")
    return dao.primary_key


class Relation:
    """A single statement on a Dao's table; not reusable once executed."""

    def __init__(self, dao: "Dao"):
        self.dao = dao
        self.builder = QueryBuilder(dao.schema, strict=dao.strict)
        self.state = RelationState.UNBOUND
        self._loads: list[tuple[str, Optional[Callable[["Relation"], Any]]]] = []

    def _check_not_executed(self) -> None:
        if self.state is RelationState.EXECUTED:
            raise BuilderStateError(
                f"Relation on `{self.dao.table_name}` was already executed; create a new one"
            )

    def _apply(self, method: str, *args: Any) -> "Relation":
        self._check_not_executed()
        getattr(self.builder, method)(*args)
        self.state = RelationState.CONFIGURED
        return self

    # builder methods

    def select(self, *fields: str | Sequence[str]) -> "Relation":
        return self._apply("select", *fields)

    def insert(self, values: Any, params: Any = None) -> "Relation":
        return self._apply("insert", values, params)

    def update(self, clause: Optional[str] = None) -> "Relation":
        return self._apply("update", clause)

    def delete(self, where: Any = None, params: Optional[Sequence[Any]] = None) -> "Relation":
        return self._apply("delete", where, params)

    def sql(self, *parts: Any) -> "Relation":
        return self._apply("sql", *parts)

    def set(self, values: Any, params: Optional[Sequence[Any]] = None) -> "Relation":
        return self._apply("set", values, params)

    def where(self, predicate: Any, params: Optional[Sequence[Any]] = None) -> "Relation":
        return self._apply("where", predicate, params)

    def id(self, value: Any) -> "Relation":
        return self._apply("id", value)

    def from_(self, clause: str) -> "Relation":
        return self._apply("from_", clause)

    def order(self, clause: str) -> "Relation":
        return self._apply("order", clause)

    order_by = order

    def limit(self, count: int) -> "Relation":
        return self._apply("limit", count)

    def offset(self, count: int) -> "Relation":
        return self._apply("offset", count)

    def page(self, index: int, size: int) -> "Relation":
        return self._apply("page", index, size)

    def returning(self, fields: str | Sequence[str]) -> "Relation":
        return self._apply("returning", fields)

    def load(self, name: str, configure: Optional[Callable[["Relation"], Any]] = None) -> "Relation":
        """Queue relation `name` for eager loading.

        `configure` receives the child Relation (already a `SELECT *`) and may
        refine it with select/where/order/load before it runs.
        """
        self._check_not_executed()
        self._loads.append((name, configure))
        self.state = RelationState.CONFIGURED
        return self

    def peek_sql(self) -> str:
        return self.builder.peek_sql()

    # execution

    def _begin_execution(self) -> None:
        self._check_not_executed()
        self.state = RelationState.EXECUTED

    async def exec(self) -> QueryResult:
        """Run the statement, eager-load queued relations onto its rows, return the result."""
        self._begin_execution()
        sql = self.builder.to_sql()
        result = await self.dao.client.exec(sql)
        if self._loads:
            await self._eager_load(result.rows)
        return result

    async def all(self) -> list[Row]:
        result = await self.exec()
        return result.rows

    async def first(self) -> Optional[Row]:
        """First row or None; a SELECT without a limit is limited to one row."""
        self._check_not_executed()
        if self.builder.type is QueryType.SELECT and self.builder.get_buffer(Slot.LIMIT) is None:
            self.builder.limit(1)
        result = await self.exec()
        if result.rows:
            return result.rows[0]
        return None

    async def in_(self, rows: Row | list[Row]) -> Row | list[Row]:
        """Eager-load queued relations onto rows fetched earlier, in place."""
        self._begin_execution()
        if rows is None:
            return rows
        parents = [rows] if isinstance(rows, Mapping) else list(rows)
        await self._eager_load(parents)
        return rows

    # eager loading

    async def _eager_load(self, parents: list[Row]) -> None:
        for name, configure in self._loads:
            definition = self.dao.relation(name)
            logger.debug("Eager loading `%s` onto %d `%s` rows", name, len(parents), self.dao.table_name)
            loader = {
                RelationKind.HAS_ONE: self._load_children,
                RelationKind.HAS_MANY: self._load_children,
                RelationKind.BELONGS_TO: self._load_parent,
                RelationKind.HAS_MANY_THROUGH: self._load_through,
            }[definition.kind]
            await loader(definition, parents, configure)

    @staticmethod
    def _child(dao: "Dao", configure: Optional[Callable[["Relation"], Any]]) -> "Relation":
        child = Relation(dao).select()
        if configure is not None:
            configure(child)
        return child

    @staticmethod
    async def _fetch_in(child: "Relation", column: str, keys: list[Any]) -> list[Row]:
        child.builder.and_where(f"{_quoted(child.dao, column)} IN (?)", [keys])
        return await child.all()

    async def _load_children(self, definition: RelationDefinition, parents: list[Row],
                             configure: Optional[Callable]) -> None:
        """has-one / has-many: children whose foreign key is one of the parents' keys."""
        primary_key = _primary_key(self.dao)
        many = definition.kind is RelationKind.HAS_MANY
        keys = _distinct(row.get(primary_key) for row in parents)
        groups: dict[Any, list[Row]] = defaultdict(list)
        if keys:
            child = self._child(definition.target, configure)
            for row in await self._fetch_in(child, definition.foreign_key, keys):
                groups[row.get(definition.foreign_key)].append(row)
        for parent in parents:
            group = groups.get(parent.get(primary_key), [])
            if many:
                parent[definition.name] = list(group)
            elif group:
                parent[definition.name] = group[0]

    async def _load_parent(self, definition: RelationDefinition, parents: list[Row],
                           configure: Optional[Callable]) -> None:
        """belongs-to: the target rows referenced by the parents' foreign keys."""
        target_key = _primary_key(definition.target)
        keys = _distinct(row.get(definition.foreign_key) for row in parents)
        if not keys:
            return
        child = self._child(definition.target, configure)
        index: dict[Any, Row] = {}
        for row in await self._fetch_in(child, target_key, keys):
            index.setdefault(row.get(target_key), row)
        for parent in parents:
            match = index.get(parent.get(definition.foreign_key))
            if match is not None:
                parent[definition.name] = match

    async def _load_through(self, definition: RelationDefinition, parents: list[Row],
                            configure: Optional[Callable]) -> None:
        """has-many-through: join rows first, then the targets they point to."""
        primary_key = _primary_key(self.dao)
        target_key = _primary_key(definition.target)
        keys = _distinct(row.get(primary_key) for row in parents)
        join_rows: list[Row] = []
        targets: dict[Any, Row] = {}
        if keys:
            join = Relation(definition.through).select()
            join_rows = await self._fetch_in(join, definition.foreign_key, keys)
            target_keys = _distinct(row.get(definition.join_foreign_key) for row in join_rows)
            if target_keys:
                child = self._child(definition.target, configure)
                for row in await self._fetch_in(child, target_key, target_keys):
                    targets.setdefault(row.get(target_key), row)
        walks: dict[Any, list[Any]] = defaultdict(list)
        for row in join_rows:
            walks[row.get(definition.foreign_key)].append(row.get(definition.join_foreign_key))
        for parent in parents:
            parent[definition.name] = [
                targets[key] for key in walks.get(parent.get(primary_key), []) if key in targets
            ]
