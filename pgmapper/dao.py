"""Data access object: the entry point for one table."""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, TYPE_CHECKING

from .errors import ConfigurationError, RelationNotFoundError, ValidationError
from .relation import Relation, RelationDefinition, RelationKind
from .schema import Schema, SchemaCatalog

if TYPE_CHECKING:
    from .client import Client


class Dao:
    """Maps one table; holds its schema, its relations and CRUD shortcuts.

    Args:
        table_name: Name of the mapped table.
        strict: Turn unknown columns and unfiltered UPDATE/DELETE into errors.
        primary_key: Primary key column to use when the database declares none.
    """

    def __init__(self, table_name: str, strict: bool = False, primary_key: Optional[str] = None):
        if not table_name:
            raise ConfigurationError("Table name required.")
        self.table_name = table_name
        self.strict = bool(strict)
        self.options = {"table_name": table_name, "strict": strict, "primary_key": primary_key}
        self.client: Optional["Client"] = None
        self._schema: Optional[Schema] = None
        self._relations: dict[str, RelationDefinition] = {}

    def __repr__(self):
        return f"<{type(self).__name__} {self.table_name}>"

    async def bind(self, client: "Client", catalog: SchemaCatalog) -> Schema:
        """Attach the client and load this table's schema."""
        self.client = client
        schema = await catalog.load(client, self.table_name)
        if not schema.primary_key and self.options["primary_key"]:
            schema = schema.with_primary_key(self.options["primary_key"])
        self._schema = schema
        return schema

    @property
    def schema(self) -> Schema:
        if self._schema is None:
            raise ConfigurationError(
                f"`{self.table_name}` is not bound to a database yet; call Mapper.initialize() first"
            )
        return self._schema

    @property
    def escaped_table_name(self) -> str:
        return self.schema.escaped_table_name

    @property
    def primary_key(self) -> Optional[str]:
        return self.schema.primary_key

    # relations

    def _add_relation(self, **definition: Any) -> "Dao":
        relation = RelationDefinition(**definition)
        self._relations[relation.name] = relation
        return self

    def has_many(self, name: str, target: "Dao", foreign_key: str) -> "Dao":
        """One-to-many: `Post.has_many("comments", Comment, "post_id")`."""
        return self._add_relation(name=name, kind=RelationKind.HAS_MANY,
                                  target=target, foreign_key=foreign_key)

    def has_one(self, name: str, target: "Dao", foreign_key: str) -> "Dao":
        """One-to-one owned by this table: `Post.has_one("more_details", MoreDetail, "post_id")`."""
        return self._add_relation(name=name, kind=RelationKind.HAS_ONE,
                                  target=target, foreign_key=foreign_key)

    def belongs_to(self, name: str, target: "Dao", foreign_key: str) -> "Dao":
        """Reference held by this table: `Comment.belongs_to("post", Post, "post_id")`."""
        return self._add_relation(name=name, kind=RelationKind.BELONGS_TO,
                                  target=target, foreign_key=foreign_key)

    def has_many_through(self, name: str, target: "Dao", join_foreign_key: str,
                         through: "Dao", foreign_key: str) -> "Dao":
        """Many-to-many through a join table.

        `Post.has_many_through("tags", Tag, "tag_id", PostTag, "post_id")`: tags
        whose id is in `post_tags.tag_id` for rows where `post_tags.post_id` is
        the post's id.
        """
        return self._add_relation(name=name, kind=RelationKind.HAS_MANY_THROUGH,
                                  target=target, foreign_key=foreign_key,
                                  through=through, join_foreign_key=join_foreign_key)

    def relation(self, name: str) -> RelationDefinition:
        try:
            return self._relations[name]
        except KeyError as error:
            raise RelationNotFoundError(self.table_name, name) from error

    @property
    def relations(self) -> dict[str, RelationDefinition]:
        return dict(self._relations)

    # relation factories

    def _bound_client(self) -> "Client":
        if self.client is None:
            raise ConfigurationError(
                f"`{self.table_name}` is not bound to a database yet; call Mapper.initialize() first"
            )
        return self.client

    def _relation(self) -> Relation:
        self._bound_client()
        return Relation(self)

    def select(self, *fields: str | Sequence[str]) -> Relation:
        return self._relation().select(*fields)

    def insert(self, values: Any, params: Any = None) -> Relation:
        return self._relation().insert(values, params)

    def update(self, clause: Optional[str] = None) -> Relation:
        return self._relation().update(clause)

    def delete(self, where: Any = None, params: Optional[Sequence[Any]] = None) -> Relation:
        return self._relation().delete(where, params)

    def sql(self, *parts: Any) -> Relation:
        return self._relation().sql(*parts)

    def where(self, predicate: Any, params: Optional[Sequence[Any]] = None) -> Relation:
        return self._relation().select().where(predicate, params)

    def id(self, value: Any) -> Relation:
        return self._relation().select().id(value)

    def set(self, values: Any, params: Optional[Sequence[Any]] = None) -> Relation:
        return self._relation().update().set(values, params)

    def load(self, name: str, configure: Optional[Callable[[Relation], Any]] = None) -> Relation:
        return self._relation().select().load(name, configure)

    # shortcuts

    async def all(self, sql: Optional[str] = None, params: Optional[Sequence[Any]] = None) -> list[dict]:
        """Every row of the table, or the rows of `sql` when given."""
        if sql is None:
            sql = f"SELECT * FROM {self.escaped_table_name};"
        return await self._bound_client().all(sql, params)

    async def first(self, sql: Optional[str] = None, params: Optional[Sequence[Any]] = None) -> Optional[dict]:
        if sql is None:
            sql = f"SELECT * FROM {self.escaped_table_name} LIMIT 1;"
        return await self._bound_client().first(sql, params)

    async def count(self) -> int:
        return await self._bound_client().scalar(f"SELECT count(*) FROM {self.escaped_table_name};")

    async def truncate(self) -> None:
        await self._bound_client().exec(f"TRUNCATE {self.escaped_table_name};")

    async def create(self, row: dict) -> Optional[dict]:
        """Insert row and return what RETURNING yields (the primary key by default)."""
        return await self.insert(row).first()

    async def save(self, row: dict):
        """Update every non-key column of row, filtered by its primary key."""
        primary_key = self._require_primary_key()
        if primary_key not in row:
            raise ValidationError(f"Cannot save `{self.table_name}` row without `{primary_key}`")
        values = {key: value for key, value in row.items() if key != primary_key}
        return await self.update().set(values).id(row[primary_key]).exec()

    async def delete_by_id(self, value: Any):
        self._require_primary_key()
        return await self.delete().id(value).exec()

    async def find_by_id(self, value: Any) -> Optional[dict]:
        self._require_primary_key()
        return await self.id(value).first()

    def _require_primary_key(self) -> str:
        if not self.primary_key:
            raise ValidationError(f"No primary key defined for `{self.table_name}`")
        return self.primary_key
