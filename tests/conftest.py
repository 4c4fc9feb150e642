import asyncio
import copy
import re
import datetime
from types import SimpleNamespace
from typing import Any, ClassVar, Optional

import pytest
import pytest_asyncio
from pydantic import Field

from pgmapper.drivers import Connection, Driver, QueryResult
from pgmapper.mapper import Mapper


_TABLE_NAME = re.compile(r"table_name = '([^']*)';$")


class FakeConnection(Connection):

    def __init__(self, driver: "FakeDriver"):
        self._driver = driver

    async def query(self, sql: str) -> QueryResult:
        return await self._driver.respond(sql)

    async def close(self) -> None:
        self._driver.closed += 1


class FakeDriver(Driver):
    """In-memory driver: answers information_schema queries from `tables`,
    every other statement from `responses`, and records what was issued."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("fake",)

    tables: dict[str, tuple[list[str], Optional[str]]] = Field(default_factory=dict)
    responses: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    row_counts: dict[str, int] = Field(default_factory=dict)
    errors: dict[str, Exception] = Field(default_factory=dict)
    delays: dict[str, float] = Field(default_factory=dict)
    issued: list[str] = Field(default_factory=list)
    opened: int = 0
    closed: int = 0

    @property
    def data_queries(self) -> list[str]:
        return [sql for sql in self.issued if "information_schema" not in sql]

    async def connect(self, url: str) -> FakeConnection:
        self.opened += 1
        return FakeConnection(self)

    async def respond(self, sql: str) -> QueryResult:
        self.issued.append(sql)
        delay = self.delays.get(sql)
        if delay:
            await asyncio.sleep(delay)
        if sql in self.errors:
            raise self.errors[sql]
        match = _TABLE_NAME.search(sql)
        if "information_schema.table_constraints" in sql and match:
            _, primary_key = self.tables.get(match.group(1), ([], None))
            rows = [{"column_name": primary_key}] if primary_key else []
        elif "information_schema.columns" in sql and match:
            columns, _ = self.tables.get(match.group(1), ([], None))
            rows = [
                {
                    "column_name": name,
                    "is_nullable": "YES",
                    "data_type": "integer",
                    "character_maximum_length": None,
                    "column_default": None,
                }
                for name in columns
            ]
        else:
            rows = copy.deepcopy(self.responses.get(sql, []))
        return QueryResult(rows=rows, row_count=self.row_counts.get(sql, len(rows)))


BLOG_TABLES = {
    "posts": (["id", "title", "blurb", "body", "published", "created_at", "updated_at"], "id"),
    "comments": (["id", "post_id", "comment", "created_at"], "id"),
    "tags": (["id", "name"], None),
    "post_tags": (["id", "post_id", "tag_id"], "id"),
    "post_more_details": (["id", "post_id", "extra"], "id"),
    "todos2": (["id", "text", "done", "order"], "id"),
}

_NOW = datetime.datetime(2024, 5, 1, 12, 0, 0)

BLOG_ROWS = {
    "posts": [
        {"id": 1, "title": "Some Title 1", "blurb": "Some blurb 1", "body": "Some body 1", "published": False},
        {"id": 2, "title": "Some Title 2", "blurb": None, "body": "Some body 2", "published": True},
        {"id": 3, "title": "Some Title 3", "blurb": "Some blurb 3", "body": "Some body 3", "published": True},
        {"id": 4, "title": "'lol\\\"", "blurb": "Extra'\"\\\"''--", "body": "\"\"\"--\\'\"", "published": False},
    ],
    "comments": [
        {"id": index, "post_id": post_id, "comment": f"Comment {index}", "created_at": _NOW}
        for index, post_id in enumerate([1, 1, 2, 2, 3, 3, 4, 4, 4], start=1)
    ],
    "tags": [
        {"id": 1, "name": "funny"},
        {"id": 2, "name": "coding"},
        {"id": 3, "name": "javascript"},
        {"id": 4, "name": "git"},
    ],
    "post_tags": [
        {"id": 1, "post_id": 1, "tag_id": 1},
        {"id": 2, "post_id": 1, "tag_id": 2},
        {"id": 3, "post_id": 2, "tag_id": 3},
        {"id": 4, "post_id": 2, "tag_id": 3},
        {"id": 5, "post_id": 3, "tag_id": 1},
        {"id": 6, "post_id": 4, "tag_id": 4},
    ],
    "post_more_details": [
        {"id": 1, "post_id": 1, "extra": "extra"},
    ],
    "todos2": [
        {"id": 1, "text": "Become a rock star", "done": False, "order": 1},
        {"id": 2, "text": "Change me", "done": False, "order": 2},
        {"id": 3, "text": "Delete", "done": False, "order": 314},
        {"id": 4, "text": "Delete2", "done": False, "order": 321},
        {"id": 5, "text": "UpdateMe", "done": False, "order": 322},
    ],
}


async def build_blog(driver: FakeDriver, strict: bool = False) -> SimpleNamespace:
    mapper = Mapper()
    Comment = mapper.map("comments")
    Post = mapper.map("posts")
    PostTag = mapper.map("post_tags")
    MoreDetail = mapper.map("post_more_details")
    Tag = mapper.map({"table_name": "tags", "primary_key": "id"})
    Todo = mapper.map("todos2")

    Post.has_many_through("tags", Tag, "tag_id", PostTag, "post_id")
    Post.has_many("comments", Comment, "post_id")
    Post.has_one("more_details", MoreDetail, "post_id")
    Comment.belongs_to("post", Post, "post_id")

    await mapper.initialize({"database": "mapper_test", "strict": strict}, driver=driver)
    driver.issued.clear()
    return SimpleNamespace(
        mapper=mapper, driver=driver,
        Post=Post, Comment=Comment, PostTag=PostTag,
        MoreDetail=MoreDetail, Tag=Tag, Todo=Todo,
    )


@pytest.fixture
def rows():
    """Fresh copies of the blog fixture rows, keyed by table name."""
    return copy.deepcopy(BLOG_ROWS)


@pytest.fixture
def make_driver():
    """Factory for FakeDriver instances (defaults to the blog tables)."""
    def factory(**kwargs):
        kwargs.setdefault("tables", BLOG_TABLES)
        return FakeDriver(**kwargs)
    return factory


@pytest.fixture
def driver(make_driver):
    return make_driver()


@pytest_asyncio.fixture
async def blog(driver):
    return await build_blog(driver)


@pytest_asyncio.fixture
async def strict_blog(make_driver):
    return await build_blog(make_driver(), strict=True)
