"""Tests for pgmapper.schema: introspection queries, memoization and single-flight loading."""

import asyncio
import logging

import pytest

from pgmapper.client import Client
from pgmapper.errors import DriverError
from pgmapper.schema import Schema, SchemaCatalog

pytestmark = pytest.mark.asyncio


COLUMNS_SQL = (
    "SELECT column_name, is_nullable, data_type, character_maximum_length, column_default "
    "FROM information_schema.columns "
    "WHERE table_catalog = 'mapper_test' AND table_name = 'posts';"
)
PRIMARY_KEY_SQL = (
    "SELECT column_name "
    "FROM information_schema.table_constraints TC "
    "INNER JOIN information_schema.key_column_usage KCU ON TC.constraint_name = KCU.constraint_name "
    "WHERE constraint_type = 'PRIMARY KEY' AND TC.table_catalog = 'mapper_test' AND TC.table_name = 'posts';"
)


@pytest.fixture
def client(driver):
    return Client({"database": "mapper_test"}, driver=driver)


async def test_load_issues_both_metadata_queries_in_order(client, driver):
    await SchemaCatalog().load(client, "posts")
    assert driver.issued == [COLUMNS_SQL, PRIMARY_KEY_SQL]


async def test_load_builds_schema(client):
    schema = await SchemaCatalog().load(client, "posts")
    assert isinstance(schema, Schema)
    assert schema.table_name == "posts"
    assert schema.escaped_table_name == '"posts"'
    assert schema.columns == ["id", "title", "blurb", "body", "published", "created_at", "updated_at"]
    assert schema.escaped_columns["published"] == '"published"'
    assert schema.primary_key == "id"
    assert schema.fields[0].column_name == "id"
    assert schema.fields[0].is_nullable == "YES"


async def test_schema_is_memoized(client, driver):
    catalog = SchemaCatalog()
    first = await catalog.load(client, "posts")
    driver.issued.clear()
    second = await catalog.load(client, "posts")
    assert second is first
    assert driver.issued == []
    assert "posts" in catalog
    assert catalog.get("posts") is first


async def test_concurrent_loads_share_one_introspection(client, driver):
    driver.delays[COLUMNS_SQL] = 0.01
    catalog = SchemaCatalog()
    first, second = await asyncio.gather(catalog.load(client, "posts"), catalog.load(client, "posts"))
    assert first is second
    assert driver.issued == [COLUMNS_SQL, PRIMARY_KEY_SQL]


async def test_failed_load_is_not_cached(client, driver):
    catalog = SchemaCatalog()
    driver.errors[COLUMNS_SQL] = DriverError("relation does not exist")
    with pytest.raises(DriverError):
        await catalog.load(client, "posts")
    assert "posts" not in catalog

    del driver.errors[COLUMNS_SQL]
    schema = await catalog.load(client, "posts")
    assert schema.primary_key == "id"


async def test_clear(client, driver):
    catalog = SchemaCatalog()
    await catalog.load(client, "posts")
    catalog.clear()
    assert "posts" not in catalog


async def test_missing_primary_key_is_none(client):
    schema = await SchemaCatalog().load(client, "tags")
    assert schema.primary_key is None
    assert schema.columns == ["id", "name"]


async def test_strict_warns_about_missing_primary_key(driver, caplog):
    client = Client({"database": "mapper_test", "strict": True}, driver=driver)
    with caplog.at_level(logging.WARNING, logger="pgmapper.schema"):
        await SchemaCatalog().load(client, "tags")
    assert "STRICT WARNING: Primary Key not defined in database for `tags`." in caplog.text


async def test_no_warning_when_not_strict(client, caplog):
    with caplog.at_level(logging.WARNING, logger="pgmapper.schema"):
        await SchemaCatalog().load(client, "tags")
    assert "STRICT WARNING" not in caplog.text


async def test_with_primary_key(client):
    schema = await SchemaCatalog().load(client, "tags")
    patched = schema.with_primary_key("id")
    assert patched.primary_key == "id"
    assert schema.primary_key is None
