"""Table registry: declare Daos, then connect and load their schemas."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from .client import Client
from .config import MapperConfig
from .dao import Dao
from .drivers import Driver
from .errors import ConfigurationError
from .schema import SchemaCatalog

logger = logging.getLogger(__name__)


def _package_version() -> str:
    try:
        return version("pgmapper")
    except PackageNotFoundError:
        return "0.0.0"


class Mapper:
    """Owns the mapped Daos, the Client and the schema catalog.

        Post = mapper.map("posts")
        Comment = mapper.map("comments")
        Post.has_many("comments", Comment, "post_id")
        await mapper.initialize({"database": "blog", "user": "blog"})
        posts = await Post.load("comments").all()
    """

    def __init__(self):
        self.daos: dict[str, Dao] = {}
        self.client: Optional[Client] = None
        self.config: Optional[MapperConfig] = None
        self.catalog = SchemaCatalog()
        self.version = _package_version()

    def map(self, table: str | dict) -> Dao:
        """Map a table and return its Dao. Declare every mapping before initialize()."""
        if self.client is not None:
            raise ConfigurationError("Mappings must be declared before calling Mapper.initialize().")
        options = {"table_name": table} if isinstance(table, str) else dict(table)
        if not options.get("table_name"):
            raise ConfigurationError("Table name required.")
        dao = Dao(**options)
        self.daos[dao.table_name] = dao
        return dao

    async def initialize(self, config: MapperConfig | dict, driver: Optional[Driver] = None) -> Client:
        """Connect and load the schema of every mapped table, one table at a time."""
        self.config = MapperConfig.coerce(config)
        logger.debug("Initializing mapper for database %s", self.config.database_name)
        client = Client(self.config, driver=driver)
        for dao in self.daos.values():
            dao.strict = dao.strict or self.config.strict
            try:
                await dao.bind(client, self.catalog)
            except Exception:
                logger.error("ERROR setting schema for `%s`", dao.table_name)
                raise
        self.client = client
        return client

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


mapper = Mapper()


def map(table: str | dict) -> Dao:  # pylint: disable=redefined-builtin
    """Map a table on the default mapper."""
    return mapper.map(table)


async def initialize(config: MapperConfig | dict, driver: Optional[Driver] = None) -> Client:
    """Initialize the default mapper."""
    return await mapper.initialize(config, driver=driver)
