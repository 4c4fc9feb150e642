"""PostgreSQL driver on psycopg2."""

import asyncio
import logging
import urllib.parse
from typing import Any, ClassVar, Optional

from pydantic import PrivateAttr

from ..errors import DriverError
from .base import Connection, Driver, QueryResult

logger = logging.getLogger(__name__)

# literals are written with backslash escapes (see utils.escape)
SESSION_SETUP = "SET standard_conforming_strings = off"


class PostgresConnection(Connection):
    """Pooled psycopg2 connection; blocking calls run in a worker thread."""

    def __init__(self, raw, pool, slots: asyncio.Semaphore):
        self._raw = raw
        self._pool = pool
        self._slots = slots

    def _query(self, sql: str) -> QueryResult:
        import psycopg2  # pylint: disable=import-outside-toplevel
        import psycopg2.extras  # pylint: disable=import-outside-toplevel
        try:
            with self._raw.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(sql)
                rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
                return QueryResult(rows=rows, row_count=max(cursor.rowcount, 0))
        except psycopg2.Error as error:
            raise DriverError(str(error).strip(), sql=sql) from error

    async def query(self, sql: str) -> QueryResult:
        return await asyncio.to_thread(self._query, sql)

    async def close(self) -> None:
        """Hand the connection back to its pool."""
        try:
            await asyncio.to_thread(self._pool.putconn, self._raw)
        finally:
            self._slots.release()


class PostgresDriver(Driver):
    """Driver for PostgreSQL (schemes tcp, postgres, postgresql).

    Keeps one ThreadedConnectionPool per URL. At most `max_connections`
    connections are checked out at once; further connect() calls wait.
    """

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("tcp", "postgres", "postgresql")

    min_connections: int = 1
    max_connections: int = 10

    _pools: dict[str, Any] = PrivateAttr(default_factory=dict)
    _pool_lock: Optional[asyncio.Lock] = PrivateAttr(default=None)
    _slots: Optional[asyncio.Semaphore] = PrivateAttr(default=None)

    def _create_pool(self, url: str):
        import psycopg2  # pylint: disable=import-outside-toplevel
        import psycopg2.pool  # pylint: disable=import-outside-toplevel
        parsed = urllib.parse.urlparse(url)
        try:
            pool = psycopg2.pool.ThreadedConnectionPool(
                self.min_connections,
                self.max_connections,
                host=parsed.hostname,
                user=urllib.parse.unquote(parsed.username) if parsed.username else None,
                password=urllib.parse.unquote(parsed.password) if parsed.password else None,
                database=(parsed.path or "")[1:] or None,
                port=parsed.port,
            )
        except psycopg2.Error as error:
            raise DriverError(str(error).strip()) from error
        logger.debug("Connected to PostgreSQL database on %s", parsed.hostname)
        return pool

    @staticmethod
    def _checkout(pool):
        import psycopg2  # pylint: disable=import-outside-toplevel
        try:
            raw = pool.getconn()
        except psycopg2.Error as error:
            raise DriverError(str(error).strip()) from error
        if raw.autocommit:
            return raw
        # fresh connection: configure the session once
        try:
            raw.autocommit = True
            with raw.cursor() as cursor:
                cursor.execute(SESSION_SETUP)
        except psycopg2.Error as error:
            pool.putconn(raw, close=True)
            raise DriverError(str(error).strip(), sql=SESSION_SETUP) from error
        return raw

    async def _get_pool(self, url: str):
        if self._pool_lock is None:
            self._pool_lock = asyncio.Lock()
        async with self._pool_lock:
            pool = self._pools.get(url)
            if pool is None:
                pool = await asyncio.to_thread(self._create_pool, url)
                self._pools[url] = pool
        return pool

    async def connect(self, url: str) -> PostgresConnection:
        pool = await self._get_pool(url)
        if self._slots is None:
            self._slots = asyncio.Semaphore(self.max_connections)
        await self._slots.acquire()
        try:
            raw = await asyncio.to_thread(self._checkout, pool)
        except BaseException:
            self._slots.release()
            raise
        return PostgresConnection(raw, pool, self._slots)

    async def close(self) -> None:
        """Close every pooled connection."""
        pools = list(self._pools.values())
        self._pools.clear()
        for pool in pools:
            await asyncio.to_thread(pool.closeall)
