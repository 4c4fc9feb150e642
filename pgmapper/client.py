"""Statement execution against a Driver."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Optional, Sequence

from .batch import Statement, split_statements
from .config import MapperConfig
from .drivers import Driver, QueryResult, get_driver_for_scheme
from .errors import BatchExecutionError
from .utils import format_sql

logger = logging.getLogger(__name__)

_LIMIT = re.compile(r"\bLIMIT\b", re.IGNORECASE)


def _limit_one(sql: str) -> str:
    """Append `LIMIT 1` to a SELECT that has no limit yet."""
    if not sql.lstrip().upper().startswith("SELECT") or _LIMIT.search(sql):
        return sql
    stripped = sql.rstrip()
    if stripped.endswith(";"):
        return stripped[:-1] + " LIMIT 1;"
    return stripped + " LIMIT 1"


class Client:
    """Executes SQL, acquiring a connection from the driver for each statement.

    Args:
        config: Connection settings (a MapperConfig or a dict).
        driver: Driver to use; chosen from the URL scheme when omitted.
    """

    def __init__(self, config: MapperConfig | dict, driver: Optional[Driver] = None):
        self.config = MapperConfig.coerce(config)
        self.connection_string = self.config.resolved_url
        self.driver = driver or get_driver_for_scheme(self.connection_string.split("://")[0])
        self.verbose = self.config.verbose
        self.strict = self.config.strict
        self.last_error: Optional[Exception] = None

    async def _execute(self, sql: str) -> QueryResult:
        if self.verbose:
            logger.info("SQL=> %s", sql)
        connection = await self.driver.connect(self.connection_string)
        try:
            return await connection.query(sql)
        except Exception as error:
            self.last_error = error
            if self.verbose:
                logger.error("SQL=> %s", sql)
            logger.error("%s", error)
            raise
        finally:
            await connection.close()

    async def exec(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Format and execute a statement, returning rows and row count."""
        if params is not None:
            sql = format_sql(sql, params)
        return await self._execute(sql)

    async def scalar(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute sql and return the first column of the first row.

            await client.scalar("select count(*) from posts where title like ?", ["%foo%"])
        """
        result = await self.exec(sql, params)
        if not result.rows:
            return None
        return next(iter(result.rows[0].values()))

    async def all(self, sql: str, params: Optional[Sequence[Any]] = None) -> list[dict[str, Any]]:
        """Execute sql and return every row."""
        result = await self.exec(sql, params)
        return result.rows

    async def first(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[dict[str, Any]]:
        """Execute sql limited to one row and return it, or None."""
        result = await self.exec(_limit_one(sql), params)
        if result.rows:
            return result.rows[0]
        return None

    async def _run(self, statement: Statement) -> list[dict[str, Any]]:
        result = await self._execute(statement.to_sql())
        return result.rows

    async def series(self, items: Sequence[str | list]) -> list[list[dict[str, Any]]]:
        """Run a batch of statements one after the other; the first failure propagates.

            await client.series([
                "select * from posts where id = ?;", [1],
                "select title", "from posts where id = 2;",   # no args: end with ';'
            ])
        """
        results = []
        for statement in split_statements(items):
            results.append(await self._run(statement))
        return results

    async def parallel(self, items: Sequence[str | list]) -> list[list[dict[str, Any]]]:
        """Run a batch of statements concurrently; results follow input order.

        Raises BatchExecutionError listing each failed position when any fails.
        """
        statements = split_statements(items)
        outcomes = await asyncio.gather(
            *(self._run(statement) for statement in statements),
            return_exceptions=True,
        )
        errors = {
            position: outcome
            for position, outcome in enumerate(outcomes)
            if isinstance(outcome, BaseException)
        }
        if errors:
            results = [None if position in errors else outcome
                       for position, outcome in enumerate(outcomes)]
            raise BatchExecutionError(errors, results)
        return list(outcomes)

    async def close(self) -> None:
        """Release driver resources."""
        await self.driver.close()
