"""Base Driver type: subclasses implement connect() for each backend."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, Field


class QueryResult(BaseModel):
    """Rows returned by a statement plus the number of rows it touched."""

    rows: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0


class Connection(ABC):
    """A single open backend connection."""

    @abstractmethod
    async def query(self, sql: str) -> QueryResult:
        """Execute one fully formatted statement."""
        ...  # pylint: disable=unnecessary-ellipsis

    async def close(self) -> None:
        """Release the connection."""
        return None


class Driver(BaseModel, ABC):
    """Base for database drivers; subclasses implement connect() for a given URL."""

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this driver handles (e.g. ('tcp', 'postgresql'))."""

    @abstractmethod
    async def connect(self, url: str) -> Connection:
        """Return a new Connection for the given URL."""
        ...  # pylint: disable=unnecessary-ellipsis

    async def close(self) -> None:
        """Release driver-wide resources such as pools."""
        return None
