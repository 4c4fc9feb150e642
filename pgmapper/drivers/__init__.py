"""Database drivers: one class per backend."""

from ..errors import ConfigurationError
from .base import Connection, Driver, QueryResult
from .postgres import PostgresConnection, PostgresDriver

_DRIVER_CLASSES: tuple[type[Driver], ...] = (
    PostgresDriver,
)


def get_driver_for_scheme(scheme: str) -> Driver:
    """Return a Driver instance for the given URL scheme (e.g. 'tcp', 'postgresql')."""
    normalized = (scheme or "").split("+")[0].lower()
    for driver_cls in _DRIVER_CLASSES:
        if normalized in driver_cls.SUPPORTED_SCHEMA:
            return driver_cls()
    raise ConfigurationError(f"Unsupported database scheme: {scheme}")


__all__ = [
    "Connection",
    "Driver",
    "QueryResult",
    "PostgresConnection",
    "PostgresDriver",
    "get_driver_for_scheme",
]
