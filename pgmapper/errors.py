"""Exception types raised by pgmapper."""


class MapperError(Exception):
    """Base class for every error raised by pgmapper."""
    pass


class ConfigurationError(MapperError, ValueError):
    """Connection parameters are missing or unusable."""
    pass


class ValidationError(MapperError, ValueError):
    """A statement would reference unknown columns or lose its filter."""
    pass


class ParameterCountError(MapperError, ValueError):
    """Placeholders and parameters do not match one to one."""
    pass


class DriverError(MapperError):
    """Failure reported by the database backend."""

    def __init__(self, message: str, sql: str = None):
        super().__init__(message)
        self.sql = sql


class RelationNotFoundError(MapperError, KeyError):
    """A relation name was requested that the table never declared."""

    def __init__(self, table_name: str, name: str):
        super().__init__(f"No relation `{name}` declared on `{table_name}`")
        self.table_name = table_name
        self.name = name

    def __str__(self):
        return self.args[0]


class BuilderStateError(MapperError, RuntimeError):
    """A builder or relation was used outside of its valid state."""
    pass


class BatchExecutionError(MapperError):
    """One or more statements of a parallel batch failed.

    `errors` maps input positions to the exception raised for that statement,
    `results` holds the rows of the statements that succeeded (None elsewhere).
    """

    def __init__(self, errors: dict[int, Exception], results: list):
        positions = ", ".join(str(position) for position in sorted(errors))
        super().__init__(f"{len(errors)} statement(s) failed at position(s) {positions}")
        self.errors = errors
        self.results = results
