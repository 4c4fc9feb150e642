"""pgmapper: a lightweight PostgreSQL data-mapper with eager-loaded relations."""

from .client import Client
from .config import MapperConfig, build_connection_string
from .dao import Dao
from .errors import (
    BatchExecutionError,
    BuilderStateError,
    ConfigurationError,
    DriverError,
    MapperError,
    ParameterCountError,
    RelationNotFoundError,
    ValidationError,
)
from .mapper import Mapper, initialize, map, mapper
from .query import QueryBuilder
from .relation import Relation, RelationKind
from .schema import Schema, SchemaCatalog
from .utils import escape, format_sql
