"""Mock Tables - An in-memory, schema-declared relational store for tests."""

from mock_tables.database import Database, factory
from mock_tables.errors import (
    HTTPError,
    HTTPErrorType,
    OperationError,
    OperationErrorType,
)
from mock_tables.parsing import QueryParser
from mock_tables.query import Query
from mock_tables.rest import create_app, generate_rest_handlers, install_error_handlers
from mock_tables.table import Table
from mock_tables.types import (
    ModelRegistry,
    PrimaryKey,
    RelationDefinition,
    RelationKind,
    find_primary_key,
    many_of,
    one_of,
    primary_key,
)
from mock_tables.update import Derive, Replace

__all__ = [
    # Main API
    "Database",
    "factory",
    "Query",
    "QueryParser",
    "Table",
    # Declarations
    "primary_key",
    "one_of",
    "many_of",
    "find_primary_key",
    "ModelRegistry",
    "PrimaryKey",
    "RelationDefinition",
    "RelationKind",
    # Updates
    "Derive",
    "Replace",
    # Errors
    "OperationError",
    "OperationErrorType",
    "HTTPError",
    "HTTPErrorType",
    # Request handlers
    "create_app",
    "generate_rest_handlers",
    "install_error_handlers",
]

__version__ = "0.1.0"
