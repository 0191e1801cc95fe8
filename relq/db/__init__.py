"""The `db` module provides the tools to execute rendered statements on actual database systems.

The central entrypoint to all database interaction is the abstract `Database` class. This class is inherited by all supported
database systems (currently PostgreSQL and DuckDB). Each `Database` instance executes SQL statements and reports the
placeholder style that statements have to be rendered with.

Databases are usually obtained via the `connect` functions of the `postgres` and `duckdb` modules, which register the new
database on the `DatabasePool`. Queries of entities that do not declare a specific database are executed on the current
database of the pool (see `current_database`).
"""

from __future__ import annotations

from . import _duckdb as duckdb
from . import postgres
from ._db import (
    Database,
    DatabasePool,
    DatabaseServerError,
    DatabaseUserError,
    ExecutionResult,
    ResultRow,
    ResultSet,
    current_database,
    resolve_database,
)

__all__ = [
    "postgres",
    "duckdb",
    "Database",
    "DatabasePool",
    "DatabaseServerError",
    "DatabaseUserError",
    "ExecutionResult",
    "ResultRow",
    "ResultSet",
    "current_database",
    "resolve_database",
]
