# We name this file _duckdb instead of duckdb to avoid conflicts with the official duckdb package. Do not change this!
# The module is available in the __init__ of the db package under the duckdb name. This solves our problems for now.
"""Contains the DuckDB implementation of the Database interface.

DuckDB is an optional dependency of relq. It is only imported once a DuckDB database is actually created.
"""
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .. import util
from .._core import ResultShape
from ._db import (
    Database,
    DatabasePool,
    DatabaseServerError,
    DatabaseUserError,
    ExecutionResult,
    error_message,
)

InMemory = ":memory:"
"""The name of DuckDB's transient in-memory database."""


class DuckDBInterface(Database):
    """Database implementation for DuckDB.

    Parameters
    ----------
    db : str | Path, optional
        The database file. By default, a transient in-memory database is used.
    system_name : str, optional
        Description of the database, by default *DuckDB*
    debug : bool, optional
        Whether all executed statements should be logged. Defaults to *False*.
    """

    def __init__(self, db: str | Path = InMemory, *, system_name: str = "DuckDB", debug: bool = False) -> None:
        import duckdb

        self._dbfile = db
        self._cur = duckdb.connect(str(db))
        super().__init__(system_name, debug=debug)

    @property
    def paramstyle(self) -> str:
        return "qmark"

    def execute(self, sql: str, params: Sequence[Any] = (), results: ResultShape = ResultShape.AllRows) -> ExecutionResult:
        import duckdb

        self._log("Executing", sql, "::", list(params))
        try:
            relation = self._cur.execute(sql, list(params)) if params else self._cur.execute(sql)
            description = relation.description
            raw_result = relation.fetchall() if description else []
        except (duckdb.InternalException, duckdb.OutOfMemoryException, duckdb.IOException) as e:
            raise DatabaseServerError(error_message(sql, params, e), e)
        except duckdb.Error as e:
            raise DatabaseUserError(error_message(sql, params, e), e)

        columns = [col[0] for col in description] if description else []
        rows = [dict(zip(columns, row)) for row in raw_result]
        match results:
            case ResultShape.AllRows:
                return rows
            case ResultShape.GeneratedKeys:
                return _affected_rows(raw_result) if _is_count_result(columns, raw_result) else rows
            case _:
                return None

    def database_name(self) -> str:
        return str(self._dbfile)

    def describe(self) -> util.jsondict:
        return {"system_name": self.database_system_name(), "database": self.database_name()}

    def connection(self):
        """Provides the underlying DuckDB connection."""
        return self._cur

    def close(self) -> None:
        self._cur.close()


def _is_count_result(columns: list[str], raw_result: list[tuple]) -> bool:
    """Checks, whether a result set is DuckDB's report of the number of affected rows of a data manipulation statement."""
    return columns == ["Count"] and len(raw_result) == 1


def _affected_rows(raw_result: list[tuple]) -> int:
    return int(util.simplify(raw_result[0]))


def connect(db: str | Path = InMemory, *, name: str = "duckdb", refresh: bool = False, private: bool = False,
            debug: bool = False) -> DuckDBInterface:
    """Convenience function to connect to a DuckDB database.

    After the database has been opened, it is registered automatically on the current `DatabasePool` instance. This can be
    changed via the `private` parameter.

    Parameters
    ----------
    db : str | Path, optional
        The database file. By default, a transient in-memory database is used.
    name : str, optional
        A name to identify the database in the `DatabasePool`. Defaults to *duckdb*.
    refresh : bool, optional
        If true, a new connection is always established, even if a database with the same name is already pooled.
    private : bool, optional
        If true, skips registration of the new instance on the `DatabasePool`. Registration is performed by default.
    debug : bool, optional
        Whether all executed statements should be logged. Defaults to *False*.

    Returns
    -------
    DuckDBInterface
        The DuckDB database object
    """
    db_pool = DatabasePool.get_instance()
    if name in db_pool and not refresh:
        return db_pool.retrieve_database(name)

    duckdb_instance = DuckDBInterface(db, system_name=name, debug=debug)
    if not private:
        db_pool.register_database(name, duckdb_instance)
    return duckdb_instance
