"""This module provides relq's basic interaction with databases.

More specifically, this includes

- an interface to execute rendered statements on a database (the `Database` interface)
- a utility to easily obtain database connections (the `DatabasePool` singleton class).

Take a look at the central `Database` class for more details. All concrete database systems need to implement this
interface.
"""

from __future__ import annotations

import abc
import atexit
from collections.abc import Sequence
from typing import Any, Optional

from .. import util
from .._core import ResultShape
from ..qal import Query, render_query
from ..qal.formatter import ParamStyle

ResultRow = dict[str, Any]
"""A single tuple from a result set, mapping column names to values."""

ResultSet = Sequence[ResultRow]
"""Simple type alias to denote the result relation of a query."""

ExecutionResult = Optional[list[ResultRow] | int]
"""What executing a statement produces: result rows, the number of affected rows, or nothing at all."""


class Database(abc.ABC):
    """A `Database` is relq's logical abstraction of physical database management systems.

    Its central purpose is the execution of rendered statements via `execute`. Each database management system will need to
    implement this basic interface. The interface also determines the placeholder style (`paramstyle`) that statements need
    to be rendered with, which is used by `execute_query` to run `Query` objects directly.

    Parameters
    ----------
    system_name : str
        The name of the database system for which the connection is established. This is only really important to
        distinguish different instances of the interface in a convenient manner.
    debug : bool, optional
        Whether each executed statement should be logged to stderr. Defaults to *False*.

    Notes
    -----
    When the `__init__` method is called, the connection to the specific database system has to be established already,
    i.e. calling any of the public methods should provide a valid result.
    """

    def __init__(self, system_name: str, *, debug: bool = False) -> None:
        self.system_name = system_name
        self._debug = debug
        self._log = util.make_logger(debug, prefix=lambda: f"{util.timestamp()} [{self.system_name}]")
        atexit.register(self.close)

    @property
    def debug(self) -> bool:
        """Whether all executed statements are logged."""
        return self._debug

    @debug.setter
    def debug(self, enabled: bool) -> None:
        self._debug = enabled
        self._log = util.make_logger(enabled, prefix=lambda: f"{util.timestamp()} [{self.system_name}]")

    @property
    @abc.abstractmethod
    def paramstyle(self) -> ParamStyle:
        """Provides the placeholder style that statements for this database have to use."""
        raise NotImplementedError

    @abc.abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = (), results: ResultShape = ResultShape.AllRows) -> ExecutionResult:
        """Executes an SQL statement.

        Parameters
        ----------
        sql : str
            The statement. Placeholders have to use the `paramstyle` of the database.
        params : Sequence[Any], optional
            The values of all placeholders, in order
        results : ResultShape, optional
            What the execution should produce. `ResultShape.AllRows` produces all result rows as dictionaries mapping
            column names to values. `ResultShape.GeneratedKeys` produces the rows of a *RETURNING* clause if there is one
            and the number of affected rows otherwise. `ResultShape.Nothing` does not produce anything.

        Returns
        -------
        ExecutionResult
            The result, as determined by `results`

        Raises
        ------
        DatabaseServerError
            If the statement failed due to an internal problem of the database server
        DatabaseUserError
            If the statement failed due to a mistake in the statement, e.g. a syntax error or a constraint violation
        """
        raise NotImplementedError

    def execute_query(self, query: Query) -> ExecutionResult:
        """Renders a query with the `paramstyle` of this database and executes it.

        Notice that this method only executes the query. Hooks such as post-queries are not applied (see
        `relq.exec_query` for that).
        """
        sql, params = render_query(query, paramstyle=self.paramstyle)
        return self.execute(sql, params, query.results)

    @abc.abstractmethod
    def database_name(self) -> str:
        """Provides the name of the (physical) database that the database interface is connected to.

        Returns
        -------
        str
            The database name
        """
        raise NotImplementedError

    def database_system_name(self) -> str:
        """Provides the name of the database management system that this interface is connected to.

        Returns
        -------
        str
            The database system name, e.g. *PostgreSQL*
        """
        return self.system_name

    @abc.abstractmethod
    def describe(self) -> util.jsondict:
        """Provides a representation of the database connection, suitable for JSON serialization."""
        raise NotImplementedError

    @abc.abstractmethod
    def close(self) -> None:
        """Shuts down all currently open connections to the database."""
        raise NotImplementedError

    def __json__(self) -> util.jsondict:
        return self.describe()

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"{self.database_system_name()} @ {self.database_name()}"


class DatabasePool:
    """The database pool allows different parts of the code base to easily obtain access to a database.

    This is achieved by maintaining one global pool of database connections which is shared by the entire system.
    New database instances can be registered and retrieved via unique keys. As long as there is just a single database
    instance, it can be accessed via the `current_database` method. Queries of entities that do not declare a database
    are executed on this database.

    The database pool implementation follows the singleton pattern. Use the static `get_instance` method to retrieve
    the database pool instance. All other functionality is provided based on that pool instance.

    References
    ----------

    .. Singleton pattern: https://en.wikipedia.org/wiki/Singleton_pattern
    """

    @staticmethod
    def get_instance() -> DatabasePool:
        """Provides access to the singleton database pool, creating a new pool instance if necessary.

        Returns
        -------
        DatabasePool
            The current pool instance
        """
        global _DB_POOL
        if _DB_POOL is None:
            _DB_POOL = DatabasePool()
        return _DB_POOL

    def __init__(self):
        self._pool: dict[str, Database] = {}

    def current_database(self) -> Database:
        """Provides the database that is currently stored in the pool, provided there is just one.

        Returns
        -------
        Database
            The only database in the pool

        Raises
        ------
        ValueError
            If there is not exactly one database instance registered in the pool
        """
        if len(self._pool) != 1:
            raise ValueError(f"Expected exactly one database in the pool, but found {len(self._pool)}. "
                             "Connect to a database or pass the database explicitly.")
        return next(iter(self._pool.values()))

    def register_database(self, key: str, db: Database) -> None:
        """Stores a new database in the pool.

        This method is typically called by the connect methods of the respective database system implementations.

        Parameters
        ----------
        key : str
            A unique identifier under which the database can be retrieved
        db : Database
            The database to store
        """
        self._pool[key] = db

    def retrieve_database(self, key: str) -> Database:
        """Provides the database that is registered under a specific key.

        Parameters
        ----------
        key : str
            The key that was previously used to register the database

        Returns
        -------
        Database
            The corresponding database

        Raises
        ------
        KeyError
            If no database was registered under the given key.
        """
        return self._pool[key]

    def empty(self) -> bool:
        """Checks, whether the database pool is currently emtpy (i.e. no database are registered).

        Returns
        -------
        bool
            *True* if the pool is empty.
        """
        return len(self._pool) == 0

    def clear(self) -> None:
        """Removes all currently registered databases from the pool."""
        self._pool.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._pool

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"DatabasePool {self._pool}"


_DB_POOL: Optional[DatabasePool] = None


def current_database() -> Database:
    """Provides the current database from the `DatabasePool`.

    Returns
    -------
    Database
        The current database instance. If there is not exactly one database in the pool, a `ValueError` is raised.

    See Also
    --------
    DatabasePool.current_database
    """
    return DatabasePool.get_instance().current_database()


def resolve_database(db: Database | str) -> Database:
    """Provides the database for a database reference: either the database itself, or the key of a pooled database."""
    if isinstance(db, str):
        return DatabasePool.get_instance().retrieve_database(db)
    return db


class DatabaseServerError(RuntimeError):
    """Indicates an error caused by the database server occured while executing a database operation.

    The error was **not** due to a mistake in the user input (such as an SQL syntax error or access privilege
    violation), but an implementation issue instead (such as out of memory during query execution).

    Parameters
    ----------
    message : str, optional
        A textual description of the error, e.g. *out of memory*. Can be left empty by default.
    context : Optional[object], optional
        Additional context information for when the error occurred, e.g. the query that caused the error. Mainly
        intended for debugging purposes.
    """

    def __init__(self, message: str = "", context: Optional[object] = None) -> None:
        super().__init__(message)
        self.ctx = context


class DatabaseUserError(RuntimeError):
    """Indicates that a database operation failed due to an error on the user's end.

    The error could be due to an SQL syntax error, a constraint violation, access privilege violation, etc.

    Parameters
    ----------
    message : str, optional
        A textual description of the error, e.g. *no such table*. Can be left empty by default.
    context : Optional[object], optional
        Additional context information for when the error occurred, e.g. the query that caused the error. Mainly
        intended for debugging purposes.
    """

    def __init__(self, message: str = "", context: Optional[object] = None) -> None:
        super().__init__(message)
        self.ctx = context


def error_message(sql: str, params: Sequence[Any], error: Exception) -> str:
    """Builds the message of a database error, including the failed statement."""
    return "\n".join([f"At {util.timestamp()}", "For query:", sql, "With parameters:", str(list(params)),
                      "Message:", str(error)])
