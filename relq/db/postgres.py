"""Contains the Postgres implementation of the Database interface.

The connection is established via psycopg 3 and runs in autocommit mode: each statement is its own transaction.
"""
from __future__ import annotations

import os
import warnings
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import psycopg
import psycopg.rows

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


class PostgresInterface(Database):
    """Database implementation for PostgreSQL backends.

    Parameters
    ----------
    connect_string : str
        Connection string for `psycopg` to establish a connection to the Postgres server
    system_name : str, optional
        Description of the specific Postgres server, by default *Postgres*
    application_name : str, optional
        Identifier for the Postgres server. This will be the name that is shown in the server logs and process lists.
    client_encoding : str, optional
        The client encoding to use for the connection, by default *UTF8*
    debug : bool, optional
        Whether all executed statements should be logged. Defaults to *False*.
    """

    def __init__(self, connect_string: str, system_name: str = "Postgres", *, application_name: str = "relq",
                 client_encoding: str = "UTF8", debug: bool = False) -> None:
        self.connect_string = connect_string
        self._application_name = application_name or "relq"
        self._client_encoding = client_encoding
        self._init_connection()
        super().__init__(system_name, debug=debug)

    @property
    def paramstyle(self) -> str:
        return "format"

    def execute(self, sql: str, params: Sequence[Any] = (), results: ResultShape = ResultShape.AllRows) -> ExecutionResult:
        self._log("Executing", sql, "::", list(params))
        try:
            self._cursor.execute(sql, list(params) if params else None)
            has_rows = self._cursor.description is not None
            match results:
                case ResultShape.AllRows:
                    return self._cursor.fetchall() if has_rows else []
                case ResultShape.GeneratedKeys:
                    return self._cursor.fetchall() if has_rows else self._cursor.rowcount
                case _:
                    return None
        except (psycopg.InternalError, psycopg.OperationalError) as e:
            raise DatabaseServerError(error_message(sql, params, e), e)
        except psycopg.Error as e:
            raise DatabaseUserError(error_message(sql, params, e), e)

    def database_name(self) -> str:
        return self._connection.info.dbname

    def database_system_version(self) -> str:
        """Provides the version of the Postgres server, e.g. *16.2*."""
        version = self._connection.info.server_version
        return f"{version // 10000}.{version % 10000}"

    def describe(self) -> util.jsondict:
        return {
            "system_name": self.database_system_name(),
            "system_version": self.database_system_version(),
            "database": self.database_name(),
        }

    def connection(self) -> psycopg.Connection:
        """Provides the current database connection.

        Returns
        -------
        psycopg.Connection
            The connection
        """
        return self._connection

    def reset_connection(self) -> None:
        """Closes the current connection and establishes a new one."""
        self.close()
        self._init_connection()

    def close(self) -> None:
        self._cursor.close()
        self._connection.close()

    def _init_connection(self) -> None:
        """Sets all default connection parameters and creates the actual database cursor."""
        self._connection: psycopg.Connection = psycopg.connect(
            self.connect_string,
            application_name=self._application_name,
            client_encoding=self._client_encoding,
            row_factory=psycopg.rows.dict_row,
        )
        self._connection.autocommit = True
        self._cursor: psycopg.Cursor = self._connection.cursor()


def _reconnect(name: str, *, pool: DatabasePool) -> PostgresInterface:
    """Fetches a connection from the database pool.

    If the connection is in a bad state (e.g. because the user called close() before), it is re-established.

    Parameters
    ----------
    name : str
        The name of the database connection in the pool.
    pool : DatabasePool
        The current pool.
    """
    current_instance: PostgresInterface = pool.retrieve_database(name)
    if current_instance.connection().closed:
        current_instance.reset_connection()
    return current_instance


def connect(*, name: str = "postgres", application_name: str = "relq", connect_string: str = "",
            config_file: str | Path = "", encoding: str = "UTF8", refresh: bool = False, private: bool = False,
            debug: bool = False) -> PostgresInterface:
    """Convenience function to seamlessly connect to a Postgres instance.

    This function obtains a connection to a Postgres database by trying the following methods in order:

    1. if the connect-string is supplied directly via the `connect_string` parameter, this is used
    2. the connect string is read from the `config_file` if this parameter is supplied. This file has to be located in the
       current working directory, but absolute and relative paths are supported. If the file does not exist, an error is
       raised.
    3. the connect string is read from the default connection file *.psycopg_connection* in the current working directory
    4. the connection parameters are read from the standard Postgres environment variables (e.g. *PGDATABASE*, *PGHOST*, ...).
       This method is triggered via the presence of the *PGDATABASE* environment variable. Note that this method is generally
       discouraged due to its implicit and non-obvious nature. A warning is emitted if this method is used.

    If none of these methods worked, an error is raised.

    After a connection to the Postgres instance has been obtained, it is registered automatically on the current
    `DatabasePool` instance. This can be changed via the `private` parameter.

    Parameters
    ----------
    name : str, optional
        A name to identify the current connection if multiple connections to different Postgres instances should be maintained.
        This is used to register the instance on the `DatabasePool`. Defaults to *postgres*.
    application_name : str, optional
        Identifier for the Postgres server. This will be the name that is shown in the server logs and process lists.
    connect_string : str, optional
        A Psycopg-compatible connect string for the database. Supplying this parameter overwrites any other connection
        information
    config_file : str | Path, optional
        A file containing a Psycopg-compatible connect string for the database.
    encoding : str, optional
        The client enconding of the connection. Defaults to *UTF8*.
    refresh : bool, optional
        If true, a new connection to the database will always be established, even if a connection to the same database is
        already pooled. The registration key will be suffixed to prevent collisions. By default, the current connection is
        re-used. If that is the case, no further information (e.g. config strings) is read and only the `name` is accessed.
    private : bool, optional
        If true, skips registration of the new instance on the `DatabasePool`. Registration is performed by default.
    debug : bool, optional
        Whether all executed statements should be logged. Defaults to *False*.

    Returns
    -------
    PostgresInterface
        The Postgres database object

    Raises
    ------
    ValueError
        If neither a config file nor a connect string was given, or if the connect file should be used but does not exist

    References
    ----------

    .. Psyopg v3: https://www.psycopg.org/psycopg3/ This is used internally by the Postgres interface to interact with the
       database
    .. Postgres environment variables: https://www.postgresql.org/docs/current/libpq-envars.html
    """
    db_pool = DatabasePool.get_instance()
    if name in db_pool and not refresh:
        return _reconnect(name, pool=db_pool)

    if connect_string:
        connect_string = connect_string.strip()
    elif config_file:
        config_file = Path(config_file)
        if not config_file.is_file():
            wdir = os.getcwd()
            raise ValueError(
                f"Failed to obtain a database connection. Tried to read the config file '{config_file}' from "
                f"your current working directory, but the file was not found. Your working directory is {wdir}. "
                "Please either supply the connect string directly to the connect() method, or ensure that the "
                "config file exists."
            )
        with open(config_file, "r") as f:
            connect_string = f.readline().strip()
    elif Path(".psycopg_connection").is_file():
        with open(".psycopg_connection", "r") as f:
            connect_string = f.readline().strip()
    elif os.getenv("PGDATABASE"):
        warnings.warn("Using environment variables to construct connection string.")
        env_vars = {
            "PGDATABASE": "dbname",
            "PGHOST": "host",
            "PGPORT": "port",
            "PGUSER": "user",
            "PGPASSWORD": "password",
            "PGPASSFILE": "passfile",
        }
        components: list[str] = []
        for var, key in env_vars.items():
            val = os.getenv(var)
            if not val:
                continue
            components.append(f"{key} = '{val}'")
        connect_string = " ".join(components)
    else:
        raise ValueError(
            "Failed to obtain a database connection. Please either supply the connect string directly to the "
            "connect() method, or put a configuration file in your working directory. See the documentation of "
            "the connect() method for more details."
        )

    postgres_db = PostgresInterface(connect_string, application_name=application_name, system_name=name,
                                    client_encoding=encoding, debug=debug)
    if not private:
        orig_name = name
        instance_idx = 2
        while name in db_pool:
            name = f"{orig_name} - {instance_idx}"
            instance_idx += 1
        db_pool.register_database(name, postgres_db)
    return postgres_db
