"""Executes queries and decides what executing a query actually means.

Executing a query is controlled by an `ExecutionMode`:

- `ExecutionMode.Execute` (the default) runs the query on a database, transforms the result rows of select queries by the
  entity's transforms and finally applies the post-queries.
- `ExecutionMode.SqlOnly` only renders the query and produces its SQL text.
- `ExecutionMode.DryRun` prints the query and produces a placeholder result instead of contacting the database. The
  post-queries are still applied to the placeholder result.
- `ExecutionMode.QueryOnly` produces the query object itself.

The mode can be passed to each verb explicitly (e.g. ``select(users, mode=ExecutionMode.SqlOnly)``) or set for an entire
block of code via the context managers of this module:

>>> with dry_run():
...     select(users, lambda q: with_(q, email))

The current mode is stored in an `ExecutionContext` that is local to the current thread (or asyncio task) and follows a
stack discipline: nested scopes override the mode for their extent and restore the previous one afterwards. Since hooks are
executed within the context of their query, lazily loaded relationships use the same mode and database as their parent.
"""
from __future__ import annotations

import contextlib
import contextvars
import dataclasses
import enum
import functools
import sys
from collections.abc import Generator, Sequence
from typing import Any, Optional

from . import util
from ._core import QueryKind, ResultShape
from .db import Database, DatabasePool, resolve_database
from .entities import get_rel
from .qal import (
    Query,
    QueryTransformation,
    Record,
    SubqueryExpression,
    compose,
    delete_query,
    insert_query,
    render_query,
    select_query,
    update_query,
)
from .relations import RelationshipType


class ExecutionMode(enum.Enum):
    """Determines what executing a query does."""

    Execute = "execute"
    SqlOnly = "sql"
    DryRun = "dry-run"
    QueryOnly = "query"

    def __json__(self) -> str:
        return self.value


@dataclasses.dataclass(frozen=True)
class ExecutionContext:
    """Captures how queries are executed.

    Attributes
    ----------
    mode : ExecutionMode
        What executing a query does
    database : Optional[Database | str]
        The database that queries are executed on if their entity does not specify one. This can also be the name of a
        database in the `DatabasePool`. If *None*, the current database of the pool is used.
    """
    mode: ExecutionMode = ExecutionMode.Execute
    database: Optional[Database | str] = None


_current_context: contextvars.ContextVar[ExecutionContext] = contextvars.ContextVar("relq_execution_context",
                                                                                    default=ExecutionContext())


def current_context() -> ExecutionContext:
    """Provides the execution context that is currently active."""
    return _current_context.get()


@contextlib.contextmanager
def execution_context(context: ExecutionContext) -> Generator[ExecutionContext, None, None]:
    """Activates an execution context for the extent of a *with* block. The previous context is restored afterwards."""
    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)


def execution_mode(mode: ExecutionMode) -> contextlib.AbstractContextManager[ExecutionContext]:
    """Executes all queries of a *with* block in a specific mode."""
    return execution_context(dataclasses.replace(current_context(), mode=mode))


def sql_only() -> contextlib.AbstractContextManager[ExecutionContext]:
    """Produces the SQL text of all queries of a *with* block instead of executing them."""
    return execution_mode(ExecutionMode.SqlOnly)


def dry_run() -> contextlib.AbstractContextManager[ExecutionContext]:
    """Prints all queries of a *with* block and produces placeholder results instead of contacting the database."""
    return execution_mode(ExecutionMode.DryRun)


def query_only() -> contextlib.AbstractContextManager[ExecutionContext]:
    """Produces the query objects of all queries of a *with* block instead of executing them."""
    return execution_mode(ExecutionMode.QueryOnly)


def using_database(database: Database | str) -> contextlib.AbstractContextManager[ExecutionContext]:
    """Executes all queries of a *with* block on a specific database (unless their entity specifies its own database)."""
    return execution_context(dataclasses.replace(current_context(), database=database))


def _apply_all(functions: Sequence[Any], record: Record) -> Record:
    return functools.reduce(lambda current, func: func(current), functions, record)


def apply_prepares(query: Query) -> Query:
    """Applies the prepare functions of the query's entity to the records of an insert or the values of an update.

    Prepare functions are applied in declaration order. All other queries are returned as they are.
    """
    entity = query.entity
    if entity is None or not entity.prepares:
        return query
    match query.kind:
        case QueryKind.Insert:
            return query.replace(values=tuple(_apply_all(entity.prepares, dict(record)) for record in query.values))
        case QueryKind.Update:
            return query.replace(set_fields=_apply_all(entity.prepares, dict(query.set_fields)))
        case _:
            return query


def apply_transforms(query: Query, results: Sequence[Record]) -> Sequence[Record]:
    """Applies the transforms of the query's entity to each result row, in declaration order. Only for select queries."""
    entity = query.entity
    if not query.is_select() or entity is None or not entity.transforms:
        return results
    return [_apply_all(entity.transforms, row) for row in results]


def apply_posts(query: Query, results: Any) -> Any:
    """Applies the post-queries of a query to its results, from left to right."""
    for post in query.post_queries:
        results = post(results)
    return results


def _database_reference(query: Query, database: Optional[Database | str],
                        context: ExecutionContext) -> Optional[Database | str]:
    if database is not None:
        return database
    if query.db is not None:
        return query.db
    return context.database


def _resolve_database(query: Query, database: Optional[Database | str], context: ExecutionContext) -> Database:
    reference = _database_reference(query, database, context)
    if reference is None:
        return DatabasePool.get_instance().current_database()
    return resolve_database(reference)


def _paramstyle(query: Query, database: Optional[Database | str], context: ExecutionContext) -> str:
    reference = _database_reference(query, database, context)
    return resolve_database(reference).paramstyle if reference is not None else "format"


def _dry_run_record(query: Query) -> Record:
    """Synthesizes the result row of a dry run: the primary key and the foreign key of the first belongs-to relation."""
    entity = query.entity
    record = {entity.pk if entity is not None else "id": 1}
    if entity is None:
        return record
    belongs_to = next((decl for decl in entity.relationships if decl.rel_type == RelationshipType.BelongsTo), None)
    if belongs_to is not None:
        record[get_rel(entity, belongs_to.name).fkk] = 1
    return record


def exec_query(query: Query, *, mode: Optional[ExecutionMode] = None,
               database: Optional[Database | str] = None) -> Any:
    """Executes a query according to the current `ExecutionMode`.

    Prepare functions of the query's entity are always applied first. What happens afterwards depends on the mode:

    - if the query was marked via `as_sql`, or in `ExecutionMode.SqlOnly`: the SQL text is produced
    - in `ExecutionMode.QueryOnly`: the (prepared) query is produced
    - in `ExecutionMode.DryRun`: the statement is printed along with its parameters. The result is a single placeholder row
      that maps the primary key (and the foreign key of the first belongs-to relationship) to 1, processed by all
      post-queries. The database is never contacted.
    - in `ExecutionMode.Execute`: the query is executed on its database. For select queries, the transforms of the entity
      are applied to each result row. Afterwards, the post-queries are applied to the result.

    If the execution fails, no transforms or post-queries are applied and the error is passed on unmodified.

    Parameters
    ----------
    query : Query
        The query to execute
    mode : Optional[ExecutionMode], optional
        Overrides the mode of the current `ExecutionContext`
    database : Optional[Database | str], optional
        Overrides the database. Otherwise the database of the query's entity is used, then the database of the current
        context and finally the current database of the `DatabasePool`.

    Returns
    -------
    Any
        The result as determined by the mode. In *Execute* mode, select queries produce their (processed) result rows and
        all other statements the rows of their *RETURNING* clause or the number of affected rows.
    """
    context = current_context()
    mode = mode if mode is not None else context.mode
    query = apply_prepares(query)

    if query.render_as_sql or mode == ExecutionMode.SqlOnly:
        return render_query(query, paramstyle=_paramstyle(query, database, context)).sql
    if mode == ExecutionMode.QueryOnly:
        return query

    hook_context = ExecutionContext(mode, _database_reference(query, database, context))
    if mode == ExecutionMode.DryRun:
        sql, params = render_query(query, paramstyle=_paramstyle(query, database, context))
        log = util.make_logger(True, file=sys.stdout)
        log("dry run ::", sql, "::", list(params))
        with execution_context(hook_context):
            return apply_posts(query, [_dry_run_record(query)])

    db = _resolve_database(query, database, context)
    results = db.execute_query(query)
    with execution_context(hook_context):
        results = apply_transforms(query, results)
        return apply_posts(query, results)


def select(target: Any, *body: QueryTransformation, mode: Optional[ExecutionMode] = None,
           database: Optional[Database | str] = None) -> Any:
    """Builds a select query for an entity (or a table), applies all transformations and executes it.

    Examples
    --------
    >>> select(users, lambda q: where(q, {"active": True}), lambda q: with_(q, email), lambda q: limit(q, 10))
    """
    return exec_query(compose(select_query(target), *body), mode=mode, database=database)


def insert(target: Any, *body: QueryTransformation, mode: Optional[ExecutionMode] = None,
           database: Optional[Database | str] = None) -> Any:
    """Builds an insert statement for an entity (or a table), applies all transformations and executes it.

    Examples
    --------
    >>> insert(users, lambda q: values(q, [{"name": "alice"}, {"name": "bob"}]))
    """
    return exec_query(compose(insert_query(target), *body), mode=mode, database=database)


def update(target: Any, *body: QueryTransformation, mode: Optional[ExecutionMode] = None,
           database: Optional[Database | str] = None) -> Any:
    """Builds an update statement for an entity (or a table), applies all transformations and executes it."""
    return exec_query(compose(update_query(target), *body), mode=mode, database=database)


def delete(target: Any, *body: QueryTransformation, mode: Optional[ExecutionMode] = None,
           database: Optional[Database | str] = None) -> Any:
    """Builds a delete statement for an entity (or a table), applies all transformations and executes it."""
    return exec_query(compose(delete_query(target), *body), mode=mode, database=database)


def subselect(target: Any, *body: QueryTransformation) -> SubqueryExpression:
    """Builds a select query that can be used as part of another query, e.g. in an *IN* predicate.

    Examples
    --------
    >>> select(users, lambda q: where(q, in_("id", subselect(email, lambda q: fields(q, "users_id")))))
    """
    return SubqueryExpression(exec_query(compose(select_query(target), *body), mode=ExecutionMode.QueryOnly))


def exec_raw(sql: str, params: Optional[Sequence[Any]] = None, *, results: ResultShape = ResultShape.AllRows,
             database: Optional[Database | str] = None) -> Any:
    """Executes a raw SQL statement.

    Parameters
    ----------
    sql : str
        The statement. Placeholders have to use the parameter style of the database.
    params : Optional[Sequence[Any]], optional
        The values of the placeholders
    results : ResultShape, optional
        What the execution should produce, all result rows by default
    database : Optional[Database | str], optional
        The database to execute the statement on. Defaults to the database of the current context or the current database
        of the `DatabasePool`.
    """
    reference = database if database is not None else current_context().database
    db = resolve_database(reference) if reference is not None else DatabasePool.get_instance().current_database()
    return db.execute(sql, tuple(params) if params else (), results)
