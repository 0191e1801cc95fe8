from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any, Optional

from .._core import (
    AllColumns,
    JoinType,
    QueryKind,
    QueryTarget,
    ResultShape,
    SortDirection,
    check_target,
    is_entity,
    table_identifier,
)
from ..util.jsonize import jsondict
from .predicates import SqlExpression

Record = dict[str, Any]
"""A single result row (or a single record of an insert statement), mapping column names to values."""

PostQuery = Callable[[Sequence[Record]], Sequence[Record]]
"""A function that transforms all result rows of a query after it has been executed."""

JoinTarget = QueryTarget | tuple[str, str]
"""The target of a join: an entity, a bare table name or a pair of table name and alias."""

FieldSpec = str | tuple[Any, str] | SqlExpression
"""A field of a select query: a (potentially qualified) column name, an expression or a ``(field, alias)`` pair."""


@dataclasses.dataclass(frozen=True)
class Join:
    """A join of a select query.

    Attributes
    ----------
    kind : JoinType
        The kind of join, e.g. *LEFT JOIN*
    target : JoinTarget
        The table that is joined. Tables can be aliased by supplying a pair ``(table, alias)``.
    predicate : SqlExpression
        The join condition
    """
    kind: JoinType
    target: JoinTarget
    predicate: SqlExpression

    @property
    def identifier(self) -> str:
        """Provides the name that refers to the joined table in the rest of the query."""
        if isinstance(self.target, tuple):
            return self.target[1]
        return table_identifier(self.target)

    def __json__(self) -> jsondict:
        target = self.target if isinstance(self.target, (str, tuple)) else table_identifier(self.target)
        return {"kind": self.kind, "target": target, "predicate": str(self.predicate)}


@dataclasses.dataclass(frozen=True)
class OrderItem:
    """A single entry of the *ORDER BY* clause."""
    field: Any
    direction: SortDirection = SortDirection.Ascending

    def __json__(self) -> jsondict:
        return {"field": str(self.field), "direction": self.direction}


@dataclasses.dataclass(frozen=True)
class Query:
    """Describes a single select, insert, update or delete statement.

    Queries are pure values: they are never modified once they have been created. Instead, all composition operations (see
    `relq.qal.transform`) create a new query that contains the desired changes. This allows to build partial queries and
    re-use them as templates for different statements.

    Queries are created using the `select_query`, `insert_query`, `update_query` and `delete_query` functions.

    Attributes
    ----------
    kind : QueryKind
        The kind of statement
    target : QueryTarget
        The entity (or bare table name) that the statement operates on
    table : Any
        The physical table of the target. This is usually a table name, but entities can also be defined on generated
        tables, e.g. a subquery.
    alias : str
        The alias of the target table. Empty if the table is not aliased.
    db : Any
        The database (or the name of a database in the `DatabasePool`) that the target entity is stored in. *None* if the
        current database should be used.
    from_items : tuple[QueryTarget, ...]
        The tables in the *FROM* clause (select only)
    fields : tuple[FieldSpec, ...]
        The projection (select only). Initially this is `AllColumns`.
    aliases : frozenset[str]
        All column aliases that have been introduced in the projection so far
    joins : tuple[Join, ...]
        The joins (select only)
    where : tuple[SqlExpression, ...]
        The filter predicates. All of them are combined in a conjunction.
    order : tuple[OrderItem, ...]
        The *ORDER BY* entries (select only)
    group : tuple[Any, ...]
        The *GROUP BY* entries (select only)
    values : tuple[Record, ...]
        The records to insert (insert only)
    set_fields : Mapping[str, Any]
        The new column values (update only)
    limit : Optional[int]
        The maximum number of result rows (select only)
    offset : Optional[int]
        The number of result rows to skip (select only)
    modifiers : tuple[str, ...]
        Raw prefixes of the projection, e.g. *DISTINCT*
    post_queries : tuple[PostQuery, ...]
        Functions that transform the result rows after execution, in the order in which they are applied
    results : ResultShape
        What executing the statement produces
    render_as_sql : bool
        Whether executing the query should produce its SQL text instead of executing it
    """
    kind: QueryKind
    target: QueryTarget
    table: Any
    alias: str = ""
    db: Any = None
    from_items: tuple[QueryTarget, ...] = ()
    fields: tuple[Any, ...] = ()
    aliases: frozenset[str] = frozenset()
    joins: tuple[Join, ...] = ()
    where: tuple[SqlExpression, ...] = ()
    order: tuple[OrderItem, ...] = ()
    group: tuple[Any, ...] = ()
    values: tuple[Record, ...] = ()
    set_fields: Mapping[str, Any] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    limit: Optional[int] = None
    offset: Optional[int] = None
    modifiers: tuple[str, ...] = ()
    post_queries: tuple[PostQuery, ...] = ()
    results: ResultShape = ResultShape.AllRows
    render_as_sql: bool = False

    @property
    def identifier(self) -> str:
        """Provides the name that refers to the target table within the query, i.e. its alias or its name."""
        return self.alias if self.alias else table_identifier(self.target)

    @property
    def entity(self) -> Optional[Any]:
        """Provides the target entity of the query. *None* if the query operates on a bare table."""
        return self.target if is_entity(self.target) else None

    def is_select(self) -> bool:
        return self.kind == QueryKind.Select

    def projects_all_columns(self) -> bool:
        """Checks, whether the projection is still the initial `AllColumns` placeholder."""
        return self.fields == (AllColumns,)

    def replace(self, **changes) -> Query:
        """Creates a copy of the query with some attributes changed."""
        return dataclasses.replace(self, **changes)

    def __json__(self) -> jsondict:
        return {
            "kind": self.kind,
            "target": self.identifier,
            "fields": [str(field) for field in self.fields],
            "aliases": self.aliases,
            "joins": list(self.joins),
            "where": [str(pred) for pred in self.where],
            "order": list(self.order),
            "group": [str(g) for g in self.group],
            "values": list(self.values),
            "set_fields": dict(self.set_fields),
            "limit": self.limit,
            "offset": self.offset,
            "modifiers": list(self.modifiers),
            "post_queries": list(self.post_queries),
            "results": self.results,
        }

    def __str__(self) -> str:
        from .formatter import format_quick
        return format_quick(self)


def _base_attributes(target: QueryTarget) -> dict[str, Any]:
    target = check_target(target)
    if isinstance(target, str):
        return {"target": target, "table": target, "alias": "", "db": None}
    return {"target": target, "table": target.table, "alias": target.alias or "", "db": target.db}


def select_query(target: QueryTarget | Query) -> Query:
    """Creates a new select query for an entity or a table (``select*``).

    The query projects all columns until specific fields are selected. If `target` already is a query, it is returned
    unchanged.

    Raises
    ------
    InvalidEntityError
        If the target is neither an entity nor a table name
    """
    if isinstance(target, Query):
        return target
    attributes = _base_attributes(target)
    return Query(QueryKind.Select, from_items=(attributes["target"],), fields=(AllColumns,),
                 results=ResultShape.AllRows, **attributes)


def insert_query(target: QueryTarget | Query) -> Query:
    """Creates a new insert statement for an entity or a table (``insert*``).

    If `target` already is a query, it is returned unchanged.
    """
    if isinstance(target, Query):
        return target
    return Query(QueryKind.Insert, results=ResultShape.GeneratedKeys, **_base_attributes(target))


def update_query(target: QueryTarget | Query) -> Query:
    """Creates a new update statement for an entity or a table (``update*``).

    If `target` already is a query, it is returned unchanged.
    """
    if isinstance(target, Query):
        return target
    return Query(QueryKind.Update, results=ResultShape.GeneratedKeys, **_base_attributes(target))


def delete_query(target: QueryTarget | Query) -> Query:
    """Creates a new delete statement for an entity or a table (``delete*``).

    If `target` already is a query, it is returned unchanged.
    """
    if isinstance(target, Query):
        return target
    return Query(QueryKind.Delete, results=ResultShape.GeneratedKeys, **_base_attributes(target))
