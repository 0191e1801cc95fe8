"""This module provides the composition operations that build up `Query` instances.

Since queries are designed as immutable data objects, each operation takes a query as its first argument and returns a new
query that contains the requested change. The input query is never modified. Therefore, partially built queries can safely
be re-used as templates for multiple statements.

All operations can be threaded through a query from left to right, e.g. using `compose`:

>>> q = compose(select_query("users"), lambda q: fields(q, "id", "name"), lambda q: where(q, {"active": True}))

Some important operations include:

- `fields`: sets the projection of a select query. The first call replaces the initial `AllColumns` placeholder, all later
  calls append to the projection.
- `where`: adds a filter predicate. All predicates are combined in a conjunction, in the order in which they were added.
- `join`: adds a join, by default a *LEFT JOIN*
- `values` and `set_fields`: provide the data of insert and update statements
- `post_query`: registers a function that transforms the result rows after the query has been executed

In addition, this module contains the tools to merge one query into another (`merge_queries` and `merge_subquery`). These
are used to resolve relationships between entities eagerly, i.e. by joining the related entity.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Optional

from .._core import (
    AllColumns,
    JoinType,
    QueryTarget,
    SortDirection,
    check_target,
    is_entity,
    prefix,
    table_identifier,
)
from ..util import collections as collection_utils
from ._qal import FieldSpec, Join, JoinTarget, OrderItem, PostQuery, Query, Record, select_query
from .predicates import (
    BinaryPredicate,
    ColumnExpression,
    CompoundPredicate,
    PredicateLike,
    SqlExpression,
    compile_predicate,
)

QueryTransformation = Callable[[Query], Query]
"""A function that takes a query and produces a new (modified) query, e.g. ``lambda q: limit(q, 10)``."""


def compose(query: Query, *transformations: QueryTransformation) -> Query:
    """Threads a query through a number of transformations, from left to right.

    Parameters
    ----------
    query : Query
        The initial query
    *transformations : QueryTransformation
        The transformations to apply. Each transformation receives the result of its predecessor.

    Returns
    -------
    Query
        The result of the last transformation (or the initial query if there are no transformations)
    """
    for transformation in transformations:
        query = transformation(query)
    return query


def _field_alias(spec: Any) -> Optional[str]:
    return spec[1] if isinstance(spec, tuple) and len(spec) == 2 else None


def fields(query: Query, *specs: FieldSpec | list[FieldSpec]) -> Query:
    """Selects fields of a select query.

    If the query still projects `AllColumns`, the placeholder is replaced by the new fields. Otherwise, the fields are
    appended to the current projection. Fields are given as (potentially qualified) column names, expressions, raw SQL or
    ``(field, alias)`` pairs. Aliases are registered such that they will not be prefixed with a table name later on.

    Parameters
    ----------
    query : Query
        The query to modify
    *specs : FieldSpec | list[FieldSpec]
        The fields. Lists of fields are expanded.

    Returns
    -------
    Query
        The query with the new projection
    """
    new_fields = tuple(collection_utils.flatten(specs))
    new_aliases = {alias for alias in map(_field_alias, new_fields) if alias}

    if AllColumns in query.fields:
        placeholder_idx = query.fields.index(AllColumns)
        updated = query.fields[:placeholder_idx] + new_fields + query.fields[placeholder_idx + 1:]
    else:
        updated = query.fields + new_fields

    return query.replace(fields=updated, aliases=query.aliases | new_aliases)


def set_fields(query: Query, new_values: Mapping[str, Any]) -> Query:
    """Provides new values for the columns of an update statement.

    The values are merged into the values that have already been set. Later values overwrite earlier ones.
    """
    merged = dict(query.set_fields)
    merged.update(new_values)
    return query.replace(set_fields=MappingProxyType(merged))


def from_(query: Query, target: QueryTarget) -> Query:
    """Adds another table (or entity) to the *FROM* clause of a select query."""
    return query.replace(from_items=query.from_items + (check_target(target),))


def where_clause(query: Query, fragment: PredicateLike) -> Query:
    """Adds an already built predicate to the *WHERE* clause (``where*``).

    Predicates and raw SQL fragments are added as they are. Mappings are compiled structurally, binding bare columns to the
    target of the query.
    """
    if isinstance(fragment, Mapping):
        fragment = compile_predicate(fragment, table=query.identifier, aliases=query.aliases)
    return query.replace(where=query.where + (fragment,))


def where(query: Query, expression: PredicateLike) -> Query:
    """Adds a filter predicate to the query.

    The predicate can be given in any form that is accepted by `compile_predicate`. All bare columns in the predicate are
    bound to the target of the query, unless they refer to a column alias. An empty mapping does not add any predicate.

    Examples
    --------
    >>> where(select_query("users"), {"name": "alice"})  # SELECT users.* FROM users WHERE users.name = 'alice'
    >>> where(select_query("users"), or_(gt("age", 21), is_null("age")))
    """
    if isinstance(expression, Mapping) and not expression:
        return query
    compiled = compile_predicate(expression, table=query.identifier, aliases=query.aliases)
    return query.replace(where=query.where + (compiled,))


def _compile_join_condition(condition: PredicateLike) -> SqlExpression:
    if isinstance(condition, Mapping):
        return CompoundPredicate.create_and(BinaryPredicate.equal(ColumnExpression(left), ColumnExpression(right))
                                            for left, right in condition.items())
    return compile_predicate(condition)


def join_clause(query: Query, kind: JoinType | str, target: JoinTarget, predicate: SqlExpression) -> Query:
    """Adds a join with an already built join condition (``join*``)."""
    if not isinstance(target, tuple):
        check_target(target)
    return query.replace(joins=query.joins + (Join(JoinType.parse(kind), target, predicate),))


def join(query: Query, target: JoinTarget, on: PredicateLike, *, kind: JoinType | str = JoinType.Left) -> Query:
    """Joins another table (or entity) with the query.

    Parameters
    ----------
    query : Query
        The query to modify
    target : JoinTarget
        The joined table. Use a pair ``(table, alias)`` to alias the table.
    on : PredicateLike
        The join condition. In addition to all the forms supported by `compile_predicate`, the condition can be a mapping
        of columns, such as ``{"email.user_id": "users.id"}``. In this case, both the keys and the values are treated as
        column names.
    kind : JoinType | str, optional
        The kind of join, a *LEFT JOIN* by default

    Returns
    -------
    Query
        The query with the additional join
    """
    return join_clause(query, kind, target, _compile_join_condition(on))


def order(query: Query, field: Any, direction: SortDirection | str = SortDirection.Ascending) -> Query:
    """Adds an *ORDER BY* entry. Bare columns are bound to the target of the query when the query is rendered."""
    return query.replace(order=query.order + (OrderItem(field, SortDirection.parse(direction)),))


def values(query: Query, records: Record | Iterable[Record]) -> Query:
    """Adds records to an insert statement.

    `records` can either be a single record, or any number of records. The records are appended to the records that have
    already been added, thereby enabling batch inserts. All records are copied.
    """
    new_records = [records] if isinstance(records, Mapping) else list(records)
    return query.replace(values=query.values + tuple(dict(record) for record in new_records))


def limit(query: Query, n: Optional[int]) -> Query:
    """Restricts the number of result rows. Only the last limit that is set is used."""
    if n is not None and n < 0:
        raise ValueError(f"Limit must be non-negative, not {n}")
    return query.replace(limit=n)


def offset(query: Query, n: Optional[int]) -> Query:
    """Skips the first result rows. Only the last offset that is set is used."""
    if n is not None and n < 0:
        raise ValueError(f"Offset must be non-negative, not {n}")
    return query.replace(offset=n)


def group(query: Query, *columns: Any) -> Query:
    """Adds columns to the *GROUP BY* clause."""
    return query.replace(group=query.group + tuple(collection_utils.flatten(columns)))


def post_query(query: Query, transformation: PostQuery) -> Query:
    """Registers a function that transforms the result rows after the query has been executed.

    Post-queries are applied in the order in which they were registered: the first post-query receives the raw result rows
    and each later one receives the output of its predecessor.
    """
    return query.replace(post_queries=query.post_queries + (transformation,))


def modifier(query: Query, *parts: str) -> Query:
    """Adds a raw prefix to the projection, such as *DISTINCT*. Multiple parts are concatenated into one modifier."""
    return query.replace(modifiers=query.modifiers + ("".join(parts),))


def aggregate(query: Query, function: SqlExpression, alias: str, group_by: Optional[Any] = None) -> Query:
    """Projects an aggregate under an alias, optionally grouping the query.

    Examples
    --------
    >>> aggregate(select_query("users"), sqlfn("count", "*"), "cnt", group_by="status")
    """
    query = fields(query, (function, alias))
    return group(query, group_by) if group_by is not None else query


def as_sql(query: Query) -> Query:
    """Marks the query such that executing it produces its SQL text, instead of actually executing the query."""
    return query.replace(render_as_sql=True)


def force_prefix(target: QueryTarget, specs: Iterable[Any], aliases: Iterable[str] = frozenset()) -> tuple:
    """Qualifies all bare columns in a sequence of fields with the identifier of an entity (or table).

    The `AllColumns` placeholder is expanded to the default fields of the entity, or to all its columns (``table.*``) if it
    does not have any default fields. Expressions are bound to the entity and the field part of ``(field, alias)`` pairs as
    well as `OrderItem` fields are prefixed. Column aliases are never prefixed.
    """
    identifier = table_identifier(target)
    aliases = frozenset(aliases)

    prefixed = []
    for spec in specs:
        if spec is AllColumns:
            default_fields = target.fields if is_entity(target) else ()
            prefixed.extend(default_fields if default_fields else [f"{identifier}.*"])
            continue
        prefixed.append(_prefix_spec(identifier, spec, aliases))
    return tuple(prefixed)


def _prefix_spec(identifier: str, spec: Any, aliases: frozenset[str]) -> Any:
    match spec:
        case OrderItem(field, direction):
            return OrderItem(_prefix_spec(identifier, field, aliases), direction)
        case (field, alias):
            return (_prefix_spec(identifier, field, aliases), alias)
        case SqlExpression():
            return spec.bind(identifier, aliases)
        case _:
            return prefix(identifier, spec, aliases)


def merge_queries(parent: Query, child: Query) -> Query:
    """Folds the clauses of one query into another.

    The fields, group, order, where, joins and post-queries of the `child` are appended to the corresponding clauses of the
    `parent` (in this order, without removing duplicates). The column aliases of both queries are united. Parameters of the
    queries are part of their predicates and are therefore merged as well.

    Notice that no prefixing takes place here. See `merge_subquery` for the complete algorithm.
    """
    return parent.replace(
        fields=parent.fields + child.fields,
        group=parent.group + child.group,
        order=parent.order + child.order,
        where=parent.where + child.where,
        joins=parent.joins + child.joins,
        post_queries=parent.post_queries + child.post_queries,
        aliases=parent.aliases | child.aliases,
    )


def merge_subquery(parent: Query, sub_target: QueryTarget,
                   refinement: Optional[QueryTransformation] = None) -> Query:
    """Pulls the fields, filters and ordering of a related entity into a parent query.

    A fresh select query for the `sub_target` is created and refined by the `refinement` function. Afterwards, all bare
    field, order and group entries of the refined query are prefixed with the identifier of the `sub_target` (see
    `force_prefix`) and the query is merged into the `parent` (see `merge_queries`). This enables refinements to use plain
    column names without colliding with the columns of the parent query.

    Parameters
    ----------
    parent : Query
        The query that receives the clauses
    sub_target : QueryTarget
        The related entity (or table)
    refinement : Optional[QueryTransformation], optional
        Modifications of the sub-query. If omitted, the sub-query projects all (default) columns of the `sub_target`.

    Returns
    -------
    Query
        The merged query
    """
    sub_query = select_query(sub_target)
    if refinement is not None:
        sub_query = refinement(sub_query)
    sub_query = sub_query.replace(
        fields=force_prefix(sub_target, sub_query.fields, sub_query.aliases),
        order=force_prefix(sub_target, sub_query.order, sub_query.aliases),
        group=force_prefix(sub_target, sub_query.group, sub_query.aliases),
    )
    return merge_queries(parent, sub_query)
