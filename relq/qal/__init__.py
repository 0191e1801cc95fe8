"""The query abstraction layer: immutable query objects and the operations to compose and render them.

Queries are created via `select_query`, `insert_query`, `update_query` and `delete_query` and modified via the composition
operations of the `transform` module (which are also re-exported here). `predicates` provides the expression builders for
filters and join conditions and `formatter` turns queries into SQL.
"""
from __future__ import annotations

from . import formatter, predicates, transform
from ._qal import (
    FieldSpec,
    Join,
    JoinTarget,
    OrderItem,
    PostQuery,
    Query,
    Record,
    delete_query,
    insert_query,
    select_query,
    update_query,
)
from .formatter import RenderedQuery, format_quick, render_expression, render_query
from .predicates import (
    AbstractPredicate,
    BetweenPredicate,
    BinaryPredicate,
    ColumnExpression,
    CompoundOperator,
    CompoundPredicate,
    FunctionExpression,
    InPredicate,
    LogicalOperator,
    Raw,
    SqlExpression,
    StarExpression,
    StaticValueExpression,
    SubqueryExpression,
    and_,
    between,
    col,
    compile_predicate,
    eq,
    ge,
    gt,
    ilike,
    in_,
    is_null,
    le,
    like,
    lt,
    ne,
    not_,
    not_in,
    not_null,
    or_,
    raw,
    sqlfn,
    val,
)
from .transform import (
    QueryTransformation,
    aggregate,
    as_sql,
    compose,
    fields,
    force_prefix,
    from_,
    group,
    join,
    join_clause,
    limit,
    merge_queries,
    merge_subquery,
    modifier,
    offset,
    order,
    post_query,
    set_fields,
    values,
    where,
    where_clause,
)

__all__ = [
    "formatter",
    "predicates",
    "transform",
    "FieldSpec",
    "Join",
    "JoinTarget",
    "OrderItem",
    "PostQuery",
    "Query",
    "Record",
    "select_query",
    "insert_query",
    "update_query",
    "delete_query",
    "RenderedQuery",
    "render_query",
    "render_expression",
    "format_quick",
    "SqlExpression",
    "ColumnExpression",
    "StaticValueExpression",
    "StarExpression",
    "FunctionExpression",
    "SubqueryExpression",
    "Raw",
    "AbstractPredicate",
    "BinaryPredicate",
    "BetweenPredicate",
    "InPredicate",
    "CompoundPredicate",
    "LogicalOperator",
    "CompoundOperator",
    "compile_predicate",
    "col",
    "val",
    "raw",
    "sqlfn",
    "eq",
    "ne",
    "lt",
    "le",
    "gt",
    "ge",
    "like",
    "ilike",
    "in_",
    "not_in",
    "between",
    "is_null",
    "not_null",
    "and_",
    "or_",
    "not_",
    "QueryTransformation",
    "compose",
    "fields",
    "set_fields",
    "from_",
    "where",
    "where_clause",
    "join",
    "join_clause",
    "order",
    "values",
    "limit",
    "offset",
    "group",
    "post_query",
    "modifier",
    "aggregate",
    "as_sql",
    "force_prefix",
    "merge_queries",
    "merge_subquery",
]
