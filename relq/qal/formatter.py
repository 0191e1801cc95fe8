"""Provides the logic to render `Query` objects as SQL statements.

`render_query` produces the SQL text and the query parameters that are sent to the database, whereas `format_quick`
generates a human-readable representation that inlines all parameters and puts each clause on its own line.

All bare columns in the projection, the *GROUP BY* and the *ORDER BY* clauses are qualified by the identifier of the query's
target (unless they refer to a column alias). Predicates in the *WHERE* clause are already bound when they are added to
the query.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Literal, NamedTuple

from .._core import AllColumns, QueryKind, is_entity, prefix, quote, quote_qualified
from ._qal import Join, OrderItem, Query
from .predicates import (
    BetweenPredicate,
    BinaryPredicate,
    ColumnExpression,
    CompoundOperator,
    CompoundPredicate,
    FunctionExpression,
    InPredicate,
    Raw,
    SqlExpression,
    SqlExpressionVisitor,
    StarExpression,
    StaticValueExpression,
    SubqueryExpression,
)

ParamStyle = Literal["format", "qmark"]
"""The supported placeholder styles: ``%s`` (*format*, e.g. psycopg) or ``?`` (*qmark*, e.g. DuckDB)."""

_Placeholders: dict[str, str] = {"format": "%s", "qmark": "?"}


class RenderedQuery(NamedTuple):
    """The result of rendering a query: the SQL text and the values of its placeholders, in order."""
    sql: str
    params: tuple[Any, ...]


class _SqlRenderer(SqlExpressionVisitor[str]):
    """Renders queries and expressions, collecting all query parameters along the way.

    Parameters
    ----------
    paramstyle : ParamStyle
        The placeholder style
    inline : bool
        Whether static values should be rendered as literals instead of placeholders. This is only intended for
        human-readable output.
    """

    def __init__(self, paramstyle: ParamStyle = "format", *, inline: bool = False) -> None:
        if paramstyle not in _Placeholders:
            raise ValueError(f"Unknown parameter style: '{paramstyle}'")
        self._placeholder = _Placeholders[paramstyle]
        self._inline = inline
        self.params: list[Any] = []

    def placeholder(self, value: Any) -> str:
        if isinstance(value, SqlExpression):
            return value.accept_visitor(self)
        return self.visit_static_value_expr(StaticValueExpression(value))

    def visit_static_value_expr(self, expr: StaticValueExpression) -> str:
        if expr.value is None:
            return "NULL"
        if self._inline:
            return str(expr)
        self.params.append(expr.value)
        return self._placeholder

    def visit_column_expr(self, expr: ColumnExpression) -> str:
        return quote_qualified(expr.column)

    def visit_star_expr(self, expr: StarExpression) -> str:
        return str(expr)

    def visit_raw_expr(self, expr: Raw) -> str:
        if not self._inline:
            self.params.extend(expr.params)
        return expr.sql

    def visit_function_expr(self, expr: FunctionExpression) -> str:
        args = ", ".join(arg.accept_visitor(self) for arg in expr.arguments)
        distinct = "DISTINCT " if expr.distinct else ""
        return f"{expr.function}({distinct}{args})"

    def visit_subquery_expr(self, expr: SubqueryExpression) -> str:
        return f"({' '.join(self.render_clauses(expr.query))})"

    def visit_binary_predicate(self, predicate: BinaryPredicate) -> str:
        first = predicate.first_argument.accept_visitor(self)
        second = predicate.second_argument.accept_visitor(self)
        return f"{first} {predicate.operation.value} {second}"

    def visit_between_predicate(self, predicate: BetweenPredicate) -> str:
        column = predicate.column.accept_visitor(self)
        lower, upper = (bound.accept_visitor(self) for bound in predicate.interval)
        return f"{column} BETWEEN {lower} AND {upper}"

    def visit_in_predicate(self, predicate: InPredicate) -> str:
        if not predicate.values:
            return "TRUE" if predicate.is_negated() else "FALSE"
        column = predicate.column.accept_visitor(self)
        if predicate.is_subquery():
            return f"{column} {predicate.operation.value} {predicate.values[0].accept_visitor(self)}"
        values = ", ".join(value.accept_visitor(self) for value in predicate.values)
        return f"{column} {predicate.operation.value} ({values})"

    def visit_compound_predicate(self, predicate: CompoundPredicate) -> str:
        if predicate.operation == CompoundOperator.Not:
            return f"NOT ({predicate.children[0].accept_visitor(self)})"
        joiner = f" {predicate.operation.value} "
        return joiner.join(self._nested(child) for child in predicate.children)

    def _nested(self, predicate: SqlExpression) -> str:
        rendered = predicate.accept_visitor(self)
        needs_parens = isinstance(predicate, Raw) or (isinstance(predicate, CompoundPredicate)
                                                      and predicate.operation != CompoundOperator.Not)
        return f"({rendered})" if needs_parens else rendered

    def table(self, target: Any) -> str:
        """Renders an entry of the *FROM* clause, a join target or the target of a data manipulation statement."""
        if isinstance(target, tuple):
            table, alias = target
            return f"{self.table(table)} AS {quote(alias)}"
        if isinstance(target, str):
            return quote_qualified(target)
        if isinstance(target, Query):
            return f"({' '.join(self.render_clauses(target))})"
        if isinstance(target, SqlExpression):
            return target.accept_visitor(self)
        if is_entity(target):
            table = self.table(target.table)
            return f"{table} AS {quote(target.alias)}" if target.alias else table
        raise TypeError(f"Cannot render table {target!r}")

    def field(self, query: Query, spec: Any) -> str:
        """Renders a single entry of the projection, the *GROUP BY* or the *ORDER BY* clause."""
        if spec is AllColumns:
            entity = query.entity
            if entity is not None and entity.fields:
                return ", ".join(self.field(query, default_field) for default_field in entity.fields)
            return f"{quote_qualified(query.identifier)}.*"
        if isinstance(spec, tuple):
            field, alias = spec
            return f"{self.field(query, field)} AS {quote(alias)}"
        if isinstance(spec, SqlExpression):
            return spec.bind(query.identifier, query.aliases).accept_visitor(self)
        if isinstance(spec, str):
            if spec == "*":
                return spec
            return quote_qualified(prefix(query.identifier, spec, query.aliases))
        return self.placeholder(spec)

    def order_item(self, query: Query, item: OrderItem) -> str:
        return f"{self.field(query, item.field)} {item.direction.value}"

    def join(self, join: Join) -> str:
        return f"{join.kind.value} {self.table(join.target)} ON {join.predicate.accept_visitor(self)}"

    def where(self, predicates: Sequence[SqlExpression]) -> str:
        if len(predicates) == 1:
            return predicates[0].accept_visitor(self)
        return " AND ".join(self._nested(predicate) for predicate in predicates)

    def render_clauses(self, query: Query) -> list[str]:
        """Renders all clauses of a query. Each clause is its own string."""
        match query.kind:
            case QueryKind.Select:
                return self._render_select(query)
            case QueryKind.Insert:
                return self._render_insert(query)
            case QueryKind.Update:
                return self._render_update(query)
            case QueryKind.Delete:
                return self._render_delete(query)
            case _:
                raise ValueError(f"Unknown query kind: {query.kind}")

    def _render_select(self, query: Query) -> list[str]:
        modifiers = "".join(f"{modifier} " for modifier in query.modifiers)
        projection = ", ".join(self.field(query, spec) for spec in query.fields) if query.fields else "*"
        clauses = [f"SELECT {modifiers}{projection}"]
        clauses.append("FROM " + ", ".join(self.table(item) for item in query.from_items))
        clauses.extend(self.join(join) for join in query.joins)
        if query.where:
            clauses.append(f"WHERE {self.where(query.where)}")
        if query.group:
            clauses.append("GROUP BY " + ", ".join(self.field(query, col) for col in query.group))
        if query.order:
            clauses.append("ORDER BY " + ", ".join(self.order_item(query, item) for item in query.order))
        if query.limit is not None:
            clauses.append(f"LIMIT {int(query.limit)}")
        if query.offset is not None:
            clauses.append(f"OFFSET {int(query.offset)}")
        return clauses

    def _render_insert(self, query: Query) -> list[str]:
        clauses = [f"INSERT INTO {self.table(query.target)}"]
        columns: list[str] = []
        for record in query.values:
            columns.extend(column for column in record if column not in columns)

        if not columns:
            clauses.append("DEFAULT VALUES")
        else:
            clauses[0] += " (" + ", ".join(quote(column) for column in columns) + ")"
            rows = []
            for record in query.values:
                row = [self.placeholder(record[column]) if column in record else "DEFAULT" for column in columns]
                rows.append("(" + ", ".join(row) + ")")
            clauses.append("VALUES " + ", ".join(rows))

        clauses.append("RETURNING *")
        return clauses

    def _render_update(self, query: Query) -> list[str]:
        if not query.set_fields:
            raise ValueError(f"Update of {query.identifier} does not set any fields")
        assignments = ", ".join(f"{quote(column)} = {self.placeholder(value)}"
                                for column, value in query.set_fields.items())
        clauses = [f"UPDATE {self.table(query.target)}", f"SET {assignments}"]
        if query.where:
            clauses.append(f"WHERE {self.where(query.where)}")
        return clauses

    def _render_delete(self, query: Query) -> list[str]:
        clauses = [f"DELETE FROM {self.table(query.target)}"]
        if query.where:
            clauses.append(f"WHERE {self.where(query.where)}")
        return clauses


def render_query(query: Query, *, paramstyle: ParamStyle = "format") -> RenderedQuery:
    """Generates the SQL statement for a query.

    Parameters
    ----------
    query : Query
        The query to render
    paramstyle : ParamStyle, optional
        The placeholder style of the target database. Defaults to *format* placeholders (``%s``), as used by psycopg.

    Returns
    -------
    RenderedQuery
        The SQL text along with all query parameters in the order of their placeholders

    Raises
    ------
    ValueError
        If the query is malformed, e.g. an update without any values
    """
    renderer = _SqlRenderer(paramstyle)
    clauses = renderer.render_clauses(query)
    return RenderedQuery(" ".join(clauses), tuple(renderer.params))


def render_expression(expression: SqlExpression, *, paramstyle: ParamStyle = "format") -> RenderedQuery:
    """Generates the SQL text for a single expression or predicate, e.g. to debug join conditions."""
    renderer = _SqlRenderer(paramstyle)
    sql = expression.accept_visitor(renderer)
    return RenderedQuery(sql, tuple(renderer.params))


def format_quick(query: Query, *, trailing_semicolon: bool = True) -> str:
    """Generates a human-readable representation of a query.

    Each clause is put on its own line and all query parameters are inlined. Notice that the result is only intended for
    debugging and logging purposes. Use `render_query` to obtain statements that can actually be executed.

    Parameters
    ----------
    query : Query
        The query to format
    trailing_semicolon : bool, optional
        Whether to end the statement with a semicolon. Enabled by default.

    Returns
    -------
    str
        A pretty string representation of the query.
    """
    renderer = _SqlRenderer(inline=True)
    pretty_query_parts = renderer.render_clauses(query)
    if trailing_semicolon:
        pretty_query_parts[-1] += ";"
    return "\n".join(pretty_query_parts)
