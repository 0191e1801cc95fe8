"""Models SQL expressions and predicates and provides the functions to build them.

The expressions form small trees: leaves such as `ColumnExpression` and `StaticValueExpression` are combined by
`FunctionExpression` and the different predicates. Predicates are expressions themselves and can be nested arbitrarily via
`CompoundPredicate`. Raw SQL fragments (`Raw`) are an escape hatch that is passed through rendering unmodified.

Instead of instantiating the expression classes directly, the builder functions such as `eq`, `in_`, `and_` or `sqlfn` are
the intended way of constructing predicates. They follow a simple convention: a string on the left-hand side of a comparison
denotes a column and a string on the right-hand side denotes a value. Use `col` to compare two columns.

`compile_predicate` turns all supported predicate descriptions (mappings, predicates and raw fragments) into a predicate
that can be inserted into the *WHERE* clause of a query.

Examples
--------
>>> compile_predicate({"name": "alice", "age": (">", 21)}, table="users")
users.name = 'alice' AND users.age > 21
>>> or_(eq("age", 42), is_null("email"))
age = 42 OR email IS NULL
"""
from __future__ import annotations

import abc
import enum
import typing
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Generic, Optional

from .._core import prefix, quote_qualified
from ..util.jsonize import jsondict

VisitorResult = typing.TypeVar("VisitorResult")
"""Result of visitor invocations."""


class LogicalOperator(enum.Enum):
    """The supported comparison operators."""

    Equal = "="
    NotEqual = "<>"
    Less = "<"
    LessEqual = "<="
    Greater = ">"
    GreaterEqual = ">="
    Like = "LIKE"
    NotLike = "NOT LIKE"
    ILike = "ILIKE"
    In = "IN"
    NotIn = "NOT IN"
    Is = "IS"
    IsNot = "IS NOT"
    Between = "BETWEEN"


class CompoundOperator(enum.Enum):
    """The supported compound operators."""

    And = "AND"
    Or = "OR"
    Not = "NOT"


def _hash_value(value: Any) -> int:
    """Computes a hash for arbitrary values, including unhashable ones such as lists or dicts."""
    if isinstance(value, (list, tuple)):
        return hash(tuple(_hash_value(v) for v in value))
    if isinstance(value, dict):
        return hash(tuple((k, _hash_value(v)) for k, v in value.items()))
    if isinstance(value, set):
        return hash(frozenset(_hash_value(v) for v in value))
    return hash(value)


class SqlExpression(abc.ABC):
    """Base class for all expressions.

    Expressions are immutable. All inheriting expressions have to provide their own `__eq__` method and re-use the
    `__hash__` method provided by the base expression. The concrete hash value is constant since the expression itself is
    immutable.

    Parameters
    ----------
    hash_val : int
        The hash of the concrete expression object
    """

    def __init__(self, hash_val: int):
        self._hash_val = hash_val

    __slots__ = ("_hash_val",)

    @abc.abstractmethod
    def iterchildren(self) -> Iterable[SqlExpression]:
        """Provides unified access to all direct child expressions of the concrete expression type.

        For *leaf* expressions such as static values, the iterable will not contain any elements.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        """Enables processing of the current expression by an expression visitor.

        Parameters
        ----------
        visitor : SqlExpressionVisitor[VisitorResult]
            The visitor
        args
            Additional arguments that are passed to the visitor
        kwargs
            Additional keyword arguments that are passed to the visitor
        """
        raise NotImplementedError

    def columns(self) -> set[str]:
        """Provides the names of all columns that are referenced by this expression (not including subqueries)."""
        collected: set[str] = set()
        for child in self.iterchildren():
            collected |= child.columns()
        return collected

    def bind(self, table: str, aliases: Iterable[str] = frozenset()) -> SqlExpression:
        """Qualifies all bare columns of this expression with a table identifier.

        Columns that already reference a table, as well as column aliases are left unmodified. Subqueries and raw SQL are
        never modified.

        Parameters
        ----------
        table : str
            The identifier of the table that owns all bare columns
        aliases : Iterable[str], optional
            Column aliases that should not be bound.

        Returns
        -------
        SqlExpression
            The bound expression. If nothing needed to be bound, this is the expression itself.
        """
        return self.accept_visitor(_ColumnBinder(table, frozenset(aliases)))

    def __json__(self) -> jsondict:
        return {"node_type": "expression", "expression": str(self)}

    def __hash__(self) -> int:
        return self._hash_val

    @abc.abstractmethod
    def __eq__(self, other) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return str(self)

    @abc.abstractmethod
    def __str__(self) -> str:
        raise NotImplementedError


class StaticValueExpression(SqlExpression):
    """An expression that wraps a literal/static value.

    When rendered, the value becomes a query parameter. The only exception is *NULL*, which is rendered literally.

    Parameters
    ----------
    value : Any
        The value that is wrapped by the expression
    """

    def __init__(self, value: Any) -> None:
        self._value = value
        super().__init__(_hash_value(value))

    __slots__ = ("_value",)
    __match_args__ = ("value",)

    @property
    def value(self) -> Any:
        """Get the value."""
        return self._value

    def iterchildren(self) -> Iterable[SqlExpression]:
        return []

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_static_value_expr(self, *args, **kwargs)

    __hash__ = SqlExpression.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.value == other.value

    def __str__(self) -> str:
        if self.value is None:
            return "NULL"
        return f"'{self.value}'" if isinstance(self.value, str) else str(self.value)


class ColumnExpression(SqlExpression):
    """A column expression wraps the reference to a column.

    Parameters
    ----------
    column : str
        The column name. It can be qualified by a table, as in *users.id*.
    """

    def __init__(self, column: str) -> None:
        if not column:
            raise ValueError("Column must be set")
        self._column = column
        super().__init__(hash(column))

    __slots__ = ("_column",)
    __match_args__ = ("column",)

    @property
    def column(self) -> str:
        """Get the (potentially qualified) column name."""
        return self._column

    def is_bound(self) -> bool:
        """Checks, whether the column is qualified by a table."""
        return "." in self._column

    def iterchildren(self) -> Iterable[SqlExpression]:
        return []

    def columns(self) -> set[str]:
        return {self._column}

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_column_expr(self, *args, **kwargs)

    __hash__ = SqlExpression.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.column == other.column

    def __str__(self) -> str:
        return quote_qualified(self._column)


class StarExpression(SqlExpression):
    """A special expression that is only used in *SELECT* clauses to select all columns, optionally of a specific table."""

    def __init__(self, table: Optional[str] = None) -> None:
        self._table = table
        super().__init__(hash(("*", table)))

    __slots__ = ("_table",)
    __match_args__ = ("table",)

    @property
    def table(self) -> Optional[str]:
        return self._table

    def iterchildren(self) -> Iterable[SqlExpression]:
        return []

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_star_expr(self, *args, **kwargs)

    __hash__ = SqlExpression.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.table == other.table

    def __str__(self) -> str:
        return f"{quote_qualified(self._table)}.*" if self._table else "*"


class Raw(SqlExpression):
    """A raw SQL fragment, which is rendered exactly as it is given.

    Raw fragments can be used everywhere expressions or predicates are accepted, e.g. as fields, in *WHERE* clauses or as
    join conditions. Since they are never modified, columns within raw fragments are neither quoted nor prefixed.

    Parameters
    ----------
    sql : str
        The SQL text
    params : Sequence[Any], optional
        Query parameters that are referenced by placeholders in the SQL text. The placeholders have to use the parameter
        style of the target database.
    """

    def __init__(self, sql: str, params: Sequence[Any] = ()) -> None:
        self._sql = sql
        self._params = tuple(params)
        super().__init__(hash((sql, _hash_value(self._params))))

    __slots__ = ("_sql", "_params")
    __match_args__ = ("sql", "params")

    @property
    def sql(self) -> str:
        return self._sql

    @property
    def params(self) -> tuple[Any, ...]:
        return self._params

    def iterchildren(self) -> Iterable[SqlExpression]:
        return []

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_raw_expr(self, *args, **kwargs)

    __hash__ = SqlExpression.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.sql == other.sql and self.params == other.params

    def __str__(self) -> str:
        return self._sql


class FunctionExpression(SqlExpression):
    """The function expression indicates a call to an arbitrary SQL function, e.g. an aggregate such as *COUNT(\\*)*.

    Parameters
    ----------
    function : str
        The name of the function
    arguments : Sequence[SqlExpression], optional
        The arguments of the function call
    distinct : bool, optional
        Whether the function should only operate on distinct values, as in *COUNT(DISTINCT users.id)*
    """

    def __init__(self, function: str, arguments: Sequence[SqlExpression] = (), *, distinct: bool = False) -> None:
        if not function:
            raise ValueError("Function is required")
        self._function = function.upper()
        self._arguments = tuple(arguments)
        self._distinct = distinct
        super().__init__(hash((self._function, self._arguments, self._distinct)))

    __slots__ = ("_function", "_arguments", "_distinct")
    __match_args__ = ("function", "arguments", "distinct")

    @property
    def function(self) -> str:
        return self._function

    @property
    def arguments(self) -> tuple[SqlExpression, ...]:
        return self._arguments

    @property
    def distinct(self) -> bool:
        return self._distinct

    def is_aggregate(self) -> bool:
        """Checks, whether the function is one of the well-known SQL aggregate functions."""
        return self._function in AggregateFunctions

    def iterchildren(self) -> Iterable[SqlExpression]:
        return list(self._arguments)

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_function_expr(self, *args, **kwargs)

    __hash__ = SqlExpression.__hash__

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, type(self))
                and self.function == other.function
                and self.arguments == other.arguments
                and self.distinct == other.distinct)

    def __str__(self) -> str:
        args = ", ".join(str(arg) for arg in self._arguments)
        distinct = "DISTINCT " if self._distinct else ""
        return f"{self._function}({distinct}{args})"


AggregateFunctions = frozenset({"COUNT", "SUM", "MIN", "MAX", "AVG", "ARRAY_AGG", "STRING_AGG", "BOOL_AND", "BOOL_OR"})
"""The aggregate functions that relq recognizes (in upper case)."""


class SubqueryExpression(SqlExpression):
    """A subquery expression wraps an arbitrary select query, e.g. to use it in an *IN* predicate.

    Parameters
    ----------
    query : Query
        The select query
    """

    def __init__(self, query) -> None:
        self._query = query
        super().__init__(hash(("subquery", query.kind)))

    __slots__ = ("_query",)
    __match_args__ = ("query",)

    @property
    def query(self):
        """Get the subquery (a `Query` instance)."""
        return self._query

    def iterchildren(self) -> Iterable[SqlExpression]:
        return []

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_subquery_expr(self, *args, **kwargs)

    __hash__ = SqlExpression.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.query == other.query

    def __str__(self) -> str:
        from .formatter import format_quick
        return f"({format_quick(self._query)})"


class AbstractPredicate(SqlExpression, abc.ABC):
    """Base class for all predicates.

    Predicates constitute the central building block for *WHERE* clauses and join conditions. Predicates can be nested
    via `CompoundPredicate` to form arbitrarily complex conditions.
    """

    def __init__(self, operation: LogicalOperator | CompoundOperator, hash_val: int) -> None:
        self._operation = operation
        super().__init__(hash_val)

    __slots__ = ("_operation",)

    @property
    def operation(self) -> LogicalOperator | CompoundOperator:
        """Get the operation that is used by the predicate."""
        return self._operation


class BinaryPredicate(AbstractPredicate):
    """A binary predicate combines exactly two expressions with a comparison operation.

    This is the most typical kind of predicate and appears in most joins (e.g. ``users.id = email.user_id``) and many
    filters (e.g. ``users.age > 21``).

    Parameters
    ----------
    operation : LogicalOperator
        The operation that combines the input arguments
    first_argument : SqlExpression
        The first comparison value
    second_argument : SqlExpression
        The second comparison value
    """

    @staticmethod
    def equal(first_argument: SqlExpression, second_argument: SqlExpression) -> BinaryPredicate:
        """Generates an equality predicate between two arguments."""
        return BinaryPredicate(LogicalOperator.Equal, first_argument, second_argument)

    def __init__(self, operation: LogicalOperator, first_argument: SqlExpression,
                 second_argument: SqlExpression) -> None:
        if first_argument is None or second_argument is None:
            raise ValueError("First argument and second argument are required")
        self._first_argument = first_argument
        self._second_argument = second_argument
        super().__init__(operation, hash((operation, first_argument, second_argument)))

    __slots__ = ("_first_argument", "_second_argument")
    __match_args__ = ("operation", "first_argument", "second_argument")

    @property
    def first_argument(self) -> SqlExpression:
        return self._first_argument

    @property
    def second_argument(self) -> SqlExpression:
        return self._second_argument

    def iterchildren(self) -> Iterable[SqlExpression]:
        return [self._first_argument, self._second_argument]

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_binary_predicate(self, *args, **kwargs)

    __hash__ = AbstractPredicate.__hash__

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, type(self))
                and self.operation == other.operation
                and self.first_argument == other.first_argument
                and self.second_argument == other.second_argument)

    def __str__(self) -> str:
        return f"{self.first_argument} {self.operation.value} {self.second_argument}"


class BetweenPredicate(AbstractPredicate):
    """A *BETWEEN* predicate checks that a value lies within an interval (including the bounds).

    Parameters
    ----------
    column : SqlExpression
        The value that is checked
    interval : tuple[SqlExpression, SqlExpression]
        The lower and upper bounds
    """

    def __init__(self, column: SqlExpression, interval: tuple[SqlExpression, SqlExpression]) -> None:
        if column is None or not interval or len(interval) != 2:
            raise ValueError("Column and interval must be set")
        self._column = column
        self._interval = tuple(interval)
        super().__init__(LogicalOperator.Between, hash((LogicalOperator.Between, column, self._interval)))

    __slots__ = ("_column", "_interval")
    __match_args__ = ("column", "interval")

    @property
    def column(self) -> SqlExpression:
        return self._column

    @property
    def interval(self) -> tuple[SqlExpression, SqlExpression]:
        return self._interval

    def iterchildren(self) -> Iterable[SqlExpression]:
        return [self._column, *self._interval]

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_between_predicate(self, *args, **kwargs)

    __hash__ = AbstractPredicate.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.column == other.column and self.interval == other.interval

    def __str__(self) -> str:
        lower, upper = self._interval
        return f"{self._column} BETWEEN {lower} AND {upper}"


class InPredicate(AbstractPredicate):
    """An *IN* predicate lists the allowed values for a column.

    The values can either be given explicitly, or they can be computed by a subquery. An *IN* predicate without any values
    never matches.

    Parameters
    ----------
    column : SqlExpression
        The value that is checked
    values : Sequence[SqlExpression]
        The allowed values. For a subquery this is a single `SubqueryExpression`.
    negated : bool, optional
        Whether this is a *NOT IN* predicate
    """

    def __init__(self, column: SqlExpression, values: Sequence[SqlExpression], *, negated: bool = False) -> None:
        if column is None:
            raise ValueError("Column must be set")
        self._column = column
        self._values = tuple(values)
        operation = LogicalOperator.NotIn if negated else LogicalOperator.In
        super().__init__(operation, hash((operation, column, self._values)))

    __slots__ = ("_column", "_values")
    __match_args__ = ("column", "values")

    @property
    def column(self) -> SqlExpression:
        return self._column

    @property
    def values(self) -> tuple[SqlExpression, ...]:
        return self._values

    def is_negated(self) -> bool:
        return self.operation == LogicalOperator.NotIn

    def is_subquery(self) -> bool:
        """Checks, whether the allowed values are computed by a subquery."""
        return len(self._values) == 1 and isinstance(self._values[0], SubqueryExpression)

    def iterchildren(self) -> Iterable[SqlExpression]:
        return [self._column, *self._values]

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_in_predicate(self, *args, **kwargs)

    __hash__ = AbstractPredicate.__hash__

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, type(self))
                and self.operation == other.operation
                and self.column == other.column
                and self.values == other.values)

    def __str__(self) -> str:
        if self.is_subquery():
            return f"{self._column} {self.operation.value} {self._values[0]}"
        values = ", ".join(str(v) for v in self._values)
        return f"{self._column} {self.operation.value} ({values})"


class CompoundPredicate(AbstractPredicate):
    """A compound predicate combines an arbitrary number of predicates with *AND* or *OR*, or negates a predicate.

    Parameters
    ----------
    operation : CompoundOperator
        The operation that combines the children
    children : SqlExpression | Sequence[SqlExpression]
        The child predicates. Negations have exactly one child.
    """

    @staticmethod
    def create_and(parts: Iterable[SqlExpression]) -> SqlExpression:
        """Creates a conjunction of the given predicates. A single predicate is returned as-is."""
        parts = list(parts)
        if len(parts) == 1:
            return parts[0]
        return CompoundPredicate(CompoundOperator.And, parts)

    @staticmethod
    def create_or(parts: Iterable[SqlExpression]) -> SqlExpression:
        """Creates a disjunction of the given predicates. A single predicate is returned as-is."""
        parts = list(parts)
        if len(parts) == 1:
            return parts[0]
        return CompoundPredicate(CompoundOperator.Or, parts)

    @staticmethod
    def create_not(predicate: SqlExpression) -> CompoundPredicate:
        return CompoundPredicate(CompoundOperator.Not, [predicate])

    def __init__(self, operation: CompoundOperator, children: SqlExpression | Sequence[SqlExpression]) -> None:
        children = tuple(children) if isinstance(children, (list, tuple)) else (children,)
        if not children:
            raise ValueError("Child predicates can not be empty")
        if operation == CompoundOperator.Not and len(children) > 1:
            raise ValueError(f"Can only create negations for a single predicate but received {len(children)}")
        self._children = children
        super().__init__(operation, hash((operation, children)))

    __slots__ = ("_children",)
    __match_args__ = ("operation", "children")

    @property
    def children(self) -> tuple[SqlExpression, ...]:
        return self._children

    def iterchildren(self) -> Iterable[SqlExpression]:
        return list(self._children)

    def accept_visitor(self, visitor: SqlExpressionVisitor[VisitorResult], *args, **kwargs) -> VisitorResult:
        return visitor.visit_compound_predicate(self, *args, **kwargs)

    __hash__ = AbstractPredicate.__hash__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.operation == other.operation and self.children == other.children

    def __str__(self) -> str:
        if self.operation == CompoundOperator.Not:
            return f"NOT ({self._children[0]})"
        joiner = f" {self.operation.value} "
        return joiner.join(f"({child})" if isinstance(child, CompoundPredicate) else str(child)
                           for child in self._children)


class SqlExpressionVisitor(abc.ABC, Generic[VisitorResult]):
    """Basic visitor to operate on arbitrary expression and predicate trees.

    See Also
    --------
    SqlExpression

    References
    ----------

    .. Visitor pattern: https://en.wikipedia.org/wiki/Visitor_pattern
    """

    @abc.abstractmethod
    def visit_static_value_expr(self, expr: StaticValueExpression, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_column_expr(self, expr: ColumnExpression, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_star_expr(self, expr: StarExpression, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_raw_expr(self, expr: Raw, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_function_expr(self, expr: FunctionExpression, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_subquery_expr(self, expr: SubqueryExpression, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_binary_predicate(self, predicate: BinaryPredicate, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_between_predicate(self, predicate: BetweenPredicate, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_in_predicate(self, predicate: InPredicate, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError

    @abc.abstractmethod
    def visit_compound_predicate(self, predicate: CompoundPredicate, *args, **kwargs) -> VisitorResult:
        raise NotImplementedError


class _ColumnBinder(SqlExpressionVisitor[SqlExpression]):
    """Re-builds an expression such that all of its bare columns are qualified by a specific table."""

    def __init__(self, table: str, aliases: frozenset[str]) -> None:
        self._table = table
        self._aliases = aliases

    def visit_static_value_expr(self, expr: StaticValueExpression) -> SqlExpression:
        return expr

    def visit_column_expr(self, expr: ColumnExpression) -> SqlExpression:
        if expr.is_bound():
            return expr
        bound = prefix(self._table, expr.column, self._aliases)
        return expr if bound == expr.column else ColumnExpression(bound)

    def visit_star_expr(self, expr: StarExpression) -> SqlExpression:
        return expr

    def visit_raw_expr(self, expr: Raw) -> SqlExpression:
        return expr

    def visit_function_expr(self, expr: FunctionExpression) -> SqlExpression:
        arguments = [arg.accept_visitor(self) for arg in expr.arguments]
        return FunctionExpression(expr.function, arguments, distinct=expr.distinct)

    def visit_subquery_expr(self, expr: SubqueryExpression) -> SqlExpression:
        return expr

    def visit_binary_predicate(self, predicate: BinaryPredicate) -> SqlExpression:
        return BinaryPredicate(predicate.operation, predicate.first_argument.accept_visitor(self),
                               predicate.second_argument.accept_visitor(self))

    def visit_between_predicate(self, predicate: BetweenPredicate) -> SqlExpression:
        lower, upper = predicate.interval
        return BetweenPredicate(predicate.column.accept_visitor(self),
                                (lower.accept_visitor(self), upper.accept_visitor(self)))

    def visit_in_predicate(self, predicate: InPredicate) -> SqlExpression:
        return InPredicate(predicate.column.accept_visitor(self), [v.accept_visitor(self) for v in predicate.values],
                           negated=predicate.is_negated())

    def visit_compound_predicate(self, predicate: CompoundPredicate) -> SqlExpression:
        return CompoundPredicate(predicate.operation, [child.accept_visitor(self) for child in predicate.children])


PredicateLike = typing.Union[AbstractPredicate, Raw, Mapping]
"""All objects that can be compiled into a predicate: predicates, raw SQL fragments and mappings."""


def _is_query(value: Any) -> bool:
    from ._qal import Query
    return isinstance(value, Query)


def as_expression(value: Any, *, column: bool = False) -> SqlExpression:
    """Transforms an arbitrary object into an expression.

    Parameters
    ----------
    value : Any
        The object to transform. Expressions are returned as-is and select queries become subqueries.
    column : bool, optional
        Whether strings should be treated as column names. By default, strings are treated as values.

    Returns
    -------
    SqlExpression
        The expression
    """
    if isinstance(value, SqlExpression):
        return value
    if _is_query(value):
        return SubqueryExpression(value)
    if column and isinstance(value, str):
        return ColumnExpression(value)
    return StaticValueExpression(value)


def col(column: str) -> ColumnExpression:
    """References a column, e.g. to compare two columns with each other: ``eq("user_id", col("users.id"))``."""
    return ColumnExpression(column)


def val(value: Any) -> StaticValueExpression:
    """Wraps a value, e.g. to use a string as the left-hand side of a comparison."""
    return StaticValueExpression(value)


def raw(sql: str, *params: Any) -> Raw:
    """Wraps a literal SQL string that is passed through rendering unmodified.

    Parameters
    ----------
    sql : str
        The SQL text
    *params : Any
        Parameters for the placeholders in the SQL text
    """
    return Raw(sql, params)


def sqlfn(function: str, *args: Any, distinct: bool = False) -> FunctionExpression:
    """Builds a call to an SQL function.

    String arguments are treated as columns, all other arguments as values (unless they already are expressions). Use
    ``"*"`` to count all rows, as in ``sqlfn("count", "*")``.
    """
    arguments = [StarExpression() if arg == "*" else as_expression(arg, column=True) for arg in args]
    return FunctionExpression(function, arguments, distinct=distinct)


def _comparison(operation: LogicalOperator, left: Any, right: Any) -> BinaryPredicate:
    return BinaryPredicate(operation, as_expression(left, column=True), as_expression(right))


def eq(left: Any, right: Any) -> AbstractPredicate:
    """Builds an equality predicate. Comparisons with *None* are turned into *IS NULL* checks."""
    if right is None:
        return is_null(left)
    return _comparison(LogicalOperator.Equal, left, right)


def ne(left: Any, right: Any) -> AbstractPredicate:
    """Builds an inequality predicate. Comparisons with *None* are turned into *IS NOT NULL* checks."""
    if right is None:
        return not_null(left)
    return _comparison(LogicalOperator.NotEqual, left, right)


def lt(left: Any, right: Any) -> BinaryPredicate:
    return _comparison(LogicalOperator.Less, left, right)


def le(left: Any, right: Any) -> BinaryPredicate:
    return _comparison(LogicalOperator.LessEqual, left, right)


def gt(left: Any, right: Any) -> BinaryPredicate:
    return _comparison(LogicalOperator.Greater, left, right)


def ge(left: Any, right: Any) -> BinaryPredicate:
    return _comparison(LogicalOperator.GreaterEqual, left, right)


def like(left: Any, pattern: Any) -> BinaryPredicate:
    return _comparison(LogicalOperator.Like, left, pattern)


def ilike(left: Any, pattern: Any) -> BinaryPredicate:
    return _comparison(LogicalOperator.ILike, left, pattern)


def in_(left: Any, values: Any) -> InPredicate:
    """Builds an *IN* predicate.

    The allowed values can be given as any iterable or as a select query (or `SubqueryExpression`).
    """
    column = as_expression(left, column=True)
    if isinstance(values, SqlExpression) or _is_query(values):
        return InPredicate(column, [as_expression(values)])
    return InPredicate(column, [as_expression(v) for v in values])


def not_in(left: Any, values: Any) -> InPredicate:
    predicate = in_(left, values)
    return InPredicate(predicate.column, predicate.values, negated=True)


def between(left: Any, lower: Any, upper: Any) -> BetweenPredicate:
    return BetweenPredicate(as_expression(left, column=True), (as_expression(lower), as_expression(upper)))


def is_null(left: Any) -> BinaryPredicate:
    return BinaryPredicate(LogicalOperator.Is, as_expression(left, column=True), StaticValueExpression(None))


def not_null(left: Any) -> BinaryPredicate:
    return BinaryPredicate(LogicalOperator.IsNot, as_expression(left, column=True), StaticValueExpression(None))


def and_(*predicates: PredicateLike) -> SqlExpression:
    """Combines predicates (or mappings, or raw fragments) in a conjunction."""
    return CompoundPredicate.create_and([compile_predicate(p) for p in predicates])


def or_(*predicates: PredicateLike) -> SqlExpression:
    """Combines predicates (or mappings, or raw fragments) in a disjunction."""
    return CompoundPredicate.create_or([compile_predicate(p) for p in predicates])


def not_(predicate: PredicateLike) -> CompoundPredicate:
    return CompoundPredicate.create_not(compile_predicate(predicate))


_OperatorBuilders: dict[str, Callable[[Any, Any], SqlExpression]] = {
    "=": eq,
    "==": eq,
    "!=": ne,
    "<>": ne,
    "<": lt,
    "<=": le,
    ">": gt,
    ">=": ge,
    "like": like,
    "ilike": ilike,
    "in": in_,
    "not in": not_in,
    "not-in": not_in,
    "between": lambda left, bounds: between(left, *bounds),
}
"""Maps textual operators (as used in predicate mappings) to the corresponding builder functions."""


def _compile_entry(key: Any, value: Any) -> SqlExpression:
    column = key if isinstance(key, SqlExpression) else ColumnExpression(key)
    if isinstance(value, tuple) and len(value) == 2 and (isinstance(value[0], str) or callable(value[0])):
        operator, operand = value
        if callable(operator):
            return operator(column, operand)
        builder = _OperatorBuilders.get(operator.strip().lower())
        if builder is None:
            raise ValueError(f"Unknown operator '{operator}' for column {column}. "
                             "Use ('=', value) to compare with a tuple value")
        return builder(column, operand)
    return eq(column, value)


def compile_predicate(expression: PredicateLike, *, table: Optional[str] = None,
                      aliases: Iterable[str] = frozenset()) -> SqlExpression:
    """Transforms a predicate description into a predicate that can be used in a *WHERE* clause or as a join condition.

    Mappings are compiled structurally: each entry ``column: value`` becomes an equality predicate (or an *IS NULL* check if
    the value is *None*) and all entries are combined in a conjunction, in insertion order. Instead of a plain value, an
    entry can also map a column to an ``(operator, operand)`` pair, where the operator is either a textual operator such as
    ``">="``, ``"like"``, ``"in"`` or ``"between"``, or one of the builder functions of this module.
    Two-element tuples whose first element is a string or a callable are always read as such pairs. To compare a column
    with a tuple value, use the explicit ``("=", value)`` form.

    Predicates and raw SQL fragments are used as-is.

    Parameters
    ----------
    expression : PredicateLike
        The predicate description
    table : Optional[str], optional
        If given, all bare columns of the predicate are qualified with this table identifier.
    aliases : Iterable[str], optional
        Column aliases that must not be qualified

    Returns
    -------
    SqlExpression
        The compiled predicate

    Raises
    ------
    ValueError
        If a mapping is empty or uses an unknown operator
    TypeError
        If the expression is neither a predicate, a raw fragment nor a mapping
    """
    match expression:
        case Mapping():
            if not expression:
                raise ValueError("Cannot compile an empty predicate mapping")
            compiled = CompoundPredicate.create_and([_compile_entry(k, v) for k, v in expression.items()])
        case AbstractPredicate() | Raw():
            compiled = expression
        case _:
            raise TypeError(f"Not a predicate: {expression!r}")

    return compiled.bind(table, aliases) if table else compiled
