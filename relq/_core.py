from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from .util._errors import StateError


class QueryKind(Enum):
    """The different kinds of statements that relq can compose."""

    Select = "select"
    Insert = "insert"
    Update = "update"
    Delete = "delete"

    def __json__(self) -> str:
        return self.value


class ResultShape(Enum):
    """Describes what the database interface should return after executing a statement.

    Select queries produce all result rows, whereas data manipulation statements only provide the generated keys (i.e. the
    rows produced by a *RETURNING* clause or the number of affected rows if the database system does not support such a
    clause).
    """

    AllRows = "all-rows"
    GeneratedKeys = "generated-keys"
    Nothing = "none"

    def __json__(self) -> str:
        return self.value


class JoinType(Enum):
    """The supported kinds of joins.

    The value of each member corresponds to the SQL keyword(s) that are used to render the join.
    """

    Left = "LEFT JOIN"
    Right = "RIGHT JOIN"
    Inner = "INNER JOIN"
    Full = "FULL OUTER JOIN"

    @staticmethod
    def parse(kind: JoinType | str) -> JoinType:
        """Determines the join type for a textual description, such as *"left"* or *"inner join"*.

        Parameters
        ----------
        kind : JoinType | str
            The join type. If this already is a `JoinType`, it is returned as-is.

        Returns
        -------
        JoinType
            The matching join type

        Raises
        ------
        ValueError
            If the description does not match any join type
        """
        if isinstance(kind, JoinType):
            return kind
        normalized = kind.strip().upper()
        for join_type in JoinType:
            if normalized == join_type.value or normalized + " JOIN" == join_type.value:
                return join_type
        if normalized in ("FULL", "FULL JOIN"):
            return JoinType.Full
        raise ValueError(f"Unknown join type: '{kind}'")

    def __json__(self) -> str:
        return self.value


class SortDirection(Enum):
    """The direction of an *ORDER BY* entry."""

    Ascending = "ASC"
    Descending = "DESC"

    @staticmethod
    def parse(direction: SortDirection | str) -> SortDirection:
        if isinstance(direction, SortDirection):
            return direction
        normalized = direction.strip().upper()
        if normalized in ("ASC", "ASCENDING"):
            return SortDirection.Ascending
        if normalized in ("DESC", "DESCENDING"):
            return SortDirection.Descending
        raise ValueError(f"Unknown sort direction: '{direction}'")

    def __json__(self) -> str:
        return self.value


class _AllColumnsType:
    """Placeholder for the projection of a query that did not select any specific fields, yet.

    There is exactly one instance of this type: `AllColumns`.
    """

    _instance: Optional[_AllColumnsType] = None

    def __new__(cls) -> _AllColumnsType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __reduce__(self) -> str:
        return "AllColumns"

    def __json__(self) -> str:
        return "*"

    def __repr__(self) -> str:
        return "AllColumns"

    def __str__(self) -> str:
        return "*"


AllColumns = _AllColumnsType()
"""Sentinel that denotes the projection of all columns.

A fresh select query projects `AllColumns` until the first explicit `fields` call replaces it.
"""


@runtime_checkable
class EntityLike(Protocol):
    """The parts of an entity that queries depend on.

    The query abstraction layer only uses these attributes, which allows entities to be defined on top of it.
    """

    table: str | Any
    name: str
    alias: str
    pk: str
    db: Any
    fields: tuple


QueryTarget = EntityLike | str
"""Type alias for the objects that queries can operate on: either an entity or a bare table name."""


class InvalidEntityError(TypeError):
    """Indicates that an object was used as an entity (or table), but is neither an entity nor a table name.

    This error is also raised if an entity declaration is malformed, e.g. because a generated table does not have an alias.

    Parameters
    ----------
    msg : str
        Description of the problem
    target : Any, optional
        The offending object
    """

    def __init__(self, msg: str, target: Any = None) -> None:
        super().__init__(msg)
        self.target = target


class RelationshipConfigurationError(StateError):
    """Indicates that a declared relationship cannot be resolved.

    This happens at the first use of the relationship, e.g. if the related entity does not exist or a many-to-many
    relationship is missing its join table.

    Parameters
    ----------
    relation : str
        The name of the relationship that could not be resolved
    msg : str
        Description of the problem
    """

    def __init__(self, relation: str, msg: str) -> None:
        super().__init__(f"Cannot resolve relationship '{relation}': {msg}")
        self.relation = relation


class UnknownRelationshipError(ValueError):
    """Indicates that no relationship between two entities is known, or that a relationship kind cannot be handled.

    Parameters
    ----------
    msg : str
        Description of the problem
    relation : Any, optional
        The relationship (kind) that caused the error
    """

    def __init__(self, msg: str, relation: Any = None) -> None:
        super().__init__(msg)
        self.relation = relation


def is_entity(target: Any) -> bool:
    """Checks, whether an object can be used as an entity."""
    return not isinstance(target, str) and isinstance(target, EntityLike)


def check_target(target: Any) -> QueryTarget:
    """Ensures that an object is a valid query target, i.e. a table name or an entity.

    Raises
    ------
    InvalidEntityError
        If the object is neither a string nor an entity
    """
    if isinstance(target, str) or is_entity(target):
        return target
    raise InvalidEntityError(f"Not an entity or table name: {target!r}", target)


def table_identifier(target: QueryTarget) -> str:
    """Provides the name that is used to refer to the table of an entity within a query.

    This is the alias of the entity if it has one, or its table otherwise. Bare table names are used as-is.
    """
    if isinstance(target, str):
        return target
    if not is_entity(target):
        raise InvalidEntityError(f"Not an entity or table name: {target!r}", target)
    if target.alias:
        return target.alias
    return target.table if isinstance(target.table, str) else str(target.table)


def default_fk_name(target: QueryTarget) -> str:
    """Determines the default name of a foreign key that references the given entity (or table).

    By convention this is the table name with an ``_id`` suffix, e.g. ``user_id`` for the *user* table.
    """
    if isinstance(target, str):
        return f"{target}_id"
    check_target(target)
    return f"{target.table}_id"


def prefix(target: QueryTarget | str, field: Any, aliases: Iterable[str] = frozenset()) -> Any:
    """Qualifies a bare column name with the identifier of its table.

    Only plain strings are prefixed. Names that already contain a table (i.e. a dot) and names that refer to an alias of
    the query are left as-is, as are all other kinds of fields (raw SQL, expressions, ...).

    Parameters
    ----------
    target : QueryTarget | str
        The entity or table that owns the column
    field : Any
        The field to prefix
    aliases : Iterable[str], optional
        Column aliases that are known in the current query. These are never prefixed.

    Returns
    -------
    Any
        The prefixed field

    Examples
    --------
    >>> prefix("users", "id")
    'users.id'
    >>> prefix("users", "email.address")
    'email.address'
    """
    if not isinstance(field, str) or "." in field or field in aliases:
        return field
    return f"{table_identifier(target)}.{field}"


_IdentifierPattern = re.compile(r"^[a-z_][a-z0-9_\$]*$")
"""Regular expression to check for valid identifiers.

In line with Postgres' way of name resolution, we only permit identifiers with lower case characters. This forces all
identifiers which contain at least one upper case character to be quoted.
"""

SqlKeywords = frozenset(
    {
        "ALL",
        "ANALYSE",
        "ANALYZE",
        "AND",
        "ANY",
        "ARRAY",
        "AS",
        "ASC",
        "ASYMMETRIC",
        "BOTH",
        "CASE",
        "CAST",
        "CHECK",
        "COLLATE",
        "COLUMN",
        "CONSTRAINT",
        "CREATE",
        "CURRENT_CATALOG",
        "CURRENT_DATE",
        "CURRENT_ROLE",
        "CURRENT_TIME",
        "CURRENT_TIMESTAMP",
        "CURRENT_USER",
        "DEFAULT",
        "DEFERRABLE",
        "DESC",
        "DISTINCT",
        "DO",
        "ELSE",
        "END",
        "EXCEPT",
        "FALSE",
        "FETCH",
        "FOR",
        "FOREIGN",
        "FROM",
        "GRANT",
        "GROUP",
        "HAVING",
        "IN",
        "INITIALLY",
        "INNER",
        "INTERSECT",
        "INTO",
        "IS",
        "JOIN",
        "LATERAL",
        "LEADING",
        "LEFT",
        "LIKE",
        "LIMIT",
        "LOCALTIME",
        "LOCALTIMESTAMP",
        "NATURAL",
        "NOT",
        "NULL",
        "OFFSET",
        "ON",
        "ONLY",
        "OR",
        "ORDER",
        "OUTER",
        "OVERLAPS",
        "PLACING",
        "PRIMARY",
        "REFERENCES",
        "RETURNING",
        "RIGHT",
        "SELECT",
        "SESSION_USER",
        "SIMILAR",
        "SOME",
        "SYMMETRIC",
        "TABLE",
        "THEN",
        "TO",
        "TRAILING",
        "TRUE",
        "UNION",
        "UNIQUE",
        "USER",
        "USING",
        "VARIADIC",
        "VERBOSE",
        "WHEN",
        "WHERE",
        "WINDOW",
        "WITH",
    }
)
"""An (probably incomplete) list of reserved SQL keywords that must be quoted before being used as identifiers."""


def quote(identifier: str) -> str:
    """Quotes an identifier if necessary.

    Valid identifiers can be used as-is, e.g. *title* or *movie_id*. Invalid identifiers will be wrapped in quotes, such as
    *"movie title"* or *"movie-id"*.

    Parameters
    ----------
    identifier : str
        The identifier to quote. Note that empty strings are treated as valid identifiers.

    Returns
    -------
    str
        The identifier, potentially wrapped in quotes.
    """
    if not identifier:
        return ""
    valid_identifier = (
        _IdentifierPattern.fullmatch(identifier)
        and identifier.upper() not in SqlKeywords
    )
    escaped = identifier.replace('"', '""')
    return identifier if valid_identifier else f'"{escaped}"'


def quote_qualified(identifier: str) -> str:
    """Quotes each part of a (potentially) qualified identifier such as *users.id*.

    The star of a ``table.*`` projection is never quoted.
    """
    return ".".join(part if part == "*" else quote(part) for part in identifier.split("."))
