"""relq - declarative query composition and entity relationships for relational databases.

relq separates the description of a database schema from the queries that are executed on it. The schema is described by
*entities*: each entity maps a table (or a generated table) and declares how it relates to other entities. Queries are
immutable values that are built up by composing small operations and that only touch the database once they are executed:

>>> import relq
>>> users = relq.define_entity("users", lambda e: relq.has_many(e, "email"), lambda e: relq.has_one(e, "address"))
>>> email = relq.define_entity("email", lambda e: relq.belongs_to(e, "users"))
>>> address = relq.define_entity("address", lambda e: relq.entity_fields(e, "street", "city"))
>>> relq.db.postgres.connect(connect_string="dbname=shop")
>>> relq.select(users,
...             lambda q: relq.fields(q, "name"),
...             lambda q: relq.where(q, {"active": True}),
...             lambda q: relq.with_(q, address),
...             lambda q: relq.with_(q, email, lambda q: relq.where(q, {"verified": True})))

Related entities are either joined into the query directly (has-one and belongs-to relationships) or they are loaded by
follow-up queries once the result of the parent query is available (has-many and many-to-many relationships, as well as all
relationships resolved by `with_object`).

On a high level, relq is structured as follows:

- the `qal` package provides the query abstraction: the `Query` objects, the predicate builders and the composition
  operations. It also renders queries as parameterized SQL.
- the `entities` module contains the `Entity` declarations and the `EntityRegistry` that relationships use to find their
  targets. `relations` derives the keys of the different relationship types.
- `resolution` decides how a relationship is included in a query (see `with_` and `with_object`)
- `execution` runs queries. The `ExecutionMode` determines whether a query is executed, printed (dry run), rendered as SQL,
  or just returned as-is.
- the `db` package contains the database interaction, i.e. the Postgres and DuckDB backends
- the `util` package contains algorithms and types that do not belong to query composition and are more general in nature

Most of the functionality is available directly from the main package, so generally you just need to ``import relq``.
"""

from . import (
    db,
    entities,
    execution,
    qal,
    relations,
    resolution,
    util
)
from ._core import (
    AllColumns,
    EntityLike,
    InvalidEntityError,
    JoinType,
    QueryKind,
    RelationshipConfigurationError,
    ResultShape,
    SortDirection,
    UnknownRelationshipError
)
from .qal import (
    Query,
    select_query, insert_query, update_query, delete_query,
    render_query, format_quick,
    compose, fields, set_fields, from_, where, where_clause, join, join_clause, order, values, limit, offset, group,
    post_query, modifier, aggregate, as_sql,
    col, val, raw, sqlfn, eq, ne, lt, le, gt, ge, like, ilike, in_, not_in, between, is_null, not_null, and_, or_, not_
)
from .relations import RelationshipType, HasOne, HasMany, BelongsTo, ManyToMany
from .entities import (
    Entity,
    EntityRegistry,
    create_entity, define_entity, resolve_entity, get_rel, relationship_graph,
    table, pk, database, transform, prepare, entity_fields,
    has_one, has_many, belongs_to, many_to_many
)
from .execution import (
    ExecutionMode,
    ExecutionContext,
    exec_query, exec_raw,
    select, insert, update, delete, subselect,
    execution_mode, sql_only, dry_run, query_only, using_database
)
from .resolution import with_, with_object, join_related
from .db import Database, DatabasePool

__version__ = "0.4.0"

__all__ = [
    "db", "entities", "execution", "qal", "relations", "resolution", "util",
    "AllColumns", "EntityLike", "JoinType", "QueryKind", "ResultShape", "SortDirection",
    "InvalidEntityError", "RelationshipConfigurationError", "UnknownRelationshipError",
    "Query", "select_query", "insert_query", "update_query", "delete_query", "render_query", "format_quick",
    "compose", "fields", "set_fields", "from_", "where", "where_clause", "join", "join_clause", "order", "values", "limit",
    "offset", "group", "post_query", "modifier", "aggregate", "as_sql",
    "col", "val", "raw", "sqlfn", "eq", "ne", "lt", "le", "gt", "ge", "like", "ilike", "in_", "not_in", "between",
    "is_null", "not_null", "and_", "or_", "not_",
    "RelationshipType", "HasOne", "HasMany", "BelongsTo", "ManyToMany",
    "Entity", "EntityRegistry", "create_entity", "define_entity", "resolve_entity", "get_rel", "relationship_graph",
    "table", "pk", "database", "transform", "prepare", "entity_fields", "has_one", "has_many", "belongs_to", "many_to_many",
    "ExecutionMode", "ExecutionContext", "exec_query", "exec_raw", "select", "insert", "update", "delete", "subselect",
    "execution_mode", "sql_only", "dry_run", "query_only", "using_database",
    "with_", "with_object", "join_related",
    "Database", "DatabasePool"
]
