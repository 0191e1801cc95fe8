"""Resolves relationships between entities within queries.

Depending on the kind of relationship, a related entity is either joined into the query directly, or it is loaded by an
additional select query for each result row of the parent query:

| relationship             | `with_`                              | `with_object`                        |
|--------------------------|--------------------------------------|--------------------------------------|
| has-one, belongs-to      | *LEFT JOIN* + merged refinement      | one follow-up query per row (single) |
| has-many                 | one follow-up query per row (all)    | one follow-up query per row (all)    |
| many-to-many             | one follow-up query per row (all)    | one follow-up query per row (all)    |

Follow-up queries are implemented as post-queries. They are executed in the same `ExecutionMode` as the parent query and
store their results in each parent row under the name (or alias) of the related entity. Rows that lack the key value of
the relationship (e.g. because it was not selected or is *NULL*) receive an empty sequence, or *None* for has-one and
belongs-to relationships, without any follow-up query. The refinement of the related entity can contain further `with_`
calls, which are resolved relative to the related entity.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional

from ._core import JoinType, UnknownRelationshipError
from .entities import Entity, EntityRegistry, get_rel
from .execution import select
from .qal import (
    PostQuery,
    Query,
    QueryTransformation,
    Record,
    col,
    compose,
    eq,
    join_clause,
    merge_subquery,
    post_query,
    where,
)
from .relations import BelongsTo, HasMany, HasOne, ManyToMany, Relationship


def _result_key(entity: Entity) -> str:
    return entity.alias or entity.name


def _related_entity(parent: Entity, target: Entity | str) -> Entity:
    if not isinstance(target, str):
        return target
    return parent.declaration(target).resolve_target(EntityRegistry.get_instance().lookup)


def _join_target(rel: Relationship) -> Any:
    return (rel.table, rel.alias) if rel.alias else rel.table


def _refine(*body: QueryTransformation) -> QueryTransformation:
    return lambda query: compose(query, *body)


def _filter_on(column: str, value: Any) -> QueryTransformation:
    return lambda query: where(query, {column: value})


def _lookup_all(parent: Entity, target: Entity, rel: HasMany,
                refinement: Optional[QueryTransformation]) -> PostQuery:
    key = _result_key(target)

    def load_children(rows: Sequence[Record]) -> list[Record]:
        loaded = []
        for row in rows:
            parent_key = row.get(parent.pk)
            children = ([] if parent_key is None
                        else select(target, *_optional(refinement), _filter_on(rel.fk, parent_key)))
            loaded.append({**row, key: children})
        return loaded

    return load_children


def _lookup_through(parent: Entity, target: Entity, rel: ManyToMany,
                    refinement: Optional[QueryTransformation]) -> PostQuery:
    key = _result_key(target)

    def through_join_table(q: Query) -> Query:
        return join_clause(q, JoinType.Inner, rel.join_table, eq(col(rel.rfk.force()), col(rel.rpk)))

    def load_related(rows: Sequence[Record]) -> list[Record]:
        loaded = []
        for row in rows:
            parent_key = row.get(parent.pk)
            related = ([] if parent_key is None
                       else select(target, through_join_table, *_optional(refinement),
                                   _filter_on(rel.lfk.force(), parent_key)))
            loaded.append({**row, key: related})
        return loaded

    return load_related


def _lookup_one(parent: Entity, target: Entity, rel: HasOne | BelongsTo,
                refinement: Optional[QueryTransformation]) -> PostQuery:
    key = _result_key(target)

    def load_single(rows: Sequence[Record]) -> list[Record]:
        loaded = []
        for row in rows:
            # belongs-to: the local foreign key refers to the primary key of the target
            # has-one: the foreign key of the target refers to the local primary key
            if isinstance(rel, BelongsTo):
                match_column, match_value = rel.pk, row.get(rel.fkk)
            else:
                match_column, match_value = rel.fk, row.get(parent.pk)
            if match_value is None:
                loaded.append({**row, key: None})
                continue
            candidates = select(target, *_optional(refinement), _filter_on(match_column, match_value))
            loaded.append({**row, key: _first(candidates)})
        return loaded

    return load_single


def _optional(refinement: Optional[QueryTransformation]) -> tuple[QueryTransformation, ...]:
    return (refinement,) if refinement is not None else ()


def _first(results: Any) -> Any:
    if isinstance(results, Sequence) and not isinstance(results, str):
        return results[0] if results else None
    return results


def resolve_relation(query: Query, target: Entity | str, refinement: Optional[QueryTransformation] = None, *,
                     later: bool = False) -> Query:
    """Resolves the relationship between the entity of a query and a related entity (``with*``).

    Parameters
    ----------
    query : Query
        The query of the parent entity
    target : Entity | str
        The related entity (or its name)
    refinement : Optional[QueryTransformation], optional
        Modifications of the query for the related entity, e.g. to select specific fields or to resolve further
        relationships of the related entity
    later : bool, optional
        Whether has-one and belongs-to relationships should be loaded by follow-up queries instead of being joined. All
        other relationships are always loaded by follow-up queries.

    Returns
    -------
    Query
        The query with the relationship resolved

    Raises
    ------
    UnknownRelationshipError
        If the entity of the query does not declare a relationship with the target
    RelationshipConfigurationError
        If the relationship cannot be resolved, e.g. because the related entity does not exist
    """
    parent = query.entity
    rel = get_rel(parent, target)
    sub_entity = _related_entity(parent, target)

    match rel:
        case HasMany():
            return post_query(query, _lookup_all(parent, sub_entity, rel, refinement))
        case ManyToMany():
            return post_query(query, _lookup_through(parent, sub_entity, rel, refinement))
        case HasOne() | BelongsTo() if later:
            return post_query(query, _lookup_one(parent, sub_entity, rel, refinement))
        case HasOne() | BelongsTo():
            joined = join_clause(query, JoinType.Left, _join_target(rel), eq(col(rel.pk), col(rel.fk)))
            return merge_subquery(joined, sub_entity, refinement)
        case _:
            raise UnknownRelationshipError(f"unknown relationship type: {rel!r}", _result_key(sub_entity))


def with_(query: Query, target: Entity | str, *body: QueryTransformation) -> Query:
    """Includes a related entity in the results of a query.

    Has-one and belongs-to relationships are joined directly, whereas has-many and many-to-many relationships are loaded by
    one follow-up query per result row. The `body` refines the query of the related entity, from left to right.

    Examples
    --------
    >>> select(users, lambda q: with_(q, email, lambda q: fields(q, "address"), lambda q: where(q, {"primary": True})))
    """
    return resolve_relation(query, target, _refine(*body) if body else None)


def with_object(query: Query, target: Entity | str, *body: QueryTransformation) -> Query:
    """Includes a related entity in the results of a query, always using follow-up queries.

    In contrast to `with_`, has-one and belongs-to relationships are not joined. Instead, each result row receives the
    first matching row of the related entity (or *None*) as a nested record.
    """
    return resolve_relation(query, target, _refine(*body) if body else None, later=True)


def join_related(query: Query, target: Entity | str, kind: JoinType | str = JoinType.Left) -> Query:
    """Joins a related entity via the keys of its relationship, without merging any of its fields.

    Many-to-many relationships are joined through their join table.

    Examples
    --------
    >>> select(users, lambda q: join_related(q, email), lambda q: where(q, {"email.address": "alice@example.com"}))
    """
    rel = get_rel(query.entity, target)
    match rel:
        case ManyToMany():
            query = join_clause(query, kind, rel.join_table, eq(col(rel.lpk), col(rel.lfk.force())))
            return join_clause(query, kind, _join_target(rel), eq(col(rel.rfk.force()), col(rel.rpk)))
        case HasOne() | HasMany() | BelongsTo():
            return join_clause(query, kind, _join_target(rel), eq(col(rel.pk), col(rel.fk)))
        case _:
            raise UnknownRelationshipError(f"unknown relationship type: {rel!r}", str(target))
