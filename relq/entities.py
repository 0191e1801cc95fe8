"""Entities describe how a table is mapped and how it relates to other tables.

An entity is an immutable value. It is built from `create_entity` by applying declaration operations such as `table`,
`pk`, `entity_fields` or `has_many`, each of which produces a new entity. `define_entity` combines all of these steps and
registers the result in the `EntityRegistry`, where relationships look up their targets:

>>> define_entity("users", lambda e: has_many(e, "email"))
>>> define_entity("email", lambda e: belongs_to(e, "users"), lambda e: entity_fields(e, "address"))

Relationships are only resolved when they are first used (and at most once per entity). Hence, they can reference entities
that have not been defined yet, including mutual references such as in the example above.
"""
from __future__ import annotations

import dataclasses
import functools
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Optional

import networkx as nx

from ._core import InvalidEntityError, UnknownRelationshipError, is_entity, prefix
from .relations import KeyOverride, Relationship, RelationshipDeclaration, RelationshipType
from .util.deferred import Deferred
from .util.jsonize import jsondict

Record = dict[str, Any]
RecordTransformation = Callable[[Record], Record]
"""A function that is applied to each individual record (e.g. a result row)."""


@dataclasses.dataclass(frozen=True)
class Entity:
    """Describes a table of the database.

    Entities are created via `create_entity` (or `define_entity`) and modified via the declaration operations of this
    module.

    Attributes
    ----------
    name : str
        The name that the entity is registered under. Relationships refer to entities by this name.
    table : Any
        The physical table. This is usually a table name, but it can also be a generated table such as a select query or a
        raw SQL fragment. In this case, the entity must have an alias.
    alias : str
        The alias of the table. Empty if the table is not aliased.
    pk : str
        The primary key column, *id* by default
    db : Any
        The database that contains the table, or the name of the database in the `DatabasePool`. *None* to use the
        current database.
    fields : tuple[str, ...]
        The (prefixed) columns that select queries project by default. Empty to project all columns.
    relationships : tuple[RelationshipDeclaration, ...]
        The declared relationships, in declaration order
    transforms : tuple[RecordTransformation, ...]
        Functions that are applied to each result row of select queries
    prepares : tuple[RecordTransformation, ...]
        Functions that are applied to each record of insert statements and the values of update statements
    rel : Mapping[str, Deferred[Relationship]]
        The relationships of the entity, by name of the related entity. Each relationship is only resolved upon its first
        use.
    """
    name: str
    table: Any
    alias: str = ""
    pk: str = "id"
    db: Any = None
    fields: tuple[str, ...] = ()
    relationships: tuple[RelationshipDeclaration, ...] = ()
    transforms: tuple[RecordTransformation, ...] = ()
    prepares: tuple[RecordTransformation, ...] = ()
    rel: Mapping[str, Deferred[Relationship]] = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lookup = EntityRegistry.get_instance().lookup
        rel = {declaration.name: Deferred(functools.partial(declaration.resolve, self, lookup))
               for declaration in self.relationships}
        object.__setattr__(self, "rel", MappingProxyType(rel))

    def declaration(self, name: str) -> Optional[RelationshipDeclaration]:
        """Provides the declaration of the relationship with a specific entity. *None* if there is no such relationship."""
        return next((decl for decl in self.relationships if decl.name == name), None)

    def replace(self, **changes) -> Entity:
        return dataclasses.replace(self, **changes)

    def __json__(self) -> jsondict:
        return {
            "name": self.name,
            "table": str(self.table),
            "alias": self.alias,
            "pk": self.pk,
            "fields": list(self.fields),
            "relationships": list(self.relationships),
            "transforms": list(self.transforms),
            "prepares": list(self.prepares),
        }

    def __str__(self) -> str:
        return self.name


class EntityRegistry:
    """The entity registry keeps track of all entities that have been defined so far.

    Relationships use the registry to find the entities they refer to. Entities are registered by `define_entity`, but can
    also be registered manually.

    The entity registry implementation follows the singleton pattern. Use the static `get_instance` method to retrieve
    the registry instance. All other functionality is provided based on that instance.
    """

    @staticmethod
    def get_instance() -> EntityRegistry:
        """Provides access to the singleton entity registry, creating a new registry if necessary.

        Returns
        -------
        EntityRegistry
            The current registry instance
        """
        global _ENTITY_REGISTRY
        if _ENTITY_REGISTRY is None:
            _ENTITY_REGISTRY = EntityRegistry()
        return _ENTITY_REGISTRY

    def __init__(self) -> None:
        self._entities: dict[str, Entity] = {}

    def register(self, entity: Entity) -> Entity:
        """Stores an entity under its name. Entities with the same name are replaced."""
        if not isinstance(entity, Entity):
            raise InvalidEntityError(f"Not an entity: {entity!r}", entity)
        self._entities[entity.name] = entity
        return entity

    def lookup(self, name: str) -> Optional[Entity]:
        """Provides the entity with a specific name. *None* if no such entity has been registered."""
        return self._entities.get(name)

    def entities(self) -> list[Entity]:
        """Provides all registered entities, in registration order."""
        return list(self._entities.values())

    def clear(self) -> None:
        """Removes all entities from the registry."""
        self._entities.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __getitem__(self, name: str) -> Entity:
        return self._entities[name]

    def __len__(self) -> int:
        return len(self._entities)

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        return f"EntityRegistry {list(self._entities)}"


_ENTITY_REGISTRY: Optional[EntityRegistry] = None


def create_entity(name: str) -> Entity:
    """Creates a new entity. By default, its table has the same name as the entity itself and its primary key is *id*."""
    if not isinstance(name, str) or not name:
        raise InvalidEntityError(f"Entity names must be non-empty strings, not {name!r}", name)
    return Entity(name=name, table=name)


def table(entity: Entity, new_table: Any, alias: Optional[str] = None) -> Entity:
    """Sets the table of an entity and optionally an alias.

    Tables can also be generated, e.g. by a select query or a raw SQL fragment. Such tables must always be aliased.

    Raises
    ------
    InvalidEntityError
        If a generated table does not have an alias
    """
    if not isinstance(new_table, str) and not alias:
        raise InvalidEntityError("Generated tables must have aliases.", new_table)
    updated = entity.replace(table=new_table)
    return updated.replace(alias=alias) if alias else updated


def pk(entity: Entity, column: str) -> Entity:
    """Sets the primary key of an entity."""
    return entity.replace(pk=column)


def database(entity: Entity, db: Any) -> Entity:
    """Sets the database of an entity: either a `Database` or the name of a database in the `DatabasePool`."""
    return entity.replace(db=db)


def transform(entity: Entity, func: RecordTransformation) -> Entity:
    """Adds a function that is applied to each row that select queries of the entity produce."""
    return entity.replace(transforms=entity.transforms + (func,))


def prepare(entity: Entity, func: RecordTransformation) -> Entity:
    """Adds a function that is applied to each record that is inserted into (or updated in) the entity's table."""
    return entity.replace(prepares=entity.prepares + (func,))


def entity_fields(entity: Entity, *columns: str) -> Entity:
    """Adds columns to the default projection of the entity.

    The columns are prefixed with the current table (or alias) of the entity. Therefore, `table` should be declared first.
    """
    return entity.replace(fields=entity.fields + tuple(prefix(entity, column) for column in columns))


def _target_name(target: Any) -> str:
    if isinstance(target, str):
        return target
    if is_entity(target):
        return target.name
    raise InvalidEntityError(f"Invalid entity used in relationship: {target!r}", target)


def _add_relationship(entity: Entity, declaration: RelationshipDeclaration) -> Entity:
    others = tuple(decl for decl in entity.relationships if decl.name != declaration.name)
    return entity.replace(relationships=others + (declaration,))


def has_one(entity: Entity, target: Entity | str, *, fk: Optional[str] = None) -> Entity:
    """Declares that the entity owns at most one `target`, which references the entity via a foreign key.

    By default, the foreign key is the entity's table with an *_id* suffix, as in *address.users_id = users.id*.
    """
    declaration = RelationshipDeclaration(_target_name(target), RelationshipType.HasOne, target, fk=fk)
    return _add_relationship(entity, declaration)


def has_many(entity: Entity, target: Entity | str, *, fk: Optional[str] = None) -> Entity:
    """Declares that the entity owns any number of `target` rows, which reference the entity via a foreign key.

    By default, the foreign key is the entity's table with an *_id* suffix, as in *email.users_id = users.id*.
    """
    declaration = RelationshipDeclaration(_target_name(target), RelationshipType.HasMany, target, fk=fk)
    return _add_relationship(entity, declaration)


def belongs_to(entity: Entity, target: Entity | str, *, fk: Optional[str] = None) -> Entity:
    """Declares that the entity references exactly one `target` via a foreign key that is stored in the entity's table.

    By default, the foreign key is the target's table with an *_id* suffix, as in *email.users_id = users.id*.
    """
    declaration = RelationshipDeclaration(_target_name(target), RelationshipType.BelongsTo, target, fk=fk)
    return _add_relationship(entity, declaration)


def many_to_many(entity: Entity, target: Entity | str, join_table: Optional[str] = None, *,
                 lfk: Optional[KeyOverride] = None, rfk: Optional[KeyOverride] = None) -> Entity:
    """Declares that the entity and the `target` are related through a join table.

    The join table contains a foreign key for each of the two entities. By default, these are the tables of the entities
    with an *_id* suffix. Keys can also be given as callables, which are evaluated when the relationship is first used.

    A missing join table is only reported once the relationship is actually used.
    """
    declaration = RelationshipDeclaration(_target_name(target), RelationshipType.ManyToMany, target,
                                          join_table=join_table, lfk=lfk, rfk=rfk)
    return _add_relationship(entity, declaration)


EntityDeclaration = Callable[[Entity], Entity]
"""A declaration operation with all of its arguments except for the entity, e.g. ``lambda e: pk(e, "user_id")``."""


def define_entity(name: str, *body: EntityDeclaration) -> Entity:
    """Creates a new entity, applies all declarations to it and registers it in the `EntityRegistry`.

    Parameters
    ----------
    name : str
        The name of the entity. This is also the default table name.
    *body : EntityDeclaration
        The declarations, applied from left to right

    Returns
    -------
    Entity
        The registered entity
    """
    entity = create_entity(name)
    for declaration in body:
        entity = declaration(entity)
    return EntityRegistry.get_instance().register(entity)


def resolve_entity(target: Entity | str) -> Entity:
    """Provides the entity for a name (or the entity itself).

    Raises
    ------
    InvalidEntityError
        If there is no entity with the given name
    """
    if is_entity(target):
        return target
    entity = EntityRegistry.get_instance().lookup(target) if isinstance(target, str) else None
    if entity is None:
        raise InvalidEntityError(f"Unknown entity: {target!r}", target)
    return entity


def get_rel(entity: Any, target: Entity | str) -> Relationship:
    """Provides the relationship between an entity and a related entity, resolving it if necessary.

    Raises
    ------
    UnknownRelationshipError
        If the entity does not declare a relationship with the target
    RelationshipConfigurationError
        If the relationship cannot be resolved
    """
    name = _target_name(target)
    if not isinstance(entity, Entity):
        raise UnknownRelationshipError(f"{entity!r} is not an entity and cannot have relationships", name)
    deferred = entity.rel.get(name)
    if deferred is None:
        raise UnknownRelationshipError(f"unknown relationship type: {entity.name} has no relationship with {name}", name)
    return deferred.force()


def relationship_graph(entities: Optional[Iterable[Entity]] = None) -> nx.MultiDiGraph:
    """Builds a graph of the declared relationships.

    Each entity is a node (keyed by its name, the entity is stored in the *entity* attribute) and each declared relationship
    is a directed edge from the declaring entity to the related entity. The edge attribute *rel_type* contains the kind of
    relationship. Relationships are not resolved, hence related entities do not need to exist. They are added as nodes
    without an entity.

    Parameters
    ----------
    entities : Optional[Iterable[Entity]], optional
        The entities to include. Defaults to all entities of the `EntityRegistry`.

    Returns
    -------
    nx.MultiDiGraph
        The relationship graph
    """
    entities = EntityRegistry.get_instance().entities() if entities is None else list(entities)
    graph = nx.MultiDiGraph()
    for entity in entities:
        graph.add_node(entity.name, entity=entity)
    for entity in entities:
        for declaration in entity.relationships:
            if declaration.name not in graph:
                graph.add_node(declaration.name, entity=None)
            graph.add_edge(entity.name, declaration.name, key=declaration.rel_type.value, rel_type=declaration.rel_type)
    return graph
