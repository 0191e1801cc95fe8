"""Models the relationships between entities and the rules that derive their keys.

Each kind of relationship is represented by its own immutable class: `HasOne`, `HasMany`, `BelongsTo` and `ManyToMany`.
Their key attributes are always qualified by the table (or alias) that they belong to, e.g. *email.user_id*. Therefore,
they remain unambiguous after the related entity has been merged into an arbitrary parent query.

Relationships are not created directly. Instead, entities store a `RelationshipDeclaration` for each relationship, which is
turned into the actual relationship at its first use (see `RelationshipDeclaration.resolve`). This allows entities to
reference each other before all of them have been defined.
"""
from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable
from typing import Any, Optional

from ._core import (
    EntityLike,
    RelationshipConfigurationError,
    default_fk_name,
    is_entity,
    prefix,
)
from .util.deferred import Deferred
from .util.jsonize import jsondict


class RelationshipType(enum.Enum):
    """The supported kinds of relationships between two entities."""

    HasOne = "has-one"
    HasMany = "has-many"
    BelongsTo = "belongs-to"
    ManyToMany = "many-to-many"

    def __json__(self) -> str:
        return self.value


@dataclasses.dataclass(frozen=True)
class HasOne:
    """The parent entity owns at most one child, which references the parent via a foreign key.

    Attributes
    ----------
    table : Any
        The table of the child entity
    alias : str
        The alias of the child entity. Empty if the child is not aliased.
    pk : str
        The prefixed primary key of the parent, e.g. *users.id*
    fk : str
        The prefixed foreign key of the child, e.g. *address.users_id*
    """
    table: Any
    alias: str
    pk: str
    fk: str

    rel_type = RelationshipType.HasOne

    def __json__(self) -> jsondict:
        return {"rel_type": self.rel_type, "table": str(self.table), "alias": self.alias, "pk": self.pk, "fk": self.fk}


@dataclasses.dataclass(frozen=True)
class HasMany:
    """The parent entity owns any number of children, which reference the parent via a foreign key.

    The attributes are the same as for `HasOne`.
    """
    table: Any
    alias: str
    pk: str
    fk: str

    rel_type = RelationshipType.HasMany

    def __json__(self) -> jsondict:
        return {"rel_type": self.rel_type, "table": str(self.table), "alias": self.alias, "pk": self.pk, "fk": self.fk}


@dataclasses.dataclass(frozen=True)
class BelongsTo:
    """The owning entity references exactly one other entity via a foreign key.

    Attributes
    ----------
    table : Any
        The table of the referenced entity
    alias : str
        The alias of the referenced entity. Empty if it is not aliased.
    pk : str
        The prefixed primary key of the referenced entity, e.g. *users.id*
    fk : str
        The prefixed foreign key of the owning entity, e.g. *email.users_id*
    fkk : str
        The bare foreign key column, e.g. *users_id*. It is used to look up the foreign key value in the result rows of the
        owning entity.
    """
    table: Any
    alias: str
    pk: str
    fk: str
    fkk: str

    rel_type = RelationshipType.BelongsTo

    def __json__(self) -> jsondict:
        return {"rel_type": self.rel_type, "table": str(self.table), "alias": self.alias, "pk": self.pk, "fk": self.fk,
                "fkk": self.fkk}


@dataclasses.dataclass(frozen=True)
class ManyToMany:
    """Two entities are related via a join table that contains a foreign key for each of them.

    Attributes
    ----------
    table : Any
        The table of the related (right) entity
    alias : str
        The alias of the related entity. Empty if it is not aliased.
    lpk : str
        The prefixed primary key of the parent (left) entity
    lfk : Deferred[str]
        The prefixed join table column that references the parent entity
    rfk : Deferred[str]
        The prefixed join table column that references the related entity
    rpk : str
        The prefixed primary key of the related entity
    join_table : str
        The join table
    """
    table: Any
    alias: str
    lpk: str
    lfk: Deferred[str]
    rfk: Deferred[str]
    rpk: str
    join_table: str

    rel_type = RelationshipType.ManyToMany

    def __json__(self) -> jsondict:
        return {"rel_type": self.rel_type, "table": str(self.table), "alias": self.alias, "lpk": self.lpk,
                "lfk": self.lfk.force(), "rfk": self.rfk.force(), "rpk": self.rpk, "join_table": self.join_table}


Relationship = HasOne | HasMany | BelongsTo | ManyToMany
"""Supertype of all relationship kinds."""

KeyOverride = str | Callable[[], str]
"""A foreign key of a join table can be given explicitly or computed once the relationship is used."""


def get_db_keys(parent: EntityLike, child: EntityLike, fk: Optional[str] = None) -> dict[str, str]:
    """Derives the keys of has-one and has-many relationships.

    The primary key belongs to the parent and the foreign key to the child. By default, the foreign key is the parent's
    table with an *_id* suffix.
    """
    return {"pk": prefix(parent, parent.pk), "fk": prefix(child, fk or default_fk_name(parent))}


def get_belongs_to_keys(referenced: EntityLike, owner: EntityLike, fk: Optional[str] = None) -> dict[str, str]:
    """Derives the keys of a belongs-to relationship.

    In contrast to `get_db_keys`, the roles are swapped: the primary key belongs to the `referenced` entity and the
    `owner` stores the foreign key. By default, the foreign key is the referenced table with an *_id* suffix.
    """
    fkk = fk or default_fk_name(referenced)
    return {"pk": prefix(referenced, referenced.pk), "fk": prefix(owner, fkk), "fkk": fkk}


def _resolve_key(relation: str, key: KeyOverride) -> str:
    resolved = key() if callable(key) else key
    if not resolved or not isinstance(resolved, str):
        raise RelationshipConfigurationError(relation, f"foreign key could not be resolved (got {resolved!r})")
    return resolved


def many_to_many_keys(parent: EntityLike, child: EntityLike, join_table: str, *, relation: str,
                      lfk: Optional[KeyOverride] = None, rfk: Optional[KeyOverride] = None) -> dict[str, Any]:
    """Derives the keys of a many-to-many relationship.

    The join table columns default to the tables of the parent and child with an *_id* suffix. They are only computed when
    they are first accessed and can be provided as callables for that purpose.

    Raises
    ------
    RelationshipConfigurationError
        If there is no join table, or (when the keys are accessed) if an overridden key cannot be resolved
    """
    if not join_table:
        raise RelationshipConfigurationError(relation, "many-to-many relationships require a join table")
    left_key = lfk if lfk is not None else default_fk_name(parent)
    right_key = rfk if rfk is not None else default_fk_name(child)
    return {
        "lpk": prefix(parent, parent.pk),
        "lfk": Deferred(lambda: prefix(join_table, _resolve_key(relation, left_key))),
        "rfk": Deferred(lambda: prefix(join_table, _resolve_key(relation, right_key))),
        "rpk": prefix(child, child.pk),
        "join_table": join_table,
    }


def create_relationship(parent: EntityLike, child: EntityLike, rel_type: RelationshipType, *, relation: str = "",
                        fk: Optional[str] = None, join_table: Optional[str] = None, lfk: Optional[KeyOverride] = None,
                        rfk: Optional[KeyOverride] = None) -> Relationship:
    """Creates the relationship between two entities.

    Parameters
    ----------
    parent : EntityLike
        The entity that declares the relationship
    child : EntityLike
        The related entity
    rel_type : RelationshipType
        The kind of relationship
    relation : str, optional
        The name of the relationship. This is only used for error messages and defaults to the name of the child.
    fk : Optional[str], optional
        Overrides the foreign key of has-one, has-many and belongs-to relationships
    join_table : Optional[str], optional
        The join table of a many-to-many relationship
    lfk : Optional[KeyOverride], optional
        Overrides the join table column that references the parent in a many-to-many relationship
    rfk : Optional[KeyOverride], optional
        Overrides the join table column that references the child in a many-to-many relationship

    Returns
    -------
    Relationship
        The relationship

    Raises
    ------
    RelationshipConfigurationError
        If a many-to-many relationship does not have a join table
    """
    relation = relation or child.name
    common = {"table": child.table, "alias": child.alias or ""}
    match rel_type:
        case RelationshipType.HasOne:
            return HasOne(**common, **get_db_keys(parent, child, fk))
        case RelationshipType.HasMany:
            return HasMany(**common, **get_db_keys(parent, child, fk))
        case RelationshipType.BelongsTo:
            return BelongsTo(**common, **get_belongs_to_keys(child, parent, fk))
        case RelationshipType.ManyToMany:
            return ManyToMany(**common, **many_to_many_keys(parent, child, join_table, relation=relation,
                                                             lfk=lfk, rfk=rfk))
        case _:
            raise ValueError(f"Unknown relationship type: {rel_type}")


EntityLookup = Callable[[str], Optional[EntityLike]]
"""Finds an entity by its name. Produces *None* for unknown names."""


@dataclasses.dataclass(frozen=True)
class RelationshipDeclaration:
    """Describes a relationship as it was declared, before it is resolved.

    Attributes
    ----------
    name : str
        The name of the relationship, i.e. the name of the related entity
    rel_type : RelationshipType
        The kind of relationship
    target : Any
        The related entity as it was given at declaration time. This can also be just its name.
    fk : Optional[str]
        Explicit foreign key (has-one, has-many and belongs-to)
    join_table : Optional[str]
        The join table (many-to-many)
    lfk : Optional[KeyOverride]
        Explicit left join table key (many-to-many)
    rfk : Optional[KeyOverride]
        Explicit right join table key (many-to-many)
    """
    name: str
    rel_type: RelationshipType
    target: Any
    fk: Optional[str] = None
    join_table: Optional[str] = None
    lfk: Optional[KeyOverride] = None
    rfk: Optional[KeyOverride] = None

    def resolve_target(self, lookup: EntityLookup) -> EntityLike:
        """Determines the related entity.

        Registered entities take precedence over the entity that was given at declaration time, since the latter might
        not have been completely defined yet.

        Raises
        ------
        RelationshipConfigurationError
            If the entity does not exist
        """
        registered = lookup(self.name)
        if registered is not None:
            return registered
        if is_entity(self.target):
            return self.target
        raise RelationshipConfigurationError(self.name, f"Entity used in relationship does not exist: {self.name}")

    def resolve(self, parent: EntityLike, lookup: EntityLookup) -> Relationship:
        """Creates the actual relationship for the entity that declared it."""
        child = self.resolve_target(lookup)
        return create_relationship(parent, child, self.rel_type, relation=self.name, fk=self.fk,
                                   join_table=self.join_table, lfk=self.lfk, rfk=self.rfk)

    def __json__(self) -> jsondict:
        return {"name": self.name, "rel_type": self.rel_type, "fk": self.fk, "join_table": self.join_table}
