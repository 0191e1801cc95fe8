"""Tests for the key derivation of the different relationship types."""
from __future__ import annotations

import unittest

import relq
from relq import relations
from relq.relations import BelongsTo, HasMany, HasOne, ManyToMany, RelationshipType
from tests import regression_suite


class KeyDerivationTests(regression_suite.EntityTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.users = relq.create_entity("users")
        self.email = relq.create_entity("email")

    def test_has_one_and_has_many_keys(self) -> None:
        keys = relations.get_db_keys(self.users, self.email)
        self.assertEqual(keys, {"pk": "users.id", "fk": "email.users_id"})

        keys = relations.get_db_keys(self.users, self.email, "owner")
        self.assertEqual(keys, {"pk": "users.id", "fk": "email.owner"})

    def test_belongs_to_keys(self) -> None:
        keys = relations.get_belongs_to_keys(self.users, self.email)
        self.assertEqual(keys, {"pk": "users.id", "fk": "email.users_id", "fkk": "users_id"})

    def test_belongs_to_key_override(self) -> None:
        keys = relations.get_belongs_to_keys(self.users, self.email, "owner_id")
        self.assertEqual(keys, {"pk": "users.id", "fk": "email.owner_id", "fkk": "owner_id"})

    def test_aliases_are_used_for_prefixes(self) -> None:
        users = relq.table(relq.pk(self.users, "uid"), "app_users", "u")
        rel = relations.create_relationship(users, self.email, RelationshipType.HasOne)
        self.assertEqual(rel, HasOne(table="email", alias="", pk="u.uid", fk="email.app_users_id"))

    def test_create_relationship_variants(self) -> None:
        self.assertIsInstance(relations.create_relationship(self.users, self.email, RelationshipType.HasMany), HasMany)
        self.assertIsInstance(relations.create_relationship(self.email, self.users, RelationshipType.BelongsTo),
                              BelongsTo)

    def test_many_to_many_keys(self) -> None:
        rel = relations.create_relationship(self.users, relq.create_entity("groups"), RelationshipType.ManyToMany,
                                            join_table="memberships")
        self.assertIsInstance(rel, ManyToMany)
        self.assertEqual(rel.lpk, "users.id")
        self.assertEqual(rel.rpk, "groups.id")
        self.assertEqual(rel.lfk.force(), "memberships.users_id")
        self.assertEqual(rel.rfk.force(), "memberships.groups_id")

    def test_many_to_many_keys_are_deferred(self) -> None:
        calls = []

        def left_key() -> str:
            calls.append("lfk")
            return "member_id"

        rel = relations.create_relationship(self.users, relq.create_entity("groups"), RelationshipType.ManyToMany,
                                            join_table="memberships", lfk=left_key, rfk="team_id")
        self.assertEqual(calls, [])
        self.assertEqual(rel.lfk.force(), "memberships.member_id")
        rel.lfk.force()
        self.assertEqual(calls, ["lfk"])
        self.assertEqual(rel.rfk.force(), "memberships.team_id")

    def test_many_to_many_requires_join_table(self) -> None:
        with self.assertRaises(relq.RelationshipConfigurationError) as ctx:
            relations.create_relationship(self.users, relq.create_entity("groups"), RelationshipType.ManyToMany,
                                          relation="groups")
        self.assertEqual(ctx.exception.relation, "groups")

    def test_unresolvable_key_override(self) -> None:
        rel = relations.create_relationship(self.users, relq.create_entity("groups"), RelationshipType.ManyToMany,
                                            join_table="memberships", lfk=lambda: None)
        self.assertRaises(relq.RelationshipConfigurationError, rel.lfk.force)


class DeclaredRelationshipTests(regression_suite.EntityTestCase):
    def test_many_to_many_fails_at_first_use(self) -> None:
        users = relq.define_entity("users", lambda e: relq.many_to_many(e, "groups"))
        relq.define_entity("groups")
        with self.assertRaises(relq.RelationshipConfigurationError) as ctx:
            relq.with_(relq.select_query(users), "groups")
        self.assertIn("groups", str(ctx.exception))

    def test_declared_many_to_many(self) -> None:
        users = relq.define_entity("users", lambda e: relq.many_to_many(e, "groups", "memberships",
                                                                         lfk="member_id", rfk="group_id"))
        relq.define_entity("groups", lambda e: relq.table(e, "teams", "t"))
        rel = relq.get_rel(users, "groups")
        self.assertEqual((rel.table, rel.alias, rel.rpk), ("teams", "t", "t.id"))
        self.assertEqual((rel.lfk.force(), rel.rfk.force()), ("memberships.member_id", "memberships.group_id"))

    def test_has_one_fk_override(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_one(e, "address", fk="owner_id"))
        relq.define_entity("address")
        self.assertEqual(relq.get_rel(users, "address").fk, "address.owner_id")

    def test_json_description(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_many(e, "email"))
        relq.define_entity("email")
        description = relq.util.to_json(relq.get_rel(users, "email"))
        self.assertIn('"rel_type": "has-many"', description)


if __name__ == "__main__":
    unittest.main()
