"""End-to-end tests on a Postgres server.

The connection is read from the *.psycopg_connection_relq* file in the working directory. If no connection can be
established, all tests are skipped. The tests create their own tables (prefixed with *relq_test*) and drop them afterwards.
"""
from __future__ import annotations

import unittest

import relq
from relq.db import DatabaseUserError, postgres
from tests import regression_suite

pg_connect_dir = ".psycopg_connection_relq"


@regression_suite.skip_if_no_db(pg_connect_dir)
class PostgresTests(regression_suite.EntityTestCase, regression_suite.DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.db = postgres.connect(config_file=pg_connect_dir)
        self.db.execute("DROP TABLE IF EXISTS relq_test_email, relq_test_users",
                        results=relq.ResultShape.Nothing)
        self.db.execute("CREATE TABLE relq_test_users (id SERIAL PRIMARY KEY, name TEXT NOT NULL)",
                        results=relq.ResultShape.Nothing)
        self.db.execute("CREATE TABLE relq_test_email (id SERIAL PRIMARY KEY, "
                        "users_id INTEGER REFERENCES relq_test_users (id), address TEXT)",
                        results=relq.ResultShape.Nothing)

        self.users = relq.define_entity("users", lambda e: relq.table(e, "relq_test_users", "users"),
                                        lambda e: relq.has_many(e, "email", fk="users_id"))
        self.email = relq.define_entity("email", lambda e: relq.table(e, "relq_test_email", "email"),
                                        lambda e: relq.belongs_to(e, "users", fk="users_id"))

    def tearDown(self) -> None:
        self.db.execute("DROP TABLE IF EXISTS relq_test_email, relq_test_users", results=relq.ResultShape.Nothing)
        self.db.close()
        super().tearDown()

    def test_insert_and_select(self) -> None:
        inserted = relq.insert(self.users, lambda q: relq.values(q, [{"name": "alice"}, {"name": "bob"}]))
        self.assertEqual([row["name"] for row in inserted], ["alice", "bob"])

        result = relq.select(self.users, lambda q: relq.fields(q, "name"), lambda q: relq.order(q, "name", "desc"))
        self.assertResultSetsEqual(result, [{"name": "bob"}, {"name": "alice"}], ordered=True)

    def test_update_returns_affected_rows(self) -> None:
        relq.insert(self.users, lambda q: relq.values(q, {"name": "alice"}))
        updated = relq.update(self.users, lambda q: relq.set_fields(q, {"name": "carol"}),
                              lambda q: relq.where(q, {"name": "alice"}))
        self.assertEqual(updated, 1)

    def test_has_many(self) -> None:
        alice, = relq.insert(self.users, lambda q: relq.values(q, {"name": "alice"}))
        relq.insert(self.email, lambda q: relq.values(q, [{"users_id": alice["id"], "address": "alice@example.com"},
                                                          {"users_id": alice["id"], "address": "a@example.org"}]))

        result = relq.select(self.users, lambda q: relq.with_(q, "email", lambda q: relq.fields(q, "address")))
        self.assertEqual(len(result), 1)
        self.assertResultSetsEqual(result[0]["email"], [{"address": "alice@example.com"}, {"address": "a@example.org"}])

    def test_belongs_to(self) -> None:
        alice, = relq.insert(self.users, lambda q: relq.values(q, {"name": "alice"}))
        relq.insert(self.email, lambda q: relq.values(q, {"users_id": alice["id"], "address": "alice@example.com"}))

        result = relq.select(self.email, lambda q: relq.fields(q, "address"),
                             lambda q: relq.with_(q, "users", lambda q: relq.fields(q, ("name", "owner"))))
        self.assertEqual(result, [{"address": "alice@example.com", "owner": "alice"}])

    def test_constraint_violation(self) -> None:
        self.assertRaises(DatabaseUserError, relq.insert, self.email,
                          lambda q: relq.values(q, {"users_id": 4711, "address": "nobody@example.com"}))


if __name__ == "__main__":
    unittest.main()
