"""Tests for query execution, the execution modes and relationship resolution.

All tests use a `RecordingDatabase`, which answers queries based on their SQL text. This allows to inspect the exact
statements that relq issues, including the follow-up queries of lazily loaded relationships.
"""
from __future__ import annotations

import contextlib
import io
import unittest

import relq
from relq import ExecutionMode, ResultShape
from relq.db import DatabasePool, DatabaseUserError
from tests import regression_suite


def _users_and_emails() -> tuple[relq.Entity, relq.Entity]:
    user = relq.define_entity("user", lambda e: relq.has_many(e, "email"))
    email = relq.define_entity("email", lambda e: relq.belongs_to(e, "user"))
    return user, email


class ExecutionModeTests(regression_suite.EntityTestCase):
    def test_sql_only(self) -> None:
        users = relq.define_entity("users")
        sql = relq.select(users, lambda q: relq.where(q, {"id": 1}), mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, "SELECT users.* FROM users WHERE users.id = %s")

        with relq.sql_only():
            self.assertQueriesEqual(relq.delete(users), "DELETE FROM users")

    def test_as_sql(self) -> None:
        users = relq.define_entity("users")
        sql = relq.select(users, lambda q: relq.fields(q, "name"), relq.as_sql)
        self.assertQueriesEqual(sql, "SELECT users.name FROM users")

    def test_sql_uses_paramstyle_of_database(self) -> None:
        users = relq.define_entity("users")
        db = regression_suite.RecordingDatabase(paramstyle="qmark")
        sql = relq.select(users, lambda q: relq.where(q, {"id": 1}), mode=ExecutionMode.SqlOnly, database=db)
        self.assertQueriesEqual(sql, "SELECT users.* FROM users WHERE users.id = ?")
        self.assertEqual(db.executed, [])

    def test_query_only(self) -> None:
        users = relq.define_entity("users")
        with relq.query_only():
            query = relq.select(users, lambda q: relq.limit(q, 5))
        self.assertIsInstance(query, relq.Query)
        self.assertEqual(query.limit, 5)

    def test_nested_modes(self) -> None:
        self.assertEqual(relq.execution.current_context().mode, ExecutionMode.Execute)
        with relq.dry_run():
            self.assertEqual(relq.execution.current_context().mode, ExecutionMode.DryRun)
            with relq.sql_only():
                self.assertEqual(relq.execution.current_context().mode, ExecutionMode.SqlOnly)
            self.assertEqual(relq.execution.current_context().mode, ExecutionMode.DryRun)
        self.assertEqual(relq.execution.current_context().mode, ExecutionMode.Execute)

    def test_mode_is_restored_after_errors(self) -> None:
        with self.assertRaises(RuntimeError):
            with relq.query_only():
                raise RuntimeError("failed")
        self.assertEqual(relq.execution.current_context().mode, ExecutionMode.Execute)


class DryRunTests(regression_suite.EntityTestCase):
    def test_dry_run_never_contacts_database(self) -> None:
        users = relq.define_entity("users")
        db = regression_suite.RecordingDatabase()
        DatabasePool.get_instance().register_database("recording", db)

        output = io.StringIO()
        with contextlib.redirect_stdout(output), relq.dry_run():
            result = relq.select(users, lambda q: relq.where(q, {"name": "alice"}))

        self.assertEqual(db.executed, [])
        self.assertEqual(result, [{"id": 1}])
        self.assertEqual(output.getvalue().strip(), "dry run :: SELECT users.* FROM users WHERE users.name = %s :: "
                                                    "['alice']")

    def test_dry_run_record_contains_foreign_key(self) -> None:
        _, email = _users_and_emails()
        with contextlib.redirect_stdout(io.StringIO()):
            result = relq.select(email, mode=ExecutionMode.DryRun)
        self.assertEqual(result, [{"id": 1, "user_id": 1}])

    def test_dry_run_applies_post_queries(self) -> None:
        users = relq.define_entity("users", lambda e: relq.pk(e, "uid"))
        with contextlib.redirect_stdout(io.StringIO()):
            result = relq.select(users, lambda q: relq.post_query(q, lambda rows: [{**r, "seen": True} for r in rows]),
                                 mode=ExecutionMode.DryRun)
        self.assertEqual(result, [{"uid": 1, "seen": True}])

    def test_dry_run_follow_up_queries(self) -> None:
        user, _ = _users_and_emails()
        output = io.StringIO()
        with contextlib.redirect_stdout(output), relq.dry_run():
            result = relq.select(user, lambda q: relq.with_(q, "email"))
        self.assertEqual(result, [{"id": 1, "email": [{"id": 1, "user_id": 1}]}])
        self.assertEqual(output.getvalue().count("dry run ::"), 2)


class HookTests(regression_suite.EntityTestCase):
    def test_transforms_apply_in_order(self) -> None:
        users = relq.define_entity("users",
                                   lambda e: relq.transform(e, lambda r: {**r, "trace": r.get("trace", "") + "a"}),
                                   lambda e: relq.transform(e, lambda r: {**r, "trace": r["trace"] + "b"}))
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}, {"id": 2}])
        result = relq.select(users, database=db)
        self.assertEqual(result, [{"id": 1, "trace": "ab"}, {"id": 2, "trace": "ab"}])

    def test_transforms_only_for_select(self) -> None:
        users = relq.define_entity("users", lambda e: relq.transform(e, lambda r: {**r, "seen": True}))
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}])
        result = relq.insert(users, lambda q: relq.values(q, {"name": "alice"}), database=db)
        self.assertEqual(result, [{"id": 1}])
        self.assertEqual(db.executed[0][2], ResultShape.GeneratedKeys)

    def test_prepares_apply_to_outgoing_data(self) -> None:
        users = relq.define_entity("users", lambda e: relq.prepare(e, lambda r: {**r, "name": r["name"].lower()}))
        db = regression_suite.RecordingDatabase(lambda sql, params: 1)
        relq.insert(users, lambda q: relq.values(q, [{"name": "ALICE"}, {"name": "Bob"}]), database=db)
        relq.update(users, lambda q: relq.set_fields(q, {"name": "CAROL"}), lambda q: relq.where(q, {"id": 3}),
                    database=db)
        self.assertEqual(db.executed[0][1], ("alice", "bob"))
        self.assertEqual(db.executed[1][1], ("carol", 3))

    def test_prepared_sql(self) -> None:
        users = relq.define_entity("users", lambda e: relq.prepare(e, lambda r: {**r, "active": True}))
        sql = relq.insert(users, lambda q: relq.values(q, {"name": "alice"}), mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, "INSERT INTO users (name, active) VALUES (%s, %s) RETURNING *")

    def test_transforms_before_post_queries(self) -> None:
        users = relq.define_entity("users", lambda e: relq.transform(e, lambda r: {**r, "seen": True}))
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}])
        result = relq.select(users, lambda q: relq.post_query(q, lambda rows: [r["seen"] for r in rows]), database=db)
        self.assertEqual(result, [True])

    def test_post_queries_compose(self) -> None:
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}, {"id": 2}])
        result = relq.select("users",
                             lambda q: relq.post_query(q, lambda rows: [r["id"] for r in rows]),
                             lambda q: relq.post_query(q, lambda ids: [i * 10 for i in ids]),
                             database=db)
        self.assertEqual(result, [10, 20])

    def test_failed_execution_skips_hooks(self) -> None:
        calls = []
        users = relq.define_entity("users", lambda e: relq.transform(e, lambda r: calls.append(r) or r))
        db = regression_suite.RecordingDatabase(error=DatabaseUserError("constraint violated"))
        with self.assertRaises(DatabaseUserError):
            relq.select(users, lambda q: relq.post_query(q, lambda rows: calls.append(rows) or rows), database=db)
        self.assertEqual(calls, [])


class DatabaseResolutionTests(regression_suite.EntityTestCase):
    def test_current_database(self) -> None:
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}])
        DatabasePool.get_instance().register_database("recording", db)
        self.assertEqual(relq.select("users"), [{"id": 1}])
        self.assertEqual(db.statements(), ["SELECT users.* FROM users"])

    def test_entity_database(self) -> None:
        analytics = regression_suite.RecordingDatabase()
        main = regression_suite.RecordingDatabase()
        DatabasePool.get_instance().register_database("analytics", analytics)
        DatabasePool.get_instance().register_database("main", main)
        users = relq.define_entity("users", lambda e: relq.database(e, "analytics"))

        relq.select(users)
        self.assertEqual(len(analytics.executed), 1)
        self.assertEqual(main.executed, [])

        relq.select(users, database=main)
        self.assertEqual(len(main.executed), 1)

    def test_ambiguous_database(self) -> None:
        DatabasePool.get_instance().register_database("a", regression_suite.RecordingDatabase())
        DatabasePool.get_instance().register_database("b", regression_suite.RecordingDatabase())
        self.assertRaises(ValueError, relq.select, "users")

    def test_context_database(self) -> None:
        db = regression_suite.RecordingDatabase()
        with relq.using_database(db):
            relq.select("users")
        self.assertEqual(len(db.executed), 1)

    def test_follow_up_queries_use_entity_database(self) -> None:
        private = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}] if sql.startswith("SELECT users")
                                                     else [{"id": 10, "users_id": 1}])
        users = relq.define_entity("users", lambda e: relq.database(e, private), lambda e: relq.has_many(e, "email"))
        relq.define_entity("email")

        result = relq.select(users, lambda q: relq.with_(q, "email"))
        self.assertEqual(result, [{"id": 1, "email": [{"id": 10, "users_id": 1}]}])
        self.assertEqual(len(private.executed), 2)

    def test_follow_up_queries_prefer_their_own_database(self) -> None:
        parent_db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}])
        child_db = regression_suite.RecordingDatabase()
        users = relq.define_entity("users", lambda e: relq.database(e, parent_db),
                                   lambda e: relq.has_many(e, "email"))
        relq.define_entity("email", lambda e: relq.database(e, child_db))

        relq.select(users, lambda q: relq.with_(q, "email"))
        self.assertEqual(parent_db.statements(), ["SELECT users.* FROM users"])
        self.assertQueriesEqual(child_db.statements()[0], "SELECT email.* FROM email WHERE email.users_id = %s")

    def test_db_package_exports(self) -> None:
        for name in relq.db.__all__:
            self.assertTrue(hasattr(relq.db, name), name)
        self.assertFalse(hasattr(relq.db, "Cursor"))

    def test_exec_raw(self) -> None:

        db = regression_suite.RecordingDatabase(lambda sql, params: [{"answer": 42}])
        result = relq.exec_raw("SELECT %s AS answer", [42], database=db)
        self.assertEqual(result, [{"answer": 42}])
        self.assertEqual(db.executed, [("SELECT %s AS answer", (42,), ResultShape.AllRows)])


class RelationshipResolutionTests(regression_suite.EntityTestCase):
    def test_has_many_follow_up_queries(self) -> None:
        user, _ = _users_and_emails()

        def respond(sql: str, params: tuple) -> list[dict]:
            if sql == 'SELECT "user".* FROM "user"':
                return [{"id": 1}, {"id": 2}]
            return [{"id": 10 + params[0], "user_id": params[0]}]

        db = regression_suite.RecordingDatabase(respond)
        result = relq.select(user, lambda q: relq.with_(q, "email"), database=db)

        self.assertEqual(result, [{"id": 1, "email": [{"id": 11, "user_id": 1}]},
                                  {"id": 2, "email": [{"id": 12, "user_id": 2}]}])
        self.assertEqual(db.executed[1:], [
            ("SELECT email.* FROM email WHERE email.user_id = %s", (1,), ResultShape.AllRows),
            ("SELECT email.* FROM email WHERE email.user_id = %s", (2,), ResultShape.AllRows),
        ])

    def test_has_many_without_parent_rows(self) -> None:
        user, _ = _users_and_emails()
        db = regression_suite.RecordingDatabase()
        self.assertEqual(relq.select(user, lambda q: relq.with_(q, "email"), database=db), [])
        self.assertEqual(len(db.executed), 1)

    def test_missing_parent_key_skips_follow_up(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_many(e, "email"))
        relq.define_entity("email")
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"name": "alice"}] if sql.startswith("SELECT")
                                                else [])
        result = relq.select(users, lambda q: relq.fields(q, "name"), lambda q: relq.with_(q, "email"), database=db)
        self.assertEqual(result, [{"name": "alice", "email": []}])
        self.assertEqual(db.statements(), ["SELECT users.name FROM users"])

    def test_null_keys_skip_follow_up(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_one(e, "address"),
                                   lambda e: relq.many_to_many(e, "groups", "memberships"))
        relq.define_entity("address")
        relq.define_entity("groups")
        _, email = _users_and_emails()

        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": None}])
        result = relq.select(users, lambda q: relq.with_object(q, "address"), lambda q: relq.with_(q, "groups"),
                             database=db)
        self.assertEqual(result, [{"id": None, "address": None, "groups": []}])

        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 5, "user_id": None}])
        result = relq.select(email, lambda q: relq.with_object(q, "user"), database=db)
        self.assertEqual(result, [{"id": 5, "user_id": None, "user": None}])
        self.assertEqual(len(db.executed), 1)

    def test_has_many_refinement(self) -> None:

        user, email = _users_and_emails()
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}] if "FROM \"user\"" in sql else [])
        relq.select(user, lambda q: relq.with_(q, email, lambda q: relq.fields(q, "address"),
                                               lambda q: relq.where(q, {"verified": True})), database=db)
        sql, params, _ = db.executed[1]
        self.assertQueriesEqual(sql, "SELECT email.address FROM email WHERE email.verified = %s AND email.user_id = %s")
        self.assertEqual(params, (True, 1))

    def test_belongs_to_later_without_match(self) -> None:
        _, email = _users_and_emails()

        def respond(sql: str, params: tuple) -> list[dict]:
            return [{"id": 5, "user_id": 99}] if sql.startswith("SELECT email") else []

        db = regression_suite.RecordingDatabase(respond)
        result = relq.select(email, lambda q: relq.with_object(q, "user"), database=db)
        self.assertEqual(result, [{"id": 5, "user_id": 99, "user": None}])
        self.assertEqual(db.executed[1][:2], ('SELECT "user".* FROM "user" WHERE "user".id = %s', (99,)))

    def test_has_one_later(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_one(e, "address"))
        relq.define_entity("address")

        def respond(sql: str, params: tuple) -> list[dict]:
            if sql.startswith("SELECT users"):
                return [{"id": 1}]
            return [{"id": 7, "users_id": 1}, {"id": 8, "users_id": 1}]

        db = regression_suite.RecordingDatabase(respond)
        result = relq.select(users, lambda q: relq.with_object(q, "address"), database=db)
        self.assertEqual(result, [{"id": 1, "address": {"id": 7, "users_id": 1}}])
        self.assertQueriesEqual(db.executed[1][0], "SELECT address.* FROM address WHERE address.users_id = %s")

    def test_has_one_eager_join(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_one(e, "address"))
        relq.define_entity("address", lambda e: relq.entity_fields(e, "street", "city"))
        sql = relq.select(users, lambda q: relq.with_(q, "address"), mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, "SELECT users.*, address.street, address.city FROM users "
                                     "LEFT JOIN address ON users.id = address.users_id")

    def test_belongs_to_eager_join_with_refinement(self) -> None:
        _, email = _users_and_emails()
        query = relq.select(email,
                            lambda q: relq.fields(q, "address"),
                            lambda q: relq.with_(q, "user", lambda q: relq.fields(q, ("name", "user_name")),
                                                 lambda q: relq.where(q, {"active": True}),
                                                 lambda q: relq.order(q, "name")),
                            mode=ExecutionMode.QueryOnly)
        sql, params = relq.render_query(query)
        self.assertEqual(sql, 'SELECT email.address, "user".name AS user_name FROM email '
                              'LEFT JOIN "user" ON "user".id = email.user_id WHERE "user".active = %s '
                              'ORDER BY "user".name ASC')
        self.assertEqual(params, (True,))

    def test_fields_after_eager_join(self) -> None:
        _, email = _users_and_emails()
        sql = relq.select(email, lambda q: relq.with_(q, "user"), lambda q: relq.fields(q, "address"),
                          mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, 'SELECT email.address, "user".* FROM email LEFT JOIN "user" ON "user".id = '
                                     'email.user_id')

    def test_nested_relationships(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_many(e, "email"))
        relq.define_entity("email", lambda e: relq.belongs_to(e, "domain"))
        relq.define_entity("domain")
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}] if sql.startswith("SELECT users")
                                                else [])
        relq.select(users, lambda q: relq.with_(q, "email", lambda q: relq.with_(q, "domain")), database=db)
        self.assertQueriesEqual(db.executed[1][0], "SELECT email.*, domain.* FROM email "
                                                   "LEFT JOIN domain ON domain.id = email.domain_id "
                                                   "WHERE email.users_id = %s")

    def test_many_to_many(self) -> None:
        users = relq.define_entity("users", lambda e: relq.many_to_many(e, "groups", "memberships"))
        relq.define_entity("groups")

        def respond(sql: str, params: tuple) -> list[dict]:
            return [{"id": 1}] if sql.startswith("SELECT users") else [{"id": 3, "name": "admins"}]

        db = regression_suite.RecordingDatabase(respond)
        result = relq.select(users, lambda q: relq.with_(q, "groups"), database=db)
        self.assertEqual(result, [{"id": 1, "groups": [{"id": 3, "name": "admins"}]}])
        self.assertQueriesEqual(db.executed[1][0], "SELECT groups.* FROM groups "
                                                   "INNER JOIN memberships ON memberships.groups_id = groups.id "
                                                   "WHERE memberships.users_id = %s")
        self.assertEqual(db.executed[1][1], (1,))

    def test_multiple_relationships(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_many(e, "email"), lambda e: relq.has_many(e, "orders"))
        relq.define_entity("email")
        relq.define_entity("orders")
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}] if sql.startswith("SELECT users")
                                                else [])
        result = relq.select(users, lambda q: relq.with_(q, "email"), lambda q: relq.with_(q, "orders"), database=db)
        self.assertEqual(result, [{"id": 1, "email": [], "orders": []}])

    def test_aliased_result_key(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_many(e, "email"))
        relq.define_entity("email", lambda e: relq.table(e, "mail_addresses", "mail"))
        db = regression_suite.RecordingDatabase(lambda sql, params: [{"id": 1}] if sql.startswith("SELECT users")
                                                else [])
        result = relq.select(users, lambda q: relq.with_(q, "email"), database=db)
        self.assertEqual(result, [{"id": 1, "mail": []}])
        self.assertQueriesEqual(db.executed[1][0], "SELECT mail.* FROM mail_addresses AS mail "
                                                   "WHERE mail.users_id = %s")

    def test_unknown_relationship(self) -> None:
        users = relq.define_entity("users")
        self.assertRaises(relq.UnknownRelationshipError, relq.with_, relq.select_query(users), "email")
        self.assertRaises(relq.UnknownRelationshipError, relq.with_, relq.select_query("users"), "email")

    def test_join_related(self) -> None:
        users = relq.define_entity("users", lambda e: relq.has_many(e, "email"),
                                   lambda e: relq.many_to_many(e, "groups", "memberships"))
        relq.define_entity("email")
        relq.define_entity("groups")

        sql = relq.select(users, lambda q: relq.join_related(q, "email"), mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, "SELECT users.* FROM users LEFT JOIN email ON users.id = email.users_id")

        sql = relq.select(users, lambda q: relq.join_related(q, "groups", "inner"), mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, "SELECT users.* FROM users "
                                     "INNER JOIN memberships ON users.id = memberships.users_id "
                                     "INNER JOIN groups ON memberships.groups_id = groups.id")

    def test_subselect(self) -> None:
        users = relq.define_entity("users")
        email = relq.define_entity("email")
        sql = relq.select(users,
                          lambda q: relq.where(q, relq.in_("id", relq.subselect(email,
                                                                               lambda q: relq.fields(q, "users_id")))),
                          mode=ExecutionMode.SqlOnly)
        self.assertQueriesEqual(sql, "SELECT users.* FROM users WHERE users.id IN (SELECT email.users_id FROM email)")


if __name__ == "__main__":
    unittest.main()
