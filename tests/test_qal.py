"""Tests for relq's query abstraction layer.

The tests here mainly act as regression tests to ensure that the composition operations produce the correct query
objects, independent of how they are rendered.
"""
from __future__ import annotations

import unittest

import relq
from relq import AllColumns, JoinType, SortDirection
from relq.qal import OrderItem, transform
from tests import regression_suite


class CompositionTests(regression_suite.EntityTestCase):
    def test_fresh_select_projects_all_columns(self) -> None:
        query = relq.select_query("users")
        self.assertTrue(query.projects_all_columns())
        self.assertEqual(query.from_items, ("users",))
        self.assertEqual(query.identifier, "users")

    def test_fields_replace_placeholder_then_append(self) -> None:
        query = relq.select_query("users")
        stepwise = relq.fields(relq.fields(query, "id"), "name")
        combined = relq.fields(query, "id", "name")
        self.assertEqual(stepwise.fields, ("id", "name"))
        self.assertEqual(stepwise.fields, combined.fields)

    def test_fields_flatten_lists(self) -> None:
        query = relq.fields(relq.select_query("users"), ["id", "name"], "email")
        self.assertEqual(query.fields, ("id", "name", "email"))

    def test_fields_keep_merged_fields(self) -> None:
        query = relq.select_query("users")
        query = query.replace(fields=query.fields + ("address.street",))
        query = relq.fields(query, "name")
        self.assertEqual(query.fields, ("name", "address.street"))

    def test_field_aliases_are_registered(self) -> None:
        query = relq.fields(relq.select_query("users"), ("name", "username"))
        self.assertIn("username", query.aliases)

    def test_values_accumulate(self) -> None:
        query = relq.insert_query("users")
        query = relq.values(relq.values(query, {"x": 1}), {"y": 2})
        self.assertEqual(list(query.values), [{"x": 1}, {"y": 2}])

    def test_values_are_copied(self) -> None:
        record = {"name": "alice"}
        query = relq.values(relq.insert_query("users"), [record])
        record["name"] = "bob"
        self.assertEqual(query.values[0]["name"], "alice")

    def test_set_fields_merge(self) -> None:
        query = relq.update_query("users")
        query = relq.set_fields(relq.set_fields(query, {"name": "alice", "age": 30}), {"age": 31})
        self.assertEqual(dict(query.set_fields), {"name": "alice", "age": 31})

    def test_operations_do_not_modify_input(self) -> None:
        original = relq.select_query("users")
        relq.where(relq.fields(original, "id"), {"id": 1})
        self.assertTrue(original.projects_all_columns())
        self.assertEqual(original.where, ())

    def test_composition_is_associative(self) -> None:
        operations = [
            lambda q: relq.fields(q, "id", "name"),
            lambda q: relq.where(q, {"active": True}),
            lambda q: relq.order(q, "name", "desc"),
            lambda q: relq.limit(q, 10),
            lambda q: relq.offset(q, 5),
        ]
        complete = relq.compose(relq.select_query("users"), *operations)
        for split in range(len(operations) + 1):
            with self.subTest("Split", split=split):
                prefix = relq.compose(relq.select_query("users"), *operations[:split])
                continued = relq.compose(prefix, *operations[split:])
                self.assertEqual(relq.render_query(complete), relq.render_query(continued))

    def test_where_binds_columns(self) -> None:
        query = relq.where(relq.select_query("users"), {"name": "alice"})
        self.assertEqual(query.where[0], relq.eq(relq.col("users.name"), "alice"))

    def test_where_keeps_aliases_unbound(self) -> None:
        query = relq.fields(relq.select_query("users"), (relq.sqlfn("count", "*"), "cnt"))
        query = relq.where(query, relq.gt("cnt", 1))
        self.assertEqual(query.where[0], relq.gt("cnt", 1))

    def test_empty_where_mapping_is_ignored(self) -> None:
        query = relq.select_query("users")
        self.assertIs(relq.where(query, {}), query)

    def test_join_with_column_mapping(self) -> None:
        query = relq.join(relq.select_query("users"), "email", {"email.users_id": "users.id"})
        join = query.joins[0]
        self.assertEqual(join.kind, JoinType.Left)
        self.assertEqual(join.target, "email")
        self.assertEqual(join.predicate, relq.eq(relq.col("email.users_id"), relq.col("users.id")))

    def test_join_with_alias(self) -> None:
        query = relq.join(relq.select_query("users"), ("email", "e"), {"e.users_id": "users.id"}, kind="inner")
        self.assertEqual(query.joins[0].kind, JoinType.Inner)
        self.assertEqual(query.joins[0].identifier, "e")

    def test_order_parses_direction(self) -> None:
        query = relq.order(relq.select_query("users"), "name", "DESC")
        self.assertEqual(query.order, (OrderItem("name", SortDirection.Descending),))

    def test_negative_limit_and_offset(self) -> None:
        query = relq.select_query("users")
        self.assertRaises(ValueError, relq.limit, query, -1)
        self.assertRaises(ValueError, relq.offset, query, -1)

    def test_aggregate(self) -> None:
        count = relq.sqlfn("count", "*")
        query = relq.aggregate(relq.select_query("users"), count, "cnt", group_by="status")
        self.assertEqual(query.fields, ((count, "cnt"),))
        self.assertEqual(query.group, ("status",))
        self.assertIn("cnt", query.aliases)

    def test_modifier_concatenates_parts(self) -> None:
        query = relq.modifier(relq.select_query("users"), "DISTINCT", " ON (name)")
        self.assertEqual(query.modifiers, ("DISTINCT ON (name)",))

    def test_post_queries_keep_order(self) -> None:
        first, second = (lambda rows: rows), (lambda rows: list(reversed(rows)))
        query = relq.post_query(relq.post_query(relq.select_query("users"), first), second)
        self.assertEqual(query.post_queries, (first, second))

    def test_invalid_target(self) -> None:
        self.assertRaises(relq.InvalidEntityError, relq.select_query, 42)
        self.assertRaises(relq.InvalidEntityError, relq.from_, relq.select_query("users"), object())

    def test_existing_query_is_reused(self) -> None:
        query = relq.select_query("users")
        self.assertIs(relq.select_query(query), query)


class MergeTests(regression_suite.EntityTestCase):
    def test_merge_queries_concatenates(self) -> None:
        parent = relq.compose(relq.select_query("users"),
                              lambda q: relq.fields(q, "id"),
                              lambda q: relq.where(q, {"active": True}),
                              lambda q: relq.join(q, "address", {"address.users_id": "users.id"}))
        child = relq.compose(relq.select_query("email"),
                             lambda q: relq.fields(q, ("address", "mail")),
                             lambda q: relq.where(q, {"verified": True}),
                             lambda q: relq.join(q, "domain", {"domain.id": "email.domain_id"}))
        merged = transform.merge_queries(parent, child)
        self.assertEqual(merged.fields, parent.fields + child.fields)
        self.assertEqual(merged.where, parent.where + child.where)
        self.assertEqual(merged.joins, parent.joins + child.joins)
        self.assertEqual(merged.aliases, frozenset({"mail"}))

    def test_merge_subquery_prefixes_refinement(self) -> None:
        address = relq.define_entity("address")
        refinement = relq.compose(relq.select_query(address), lambda q: relq.fields(q, "street"),
                                  lambda q: relq.order(q, "city"), lambda q: relq.group(q, "city"))
        merged = transform.merge_subquery(relq.select_query("users"), address,
                                          lambda q: relq.compose(q, lambda q: relq.fields(q, "street"),
                                                                 lambda q: relq.order(q, "city"),
                                                                 lambda q: relq.group(q, "city")))
        self.assertEqual(merged.fields, (AllColumns, "address.street"))
        self.assertEqual(merged.order, (OrderItem("address.city"),))
        self.assertEqual(merged.group, ("address.city",))
        self.assertEqual(refinement.fields, ("street",))

    def test_merge_subquery_expands_default_fields(self) -> None:
        address = relq.define_entity("address", lambda e: relq.entity_fields(e, "street", "city"))
        merged = transform.merge_subquery(relq.select_query("users"), address)
        self.assertEqual(merged.fields, (AllColumns, "address.street", "address.city"))

    def test_merge_subquery_without_default_fields(self) -> None:
        merged = transform.merge_subquery(relq.select_query("users"), "address")
        self.assertEqual(merged.fields, (AllColumns, "address.*"))

    def test_force_prefix_skips_aliases(self) -> None:
        prefixed = transform.force_prefix("users", ["name", "email.address", ("age", "years"), "years"],
                                          aliases={"years"})
        self.assertEqual(prefixed, ("users.name", "email.address", ("users.age", "years"), "years"))


if __name__ == "__main__":
    unittest.main()
