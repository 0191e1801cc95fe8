import relq

# Entities can refer to each other before they are declared. The relationships are only resolved once they are used.
users = relq.define_entity("users",
                           lambda e: relq.entity_fields(e, "id", "name"),
                           lambda e: relq.has_many(e, "email"),
                           lambda e: relq.has_one(e, "address"))
email = relq.define_entity("email", lambda e: relq.belongs_to(e, "users"))
address = relq.define_entity("address")

print("===== Query composition: =====\n")
# Queries are values that are composed from small transformations. Partial queries can be re-used as templates.
active_users = relq.compose(relq.select_query(users), lambda q: relq.where(q, {"active": True}))
newest = relq.compose(active_users, lambda q: relq.order(q, "created_at", "desc"), lambda q: relq.limit(q, 10))
print(newest)
print()

print("===== Relationships: =====\n")
# Has-one and belongs-to relationships are joined directly, their refinement is merged into the parent query.
print(relq.select(users, lambda q: relq.with_(q, address, lambda q: relq.fields(q, "city")),
                  mode=relq.ExecutionMode.SqlOnly))

# Has-many relationships are loaded by a follow-up query per result row. In a dry run, all queries are printed instead of
# being executed and each query produces a placeholder row.
with relq.dry_run():
    result = relq.select(users, lambda q: relq.with_(q, email, lambda q: relq.where(q, {"verified": True})))
print(result)
print()

print("===== Data manipulation: =====\n")
with relq.sql_only():
    print(relq.insert(users, lambda q: relq.values(q, [{"name": "alice"}, {"name": "bob"}])))
    print(relq.update(users, lambda q: relq.set_fields(q, {"active": False}), lambda q: relq.where(q, {"id": 1})))
    print(relq.delete(email, lambda q: relq.where(q, relq.in_("users_id", [1, 2]))))
