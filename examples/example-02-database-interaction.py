import relq

# The in-memory DuckDB database is registered on the database pool and used by all queries from now on.
duck = relq.db.duckdb.connect()
duck.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name VARCHAR)")
duck.execute("CREATE TABLE email (id INTEGER PRIMARY KEY, users_id INTEGER, address VARCHAR)")

users = relq.define_entity("users",
                           lambda e: relq.has_many(e, "email"),
                           lambda e: relq.prepare(e, lambda r: {**r, "name": r["name"].strip().lower()}),
                           lambda e: relq.transform(e, lambda r: {**r, "display_name": r["name"].title()}))
email = relq.define_entity("email")

relq.insert(users, lambda q: relq.values(q, [{"id": 1, "name": "  Alice "}, {"id": 2, "name": "BOB"}]))
relq.insert(email, lambda q: relq.values(q, [{"id": 10, "users_id": 1, "address": "alice@example.com"},
                                             {"id": 11, "users_id": 1, "address": "a@example.org"}]))

print("===== Users with their email addresses: =====\n")
for user in relq.select(users, lambda q: relq.with_(q, email, lambda q: relq.fields(q, "address")),
                        lambda q: relq.order(q, "id")):
    addresses = ", ".join(mail["address"] for mail in user["email"]) or "-"
    print(f"- {user['display_name']}: {addresses}")
print()

print("===== Aggregation: =====\n")
counts = relq.select(email, lambda q: relq.fields(q, "users_id"),
                     lambda q: relq.aggregate(q, relq.sqlfn("count", "*"), "num_addresses", group_by="users_id"))
print(counts)

print("===== Raw SQL: =====\n")
print(relq.exec_raw("SELECT count(*) AS num_users FROM users"))
