"""Example usage of the mock_tables library."""

from itertools import count

from mock_tables import Database, create_app, many_of, one_of, primary_key

ids = count(1)

# Declare the models: value getters seed fields that are not given explicitly
db = Database(
    {
        "user": {
            "id": primary_key(lambda: f"user-{next(ids)}"),
            "name": str,
            "age": int,
            "country": one_of("country"),
        },
        "country": {
            "code": primary_key(lambda: "us"),
            "name": str,
        },
        "team": {
            "slug": primary_key(lambda: f"team-{next(ids)}"),
            "members": many_of("user"),
        },
    }
)

germany = db.country.create({"code": "de", "name": "Germany"})
france = db.country.create({"code": "fr", "name": "France"})

people = [
    {"name": "Alice", "age": 30, "country": germany},
    {"name": "Bob", "age": 25, "country": france},
    {"name": "Charlie", "age": 35, "country": germany},
    {"name": "Diana", "age": 28, "country": france},
]

print("Creating users...")
users = [db.user.create(person) for person in people]
for user in users:
    print(f"  Created: {user}")

db.team.create({"slug": "core", "members": users[:2]})

print("\nUsers from Germany, oldest first:")
for user in db.user.find_many('where country.code = "de" order by age desc'):
    print(f"  {user['name']}, age {user['age']}")

print("\nBirthday for Bob:")
print(" ", db.user.update({"where": {"name": {"equals": "Bob"}}}, {"age": lambda age, user: age + 1}))

print("\nTeam core:")
print(" ", db.team.find_first({"where": {"slug": {"equals": "core"}}}))

print("\nREST routes:")
for route in db.user.to_handlers().routes:
    print(f"  {', '.join(sorted(route.methods))} {route.path}")

# ASGI application serving every model
app = create_app(db)
