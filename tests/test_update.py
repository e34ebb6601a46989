"""Tests for updating entities."""

from itertools import count
from uuid import uuid4

import pytest

from mock_tables import Database, Derive, OperationError, OperationErrorType, Replace, many_of, one_of, primary_key
from mock_tables.update import as_update_value


def uuid():
    return str(uuid4())


def numbers():
    counter = count(1)
    return lambda: next(counter)


class TestUpdateValues:
    """Tests for wrapping raw update values."""

    def test_plain_values_replace(self):
        """Non-callables become replacements."""
        assert as_update_value("John") == Replace("John")
        assert as_update_value(None) == Replace(None)

    def test_callables_derive(self):
        """Callables become derivations."""
        update = as_update_value(lambda value, entity: value * 2)
        assert isinstance(update, Derive)
        assert update.compute(4, {}) == 8

    def test_explicit_variants_kept(self):
        """Replace and Derive pass through unchanged."""
        replace = Replace(str.upper)
        assert as_update_value(replace) is replace
        assert replace.compute("a", {}) is str.upper


class TestUpdate:
    """Tests for Table.update."""

    def test_updates_unique_match(self):
        """Updates a unique entity that matches the query."""
        user_id = uuid()
        db = Database({"user": {"id": primary_key(uuid), "firstName": lambda: "Jessie"}})
        db.user.create({"id": user_id, "firstName": "Joseph"})
        db.user.create()

        updated = db.user.update({"where": {"id": {"equals": user_id}}}, {"firstName": "John"})
        assert updated["firstName"] == "John"

        result = db.user.find_first({"where": {"id": {"equals": user_id}}})
        assert result["firstName"] == "John"

    def test_updates_first_match(self):
        """Updates the first entity when multiple entities match the query."""
        db = Database(
            {
                "user": {
                    "id": primary_key(uuid),
                    "firstName": lambda: "Jessie",
                    "followersCount": numbers(),
                }
            }
        )
        db.user.create({"firstName": "Alice", "followersCount": 10})
        db.user.create({"followersCount": 12})

        updated = db.user.update({"where": {"followersCount": {"gte": 10}}}, {"firstName": "Kate"})
        assert updated["firstName"] == "Kate"
        assert updated["followersCount"] == 10

        kate = db.user.find_first({"where": {"firstName": {"equals": "Kate"}}})
        assert kate["followersCount"] == 10
        assert db.user.count({"where": {"firstName": {"equals": "Kate"}}}) == 1

    def test_strict_no_match(self):
        """Throws when no entity matches the query in strict mode."""
        db = Database({"user": {"id": primary_key(uuid), "firstName": str}})
        db.user.create()
        db.user.create()

        with pytest.raises(OperationError) as excinfo:
            db.user.update(
                {"where": {"id": {"equals": "abc-123"}}}, {"firstName": "John"}, strict=True
            )

        assert excinfo.value.type is OperationErrorType.ENTITY_NOT_FOUND
        assert str(excinfo.value) == (
            'Failed to execute "update" on the "user" model: no entity found matching '
            'the query "{"id":{"equals":"abc-123"}}".'
        )

    def test_no_match(self):
        """Does nothing when no entity matches the query."""
        db = Database({"user": {"id": primary_key(uuid)}})
        db.user.create()
        db.user.create()

        updated = db.user.update({"where": {"id": {"equals": "abc-123"}}}, {"id": "def-456"})
        assert updated is None
        assert db.user.find_first({"where": {"id": {"equals": "def-456"}}}) is None

    def test_moves_entity_on_primary_key_update(self):
        """Moves the entity when it updates the primary key."""
        db = Database({"user": {"id": primary_key(uuid)}})
        db.user.create({"id": "abc-123"})

        updated = db.user.update({"where": {"id": {"equals": "abc-123"}}}, {"id": "def-456"})
        assert updated["id"] == "def-456"

        assert db.user.find_first({"where": {"id": {"equals": "def-456"}}}) == {"id": "def-456"}
        assert db.user.find_first({"where": {"id": {"equals": "abc-123"}}}) is None

    def test_primary_key_update_keeps_position_and_fields(self):
        """Re-keying keeps the entity's position and its other fields."""
        db = Database({"user": {"id": primary_key(uuid), "role": str}})
        db.user.create({"id": "a", "role": "Auditor"})
        db.user.create({"id": "b", "role": "Writer"})
        db.user.create({"id": "c", "role": "Editor"})

        db.user.update({"where": {"id": {"equals": "b"}}}, {"id": "z"})

        users = db.user.get_all()
        assert [user["id"] for user in users] == ["a", "z", "c"]
        assert users[1]["role"] == "Writer"
        assert db.user.create({"id": "b"})["id"] == "b"

    def test_duplicate_primary_key(self):
        """Throws when updating an entity using a key already used."""
        db = Database({"user": {"id": primary_key(uuid), "firstName": str}})
        db.user.create({"id": "123"})
        db.user.create({"id": "456"})

        with pytest.raises(OperationError) as excinfo:
            db.user.update(
                {"where": {"id": {"equals": "456"}}}, {"id": "123", "firstName": "Kate"}
            )

        assert excinfo.value.type is OperationErrorType.DUPLICATE_PRIMARY_KEY
        assert str(excinfo.value) == (
            'Failed to execute "update" on the "user" model: the entity with a primary key '
            '"123" ("id") already exists.'
        )
        assert db.user.find_first({"where": {"id": {"equals": "456"}}}) == {
            "id": "456",
            "firstName": "",
        }

    def test_primary_key_cannot_become_none(self):
        db = Database({"user": {"id": primary_key(uuid), "firstName": str}})
        db.user.create({"id": "123", "firstName": "John"})

        with pytest.raises(OperationError) as excinfo:
            db.user.update({"where": {"id": {"equals": "123"}}}, {"id": None, "firstName": "Kate"})

        assert excinfo.value.type is OperationErrorType.NO_PRIMARY_KEY
        assert str(excinfo.value) == (
            'Failed to execute "update" on the "user" model: the primary key ("id") cannot be set to None.'
        )
        assert db.user.get_all() == [{"id": "123", "firstName": "John"}]
        assert db.user.get_internal(None) is None

    def test_same_primary_key_is_not_a_collision(self):
        """Setting the primary key to its current value succeeds."""
        db = Database({"user": {"id": primary_key(uuid)}})
        db.user.create({"id": "123"})
        assert db.user.update({"where": {"id": {"equals": "123"}}}, {"id": "123"}) == {"id": "123"}

    def test_derives_from_previous_values(self):
        """Derives next entity values based on the existing ones."""
        db = Database({"user": {"id": primary_key(uuid), "firstName": str, "role": str}})
        db.user.create({"firstName": "John", "role": "Auditor"})
        db.user.create({"firstName": "Jessie", "role": "Writer"})

        db.user.update(
            {"where": {"role": {"equals": "Auditor"}}},
            {
                "firstName": lambda first_name, user: first_name.upper(),
                "role": lambda role, user: "Writer" if user["firstName"] == "John" else role,
            },
        )

        result = db.user.find_first({"where": {"firstName": {"equals": "JOHN"}}})
        assert result["firstName"] == "JOHN"
        assert result["role"] == "Writer"

    def test_derivation_sees_old_primary_key(self):
        """Derivations of other fields see the primary key before re-keying."""
        db = Database({"user": {"id": primary_key(uuid), "previousId": str}})
        db.user.create({"id": "abc"})

        updated = db.user.update(
            {"where": {"id": {"equals": "abc"}}},
            {"id": "def", "previousId": Derive(lambda value, user: user["id"])},
        )
        assert updated == {"id": "def", "previousId": "abc"}

    def test_update_relation(self):
        """Entity values for a relation field are re-resolved to references."""
        db = Database(
            {
                "user": {"id": primary_key(uuid), "name": str},
                "post": {"id": primary_key(uuid), "author": one_of("user"), "readers": many_of("user")},
            }
        )
        alice = db.user.create({"name": "Alice"})
        bob = db.user.create({"name": "Bob"})
        post = db.post.create({"author": alice, "readers": []})

        updated = db.post.update(
            {"where": {"id": {"equals": post["id"]}}},
            {"author": bob, "readers": [alice, bob]},
        )
        assert updated["author"]["name"] == "Bob"
        assert [reader["name"] for reader in updated["readers"]] == ["Alice", "Bob"]

    def test_update_many(self):
        """update_many changes every match."""
        db = Database({"user": {"id": primary_key(uuid), "age": int}})
        for age in (10, 20, 30):
            db.user.create({"age": age})

        updated = db.user.update_many({"where": {"age": {"gte": 20}}}, {"age": lambda age, user: age + 1})
        assert [user["age"] for user in updated] == [21, 31]
        assert [user["age"] for user in db.user.get_all()] == [10, 21, 31]

    def test_update_many_colliding_keys(self):
        """update_many refuses to give several entities one primary key."""
        db = Database({"user": {"id": primary_key(uuid), "age": int}})
        db.user.create({"id": "a", "age": 1})
        db.user.create({"id": "b", "age": 1})

        with pytest.raises(OperationError) as excinfo:
            db.user.update_many({"where": {"age": {"equals": 1}}}, {"id": "c"})
        assert excinfo.value.type is OperationErrorType.DUPLICATE_PRIMARY_KEY
        assert [user["id"] for user in db.user.get_all()] == ["a", "b"]

    def test_update_many_swaps_keys(self):
        """Keys freed by one entity in the same call can be taken by another."""
        db = Database({"user": {"id": primary_key(uuid)}})
        db.user.create({"id": 1})
        db.user.create({"id": 2})

        db.user.update_many(None, {"id": lambda key, user: key + 1})
        assert [user["id"] for user in db.user.get_all()] == [2, 3]
        assert db.user.find_first({"where": {"id": {"equals": 3}}}) == {"id": 3}
