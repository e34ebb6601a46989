"""Tests for query evaluation."""

from datetime import datetime
from itertools import count

import pytest

from mock_tables import Database, Query, many_of, one_of, primary_key
from mock_tables.query import coerce_query, matches_predicate


def sequence(prefix):
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def db():
    """Database of authors, books and libraries."""
    db = Database(
        {
            "author": {"id": primary_key(sequence("author")), "name": str, "born": int},
            "book": {
                "isbn": primary_key(sequence("book")),
                "title": str,
                "pages": int,
                "published": lambda: datetime(2000, 1, 1),
                "author": one_of("author"),
            },
            "library": {"id": primary_key(sequence("library")), "books": many_of("book")},
        }
    )
    tolkien = db.author.create({"name": "Tolkien", "born": 1892})
    austen = db.author.create({"name": "Austen", "born": 1775})
    hobbit = db.book.create(
        {"title": "The Hobbit", "pages": 310, "published": datetime(1937, 9, 21), "author": tolkien}
    )
    emma = db.book.create({"title": "Emma", "pages": 474, "author": austen})
    db.book.create({"title": "Persuasion", "pages": 249, "author": austen})
    db.library.create({"books": [hobbit]})
    db.library.create({"books": [emma]})
    return db


def titles(books):
    return [book["title"] for book in books]


class TestOperators:
    """Tests for single-property predicates."""

    def test_equals_and_not_equals(self, db):
        assert titles(db.book.find_many({"where": {"title": {"equals": "Emma"}}})) == ["Emma"]
        assert titles(db.book.find_many({"where": {"title": {"not_equals": "Emma"}}})) == [
            "The Hobbit",
            "Persuasion",
        ]

    def test_string_operators(self, db):
        """contains, starts_with and ends_with match substrings."""
        assert titles(db.book.find_many({"where": {"title": {"contains": "ob"}}})) == ["The Hobbit"]
        assert titles(db.book.find_many({"where": {"title": {"not_contains": "o"}}})) == ["Emma"]
        assert titles(db.book.find_many({"where": {"title": {"starts_with": "Pers"}}})) == ["Persuasion"]
        assert titles(db.book.find_many({"where": {"title": {"ends_with": "ma"}}})) == ["Emma"]

    def test_number_ranges(self, db):
        """gt/gte/lt/lte and between compare numbers."""
        assert titles(db.book.find_many({"where": {"pages": {"gt": 310}}})) == ["Emma"]
        assert titles(db.book.find_many({"where": {"pages": {"gte": 310}}})) == ["The Hobbit", "Emma"]
        assert titles(db.book.find_many({"where": {"pages": {"lt": 300}}})) == ["Persuasion"]
        assert titles(db.book.find_many({"where": {"pages": {"between": [250, 400]}}})) == ["The Hobbit"]
        assert titles(db.book.find_many({"where": {"pages": {"not_between": [250, 400]}}})) == [
            "Emma",
            "Persuasion",
        ]

    def test_combined_operators_are_anded(self, db):
        """Several operators and several properties must all hold."""
        where = {"pages": {"gt": 200, "lt": 400}, "title": {"not_equals": "The Hobbit"}}
        assert titles(db.book.find_many({"where": where})) == ["Persuasion"]

    def test_membership(self, db):
        assert titles(db.book.find_many({"where": {"pages": {"in": [249, 474]}}})) == [
            "Emma",
            "Persuasion",
        ]
        assert titles(db.book.find_many({"where": {"pages": {"not_in": [249, 474]}}})) == ["The Hobbit"]

    def test_dates(self, db):
        """Dates compare chronologically."""
        books = db.book.find_many({"where": {"published": {"lt": datetime(1990, 1, 1)}}})
        assert titles(books) == ["The Hobbit"]

    def test_type_mismatch_never_matches(self, db):
        """Comparing incompatible types is a miss, not an error."""
        assert db.book.find_many({"where": {"pages": {"gt": "three hundred"}}}) == []

    def test_unknown_operator(self, db):
        with pytest.raises(ValueError, match="like"):
            db.book.find_many({"where": {"title": {"like": "Emma"}}})

    def test_missing_property(self):
        """A missing value fails ordering operators but compares as None otherwise."""
        assert not matches_predicate(None, {"gt": 1})
        assert not matches_predicate(None, {"contains": "a"})
        assert matches_predicate(None, {"not_equals": "a"})
        assert matches_predicate(None, {"equals": None})


class TestRelationPredicates:
    """Tests for predicates on relation fields."""

    def test_one_of(self, db):
        """ONE_OF predicates are evaluated against the referenced entity."""
        books = db.book.find_many({"where": {"author": {"name": {"equals": "Austen"}}}})
        assert titles(books) == ["Emma", "Persuasion"]

    def test_many_of(self, db):
        """MANY_OF predicates match when any referenced entity matches."""
        libraries = db.library.find_many(
            {"where": {"books": {"author": {"born": {"lt": 1800}}}}}
        )
        assert [library["id"] for library in libraries] == ["library-2"]

    def test_deleted_target_never_matches(self, db):
        db.author.delete({"where": {"name": {"equals": "Tolkien"}}})
        assert db.book.find_many({"where": {"author": {"name": {"equals": "Tolkien"}}}}) == []

    def test_relation_stored_as_plain_value_never_matches(self, db):
        """A relation field holding a plain value is skipped, not evaluated as operators."""
        persuasion = db.book.find_first({"where": {"title": {"equals": "Persuasion"}}})
        db.library.create({"books": persuasion})
        db.library.update({"where": {"id": {"equals": "library-1"}}}, {"books": "closed"})

        where = {"books": {"title": {"equals": "Emma"}}}
        assert [library["id"] for library in db.library.find_many({"where": where})] == ["library-2"]
        assert db.library.find_many({"where": {"books": {"title": {"equals": "Persuasion"}}}}) == []
        assert db.library.find_many({"where": {"books": {"title": {"equals": "The Hobbit"}}}}) == []


class TestOrderingAndPagination:
    """Tests for order_by, skip, take and cursor."""

    def test_order_by(self, db):
        books = db.book.find_many({"order_by": {"pages": "desc"}})
        assert titles(books) == ["Emma", "The Hobbit", "Persuasion"]

    def test_order_by_relation_field(self, db):
        """Ordering can follow a ONE_OF relation."""
        books = db.book.find_many({"orderBy": [{"author": {"name": "asc"}}, {"pages": "asc"}]})
        assert titles(books) == ["Persuasion", "Emma", "The Hobbit"]

    def test_missing_values_sort_last(self):
        db = Database({"item": {"id": primary_key(sequence("item")), "rank": lambda: None}})
        db.item.create({"rank": 2})
        db.item.create()
        db.item.create({"rank": 1})

        for direction in ("asc", "desc"):
            items = db.item.find_many({"order_by": {"rank": direction}})
            assert items[-1]["id"] == "item-2"

    def test_sort_before_pagination(self, db):
        books = db.book.find_many({"order_by": {"pages": "asc"}, "skip": 1, "take": 1})
        assert titles(books) == ["The Hobbit"]

    def test_invalid_direction(self, db):
        with pytest.raises(ValueError):
            db.book.find_many({"order_by": {"pages": "up"}})


class TestCoerceQuery:
    """Tests for building queries from mappings and strings."""

    def test_none(self):
        assert coerce_query(None) == Query()

    def test_query_passes_through(self):
        query = Query(take=1)
        assert coerce_query(query) is query

    def test_mapping(self):
        query = coerce_query({"where": {"a": {"equals": 1}}, "orderBy": {"a": "asc"}, "take": 2})
        assert query == Query(where={"a": {"equals": 1}}, order_by={"a": "asc"}, take=2)

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="strict"):
            coerce_query({"where": {}, "strict": True})

    def test_text(self):
        assert coerce_query("where a = 1 take 2") == Query(where={"a": {"equals": 1}}, take=2)

    def test_describe(self):
        assert Query(where={"id": {"equals": "x"}}).describe() == '{"id":{"equals":"x"}}'
