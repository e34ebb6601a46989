"""Query evaluation: filtering, sorting and pagination of entities."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from mock_tables.entity import InternalEntity
from mock_tables.types import is_relation

if TYPE_CHECKING:
    from mock_tables.database import Database
    from mock_tables.parsing.query_parser import QueryParser

logger = logging.getLogger(__name__)


@dataclass
class Query:
    """Selects entities of one model.

    ``where`` maps property names to operator mappings, for example
    ``{"age": {"gte": 18}}``. For relation fields the value is a nested
    ``where`` evaluated against the referenced entities.
    """

    where: dict[str, Any] | None = None
    order_by: dict[str, Any] | list[dict[str, Any]] | None = None
    skip: int | None = None
    take: int | None = None
    cursor: Any = None

    def describe(self) -> str:
        """Serialize the ``where`` clause for error messages."""
        return json.dumps(self.where or {}, separators=(",", ":"), default=str)


QUERY_KEYS = {"where", "order_by", "orderBy", "skip", "take", "cursor"}


@lru_cache(maxsize=1)
def _get_parser() -> QueryParser:
    from mock_tables.parsing.query_parser import QueryParser

    return QueryParser()


def coerce_query(value: Query | Mapping[str, Any] | str | None) -> Query:
    """Build a Query from a Query, a mapping or a query-language string."""
    if value is None:
        return Query()
    if isinstance(value, Query):
        return value
    if isinstance(value, str):
        return _get_parser().parse(value)
    if isinstance(value, Mapping):
        unknown = set(value) - QUERY_KEYS
        if unknown:
            raise ValueError(f"Unknown query keys: {', '.join(sorted(unknown))}")
        return Query(
            where=value.get("where"),
            order_by=value.get("order_by", value.get("orderBy")),
            skip=value.get("skip"),
            take=value.get("take"),
            cursor=value.get("cursor"),
        )
    raise TypeError(f"Cannot build a query from {type(value).__name__}")


def _contains(value: Any, operand: Any) -> bool:
    return operand in value


def _between(value: Any, operand: Any) -> bool:
    low, high = operand
    return low <= value <= high


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda value, operand: value == operand,
    "not_equals": lambda value, operand: value != operand,
    "contains": _contains,
    "not_contains": lambda value, operand: not _contains(value, operand),
    "starts_with": lambda value, operand: isinstance(value, str) and value.startswith(operand),
    "ends_with": lambda value, operand: isinstance(value, str) and value.endswith(operand),
    "gt": lambda value, operand: value > operand,
    "gte": lambda value, operand: value >= operand,
    "lt": lambda value, operand: value < operand,
    "lte": lambda value, operand: value <= operand,
    "between": _between,
    "not_between": lambda value, operand: not _between(value, operand),
    "in": lambda value, operand: value in operand,
    "not_in": lambda value, operand: value not in operand,
}

# Operators that still compare when the property is missing (as None)
NULLABLE_OPERATORS = {"equals", "not_equals", "in", "not_in"}


def matches_predicate(value: Any, predicate: Mapping[str, Any]) -> bool:
    """Check a property value against an operator mapping."""
    if not isinstance(predicate, Mapping):
        raise ValueError(f"Expected an operator mapping, got {predicate!r}")
    for operator, operand in predicate.items():
        compare = OPERATORS.get(operator)
        if compare is None:
            raise ValueError(f"Unknown query operator '{operator}'")
        if value is None and operator not in NULLABLE_OPERATORS:
            return False
        try:
            if not compare(value, operand):
                return False
        except (TypeError, ValueError):
            return False
    return True


def resolve_targets(database: Database, entity: InternalEntity, field_name: str) -> list[InternalEntity]:
    """Return the entities a relation field currently points at."""
    relation = entity.relations[field_name]
    targets = []
    for ref in relation.refs:
        target = database.table(ref.target_model).get_internal(ref.target_key_value)
        if target is not None:
            targets.append(target)
    return targets


def matches_where(database: Database, entity: InternalEntity, where: Mapping[str, Any] | None) -> bool:
    """Check whether an entity satisfies every predicate of ``where``."""
    if not where:
        return True
    schema = database.registry.get(entity.model_name) or {}
    for field_name, predicate in where.items():
        if is_relation(schema.get(field_name)):
            # A relation field holding a plain value references nothing
            if field_name not in entity.relations:
                return False
            targets = resolve_targets(database, entity, field_name)
            if entity.relations[field_name].is_many:
                matched = any(matches_where(database, target, predicate) for target in targets)
            else:
                matched = bool(targets) and matches_where(database, targets[0], predicate)
        else:
            matched = matches_predicate(entity.properties.get(field_name), predicate)
        if not matched:
            return False
    return True


def _normalize_order_by(order_by: Any) -> list[tuple[tuple[str, ...], bool]]:
    """Flatten order_by into (field path, descending) pairs."""
    if not order_by:
        return []
    entries = order_by if isinstance(order_by, list) else [order_by]
    keys: list[tuple[tuple[str, ...], bool]] = []

    def walk(entry: Mapping[str, Any], prefix: tuple[str, ...]) -> None:
        for name, direction in entry.items():
            if isinstance(direction, Mapping):
                walk(direction, prefix + (name,))
            elif str(direction).lower() in ("asc", "desc"):
                keys.append((prefix + (name,), str(direction).lower() == "desc"))
            else:
                raise ValueError(f"Invalid sort direction {direction!r} for '{name}'")

    for entry in entries:
        walk(entry, ())
    return keys


def _sort_value(database: Database, entity: InternalEntity, path: tuple[str, ...]) -> Any:
    name, rest = path[0], path[1:]
    if not rest:
        return entity.properties.get(name)
    if name not in entity.relations:
        return None
    targets = resolve_targets(database, entity, name)
    if not targets:
        return None
    return _sort_value(database, targets[0], rest)


def sort_entities(
    database: Database, entities: list[InternalEntity], order_by: Any
) -> list[InternalEntity]:
    """Sort entities by the given keys; missing values sort last."""
    result = list(entities)
    for path, descending in reversed(_normalize_order_by(order_by)):
        values = {id(entity): _sort_value(database, entity, path) for entity in result}
        present = [entity for entity in result if values[id(entity)] is not None]
        missing = [entity for entity in result if values[id(entity)] is None]
        try:
            present.sort(key=lambda e: values[id(e)], reverse=descending)
        except TypeError:
            present.sort(key=lambda e: str(values[id(e)]), reverse=descending)
        result = present + missing
    return result


def paginate(entities: list[InternalEntity], query: Query) -> list[InternalEntity]:
    """Apply cursor or skip/take pagination."""
    if query.cursor is not None:
        index = next(
            (i for i, entity in enumerate(entities) if entity.key_value == query.cursor),
            None,
        )
        if index is None:
            return []
        start = index + 1
    else:
        start = query.skip or 0
    end = None if query.take is None else start + query.take
    return entities[start:end]


def execute_query(database: Database, entities: Iterable[InternalEntity], query: Query) -> list[InternalEntity]:
    """Filter, sort and paginate ``entities`` in that order."""
    matched = [entity for entity in entities if matches_where(database, entity, query.where)]
    logger.debug("query %s matched %d entities", query.describe(), len(matched))
    return paginate(sort_entities(database, matched, query.order_by), query)
