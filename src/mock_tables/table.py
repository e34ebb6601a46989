"""Entity storage for a single model."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from mock_tables.declaration import is_scalar, parse_model_declaration, resolve_relation
from mock_tables.entity import InternalEntity
from mock_tables.errors import OperationError, OperationErrorType
from mock_tables.projection import to_external
from mock_tables.query import Query, coerce_query, execute_query
from mock_tables.references import Relation
from mock_tables.types import is_relation
from mock_tables.update import normalize_update_data

if TYPE_CHECKING:
    from fastapi import APIRouter

    from mock_tables.database import Database

logger = logging.getLogger(__name__)

QueryLike = Query | Mapping[str, Any] | str | None

# (entity, new properties, new relations)
UpdatePlan = tuple[InternalEntity, dict[str, Any], dict[str, Relation]]


class Table:
    """Ordered, primary-key indexed storage for one model.

    Entities keep their insertion order; the index maps primary-key values
    to entities. Every operation runs under the owning database's lock.
    """

    def __init__(self, database: Database, model_name: str) -> None:
        self.database = database
        self.model_name = model_name
        self.schema = database.registry.get_or_raise(model_name)
        self.primary_key = database.registry.primary_key_of(model_name)
        self._entities: list[InternalEntity] = []
        self._index: dict[Any, InternalEntity] = {}

    def get_internal(self, key_value: Any) -> InternalEntity | None:
        """Look up a stored entity by primary-key value."""
        return self._index.get(key_value)

    def _external(self, entity: InternalEntity) -> dict[str, Any]:
        return to_external(self.database, entity)

    def _not_found(self, operation: str, query: Query) -> OperationError:
        return OperationError(
            OperationErrorType.ENTITY_NOT_FOUND,
            f'Failed to execute "{operation}" on the "{self.model_name}" model: '
            f'no entity found matching the query "{query.describe()}".',
        )

    def _match(self, query: Query, strict: bool, operation: str) -> list[InternalEntity]:
        matched = execute_query(self.database, self._entities, query)
        if not matched and strict:
            raise self._not_found(operation, query)
        return matched

    def _check_unique_relations(
        self, entity: InternalEntity, relations: Mapping[str, Relation], operation: str
    ) -> None:
        """Reject unique relations already claimed by another entity."""
        for name, relation in relations.items():
            if not relation.unique:
                continue
            wanted = set(relation.key_values())
            for other in self._entities:
                if other is entity or name not in other.relations:
                    continue
                taken = wanted.intersection(other.relations[name].key_values())
                if taken:
                    raise OperationError(
                        OperationErrorType.DUPLICATE_RELATION,
                        f'Failed to {operation} a unique "{relation.kind.value}" relation to '
                        f'"{relation.target_model}" ("{self.model_name}.{name}"): referenced '
                        f'{relation.target_model} "{sorted(taken, key=str)[0]}" belongs to another '
                        f'{self.model_name} ("{self.primary_key}: {other.key_value}").',
                    )

    def create(self, initial_values: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Create an entity and return its external view.

        Raises:
            OperationError: If the primary key is already taken, a relation
                has no value, or a unique relation is already claimed.
        """
        with self.database.lock:
            parsed = parse_model_declaration(
                self.database.registry, self.model_name, self.schema, initial_values
            )
            entity = InternalEntity(
                self.model_name, parsed.primary_key, parsed.properties, parsed.relations
            )
            key_value = entity.key_value
            if key_value in self._index:
                raise OperationError(
                    OperationErrorType.DUPLICATE_PRIMARY_KEY,
                    f'Failed to create a "{self.model_name}" entity: an entity with the same '
                    f'primary key "{key_value}" ("{self.primary_key}") already exists.',
                )
            self._check_unique_relations(entity, entity.relations, "create")

            self._entities.append(entity)
            self._index[key_value] = entity
            logger.debug('created "%s" entity %r', self.model_name, key_value)
            return self._external(entity)

    def find_many(self, query: QueryLike = None) -> list[dict[str, Any]]:
        """Return every entity matching ``query``, sorted and paginated."""
        with self.database.lock:
            matched = execute_query(self.database, self._entities, coerce_query(query))
            return [self._external(entity) for entity in matched]

    def find_first(self, query: QueryLike = None, strict: bool = False) -> dict[str, Any] | None:
        """Return the first matching entity, or None.

        Raises:
            OperationError: If ``strict`` is set and nothing matches.
        """
        with self.database.lock:
            matched = self._match(coerce_query(query), strict, "findFirst")
            return self._external(matched[0]) if matched else None

    def get_all(self) -> list[dict[str, Any]]:
        with self.database.lock:
            return [self._external(entity) for entity in self._entities]

    def count(self, query: QueryLike = None) -> int:
        with self.database.lock:
            return len(execute_query(self.database, self._entities, coerce_query(query)))

    def records(self) -> list[dict[str, Any]]:
        """Return raw records, bookkeeping fields included."""
        with self.database.lock:
            return [entity.to_record() for entity in self._entities]

    def _plan_update(self, entity: InternalEntity, data: Mapping[str, Any]) -> UpdatePlan:
        """Compute new properties and relations without touching the entity.

        Every derivation sees the entity as it was before the update.
        """
        snapshot = self._external(entity)
        new_values = {
            key: update.compute(snapshot.get(key), dict(snapshot))
            for key, update in normalize_update_data(data).items()
        }

        properties = dict(entity.properties)
        relations = dict(entity.relations)
        for key, value in new_values.items():
            descriptor = self.schema.get(key)
            if is_relation(descriptor) and value is not None and not is_scalar(value):
                relation = resolve_relation(
                    self.database.registry, self.model_name, key, descriptor, value
                )
                if relation is not None:
                    relations[key] = relation
                    properties.pop(key, None)
                    continue
                logger.warning(
                    '"%s.%s" is a %s relation but got %s; storing it as a plain value',
                    self.model_name,
                    key,
                    descriptor.kind.value,
                    type(value).__name__,
                )
            properties[key] = value
            relations.pop(key, None)
        return entity, properties, relations

    def _check_plans(self, plans: list[UpdatePlan], operation: str) -> None:
        """Reject plans whose primary keys collide with other entities or each other."""
        moving = {id(entity) for entity, _, _ in plans}
        seen: set[Any] = set()
        for entity, properties, relations in plans:
            new_key = properties.get(self.primary_key)
            if new_key is None:
                raise OperationError(
                    OperationErrorType.NO_PRIMARY_KEY,
                    f'Failed to execute "{operation}" on the "{self.model_name}" model: the primary '
                    f'key ("{self.primary_key}") cannot be set to None.',
                )
            owner = self._index.get(new_key)
            if new_key in seen or (
                owner is not None and owner is not entity and id(owner) not in moving
            ):
                raise OperationError(
                    OperationErrorType.DUPLICATE_PRIMARY_KEY,
                    f'Failed to execute "{operation}" on the "{self.model_name}" model: the entity '
                    f'with a primary key "{new_key}" ("{self.primary_key}") already exists.',
                )
            seen.add(new_key)
            changed = {
                name: relation
                for name, relation in relations.items()
                if entity.relations.get(name) is not relation
            }
            self._check_unique_relations(entity, changed, "update")

    def _commit(self, plans: list[UpdatePlan]) -> None:
        """Apply checked plans, re-keying the index for moved entities."""
        moved = []
        for entity, properties, relations in plans:
            old_key = entity.key_value
            entity.properties.clear()
            entity.properties.update(properties)
            entity.relations.clear()
            entity.relations.update(relations)
            if entity.key_value != old_key:
                if self._index.get(old_key) is entity:
                    del self._index[old_key]
                moved.append(entity)
                logger.debug(
                    'moved "%s" entity from %r to %r', self.model_name, old_key, entity.key_value
                )
        for entity in moved:
            self._index[entity.key_value] = entity

    def update(
        self, query: QueryLike, data: Mapping[str, Any], strict: bool = False
    ) -> dict[str, Any] | None:
        """Update the first matching entity and return its new external view.

        Values in ``data`` replace fields as-is; callables (or ``Derive``)
        receive the old field value and the old external entity.

        Raises:
            OperationError: If ``strict`` is set and nothing matches, or the
                new primary key belongs to another entity.
        """
        with self.database.lock:
            matched = self._match(coerce_query(query), strict, "update")
            if not matched:
                return None
            plans = [self._plan_update(matched[0], data)]
            self._check_plans(plans, "update")
            self._commit(plans)
            return self._external(matched[0])

    def update_many(
        self, query: QueryLike, data: Mapping[str, Any], strict: bool = False
    ) -> list[dict[str, Any]]:
        """Update every matching entity; all or none are changed."""
        with self.database.lock:
            matched = self._match(coerce_query(query), strict, "updateMany")
            plans = [self._plan_update(entity, data) for entity in matched]
            self._check_plans(plans, "updateMany")
            self._commit(plans)
            return [self._external(entity) for entity in matched]

    def _remove(self, doomed: list[InternalEntity]) -> list[dict[str, Any]]:
        removed = [self._external(entity) for entity in doomed]
        ids = {id(entity) for entity in doomed}
        self._entities = [entity for entity in self._entities if id(entity) not in ids]
        for entity in doomed:
            del self._index[entity.key_value]
            logger.debug('deleted "%s" entity %r', self.model_name, entity.key_value)
        return removed

    def delete(self, query: QueryLike, strict: bool = False) -> dict[str, Any] | None:
        """Delete the first matching entity and return its last external view."""
        with self.database.lock:
            matched = self._match(coerce_query(query), strict, "delete")
            if not matched:
                return None
            return self._remove(matched[:1])[0]

    def delete_many(self, query: QueryLike, strict: bool = False) -> list[dict[str, Any]]:
        with self.database.lock:
            matched = self._match(coerce_query(query), strict, "deleteMany")
            return self._remove(matched)

    def to_handlers(self, base_url: str = "") -> APIRouter:
        """Generate the REST routes serving this table."""
        from mock_tables.rest import generate_rest_handlers

        return generate_rest_handlers(self.database, self.model_name, base_url)

    def clear(self) -> None:
        with self.database.lock:
            self._entities.clear()
            self._index.clear()

    def __len__(self) -> int:
        with self.database.lock:
            return len(self._entities)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.get_all())

    def __repr__(self) -> str:
        return f"Table({self.model_name!r}, {len(self._entities)} entities)"
