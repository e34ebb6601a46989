"""Model declarations for the mock_tables library."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from mock_tables.errors import OperationError, OperationErrorType

logger = logging.getLogger(__name__)


class RelationKind(Enum):
    """Cardinality of a relation between two models."""

    ONE_OF = "ONE_OF"
    MANY_OF = "MANY_OF"


@dataclass(frozen=True)
class PrimaryKey:
    """A value descriptor flagged as the model's primary key."""

    getter: Callable[[], Any]

    def __call__(self) -> Any:
        return self.getter()


@dataclass(frozen=True)
class RelationDefinition:
    """Declares that a field points at entities of another model."""

    kind: RelationKind
    model_name: str
    unique: bool = False


# A model schema maps field names to value getters, primary keys or relations
ModelSchema = Mapping[str, Any]


def primary_key(getter: Callable[[], Any]) -> PrimaryKey:
    """Flag a value getter as the primary key of its model."""
    return PrimaryKey(getter)


def one_of(model_name: str, unique: bool = False) -> RelationDefinition:
    """Declare a relation to exactly one entity of ``model_name``."""
    return RelationDefinition(RelationKind.ONE_OF, model_name, unique)


def many_of(model_name: str, unique: bool = False) -> RelationDefinition:
    """Declare a relation to zero or more entities of ``model_name``."""
    return RelationDefinition(RelationKind.MANY_OF, model_name, unique)


def is_primary_key(descriptor: Any) -> bool:
    return isinstance(descriptor, PrimaryKey)


def is_relation(descriptor: Any) -> bool:
    return isinstance(descriptor, RelationDefinition)


def find_primary_key(schema: ModelSchema, model_name: str | None = None) -> str:
    """Return the name of the field flagged as primary key.

    Args:
        schema: The model schema to inspect.
        model_name: Used in error messages only.

    Raises:
        OperationError: If no field, or more than one field, is flagged.
    """
    label = f'"{model_name}"' if model_name else "model"
    keys = [name for name, descriptor in schema.items() if is_primary_key(descriptor)]
    if not keys:
        raise OperationError(
            OperationErrorType.NO_PRIMARY_KEY,
            f"Failed to parse model declaration for {label}: no primary key specified.",
        )
    if len(keys) > 1:
        raise OperationError(
            OperationErrorType.MULTIPLE_PRIMARY_KEYS,
            f"Failed to parse model declaration for {label}: "
            f"cannot specify more than one primary key for a model.",
        )
    return keys[0]


class ModelRegistry:
    """Registry of all declared model schemas."""

    def __init__(self) -> None:
        self._schemas: dict[str, dict[str, Any]] = {}
        self._primary_keys: dict[str, str] = {}

    @classmethod
    def from_dictionary(cls, dictionary: Mapping[str, ModelSchema]) -> ModelRegistry:
        """Register every model of ``dictionary`` and validate the relations."""
        registry = cls()
        for name, schema in dictionary.items():
            registry.register(name, schema)
        registry.validate_relations()
        return registry

    def register(self, name: str, schema: ModelSchema) -> None:
        """Register a model schema, validating its primary key."""
        if name in self._schemas:
            raise ValueError(f"Model '{name}' is already defined")
        for field_name, descriptor in schema.items():
            if not (is_primary_key(descriptor) or is_relation(descriptor) or callable(descriptor)):
                raise TypeError(
                    f'Field "{name}.{field_name}" must be a value getter, '
                    f"a primary key or a relation, got {type(descriptor).__name__}"
                )
        self._primary_keys[name] = find_primary_key(schema, name)
        self._schemas[name] = dict(schema)
        logger.debug('registered model "%s" keyed by "%s"', name, self._primary_keys[name])

    def validate_relations(self) -> None:
        """Check that every relation targets a registered model."""
        for name, schema in self._schemas.items():
            for field_name, descriptor in schema.items():
                if is_relation(descriptor) and descriptor.model_name not in self._schemas:
                    raise KeyError(
                        f'Relation "{name}.{field_name}" references unknown model '
                        f'"{descriptor.model_name}"'
                    )

    def get(self, name: str) -> dict[str, Any] | None:
        return self._schemas.get(name)

    def get_or_raise(self, name: str) -> dict[str, Any]:
        """Get a schema by model name, raising if not found."""
        schema = self._schemas.get(name)
        if schema is None:
            raise KeyError(f"Model '{name}' not found")
        return schema

    def primary_key_of(self, name: str) -> str:
        """Return the primary-key field of a registered model."""
        self.get_or_raise(name)
        return self._primary_keys[name]

    def list_models(self) -> list[str]:
        return list(self._schemas)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas
