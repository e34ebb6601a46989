"""Parse a model schema plus initial values into entity parts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping

from mock_tables.errors import OperationError, OperationErrorType
from mock_tables.references import ReferenceMarker, Relation
from mock_tables.types import (
    ModelRegistry,
    ModelSchema,
    RelationDefinition,
    RelationKind,
    is_primary_key,
    is_relation,
)

logger = logging.getLogger(__name__)

# Values stored verbatim, bypassing relation resolution
SCALAR_TYPES = (str, int, float, bool, date)


def is_scalar(value: Any) -> bool:
    """Check if a value is a plain scalar (string, number, boolean or date)."""
    return isinstance(value, SCALAR_TYPES)


@dataclass
class ParsedModelDeclaration:
    """Result of parsing a model schema for one entity."""

    primary_key: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    relations: dict[str, Relation] = field(default_factory=dict)


def make_reference(
    registry: ModelRegistry, model_name: str, field_name: str, target_model: str, entity_ref: Any
) -> ReferenceMarker:
    """Build a marker pointing at ``entity_ref`` in ``target_model``."""
    key_field = registry.primary_key_of(target_model)
    if not isinstance(entity_ref, Mapping) or entity_ref.get(key_field) is None:
        raise ValueError(
            f'Failed to reference a "{target_model}" entity from "{model_name}.{field_name}": '
            f'the referenced value has no primary key "{key_field}".'
        )
    return ReferenceMarker(target_model, key_field, entity_ref[key_field])


def resolve_relation(
    registry: ModelRegistry,
    model_name: str,
    field_name: str,
    definition: RelationDefinition,
    value: Any,
) -> Relation | None:
    """Turn related entities into a relation value.

    Returns None when the shape of ``value`` does not fit the relation kind
    (a list for ONE_OF, or a single entity for MANY_OF).
    """
    is_sequence = isinstance(value, (list, tuple))

    if definition.kind is RelationKind.MANY_OF and is_sequence:
        refs = [
            make_reference(registry, model_name, field_name, definition.model_name, entity_ref)
            for entity_ref in value
        ]
    elif definition.kind is RelationKind.ONE_OF and not is_sequence:
        refs = [make_reference(registry, model_name, field_name, definition.model_name, value)]
    else:
        return None

    logger.debug(
        '"%s.%s" references "%s" with keys %r',
        model_name,
        field_name,
        definition.model_name,
        [ref.target_key_value for ref in refs],
    )
    return Relation(definition.kind, definition.model_name, definition.unique, refs)


def parse_model_declaration(
    registry: ModelRegistry,
    model_name: str,
    schema: ModelSchema,
    initial_values: Mapping[str, Any] | None = None,
) -> ParsedModelDeclaration:
    """Parse a model schema into a primary key, properties and relations.

    Fields are visited in declaration order. Explicit initial values win
    over generated defaults; relation fields must always be given a value.

    Args:
        registry: All model schemas, used to find related models' primary keys.
        model_name: Name of the model being parsed.
        schema: The model's schema.
        initial_values: Optional explicit values keyed by field name.

    Raises:
        OperationError: If the schema flags more than one primary key, or a
            relation field has no value.
    """
    initial_values = initial_values or {}
    logger.debug('parsing model declaration for "%s" entity: %r', model_name, initial_values)

    result = ParsedModelDeclaration()

    for key, descriptor in schema.items():
        exact_value = initial_values.get(key)

        if is_primary_key(descriptor):
            if result.primary_key is not None:
                raise OperationError(
                    OperationErrorType.MULTIPLE_PRIMARY_KEYS,
                    f'Failed to parse model declaration for "{model_name}": '
                    f"cannot specify more than one primary key for a model.",
                )
            logger.debug('using "%s" as the primary key for "%s"', key, model_name)
            result.primary_key = key
            result.properties[key] = exact_value if exact_value is not None else descriptor()
            continue

        if is_scalar(exact_value):
            result.properties[key] = exact_value
            continue

        if is_relation(descriptor):
            if exact_value is None:
                raise OperationError(
                    OperationErrorType.RELATION_WITHOUT_VALUE,
                    f'Failed to set "{model_name}.{key}" as it\'s a relational property with no value.',
                )
            relation = resolve_relation(registry, model_name, key, descriptor, exact_value)
            if relation is None:
                logger.warning(
                    '"%s.%s" is a %s relation but got %s; storing it as a plain value',
                    model_name,
                    key,
                    descriptor.kind.value,
                    type(exact_value).__name__,
                )
                result.properties[key] = exact_value
            else:
                result.relations[key] = relation
            continue

        if exact_value is not None:
            result.properties[key] = exact_value
        else:
            result.properties[key] = descriptor()

    return result
