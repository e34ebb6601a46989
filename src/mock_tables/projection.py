"""Project internal entities into their caller-facing form."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mock_tables.entity import InternalEntity

if TYPE_CHECKING:
    from mock_tables.database import Database

# Prefix marking bookkeeping keys in raw records
INTERNAL_PREFIX = "__"


def to_external(
    database: Database,
    entity: InternalEntity,
    _path: frozenset[tuple[str, Any]] = frozenset(),
) -> dict[str, Any]:
    """Return the external view of ``entity``.

    Relation fields are replaced by the current external view of the
    referenced entities, looked up in their tables now. References whose
    target no longer exists are dropped. An entity already being projected
    further up the path is rendered with its scalar properties only.
    """
    node = (entity.model_name, entity.key_value)
    path = _path | {node}
    schema = database.registry.get_or_raise(entity.model_name)

    result: dict[str, Any] = {}
    for key in list(schema) + [k for k in entity.properties if k not in schema]:
        if key in entity.properties:
            result[key] = entity.properties[key]
            continue
        relation = entity.relations.get(key)
        if relation is None:
            continue

        resolved = []
        for ref in relation.refs:
            target = database.table(ref.target_model).get_internal(ref.target_key_value)
            if target is None:
                continue
            if (target.model_name, target.key_value) in path:
                resolved.append(dict(target.properties))
            else:
                resolved.append(to_external(database, target, path))

        if relation.is_many:
            result[key] = resolved
        elif resolved:
            result[key] = resolved[0]

    return result


def remove_internal_properties(value: Any) -> Any:
    """Strip bookkeeping keys from a raw record, recursively."""
    if isinstance(value, dict):
        return {
            key: remove_internal_properties(item)
            for key, item in value.items()
            if not key.startswith(INTERNAL_PREFIX)
        }
    if isinstance(value, list):
        return [remove_internal_properties(item) for item in value]
    return value
