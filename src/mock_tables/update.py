"""Update values: plain replacements or derivations from the old entity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping


@dataclass(frozen=True)
class Replace:
    """Set the field to ``value``."""

    value: Any

    def compute(self, old_value: Any, old_entity: dict[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Derive:
    """Compute the field from its old value and the old external entity."""

    fn: Callable[[Any, dict[str, Any]], Any]

    def compute(self, old_value: Any, old_entity: dict[str, Any]) -> Any:
        return self.fn(old_value, old_entity)


UpdateValue = Replace | Derive


def as_update_value(value: Any) -> UpdateValue:
    """Wrap a raw update value; callables become derivations."""
    if isinstance(value, (Replace, Derive)):
        return value
    if callable(value):
        return Derive(value)
    return Replace(value)


def normalize_update_data(data: Mapping[str, Any]) -> dict[str, UpdateValue]:
    return {key: as_update_value(value) for key, value in data.items()}
