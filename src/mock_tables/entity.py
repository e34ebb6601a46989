"""Internal representation of a stored entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mock_tables.references import Relation


@dataclass
class InternalEntity:
    """A stored record with its bookkeeping.

    Relation fields hold reference markers, never copies of the related
    entities.
    """

    model_name: str
    primary_key: str
    properties: dict[str, Any] = field(default_factory=dict)
    relations: dict[str, Relation] = field(default_factory=dict)

    @property
    def key_value(self) -> Any:
        """Return the current primary-key value."""
        return self.properties[self.primary_key]

    def to_record(self) -> dict[str, Any]:
        """Return the raw form with bookkeeping fields and unresolved markers."""
        record: dict[str, Any] = {"__type": self.model_name, "__primary_key": self.primary_key}
        record.update(self.properties)
        for name, relation in self.relations.items():
            record[name] = [ref.to_record() for ref in relation.refs]
        return record

    def __repr__(self) -> str:
        return f"InternalEntity({self.model_name!r}, {self.primary_key}={self.key_value!r})"
