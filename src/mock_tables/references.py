"""Reference markers linking entities across models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mock_tables.types import RelationKind


@dataclass(frozen=True)
class ReferenceMarker:
    """Points at one entity of another model by its primary key.

    A marker never holds a copy of the referenced entity; the entity is
    looked up in its table every time the marker is resolved.
    """

    target_model: str
    target_key_field: str
    target_key_value: Any

    def to_record(self) -> dict[str, Any]:
        return {
            "__type": self.target_model,
            "__primary_key": self.target_key_field,
            "__node_id": self.target_key_value,
        }

    def __repr__(self) -> str:
        return f"ReferenceMarker({self.target_model!r}, {self.target_key_field}={self.target_key_value!r})"


@dataclass
class Relation:
    """Relation value stored on an internal entity."""

    kind: RelationKind
    target_model: str
    unique: bool = False
    refs: list[ReferenceMarker] = field(default_factory=list)

    @property
    def is_many(self) -> bool:
        return self.kind is RelationKind.MANY_OF

    def key_values(self) -> list[Any]:
        return [ref.target_key_value for ref in self.refs]
