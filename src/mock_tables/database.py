"""Database class owning one table per declared model."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping

from mock_tables.table import Table
from mock_tables.types import ModelRegistry, ModelSchema

logger = logging.getLogger(__name__)


class Database:
    """In-memory database built from a dictionary of model schemas.

    Each instance is independent: create one per test and drop it when done.
    A single re-entrant lock serializes every table operation, including
    reads, since projecting an entity reads other tables.
    """

    def __init__(self, dictionary: Mapping[str, ModelSchema]) -> None:
        """Validate the schemas and create an empty table per model.

        Args:
            dictionary: Model schemas keyed by model name.

        Raises:
            OperationError: If a schema has no primary key or more than one.
            KeyError: If a relation targets an undeclared model.
        """
        self.registry = ModelRegistry.from_dictionary(dictionary)
        self.lock = threading.RLock()
        self._tables: dict[str, Table] = {
            name: Table(self, name) for name in self.registry.list_models()
        }
        logger.debug("created database with models %s", self.list_models())

    def table(self, name: str) -> Table:
        """Get the table of a model.

        Raises:
            KeyError: If the model is not declared.
        """
        table = self._tables.get(name)
        if table is None:
            raise KeyError(f"Model '{name}' not found")
        return table

    def list_models(self) -> list[str]:
        return list(self._tables)

    def drop(self) -> None:
        """Delete every entity of every model."""
        with self.lock:
            for table in self._tables.values():
                table.clear()

    def __getitem__(self, name: str) -> Table:
        return self.table(name)

    def __getattr__(self, name: str) -> Table:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self.table(name)
        except KeyError:
            raise AttributeError(f"Database has no model '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: Any) -> None:
        self.drop()


def factory(dictionary: Mapping[str, ModelSchema]) -> Database:
    """Create a database from model schemas."""
    return Database(dictionary)
