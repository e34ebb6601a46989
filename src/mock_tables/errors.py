"""Typed failures raised by store operations."""

from __future__ import annotations

from enum import Enum


class OperationErrorType(Enum):
    """Kinds of failures raised by the store."""

    MULTIPLE_PRIMARY_KEYS = "MultiplePrimaryKeys"
    NO_PRIMARY_KEY = "NoPrimaryKey"
    RELATION_WITHOUT_VALUE = "RelationWithoutValue"
    DUPLICATE_PRIMARY_KEY = "DuplicatePrimaryKey"
    DUPLICATE_RELATION = "DuplicateRelation"
    ENTITY_NOT_FOUND = "EntityNotFound"


class HTTPErrorType(Enum):
    """Kinds of failures raised while translating requests."""

    BAD_REQUEST = "BadRequest"


class OperationError(Exception):
    """A store operation failed.

    The ``type`` attribute tells callers what went wrong without parsing
    the message.
    """

    def __init__(self, type: OperationErrorType | HTTPErrorType, message: str) -> None:
        super().__init__(message)
        self.type = type
        self.message = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.type.value}, {self.message!r})"


class HTTPError(OperationError):
    """A request could not be translated into a store operation."""
