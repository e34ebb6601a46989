"""Parsing module for the text query language."""

from mock_tables.parsing.query_lexer import QueryLexer
from mock_tables.parsing.query_parser import Condition, QueryParser, build_where

__all__ = [
    "Condition",
    "QueryLexer",
    "QueryParser",
    "build_where",
]
