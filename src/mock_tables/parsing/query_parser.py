"""Parser for the text query language.

A text query compiles into a :class:`~mock_tables.query.Query`::

    where firstName = "John" and age >= 18 and author.id in ["a", "b"]
    order by age desc skip 1 take 2

Conditions are joined with ``and``; a dotted path addresses the fields of a
related entity.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

import ply.yacc as yacc

from mock_tables.parsing.query_lexer import QueryLexer
from mock_tables.query import Query


@dataclass
class Condition:
    """A single predicate on a (possibly dotted) field path."""

    path: list[str]
    operator: str
    value: Any


@dataclass
class QueryClauses:
    """Clauses of a parsed query before they are compiled."""

    conditions: list[Condition]
    order_by: list[dict[str, Any]]
    skip: int | None = None
    take: int | None = None
    cursor: Any = None


def build_where(conditions: list[Condition]) -> dict[str, Any] | None:
    """Nest conditions into a ``where`` mapping.

    Raises:
        SyntaxError: If the same operator is applied twice to one field.
    """
    if not conditions:
        return None
    where: dict[str, Any] = {}
    for condition in conditions:
        node = where
        for name in condition.path:
            node = node.setdefault(name, {})
        if condition.operator in node:
            raise SyntaxError(
                f"Operator '{condition.operator}' used twice on '{'.'.join(condition.path)}'"
            )
        node[condition.operator] = condition.value
    return where


def _nest(path: list[str], leaf: Any) -> dict[str, Any]:
    for name in reversed(path):
        leaf = {name: leaf}
    return leaf


class QueryParser:
    """Parser for text queries."""

    tokens = QueryLexer.tokens

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._lock = threading.Lock()

    def p_query(self, p: yacc.YaccProduction) -> None:
        """query : where_clause order_clause skip_clause take_clause cursor_clause"""
        p[0] = QueryClauses(conditions=p[1], order_by=p[2], skip=p[3], take=p[4], cursor=p[5])

    def p_where_clause_empty(self, p: yacc.YaccProduction) -> None:
        """where_clause : """
        p[0] = []

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE condition_list"""
        p[0] = p[2]

    def p_condition_list_single(self, p: yacc.YaccProduction) -> None:
        """condition_list : condition"""
        p[0] = [p[1]]

    def p_condition_list_multiple(self, p: yacc.YaccProduction) -> None:
        """condition_list : condition_list AND condition"""
        p[0] = p[1] + [p[3]]

    def p_condition_comparison(self, p: yacc.YaccProduction) -> None:
        """condition : path EQ value
                     | path NEQ value
                     | path LT value
                     | path LTE value
                     | path GT value
                     | path GTE value"""
        op_map = {"=": "equals", "==": "equals", "!=": "not_equals",
                  "<": "lt", "<=": "lte", ">": "gt", ">=": "gte"}
        p[0] = Condition(path=p[1], operator=op_map[p[2]], value=p[3])

    def p_condition_contains(self, p: yacc.YaccProduction) -> None:
        """condition : path CONTAINS value"""
        p[0] = Condition(path=p[1], operator="contains", value=p[3])

    def p_condition_not_contains(self, p: yacc.YaccProduction) -> None:
        """condition : path NOT CONTAINS value"""
        p[0] = Condition(path=p[1], operator="not_contains", value=p[4])

    def p_condition_starts_with(self, p: yacc.YaccProduction) -> None:
        """condition : path STARTS WITH STRING"""
        p[0] = Condition(path=p[1], operator="starts_with", value=p[4])

    def p_condition_ends_with(self, p: yacc.YaccProduction) -> None:
        """condition : path ENDS WITH STRING"""
        p[0] = Condition(path=p[1], operator="ends_with", value=p[4])

    def p_condition_in(self, p: yacc.YaccProduction) -> None:
        """condition : path IN list_value"""
        p[0] = Condition(path=p[1], operator="in", value=p[3])

    def p_condition_not_in(self, p: yacc.YaccProduction) -> None:
        """condition : path NOT IN list_value"""
        p[0] = Condition(path=p[1], operator="not_in", value=p[4])

    def p_condition_between(self, p: yacc.YaccProduction) -> None:
        """condition : path BETWEEN value AND value"""
        p[0] = Condition(path=p[1], operator="between", value=[p[3], p[5]])

    def p_condition_not_between(self, p: yacc.YaccProduction) -> None:
        """condition : path NOT BETWEEN value AND value"""
        p[0] = Condition(path=p[1], operator="not_between", value=[p[4], p[6]])

    def p_path_single(self, p: yacc.YaccProduction) -> None:
        """path : IDENTIFIER"""
        p[0] = [p[1]]

    def p_path_dotted(self, p: yacc.YaccProduction) -> None:
        """path : path DOT IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    def p_value_literal(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER
                 | FLOAT
                 | STRING"""
        p[0] = p[1]

    def p_value_true(self, p: yacc.YaccProduction) -> None:
        """value : TRUE"""
        p[0] = True

    def p_value_false(self, p: yacc.YaccProduction) -> None:
        """value : FALSE"""
        p[0] = False

    def p_value_null(self, p: yacc.YaccProduction) -> None:
        """value : NULL"""
        p[0] = None

    def p_list_value_empty(self, p: yacc.YaccProduction) -> None:
        """list_value : LBRACKET RBRACKET"""
        p[0] = []

    def p_list_value(self, p: yacc.YaccProduction) -> None:
        """list_value : LBRACKET value_list RBRACKET
                      | LBRACKET value_list COMMA RBRACKET"""
        p[0] = p[2]

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_order_clause_empty(self, p: yacc.YaccProduction) -> None:
        """order_clause : """
        p[0] = []

    def p_order_clause(self, p: yacc.YaccProduction) -> None:
        """order_clause : ORDER BY sort_list"""
        p[0] = p[3]

    def p_sort_list_single(self, p: yacc.YaccProduction) -> None:
        """sort_list : sort_item"""
        p[0] = [p[1]]

    def p_sort_list_multiple(self, p: yacc.YaccProduction) -> None:
        """sort_list : sort_list COMMA sort_item"""
        p[0] = p[1] + [p[3]]

    def p_sort_item(self, p: yacc.YaccProduction) -> None:
        """sort_item : path
                     | path ASC
                     | path DESC"""
        direction = p[2].lower() if len(p) > 2 else "asc"
        p[0] = _nest(p[1], direction)

    def p_skip_clause_empty(self, p: yacc.YaccProduction) -> None:
        """skip_clause : """
        p[0] = None

    def p_skip_clause(self, p: yacc.YaccProduction) -> None:
        """skip_clause : SKIP INTEGER"""
        p[0] = p[2]

    def p_take_clause_empty(self, p: yacc.YaccProduction) -> None:
        """take_clause : """
        p[0] = None

    def p_take_clause(self, p: yacc.YaccProduction) -> None:
        """take_clause : TAKE INTEGER"""
        p[0] = p[2]

    def p_cursor_clause_empty(self, p: yacc.YaccProduction) -> None:
        """cursor_clause : """
        p[0] = None

    def p_cursor_clause(self, p: yacc.YaccProduction) -> None:
        """cursor_clause : CURSOR value"""
        p[0] = p[2]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="query", **kwargs)

    def parse_clauses(self, data: str) -> QueryClauses:
        """Parse a query string into its uncompiled clauses."""
        with self._lock:
            if self.parser is None:
                self.build(debug=False, write_tables=False)
            return self.parser.parse(data, lexer=self.lexer.lexer)

    def parse(self, data: str) -> Query:
        """Parse a query string into a Query."""
        if not data.strip():
            return Query()
        clauses = self.parse_clauses(data)
        return Query(
            where=build_where(clauses.conditions),
            order_by=clauses.order_by or None,
            skip=clauses.skip,
            take=clauses.take,
            cursor=clauses.cursor,
        )
