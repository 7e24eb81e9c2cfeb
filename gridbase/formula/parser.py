"""Parser for formula expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Union

import ply.yacc as yacc

from gridbase.errors import FormulaSyntaxError
from gridbase.formula.lexer import FormulaLexer


@dataclass
class Literal:
    """A number, string or boolean constant."""

    value: Any


@dataclass
class PropertyReference:
    """prop("Column Name"): the value of another column in the same row."""

    name: str


@dataclass
class UnaryExpression:
    operator: str  # not, -, +
    operand: Node


@dataclass
class BinaryExpression:
    operator: str  # + - * / % == != < <= > >= and or
    left: Node
    right: Node


@dataclass
class FunctionCall:
    name: str  # lowercased
    arguments: List[Node]


@dataclass
class ConditionalExpression:
    """condition ? consequent : alternate"""

    condition: Node
    consequent: Node
    alternate: Node


Node = Union[
    Literal,
    PropertyReference,
    UnaryExpression,
    BinaryExpression,
    FunctionCall,
    ConditionalExpression,
]


class FormulaParser:
    """Parser for formula expressions."""

    tokens = FormulaLexer.tokens

    precedence = (
        ("right", "QUESTION", "COLON"),
        ("left", "OR"),
        ("left", "AND"),
        ("right", "NOT"),
        ("nonassoc", "EQ", "NEQ", "LT", "LTE", "GT", "GTE"),
        ("left", "PLUS", "MINUS"),
        ("left", "STAR", "SLASH", "PERCENT"),
        ("right", "UMINUS"),
    )

    def __init__(self) -> None:
        self.lexer = FormulaLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_expression_conditional(self, p: yacc.YaccProduction) -> None:
        """expression : expression QUESTION expression COLON expression"""
        p[0] = ConditionalExpression(condition=p[1], consequent=p[3], alternate=p[5])

    def p_expression_binary(self, p: yacc.YaccProduction) -> None:
        """expression : expression PLUS expression
                      | expression MINUS expression
                      | expression STAR expression
                      | expression SLASH expression
                      | expression PERCENT expression
                      | expression EQ expression
                      | expression NEQ expression
                      | expression LT expression
                      | expression LTE expression
                      | expression GT expression
                      | expression GTE expression
                      | expression AND expression
                      | expression OR expression"""
        p[0] = BinaryExpression(operator=p[2], left=p[1], right=p[3])

    def p_expression_not(self, p: yacc.YaccProduction) -> None:
        """expression : NOT expression"""
        p[0] = UnaryExpression(operator="not", operand=p[2])

    def p_expression_sign(self, p: yacc.YaccProduction) -> None:
        """expression : MINUS expression %prec UMINUS
                      | PLUS expression %prec UMINUS"""
        p[0] = UnaryExpression(operator=p[1], operand=p[2])

    def p_expression_group(self, p: yacc.YaccProduction) -> None:
        """expression : LPAREN expression RPAREN"""
        p[0] = p[2]

    def p_expression_literal(self, p: yacc.YaccProduction) -> None:
        """expression : NUMBER
                      | STRING"""
        p[0] = Literal(value=p[1])

    def p_expression_boolean(self, p: yacc.YaccProduction) -> None:
        """expression : TRUE
                      | FALSE"""
        p[0] = Literal(value=p[1] == "true")

    def p_expression_call(self, p: yacc.YaccProduction) -> None:
        """expression : IDENTIFIER LPAREN arguments RPAREN
                      | AND LPAREN arguments RPAREN
                      | OR LPAREN arguments RPAREN"""
        name = p[1].lower()
        if name == "prop":
            arguments = p[3]
            if len(arguments) != 1 or not isinstance(arguments[0], Literal) or not isinstance(arguments[0].value, str):
                raise FormulaSyntaxError("prop() requires exactly one string argument")
            p[0] = PropertyReference(name=arguments[0].value)
            return
        p[0] = FunctionCall(name=name, arguments=p[3])

    def p_expression_call_empty(self, p: yacc.YaccProduction) -> None:
        """expression : IDENTIFIER LPAREN RPAREN"""
        name = p[1].lower()
        if name == "prop":
            raise FormulaSyntaxError("prop() requires exactly one string argument")
        p[0] = FunctionCall(name=name, arguments=[])

    def p_arguments(self, p: yacc.YaccProduction) -> None:
        """arguments : expression
                     | arguments COMMA expression"""
        if len(p) == 2:
            p[0] = [p[1]]
        else:
            p[0] = p[1] + [p[3]]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise FormulaSyntaxError(f"Unexpected '{p.value}' at position {p.lexpos}")
        raise FormulaSyntaxError("Unexpected end of formula")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="expression", **kwargs)

    def parse(self, data: str) -> Node:
        """Parse a formula string into an AST."""
        if not data or not data.strip():
            raise FormulaSyntaxError("Formula is empty")
        if self.parser is None:
            self.build(debug=False, write_tables=False)
        return self.parser.parse(data, lexer=self.lexer.lexer)
