"""Lexer for formula expressions."""

import re
from typing import List, Optional

import ply.lex as lex

from gridbase.errors import FormulaSyntaxError

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}
_ESCAPE_PATTERN = re.compile(r"\\(.)", re.S)


def _unescape(body: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda match: _ESCAPES.get(match.group(1), match.group(1)), body)


class FormulaLexer:
    """Lexer for tokenizing formula expressions."""

    # Reserved keywords (case-insensitive)
    reserved = {
        "true": "TRUE",
        "false": "FALSE",
        "and": "AND",
        "or": "OR",
        "not": "NOT",
    }

    tokens = [
        "NUMBER",
        "STRING",
        "IDENTIFIER",
        "LPAREN",
        "RPAREN",
        "COMMA",
        "PLUS",
        "MINUS",
        "STAR",
        "SLASH",
        "PERCENT",
        "EQ",
        "NEQ",
        "LT",
        "LTE",
        "GT",
        "GTE",
        "QUESTION",
        "COLON",
    ] + list(reserved.values())

    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COMMA = r","
    t_PLUS = r"\+"
    t_MINUS = r"-"
    t_STAR = r"\*"
    t_SLASH = r"/"
    t_PERCENT = r"%"
    t_EQ = r"=="
    t_LTE = r"<="
    t_LT = r"<"
    t_GTE = r">="
    t_GT = r">"
    t_QUESTION = r"\?"
    t_COLON = r":"

    t_ignore = " \t\r\n"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    # Function rules match in definition order, so "!=" must come before "!"
    def t_NEQ(self, t: lex.LexToken) -> lex.LexToken:
        r"!="
        return t

    def t_AND(self, t: lex.LexToken) -> lex.LexToken:
        r"&&"
        t.value = "and"
        return t

    def t_OR(self, t: lex.LexToken) -> lex.LexToken:
        r"\|\|"
        t.value = "or"
        return t

    def t_NOT(self, t: lex.LexToken) -> lex.LexToken:
        r"!"
        t.value = "not"
        return t

    def t_NUMBER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d*\.\d+|\d+"
        t.value = float(t.value) if "." in t.value else int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r""""([^"\\]|\\.)*"|'([^'\\]|\\.)*'"""
        t.value = _unescape(t.value[1:-1])
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_]*"
        t.type = self.reserved.get(t.value.lower(), "IDENTIFIER")
        if t.type != "IDENTIFIER":
            t.value = t.value.lower()
        return t

    def t_error(self, t: lex.LexToken) -> None:
        raise FormulaSyntaxError(f"Unexpected character '{t.value[0]}' at position {t.lexpos}")

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        self.lexer.input(data)

    def token(self) -> Optional[lex.LexToken]:
        return self.lexer.token()

    def tokenize(self, data: str) -> List[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
