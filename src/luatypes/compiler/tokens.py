"""
Token definitions for the luatypes lexer.

This module defines all token types recognized by the typed Lua dialect:
the Lua keywords and operators, the ``::`` annotation marker, the
``newtype`` keyword and the ``--!typecheck`` directive.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from luatypes.utils.errors import SourceLocation


class TokenType(Enum):
    """Enumeration of all token types."""

    # End of file
    EOF = auto()

    # Literals
    NUMBER = auto()
    STRING = auto()

    # Identifiers
    NAME = auto()

    # Keywords
    AND = auto()
    BREAK = auto()
    DO = auto()
    ELSE = auto()
    ELSEIF = auto()
    END = auto()
    FALSE = auto()
    FOR = auto()
    FUNCTION = auto()
    IF = auto()
    IN = auto()
    LOCAL = auto()
    NIL = auto()
    NOT = auto()
    OR = auto()
    REPEAT = auto()
    RETURN = auto()
    THEN = auto()
    TRUE = auto()
    UNTIL = auto()
    WHILE = auto()

    # Type extension keywords
    NEWTYPE = auto()       # newtype Name = type

    # Arithmetic operators
    PLUS = auto()          # +
    MINUS = auto()         # -
    STAR = auto()          # *
    SLASH = auto()         # /
    DOUBLE_SLASH = auto()  # //
    PERCENT = auto()       # %
    CARET = auto()         # ^
    HASH = auto()          # #
    CONCAT = auto()        # ..

    # Comparison operators
    EQ = auto()            # ==
    NE = auto()            # ~=
    LT = auto()            # <
    GT = auto()            # >
    LE = auto()            # <=
    GE = auto()            # >=

    # Assignment
    ASSIGN = auto()        # =

    # Delimiters
    LPAREN = auto()        # (
    RPAREN = auto()        # )
    LBRACE = auto()        # {
    RBRACE = auto()        # }
    LBRACKET = auto()      # [
    RBRACKET = auto()      # ]

    # Punctuation
    COMMA = auto()         # ,
    DOT = auto()           # .
    COLON = auto()         # :
    DOUBLE_COLON = auto()  # :: (type annotation)
    SEMICOLON = auto()     # ;
    ELLIPSIS = auto()      # ...

    # Directives
    PRAGMA = auto()        # --!typecheck on|off


# Mapping of keywords to token types
KEYWORDS: dict[str, TokenType] = {
    "and": TokenType.AND,
    "break": TokenType.BREAK,
    "do": TokenType.DO,
    "else": TokenType.ELSE,
    "elseif": TokenType.ELSEIF,
    "end": TokenType.END,
    "false": TokenType.FALSE,
    "for": TokenType.FOR,
    "function": TokenType.FUNCTION,
    "if": TokenType.IF,
    "in": TokenType.IN,
    "local": TokenType.LOCAL,
    "nil": TokenType.NIL,
    "not": TokenType.NOT,
    "or": TokenType.OR,
    "repeat": TokenType.REPEAT,
    "return": TokenType.RETURN,
    "then": TokenType.THEN,
    "true": TokenType.TRUE,
    "until": TokenType.UNTIL,
    "while": TokenType.WHILE,
    "newtype": TokenType.NEWTYPE,
}

# Single character operators
SINGLE_CHAR_TOKENS: dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.PERCENT,
    "^": TokenType.CARET,
    "#": TokenType.HASH,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "=": TokenType.ASSIGN,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    ":": TokenType.COLON,
    ";": TokenType.SEMICOLON,
}

# Two character operators (checked before single char)
DOUBLE_CHAR_TOKENS: dict[str, TokenType] = {
    "==": TokenType.EQ,
    "~=": TokenType.NE,
    "<=": TokenType.LE,
    ">=": TokenType.GE,
    "//": TokenType.DOUBLE_SLASH,
    "..": TokenType.CONCAT,
    "::": TokenType.DOUBLE_COLON,
}

# Directive names accepted after "--!"
PRAGMAS: frozenset[str] = frozenset({"typecheck"})


@dataclass(slots=True)
class Token:
    """
    Represents a single token from the source code.

    Attributes:
        type: The type of this token
        value: The literal value (for literals) or lexeme text
        location: Source location of this token
    """

    type: TokenType
    value: Any
    location: SourceLocation

    def __repr__(self) -> str:
        if self.value is not None:
            return f"Token({self.type.name}, {self.value!r}, {self.location})"
        return f"Token({self.type.name}, {self.location})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Token):
            return self.type == other.type and self.value == other.value
        if isinstance(other, TokenType):
            return self.type == other
        return NotImplemented

    @property
    def is_literal(self) -> bool:
        """Check if this token represents a literal value."""
        return self.type in {
            TokenType.NUMBER,
            TokenType.STRING,
            TokenType.NIL,
            TokenType.TRUE,
            TokenType.FALSE,
        }
