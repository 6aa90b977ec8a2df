"""
Unit tests for the luatypes Lexer.
"""

import pytest

from luatypes.compiler.tokens import TokenType
from luatypes.utils.errors import LexerError


def types_of(tokens):
    return [t.type for t in tokens]


class TestLexerBasics:
    """Basic tokenization."""

    def test_empty_source(self, tokenize):
        tokens = tokenize("")
        assert types_of(tokens) == [TokenType.EOF]

    def test_names_and_keywords(self, tokenize):
        tokens = tokenize("local function foo end")
        assert types_of(tokens) == [
            TokenType.LOCAL,
            TokenType.FUNCTION,
            TokenType.NAME,
            TokenType.END,
            TokenType.EOF,
        ]
        assert tokens[2].value == "foo"

    def test_newtype_is_a_keyword(self, tokenize):
        assert tokenize("newtype")[0].type == TokenType.NEWTYPE

    def test_literal_tokens(self, tokenize):
        tokens = tokenize("nil 1 's' x")
        assert [t.is_literal for t in tokens[:4]] == [True, True, True, False]

    def test_locations_are_one_based(self, tokenize):
        tokens = tokenize("x\n  y")
        assert (tokens[0].location.line, tokens[0].location.column) == (1, 1)
        assert (tokens[1].location.line, tokens[1].location.column) == (2, 3)
        assert tokens[1].location.filename == "test.lua"

    def test_shebang_is_skipped(self, tokenize):
        tokens = tokenize("#!/usr/bin/env lua\nreturn 1")
        assert types_of(tokens) == [TokenType.RETURN, TokenType.NUMBER, TokenType.EOF]


class TestLexerOperators:
    """Operators and punctuation."""

    @pytest.mark.parametrize(
        "source,expected",
        [
            ("::", TokenType.DOUBLE_COLON),
            (":", TokenType.COLON),
            ("..", TokenType.CONCAT),
            ("...", TokenType.ELLIPSIS),
            ("//", TokenType.DOUBLE_SLASH),
            ("~=", TokenType.NE),
            ("==", TokenType.EQ),
            ("<=", TokenType.LE),
            ("#", TokenType.HASH),
            ("^", TokenType.CARET),
        ],
    )
    def test_operator(self, tokenize, source, expected):
        assert tokenize(source)[0].type == expected

    def test_annotation_sequence(self, tokenize):
        tokens = tokenize("local n :: number = 1")
        assert types_of(tokens) == [
            TokenType.LOCAL,
            TokenType.NAME,
            TokenType.DOUBLE_COLON,
            TokenType.NAME,
            TokenType.ASSIGN,
            TokenType.NUMBER,
            TokenType.EOF,
        ]

    def test_unexpected_character(self, tokenize):
        with pytest.raises(LexerError, match="Unexpected character"):
            tokenize("x = $")


class TestLexerNumbers:
    """Numeric literals."""

    @pytest.mark.parametrize(
        "source,value",
        [
            ("42", 42),
            ("3.5", 3.5),
            (".5", 0.5),
            ("1e3", 1000.0),
            ("2.5E-1", 0.25),
            ("0xff", 255),
            ("0XA", 10),
        ],
    )
    def test_number_values(self, tokenize, source, value):
        token = tokenize(source)[0]
        assert token.type == TokenType.NUMBER
        assert token.value == value
        assert type(token.value) is type(value)

    def test_malformed_number(self, tokenize):
        with pytest.raises(LexerError, match="Malformed number"):
            tokenize("12abc")

    def test_number_before_concat(self, tokenize):
        tokens = tokenize("1..2")
        assert types_of(tokens) == [
            TokenType.NUMBER,
            TokenType.CONCAT,
            TokenType.NUMBER,
            TokenType.EOF,
        ]


class TestLexerStrings:
    """String literals."""

    def test_quoted_strings(self, tokenize):
        assert tokenize('"hello"')[0].value == "hello"
        assert tokenize("'hello'")[0].value == "hello"

    def test_escapes(self, tokenize):
        assert tokenize(r'"a\tb\n\"q\""')[0].value == 'a\tb\n"q"'

    def test_hex_and_decimal_escapes(self, tokenize):
        assert tokenize(r'"\x41\066"')[0].value == "AB"

    def test_z_escape_skips_whitespace(self, tokenize):
        assert tokenize('"a\\z\n   b"')[0].value == "ab"

    def test_long_string(self, tokenize):
        token = tokenize("[[\nline one\nline two]]")[0]
        assert token.type == TokenType.STRING
        assert token.value == "line one\nline two"

    def test_long_string_with_level(self, tokenize):
        assert tokenize("[==[a]]b]==]")[0].value == "a]]b"

    def test_unterminated_string(self, tokenize):
        with pytest.raises(LexerError, match="Unterminated string"):
            tokenize('"abc')

    def test_newline_in_string(self, tokenize):
        with pytest.raises(LexerError, match="Newline in string"):
            tokenize('"abc\ndef"')

    def test_invalid_escape(self, tokenize):
        with pytest.raises(LexerError, match="Invalid escape"):
            tokenize(r'"\q"')


class TestLexerComments:
    """Comments and directives."""

    def test_line_comment(self, tokenize):
        assert types_of(tokenize("-- a comment\nx")) == [TokenType.NAME, TokenType.EOF]

    def test_long_comment(self, tokenize):
        assert types_of(tokenize("--[[ a\nlong comment ]] x")) == [TokenType.NAME, TokenType.EOF]

    def test_typecheck_directive(self, tokenize):
        tokens = tokenize("--!typecheck off\nx")
        assert tokens[0].type == TokenType.PRAGMA
        assert tokens[0].value == ("typecheck", False)

    def test_directive_on(self, tokenize):
        assert tokenize("--!typecheck on")[0].value == ("typecheck", True)

    def test_unknown_directive_is_a_comment(self, tokenize):
        assert types_of(tokenize("--!strict\nx")) == [TokenType.NAME, TokenType.EOF]

    def test_bad_directive_argument(self, tokenize):
        with pytest.raises(LexerError, match="expects 'on' or 'off'"):
            tokenize("--!typecheck maybe")

    def test_unterminated_long_comment(self, tokenize):
        with pytest.raises(LexerError, match="Unterminated long comment"):
            tokenize("--[[ never closed")
