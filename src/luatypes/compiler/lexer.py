"""
luatypes Lexer (Tokenizer).

Transforms typed Lua source code into a stream of tokens. Besides plain
Lua lexemes it recognizes the ``::`` annotation marker, the ``newtype``
keyword and ``--!typecheck on|off`` directive comments.
"""

from typing import Iterator, Optional

from luatypes.compiler.tokens import (
    DOUBLE_CHAR_TOKENS,
    KEYWORDS,
    PRAGMAS,
    SINGLE_CHAR_TOKENS,
    Token,
    TokenType,
)
from luatypes.utils.errors import LexerError, SourceLocation

_ESCAPE_SEQUENCES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "\n": "\n",
}


class Lexer:
    """
    Tokenizer for typed Lua source code.

    The lexer supports:
    - Names and the Lua keywords (plus ``newtype``)
    - Decimal, hexadecimal and floating-point numbers
    - Quoted strings with escapes and ``[[long strings]]``
    - Line comments (``--``) and long comments (``--[[ ]]``)
    - ``--!typecheck on`` / ``--!typecheck off`` directives

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()
        # or iterate: for token in lexer: ...
    """

    def __init__(self, source: str, filename: Optional[str] = None) -> None:
        """
        Initialize the lexer with source code.

        Args:
            source: The source code to tokenize
            filename: Optional filename for error reporting
        """
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: list[Token] = []

        # Track the start of the current line for error reporting
        self._line_start = 0

    @property
    def _current_char(self) -> Optional[str]:
        """Return the current character or None if at end."""
        if self.pos >= len(self.source):
            return None
        return self.source[self.pos]

    @property
    def _peek_char(self) -> Optional[str]:
        """Return the next character without consuming it."""
        return self._peek_ahead(1)

    def _peek_ahead(self, n: int) -> Optional[str]:
        """Return the character n positions ahead."""
        peek_pos = self.pos + n
        if peek_pos >= len(self.source):
            return None
        return self.source[peek_pos]

    def _location(self) -> SourceLocation:
        """Create a SourceLocation for the current position."""
        return SourceLocation(
            line=self.line,
            column=self.column,
            offset=self.pos,
            filename=self.filename,
        )

    def _current_line_text(self) -> str:
        """Extract the current line of source for error messages."""
        end = self.source.find("\n", self._line_start)
        if end == -1:
            end = len(self.source)
        return self.source[self._line_start:end]

    def _error(self, message: str, location: Optional[SourceLocation] = None) -> LexerError:
        return LexerError(message, location or self._location(), self._current_line_text())

    def _advance(self) -> str:
        """Consume and return the current character."""
        char = self.source[self.pos]
        self.pos += 1

        if char == "\n":
            self.line += 1
            self.column = 1
            self._line_start = self.pos
        else:
            self.column += 1

        return char

    def _skip_whitespace(self) -> None:
        """Skip whitespace characters, newlines included."""
        while self._current_char is not None and self._current_char in " \t\r\n\f\v":
            self._advance()

    def _long_bracket_level(self) -> Optional[int]:
        """
        Return the level of a long bracket opening at the current position.

        ``[[`` has level 0, ``[==[`` has level 2. Returns None when the
        current position does not open a long bracket.
        """
        if self._current_char != "[":
            return None
        level = 0
        while self._peek_ahead(level + 1) == "=":
            level += 1
        if self._peek_ahead(level + 1) == "[":
            return level
        return None

    def _read_long_bracket(self, level: int, what: str) -> str:
        """Consume a long bracket of the given level and return its content."""
        start_loc = self._location()
        for _ in range(level + 2):
            self._advance()

        # A newline right after the opening bracket is skipped
        if self._current_char == "\r":
            self._advance()
        if self._current_char == "\n":
            self._advance()

        closing = "]" + "=" * level + "]"
        chars: list[str] = []
        while True:
            if self._current_char is None:
                raise self._error(f"Unterminated long {what}", start_loc)
            if self.source.startswith(closing, self.pos):
                for _ in range(len(closing)):
                    self._advance()
                return "".join(chars)
            chars.append(self._advance())

    def _read_comment(self) -> Optional[Token]:
        """
        Consume a comment starting at ``--``.

        Returns:
            A PRAGMA token for ``--!typecheck`` directives, otherwise None.
        """
        start_loc = self._location()
        self._advance()  # -
        self._advance()  # -

        level = self._long_bracket_level()
        if level is not None:
            self._read_long_bracket(level, "comment")
            return None

        chars: list[str] = []
        while self._current_char is not None and self._current_char != "\n":
            chars.append(self._advance())
        text = "".join(chars)

        if not text.startswith("!"):
            return None
        words = text[1:].split()
        if not words or words[0] not in PRAGMAS:
            return None
        if len(words) != 2 or words[1] not in ("on", "off"):
            raise self._error(
                f"Directive '{words[0]}' expects 'on' or 'off'",
                start_loc,
            )
        return Token(TokenType.PRAGMA, (words[0], words[1] == "on"), start_loc)

    def _read_string(self, quote_char: str) -> Token:
        """
        Read a quoted string literal.

        Args:
            quote_char: The opening quote character (' or ")

        Returns:
            A STRING token with the string value.
        """
        start_loc = self._location()
        self._advance()  # consume opening quote

        value_chars: list[str] = []

        while True:
            if self._current_char is None:
                raise self._error("Unterminated string literal", start_loc)

            if self._current_char == "\n":
                raise self._error("Newline in string literal (use \\n for newlines)")

            if self._current_char == quote_char:
                self._advance()  # consume closing quote
                break

            if self._current_char != "\\":
                value_chars.append(self._advance())
                continue

            self._advance()  # backslash
            char = self._current_char
            if char is None:
                raise self._error("Unterminated escape sequence")

            if char in _ESCAPE_SEQUENCES:
                value_chars.append(_ESCAPE_SEQUENCES[char])
                self._advance()
            elif char == "x":
                self._advance()
                digits = self.source[self.pos:self.pos + 2]
                if len(digits) != 2 or any(d not in "0123456789abcdefABCDEF" for d in digits):
                    raise self._error("Hexadecimal escape expects two digits")
                self._advance()
                self._advance()
                value_chars.append(chr(int(digits, 16)))
            elif char == "z":
                self._advance()
                self._skip_whitespace()
            elif char.isdigit():
                digits = ""
                while len(digits) < 3 and self._current_char is not None and self._current_char.isdigit():
                    digits += self._advance()
                code = int(digits)
                if code > 255:
                    raise self._error(f"Decimal escape too large: \\{digits}")
                value_chars.append(chr(code))
            else:
                raise self._error(f"Invalid escape sequence: \\{char}")

        return Token(TokenType.STRING, "".join(value_chars), start_loc)

    def _read_number(self) -> Token:
        """
        Read a numeric literal.

        Supports:
        - Decimal integers: 123
        - Floats: 123.456, .5, 1e10, 1.5E-3
        - Hexadecimal integers: 0xFF

        Returns:
            A NUMBER token holding an int or a float.
        """
        start_loc = self._location()

        if self._current_char == "0" and self._peek_char in ("x", "X"):
            self._advance()
            self._advance()
            hex_chars: list[str] = []
            while self._current_char is not None and self._current_char in "0123456789abcdefABCDEF":
                hex_chars.append(self._advance())
            if not hex_chars:
                raise self._error("Invalid number: expected hexadecimal digits")
            return Token(TokenType.NUMBER, int("".join(hex_chars), 16), start_loc)

        num_chars: list[str] = []
        is_float = False

        while self._current_char is not None and self._current_char.isdigit():
            num_chars.append(self._advance())

        if self._current_char == "." and self._peek_char != ".":
            is_float = True
            num_chars.append(self._advance())
            while self._current_char is not None and self._current_char.isdigit():
                num_chars.append(self._advance())

        if self._current_char is not None and self._current_char in "eE":
            is_float = True
            num_chars.append(self._advance())
            if self._current_char is not None and self._current_char in "+-":
                num_chars.append(self._advance())
            if self._current_char is None or not self._current_char.isdigit():
                raise self._error("Invalid number: expected exponent digits")
            while self._current_char is not None and self._current_char.isdigit():
                num_chars.append(self._advance())

        if self._current_char is not None and (self._current_char.isalpha() or self._current_char == "_"):
            raise self._error(f"Malformed number near '{''.join(num_chars)}{self._current_char}'")

        value_str = "".join(num_chars)
        if is_float:
            return Token(TokenType.NUMBER, float(value_str), start_loc)
        return Token(TokenType.NUMBER, int(value_str), start_loc)

    def _read_name_or_keyword(self) -> Token:
        """
        Read a name or keyword.

        Names start with a letter or underscore and contain letters,
        digits, and underscores.
        """
        start_loc = self._location()
        id_chars: list[str] = []

        while self._current_char is not None and (
            self._current_char.isalnum() or self._current_char == "_"
        ):
            id_chars.append(self._advance())

        name = "".join(id_chars)
        token_type = KEYWORDS.get(name)
        if token_type is not None:
            return Token(token_type, name, start_loc)
        return Token(TokenType.NAME, name, start_loc)

    def _read_operator(self) -> Optional[Token]:
        """
        Read an operator token (one to three characters).

        Returns:
            An operator token, or None if the current character is not an operator.
        """
        if self._current_char is None:
            return None

        start_loc = self._location()

        if self.source.startswith("...", self.pos):
            for _ in range(3):
                self._advance()
            return Token(TokenType.ELLIPSIS, "...", start_loc)

        if self._peek_char is not None:
            two_char = self._current_char + self._peek_char
            if two_char in DOUBLE_CHAR_TOKENS:
                self._advance()
                self._advance()
                return Token(DOUBLE_CHAR_TOKENS[two_char], two_char, start_loc)

        if self._current_char in SINGLE_CHAR_TOKENS:
            char = self._advance()
            return Token(SINGLE_CHAR_TOKENS[char], char, start_loc)

        return None

    def _next_token(self) -> Token:
        """Extract the next token from the source."""
        while True:
            self._skip_whitespace()
            if self._current_char == "-" and self._peek_char == "-":
                pragma = self._read_comment()
                if pragma is not None:
                    return pragma
                continue
            break

        char = self._current_char
        if char is None:
            return Token(TokenType.EOF, None, self._location())

        if char in "\"'":
            return self._read_string(char)

        level = self._long_bracket_level()
        if level is not None:
            start_loc = self._location()
            return Token(TokenType.STRING, self._read_long_bracket(level, "string"), start_loc)

        if char.isdigit() or (char == "." and self._peek_char is not None and self._peek_char.isdigit()):
            return self._read_number()

        if char.isalpha() or char == "_":
            return self._read_name_or_keyword()

        op_token = self._read_operator()
        if op_token is not None:
            return op_token

        raise self._error(f"Unexpected character: {char!r}")

    def tokenize(self) -> list[Token]:
        """
        Tokenize the entire source code.

        Returns:
            A list of all tokens including the final EOF token.
        """
        self.tokens = []
        self.pos = 0
        self.line = 1
        self.column = 1
        self._line_start = 0

        # Skip a leading shebang line
        if self.source.startswith("#!"):
            while self._current_char is not None and self._current_char != "\n":
                self._advance()

        while True:
            token = self._next_token()
            self.tokens.append(token)
            if token.type == TokenType.EOF:
                break

        return self.tokens

    def __iter__(self) -> Iterator[Token]:
        """Iterate over tokens (tokenizes on first use)."""
        if not self.tokens:
            self.tokenize()
        return iter(self.tokens)


def tokenize(source: str, filename: Optional[str] = None) -> list[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: Typed Lua source code
        filename: Optional filename for error reporting

    Returns:
        List of tokens
    """
    return Lexer(source, filename).tokenize()
