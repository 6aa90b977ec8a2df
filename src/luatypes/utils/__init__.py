"""
luatypes utilities package.

Common utilities for error handling and source locations.
"""

from luatypes.utils.errors import (
    CodeGenError,
    ConfigError,
    LexerError,
    LuaTypesError,
    MalformedTypeError,
    ParserError,
    SourceLocation,
)

__all__ = [
    "LuaTypesError",
    "LexerError",
    "ParserError",
    "MalformedTypeError",
    "CodeGenError",
    "ConfigError",
    "SourceLocation",
]
