"""
Pytest configuration and shared fixtures for luatypes tests.
"""

import io
from dataclasses import dataclass, field
from typing import Any

import pytest

from luatypes.compiler.ast_nodes import Chunk
from luatypes.compiler.codegen import CodeGenerator
from luatypes.compiler.config import CompilerConfig
from luatypes.compiler.instrumenter import TypeInstrumenter
from luatypes.compiler.lexer import Lexer
from luatypes.compiler.parser import Parser
from luatypes.compiler.tokens import Token
from luatypes.runtime.state import LuaState


@dataclass
class RunResult:
    """Values returned by a chunk and everything it printed."""

    values: tuple[Any, ...]
    output: str
    state: LuaState = field(repr=False)

    @property
    def lines(self) -> list[str]:
        return self.output.splitlines()


@pytest.fixture
def lexer_factory():
    """Factory fixture for creating lexers."""

    def _create_lexer(source: str, filename: str = "test.lua") -> Lexer:
        return Lexer(source, filename)

    return _create_lexer


@pytest.fixture
def parser_factory(lexer_factory):
    """Factory fixture for creating parsers from source."""

    def _create_parser(source: str) -> Parser:
        tokens = lexer_factory(source).tokenize()
        return Parser(tokens, source)

    return _create_parser


@pytest.fixture
def tokenize(lexer_factory):
    """Fixture to tokenize source code."""

    def _tokenize(source: str) -> list[Token]:
        return lexer_factory(source).tokenize()

    return _tokenize


@pytest.fixture
def parse(parser_factory):
    """Fixture to parse source code into a chunk."""

    def _parse(source: str) -> Chunk:
        return parser_factory(source).parse()

    return _parse


@pytest.fixture
def instrument(parse):
    """Fixture to parse source code and insert type checks."""

    def _instrument(source: str, enabled: bool = True) -> Chunk:
        return TypeInstrumenter(enabled=enabled).transform(parse(source))

    return _instrument


@pytest.fixture
def compile_to_python(instrument):
    """Fixture to compile typed Lua source to Python source."""

    def _compile(source: str, enabled: bool = True) -> str:
        return CodeGenerator(emit_header=False).generate(instrument(source, enabled))

    return _compile


@pytest.fixture
def lua_state():
    """Factory fixture for states that capture printed output."""

    def _create_state(typecheck: bool = True) -> tuple[LuaState, io.StringIO]:
        output = io.StringIO()
        return LuaState(CompilerConfig(typecheck=typecheck), output=output), output

    return _create_state


@pytest.fixture
def run_source(lua_state):
    """Fixture to compile and run typed Lua source in a fresh state."""

    def _run(source: str, *args: Any, typecheck: bool = True) -> RunResult:
        state, output = lua_state(typecheck)
        values = state.execute(source, *args)
        return RunResult(values, output.getvalue(), state)

    return _run
