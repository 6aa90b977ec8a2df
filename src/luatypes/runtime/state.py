"""
Execution state for compiled chunks.

A ``LuaState`` owns one global environment. Every chunk it runs shares that
environment, so a ``newtype`` declared by one unit is visible to units run
after it.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Optional, TextIO

from luatypes.compiler import CompilationPipeline, CompilationResult
from luatypes.compiler.config import CompilerConfig
from luatypes.runtime.lua import Table, expand
from luatypes.runtime.stdlib import create_environment
from luatypes.runtime.types import create_registry

logger = logging.getLogger(__name__)


class CompilationFailed(Exception):
    """Raised when a unit handed to ``LuaState`` does not compile."""

    def __init__(self, result: CompilationResult) -> None:
        self.result = result
        messages = [str(e) for e in result.errors] + result.warnings
        super().__init__("; ".join(messages) or "compilation failed")


class LuaState:
    """
    A global environment plus the compiler settings used to load code.

    Usage:
        state = LuaState()
        state.execute('local n :: number = 42 print(n)')
    """

    def __init__(self, config: Optional[CompilerConfig] = None,
                 output: Optional[TextIO] = None) -> None:
        self.config = config or CompilerConfig()
        self.env: Table = create_environment(output)
        self.env[self.config.registry_name] = create_registry()
        self.pipeline = CompilationPipeline(self.config)

    def compile(self, source: str, filename: str = "<string>") -> CompilationResult:
        """Compile a unit, raising ``CompilationFailed`` on errors."""
        result = self.pipeline.compile(source, filename)
        if not result.success:
            raise CompilationFailed(result)
        return result

    def load_python(self, python_code: str, filename: str = "<string>") -> Callable[..., Any]:
        """Turn generated Python code into a callable bound to this state."""
        namespace: dict[str, Any] = {"__name__": f"luatypes.chunk:{filename}"}
        exec(compile(python_code, filename, "exec"), namespace)
        return partial(namespace["chunk"], self.env)

    def load(self, source: str, filename: str = "<string>") -> Callable[..., Any]:
        """Compile a unit and return it as a callable taking the chunk varargs."""
        result = self.compile(source, filename)
        logger.debug(f"Loaded {filename} ({result.checks_inserted} type checks)")
        return self.load_python(result.python_code, filename)

    def execute(self, source: str, *args: Any, filename: str = "<string>") -> tuple[Any, ...]:
        """
        Compile and run a unit.

        Args:
            source: Typed Lua source
            *args: Values passed as the chunk's ``...``
            filename: Name used in error messages

        Returns:
            Every value the chunk returned

        Raises:
            CompilationFailed: If the unit does not compile
            LuaError: If the chunk raises an error, including a TypeMismatch
        """
        chunk = self.load(source, filename)
        result = chunk(*args)
        # Falling off the end of a chunk returns no values
        return () if result is None else expand(result)

    def __getitem__(self, name: str) -> Any:
        return self.env[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.env[name] = value

