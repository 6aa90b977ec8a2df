"""
luatypes Compiler Package.

This package contains the core compiler components:
- Lexer: Tokenizes typed Lua source code
- Parser: Produces an Abstract Syntax Tree from tokens
- AST: Node definitions for the syntax tree
- TypeCompiler: Rewrites annotation expressions into registry lookups
- TypeInstrumenter: Inserts run-time type checks for annotated bindings
- CodeGen: Generates Python code from the instrumented AST
- CompilationPipeline: Unified compilation interface running all stages
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from luatypes.compiler.ast_nodes import Chunk
from luatypes.compiler.codegen import CodeGenerator
from luatypes.compiler.config import CompilerConfig
from luatypes.compiler.instrumenter import TypeInstrumenter
from luatypes.compiler.lexer import Lexer
from luatypes.compiler.parser import Parser
from luatypes.utils.errors import LuaTypesError

logger = logging.getLogger(__name__)

__all__ = [
    "CompilationResult",
    "CompilationPipeline",
    "compile_source",
    "compile_file",
]


@dataclass
class CompilationResult:
    """
    Complete result of the compilation pipeline.

    Attributes:
        python_code: Generated Python source code (empty if not generated)
        chunk: The parsed AST, with annotations
        instrumented: The AST after check insertion
        typecheck: Whether checks were inserted for this unit
        checks_inserted: Number of checks the instrumenter added
        errors: Compiler errors that stopped compilation
        warnings: Non-fatal messages
        success: Whether compilation completed without errors
    """

    python_code: str = ""
    chunk: Optional[Chunk] = None
    instrumented: Optional[Chunk] = None
    typecheck: bool = True
    checks_inserted: int = 0
    errors: list[LuaTypesError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    success: bool = True

    def __str__(self) -> str:
        lines = ["Compilation Result:"]
        lines.append(f"  Success: {self.success}")
        lines.append(f"  Type Checks: {'on' if self.typecheck else 'off'}"
                     f" ({self.checks_inserted} inserted)")
        if self.errors:
            lines.append(f"  Errors: {len(self.errors)}")
            for err in self.errors[:5]:
                lines.append(f"    - {err.message}")
        if self.warnings:
            lines.append(f"  Warnings: {len(self.warnings)}")
            for warn in self.warnings[:5]:
                lines.append(f"    - {warn}")
        lines.append(f"  Generated Code: {len(self.python_code)} characters")
        return "\n".join(lines)

    def has_errors(self) -> bool:
        """Check if compilation produced any errors."""
        return bool(self.errors) or not self.success

    def _fail(self, stage: str, error: LuaTypesError) -> "CompilationResult":
        logger.debug(f"{stage} failed: {error.message}")
        self.errors.append(error)
        self.success = False
        return self


# =============================================================================
# Compilation Pipeline
# =============================================================================


class CompilationPipeline:
    """
    Unified compilation pipeline for typed Lua units.

    The pipeline performs the following stages:
    1. Lexing - Tokenize source code
    2. Parsing - Build the annotated AST
    3. Flag resolution - Combine the configured flag with ``--!typecheck``
    4. Instrumentation - Insert checks, or strip annotations when disabled
    5. Code Generation - Produce Python code

    Example:
        pipeline = CompilationPipeline(CompilerConfig(typecheck=True))
        result = pipeline.compile(source_code)
        if result.success:
            print(result.python_code)
        else:
            for error in result.errors:
                print(error)
    """

    def __init__(self, config: Optional[CompilerConfig] = None) -> None:
        self.config = config or CompilerConfig()

    def compile(self, source: str, filename: str = "<string>",
                generate_code: bool = True) -> CompilationResult:
        """
        Execute the compilation pipeline.

        Args:
            source: Typed Lua source code
            filename: Filename for error reporting
            generate_code: Stop after instrumentation when False

        Returns:
            CompilationResult with the trees, the generated code and errors
        """
        result = CompilationResult()

        # Stage 1: Lexing
        logger.debug(f"Lexing {filename}")
        try:
            tokens = Lexer(source, filename).tokenize()
        except LuaTypesError as e:
            return result._fail("Lexing", e)

        # Stage 2: Parsing
        logger.debug(f"Parsing {filename} ({len(tokens)} tokens)")
        try:
            chunk = Parser(tokens, source, registry=self.config.registry_name).parse()
        except LuaTypesError as e:
            return result._fail("Parsing", e)
        result.chunk = chunk

        # Stage 3: Flag resolution
        result.typecheck = self.config.resolve_typecheck(chunk.typecheck)
        if chunk.typecheck is not None:
            logger.debug(f"Directive sets typecheck {'on' if chunk.typecheck else 'off'}")

        # Stage 4: Instrumentation
        instrumenter = TypeInstrumenter(
            enabled=result.typecheck,
            registry=self.config.registry_name,
            temp_prefix=self.config.temp_prefix,
        )
        try:
            result.instrumented = instrumenter.transform(chunk)
        except LuaTypesError as e:
            return result._fail("Instrumentation", e)
        result.checks_inserted = instrumenter.checks_inserted

        if not generate_code:
            return result

        # Stage 5: Code Generation
        logger.debug(f"Generating Python code for {filename}")
        try:
            generator = CodeGenerator(emit_header=self.config.emit_header)
            result.python_code = generator.generate(result.instrumented, filename)
        except LuaTypesError as e:
            return result._fail("Code generation", e)

        return result

    def compile_file(self, path: Path | str) -> CompilationResult:
        """
        Compile a typed Lua file.

        Args:
            path: Path to the .lua file

        Returns:
            CompilationResult containing generated code and errors
        """
        path = Path(path)
        if not path.exists():
            result = CompilationResult(success=False)
            result.warnings.append(f"File not found: {path}")
            return result

        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            result = CompilationResult(success=False)
            result.warnings.append(f"Failed to read file: {e}")
            return result

        return self.compile(source, filename=str(path))


# =============================================================================
# Convenience functions
# =============================================================================


def _failure_message(result: CompilationResult) -> str:
    messages = [str(e) for e in result.errors] + result.warnings
    return "; ".join(messages)


def compile_source(source: str, typecheck: Optional[bool] = None,
                   config: Optional[CompilerConfig] = None) -> str:
    """
    Compile typed Lua source code to Python.

    Args:
        source: Typed Lua source code
        typecheck: Override the configured typecheck flag
        config: Compiler configuration (defaults if omitted)

    Returns:
        Generated Python source code

    Raises:
        ValueError: If compilation fails
    """
    config = (config or CompilerConfig()).with_overrides(typecheck=typecheck)
    result = CompilationPipeline(config).compile(source)

    if not result.success:
        raise ValueError(f"Compilation failed: {_failure_message(result)}")

    return result.python_code


def compile_file(filepath: Path | str, typecheck: Optional[bool] = None,
                 config: Optional[CompilerConfig] = None) -> str:
    """
    Compile a typed Lua file to Python.

    Raises:
        ValueError: If compilation fails
    """
    config = (config or CompilerConfig()).with_overrides(typecheck=typecheck)
    result = CompilationPipeline(config).compile_file(filepath)

    if not result.success:
        raise ValueError(f"Compilation failed: {_failure_message(result)}")

    return result.python_code
