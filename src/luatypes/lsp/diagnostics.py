"""
Diagnostic generation for the luatypes LSP.

This module converts compiler errors into LSP-compatible diagnostic
messages for display in editors.
"""

from typing import Optional

from lsprotocol import types

from luatypes.compiler import CompilationPipeline
from luatypes.compiler.config import CompilerConfig
from luatypes.utils.errors import LuaTypesError


class DiagnosticProvider:
    """
    Generates LSP diagnostics from typed Lua source code.

    This provider runs the lexer, parser, instrumenter and code generator
    and reports the first error that stops compilation.
    """

    def __init__(self, source: str, uri: str, config: Optional[CompilerConfig] = None) -> None:
        """
        Initialize the diagnostic provider.

        Args:
            source: The typed Lua source code to analyze
            uri: The document URI for location information
            config: Compiler configuration (defaults if omitted)
        """
        self.source = source
        self.uri = uri
        self.config = config or CompilerConfig()
        self._diagnostics: list[types.Diagnostic] = []

    def get_diagnostics(self) -> list[types.Diagnostic]:
        """
        Get all diagnostics for the document.

        Returns:
            List of LSP diagnostic objects
        """
        self._diagnostics = []

        result = CompilationPipeline(self.config).compile(self.source, self.uri)
        for error in result.errors:
            self._add_compiler_error(error, types.DiagnosticSeverity.Error)
        for warning in result.warnings:
            self._add_general_error(warning, 0, 0, types.DiagnosticSeverity.Warning)

        return self._diagnostics

    def _add_compiler_error(self, error: LuaTypesError, severity: types.DiagnosticSeverity) -> None:
        """
        Add a compiler error as an LSP diagnostic.

        Args:
            error: The compiler error
            severity: The diagnostic severity
        """
        line = 0
        character = 0

        if error.location:
            line = max(0, error.location.line - 1)
            character = max(0, error.location.column - 1)

        # Underline up to the end of the offending token
        end_character = character + 1
        if error.source_line:
            rest_of_line = error.source_line[character:]
            for i, c in enumerate(rest_of_line):
                if c.isspace() or c in "()[]{},:;":
                    end_character = character + max(1, i)
                    break
            else:
                end_character = character + max(1, len(rest_of_line))

        self._diagnostics.append(
            types.Diagnostic(
                range=types.Range(
                    start=types.Position(line=line, character=character),
                    end=types.Position(line=line, character=end_character),
                ),
                message=error.message,
                severity=severity,
                source="luatypes",
            )
        )

    def _add_general_error(
        self,
        message: str,
        line: int,
        character: int,
        severity: types.DiagnosticSeverity,
    ) -> None:
        self._diagnostics.append(
            types.Diagnostic(
                range=types.Range(
                    start=types.Position(line=line, character=character),
                    end=types.Position(line=line, character=character + 1),
                ),
                message=message,
                severity=severity,
                source="luatypes",
            )
        )


def get_diagnostics_for_document(source: str, uri: str,
                                 config: Optional[CompilerConfig] = None) -> list[types.Diagnostic]:
    """
    Convenience function to get diagnostics for a document.

    Args:
        source: The typed Lua source code
        uri: The document URI
        config: Compiler configuration (defaults if omitted)

    Returns:
        List of LSP diagnostics
    """
    provider = DiagnosticProvider(source, uri, config)
    return provider.get_diagnostics()
