"""
luatypes Language Server.

Publishes compiler diagnostics (lexer, parser and malformed annotation
errors) to editors over the Language Server Protocol.
"""

from luatypes.lsp.diagnostics import DiagnosticProvider, get_diagnostics_for_document

__all__ = [
    "DiagnosticProvider",
    "get_diagnostics_for_document",
]
