"""
luatypes Language Server Protocol (LSP) Server.

Publishes diagnostics for typed Lua documents using pygls:

- Document synchronization (open, change, save, close)
- Diagnostics for lexer, parser and annotation errors

Usage:
    # Start the server in stdio mode (for IDE integration)
    luatypes-lsp

    # Start in TCP mode (for debugging)
    luatypes-lsp --tcp --port 2087
"""

import logging

from lsprotocol import types
from pygls.lsp.server import LanguageServer

from luatypes import __version__
from luatypes.compiler.config import CompilerConfig
from luatypes.lsp.diagnostics import get_diagnostics_for_document

logger = logging.getLogger("luatypes-lsp")


class LuaTypesLanguageServer(LanguageServer):
    """
    Language Server Protocol implementation for typed Lua.

    Every open, change or save re-compiles the document and publishes the
    resulting diagnostics. Handlers are registered by ``create_server``.
    """

    def __init__(self, config: CompilerConfig | None = None) -> None:
        super().__init__(
            name="luatypes-lsp",
            version=f"v{__version__}",
        )
        self.config = config or CompilerConfig()

    def validate_document(self, uri: str, text: str) -> None:
        """Compile a document and publish its diagnostics."""
        diagnostics = get_diagnostics_for_document(text, uri, self.config)
        logger.debug(f"{uri}: {len(diagnostics)} diagnostics")
        self.publish_document_diagnostics(uri, diagnostics)

    def publish_document_diagnostics(self, uri: str, diagnostics: list[types.Diagnostic]) -> None:
        """Publish diagnostics to the client."""
        self.text_document_publish_diagnostics(
            types.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
        )


def create_server(config: CompilerConfig | None = None) -> LuaTypesLanguageServer:
    """Create and configure a luatypes language server instance."""
    server = LuaTypesLanguageServer(config)

    # =========================================================================
    # Document Synchronization
    # =========================================================================

    @server.feature(types.TEXT_DOCUMENT_DID_OPEN)
    def did_open(params: types.DidOpenTextDocumentParams) -> None:
        """Handle document open notification."""
        document = params.text_document
        logger.info(f"Document opened: {document.uri}")
        server.validate_document(document.uri, document.text)

    @server.feature(types.TEXT_DOCUMENT_DID_CHANGE)
    def did_change(params: types.DidChangeTextDocumentParams) -> None:
        """Handle document change notification."""
        uri = params.text_document.uri
        doc = server.workspace.get_text_document(uri)
        logger.debug(f"Document changed: {uri}")
        server.validate_document(uri, doc.source)

    @server.feature(types.TEXT_DOCUMENT_DID_SAVE)
    def did_save(params: types.DidSaveTextDocumentParams) -> None:
        """Handle document save notification."""
        uri = params.text_document.uri
        logger.info(f"Document saved: {uri}")
        doc = server.workspace.get_text_document(uri)
        server.validate_document(uri, doc.source)

    @server.feature(types.TEXT_DOCUMENT_DID_CLOSE)
    def did_close(params: types.DidCloseTextDocumentParams) -> None:
        """Handle document close notification."""
        uri = params.text_document.uri
        logger.info(f"Document closed: {uri}")
        server.publish_document_diagnostics(uri, [])

    return server


def main() -> None:
    """
    Main entry point for the luatypes language server.

    Starts the server in stdio mode for IDE integration.
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="luatypes Language Server",
        prog="luatypes-lsp",
    )
    parser.add_argument(
        "--tcp",
        action="store_true",
        help="Start server in TCP mode instead of stdio",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to in TCP mode (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=2087,
        help="Port to listen on in TCP mode (default: 2087)",
    )
    parser.add_argument(
        "--no-typecheck",
        action="store_true",
        help="Analyze documents with type checks disabled",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Logging level (default: info)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    server = create_server(CompilerConfig(typecheck=not args.no_typecheck))

    if args.tcp:
        logger.info(f"Starting luatypes LSP in TCP mode on {args.host}:{args.port}")
        server.start_tcp(args.host, args.port)
    else:
        logger.info("Starting luatypes LSP in stdio mode")
        server.start_io()


if __name__ == "__main__":
    main()
