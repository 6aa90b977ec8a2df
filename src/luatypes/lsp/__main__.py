"""
Entry point for running the luatypes LSP server as a module.

Usage:
    python -m luatypes.lsp
    python -m luatypes.lsp --tcp --port 2087
"""

from luatypes.lsp.server import main

if __name__ == "__main__":
    main()
