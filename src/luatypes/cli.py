"""
luatypes Command-Line Interface.

Provides commands to compile, check and run typed Lua programs.

Usage:
    luatypes compile input.lua -o output.py
    luatypes run input.lua [args...]
    luatypes check input.lua
    luatypes tokens input.lua          # Debug: dump tokens
    luatypes ast input.lua             # Debug: dump the syntax tree
    luatypes init                      # Write a luatypes.toml
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from luatypes import __version__
from luatypes.compiler import CompilationPipeline, CompilationResult
from luatypes.compiler.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TEXT,
    CompilerConfig,
    find_config,
    load_config,
)
from luatypes.compiler.lexer import Lexer
from luatypes.runtime.lua import LuaError
from luatypes.runtime.state import CompilationFailed, LuaState
from luatypes.utils.errors import LuaTypesError

logger = logging.getLogger(__name__)


# =============================================================================
# ANSI Color Codes for Terminal Output
# =============================================================================


class Colors:
    """ANSI escape codes for colored terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    GRAY = "\033[90m"

    BOLD = "\033[1m"
    RESET = "\033[0m"

    @classmethod
    def disable(cls) -> None:
        """Disable all colors (for non-TTY output)."""
        cls.RED = ""
        cls.GREEN = ""
        cls.YELLOW = ""
        cls.CYAN = ""
        cls.GRAY = ""
        cls.BOLD = ""
        cls.RESET = ""


def _init_colors() -> None:
    """Initialize colors based on terminal capabilities."""
    import os

    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        Colors.disable()


_init_colors()


def _add_input_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "input",
        type=Path,
        help="Input typed Lua file (.lua)",
    )


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Configuration file (default: nearest {CONFIG_FILENAME})",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--typecheck",
        dest="typecheck",
        action="store_true",
        default=None,
        help="Insert run-time type checks (overrides the config file)",
    )
    group.add_argument(
        "--no-typecheck",
        dest="typecheck",
        action="store_false",
        help="Strip annotations without inserting checks",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="luatypes",
        description="luatypes - Run-time type checks for Lua, compiled to Python",
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log compiler stages to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Compile command
    compile_parser = subparsers.add_parser(
        "compile",
        aliases=["c"],
        help="Compile a typed Lua file to Python",
    )
    _add_input_argument(compile_parser)
    compile_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output Python file (default: input file with .py extension)",
    )
    compile_parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print generated code to stdout instead of writing a file",
    )
    _add_config_arguments(compile_parser)

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        aliases=["r"],
        help="Compile and run a typed Lua file",
    )
    _add_input_argument(run_parser)
    run_parser.add_argument(
        "args",
        nargs="*",
        help="Arguments passed to the chunk as ...",
    )
    _add_config_arguments(run_parser)

    # Check command
    check_parser = subparsers.add_parser(
        "check",
        help="Check a file for syntax and annotation errors",
    )
    _add_input_argument(check_parser)
    _add_config_arguments(check_parser)

    # Tokens command (debug)
    tokens_parser = subparsers.add_parser(
        "tokens",
        help="Show tokens (debug)",
    )
    _add_input_argument(tokens_parser)

    # AST command (debug)
    ast_parser = subparsers.add_parser(
        "ast",
        help="Show the syntax tree (debug)",
    )
    _add_input_argument(ast_parser)
    ast_parser.add_argument(
        "--instrumented",
        action="store_true",
        help="Show the tree after type checks are inserted",
    )
    _add_config_arguments(ast_parser)

    # Init command
    init_parser = subparsers.add_parser(
        "init",
        help=f"Write a default {CONFIG_FILENAME}",
    )
    init_parser.add_argument(
        "directory",
        nargs="?",
        type=Path,
        default=None,
        help="Target directory (default: current directory)",
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing configuration file",
    )

    return parser


# =============================================================================
# Helpers
# =============================================================================


def _read_source(input_path: Path) -> Optional[str]:
    if not input_path.exists():
        print(f"Error: File not found: {input_path}", file=sys.stderr)
        return None
    return input_path.read_text(encoding="utf-8")


def _load_config(args: argparse.Namespace) -> CompilerConfig:
    """Load the configuration file and apply command-line overrides."""
    config_path = args.config or find_config(args.input.parent)
    config = CompilerConfig()
    if config_path is not None:
        logger.debug(f"Using configuration {config_path}")
        config = load_config(config_path)
    return config.with_overrides(typecheck=args.typecheck)


def _print_errors(result: CompilationResult) -> None:
    for error in result.errors:
        print(f"{Colors.RED}error:{Colors.RESET} {error}", file=sys.stderr)
    for warning in result.warnings:
        print(f"{Colors.YELLOW}warning:{Colors.RESET} {warning}", file=sys.stderr)


def _print_ast(node: Any, indent: int = 0) -> None:
    """Pretty print an AST node."""
    prefix = "  " * indent
    node_name = type(node).__name__

    attrs = {
        f.name: getattr(node, f.name)
        for f in dataclasses.fields(node)
        if f.name != "location"
    }

    if not attrs:
        print(f"{prefix}{node_name}")
        return

    print(f"{prefix}{node_name}:")
    for key, value in attrs.items():
        if dataclasses.is_dataclass(value):
            print(f"{prefix}  {key}:")
            _print_ast(value, indent + 2)
        elif isinstance(value, tuple) and value and not isinstance(value[0], str):
            print(f"{prefix}  {key}: [")
            for item in value:
                for part in item if isinstance(item, tuple) else (item,):
                    if dataclasses.is_dataclass(part):
                        _print_ast(part, indent + 2)
                    else:
                        print(f"{prefix}    {part!r}")
            print(f"{prefix}  ]")
        elif isinstance(value, tuple) and value:
            print(f"{prefix}  {key}: {list(value)!r}")
        elif hasattr(value, "value") and not isinstance(value, (str, int, float)):
            print(f"{prefix}  {key}: {value.value}")
        else:
            print(f"{prefix}  {key}: {value!r}")


# =============================================================================
# Commands
# =============================================================================


def cmd_compile(args: argparse.Namespace) -> int:
    """Handle the compile command."""
    input_path: Path = args.input
    try:
        source = _read_source(input_path)
        if source is None:
            return 1

        result = CompilationPipeline(_load_config(args)).compile(source, str(input_path))
        if not result.success:
            _print_errors(result)
            return 1

        if args.stdout:
            print(result.python_code, end="")
        else:
            output_path = args.output or input_path.with_suffix(".py")
            output_path.write_text(result.python_code, encoding="utf-8")
            print(f"{Colors.GREEN}Compiled:{Colors.RESET} {input_path} -> {output_path}")

        return 0

    except LuaTypesError as e:
        print(f"{Colors.RED}Compilation error:{Colors.RESET} {e}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the run command."""
    input_path: Path = args.input
    try:
        source = _read_source(input_path)
        if source is None:
            return 1

        state = LuaState(_load_config(args))
        state.execute(source, *args.args, filename=str(input_path))
        return 0

    except CompilationFailed as e:
        _print_errors(e.result)
        return 1
    except LuaTypesError as e:
        print(f"{Colors.RED}Compilation error:{Colors.RESET} {e}", file=sys.stderr)
        return 1
    except LuaError as e:
        print(f"{Colors.RED}Runtime error:{Colors.RESET} {e}", file=sys.stderr)
        return 1


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the check command."""
    input_path: Path = args.input
    try:
        source = _read_source(input_path)
        if source is None:
            return 1

        pipeline = CompilationPipeline(_load_config(args))
        result = pipeline.compile(source, str(input_path), generate_code=False)
        if not result.success:
            _print_errors(result)
            return 1

        if result.typecheck:
            detail = f"{result.checks_inserted} type checks"
        else:
            detail = "type checks disabled"
        print(f"{Colors.GREEN}OK:{Colors.RESET} {input_path} ({detail})")
        return 0

    except LuaTypesError as e:
        print(f"{Colors.RED}Error:{Colors.RESET} {e}", file=sys.stderr)
        return 1


def cmd_tokens(args: argparse.Namespace) -> int:
    """Handle the tokens command (debug)."""
    input_path: Path = args.input
    try:
        source = _read_source(input_path)
        if source is None:
            return 1

        for token in Lexer(source, str(input_path)).tokenize():
            print(token)
        return 0

    except LuaTypesError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_ast(args: argparse.Namespace) -> int:
    """Handle the ast command (debug)."""
    input_path: Path = args.input
    try:
        source = _read_source(input_path)
        if source is None:
            return 1

        pipeline = CompilationPipeline(_load_config(args))
        result = pipeline.compile(source, str(input_path), generate_code=False)
        if not result.success:
            _print_errors(result)
            return 1

        _print_ast(result.instrumented if args.instrumented else result.chunk)
        return 0

    except LuaTypesError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_init(args: argparse.Namespace) -> int:
    """Handle the init command - write a default configuration file."""
    directory: Path = args.directory or Path.cwd()
    directory.mkdir(parents=True, exist_ok=True)

    config_path = directory / CONFIG_FILENAME
    if config_path.exists() and not args.force:
        print(f"Error: {config_path} already exists (use --force to overwrite)", file=sys.stderr)
        return 1

    config_path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
    print(f"{Colors.GREEN}Created:{Colors.RESET} {config_path}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s: %(message)s",
            stream=sys.stderr,
        )

    if args.command is None:
        parser.print_help()
        return 0

    command_handlers = {
        "compile": cmd_compile,
        "c": cmd_compile,
        "run": cmd_run,
        "r": cmd_run,
        "check": cmd_check,
        "tokens": cmd_tokens,
        "ast": cmd_ast,
        "init": cmd_init,
    }

    handler = command_handlers.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
