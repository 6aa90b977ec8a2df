"""
Compiler configuration.

Settings come from the ``[compiler]`` table of a ``luatypes.toml`` file:

    [compiler]
    typecheck = true
    registry_name = "types"
    temp_prefix = "_tmp"
    emit_header = true

A ``--!typecheck on|off`` directive in a source file overrides
``typecheck`` for that file.
"""

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

from luatypes.utils.errors import ConfigError

CONFIG_FILENAME = "luatypes.toml"

DEFAULT_CONFIG_TEXT = """\
# luatypes configuration
# Created with `luatypes init`

[compiler]
# Insert run-time type checks (a --!typecheck directive overrides this per file)
typecheck = true

# Global table holding the type predicates
registry_name = "types"

# Prefix for compiler-generated temporaries
temp_prefix = "_tmp"

# Put a comment header at the top of generated Python modules
emit_header = true
"""


@dataclass(frozen=True)
class CompilerConfig:
    """
    Options that control compilation of one or more units.

    Attributes:
        typecheck: Insert run-time checks for annotated bindings
        registry_name: Name of the global table holding type predicates
        temp_prefix: Prefix of compiler-generated temporary names
        emit_header: Emit a comment header in generated Python code
    """

    typecheck: bool = True
    registry_name: str = "types"
    temp_prefix: str = "_tmp"
    emit_header: bool = True

    def with_overrides(self, **overrides: Any) -> "CompilerConfig":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def resolve_typecheck(self, directive: Optional[bool]) -> bool:
        """Combine the configured flag with a source directive."""
        return self.typecheck if directive is None else directive


def _validate(table: dict[str, Any], source: str) -> dict[str, Any]:
    known = {f.name for f in fields(CompilerConfig)}
    expected_types = {"typecheck": bool, "registry_name": str,
                      "temp_prefix": str, "emit_header": bool}

    for key, value in table.items():
        if key not in known:
            raise ConfigError(f"{source}: unknown compiler option '{key}'")
        if not isinstance(value, expected_types[key]):
            raise ConfigError(
                f"{source}: option '{key}' must be of type {expected_types[key].__name__}"
            )

    for key in ("registry_name", "temp_prefix"):
        if key in table and not table[key].isidentifier():
            raise ConfigError(f"{source}: option '{key}' must be a valid identifier")

    return table


def load_config(path: Union[str, Path]) -> CompilerConfig:
    """
    Load a CompilerConfig from a TOML file.

    Args:
        path: Path to a luatypes.toml file

    Returns:
        The configuration, with defaults for missing options

    Raises:
        ConfigError: If the file is not valid TOML or has unknown options
    """
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e

    table = data.get("compiler", {})
    if not isinstance(table, dict):
        raise ConfigError(f"{path}: [compiler] must be a table")

    return CompilerConfig(**_validate(table, str(path)))


def find_config(start: Union[str, Path, None] = None) -> Optional[Path]:
    """
    Search ``start`` and its parents for a luatypes.toml file.

    Returns:
        The path of the nearest config file, or None.
    """
    directory = Path(start or Path.cwd()).resolve()
    if directory.is_file():
        directory = directory.parent
    for candidate in (directory, *directory.parents):
        config_path = candidate / CONFIG_FILENAME
        if config_path.is_file():
            return config_path
    return None
