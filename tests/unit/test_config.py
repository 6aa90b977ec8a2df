"""
Unit tests for compiler configuration loading.
"""

import pytest

from luatypes.compiler.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TEXT,
    CompilerConfig,
    find_config,
    load_config,
)
from luatypes.utils.errors import ConfigError


@pytest.fixture
def write_config(tmp_path):
    """Factory fixture writing a luatypes.toml into a temporary directory."""

    def _write(text: str):
        path = tmp_path / CONFIG_FILENAME
        path.write_text(text, encoding="utf-8")
        return path

    return _write


class TestCompilerConfig:
    """Defaults and overrides."""

    def test_defaults(self):
        config = CompilerConfig()
        assert config.typecheck is True
        assert config.registry_name == "types"
        assert config.temp_prefix == "_tmp"
        assert config.emit_header is True

    def test_with_overrides_ignores_none(self):
        config = CompilerConfig().with_overrides(typecheck=None, registry_name="T")
        assert config.typecheck is True
        assert config.registry_name == "T"

    @pytest.mark.parametrize(
        "configured,directive,expected",
        [
            (True, None, True),
            (False, None, False),
            (True, False, False),
            (False, True, True),
        ],
    )
    def test_directive_overrides_flag(self, configured, directive, expected):
        assert CompilerConfig(typecheck=configured).resolve_typecheck(directive) is expected


class TestLoadConfig:
    """Reading luatypes.toml."""

    def test_default_text_loads_as_defaults(self, write_config):
        assert load_config(write_config(DEFAULT_CONFIG_TEXT)) == CompilerConfig()

    def test_partial_config(self, write_config):
        config = load_config(write_config("[compiler]\ntypecheck = false\n"))
        assert config == CompilerConfig(typecheck=False)

    def test_missing_table_uses_defaults(self, write_config):
        assert load_config(write_config("")) == CompilerConfig()

    def test_unknown_option(self, write_config):
        with pytest.raises(ConfigError, match="unknown compiler option 'strict'"):
            load_config(write_config("[compiler]\nstrict = true\n"))

    def test_wrong_type(self, write_config):
        with pytest.raises(ConfigError, match="must be of type bool"):
            load_config(write_config('[compiler]\ntypecheck = "yes"\n'))

    def test_invalid_identifier(self, write_config):
        with pytest.raises(ConfigError, match="valid identifier"):
            load_config(write_config('[compiler]\nregistry_name = "not valid"\n'))

    def test_invalid_toml(self, write_config):
        with pytest.raises(ConfigError):
            load_config(write_config("[compiler\n"))

    def test_compiler_must_be_table(self, write_config):
        with pytest.raises(ConfigError, match=r"\[compiler\] must be a table"):
            load_config(write_config("compiler = 1\n"))


class TestFindConfig:
    """Searching parent directories."""

    def test_finds_in_parent(self, tmp_path, write_config):
        path = write_config("")
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        assert find_config(nested) == path.resolve()

    def test_accepts_file_path(self, tmp_path, write_config):
        path = write_config("")
        source = tmp_path / "main.lua"
        source.write_text("", encoding="utf-8")
        assert find_config(source) == path.resolve()

    def test_not_found(self, tmp_path):
        nested = tmp_path / "empty"
        nested.mkdir()
        found = find_config(nested)
        assert found is None or tmp_path not in found.parents
