"""
Unit tests for the luatypes command-line interface.
"""

import pytest

from luatypes.cli import create_parser, main
from luatypes.compiler.config import CONFIG_FILENAME, DEFAULT_CONFIG_TEXT


@pytest.fixture
def lua_file(tmp_path):
    """Factory fixture writing a .lua file into a temporary directory."""

    def _write(source: str, name: str = "main.lua"):
        path = tmp_path / name
        path.write_text(source, encoding="utf-8")
        return path

    return _write


class TestArgumentParsing:
    """Parser construction."""

    def test_typecheck_defaults_to_none(self):
        args = create_parser().parse_args(["check", "x.lua"])
        assert args.typecheck is None

    def test_typecheck_flags(self):
        parser = create_parser()
        assert parser.parse_args(["check", "x.lua", "--typecheck"]).typecheck is True
        assert parser.parse_args(["check", "x.lua", "--no-typecheck"]).typecheck is False

    def test_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["check", "x.lua", "--typecheck", "--no-typecheck"])

    def test_aliases(self):
        parser = create_parser()
        assert parser.parse_args(["c", "x.lua"]).command == "c"
        assert parser.parse_args(["r", "x.lua", "1", "2"]).args == ["1", "2"]

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: luatypes" in capsys.readouterr().out


class TestCommands:
    """Command handlers end to end."""

    def test_run_prints_output(self, lua_file, capsys):
        path = lua_file("local n :: number = 41\nprint(n + 1)")
        assert main(["run", str(path)]) == 0
        assert capsys.readouterr().out == "42\n"

    def test_run_passes_arguments(self, lua_file, capsys):
        path = lua_file("local a, b = ...\nprint(b, a)")
        assert main(["run", str(path), "x", "y"]) == 0
        assert capsys.readouterr().out == "y\tx\n"

    def test_run_reports_type_mismatch(self, lua_file, capsys):
        path = lua_file("local n :: number = 'oops'")
        assert main(["run", str(path)]) == 1
        assert "type mismatch: expected number" in capsys.readouterr().err

    def test_run_without_typecheck(self, lua_file, capsys):
        path = lua_file("local n :: number = 'oops'\nprint(n)")
        assert main(["run", str(path), "--no-typecheck"]) == 0
        assert capsys.readouterr().out == "oops\n"

    def test_run_syntax_error(self, lua_file, capsys):
        path = lua_file("local = 1")
        assert main(["run", str(path)]) == 1
        assert "error:" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["check", str(tmp_path / "nope.lua")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_compile_writes_python(self, lua_file):
        path = lua_file("local n :: number = 1")
        assert main(["compile", str(path)]) == 0
        generated = path.with_suffix(".py").read_text(encoding="utf-8")
        assert "def chunk(_ENV, *_varargs):" in generated

    def test_compile_to_stdout(self, lua_file, capsys):
        path = lua_file("x = 1")
        assert main(["compile", str(path), "--stdout"]) == 0
        assert "_ENV['x'] = 1" in capsys.readouterr().out

    def test_check_counts_checks(self, lua_file, capsys):
        path = lua_file("function f(a :: number) :: string return 'x' end")
        assert main(["check", str(path)]) == 0
        assert "2 type checks" in capsys.readouterr().out

    def test_check_reports_directive(self, lua_file, capsys):
        path = lua_file("--!typecheck off\nlocal n :: number = 1")
        assert main(["check", str(path)]) == 0
        assert "type checks disabled" in capsys.readouterr().out

    def test_check_malformed_type(self, lua_file, capsys):
        path = lua_file("local f :: function(number) end = nil")
        assert main(["check", str(path)]) == 1
        assert "malformed function type" in capsys.readouterr().err

    def test_config_file_is_used(self, lua_file, tmp_path, capsys):
        (tmp_path / CONFIG_FILENAME).write_text("[compiler]\ntypecheck = false\n", encoding="utf-8")
        path = lua_file("local n :: number = 1")
        assert main(["check", str(path)]) == 0
        assert "type checks disabled" in capsys.readouterr().out

    def test_tokens(self, lua_file, capsys):
        path = lua_file("local x")
        assert main(["tokens", str(path)]) == 0
        assert "LOCAL" in capsys.readouterr().out

    def test_ast_instrumented(self, lua_file, capsys):
        path = lua_file("local n :: number = 1")
        assert main(["ast", str(path), "--instrumented"]) == 0
        out = capsys.readouterr().out
        assert "BlockExpression" in out

    def test_init(self, tmp_path, capsys):
        assert main(["init", str(tmp_path)]) == 0
        assert (tmp_path / CONFIG_FILENAME).read_text(encoding="utf-8") == DEFAULT_CONFIG_TEXT
        assert main(["init", str(tmp_path)]) == 1
        assert main(["init", str(tmp_path), "--force"]) == 0
