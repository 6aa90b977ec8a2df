"""
Unit tests for LuaState.
"""

import pytest

from luatypes.compiler.config import CompilerConfig
from luatypes.runtime import CompilationFailed, LuaState, TypeMismatch
from luatypes.runtime.lua import LuaError, Table


class TestLuaState:
    """Compiling and running units in a shared environment."""

    def test_execute_returns_values(self, run_source):
        assert run_source("return 1, 'two', nil").values == (1, "two", None)

    def test_falling_off_the_end_returns_nothing(self, run_source):
        assert run_source("local x = 1").values == ()

    def test_arguments_become_varargs(self, run_source):
        assert run_source("local a, b = ... return b, a", 1, 2).values == (2, 1)

    def test_print_output_is_captured(self, run_source):
        assert run_source("print('hello', 42)").lines == ["hello\t42"]

    def test_registry_installed(self, lua_state):
        state, _ = lua_state()
        assert isinstance(state["types"], Table)

    def test_custom_registry_name(self):
        state = LuaState(CompilerConfig(registry_name="T"))
        assert isinstance(state["T"], Table)
        assert state.execute("local n :: number = 1 return n") == (1,)

    def test_globals_persist_between_units(self, lua_state):
        state, _ = lua_state()
        state.execute("counter = 10")
        assert state.execute("return counter + 1") == (11,)
        assert state["counter"] == 10

    def test_setting_globals_from_python(self, lua_state):
        state, _ = lua_state()
        state["limit"] = 3
        assert state.execute("return limit * 2") == (6,)

    def test_compilation_failure(self, lua_state):
        state, _ = lua_state()
        with pytest.raises(CompilationFailed) as exc_info:
            state.execute("local = 1")
        assert not exc_info.value.result.success

    def test_malformed_type_fails_compilation(self, lua_state):
        state, _ = lua_state()
        with pytest.raises(CompilationFailed, match="malformed function type"):
            state.execute("local f :: function() end = nil")

    def test_runtime_error_propagates(self, lua_state):
        state, _ = lua_state()
        with pytest.raises(LuaError, match="attempt to call a nil value"):
            state.execute("undefined_function()")

    def test_type_mismatch_propagates(self, lua_state):
        state, _ = lua_state()
        with pytest.raises(TypeMismatch):
            state.execute("local n :: number = 'x'")

    def test_disabled_state_skips_checks(self, run_source):
        assert run_source("local n :: number = 'x' return n", typecheck=False).values == ("x",)

    def test_load_returns_reusable_function(self, lua_state):
        state, _ = lua_state()
        double = state.load("local x :: number = ... return x * 2")
        assert double(4) == 8
        assert double(5) == 10
        with pytest.raises(TypeMismatch):
            double("a")
