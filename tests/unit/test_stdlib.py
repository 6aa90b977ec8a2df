"""
Unit tests for the Lua base library.
"""

import io

import pytest

from luatypes.runtime import stdlib
from luatypes.runtime.lua import LuaError, MultiReturn, Table, index, invoke
from luatypes.runtime.stdlib import create_environment


@pytest.fixture
def env_with_output():
    output = io.StringIO()
    return create_environment(output), output


class TestEnvironment:
    """The global table."""

    def test_g_refers_to_itself(self, env_with_output):
        env, _ = env_with_output
        assert env["_G"] is env

    def test_libraries_present(self, env_with_output):
        env, _ = env_with_output
        for name in ("table", "string", "math"):
            assert isinstance(env[name], Table)

    def test_print_joins_with_tabs(self, env_with_output):
        env, output = env_with_output
        env["print"](1, "a", None, True, 2.0)
        assert output.getvalue() == "1\ta\tnil\ttrue\t2.0\n"

    def test_environments_are_independent(self):
        first_env = create_environment()
        second_env = create_environment()
        first_env["x"] = 1
        assert second_env["x"] is None

    def test_string_methods(self, env_with_output):
        assert invoke("abc", "upper") == "ABC"
        assert index("abc", "len") is stdlib.string_len


class TestBasicFunctions:
    """type, tostring, select, assert, error and friends."""

    def test_type_requires_argument(self):
        with pytest.raises(LuaError, match="value expected"):
            stdlib.lua_type_of()

    def test_tostring_uses_metatable(self):
        table = Table()
        table.metatable = Table({"__tostring": lambda t: "custom"})
        assert stdlib.lua_tostring(table) == "custom"

    def test_select_count(self):
        assert stdlib.lua_select("#", 1, 2, 3) == 3

    def test_select_from_index(self):
        assert stdlib.lua_select(2, "a", "b", "c") == MultiReturn(("b", "c"))
        assert stdlib.lua_select(-1, "a", "b", "c") == MultiReturn(("c",))

    def test_select_out_of_range(self):
        with pytest.raises(LuaError, match="index out of range"):
            stdlib.lua_select(0, "a")

    def test_assert_returns_all_arguments(self):
        assert stdlib.lua_assert(1, "msg") == MultiReturn((1, "msg"))

    def test_assert_failure(self):
        with pytest.raises(LuaError, match="assertion failed!"):
            stdlib.lua_assert(False)
        with pytest.raises(LuaError, match="custom"):
            stdlib.lua_assert(None, "custom")

    def test_error_keeps_value(self):
        with pytest.raises(LuaError) as exc_info:
            stdlib.lua_error(Table())
        assert isinstance(exc_info.value.value, Table)

    def test_pairs_skips_removed_entries(self):
        table = Table({"a": 1, "b": 2})
        step, state, control = stdlib.lua_pairs(table)
        key, _ = step(state, control)
        table["b" if key == "a" else "a"] = None
        assert step(state, key) is None

    def test_ipairs_stops_at_first_nil(self):
        table = Table.from_list([10, 20])
        step, state, control = stdlib.lua_ipairs(table)
        assert step(state, control) == MultiReturn((1, 10))
        assert step(state, 2) is None

    def test_unpack(self):
        assert stdlib.lua_unpack(Table.from_list([1, 2, 3]), 2) == MultiReturn((2, 3))

    def test_xpcall_calls_handler(self):
        def fail():
            raise LuaError("boom")

        result = stdlib.lua_xpcall(fail, lambda message: "handled: " + message)
        assert result == MultiReturn((False, "handled: boom"))

    def test_setmetatable_rejects_non_table(self):
        with pytest.raises(LuaError, match="nil or table expected"):
            stdlib.lua_setmetatable(Table(), 5)

    def test_rawget_ignores_metatable(self):
        table = Table()
        table.metatable = Table({"__index": Table({"x": 1})})
        assert stdlib.lua_rawget(table, "x") is None


class TestTableLibrary:
    """table.insert, remove, concat and sort."""

    def test_insert_append_and_position(self):
        table = Table.from_list(["a", "c"])
        stdlib.table_insert(table, "d")
        stdlib.table_insert(table, 2, "b")
        assert table.sequence() == ["a", "b", "c", "d"]

    def test_insert_out_of_bounds(self):
        with pytest.raises(LuaError, match="position out of bounds"):
            stdlib.table_insert(Table(), 5, "x")

    def test_remove(self):
        table = Table.from_list(["a", "b", "c"])
        assert stdlib.table_remove(table, 1) == "a"
        assert stdlib.table_remove(table) == "c"
        assert table.sequence() == ["b"]

    def test_remove_from_empty(self):
        assert stdlib.table_remove(Table()) is None

    def test_concat(self):
        assert stdlib.table_concat(Table.from_list(["a", 1, "b"]), ", ") == "a, 1, b"

    def test_concat_invalid_value(self):
        with pytest.raises(LuaError, match="invalid value"):
            stdlib.table_concat(Table.from_list(["a", Table()]))

    def test_sort_default_and_comparator(self):
        table = Table.from_list([3, 1, 2])
        stdlib.table_sort(table)
        assert table.sequence() == [1, 2, 3]
        stdlib.table_sort(table, lambda a, b: a > b)
        assert table.sequence() == [3, 2, 1]

    def test_sort_mixed_types_errors(self):
        with pytest.raises(LuaError, match="attempt to compare"):
            stdlib.table_sort(Table.from_list([1, "a"]))


class TestStringLibrary:
    """string functions."""

    @pytest.mark.parametrize(
        "args,expected",
        [
            (("hello", 2, 4), "ell"),
            (("hello", -3), "llo"),
            (("hello", 0), "hello"),
            (("hello", 4, 2), ""),
        ],
    )
    def test_sub(self, args, expected):
        assert stdlib.string_sub(*args) == expected

    def test_format(self):
        assert stdlib.string_format("%d-%s-%.2f", 5, "x", 1.5) == "5-x-1.50"
        assert stdlib.string_format("%5.1f|%%", 2) == "  2.0|%"
        assert stdlib.string_format("%q", 'a"b') == '"a\\"b"'

    def test_format_missing_argument(self):
        with pytest.raises(LuaError, match="no value"):
            stdlib.string_format("%d")

    def test_format_integer_representation(self):
        with pytest.raises(LuaError, match="no integer representation"):
            stdlib.string_format("%d", 1.5)

    def test_rep_with_separator(self):
        assert stdlib.string_rep("ab", 3, ",") == "ab,ab,ab"
        assert stdlib.string_rep("ab", 0) == ""

    def test_byte_and_char(self):
        assert stdlib.string_byte("ABC", 1, 2) == MultiReturn((65, 66))
        assert stdlib.string_char(72, 105) == "Hi"

    def test_numbers_are_coerced(self):
        assert stdlib.string_len(123) == 3

    def test_non_string_rejected(self):
        with pytest.raises(LuaError, match="string expected, got nil"):
            stdlib.string_upper(None)


class TestMathLibrary:
    """math functions."""

    def test_floor_and_ceil_return_integers(self):
        assert stdlib.math_floor(2.7) == 2
        assert isinstance(stdlib.math_floor(2.7), int)
        assert stdlib.math_ceil(2.1) == 3

    def test_max_min(self):
        assert stdlib.math_max(1, 5, 3) == 5
        assert stdlib.math_min(4, 2.5) == 2.5

    def test_max_requires_argument(self):
        with pytest.raises(LuaError, match="got no value"):
            stdlib.math_max()

    def test_tointeger_and_type(self):
        assert stdlib.math_tointeger(3.0) == 3
        assert stdlib.math_tointeger(3.5) is None
        assert stdlib.math_type(1) == "integer"
        assert stdlib.math_type(1.0) == "float"
        assert stdlib.math_type("1") is None

    def test_fmod(self):
        assert stdlib.math_fmod(7, 3) == 1
        assert stdlib.math_fmod(-7, 3) == -1

    def test_sqrt_of_negative_is_nan(self):
        result = stdlib.math_sqrt(-1)
        assert result != result
