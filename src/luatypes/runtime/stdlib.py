"""
Lua Base Library.

Builds the global environment that compiled chunks run against: the basic
functions (``print``, ``type``, ``pairs``, ``pcall``...) and the ``table``,
``string`` and ``math`` libraries.
"""

from __future__ import annotations

import functools
import math as _math
import re
import sys
from typing import Any, Optional, TextIO

from luatypes.runtime import lua
from luatypes.runtime.lua import (
    LuaError,
    MultiReturn,
    Table,
    call,
    eq,
    expand,
    first,
    index,
    lt,
    lua_type,
    pack,
    protected,
    tonumber,
    tostring,
    truthy,
)


def _check_table(value: Any, position: int, function: str) -> Table:
    if not isinstance(value, Table):
        raise LuaError(
            f"bad argument #{position} to '{function}' (table expected, got {lua_type(value)})"
        )
    return value


def _check_integer(value: Any, position: int, function: str) -> int:
    number = tonumber(value)
    if isinstance(number, float) and number.is_integer():
        number = int(number)
    if not isinstance(number, int):
        raise LuaError(
            f"bad argument #{position} to '{function}' (number has no integer representation)"
        )
    return number


def _check_string(value: Any, position: int, function: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return tostring(value)
    raise LuaError(
        f"bad argument #{position} to '{function}' (string expected, got {lua_type(value)})"
    )


# =============================================================================
# Basic functions
# =============================================================================


def lua_tostring(value: Any = None) -> str:
    if isinstance(value, Table) and value.metatable is not None:
        handler = value.metatable["__tostring"]
        if handler is not None:
            return first(call(handler, value))
    return tostring(value)


def lua_type_of(*args: Any) -> str:
    if not args:
        raise LuaError("bad argument #1 to 'type' (value expected)")
    return lua_type(args[0])


def lua_error(value: Any = None, level: int = 1) -> None:
    raise LuaError(value)


def lua_assert(*args: Any) -> Any:
    if not args:
        raise LuaError("bad argument #1 to 'assert' (value expected)")
    if not truthy(args[0]):
        raise LuaError(args[1] if len(args) > 1 else "assertion failed!")
    return pack(*args)


def lua_select(n: Any, *args: Any) -> Any:
    if n == "#":
        return len(args)
    n = _check_integer(n, 1, "select")
    if n < 0:
        if -n > len(args):
            raise LuaError("bad argument #1 to 'select' (index out of range)")
        return MultiReturn(args[n:])
    if n == 0:
        raise LuaError("bad argument #1 to 'select' (index out of range)")
    return MultiReturn(args[n - 1:])


def lua_next(table: Any, key: Any = None) -> Any:
    entry = _check_table(table, 1, "next").next(key)
    if entry is None:
        return None
    return MultiReturn(entry)


def lua_pairs(table: Any) -> MultiReturn:
    table = _check_table(table, 1, "pairs")
    keys = iter(table.keys())

    def step(_state: Any = None, _control: Any = None) -> Any:
        for key in keys:
            value = table[key]
            if value is not None:
                return MultiReturn((key, value))
        return None

    return MultiReturn((step, table, None))


def _ipairs_step(table: Any, i: int) -> Any:
    value = index(table, i + 1)
    if value is None:
        return None
    return MultiReturn((i + 1, value))


def lua_ipairs(table: Any) -> MultiReturn:
    if table is None:
        raise LuaError("bad argument #1 to 'ipairs' (table expected, got nil)")
    return MultiReturn((_ipairs_step, table, 0))


def lua_unpack(table: Any, i: Any = 1, j: Any = None) -> MultiReturn:
    table = _check_table(table, 1, "unpack")
    start = _check_integer(i, 2, "unpack")
    stop = table.border() if j is None else _check_integer(j, 3, "unpack")
    return MultiReturn(tuple(table[k] for k in range(start, stop + 1)))


def lua_xpcall(function: Any, handler: Any, *args: Any) -> MultiReturn:
    result = protected(function, *args)
    if result[0]:
        return result
    return MultiReturn((False, *expand(call(handler, result[1]))))


def lua_setmetatable(table: Any, metatable: Any) -> Table:
    table = _check_table(table, 1, "setmetatable")
    if metatable is not None and not isinstance(metatable, Table):
        raise LuaError("bad argument #2 to 'setmetatable' (nil or table expected)")
    table.metatable = metatable
    return table


def lua_getmetatable(value: Any) -> Optional[Table]:
    if isinstance(value, Table):
        return value.metatable
    return None


def lua_rawget(table: Any, key: Any) -> Any:
    return _check_table(table, 1, "rawget")[key]


def lua_rawset(table: Any, key: Any, value: Any) -> Table:
    _check_table(table, 1, "rawset")[key] = value
    return table


# =============================================================================
# table library
# =============================================================================


def table_insert(table: Any, *args: Any) -> None:
    table = _check_table(table, 1, "insert")
    size = table.border()
    if len(args) == 1:
        table[size + 1] = args[0]
        return
    if len(args) != 2:
        raise LuaError("wrong number of arguments to 'insert'")
    position = _check_integer(args[0], 2, "insert")
    if not 1 <= position <= size + 1:
        raise LuaError("bad argument #2 to 'insert' (position out of bounds)")
    for k in range(size, position - 1, -1):
        table[k + 1] = table[k]
    table[position] = args[1]


def table_remove(table: Any, position: Any = None) -> Any:
    table = _check_table(table, 1, "remove")
    size = table.border()
    position = size if position is None else _check_integer(position, 2, "remove")
    if size == 0 and position in (0, size):
        return table[position]
    if not 1 <= position <= size + 1:
        raise LuaError("bad argument #2 to 'remove' (position out of bounds)")
    removed = table[position]
    while position < size:
        table[position] = table[position + 1]
        position += 1
    table[position] = None
    return removed


def table_concat(table: Any, separator: Any = "", i: Any = 1, j: Any = None) -> str:
    table = _check_table(table, 1, "concat")
    separator = _check_string(separator, 2, "concat")
    stop = table.border() if j is None else _check_integer(j, 4, "concat")
    parts = []
    for k in range(_check_integer(i, 3, "concat"), stop + 1):
        value = table[k]
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise LuaError(
                f"invalid value (at index {k}) in table for 'concat'"
            )
        parts.append(tostring(value))
    return separator.join(parts)


def table_sort(table: Any, comparator: Any = None) -> None:
    table = _check_table(table, 1, "sort")
    values = table.sequence()

    if comparator is None:
        def less(a: Any, b: Any) -> bool:
            return lt(a, b)
    else:
        def less(a: Any, b: Any) -> bool:
            return truthy(first(call(comparator, a, b)))

    def compare(a: Any, b: Any) -> int:
        if less(a, b):
            return -1
        if less(b, a):
            return 1
        return 0

    values.sort(key=functools.cmp_to_key(compare))
    for k, value in enumerate(values, start=1):
        table[k] = value


# =============================================================================
# string library
# =============================================================================

_FORMAT_SPEC = re.compile(r"%([-+ #0]*\d*(?:\.\d+)?)([diouxXeEfgGqsca%])")


def string_format(fmt: Any, *args: Any) -> str:
    fmt = _check_string(fmt, 1, "format")
    arguments = list(args)
    position = 1

    def replace(match: re.Match) -> str:
        nonlocal position
        flags, conversion = match.groups()
        if conversion == "%":
            return "%"
        position += 1
        if not arguments:
            raise LuaError(f"bad argument #{position} to 'format' (no value)")
        value = arguments.pop(0)

        if conversion in "diouxXc":
            number = _check_integer(value, position, "format")
            if conversion == "c":
                return chr(number)
            if conversion == "i":
                conversion = "d"
            return f"%{flags}{conversion}" % number
        if conversion in "eEfgGa":
            number = tonumber(value)
            if number is None:
                raise LuaError(
                    f"bad argument #{position} to 'format' (number expected, got {lua_type(value)})"
                )
            if conversion == "a":
                return float(number).hex()
            return f"%{flags}{conversion}" % number
        if conversion == "q":
            return _quote(value)
        return f"%{flags}s" % lua_tostring(value)

    return _FORMAT_SPEC.sub(replace, fmt)


def _quote(value: Any) -> str:
    if not isinstance(value, str):
        return tostring(value)
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\0", "\\0")
    )
    return f'"{escaped}"'


def _string_range(size: int, i: int, j: int) -> tuple[int, int]:
    if i < 0:
        i = max(size + i + 1, 1)
    elif i == 0:
        i = 1
    if j < 0:
        j = size + j + 1
    elif j > size:
        j = size
    return i, j


def string_sub(s: Any, i: Any = 1, j: Any = -1) -> str:
    s = _check_string(s, 1, "sub")
    start, stop = _string_range(
        len(s), _check_integer(i, 2, "sub"), _check_integer(j, 3, "sub")
    )
    if start > stop:
        return ""
    return s[start - 1:stop]


def string_len(s: Any) -> int:
    return len(_check_string(s, 1, "len"))


def string_upper(s: Any) -> str:
    return _check_string(s, 1, "upper").upper()


def string_lower(s: Any) -> str:
    return _check_string(s, 1, "lower").lower()


def string_reverse(s: Any) -> str:
    return _check_string(s, 1, "reverse")[::-1]


def string_rep(s: Any, n: Any, separator: Any = "") -> str:
    s = _check_string(s, 1, "rep")
    count = _check_integer(n, 2, "rep")
    if count <= 0:
        return ""
    return _check_string(separator, 3, "rep").join([s] * count)


def string_byte(s: Any, i: Any = 1, j: Any = None) -> MultiReturn:
    s = _check_string(s, 1, "byte")
    start = _check_integer(i, 2, "byte")
    stop = start if j is None else _check_integer(j, 3, "byte")
    start, stop = _string_range(len(s), start, stop)
    return MultiReturn(tuple(ord(c) for c in s[start - 1:stop]))


def string_char(*codes: Any) -> str:
    return "".join(chr(_check_integer(c, n, "char")) for n, c in enumerate(codes, start=1))


# =============================================================================
# math library
# =============================================================================


def _math_number(value: Any, position: int, function: str) -> float | int:
    number = tonumber(value)
    if number is None:
        raise LuaError(
            f"bad argument #{position} to '{function}' (number expected, got {lua_type(value)})"
        )
    return number


def math_floor(x: Any) -> float | int:
    number = _math_number(x, 1, "floor")
    return _math.floor(number) if _math.isfinite(number) else number


def math_ceil(x: Any) -> float | int:
    number = _math_number(x, 1, "ceil")
    return _math.ceil(number) if _math.isfinite(number) else number


def math_abs(x: Any) -> float | int:
    return abs(_math_number(x, 1, "abs"))


def math_sqrt(x: Any) -> float:
    number = float(_math_number(x, 1, "sqrt"))
    return _math.sqrt(number) if number >= 0 else _math.nan


def math_max(*args: Any) -> float | int:
    if not args:
        raise LuaError("bad argument #1 to 'max' (number expected, got no value)")
    numbers = [_math_number(a, n, "max") for n, a in enumerate(args, start=1)]
    return max(numbers)


def math_min(*args: Any) -> float | int:
    if not args:
        raise LuaError("bad argument #1 to 'min' (number expected, got no value)")
    numbers = [_math_number(a, n, "min") for n, a in enumerate(args, start=1)]
    return min(numbers)


def math_tointeger(x: Any) -> Optional[int]:
    if isinstance(x, int) and not isinstance(x, bool):
        return x
    if isinstance(x, float) and x.is_integer():
        return int(x)
    return None


def math_type(x: Any) -> Optional[str]:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return None
    return "integer" if isinstance(x, int) else "float"


def math_fmod(a: Any, b: Any) -> float | int:
    x = _math_number(a, 1, "fmod")
    y = _math_number(b, 2, "fmod")
    if isinstance(x, int) and isinstance(y, int):
        if y == 0:
            raise LuaError("bad argument #2 to 'fmod' (zero)")
        return int(_math.fmod(x, y))
    return _math.fmod(x, y) if y != 0 else _math.nan


# =============================================================================
# Environment
# =============================================================================


def _library(functions: dict[str, Any]) -> Table:
    return Table(functions)


def create_environment(output: Optional[TextIO] = None) -> Table:
    """
    Create a fresh global environment.

    Args:
        output: Stream used by ``print``; defaults to the current
            ``sys.stdout`` at call time

    Returns:
        The global table, with ``_G`` pointing at itself.
    """
    env = Table()

    def lua_print(*args: Any) -> None:
        stream = output if output is not None else sys.stdout
        stream.write("\t".join(lua_tostring(a) for a in args) + "\n")

    env["print"] = lua_print
    env["type"] = lua_type_of
    env["tostring"] = lua_tostring
    env["tonumber"] = tonumber
    env["pairs"] = lua_pairs
    env["ipairs"] = lua_ipairs
    env["next"] = lua_next
    env["select"] = lua_select
    env["error"] = lua_error
    env["assert"] = lua_assert
    env["pcall"] = protected
    env["xpcall"] = lua_xpcall
    env["unpack"] = lua_unpack
    env["setmetatable"] = lua_setmetatable
    env["getmetatable"] = lua_getmetatable
    env["rawget"] = lua_rawget
    env["rawset"] = lua_rawset
    env["rawequal"] = eq

    env["table"] = _library({
        "insert": table_insert,
        "remove": table_remove,
        "concat": table_concat,
        "unpack": lua_unpack,
        "sort": table_sort,
    })

    string_lib = _library({
        "format": string_format,
        "len": string_len,
        "sub": string_sub,
        "upper": string_upper,
        "lower": string_lower,
        "rep": string_rep,
        "reverse": string_reverse,
        "byte": string_byte,
        "char": string_char,
    })
    env["string"] = string_lib
    lua.string_metatable_index = string_lib

    env["math"] = _library({
        "floor": math_floor,
        "ceil": math_ceil,
        "abs": math_abs,
        "sqrt": math_sqrt,
        "max": math_max,
        "min": math_min,
        "fmod": math_fmod,
        "tointeger": math_tointeger,
        "type": math_type,
        "huge": _math.inf,
        "pi": _math.pi,
        "maxinteger": 2**63 - 1,
        "mininteger": -(2**63),
    })

    env["_G"] = env
    return env
