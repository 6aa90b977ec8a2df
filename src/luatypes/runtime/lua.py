"""
Lua Runtime Support.

Values and helper functions used by the Python code that the compiler
generates. Lua values map onto Python values as follows:

    nil         None
    boolean     bool
    number      int or float
    string      str
    table       Table
    function    any Python callable

Generated modules import this module as ``_rt``.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterator
from typing import Any, Optional

# Marks positional items in make_table() field lists
POSITIONAL = object()

# Returned by the function running one loop iteration to leave the loop
BREAK = object()


# =============================================================================
# Errors
# =============================================================================


class LuaError(Exception):
    """
    An error raised by Lua code, either through ``error()`` or by a failing
    operation such as indexing nil.

    Attributes:
        value: The Lua error value (usually a string message)
    """

    def __init__(self, value: Any = None) -> None:
        self.value = value
        super().__init__(value if isinstance(value, str) else tostring(value))


# =============================================================================
# Values
# =============================================================================


class _BooleanKey:
    """Table key wrapper keeping ``true`` apart from ``1``."""

    __slots__ = ("value",)

    def __init__(self, value: bool) -> None:
        self.value = value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _BooleanKey) and other.value is self.value

    def __hash__(self) -> int:
        return hash((_BooleanKey, self.value))


_TRUE_KEY = _BooleanKey(True)
_FALSE_KEY = _BooleanKey(False)


def _normalize_key(key: Any) -> Any:
    if key is True:
        return _TRUE_KEY
    if key is False:
        return _FALSE_KEY
    if isinstance(key, float) and key.is_integer():
        return int(key)
    return key


def _denormalize_key(key: Any) -> Any:
    if isinstance(key, _BooleanKey):
        return key.value
    return key


class Table:
    """
    A Lua table.

    Missing keys read as nil and assigning nil removes a key. Float keys
    with an integral value are the same key as the matching integer. The
    optional metatable supports the ``__index`` field.
    """

    __slots__ = ("_entries", "metatable")

    def __init__(self, entries: Optional[dict[Any, Any]] = None) -> None:
        self._entries: dict[Any, Any] = {}
        self.metatable: Optional[Table] = None
        if entries:
            for key, value in entries.items():
                self[key] = value

    @classmethod
    def from_list(cls, values: list[Any]) -> "Table":
        """Build a sequence table ``{values[0], values[1], ...}``."""
        table = cls()
        for index, value in enumerate(values, start=1):
            table[index] = value
        return table

    def __getitem__(self, key: Any) -> Any:
        return self._entries.get(_normalize_key(key))

    def __setitem__(self, key: Any, value: Any) -> None:
        if key is None:
            raise LuaError("table index is nil")
        if isinstance(key, float) and math.isnan(key):
            raise LuaError("table index is NaN")
        key = _normalize_key(key)
        if value is None:
            self._entries.pop(key, None)
        else:
            self._entries[key] = value

    def __contains__(self, key: Any) -> bool:
        return _normalize_key(key) in self._entries

    def __iter__(self) -> Iterator[Any]:
        return (_denormalize_key(key) for key in list(self._entries))

    def __bool__(self) -> bool:
        # Every table is truthy, even an empty one
        return True

    def __repr__(self) -> str:
        return f"table: 0x{id(self):08x}"

    def keys(self) -> list[Any]:
        return list(self)

    def items(self) -> list[tuple[Any, Any]]:
        return [(_denormalize_key(k), v) for k, v in self._entries.items()]

    def border(self) -> int:
        """Return a border of the table: ``n`` with ``t[n] ~= nil`` and ``t[n+1] == nil``."""
        n = 0
        while (n + 1) in self._entries:
            n += 1
        return n

    def sequence(self) -> list[Any]:
        """Return ``t[1]`` to ``t[#t]`` as a list."""
        return [self._entries[i] for i in range(1, self.border() + 1)]

    def next(self, key: Any = None) -> Optional[tuple[Any, Any]]:
        """Return the entry after ``key`` in traversal order, or None at the end."""
        keys = list(self._entries)
        if key is None:
            index = 0
        else:
            try:
                index = keys.index(_normalize_key(key)) + 1
            except ValueError:
                raise LuaError("invalid key to 'next'") from None
        if index >= len(keys):
            return None
        found = keys[index]
        return _denormalize_key(found), self._entries[found]


class MultiReturn(tuple):
    """
    The values of a call that returned zero or several values.

    A plain Python value stands for exactly one value.
    """

    def __repr__(self) -> str:
        return f"MultiReturn({', '.join(tostring(v) for v in self)})"


# =============================================================================
# Multiple values
# =============================================================================


def first(value: Any) -> Any:
    """Truncate a call result to its first value."""
    if isinstance(value, MultiReturn):
        return value[0] if value else None
    return value


def expand(value: Any) -> tuple[Any, ...]:
    """Turn a call result into the tuple of all its values."""
    if isinstance(value, MultiReturn):
        return tuple(value)
    return (value,)


def pack(*values: Any) -> Any:
    """Return ``values`` as a call result."""
    if len(values) == 1:
        return values[0]
    return MultiReturn(values)


def adjust(count: int, *values: Any) -> tuple[Any, ...]:
    """Pad with nil or truncate ``values`` to exactly ``count`` values."""
    if len(values) >= count:
        return values[:count]
    return values + (None,) * (count - len(values))


# =============================================================================
# Conversions
# =============================================================================


def truthy(value: Any) -> bool:
    """Lua truthiness: only nil and false are false."""
    return value is not None and value is not False


def lua_type(value: Any) -> str:
    """Return the Lua type name of a value."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Table):
        return "table"
    if callable(value):
        return "function"
    return "userdata"


def format_number(value: float | int) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if math.isnan(value):
        return "nan"
    text = "%.14g" % value
    if all(c in "-0123456789" for c in text):
        text += ".0"
    return text


def tostring(value: Any) -> str:
    """Convert a value to a string the way Lua's ``tostring`` does."""
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Table):
        return repr(value)
    return f"{lua_type(value)}: 0x{id(value):08x}"


def tonumber(value: Any, base: Optional[int] = None) -> Optional[float | int]:
    """Convert a value to a number, or return None."""
    if base is not None:
        if not isinstance(value, str):
            return None
        try:
            return int(value.strip().lower(), int(base))
        except ValueError:
            return None

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        if text.lower().startswith(("0x", "-0x")):
            return int(text, 16)
        if any(c in text for c in ".eEnN"):
            number = float(text)
            # "nan" and "inf" are not Lua numerals
            return None if math.isnan(number) or math.isinf(number) else number
        return int(text)
    except ValueError:
        return None


def _arith_operand(value: Any, op: str) -> float | int:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        number = tonumber(value)
        if number is not None:
            return number
    raise LuaError(f"attempt to perform arithmetic on a {lua_type(value)} value ({op})")


# =============================================================================
# Operators
# =============================================================================


def add(a: Any, b: Any) -> Any:
    return _arith_operand(a, "add") + _arith_operand(b, "add")


def sub(a: Any, b: Any) -> Any:
    return _arith_operand(a, "sub") - _arith_operand(b, "sub")


def mul(a: Any, b: Any) -> Any:
    return _arith_operand(a, "mul") * _arith_operand(b, "mul")


def div(a: Any, b: Any) -> float:
    x = float(_arith_operand(a, "div"))
    y = float(_arith_operand(b, "div"))
    if y == 0.0:
        if x == 0.0 or math.isnan(x):
            return math.nan
        return math.copysign(math.inf, x) * math.copysign(1.0, y)
    return x / y


def idiv(a: Any, b: Any) -> Any:
    x = _arith_operand(a, "idiv")
    y = _arith_operand(b, "idiv")
    if isinstance(x, int) and isinstance(y, int):
        if y == 0:
            raise LuaError("attempt to perform 'n//0'")
        return x // y
    quotient = div(x, y)
    return float(math.floor(quotient)) if math.isfinite(quotient) else quotient


def mod(a: Any, b: Any) -> Any:
    x = _arith_operand(a, "mod")
    y = _arith_operand(b, "mod")
    if isinstance(x, int) and isinstance(y, int):
        if y == 0:
            raise LuaError("attempt to perform 'n%%0'")
        return x % y
    if y == 0:
        return math.nan
    return float(x) % float(y)


def pow(a: Any, b: Any) -> float:
    x = float(_arith_operand(a, "pow"))
    y = float(_arith_operand(b, "pow"))
    try:
        return math.pow(x, y)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


def neg(a: Any) -> Any:
    return -_arith_operand(a, "unm")


def concat(a: Any, b: Any) -> str:
    parts = []
    for value in (a, b):
        if isinstance(value, str):
            parts.append(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            parts.append(format_number(value))
        else:
            raise LuaError(f"attempt to concatenate a {lua_type(value)} value")
    return parts[0] + parts[1]


def length(value: Any) -> int:
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, Table):
        return value.border()
    raise LuaError(f"attempt to get length of a {lua_type(value)} value")


def eq(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def ne(a: Any, b: Any) -> bool:
    return not eq(a, b)


def _comparable(a: Any, b: Any) -> bool:
    numbers = (int, float)
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    return (isinstance(a, numbers) and isinstance(b, numbers)) or (
        isinstance(a, str) and isinstance(b, str)
    )


def _compare_error(a: Any, b: Any) -> LuaError:
    left, right = lua_type(a), lua_type(b)
    if left == right:
        return LuaError(f"attempt to compare two {left} values")
    return LuaError(f"attempt to compare {left} with {right}")


def lt(a: Any, b: Any) -> bool:
    if not _comparable(a, b):
        raise _compare_error(a, b)
    return a < b


def le(a: Any, b: Any) -> bool:
    if not _comparable(a, b):
        raise _compare_error(a, b)
    return a <= b


def gt(a: Any, b: Any) -> bool:
    return lt(b, a)


def ge(a: Any, b: Any) -> bool:
    return le(b, a)


# =============================================================================
# Indexing and calls
# =============================================================================

# Table used for indexing string values (``s:upper()``); set by the stdlib
string_metatable_index: Optional[Table] = None


def index(obj: Any, key: Any) -> Any:
    """Read ``obj[key]``, following ``__index`` metatable fields."""
    while True:
        if isinstance(obj, Table):
            value = obj[key]
            if value is not None or obj.metatable is None:
                return value
            handler = obj.metatable["__index"]
            if handler is None:
                return None
            if isinstance(handler, Table):
                obj = handler
                continue
            return first(handler(obj, key))
        if isinstance(obj, str) and string_metatable_index is not None:
            return string_metatable_index[key]
        raise LuaError(
            f"attempt to index a {lua_type(obj)} value (field '{tostring(key)}')"
        )


def setindex(obj: Any, key: Any, value: Any) -> None:
    """Write ``obj[key] = value``."""
    if not isinstance(obj, Table):
        raise LuaError(
            f"attempt to index a {lua_type(obj)} value (field '{tostring(key)}')"
        )
    obj[key] = value


def call(function: Any, *args: Any) -> Any:
    """Call a Lua value, raising a Lua error if it is not callable."""
    if not callable(function) or isinstance(function, Table):
        raise LuaError(f"attempt to call a {lua_type(function)} value")
    return function(*args)


def invoke(obj: Any, method: str, *args: Any) -> Any:
    """Call ``obj:method(args)``: look up the method and pass ``obj`` first."""
    function = index(obj, method)
    if function is None:
        raise LuaError(f"attempt to call a nil value (method '{method}')")
    return call(function, obj, *args)


def make_table(fields: tuple[tuple[Any, Any], ...], tail: tuple[Any, ...] = ()) -> Table:
    """
    Build a table from a constructor.

    ``fields`` holds ``(key, value)`` pairs in source order, with
    ``POSITIONAL`` as the key of positional items. ``tail`` holds the
    expanded values of a trailing multi-value expression.
    """
    table = Table()
    position = 1
    for key, value in fields:
        if key is POSITIONAL:
            table[position] = value
            position += 1
        else:
            table[key] = value
    for value in tail:
        table[position] = value
        position += 1
    return table


# =============================================================================
# Loops
# =============================================================================


def lua_range(start: Any, stop: Any, step: Any = 1) -> Iterator[float | int]:
    """Values of a numeric for loop."""
    for name, value in (("initial", start), ("limit", stop), ("step", step)):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise LuaError(f"'for' {name} value must be a number")
    if step == 0:
        raise LuaError("'for' step is zero")

    # Integer loops stay integral, anything else counts in floats
    value = start if isinstance(start, int) and isinstance(step, int) else float(start)
    while (step > 0 and value <= stop) or (step < 0 and value >= stop):
        yield value
        value += step


def iterate(count: int, function: Any, state: Any = None, control: Any = None,
            *_ignored: Any) -> Iterator[tuple[Any, ...]]:
    """
    Drive a generic for loop.

    Calls ``function(state, control)`` until its first result is nil and
    yields each result adjusted to ``count`` values.
    """
    while True:
        values = expand(call(function, state, control))
        if not values or values[0] is None:
            return
        control = values[0]
        yield adjust(count, *values)


def protected(function: Callable[..., Any], *args: Any) -> MultiReturn:
    """Run ``function`` and report failure as values, like ``pcall``."""
    try:
        result = call(function, *args)
    except LuaError as e:
        return MultiReturn((False, e.value))
    except (ArithmeticError, RecursionError, TypeError, ValueError) as e:
        return MultiReturn((False, str(e)))
    return MultiReturn((True, *expand(result)))
