"""
Run-time type-check library.

Provides the registry table that compiled annotations refer to (the
``types`` global). Every entry is a predicate: a callable taking one value
that returns nothing when the value conforms and raises ``TypeMismatch``
otherwise. Entries whose names start with ``__`` are type constructors
that build predicates from other predicates:

    types.__string("circle")          the exact string "circle"
    types.__table({x = types.number}) tables whose x field is a number
    types.__table({types.string})     arrays of strings
    types.__table({types.string, types.number})   a {string, number} tuple
    types.__function({...}, ret)      functions
    types.__or(a, b), types.__and(a, b), types.__not(a)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from luatypes.runtime.lua import LuaError, Table, call, lua_type, tostring


class TypeMismatch(LuaError):
    """Raised by a predicate when a value does not have the expected type."""

    def __init__(self, expected: str, value: Any) -> None:
        self.expected = expected
        self.actual = value
        super().__init__(f"type mismatch: expected {expected}, got {_describe(value)}")


def _describe(value: Any) -> str:
    if isinstance(value, str):
        return f'string "{value}"'
    if value is None or isinstance(value, Table) or callable(value):
        return lua_type(value)
    return f"{lua_type(value)} {tostring(value)}"


class Predicate:
    """
    A named run-time type test.

    Attributes:
        description: Human-readable type, used in mismatch messages
        test: Function returning True when a value conforms
    """

    __slots__ = ("description", "test")

    def __init__(self, description: str, test: Callable[[Any], bool]) -> None:
        self.description = description
        self.test = test

    def __call__(self, value: Any = None, *_ignored: Any) -> None:
        if not self.test(value):
            raise TypeMismatch(self.description, value)

    def __repr__(self) -> str:
        return f"Predicate({self.description})"


def conforms(predicate: Any, value: Any) -> bool:
    """Return True if ``predicate`` accepts ``value``."""
    if isinstance(predicate, Predicate):
        return predicate.test(value)
    # Predicates written in Lua signal failure by raising
    try:
        call(predicate, value)
    except LuaError:
        return False
    return True


def describe(predicate: Any) -> str:
    if isinstance(predicate, Predicate):
        return predicate.description
    return "<custom type>"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_function(value: Any) -> bool:
    return callable(value) and not isinstance(value, Table)


# =============================================================================
# Type constructors
# =============================================================================


def string_type(expected: Any) -> Predicate:
    """The type containing exactly one string."""
    return Predicate(f'"{expected}"', lambda v: isinstance(v, str) and v == expected)


def table_type(shape: Any) -> Predicate:
    """
    A table type built from a shape table.

    Keyed entries of the shape constrain the fields of the same name. A
    single positional entry makes an array type whose items all have that
    type. Several positional entries make a tuple type that constrains each
    position.
    """
    if not isinstance(shape, Table):
        raise LuaError(f"table type expects a table shape, got {lua_type(shape)}")

    positional = shape.sequence()
    keyed = [(k, v) for k, v in shape.items() if not (isinstance(k, int) and 1 <= k <= len(positional))]

    def test(value: Any) -> bool:
        if not isinstance(value, Table):
            return False
        for key, field_type in keyed:
            if not conforms(field_type, value[key]):
                return False
        if len(positional) == 1:
            return all(conforms(positional[0], item) for item in value.sequence())
        return all(conforms(item_type, value[i]) for i, item_type in enumerate(positional, start=1))

    parts = [f"{tostring(k)} = {describe(t)}" for k, t in keyed]
    if len(positional) == 1:
        parts.insert(0, f"{describe(positional[0])}...")
    else:
        parts[:0] = [describe(t) for t in positional]
    return Predicate("{" + ", ".join(parts) + "}", test)


def function_type(params: Any = None, result: Any = None) -> Predicate:
    """
    A function type.

    Only callability is checked; parameter and result types describe the
    function but are not enforced when it is called.
    """
    params = params.sequence() if isinstance(params, Table) else []
    signature = ", ".join(describe(p) for p in params)
    returns = "" if result is None else f": {describe(result)}"
    return Predicate(f"function({signature}){returns}", _is_function)


def union_type(left: Any, right: Any) -> Predicate:
    return Predicate(
        f"{describe(left)} or {describe(right)}",
        lambda v: conforms(left, v) or conforms(right, v),
    )


def intersection_type(left: Any, right: Any) -> Predicate:
    return Predicate(
        f"{describe(left)} and {describe(right)}",
        lambda v: conforms(left, v) and conforms(right, v),
    )


def complement_type(inner: Any) -> Predicate:
    return Predicate(f"not {describe(inner)}", lambda v: not conforms(inner, v))


# =============================================================================
# Registry
# =============================================================================


def create_registry() -> Table:
    """Create the table installed as the ``types`` global."""
    registry = Table()
    registry["any"] = Predicate("any", lambda v: True)
    registry["nil"] = Predicate("nil", lambda v: v is None)
    registry["number"] = Predicate("number", _is_number)
    registry["integer"] = Predicate(
        "integer", lambda v: isinstance(v, int) and not isinstance(v, bool)
    )
    registry["string"] = Predicate("string", lambda v: isinstance(v, str))
    registry["boolean"] = Predicate("boolean", lambda v: isinstance(v, bool))
    registry["table"] = Predicate("table", lambda v: isinstance(v, Table))
    registry["function"] = Predicate("function", _is_function)

    registry["__string"] = string_type
    registry["__table"] = table_type
    registry["__function"] = function_type
    registry["__or"] = union_type
    registry["__and"] = intersection_type
    registry["__not"] = complement_type
    return registry
