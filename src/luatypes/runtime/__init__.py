"""
luatypes Runtime Package.

Support code for the Python modules the compiler generates:
- lua: Lua values, operators and the helpers generated code calls
- stdlib: The base global environment (print, pairs, table, string, math)
- types: The type registry and the predicates annotations compile to
- state: LuaState, which compiles and runs units in a shared environment
"""

from luatypes.runtime.lua import LuaError, MultiReturn, Table
from luatypes.runtime.state import CompilationFailed, LuaState
from luatypes.runtime.stdlib import create_environment
from luatypes.runtime.types import Predicate, TypeMismatch, create_registry

__all__ = [
    "LuaError",
    "MultiReturn",
    "Table",
    "LuaState",
    "CompilationFailed",
    "create_environment",
    "Predicate",
    "TypeMismatch",
    "create_registry",
]
