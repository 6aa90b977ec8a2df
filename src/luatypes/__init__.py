"""
luatypes - Run-time type checks for Lua.

luatypes compiles a typed dialect of Lua, where locals, parameters and
return values may carry ``::`` annotations, into Python. Annotated bindings
are guarded by checks against a registry of type predicates, so values of
the wrong type fail loudly where they are bound instead of far away.
"""

from luatypes.compiler import CompilationPipeline, compile_file, compile_source
from luatypes.compiler.codegen import CodeGenerator
from luatypes.compiler.config import CompilerConfig
from luatypes.compiler.instrumenter import TypeInstrumenter
from luatypes.compiler.lexer import Lexer
from luatypes.compiler.parser import Parser
from luatypes.runtime import LuaState, TypeMismatch

__version__ = "0.1.0"
__all__ = [
    "compile_source",
    "compile_file",
    "CompilationPipeline",
    "CompilerConfig",
    "Lexer",
    "Parser",
    "TypeInstrumenter",
    "CodeGenerator",
    "LuaState",
    "TypeMismatch",
]
