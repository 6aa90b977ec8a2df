"""
luatypes Code Generator.

Transforms an instrumented chunk into a Python module defining

    def chunk(_ENV, *_varargs): ...

The generated code relies on ``luatypes.runtime.lua`` (imported as ``_rt``)
for Lua semantics:
- Globals are entries of the ``_ENV`` table
- Every Lua local gets a Python name that is unique in the chunk, and
  assignments to locals of an enclosing function emit ``nonlocal``
- Function literals become nested ``def`` statements emitted right before
  the statement that uses them
- Operators, indexing, truthiness and generic ``for`` go through helpers
- Calls that may produce several values are expanded with ``_rt.expand``
  at the end of expression lists and truncated with ``_rt.first`` elsewhere
- Check blocks become ``((tmp := value), check(tmp), tmp)[-1]`` tuples
- Loop bodies that create closures run as a nested ``def`` per iteration
"""

from __future__ import annotations

import keyword
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from luatypes.compiler.ast_nodes import (
    Assignment,
    BaseASTVisitor,
    BinaryExpression,
    BinaryOperator,
    Block,
    BlockExpression,
    BooleanLiteral,
    BreakStatement,
    CallExpression,
    Chunk,
    DoStatement,
    Expression,
    ExpressionStatement,
    FunctionLiteral,
    FunctionSignature,
    GenericFor,
    Identifier,
    IfStatement,
    IndexExpression,
    LocalDeclaration,
    LocalFunction,
    MethodCall,
    NilLiteral,
    NumberLiteral,
    NumericFor,
    ParenExpression,
    RepeatStatement,
    ReturnStatement,
    Statement,
    StringLiteral,
    TableConstructor,
    UnaryExpression,
    UnaryOperator,
    VarargExpression,
    WhileStatement,
)
from luatypes.utils.errors import CodeGenError

RUNTIME_MODULE = "luatypes.runtime.lua"

# Names used by generated code itself
RESERVED_NAMES: frozenset[str] = frozenset({"_ENV", "_rt", "_varargs", "_rest", "chunk", "float"})

COMPARISON_OPERATORS: frozenset[BinaryOperator] = frozenset({
    BinaryOperator.EQ,
    BinaryOperator.NE,
    BinaryOperator.LT,
    BinaryOperator.LE,
    BinaryOperator.GT,
    BinaryOperator.GE,
})


@dataclass(slots=True)
class _Binding:
    """A Lua local and the Python name it was given."""

    py_name: str
    depth: int


@dataclass(slots=True)
class _FunctionContext:
    """State of the Python function currently being generated."""

    depth: int
    is_vararg: bool
    nonlocals: set[str] = field(default_factory=set)
    loop_depth: int = 0
    # Set for the function holding one iteration of a loop body
    loop_body: bool = False


class _FunctionFinder(BaseASTVisitor):
    """Detects function literals anywhere below a node."""

    def __init__(self) -> None:
        self.found = False

    def visit_function_literal(self, node: FunctionLiteral) -> None:
        self.found = True


def _is_multi_valued(node: Expression) -> bool:
    return isinstance(node, (CallExpression, MethodCall, VarargExpression))


def _creates_closures(*nodes: Optional[Any]) -> bool:
    finder = _FunctionFinder()
    for node in nodes:
        if node is not None:
            finder.visit(node)
    return finder.found


class CodeGenerator(BaseASTVisitor):
    """
    Generates Python code from an instrumented luatypes AST.

    Statement visitors emit lines; expression visitors return the code of
    a single-valued Python expression.

    Usage:
        generator = CodeGenerator()
        python_code = generator.generate(chunk)
    """

    def __init__(self, indent_size: int = 4, emit_header: bool = True) -> None:
        """
        Initialize the code generator.

        Args:
            indent_size: Number of spaces per indentation level
            emit_header: Whether to start the module with a comment header
        """
        self.indent_size = indent_size
        self.emit_header = emit_header
        self._indent_level = 0
        self._output: list[str] = []
        self._used_names: set[str] = set()
        self._scopes: list[dict[str, _Binding]] = []
        self._functions: list[_FunctionContext] = []

    def generate(self, chunk: Chunk, source_name: str = "<string>") -> str:
        """
        Generate Python code from the AST.

        Args:
            chunk: The root Chunk node, after instrumentation
            source_name: Name of the source file, for the header comment

        Returns:
            Generated Python source code
        """
        self._indent_level = 0
        self._output = []
        self._used_names = set()
        self._scopes = []
        self._functions = []

        if self.emit_header:
            self._emit(f"# Generated by luatypes from {source_name}. Do not edit.")
        self._emit(f"import {RUNTIME_MODULE} as _rt")
        self._emit("")
        self._emit("")

        self._functions.append(_FunctionContext(depth=0, is_vararg=True))
        self._emit("def chunk(_ENV, *_varargs):")
        self._indent()
        self._emit_scoped_block(chunk.body)
        self._dedent()
        self._functions.pop()

        return "\n".join(self._output) + "\n"

    # -------------------------------------------------------------------------
    # Output helpers
    # -------------------------------------------------------------------------

    def _emit(self, text: str) -> None:
        """Emit a line of code with current indentation."""
        if text:
            indent = " " * (self._indent_level * self.indent_size)
            self._output.append(f"{indent}{text}")
        else:
            self._output.append("")

    def _indent(self) -> None:
        """Increase indentation level."""
        self._indent_level += 1

    def _dedent(self) -> None:
        """Decrease indentation level."""
        self._indent_level = max(0, self._indent_level - 1)

    def _capture(self, generate: Callable[[], Any]) -> tuple[list[str], Any]:
        """Run ``generate`` and return the lines it emitted with its result."""
        saved = self._output
        self._output = []
        try:
            result = generate()
            return self._output, result
        finally:
            self._output = saved

    # -------------------------------------------------------------------------
    # Names and scopes
    # -------------------------------------------------------------------------

    @property
    def _function(self) -> _FunctionContext:
        return self._functions[-1]

    def _unique(self, base: str) -> str:
        if keyword.iskeyword(base) or base in RESERVED_NAMES:
            base = f"{base}_"
        name = base
        counter = 0
        while name in self._used_names:
            counter += 1
            name = f"{base}_{counter}"
        self._used_names.add(name)
        return name

    def _declare(self, name: str) -> str:
        binding = _Binding(self._unique(name), self._function.depth)
        self._scopes[-1][name] = binding
        return binding.py_name

    def _lookup(self, name: str) -> Optional[_Binding]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    def _emit_statements(self, statements: tuple[Statement, ...]) -> None:
        start = len(self._output)
        for stmt in statements:
            self.visit(stmt)
        if len(self._output) == start:
            self._emit("pass")

    def _emit_scoped_block(self, block: Block) -> None:
        """Emit a Lua block as an indented Python suite with its own scope."""
        self._scopes.append({})
        try:
            self._emit_statements(block.statements)
        finally:
            self._scopes.pop()

    # -------------------------------------------------------------------------
    # Expression lists
    # -------------------------------------------------------------------------

    def _raw(self, node: Expression) -> str:
        """Code for an expression, keeping every value of a call."""
        if isinstance(node, CallExpression):
            callee = self.visit(node.callee)
            args = "".join(f", {a}" for a in self._explist(node.arguments))
            return f"_rt.call({callee}{args})"
        if isinstance(node, MethodCall):
            obj = self.visit(node.object)
            args = "".join(f", {a}" for a in self._explist(node.arguments))
            return f"_rt.invoke({obj}, {node.method!r}{args})"
        if isinstance(node, VarargExpression):
            return "_rt.MultiReturn(_varargs)"
        return self.visit(node)

    def _explist(self, nodes: tuple[Expression, ...]) -> list[str]:
        """Code for each item of an expression list, expanding the last one."""
        items = [self.visit(node) for node in nodes[:-1]]
        if nodes:
            last = nodes[-1]
            if isinstance(last, VarargExpression):
                items.append("*_varargs")
            elif _is_multi_valued(last):
                items.append(f"*_rt.expand({self._raw(last)})")
            else:
                items.append(self.visit(last))
        return items

    def _condition(self, node: Expression) -> str:
        """Code for an expression used as a Python condition."""
        if isinstance(node, BinaryExpression) and node.operator in COMPARISON_OPERATORS:
            return self.visit(node)
        if isinstance(node, BooleanLiteral):
            return "True" if node.value else "False"
        if isinstance(node, UnaryExpression) and node.operator == UnaryOperator.NOT:
            return self.visit(node)
        return f"_rt.truthy({self.visit(node)})"

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def visit_nil_literal(self, node: NilLiteral) -> str:
        return "None"

    def visit_boolean_literal(self, node: BooleanLiteral) -> str:
        return "True" if node.value else "False"

    def visit_number_literal(self, node: NumberLiteral) -> str:
        if isinstance(node.value, float) and math.isinf(node.value):
            return "float('inf')"
        return repr(node.value)

    def visit_string_literal(self, node: StringLiteral) -> str:
        return repr(node.value)

    def visit_vararg_expression(self, node: VarargExpression) -> str:
        return "(_varargs[0] if _varargs else None)"

    def visit_identifier(self, node: Identifier) -> str:
        binding = self._lookup(node.name)
        if binding is not None:
            return binding.py_name
        return f"_ENV[{node.name!r}]"

    def visit_function_literal(self, node: FunctionLiteral) -> str:
        base = "_fn"
        if node.name:
            base = "_fn_" + re.sub(r"\W", "_", node.name)
        def_name = self._unique(base)
        self._emit_function(node, def_name)
        return def_name

    def visit_function_signature(self, node: FunctionSignature) -> str:
        raise CodeGenError("Function type outside of an annotation", node.location)

    def visit_table_constructor(self, node: TableConstructor) -> str:
        fields: list[str] = []
        tail: Optional[str] = None

        for index, table_field in enumerate(node.fields):
            is_last = index == len(node.fields) - 1
            if table_field.key is not None:
                key = self.visit(table_field.key)
                fields.append(f"({key}, {self.visit(table_field.value)})")
            elif is_last and isinstance(table_field.value, VarargExpression):
                tail = "_varargs"
            elif is_last and _is_multi_valued(table_field.value):
                tail = f"_rt.expand({self._raw(table_field.value)})"
            else:
                fields.append(f"(_rt.POSITIONAL, {self.visit(table_field.value)})")

        items = "(" + ", ".join(fields) + ("," if len(fields) == 1 else "") + ")"
        if tail is not None:
            return f"_rt.make_table({items}, {tail})"
        return f"_rt.make_table({items})"

    def visit_binary_expression(self, node: BinaryExpression) -> str:
        left = self.visit(node.left)

        if node.operator in (BinaryOperator.AND, BinaryOperator.OR):
            temp = self._unique("_v")
            right = self.visit(node.right)
            if node.operator == BinaryOperator.AND:
                return f"({right} if _rt.truthy(({temp} := {left})) else {temp})"
            return f"({temp} if _rt.truthy(({temp} := {left})) else {right})"

        right = self.visit(node.right)
        return f"_rt.{node.operator.value}({left}, {right})"

    def visit_unary_expression(self, node: UnaryExpression) -> str:
        operand = self.visit(node.operand)
        if node.operator == UnaryOperator.NOT:
            return f"(not _rt.truthy({operand}))"
        if node.operator == UnaryOperator.LEN:
            return f"_rt.length({operand})"
        return f"_rt.neg({operand})"

    def visit_call_expression(self, node: CallExpression) -> str:
        return f"_rt.first({self._raw(node)})"

    def visit_method_call(self, node: MethodCall) -> str:
        return f"_rt.first({self._raw(node)})"

    def visit_index_expression(self, node: IndexExpression) -> str:
        return f"_rt.index({self.visit(node.object)}, {self.visit(node.index)})"

    def visit_paren_expression(self, node: ParenExpression) -> str:
        return self.visit(node.expression)

    def visit_block_expression(self, node: BlockExpression) -> str:
        self._scopes.append({})
        try:
            parts: list[str] = []
            for stmt in node.statements:
                parts.append(self._block_expression_part(stmt))
            parts.append(self.visit(node.value))
        finally:
            self._scopes.pop()
        return "(" + ", ".join(parts) + ")[-1]"

    def _block_expression_part(self, stmt: Statement) -> str:
        if isinstance(stmt, ExpressionStatement):
            return self._raw(stmt.expression)
        if isinstance(stmt, LocalDeclaration) and len(stmt.names) == 1 and len(stmt.values) <= 1:
            value = self.visit(stmt.values[0]) if stmt.values else "None"
            return f"({self._declare(stmt.names[0])} := {value})"
        raise CodeGenError(
            f"Cannot use {type(stmt).__name__} inside an expression", stmt.location
        )

    # -------------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------------

    def _emit_function(self, node: FunctionLiteral, def_name: str) -> None:
        """Emit ``def def_name(...)`` for a function literal."""
        context = _FunctionContext(depth=len(self._functions), is_vararg=node.is_vararg)
        self._functions.append(context)
        self._scopes.append({})
        try:
            params = [f"{self._declare(param)}=None" for param in node.params]
            params.append("*_varargs" if node.is_vararg else "*_rest")
            self._indent()
            body, _ = self._capture(lambda: self._emit_scoped_block(node.body))
            self._dedent()
        finally:
            self._scopes.pop()
            self._functions.pop()

        self._emit_def(def_name, params, context, body)

    def _emit_def(self, def_name: str, params: list[str], context: _FunctionContext,
                  body: list[str]) -> None:
        self._emit(f"def {def_name}({', '.join(params)}):")
        self._indent()
        if context.nonlocals:
            self._emit(f"nonlocal {', '.join(sorted(context.nonlocals))}")
        self._output.extend(body)
        self._dedent()

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _assign_code(self, target: Expression, value: str) -> str:
        if isinstance(target, Identifier):
            binding = self._lookup(target.name)
            if binding is None:
                return f"_ENV[{target.name!r}] = {value}"
            if binding.depth < self._function.depth:
                self._function.nonlocals.add(binding.py_name)
            return f"{binding.py_name} = {value}"
        if isinstance(target, IndexExpression):
            obj = self.visit(target.object)
            key = self.visit(target.index)
            return f"_rt.setindex({obj}, {key}, {value})"
        raise CodeGenError("Cannot assign to this expression", target.location)

    def _adjusted(self, count: int, values: tuple[Expression, ...]) -> str:
        """Code producing exactly ``count`` values from an expression list."""
        if count > 1 and len(values) == count and not _is_multi_valued(values[-1]):
            return ", ".join(self.visit(v) for v in values)
        items = "".join(f", {item}" for item in self._explist(values))
        return f"_rt.adjust({count}{items})"

    def visit_local_declaration(self, node: LocalDeclaration) -> None:
        if not node.values:
            names = [self._declare(name) for name in node.names]
            self._emit(" = ".join(names) + " = None")
            return

        if len(node.names) == 1 and len(node.values) == 1:
            value = self.visit(node.values[0])
            self._emit(f"{self._declare(node.names[0])} = {value}")
            return

        value = self._adjusted(len(node.names), node.values)
        names = [self._declare(name) for name in node.names]
        targets = ", ".join(names) + ("," if len(names) == 1 else "")
        self._emit(f"{targets} = {value}")

    def visit_local_function(self, node: LocalFunction) -> None:
        def_name = self._declare(node.name)
        self._emit_function(node.function, def_name)

    def visit_assignment(self, node: Assignment) -> None:
        if len(node.targets) == 1 and len(node.values) == 1:
            value = self.visit(node.values[0])
            self._emit(self._assign_code(node.targets[0], value))
            return

        temps = [self._unique("_v") for _ in node.targets]
        value = self._adjusted(len(temps), node.values)
        self._emit(", ".join(temps) + ("," if len(temps) == 1 else "") + f" = {value}")
        for target, temp in zip(node.targets, temps):
            self._emit(self._assign_code(target, temp))

    def visit_expression_statement(self, node: ExpressionStatement) -> None:
        self._emit(self._raw(node.expression))

    def visit_do_statement(self, node: DoStatement) -> None:
        self._scopes.append({})
        try:
            for stmt in node.body.statements:
                self.visit(stmt)
        finally:
            self._scopes.pop()

    def _emit_loop_body(self, block: Block, variables: tuple[tuple[str, str], ...] = (),
                        until: Optional[Expression] = None) -> None:
        """
        Emit the suite of a loop.

        ``variables`` pairs each Lua name bound by the loop header with its
        Python name. ``until`` is the condition of a repeat loop, which sees
        the body's locals.

        A body that creates closures becomes a function called once per
        iteration, so every closure captures the locals of its own
        iteration. The function returns ``_rt.BREAK`` to leave the loop and
        a 1-tuple holding the result of a ``return``.
        """
        self._indent()
        if not _creates_closures(block, until):
            self._function.loop_depth += 1
            try:
                self._emit_loop_statements(block, until)
            finally:
                self._function.loop_depth -= 1
            self._dedent()
            return

        outer = self._function
        context = _FunctionContext(
            depth=len(self._functions), is_vararg=outer.is_vararg, loop_body=True
        )
        params = [py_name for _, py_name in variables]
        def_name = self._unique("_loop")
        flow = self._unique("_flow")

        self._functions.append(context)
        self._scopes.append({})
        try:
            for name, py_name in variables:
                self._scopes[-1][name] = _Binding(py_name, context.depth)
            self._indent()
            body, _ = self._capture(lambda: self._emit_loop_statements(block, until))
            self._dedent()
        finally:
            self._scopes.pop()
            self._functions.pop()

        self._emit_def(def_name, params, context, body)
        self._emit(f"{flow} = {def_name}({', '.join(params)})")
        self._emit(f"if {flow} is _rt.BREAK:")
        self._indent()
        self._emit("break")
        self._dedent()
        self._emit(f"if {flow} is not None:")
        self._indent()
        self._emit(f"return {flow}" if outer.loop_body else f"return {flow}[0]")
        self._dedent()
        self._dedent()

    def _emit_loop_statements(self, block: Block, until: Optional[Expression]) -> None:
        self._scopes.append({})
        try:
            self._emit_statements(block.statements)
            if until is not None:
                self._emit(f"if {self._condition(until)}:")
                self._indent()
                self._emit_break()
                self._dedent()
        finally:
            self._scopes.pop()

    def _emit_break(self) -> None:
        if self._function.loop_depth:
            self._emit("break")
        else:
            self._emit("return _rt.BREAK")

    def _emit_return(self, value: str) -> None:
        if self._function.loop_body:
            self._emit(f"return ({value},)")
        else:
            self._emit(f"return {value}")

    def visit_while_statement(self, node: WhileStatement) -> None:
        condition = self._condition(node.condition)
        self._emit(f"while {condition}:")
        self._emit_loop_body(node.body)

    def visit_repeat_statement(self, node: RepeatStatement) -> None:
        self._emit("while True:")
        self._emit_loop_body(node.body, until=node.condition)

    def visit_if_statement(self, node: IfStatement) -> None:
        condition = self._condition(node.condition)
        self._emit(f"if {condition}:")
        self._indent()
        self._emit_scoped_block(node.then_block)
        self._dedent()
        self._emit_else_chain(list(node.elseif_clauses), node.else_block)

    def _emit_else_chain(self, clauses: list[tuple[Expression, Block]],
                         else_block: Optional[Block]) -> None:
        if not clauses:
            if else_block is not None and else_block.statements:
                self._emit("else:")
                self._indent()
                self._emit_scoped_block(else_block)
                self._dedent()
            return

        condition_node, block = clauses[0]
        self._indent()
        hoisted, condition = self._capture(lambda: self._condition(condition_node))
        self._dedent()

        if not hoisted:
            self._emit(f"elif {condition}:")
            self._indent()
            self._emit_scoped_block(block)
            self._dedent()
            self._emit_else_chain(clauses[1:], else_block)
            return

        # Functions defined by the condition must run only when it is reached
        self._emit("else:")
        self._indent()
        self._output.extend(hoisted)
        self._emit(f"if {condition}:")
        self._indent()
        self._emit_scoped_block(block)
        self._dedent()
        self._emit_else_chain(clauses[1:], else_block)
        self._dedent()

    def visit_numeric_for(self, node: NumericFor) -> None:
        args = [self.visit(node.start), self.visit(node.stop)]
        if node.step is not None:
            args.append(self.visit(node.step))
        self._scopes.append({})
        try:
            variable = self._declare(node.variable)
            self._emit(f"for {variable} in _rt.lua_range({', '.join(args)}):")
            self._emit_loop_body(node.body, ((node.variable, variable),))
        finally:
            self._scopes.pop()

    def visit_generic_for(self, node: GenericFor) -> None:
        iterators = ", ".join(self._explist(node.iterators))
        self._scopes.append({})
        try:
            names = [self._declare(name) for name in node.names]
            targets = "(" + ", ".join(names) + ("," if len(names) == 1 else "") + ")"
            self._emit(f"for {targets} in _rt.iterate({len(names)}, {iterators}):")
            self._emit_loop_body(node.body, tuple(zip(node.names, names)))
        finally:
            self._scopes.pop()

    def visit_return_statement(self, node: ReturnStatement) -> None:
        if not node.values:
            self._emit_return("_rt.pack()")
        elif len(node.values) == 1:
            self._emit_return(self._raw(node.values[0]))
        else:
            self._emit_return(f"_rt.pack({', '.join(self._explist(node.values))})")

    def visit_break_statement(self, node: BreakStatement) -> None:
        if self._function.loop_depth == 0 and not self._function.loop_body:
            raise CodeGenError("'break' outside a loop", node.location)
        self._emit_break()


def generate(chunk: Chunk, source_name: str = "<string>", emit_header: bool = True) -> str:
    """
    Convenience function to generate Python code for a chunk.

    Args:
        chunk: Instrumented chunk
        source_name: Name of the source for the header comment
        emit_header: Whether to emit the header comment

    Returns:
        Python source code
    """
    return CodeGenerator(emit_header=emit_header).generate(chunk, source_name)
