"""
Type instrumentation pass.

Rewrites an annotated chunk into one that checks annotated bindings at run
time and carries no annotation metadata:

- Annotated parameters are checked on function entry, in declaration order.
- Initializers of annotated locals are checked before the local is bound.
- Assignments to a name with a visible annotation are checked.
- ``return`` inside a function with an annotated return type checks the
  first returned value.

Constraints follow lexical scoping. A name declared without an annotation
hides an annotated name of the same spelling from an enclosing scope.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from luatypes.compiler.ast_nodes import (
    Assignment,
    ASTVisitor,
    BinaryExpression,
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
    TableField,
    UnaryExpression,
    VarargExpression,
    WhileStatement,
)
from luatypes.compiler.check_builder import CheckContext, NameGenerator, build_check
from luatypes.compiler.type_compiler import DEFAULT_REGISTRY, compile_type

logger = logging.getLogger(__name__)


class CompilerPass(ABC):
    """
    Abstract base class for tree-to-tree passes.

    Each pass returns a new chunk and leaves its input untouched.
    """

    @abstractmethod
    def transform(self, chunk: Chunk) -> Chunk:
        """
        Apply the pass to a chunk.

        Args:
            chunk: The input chunk

        Returns:
            A new chunk with the pass applied
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the pass."""
        pass


class TreeRewriter(ASTVisitor):
    """
    Visitor that rebuilds every node it visits.

    The default implementations copy the tree structurally. Subclasses
    override the visit_* methods for the nodes they rewrite.
    """

    def _statements(self, statements: tuple[Statement, ...]) -> tuple[Statement, ...]:
        return tuple(self.visit(stmt) for stmt in statements)

    def _expressions(self, expressions: tuple[Expression, ...]) -> tuple[Expression, ...]:
        return tuple(self.visit(expr) for expr in expressions)

    def _optional(self, expr: Optional[Expression]) -> Optional[Expression]:
        return None if expr is None else self.visit(expr)

    def visit_chunk(self, node: Chunk) -> Chunk:
        return Chunk(body=self.visit(node.body), typecheck=node.typecheck, location=node.location)

    def visit_block(self, node: Block) -> Block:
        return Block(self._statements(node.statements), location=node.location)

    # Leaves
    def visit_nil_literal(self, node: NilLiteral) -> Expression:
        return node

    def visit_boolean_literal(self, node: BooleanLiteral) -> Expression:
        return node

    def visit_number_literal(self, node: NumberLiteral) -> Expression:
        return node

    def visit_string_literal(self, node: StringLiteral) -> Expression:
        return node

    def visit_vararg_expression(self, node: VarargExpression) -> Expression:
        return node

    def visit_identifier(self, node: Identifier) -> Expression:
        return node

    def visit_function_signature(self, node: FunctionSignature) -> Expression:
        return node

    # Expressions
    def visit_function_literal(self, node: FunctionLiteral) -> Expression:
        return FunctionLiteral(
            params=node.params,
            is_vararg=node.is_vararg,
            body=self.visit(node.body),
            param_types=node.param_types,
            return_type=node.return_type,
            name=node.name,
            location=node.location,
        )

    def visit_table_constructor(self, node: TableConstructor) -> Expression:
        fields = tuple(
            TableField(
                value=self.visit(f.value),
                key=self._optional(f.key),
                location=f.location,
            )
            for f in node.fields
        )
        return TableConstructor(fields, location=node.location)

    def visit_binary_expression(self, node: BinaryExpression) -> Expression:
        return BinaryExpression(
            self.visit(node.left), node.operator, self.visit(node.right), location=node.location
        )

    def visit_unary_expression(self, node: UnaryExpression) -> Expression:
        return UnaryExpression(node.operator, self.visit(node.operand), location=node.location)

    def visit_call_expression(self, node: CallExpression) -> Expression:
        return CallExpression(
            self.visit(node.callee), self._expressions(node.arguments), location=node.location
        )

    def visit_method_call(self, node: MethodCall) -> Expression:
        return MethodCall(
            self.visit(node.object),
            node.method,
            self._expressions(node.arguments),
            location=node.location,
        )

    def visit_index_expression(self, node: IndexExpression) -> Expression:
        return IndexExpression(
            self.visit(node.object), self.visit(node.index), location=node.location
        )

    def visit_paren_expression(self, node: ParenExpression) -> Expression:
        return ParenExpression(self.visit(node.expression), location=node.location)

    def visit_block_expression(self, node: BlockExpression) -> Expression:
        return BlockExpression(
            self._statements(node.statements), self.visit(node.value), location=node.location
        )

    # Statements
    def visit_local_declaration(self, node: LocalDeclaration) -> Statement:
        return LocalDeclaration(
            names=node.names,
            values=self._expressions(node.values),
            annotations=node.annotations,
            location=node.location,
        )

    def visit_local_function(self, node: LocalFunction) -> Statement:
        return LocalFunction(node.name, self.visit(node.function), location=node.location)

    def visit_assignment(self, node: Assignment) -> Statement:
        return Assignment(
            self._expressions(node.targets), self._expressions(node.values), location=node.location
        )

    def visit_expression_statement(self, node: ExpressionStatement) -> Statement:
        return ExpressionStatement(self.visit(node.expression), location=node.location)

    def visit_do_statement(self, node: DoStatement) -> Statement:
        return DoStatement(self.visit(node.body), location=node.location)

    def visit_while_statement(self, node: WhileStatement) -> Statement:
        return WhileStatement(self.visit(node.condition), self.visit(node.body), location=node.location)

    def visit_repeat_statement(self, node: RepeatStatement) -> Statement:
        return RepeatStatement(self.visit(node.body), self.visit(node.condition), location=node.location)

    def visit_if_statement(self, node: IfStatement) -> Statement:
        return IfStatement(
            condition=self.visit(node.condition),
            then_block=self.visit(node.then_block),
            elseif_clauses=tuple(
                (self.visit(condition), self.visit(block))
                for condition, block in node.elseif_clauses
            ),
            else_block=None if node.else_block is None else self.visit(node.else_block),
            location=node.location,
        )

    def visit_numeric_for(self, node: NumericFor) -> Statement:
        return NumericFor(
            variable=node.variable,
            start=self.visit(node.start),
            stop=self.visit(node.stop),
            step=self._optional(node.step),
            body=self.visit(node.body),
            location=node.location,
        )

    def visit_generic_for(self, node: GenericFor) -> Statement:
        return GenericFor(
            names=node.names,
            iterators=self._expressions(node.iterators),
            body=self.visit(node.body),
            location=node.location,
        )

    def visit_return_statement(self, node: ReturnStatement) -> Statement:
        return ReturnStatement(self._expressions(node.values), location=node.location)

    def visit_break_statement(self, node: BreakStatement) -> Statement:
        return node


class AnnotationStripper(TreeRewriter, CompilerPass):
    """
    Removes annotation metadata without inserting any checks.

    The result is the tree the same source would produce with every
    ``:: type`` annotation deleted.
    """

    @property
    def name(self) -> str:
        return "Annotation Stripper"

    def transform(self, chunk: Chunk) -> Chunk:
        return self.visit(chunk)

    def visit_local_declaration(self, node: LocalDeclaration) -> Statement:
        return LocalDeclaration(
            names=node.names, values=self._expressions(node.values), location=node.location
        )

    def visit_function_literal(self, node: FunctionLiteral) -> Expression:
        return FunctionLiteral(
            params=node.params,
            is_vararg=node.is_vararg,
            body=self.visit(node.body),
            name=node.name,
            location=node.location,
        )


class ScopeStack:
    """
    Lexical scopes mapping names to compiled predicates.

    A scope maps a name to its predicate, or to None when the name was
    declared without an annotation. Lookups search from the innermost
    scope outwards and stop at the first scope that declares the name.
    """

    def __init__(self) -> None:
        self._scopes: list[dict[str, Optional[Expression]]] = []

    def __len__(self) -> int:
        return len(self._scopes)

    def push(self, bindings: Optional[dict[str, Optional[Expression]]] = None) -> None:
        self._scopes.append(dict(bindings or {}))

    def pop(self) -> dict[str, Optional[Expression]]:
        return self._scopes.pop()

    def declare(self, name: str, predicate: Optional[Expression] = None) -> None:
        self._scopes[-1][name] = predicate

    def lookup(self, name: str) -> Optional[Expression]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return None

    @contextmanager
    def scope(self, bindings: Optional[dict[str, Optional[Expression]]] = None) -> Iterator[None]:
        depth = len(self._scopes)
        self.push(bindings)
        try:
            yield
        finally:
            self.pop()
            assert len(self._scopes) == depth, "unbalanced scope stack"


class TypeInstrumenter(TreeRewriter, CompilerPass):
    """
    Inserts run-time type checks for annotated bindings.

    One instance handles one chunk at a time. When ``enabled`` is False the
    pass only strips annotation metadata.

    Usage:
        instrumenter = TypeInstrumenter()
        checked = instrumenter.transform(chunk)
    """

    def __init__(
        self,
        enabled: bool = True,
        registry: str = DEFAULT_REGISTRY,
        temp_prefix: str = "_tmp",
    ) -> None:
        self.enabled = enabled
        self.registry = registry
        self.temp_prefix = temp_prefix
        self.scopes = ScopeStack()
        self.checks_inserted = 0
        self._return_types: list[Optional[Expression]] = []
        self._names = NameGenerator(prefix=temp_prefix)

    @property
    def name(self) -> str:
        return "Type Instrumenter"

    def transform(self, chunk: Chunk) -> Chunk:
        if not self.enabled:
            logger.debug("Type checking disabled, stripping annotations only")
            return AnnotationStripper().transform(chunk)

        self.checks_inserted = 0
        self._names = NameGenerator.for_chunk(chunk, self.temp_prefix)

        try:
            result = self.visit(chunk)
            assert len(self.scopes) == 0 and not self._return_types
        finally:
            # A failed pass must not leave stale scopes for the next chunk
            self.scopes = ScopeStack()
            self._return_types = []

        logger.debug(f"Inserted {self.checks_inserted} type checks")
        return result

    def _compile(self, type_expr: Expression) -> Expression:
        return compile_type(type_expr, registry=self.registry)

    def _check(self, predicate: Expression, term: Expression, context: CheckContext) -> Any:
        self.checks_inserted += 1
        return build_check(predicate, term, context, self._names)

    # Scoped constructs
    def visit_block(self, node: Block) -> Block:
        with self.scopes.scope():
            return Block(self._statements(node.statements), location=node.location)

    def visit_block_expression(self, node: BlockExpression) -> Expression:
        with self.scopes.scope():
            statements = self._statements(node.statements)
            value = self.visit(node.value)
        return BlockExpression(statements, value, location=node.location)

    def visit_numeric_for(self, node: NumericFor) -> Statement:
        start = self.visit(node.start)
        stop = self.visit(node.stop)
        step = self._optional(node.step)
        with self.scopes.scope({node.variable: None}):
            body = self.visit(node.body)
        return NumericFor(node.variable, start, stop, step, body, location=node.location)

    def visit_generic_for(self, node: GenericFor) -> Statement:
        iterators = self._expressions(node.iterators)
        with self.scopes.scope({name: None for name in node.names}):
            body = self.visit(node.body)
        return GenericFor(node.names, iterators, body, location=node.location)

    def visit_repeat_statement(self, node: RepeatStatement) -> Statement:
        # The condition can see locals declared in the body
        with self.scopes.scope():
            statements = self._statements(node.body.statements)
            condition = self.visit(node.condition)
        return RepeatStatement(
            Block(statements, location=node.body.location), condition, location=node.location
        )

    def visit_function_literal(self, node: FunctionLiteral) -> Expression:
        predicates = [(name, self._compile(type_expr)) for name, type_expr in node.param_types]
        bindings: dict[str, Optional[Expression]] = {param: None for param in node.params}
        bindings.update(predicates)
        return_type = None if node.return_type is None else self._compile(node.return_type)

        self._return_types.append(return_type)
        with self.scopes.scope(bindings):
            statements = self._statements(node.body.statements)
        popped = self._return_types.pop()
        assert popped is return_type, "unbalanced return-type stack"

        entry_checks = tuple(
            self._check(predicate, Identifier(name, location=node.location), CheckContext.STATEMENT)
            for name, predicate in predicates
        )
        return FunctionLiteral(
            params=node.params,
            is_vararg=node.is_vararg,
            body=Block(entry_checks + statements, location=node.body.location),
            name=node.name,
            location=node.location,
        )

    # Binding sites
    def visit_local_declaration(self, node: LocalDeclaration) -> Statement:
        values = list(self._expressions(node.values))

        declared: dict[str, Optional[Expression]] = {name: None for name in node.names}
        for name, type_expr in node.annotations:
            declared[name] = self._compile(type_expr)
        for name, predicate in declared.items():
            self.scopes.declare(name, predicate)

        for index, name in enumerate(node.names):
            predicate = declared[name]
            if predicate is not None and index < len(values):
                values[index] = self._check(predicate, values[index], CheckContext.EXPRESSION)

        return LocalDeclaration(names=node.names, values=tuple(values), location=node.location)

    def visit_local_function(self, node: LocalFunction) -> Statement:
        self.scopes.declare(node.name, None)
        return LocalFunction(node.name, self.visit(node.function), location=node.location)

    def visit_assignment(self, node: Assignment) -> Statement:
        targets = self._expressions(node.targets)
        values = list(self._expressions(node.values))

        for index, target in enumerate(targets):
            if not isinstance(target, Identifier):
                continue
            predicate = self.scopes.lookup(target.name)
            if predicate is None:
                continue
            while len(values) <= index:
                values.append(NilLiteral(location=target.location))
            values[index] = self._check(predicate, values[index], CheckContext.EXPRESSION)

        return Assignment(targets, tuple(values), location=node.location)

    def visit_return_statement(self, node: ReturnStatement) -> Statement:
        values = list(self._expressions(node.values))
        return_type = self._return_types[-1] if self._return_types else None

        if return_type is not None:
            if not values:
                values.append(NilLiteral(location=node.location))
            values[0] = self._check(return_type, values[0], CheckContext.EXPRESSION)

        return ReturnStatement(tuple(values), location=node.location)


def instrument(chunk: Chunk, enabled: bool = True, registry: str = DEFAULT_REGISTRY) -> Chunk:
    """
    Convenience function to instrument a parsed chunk.

    Args:
        chunk: Annotated chunk
        enabled: Whether to insert checks or only strip annotations
        registry: Name of the global holding the type registry

    Returns:
        The instrumented chunk
    """
    return TypeInstrumenter(enabled=enabled, registry=registry).transform(chunk)
