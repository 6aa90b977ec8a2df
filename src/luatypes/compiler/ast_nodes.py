"""
Abstract Syntax Tree (AST) node definitions for luatypes.

This module defines all AST node types representing the structure of a
typed Lua chunk after parsing. Each node is immutable and carries source
location information for error reporting. Locations are excluded from
equality so that trees built from differently formatted sources compare
equal when they have the same shape.

Annotation metadata lives on three fields only:
``LocalDeclaration.annotations``, ``FunctionLiteral.param_types`` and
``FunctionLiteral.return_type``. The type instrumenter consumes them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from luatypes.utils.errors import SourceLocation


class ASTNode(ABC):
    """Base class for all AST nodes."""

    location: Optional[SourceLocation]

    @abstractmethod
    def accept(self, visitor: "ASTVisitor") -> Any:
        """Accept a visitor for tree traversal."""
        pass


class ASTVisitor(ABC):
    """
    Visitor pattern base class for AST traversal.

    Implement this to create custom AST processors (instrumenters, code
    generators, name collectors, etc.).
    """

    def visit(self, node: ASTNode) -> Any:
        """Dispatch to the appropriate visit method."""
        return node.accept(self)


# -----------------------------------------------------------------------------
# Expressions
# -----------------------------------------------------------------------------


class Expression(ASTNode):
    """Base class for all expressions."""

    pass


@dataclass(frozen=True, slots=True)
class NilLiteral(Expression):
    """The ``nil`` literal."""

    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_nil_literal(self)


@dataclass(frozen=True, slots=True)
class BooleanLiteral(Expression):
    """``true`` or ``false``."""

    value: bool
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_boolean_literal(self)


@dataclass(frozen=True, slots=True)
class NumberLiteral(Expression):
    """An integer or floating-point literal."""

    value: Union[int, float]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_number_literal(self)


@dataclass(frozen=True, slots=True)
class StringLiteral(Expression):
    """A string literal."""

    value: str
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_string_literal(self)


@dataclass(frozen=True, slots=True)
class VarargExpression(Expression):
    """The ``...`` expression inside a vararg function."""

    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_vararg_expression(self)


@dataclass(frozen=True, slots=True)
class Identifier(Expression):
    """
    A name reference, either a local or a global.

    Example:
        x, myVariable, _private
    """

    name: str
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_identifier(self)


@dataclass(frozen=True, slots=True)
class Block(ASTNode):
    """
    A sequence of statements forming one lexical scope.

    Example:
        do stmt1; stmt2 end
    """

    statements: tuple["Statement", ...]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_block(self)


@dataclass(frozen=True, slots=True)
class FunctionLiteral(Expression):
    """
    A function body: ``function (params) ... end``.

    Named function statements and ``local function`` are parsed into this
    node too; ``name`` is kept for diagnostics and code generation only.

    Attributes:
        params: Parameter names in declaration order
        is_vararg: Whether the parameter list ends with ``...``
        body: The function body
        param_types: Ordered ``(name, type expression)`` pairs for
            annotated parameters
        return_type: Annotated return type, if any
        name: Name the function was declared with, if any
    """

    params: tuple[str, ...]
    is_vararg: bool
    body: Block
    param_types: tuple[tuple[str, Expression], ...] = ()
    return_type: Optional[Expression] = None
    name: Optional[str] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_function_literal(self)

    @property
    def is_annotated(self) -> bool:
        return bool(self.param_types) or self.return_type is not None


@dataclass(frozen=True, slots=True)
class FunctionSignature(Expression):
    """
    A function literal written in type position.

    Example:
        function(number, string) return boolean end

    The parameters are type expressions rather than names. A well formed
    signature has a body made of exactly one ``return`` of one expression.
    """

    param_types: tuple[Expression, ...]
    body: Block
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_function_signature(self)


@dataclass(frozen=True, slots=True)
class TableField:
    """
    One entry of a table constructor.

    ``key`` is None for positional items (``{a, b}``); ``name = v`` is
    stored with a string literal key and ``[e] = v`` with the expression.
    """

    value: Expression
    key: Optional[Expression] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    @property
    def is_positional(self) -> bool:
        return self.key is None


@dataclass(frozen=True, slots=True)
class TableConstructor(Expression):
    """
    A table constructor.

    Example:
        {1, 2, x = 3, ["y"] = 4}
    """

    fields: tuple[TableField, ...]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_table_constructor(self)


class BinaryOperator(Enum):
    """
    Binary operator types.

    Values are the operator names used for registry type constructors
    (``types.__add`` and so on).
    """

    # Arithmetic
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    IDIV = "idiv"
    MOD = "mod"
    POW = "pow"
    CONCAT = "concat"

    # Comparison
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"

    # Logical
    AND = "and"
    OR = "or"


class UnaryOperator(Enum):
    """Unary operator types."""

    NEG = "neg"  # -
    NOT = "not"  # not
    LEN = "len"  # #


@dataclass(frozen=True, slots=True)
class BinaryExpression(Expression):
    """
    A binary operation expression.

    Example:
        a + b, s .. "!", x and y
    """

    left: Expression
    operator: BinaryOperator
    right: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_binary_expression(self)


@dataclass(frozen=True, slots=True)
class UnaryExpression(Expression):
    """
    A unary operation expression.

    Example:
        -x, not flag, #list
    """

    operator: UnaryOperator
    operand: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_unary_expression(self)


@dataclass(frozen=True, slots=True)
class CallExpression(Expression):
    """
    A function call expression.

    Example:
        f(x, y), print "hello", setup { width = 3 }
    """

    callee: Expression
    arguments: tuple[Expression, ...]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_call_expression(self)


@dataclass(frozen=True, slots=True)
class MethodCall(Expression):
    """
    A method call ``object:method(args)``.

    The object is evaluated once and passed as the first argument.
    """

    object: Expression
    method: str
    arguments: tuple[Expression, ...]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_method_call(self)


@dataclass(frozen=True, slots=True)
class IndexExpression(Expression):
    """
    An index expression. ``a.b`` is stored as ``a["b"]``.

    Example:
        t[1], point.x, types.number
    """

    object: Expression
    index: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_index_expression(self)


@dataclass(frozen=True, slots=True)
class ParenExpression(Expression):
    """
    A parenthesized expression.

    Parentheses truncate a multi-value expression to its first value. In
    type position they mark an already compiled predicate.
    """

    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_paren_expression(self)


@dataclass(frozen=True, slots=True)
class BlockExpression(Expression):
    """
    A scoped sequence of statements followed by a result expression.

    The statements run in order in a fresh scope, then ``value`` is
    evaluated and becomes the value of the whole expression. Only produced
    by the type instrumenter, never by the parser.
    """

    statements: tuple["Statement", ...]
    value: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_block_expression(self)


# -----------------------------------------------------------------------------
# Statements
# -----------------------------------------------------------------------------


class Statement(ASTNode):
    """Base class for all statements."""

    pass


@dataclass(frozen=True, slots=True)
class LocalDeclaration(Statement):
    """
    A local variable declaration.

    Examples:
        local x = 5
        local a :: number, b, c :: string = 1, 2, "three"

    Attributes:
        names: Declared names in order
        values: Initializer expressions (may be fewer or more than names)
        annotations: Ordered ``(name, type expression)`` pairs for the
            annotated names
    """

    names: tuple[str, ...]
    values: tuple[Expression, ...] = ()
    annotations: tuple[tuple[str, Expression], ...] = ()
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_local_declaration(self)


@dataclass(frozen=True, slots=True)
class LocalFunction(Statement):
    """
    ``local function name(...) ... end``.

    The name is in scope inside the function body so it can recurse.
    """

    name: str
    function: FunctionLiteral
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_local_function(self)


@dataclass(frozen=True, slots=True)
class Assignment(Statement):
    """
    A (multiple) assignment.

    Examples:
        x = 1
        a, t.k = f()
    """

    targets: tuple[Expression, ...]
    values: tuple[Expression, ...]
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_assignment(self)


@dataclass(frozen=True, slots=True)
class ExpressionStatement(Statement):
    """A call used as a statement."""

    expression: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_expression_statement(self)


@dataclass(frozen=True, slots=True)
class DoStatement(Statement):
    """``do ... end``."""

    body: Block
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_do_statement(self)


@dataclass(frozen=True, slots=True)
class WhileStatement(Statement):
    """``while condition do ... end``."""

    condition: Expression
    body: Block
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_while_statement(self)


@dataclass(frozen=True, slots=True)
class RepeatStatement(Statement):
    """
    ``repeat ... until condition``.

    The condition is evaluated inside the body scope.
    """

    body: Block
    condition: Expression
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_repeat_statement(self)


@dataclass(frozen=True, slots=True)
class IfStatement(Statement):
    """
    An if/elseif/else statement.

    Example:
        if x > 0 then ... elseif x < 0 then ... else ... end
    """

    condition: Expression
    then_block: Block
    elseif_clauses: tuple[tuple[Expression, Block], ...] = ()
    else_block: Optional[Block] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_if_statement(self)


@dataclass(frozen=True, slots=True)
class NumericFor(Statement):
    """``for i = start, stop[, step] do ... end``."""

    variable: str
    start: Expression
    stop: Expression
    step: Optional[Expression]
    body: Block
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_numeric_for(self)


@dataclass(frozen=True, slots=True)
class GenericFor(Statement):
    """``for k, v in explist do ... end``."""

    names: tuple[str, ...]
    iterators: tuple[Expression, ...]
    body: Block
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_generic_for(self)


@dataclass(frozen=True, slots=True)
class ReturnStatement(Statement):
    """``return [explist]``."""

    values: tuple[Expression, ...] = ()
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_return_statement(self)


@dataclass(frozen=True, slots=True)
class BreakStatement(Statement):
    """``break``."""

    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_break_statement(self)


# -----------------------------------------------------------------------------
# Chunk
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Chunk(ASTNode):
    """
    The root node of a compilation unit.

    Attributes:
        body: Top-level block
        typecheck: Value of the ``--!typecheck`` directive in effect at the
            end of the unit, or None when the source has no directive
    """

    body: Block
    typecheck: Optional[bool] = None
    location: Optional[SourceLocation] = field(default=None, compare=False)

    def accept(self, visitor: ASTVisitor) -> Any:
        return visitor.visit_chunk(self)


TRIVIAL_EXPRESSIONS = (Identifier, NilLiteral, BooleanLiteral, NumberLiteral, StringLiteral)


def is_trivial(node: Expression) -> bool:
    """Return True for terms that can be evaluated twice without effects."""
    return isinstance(node, TRIVIAL_EXPRESSIONS)


def is_qualified_name(node: Expression) -> bool:
    """
    Return True for ``a.b.c`` style names.

    A qualified name is an identifier indexed by string literal keys one or
    more times, e.g. ``types.number`` or ``lib.checks.positive``.
    """
    if not isinstance(node, IndexExpression) or not isinstance(node.index, StringLiteral):
        return False
    if isinstance(node.object, Identifier):
        return True
    return is_qualified_name(node.object)


# -----------------------------------------------------------------------------
# Visitor with default implementations
# -----------------------------------------------------------------------------


class BaseASTVisitor(ASTVisitor):
    """
    Base visitor with default implementations that traverse children.

    Subclass this and override specific visit_* methods as needed.
    """

    def visit_chunk(self, node: Chunk) -> Any:
        self.visit(node.body)

    def visit_block(self, node: Block) -> Any:
        for stmt in node.statements:
            self.visit(stmt)

    # Literals
    def visit_nil_literal(self, node: NilLiteral) -> Any:
        pass

    def visit_boolean_literal(self, node: BooleanLiteral) -> Any:
        pass

    def visit_number_literal(self, node: NumberLiteral) -> Any:
        pass

    def visit_string_literal(self, node: StringLiteral) -> Any:
        pass

    def visit_vararg_expression(self, node: VarargExpression) -> Any:
        pass

    def visit_identifier(self, node: Identifier) -> Any:
        pass

    # Expressions
    def visit_function_literal(self, node: FunctionLiteral) -> Any:
        for _, type_expr in node.param_types:
            self.visit(type_expr)
        if node.return_type is not None:
            self.visit(node.return_type)
        self.visit(node.body)

    def visit_function_signature(self, node: FunctionSignature) -> Any:
        for param in node.param_types:
            self.visit(param)
        self.visit(node.body)

    def visit_table_constructor(self, node: TableConstructor) -> Any:
        for table_field in node.fields:
            if table_field.key is not None:
                self.visit(table_field.key)
            self.visit(table_field.value)

    def visit_binary_expression(self, node: BinaryExpression) -> Any:
        self.visit(node.left)
        self.visit(node.right)

    def visit_unary_expression(self, node: UnaryExpression) -> Any:
        self.visit(node.operand)

    def visit_call_expression(self, node: CallExpression) -> Any:
        self.visit(node.callee)
        for arg in node.arguments:
            self.visit(arg)

    def visit_method_call(self, node: MethodCall) -> Any:
        self.visit(node.object)
        for arg in node.arguments:
            self.visit(arg)

    def visit_index_expression(self, node: IndexExpression) -> Any:
        self.visit(node.object)
        self.visit(node.index)

    def visit_paren_expression(self, node: ParenExpression) -> Any:
        self.visit(node.expression)

    def visit_block_expression(self, node: BlockExpression) -> Any:
        for stmt in node.statements:
            self.visit(stmt)
        self.visit(node.value)

    # Statements
    def visit_local_declaration(self, node: LocalDeclaration) -> Any:
        for _, type_expr in node.annotations:
            self.visit(type_expr)
        for value in node.values:
            self.visit(value)

    def visit_local_function(self, node: LocalFunction) -> Any:
        self.visit(node.function)

    def visit_assignment(self, node: Assignment) -> Any:
        for target in node.targets:
            self.visit(target)
        for value in node.values:
            self.visit(value)

    def visit_expression_statement(self, node: ExpressionStatement) -> Any:
        self.visit(node.expression)

    def visit_do_statement(self, node: DoStatement) -> Any:
        self.visit(node.body)

    def visit_while_statement(self, node: WhileStatement) -> Any:
        self.visit(node.condition)
        self.visit(node.body)

    def visit_repeat_statement(self, node: RepeatStatement) -> Any:
        self.visit(node.body)
        self.visit(node.condition)

    def visit_if_statement(self, node: IfStatement) -> Any:
        self.visit(node.condition)
        self.visit(node.then_block)
        for condition, block in node.elseif_clauses:
            self.visit(condition)
            self.visit(block)
        if node.else_block is not None:
            self.visit(node.else_block)

    def visit_numeric_for(self, node: NumericFor) -> Any:
        self.visit(node.start)
        self.visit(node.stop)
        if node.step is not None:
            self.visit(node.step)
        self.visit(node.body)

    def visit_generic_for(self, node: GenericFor) -> Any:
        for iterator in node.iterators:
            self.visit(iterator)
        self.visit(node.body)

    def visit_return_statement(self, node: ReturnStatement) -> Any:
        for value in node.values:
            self.visit(value)

    def visit_break_statement(self, node: BreakStatement) -> Any:
        pass
