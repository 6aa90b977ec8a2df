"""
Check-insertion builder.

Synthesizes the subtrees that apply a predicate to a term. In statement
position the check is a bare call. In expression position the result is a
``BlockExpression`` that runs the check and yields the term, binding
non-trivial terms to a fresh local first so they are evaluated once.
"""

from enum import Enum, auto
from typing import Any, Iterable, Optional, Union

from luatypes.compiler.ast_nodes import (
    BaseASTVisitor,
    BlockExpression,
    CallExpression,
    Chunk,
    Expression,
    ExpressionStatement,
    FunctionLiteral,
    GenericFor,
    Identifier,
    LocalDeclaration,
    LocalFunction,
    NumericFor,
    is_trivial,
)


class CheckContext(Enum):
    """Where the check is placed."""

    STATEMENT = auto()   # standalone call, no value
    EXPRESSION = auto()  # yields the checked value


class NameCollector(BaseASTVisitor):
    """Collects every name declared or referenced in a tree."""

    def __init__(self) -> None:
        self.names: set[str] = set()

    def visit_identifier(self, node: Identifier) -> Any:
        self.names.add(node.name)

    def visit_local_declaration(self, node: LocalDeclaration) -> Any:
        self.names.update(node.names)
        super().visit_local_declaration(node)

    def visit_local_function(self, node: LocalFunction) -> Any:
        self.names.add(node.name)
        super().visit_local_function(node)

    def visit_function_literal(self, node: FunctionLiteral) -> Any:
        self.names.update(node.params)
        super().visit_function_literal(node)

    def visit_numeric_for(self, node: NumericFor) -> Any:
        self.names.add(node.variable)
        super().visit_numeric_for(node)

    def visit_generic_for(self, node: GenericFor) -> Any:
        self.names.update(node.names)
        super().visit_generic_for(node)


class NameGenerator:
    """
    Produces identifiers that do not occur anywhere in the unit.

    Names are ``<prefix><n>`` with a per-generator counter, so the output
    for a given tree is the same on every run.
    """

    def __init__(self, used: Iterable[str] = (), prefix: str = "_tmp") -> None:
        self.prefix = prefix
        self._used = set(used)
        self._counter = 0

    @classmethod
    def for_chunk(cls, chunk: Chunk, prefix: str = "_tmp") -> "NameGenerator":
        """Create a generator seeded with every name used in ``chunk``."""
        collector = NameCollector()
        collector.visit(chunk)
        return cls(collector.names, prefix)

    def fresh(self) -> str:
        while True:
            self._counter += 1
            name = f"{self.prefix}{self._counter}"
            if name not in self._used:
                self._used.add(name)
                return name


def build_check(
    predicate: Expression,
    term: Expression,
    context: CheckContext,
    names: Optional[NameGenerator] = None,
) -> Union[ExpressionStatement, BlockExpression]:
    """
    Build a subtree that applies ``predicate`` to ``term``.

    Args:
        predicate: A compiled predicate expression
        term: The value to check
        context: STATEMENT for a bare call, EXPRESSION for a value
        names: Fresh-name source, required for non-trivial terms in
            expression position

    Returns:
        An ``ExpressionStatement`` in statement context, otherwise a
        ``BlockExpression`` whose value is the checked term.
    """
    location = term.location

    if context is CheckContext.STATEMENT:
        return ExpressionStatement(
            CallExpression(predicate, (term,), location=location),
            location=location,
        )

    if is_trivial(term):
        return BlockExpression(
            statements=(
                ExpressionStatement(CallExpression(predicate, (term,), location=location)),
            ),
            value=term,
            location=location,
        )

    if names is None:
        raise ValueError("a NameGenerator is required to check a non-trivial term")

    tmp = names.fresh()
    return BlockExpression(
        statements=(
            LocalDeclaration(names=(tmp,), values=(term,), location=location),
            ExpressionStatement(
                CallExpression(predicate, (Identifier(tmp, location=location),), location=location)
            ),
        ),
        value=Identifier(tmp, location=location),
        location=location,
    )
