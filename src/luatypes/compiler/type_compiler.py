"""
Type-expression compiler.

Turns annotation syntax into an ordinary expression that evaluates to a
predicate: a one-argument callable that returns normally when its argument
conforms and raises ``TypeMismatch`` otherwise. The transformation is pure
and works bottom-up:

    number                        types.number
    "circle"                      types.__string("circle")
    {x = number, y = number}      types.__table({x = types.number, ...})
    number or nil                 types.__or(types.number, types.nil)
    not string                    types.__not(types.string)
    function(number) return T end types.__function({types.number}, types.T)
    Pair(number, string)          types.Pair(types.number, types.string)

Expressions that already look compiled are returned unchanged so that
hand-built predicates can be written in annotations: parenthesized
expressions, qualified names such as ``lib.checks.positive`` and calls of
the registry's ``__`` constructors.
"""

from typing import Iterable, Optional

from luatypes.compiler.ast_nodes import (
    Assignment,
    BinaryExpression,
    Block,
    CallExpression,
    Expression,
    FunctionLiteral,
    FunctionSignature,
    Identifier,
    IndexExpression,
    NilLiteral,
    ParenExpression,
    ReturnStatement,
    Statement,
    StringLiteral,
    TableConstructor,
    TableField,
    UnaryExpression,
    is_qualified_name,
)
from luatypes.utils.errors import MalformedTypeError, SourceLocation

DEFAULT_REGISTRY = "types"


def registry_entry(name: str, registry: str = DEFAULT_REGISTRY,
                   location: Optional[SourceLocation] = None) -> IndexExpression:
    """Build the ``types.name`` lookup for a registry entry."""
    return IndexExpression(
        object=Identifier(registry, location=location),
        index=StringLiteral(name, location=location),
        location=location,
    )


def _constructor_call(name: str, arguments: tuple[Expression, ...], registry: str,
                      location: Optional[SourceLocation]) -> CallExpression:
    return CallExpression(
        callee=registry_entry(f"__{name}", registry, location),
        arguments=arguments,
        location=location,
    )


def _is_constructor_call(expr: Expression, registry: str) -> bool:
    if not isinstance(expr, CallExpression):
        return False
    callee = expr.callee
    return (
        isinstance(callee, IndexExpression)
        and isinstance(callee.object, Identifier)
        and callee.object.name == registry
        and isinstance(callee.index, StringLiteral)
        and callee.index.value.startswith("__")
    )


def is_compiled(expr: Expression, registry: str = DEFAULT_REGISTRY) -> bool:
    """Return True if ``expr`` already evaluates to a predicate."""
    return (
        isinstance(expr, ParenExpression)
        or is_qualified_name(expr)
        or _is_constructor_call(expr, registry)
    )


def _signature_return(signature: FunctionSignature) -> Expression:
    statements = signature.body.statements
    if (
        len(statements) != 1
        or not isinstance(statements[0], ReturnStatement)
        or len(statements[0].values) != 1
    ):
        raise MalformedTypeError("malformed function type", signature.location)
    return statements[0].values[0]


def compile_type(expr: Expression, bound: Iterable[str] = (),
                 registry: str = DEFAULT_REGISTRY) -> Expression:
    """
    Compile a type expression into a predicate expression.

    Args:
        expr: The annotation as parsed
        bound: Names that stay plain identifiers (parameters of a
            parametric ``newtype``)
        registry: Name of the global holding the type registry

    Returns:
        An expression evaluating to a predicate.

    Raises:
        MalformedTypeError: If a function type does not have the shape
            ``function(...) return T end``.
    """
    bound = frozenset(bound)

    def compile_expr(node: Expression) -> Expression:
        if is_compiled(node, registry):
            return node

        if isinstance(node, Identifier):
            if node.name in bound:
                return node
            return registry_entry(node.name, registry, node.location)

        if isinstance(node, NilLiteral):
            return registry_entry("nil", registry, node.location)

        if isinstance(node, StringLiteral):
            return _constructor_call("string", (node,), registry, node.location)

        if isinstance(node, TableConstructor):
            fields = tuple(
                TableField(value=compile_expr(f.value), key=f.key, location=f.location)
                for f in node.fields
            )
            shape = TableConstructor(fields=fields, location=node.location)
            return _constructor_call("table", (shape,), registry, node.location)

        if isinstance(node, BinaryExpression):
            return _constructor_call(
                node.operator.value,
                (compile_expr(node.left), compile_expr(node.right)),
                registry,
                node.location,
            )

        if isinstance(node, UnaryExpression):
            return _constructor_call(
                node.operator.value,
                (compile_expr(node.operand),),
                registry,
                node.location,
            )

        if isinstance(node, FunctionSignature):
            result = _signature_return(node)
            params = TableConstructor(
                fields=tuple(TableField(value=compile_expr(p)) for p in node.param_types),
                location=node.location,
            )
            return _constructor_call(
                "function", (params, compile_expr(result)), registry, node.location
            )

        if isinstance(node, CallExpression):
            return CallExpression(
                callee=compile_expr(node.callee),
                arguments=tuple(compile_expr(arg) for arg in node.arguments),
                location=node.location,
            )

        # Numbers, booleans, varargs and anything else
        return node

    return compile_expr(expr)


def compile_newtype(lhs: Expression, rhs: Expression,
                    registry: str = DEFAULT_REGISTRY) -> Statement:
    """
    Compile ``newtype lhs = rhs`` into a registry assignment.

    ``newtype Name = T`` becomes ``types.Name = T'`` and
    ``newtype Name(a, b) = T`` becomes
    ``types.Name = function(a, b) return T' end`` where ``a`` and ``b``
    stay plain identifiers inside ``T'``.

    Raises:
        MalformedTypeError: If ``lhs`` is neither a name nor a call of a
            name with name-only arguments.
    """
    if isinstance(lhs, Identifier):
        return Assignment(
            targets=(registry_entry(lhs.name, registry, lhs.location),),
            values=(compile_type(rhs, registry=registry),),
            location=lhs.location,
        )

    if (
        isinstance(lhs, CallExpression)
        and isinstance(lhs.callee, Identifier)
        and all(isinstance(arg, Identifier) for arg in lhs.arguments)
    ):
        name = lhs.callee.name
        params = tuple(arg.name for arg in lhs.arguments)
        body = Block(
            statements=(
                ReturnStatement(
                    values=(compile_type(rhs, bound=params, registry=registry),),
                    location=rhs.location,
                ),
            ),
            location=rhs.location,
        )
        constructor = FunctionLiteral(
            params=params,
            is_vararg=False,
            body=body,
            name=name,
            location=lhs.location,
        )
        return Assignment(
            targets=(registry_entry(name, registry, lhs.location),),
            values=(constructor,),
            location=lhs.location,
        )

    raise MalformedTypeError("malformed newtype declaration", lhs.location)
