"""
Unit tests for the luatypes Parser.
"""

import pytest

from luatypes.compiler.ast_nodes import (
    Assignment,
    BinaryExpression,
    BinaryOperator,
    CallExpression,
    Chunk,
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
    NumberLiteral,
    NumericFor,
    ParenExpression,
    RepeatStatement,
    ReturnStatement,
    StringLiteral,
    TableConstructor,
    UnaryExpression,
    UnaryOperator,
    VarargExpression,
    WhileStatement,
)
from luatypes.utils.errors import MalformedTypeError, ParserError


def first_statement(chunk):
    return chunk.body.statements[0]


def expression_of(parse, source):
    """Parse ``local _ = <source>`` and return the expression."""
    return first_statement(parse(f"local _ = {source}")).values[0]


class TestParserBasics:
    """Basic parser functionality tests."""

    def test_empty_chunk(self, parse):
        chunk = parse("")
        assert isinstance(chunk, Chunk)
        assert chunk.body.statements == ()
        assert chunk.typecheck is None

    def test_semicolons_are_skipped(self, parse):
        chunk = parse("f(); ; g()")
        assert len(chunk.body.statements) == 2

    def test_directive_sets_typecheck(self, parse):
        assert parse("--!typecheck off\nlocal x = 1").typecheck is False
        assert parse("--!typecheck on").typecheck is True

    def test_last_directive_wins(self, parse):
        assert parse("--!typecheck off\n--!typecheck on").typecheck is True

    def test_return_must_be_last(self, parse):
        with pytest.raises(ParserError, match="last statement"):
            parse("return 1 x = 2")

    def test_error_message_names_token(self, parse):
        with pytest.raises(ParserError, match="near 'then'"):
            parse("if then end")


class TestParserLocals:
    """Local declarations and annotations."""

    def test_plain_local(self, parse):
        stmt = first_statement(parse("local x = 1"))
        assert stmt == LocalDeclaration(names=("x",), values=(NumberLiteral(1),))

    def test_annotated_local(self, parse):
        stmt = first_statement(parse("local n :: number = 5"))
        assert stmt.names == ("n",)
        assert stmt.annotations == (("n", Identifier("number")),)
        assert stmt.values == (NumberLiteral(5),)

    def test_partially_annotated(self, parse):
        stmt = first_statement(parse("local a :: number, b, c :: string = 1, 2"))
        assert stmt.names == ("a", "b", "c")
        assert [name for name, _ in stmt.annotations] == ["a", "c"]
        assert len(stmt.values) == 2

    def test_annotation_with_union(self, parse):
        stmt = first_statement(parse("local s :: string or nil"))
        annotation = stmt.annotations[0][1]
        assert isinstance(annotation, BinaryExpression)
        assert annotation.operator == BinaryOperator.OR
        assert stmt.values == ()

    def test_local_function(self, parse):
        stmt = first_statement(parse("local function f(a) return a end"))
        assert isinstance(stmt, LocalFunction)
        assert stmt.name == "f"
        assert stmt.function.params == ("a",)
        assert stmt.function.name == "f"


class TestParserFunctions:
    """Function literals, statements and signatures."""

    def test_typed_parameters_and_return(self, parse):
        stmt = first_statement(parse("function f(x :: number, y) :: string return x end"))
        assert isinstance(stmt, Assignment)
        function = stmt.values[0]
        assert isinstance(function, FunctionLiteral)
        assert function.params == ("x", "y")
        assert function.param_types == (("x", Identifier("number")),)
        assert function.return_type == Identifier("string")
        assert function.is_annotated

    def test_vararg_function(self, parse):
        function = expression_of(parse, "function(a, ...) return ... end")
        assert function.params == ("a",)
        assert function.is_vararg
        assert function.body.statements[0].values == (VarargExpression(),)

    def test_vararg_outside_vararg_function(self, parse):
        with pytest.raises(ParserError, match="outside a vararg function"):
            parse("local f = function() return ... end")

    def test_vararg_in_main_chunk(self, parse):
        stmt = first_statement(parse("local a, b = ..."))
        assert stmt.values == (VarargExpression(),)

    def test_dotted_function_name(self, parse):
        stmt = first_statement(parse("function a.b.c() end"))
        target = stmt.targets[0]
        assert isinstance(target, IndexExpression)
        assert target.index == StringLiteral("c")
        assert stmt.values[0].name == "a.b.c"

    def test_method_adds_self(self, parse):
        stmt = first_statement(parse("function obj:move(dx) end"))
        function = stmt.values[0]
        assert function.params == ("self", "dx")
        assert function.name == "obj:move"

    def test_function_type_in_annotation(self, parse):
        stmt = first_statement(parse("local f :: function(number) return string end = g"))
        annotation = stmt.annotations[0][1]
        assert isinstance(annotation, FunctionSignature)
        assert annotation.param_types == (Identifier("number"),)
        assert annotation.body.statements == (ReturnStatement((Identifier("string"),)),)

    def test_bare_function_type_name(self, parse):
        stmt = first_statement(parse("local f :: function or nil = print"))
        annotation = stmt.annotations[0][1]
        assert annotation.left == Identifier("function")
        assert stmt.values == (Identifier("print"),)


class TestParserStatements:
    """Control flow and assignment statements."""

    def test_multiple_assignment(self, parse):
        stmt = first_statement(parse("a, t.x = 1, 2"))
        assert isinstance(stmt, Assignment)
        assert stmt.targets[0] == Identifier("a")
        assert isinstance(stmt.targets[1], IndexExpression)

    def test_cannot_assign_to_call(self, parse):
        with pytest.raises(ParserError, match="Cannot assign"):
            parse("f() = 1")

    def test_expression_statement_must_be_call(self, parse):
        with pytest.raises(ParserError, match="expected assignment or function call"):
            parse("x")

    def test_if_elseif_else(self, parse):
        stmt = first_statement(parse("if a then x() elseif b then y() else z() end"))
        assert isinstance(stmt, IfStatement)
        assert len(stmt.elseif_clauses) == 1
        assert stmt.else_block is not None

    def test_while(self, parse):
        assert isinstance(first_statement(parse("while x do f() end")), WhileStatement)

    def test_repeat(self, parse):
        stmt = first_statement(parse("repeat local y = 1 until y"))
        assert isinstance(stmt, RepeatStatement)
        assert stmt.condition == Identifier("y")

    def test_numeric_for(self, parse):
        stmt = first_statement(parse("for i = 1, 10, 2 do end"))
        assert isinstance(stmt, NumericFor)
        assert stmt.variable == "i"
        assert stmt.step == NumberLiteral(2)

    def test_generic_for(self, parse):
        stmt = first_statement(parse("for k, v in pairs(t) do end"))
        assert isinstance(stmt, GenericFor)
        assert stmt.names == ("k", "v")

    def test_unclosed_block(self, parse):
        with pytest.raises(ParserError, match="Expected 'end'"):
            parse("while true do")


class TestParserNewtype:
    """newtype declarations are compiled while parsing."""

    def test_simple_newtype(self, parse):
        stmt = first_statement(parse("newtype Positive = number"))
        assert isinstance(stmt, Assignment)
        assert stmt.targets == (IndexExpression(Identifier("types"), StringLiteral("Positive")),)
        assert stmt.values == (IndexExpression(Identifier("types"), StringLiteral("number")),)

    def test_parametric_newtype(self, parse):
        stmt = first_statement(parse("newtype Pair(a, b) = {a, b}"))
        constructor = stmt.values[0]
        assert isinstance(constructor, FunctionLiteral)
        assert constructor.params == ("a", "b")

    def test_malformed_newtype(self, parse):
        with pytest.raises(MalformedTypeError, match="malformed newtype declaration"):
            parse("newtype t.x = number")


class TestParserExpressions:
    """Operator precedence and suffixed expressions."""

    def test_multiplication_binds_tighter(self, parse):
        expr = expression_of(parse, "1 + 2 * 3")
        assert expr.operator == BinaryOperator.ADD
        assert expr.right.operator == BinaryOperator.MUL

    def test_power_is_right_associative(self, parse):
        expr = expression_of(parse, "2 ^ 3 ^ 2")
        assert expr.operator == BinaryOperator.POW
        assert expr.right.operator == BinaryOperator.POW

    def test_concat_is_right_associative(self, parse):
        expr = expression_of(parse, "a .. b .. c")
        assert expr.left == Identifier("a")
        assert expr.right.operator == BinaryOperator.CONCAT

    def test_unary_minus_below_power(self, parse):
        expr = expression_of(parse, "-x ^ 2")
        assert isinstance(expr, UnaryExpression)
        assert expr.operator == UnaryOperator.NEG
        assert expr.operand.operator == BinaryOperator.POW

    def test_and_binds_tighter_than_or(self, parse):
        expr = expression_of(parse, "a or b and c")
        assert expr.operator == BinaryOperator.OR
        assert expr.right.operator == BinaryOperator.AND

    def test_comparison_below_concat(self, parse):
        expr = expression_of(parse, "a .. b == c")
        assert expr.operator == BinaryOperator.EQ

    def test_not_and_length(self, parse):
        expr = expression_of(parse, "not #t")
        assert expr.operator == UnaryOperator.NOT
        assert expr.operand.operator == UnaryOperator.LEN

    def test_call_sugar(self, parse):
        stmt = first_statement(parse('print "hi"'))
        assert isinstance(stmt, ExpressionStatement)
        assert stmt.expression == CallExpression(Identifier("print"), (StringLiteral("hi"),))

    def test_table_call_sugar(self, parse):
        stmt = first_statement(parse("f{1}"))
        assert isinstance(stmt.expression.arguments[0], TableConstructor)

    def test_method_call(self, parse):
        stmt = first_statement(parse("obj:go(1)"))
        assert isinstance(stmt.expression, MethodCall)
        assert stmt.expression.method == "go"

    def test_parenthesized(self, parse):
        assert isinstance(expression_of(parse, "(f())"), ParenExpression)

    def test_table_constructor_fields(self, parse):
        table = expression_of(parse, '{1, x = 2, ["y"] = 3; 4,}')
        assert [f.is_positional for f in table.fields] == [True, False, False, True]
        assert table.fields[1].key == StringLiteral("x")
        assert table.fields[2].key == StringLiteral("y")

    def test_indexing_chain(self, parse):
        expr = expression_of(parse, "a.b[1].c")
        assert isinstance(expr, IndexExpression)
        assert expr.index == StringLiteral("c")
