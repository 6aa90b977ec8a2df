"""
Unit tests for the type instrumentation pass.
"""

import pytest

from luatypes.compiler.ast_nodes import (
    BaseASTVisitor,
    BlockExpression,
    CallExpression,
    ExpressionStatement,
    FunctionLiteral,
    Identifier,
    LocalDeclaration,
    NilLiteral,
    NumberLiteral,
    StringLiteral,
)
from luatypes.compiler.instrumenter import (
    AnnotationStripper,
    ScopeStack,
    TypeInstrumenter,
    instrument as instrument_chunk,
)
from luatypes.compiler.type_compiler import registry_entry
from luatypes.utils.errors import MalformedTypeError

NUMBER = registry_entry("number")
STRING = registry_entry("string")


class AnnotationFinder(BaseASTVisitor):
    """Records whether any node still carries annotation metadata."""

    def __init__(self):
        self.found = False

    def visit_local_declaration(self, node):
        self.found = self.found or bool(node.annotations)
        super().visit_local_declaration(node)

    def visit_function_literal(self, node):
        self.found = self.found or node.is_annotated
        super().visit_function_literal(node)


def has_annotations(chunk):
    finder = AnnotationFinder()
    finder.visit(chunk)
    return finder.found


def check_call(predicate, name):
    return ExpressionStatement(CallExpression(predicate, (Identifier(name),)))


def body_of(chunk):
    return chunk.body.statements


class TestScopeStack:
    """Lexical scope bookkeeping."""

    def test_lookup_innermost_first(self):
        scopes = ScopeStack()
        scopes.push({"x": NUMBER})
        scopes.push({"x": STRING})
        assert scopes.lookup("x") == STRING
        scopes.pop()
        assert scopes.lookup("x") == NUMBER

    def test_unannotated_declaration_shadows(self):
        scopes = ScopeStack()
        scopes.push({"x": NUMBER})
        scopes.push()
        scopes.declare("x")
        assert scopes.lookup("x") is None

    def test_unknown_name(self):
        scopes = ScopeStack()
        scopes.push()
        assert scopes.lookup("missing") is None

    def test_scope_context_manager_restores_depth(self):
        scopes = ScopeStack()
        with scopes.scope({"a": NUMBER}):
            assert len(scopes) == 1
        assert len(scopes) == 0


class TestLocalChecks:
    """Annotated local declarations."""

    def test_trivial_initializer(self, instrument):
        (declaration,) = body_of(instrument("local n :: number = 5"))
        value = declaration.values[0]
        assert isinstance(value, BlockExpression)
        assert value.value == NumberLiteral(5)
        assert declaration.annotations == ()

    def test_call_initializer_bound_once(self, instrument):
        (declaration,) = body_of(instrument("local n :: number = f()"))
        value = declaration.values[0]
        temp_decl, check = value.statements
        assert isinstance(temp_decl, LocalDeclaration)
        assert temp_decl.values == (CallExpression(Identifier("f"), ()),)
        assert check == check_call(NUMBER, temp_decl.names[0])
        assert value.value == Identifier(temp_decl.names[0])

    def test_temp_names_avoid_user_names(self, instrument):
        (declaration,) = body_of(instrument("local _tmp1 :: number = f()"))
        assert declaration.values[0].statements[0].names == ("_tmp2",)

    def test_missing_initializer_is_not_checked(self, parse):
        instrumenter = TypeInstrumenter()
        (declaration,) = body_of(instrumenter.transform(parse("local n :: number")))
        assert declaration.values == ()
        assert instrumenter.checks_inserted == 0

    def test_only_annotated_positions_checked(self, instrument):
        (declaration,) = body_of(instrument("local a, b :: number = 1, 2"))
        assert declaration.values[0] == NumberLiteral(1)
        assert isinstance(declaration.values[1], BlockExpression)

    def test_initializer_sees_outer_binding(self, instrument):
        chunk = instrument("local x :: number = 1\ndo local x :: string = x end")
        inner = body_of(chunk)[1].body.statements[0]
        assert inner.values[0].statements == (check_call(STRING, "x"),)


class TestAssignmentChecks:
    """Assignments to annotated names."""

    def test_assignment_checked(self, instrument):
        _, assignment = body_of(instrument("local n :: number = 1\nn = g()"))
        assert isinstance(assignment.values[0], BlockExpression)

    def test_unannotated_assignment_untouched(self, instrument):
        _, assignment = body_of(instrument("local n = 1\nn = g()"))
        assert assignment.values == (CallExpression(Identifier("g"), ()),)

    def test_missing_value_is_padded_with_nil(self, instrument):
        _, assignment = body_of(instrument("local a, b :: number = 1, 2\na, b = 3"))
        assert len(assignment.values) == 2
        assert assignment.values[1].value == NilLiteral()

    def test_field_targets_are_not_checked(self, instrument):
        _, assignment = body_of(instrument("local t :: table = {}\nt.x = 1"))
        assert assignment.values == (NumberLiteral(1),)

    def test_shadowing_local_disables_check(self, instrument):
        chunk = instrument("local x :: number = 1\ndo local x = 'a' x = 'b' end")
        inner_assignment = body_of(chunk)[1].body.statements[1]
        assert inner_assignment.values == (StringLiteral("b"),)

    def test_check_visible_in_nested_function(self, instrument):
        chunk = instrument("local x :: number = 1\nlocal function f() x = 'a' end")
        function = body_of(chunk)[1].function
        assignment = function.body.statements[0]
        assert isinstance(assignment.values[0], BlockExpression)

    def test_scope_ends_with_block(self, instrument):
        chunk = instrument("do local x :: number = 1 end\nx = 'a'")
        assert body_of(chunk)[1].values == (StringLiteral("a"),)

    def test_loop_variable_shadows(self, instrument):
        chunk = instrument("local i :: string = 'a'\nfor i = 1, 3 do i = 2 end")
        assignment = body_of(chunk)[1].body.statements[0]
        assert assignment.values == (NumberLiteral(2),)


class TestFunctionChecks:
    """Parameter and return checks."""

    def test_parameter_checks_prepended_in_order(self, instrument):
        (declaration,) = body_of(instrument("local f = function(a :: number, b, c :: string) end"))
        function = declaration.values[0]
        assert isinstance(function, FunctionLiteral)
        assert function.body.statements[:2] == (
            check_call(NUMBER, "a"),
            check_call(STRING, "c"),
        )
        assert not function.is_annotated

    def test_return_checked(self, instrument):
        (statement,) = body_of(instrument("function f() :: number return g() end"))
        ret = statement.values[0].body.statements[0]
        assert isinstance(ret.values[0], BlockExpression)

    def test_only_first_return_value_checked(self, instrument):
        (statement,) = body_of(instrument("function f() :: number return 1, 'x' end"))
        ret = statement.values[0].body.statements[0]
        assert isinstance(ret.values[0], BlockExpression)
        assert ret.values[1] == StringLiteral("x")

    def test_bare_return_checks_nil(self, instrument):
        (statement,) = body_of(instrument("function f() :: number return end"))
        ret = statement.values[0].body.statements[0]
        assert ret.values[0].value == NilLiteral()

    def test_return_type_does_not_leak_into_nested_function(self, instrument):
        source = "function f() :: number local g = function() return 'a' end return 1 end"
        (statement,) = body_of(instrument(source))
        inner = statement.values[0].body.statements[0].values[0]
        assert inner.body.statements[0].values == (StringLiteral("a"),)

    def test_top_level_return_not_checked(self, instrument):
        (ret,) = body_of(instrument("return 1"))
        assert ret.values == (NumberLiteral(1),)

    def test_parameter_visible_for_assignment(self, instrument):
        (statement,) = body_of(instrument("function f(x :: number) x = 'a' end"))
        assignment = statement.values[0].body.statements[1]
        assert isinstance(assignment.values[0], BlockExpression)


class TestInstrumenterBehavior:
    """Pass-level behavior."""

    def test_counts_checks(self, parse):
        instrumenter = TypeInstrumenter()
        instrumenter.transform(parse("local a :: number = 1\nfunction f(x :: string) :: number return 1 end"))
        assert instrumenter.checks_inserted == 3

    def test_failed_pass_can_be_reused(self, parse):
        instrumenter = TypeInstrumenter()
        bad = "local function f(x :: number) local g :: function() return 1, 2 end = nil end"
        with pytest.raises(MalformedTypeError, match="malformed function type"):
            instrumenter.transform(parse(bad))
        assert len(instrumenter.scopes) == 0

        instrumenter.transform(parse("local a :: number = 1"))
        assert instrumenter.checks_inserted == 1

    def test_input_is_not_mutated(self, parse):
        chunk = parse("local a :: number = 1")
        TypeInstrumenter().transform(chunk)
        assert chunk.body.statements[0].annotations

    def test_output_has_no_annotations(self, instrument):
        source = "local a :: number = 1\nlocal f = function(x :: string) :: number return 1 end"
        assert not has_annotations(instrument(source))

    def test_custom_registry(self, parse):
        instrumenter = TypeInstrumenter(registry="T")
        (declaration,) = body_of(instrumenter.transform(parse("local a :: number = 1")))
        check = declaration.values[0].statements[0]
        assert check.expression.callee == registry_entry("number", "T")

    @pytest.mark.parametrize(
        "annotated,plain",
        [
            ("local n :: number = 5", "local n = 5"),
            ("function f(x :: number, y) :: string return x end", "function f(x, y) return x end"),
            ("local s :: string or nil, t = 'a', 1", "local s, t = 'a', 1"),
        ],
    )
    def test_disabled_matches_unannotated_source(self, instrument, parse, annotated, plain):
        assert instrument(annotated, enabled=False) == parse(plain)

    def test_disabled_keeps_newtype(self, instrument):
        (statement,) = body_of(instrument("newtype Positive = number", enabled=False))
        assert statement.targets == (registry_entry("Positive"),)

    def test_stripper_removes_annotations(self, parse):
        chunk = parse("local a :: number = 1\nfunction f(x :: string) :: number return 1 end")
        assert has_annotations(chunk)
        assert not has_annotations(AnnotationStripper().transform(chunk))

    def test_instrument_helper(self, parse):
        chunk = instrument_chunk(parse("local a :: number = 1"), registry="T")
        (declaration,) = body_of(chunk)
        assert declaration.values[0].statements[0].expression.callee == registry_entry("number", "T")
        assert not has_annotations(instrument_chunk(parse("local a :: number = 1"), enabled=False))
