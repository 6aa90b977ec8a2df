"""
luatypes Parser.

A recursive descent parser that transforms a token stream into an Abstract
Syntax Tree (AST). Implements Lua operator precedence for expressions and
attaches type annotation metadata:

    local a :: number, b = 1, 2          LocalDeclaration.annotations
    function f(x :: number) :: string    FunctionLiteral.param_types/return_type
    newtype Point = {x = number}         registry assignment

Type expressions are parsed with the expression grammar. The one addition is
``function(T1, T2) return R end`` in type position, which parses its
parameters as type expressions.
"""

from typing import Optional

from luatypes.compiler.ast_nodes import (
    Assignment,
    BinaryExpression,
    BinaryOperator,
    Block,
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
    UnaryOperator,
    VarargExpression,
    WhileStatement,
)
from luatypes.compiler.tokens import Token, TokenType
from luatypes.compiler.type_compiler import DEFAULT_REGISTRY, compile_newtype
from luatypes.utils.errors import ParserError


# Operator precedence levels (higher = tighter binding)
class Precedence:
    """Operator precedence levels."""

    NONE = 0
    OR = 1              # or
    AND = 2             # and
    COMPARISON = 3      # < > <= >= ~= ==
    CONCAT = 4          # .. (right associative)
    ADDITIVE = 5        # + -
    MULTIPLICATIVE = 6  # * / // %
    UNARY = 7           # not # -
    POWER = 8           # ^ (right associative)


# Map token types to binary operators
BINARY_OP_MAP: dict[TokenType, BinaryOperator] = {
    # Arithmetic
    TokenType.PLUS: BinaryOperator.ADD,
    TokenType.MINUS: BinaryOperator.SUB,
    TokenType.STAR: BinaryOperator.MUL,
    TokenType.SLASH: BinaryOperator.DIV,
    TokenType.DOUBLE_SLASH: BinaryOperator.IDIV,
    TokenType.PERCENT: BinaryOperator.MOD,
    TokenType.CARET: BinaryOperator.POW,
    TokenType.CONCAT: BinaryOperator.CONCAT,
    # Comparison
    TokenType.EQ: BinaryOperator.EQ,
    TokenType.NE: BinaryOperator.NE,
    TokenType.LT: BinaryOperator.LT,
    TokenType.GT: BinaryOperator.GT,
    TokenType.LE: BinaryOperator.LE,
    TokenType.GE: BinaryOperator.GE,
    # Logical
    TokenType.AND: BinaryOperator.AND,
    TokenType.OR: BinaryOperator.OR,
}

# Map token types to their precedence
PRECEDENCE_MAP: dict[TokenType, int] = {
    TokenType.OR: Precedence.OR,
    TokenType.AND: Precedence.AND,
    TokenType.EQ: Precedence.COMPARISON,
    TokenType.NE: Precedence.COMPARISON,
    TokenType.LT: Precedence.COMPARISON,
    TokenType.GT: Precedence.COMPARISON,
    TokenType.LE: Precedence.COMPARISON,
    TokenType.GE: Precedence.COMPARISON,
    TokenType.CONCAT: Precedence.CONCAT,
    TokenType.PLUS: Precedence.ADDITIVE,
    TokenType.MINUS: Precedence.ADDITIVE,
    TokenType.STAR: Precedence.MULTIPLICATIVE,
    TokenType.SLASH: Precedence.MULTIPLICATIVE,
    TokenType.DOUBLE_SLASH: Precedence.MULTIPLICATIVE,
    TokenType.PERCENT: Precedence.MULTIPLICATIVE,
    TokenType.CARET: Precedence.POWER,
}

RIGHT_ASSOCIATIVE: frozenset[TokenType] = frozenset({TokenType.CARET, TokenType.CONCAT})

UNARY_OP_MAP: dict[TokenType, UnaryOperator] = {
    TokenType.MINUS: UnaryOperator.NEG,
    TokenType.NOT: UnaryOperator.NOT,
    TokenType.HASH: UnaryOperator.LEN,
}

# Tokens that close a block
BLOCK_END: frozenset[TokenType] = frozenset({
    TokenType.END,
    TokenType.ELSE,
    TokenType.ELSEIF,
    TokenType.UNTIL,
    TokenType.EOF,
})


class Parser:
    """
    Recursive descent parser for typed Lua.

    Parses a list of tokens into an Abstract Syntax Tree. ``--!typecheck``
    directives are removed from the token stream; the last one seen is
    recorded on the resulting ``Chunk``.

    Usage:
        parser = Parser(tokens)
        chunk = parser.parse()
    """

    def __init__(self, tokens: list[Token], source: str = "",
                 registry: str = DEFAULT_REGISTRY) -> None:
        """
        Initialize the parser.

        Args:
            tokens: List of tokens from the lexer
            source: Optional source code for error messages
            registry: Name of the global holding the type registry, used
                for ``newtype`` declarations
        """
        self.typecheck: Optional[bool] = None
        self.tokens: list[Token] = []
        for token in tokens:
            if token.type == TokenType.PRAGMA:
                self.typecheck = token.value[1]
            else:
                self.tokens.append(token)
        self.pos = 0
        self.registry = registry
        self._source_lines: list[str] = source.splitlines() if source else []

        # One entry per enclosing function: whether "..." is allowed there
        self._vararg_stack: list[bool] = [True]
        self._type_depth = 0

    # -------------------------------------------------------------------------
    # Token helpers
    # -------------------------------------------------------------------------

    @property
    def _current(self) -> Token:
        """Get the current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # Return EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        """Look ahead by offset tokens."""
        index = self.pos + offset
        if index >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[index]

    def _is_at_end(self) -> bool:
        """Check if we've reached the end of tokens."""
        return self._current.type == TokenType.EOF

    def _check(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        return self._current.type in types

    def _advance(self) -> Token:
        """Consume and return the current token."""
        token = self._current
        if not self._is_at_end():
            self.pos += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        """Consume current token if it matches one of the given types."""
        if self._check(*types):
            self._advance()
            return True
        return False

    def _expect(self, token_type: TokenType, message: str) -> Token:
        """Consume current token if it matches, else raise error."""
        if self._check(token_type):
            return self._advance()
        raise self._error(message)

    def _expect_name(self, message: str = "Expected name") -> str:
        return self._expect(TokenType.NAME, message).value

    def _error(self, message: str) -> ParserError:
        """Create a parser error with location info."""
        token = self._current
        found = "end of file" if token.type == TokenType.EOF else repr(token.value)
        source_line = None
        if 0 < token.location.line <= len(self._source_lines):
            source_line = self._source_lines[token.location.line - 1]
        return ParserError(f"{message} near {found}", token.location, source_line)

    # -------------------------------------------------------------------------
    # Chunk and blocks
    # -------------------------------------------------------------------------

    def parse(self) -> Chunk:
        """
        Parse the token stream into a Chunk.

        Returns:
            The root Chunk node

        Raises:
            ParserError: On syntax errors
            MalformedTypeError: On a malformed ``newtype`` declaration
        """
        location = self._current.location
        body = self._parse_block()
        if not self._is_at_end():
            raise self._error("Expected end of file")
        return Chunk(body=body, typecheck=self.typecheck, location=location)

    def _parse_block(self) -> Block:
        """Parse statements until a block terminator."""
        location = self._current.location
        statements: list[Statement] = []

        while not self._check(*BLOCK_END):
            if self._match(TokenType.SEMICOLON):
                continue
            if self._check(TokenType.RETURN):
                statements.append(self._parse_return())
                break
            statements.append(self._parse_statement())

        return Block(tuple(statements), location=location)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _parse_statement(self) -> Statement:
        """Parse a single statement."""
        token = self._current

        if token.type == TokenType.LOCAL:
            self._advance()
            if self._match(TokenType.FUNCTION):
                return self._parse_local_function(token)
            return self._parse_local(token)
        if token.type == TokenType.FUNCTION:
            return self._parse_function_statement()
        if token.type == TokenType.IF:
            return self._parse_if()
        if token.type == TokenType.WHILE:
            return self._parse_while()
        if token.type == TokenType.DO:
            self._advance()
            body = self._parse_block()
            self._expect(TokenType.END, "Expected 'end' to close 'do'")
            return DoStatement(body, location=token.location)
        if token.type == TokenType.FOR:
            return self._parse_for()
        if token.type == TokenType.REPEAT:
            return self._parse_repeat()
        if token.type == TokenType.BREAK:
            self._advance()
            return BreakStatement(location=token.location)
        if token.type == TokenType.NEWTYPE:
            return self._parse_newtype()

        return self._parse_expression_statement()

    def _parse_local(self, token: Token) -> LocalDeclaration:
        """Parse ``local name [:: T] {, name [:: T]} [= explist]``."""
        names: list[str] = []
        annotations: list[tuple[str, Expression]] = []

        while True:
            name = self._expect_name("Expected local variable name")
            names.append(name)
            if self._match(TokenType.DOUBLE_COLON):
                annotations.append((name, self._parse_type()))
            if not self._match(TokenType.COMMA):
                break

        values: tuple[Expression, ...] = ()
        if self._match(TokenType.ASSIGN):
            values = self._parse_expression_list()

        return LocalDeclaration(
            names=tuple(names),
            values=values,
            annotations=tuple(annotations),
            location=token.location,
        )

    def _parse_local_function(self, token: Token) -> LocalFunction:
        name = self._expect_name("Expected function name")
        function = self._parse_function_body(token, name=name)
        return LocalFunction(name, function, location=token.location)

    def _parse_function_statement(self) -> Assignment:
        """
        Parse ``function a.b.c:m(...) ... end``.

        The statement is sugar for an assignment of a function literal; a
        method name adds an implicit ``self`` parameter.
        """
        token = self._advance()
        name_token = self._current
        name = self._expect_name("Expected function name")
        target: Expression = Identifier(name, location=name_token.location)
        full_name = name
        is_method = False

        while self._check(TokenType.DOT, TokenType.COLON):
            is_method = self._advance().type == TokenType.COLON
            key_token = self._current
            key = self._expect_name("Expected name after '.' or ':'")
            target = IndexExpression(
                target, StringLiteral(key, location=key_token.location), location=key_token.location
            )
            full_name += (":" if is_method else ".") + key
            if is_method:
                break

        function = self._parse_function_body(token, name=full_name, is_method=is_method)
        return Assignment((target,), (function,), location=token.location)

    def _parse_if(self) -> IfStatement:
        token = self._advance()
        condition = self._parse_expression()
        self._expect(TokenType.THEN, "Expected 'then' after condition")
        then_block = self._parse_block()

        elseif_clauses: list[tuple[Expression, Block]] = []
        else_block: Optional[Block] = None

        while self._match(TokenType.ELSEIF):
            elseif_condition = self._parse_expression()
            self._expect(TokenType.THEN, "Expected 'then' after condition")
            elseif_clauses.append((elseif_condition, self._parse_block()))

        if self._match(TokenType.ELSE):
            else_block = self._parse_block()

        self._expect(TokenType.END, "Expected 'end' to close 'if'")
        return IfStatement(
            condition=condition,
            then_block=then_block,
            elseif_clauses=tuple(elseif_clauses),
            else_block=else_block,
            location=token.location,
        )

    def _parse_while(self) -> WhileStatement:
        token = self._advance()
        condition = self._parse_expression()
        self._expect(TokenType.DO, "Expected 'do' after while condition")
        body = self._parse_block()
        self._expect(TokenType.END, "Expected 'end' to close 'while'")
        return WhileStatement(condition, body, location=token.location)

    def _parse_repeat(self) -> RepeatStatement:
        token = self._advance()
        body = self._parse_block()
        self._expect(TokenType.UNTIL, "Expected 'until' to close 'repeat'")
        condition = self._parse_expression()
        return RepeatStatement(body, condition, location=token.location)

    def _parse_for(self) -> Statement:
        """Parse a numeric or generic for loop."""
        token = self._advance()
        first = self._expect_name("Expected loop variable name")

        if self._match(TokenType.ASSIGN):
            start = self._parse_expression()
            self._expect(TokenType.COMMA, "Expected ',' after for start value")
            stop = self._parse_expression()
            step = self._parse_expression() if self._match(TokenType.COMMA) else None
            self._expect(TokenType.DO, "Expected 'do' in numeric for")
            body = self._parse_block()
            self._expect(TokenType.END, "Expected 'end' to close 'for'")
            return NumericFor(first, start, stop, step, body, location=token.location)

        names = [first]
        while self._match(TokenType.COMMA):
            names.append(self._expect_name("Expected loop variable name"))
        self._expect(TokenType.IN, "Expected '=' or 'in' in for loop")
        iterators = self._parse_expression_list()
        self._expect(TokenType.DO, "Expected 'do' in generic for")
        body = self._parse_block()
        self._expect(TokenType.END, "Expected 'end' to close 'for'")
        return GenericFor(tuple(names), iterators, body, location=token.location)

    def _parse_return(self) -> ReturnStatement:
        token = self._advance()
        values: tuple[Expression, ...] = ()
        if not self._check(*BLOCK_END) and not self._check(TokenType.SEMICOLON):
            values = self._parse_expression_list()
        self._match(TokenType.SEMICOLON)
        if not self._check(*BLOCK_END):
            raise self._error("'return' must be the last statement of a block")
        return ReturnStatement(values, location=token.location)

    def _parse_newtype(self) -> Statement:
        """
        Parse ``newtype Name = T`` or ``newtype Name(a, b) = T``.

        The declaration is compiled right away into an assignment to the
        type registry.
        """
        self._advance()
        lhs = self._parse_suffixed_expression()
        self._expect(TokenType.ASSIGN, "Expected '=' in newtype declaration")
        rhs = self._parse_type()
        return compile_newtype(lhs, rhs, registry=self.registry)

    def _parse_expression_statement(self) -> Statement:
        """Parse an assignment or a call statement."""
        location = self._current.location
        expr = self._parse_suffixed_expression()

        if self._check(TokenType.ASSIGN, TokenType.COMMA):
            targets = [self._ensure_assignable(expr)]
            while self._match(TokenType.COMMA):
                targets.append(self._ensure_assignable(self._parse_suffixed_expression()))
            self._expect(TokenType.ASSIGN, "Expected '=' in assignment")
            values = self._parse_expression_list()
            return Assignment(tuple(targets), values, location=location)

        if not isinstance(expr, (CallExpression, MethodCall)):
            raise self._error("Syntax error: expected assignment or function call")
        return ExpressionStatement(expr, location=location)

    def _ensure_assignable(self, expr: Expression) -> Expression:
        if isinstance(expr, (Identifier, IndexExpression)):
            return expr
        raise self._error("Cannot assign to this expression")

    # -------------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------------

    def _parse_function_body(self, token: Token, name: Optional[str] = None,
                             is_method: bool = False) -> FunctionLiteral:
        """Parse ``( params ) [:: T] block end``."""
        self._expect(TokenType.LPAREN, "Expected '(' to open parameter list")
        params: list[str] = ["self"] if is_method else []
        param_types: list[tuple[str, Expression]] = []
        is_vararg = False

        if not self._check(TokenType.RPAREN):
            while True:
                if self._match(TokenType.ELLIPSIS):
                    is_vararg = True
                    break
                param = self._expect_name("Expected parameter name")
                params.append(param)
                if self._match(TokenType.DOUBLE_COLON):
                    param_types.append((param, self._parse_type()))
                if not self._match(TokenType.COMMA):
                    break
        self._expect(TokenType.RPAREN, "Expected ')' to close parameter list")

        return_type: Optional[Expression] = None
        if self._match(TokenType.DOUBLE_COLON):
            return_type = self._parse_type()

        self._vararg_stack.append(is_vararg)
        body = self._parse_block()
        self._vararg_stack.pop()
        self._expect(TokenType.END, "Expected 'end' to close function")

        return FunctionLiteral(
            params=tuple(params),
            is_vararg=is_vararg,
            body=body,
            param_types=tuple(param_types),
            return_type=return_type,
            name=name,
            location=token.location,
        )

    def _parse_function_signature(self, token: Token) -> FunctionSignature:
        """Parse ``function(T1, T2) return R end`` in type position."""
        self._expect(TokenType.LPAREN, "Expected '(' in function type")
        param_types: list[Expression] = []
        if not self._check(TokenType.RPAREN):
            while True:
                param_types.append(self._parse_expression())
                if not self._match(TokenType.COMMA):
                    break
        self._expect(TokenType.RPAREN, "Expected ')' in function type")
        body = self._parse_block()
        self._expect(TokenType.END, "Expected 'end' to close function type")
        return FunctionSignature(tuple(param_types), body, location=token.location)

    # -------------------------------------------------------------------------
    # Type expressions
    # -------------------------------------------------------------------------

    def _parse_type(self) -> Expression:
        """Parse a type expression after ``::``."""
        self._type_depth += 1
        try:
            return self._parse_expression()
        finally:
            self._type_depth -= 1

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def _parse_expression_list(self) -> tuple[Expression, ...]:
        """Parse a comma-separated list of expressions."""
        expressions = [self._parse_expression()]
        while self._match(TokenType.COMMA):
            expressions.append(self._parse_expression())
        return tuple(expressions)

    def _parse_expression(self, min_precedence: int = Precedence.NONE) -> Expression:
        """
        Parse an expression using precedence climbing.

        Right-associative operators (``..`` and ``^``) parse their right
        operand one level lower so that equal operators nest to the right.
        """
        left = self._parse_unary()

        while True:
            precedence = PRECEDENCE_MAP.get(self._current.type, Precedence.NONE)
            if precedence <= min_precedence:
                break

            operator = self._advance()
            if operator.type in RIGHT_ASSOCIATIVE:
                right = self._parse_expression(precedence - 1)
            else:
                right = self._parse_expression(precedence)
            left = BinaryExpression(
                left=left,
                operator=BINARY_OP_MAP[operator.type],
                right=right,
                location=operator.location,
            )

        return left

    def _parse_unary(self) -> Expression:
        """Parse unary operators, which bind tighter than all but ``^``."""
        token = self._current
        operator = UNARY_OP_MAP.get(token.type)
        if operator is not None:
            self._advance()
            operand = self._parse_expression(Precedence.UNARY)
            return UnaryExpression(operator, operand, location=token.location)
        return self._parse_simple()

    def _parse_simple(self) -> Expression:
        """Parse literals, function literals, table constructors and suffixed expressions."""
        token = self._current

        if self._match(TokenType.NIL):
            return NilLiteral(location=token.location)
        if self._match(TokenType.TRUE):
            return BooleanLiteral(True, location=token.location)
        if self._match(TokenType.FALSE):
            return BooleanLiteral(False, location=token.location)
        if self._match(TokenType.NUMBER):
            return NumberLiteral(token.value, location=token.location)
        if self._match(TokenType.STRING):
            return StringLiteral(token.value, location=token.location)
        if self._check(TokenType.ELLIPSIS):
            if not self._vararg_stack[-1]:
                raise self._error("Cannot use '...' outside a vararg function")
            self._advance()
            return VarargExpression(location=token.location)
        if self._match(TokenType.FUNCTION):
            if self._type_depth:
                if not self._check(TokenType.LPAREN):
                    return Identifier("function", location=token.location)
                return self._parse_function_signature(token)
            return self._parse_function_body(token)
        if self._check(TokenType.LBRACE):
            return self._parse_table()

        return self._parse_suffixed_expression()

    def _parse_primary(self) -> Expression:
        """Parse a name or a parenthesized expression."""
        token = self._current

        if self._match(TokenType.NAME):
            return Identifier(token.value, location=token.location)

        if self._match(TokenType.LPAREN):
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "Expected ')' to close parenthesized expression")
            return ParenExpression(expr, location=token.location)

        raise self._error("Unexpected symbol")

    def _parse_suffixed_expression(self) -> Expression:
        """Parse a primary expression followed by field, index and call suffixes."""
        expr = self._parse_primary()

        while True:
            token = self._current

            if self._match(TokenType.DOT):
                key_token = self._current
                key = self._expect_name("Expected field name after '.'")
                expr = IndexExpression(
                    expr, StringLiteral(key, location=key_token.location), location=token.location
                )
            elif self._match(TokenType.LBRACKET):
                index = self._parse_expression()
                self._expect(TokenType.RBRACKET, "Expected ']' to close index")
                expr = IndexExpression(expr, index, location=token.location)
            elif self._match(TokenType.COLON):
                method = self._expect_name("Expected method name after ':'")
                arguments = self._parse_call_arguments()
                expr = MethodCall(expr, method, arguments, location=token.location)
            elif self._check(TokenType.LPAREN, TokenType.STRING, TokenType.LBRACE):
                arguments = self._parse_call_arguments()
                expr = CallExpression(expr, arguments, location=token.location)
            else:
                return expr

    def _parse_call_arguments(self) -> tuple[Expression, ...]:
        """Parse ``(args)``, a string literal or a table constructor."""
        token = self._current

        if self._match(TokenType.STRING):
            return (StringLiteral(token.value, location=token.location),)
        if self._check(TokenType.LBRACE):
            return (self._parse_table(),)

        self._expect(TokenType.LPAREN, "Expected function arguments")
        if self._match(TokenType.RPAREN):
            return ()
        arguments = self._parse_expression_list()
        self._expect(TokenType.RPAREN, "Expected ')' to close argument list")
        return arguments

    def _parse_table(self) -> TableConstructor:
        """Parse ``{ field {sep field} [sep] }``."""
        token = self._expect(TokenType.LBRACE, "Expected '{'")
        fields: list[TableField] = []

        while not self._check(TokenType.RBRACE):
            field_token = self._current
            if self._match(TokenType.LBRACKET):
                key = self._parse_expression()
                self._expect(TokenType.RBRACKET, "Expected ']' after table key")
                self._expect(TokenType.ASSIGN, "Expected '=' after table key")
                fields.append(TableField(self._parse_expression(), key, location=field_token.location))
            elif self._check(TokenType.NAME) and self._peek().type == TokenType.ASSIGN:
                self._advance()
                self._advance()
                key = StringLiteral(field_token.value, location=field_token.location)
                fields.append(TableField(self._parse_expression(), key, location=field_token.location))
            else:
                fields.append(TableField(self._parse_expression(), location=field_token.location))

            if not self._match(TokenType.COMMA, TokenType.SEMICOLON):
                break

        self._expect(TokenType.RBRACE, "Expected '}' to close table constructor")
        return TableConstructor(tuple(fields), location=token.location)


def parse(tokens: list[Token], source: str = "", registry: str = DEFAULT_REGISTRY) -> Chunk:
    """
    Convenience function to parse tokens into an AST.

    Args:
        tokens: List of tokens from the lexer
        source: Optional source code for error messages
        registry: Name of the type registry global

    Returns:
        The root Chunk AST node
    """
    return Parser(tokens, source, registry).parse()
