"""
Recursive-descent parser for Cyano.

Grammar, loosest binding first:

    Program    := NEWLINE* (Statement NEWLINE*)* EOF
    Statement  := IfElse | ForLoop | 'let' IDENT '=' PipeExpr
                | IDENT '=' PipeExpr | PipeExpr
    IfElse     := 'if' PipeExpr NEWLINE Statement* ('else' NEWLINE Statement*)? 'end'
    ForLoop    := 'for' IDENT 'in' PipeExpr NEWLINE Statement* 'end'
    PipeExpr   := CompExpr ('|>' CompExpr)*
    CompExpr   := AddExpr (('=='|'!='|'<'|'>'|'<='|'>='|'&&'|'||') AddExpr)*
    AddExpr    := MulExpr (('+'|'-') MulExpr)*
    MulExpr    := UnaryExpr (('*'|'/'|'%') UnaryExpr)*
    UnaryExpr  := '!' UnaryExpr | Primary

Binary levels fold to the left. The parser stops at the first unexpected
token with a ParseError; it never returns a partial tree. Brackets, calls and
prefix operators may nest at most `max_nesting` levels deep.
"""
from typing import List, Optional, Tuple

from cyano.cyano_datatypes import (
    ArrayLiteral, Assignment, BinOp, Call, Display, Expr, ExprStatement, ForLoop,
    IfElse, Literal, ObjectLiteral, Pipe, Program, Stmt, Token, TokenType, UnaryOp,
    Variable,
)
from cyano.cyano_errors import ParseError
from cyano.cyano_lexer import tokenize

COMPARISON_OPS = (
    TokenType.EQ, TokenType.NEQ, TokenType.LT, TokenType.GT,
    TokenType.LTE, TokenType.GTE, TokenType.AND, TokenType.OR,
)
ADDITIVE_OPS = (TokenType.PLUS, TokenType.MINUS)
MULTIPLICATIVE_OPS = (TokenType.STAR, TokenType.SLASH, TokenType.MOD)

DISPLAY_NAMES = ("display", "print")

# Each nesting level costs about a dozen Python frames in the descent.
DEFAULT_MAX_NESTING = 48


class Parser:
    def __init__(self, tokens: List[Token], max_nesting: int = DEFAULT_MAX_NESTING):
        if not tokens or tokens[-1].kind != TokenType.EOF:
            last = tokens[-1] if tokens else None
            line = last.line if last else 1
            col = last.col if last else 1
            tokens = list(tokens) + [Token(TokenType.EOF, None, line, col)]
        self.tokens = tokens
        self.pos = 0
        self.max_nesting = max_nesting
        self._depth = 0

    # ------------------------------------------------------------------
    # Token cursor

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def at(self, *kinds: TokenType) -> bool:
        return self.current.kind in kinds

    def advance(self) -> Token:
        tok = self.current
        # never step past EOF
        if tok.kind != TokenType.EOF:
            self.pos += 1
        return tok

    def expect(self, kind: TokenType) -> Token:
        if not self.at(kind):
            tok = self.current
            detail = f" ({tok.value!r})" if tok.value is not None and tok.kind != TokenType.NEWLINE else ""
            raise ParseError(f"Expected {kind}, got {tok.kind}{detail}", tok.line, tok.col)
        return self.advance()

    def skip_newlines(self):
        while self.at(TokenType.NEWLINE):
            self.advance()

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self.current
        return ParseError(message, tok.line, tok.col)

    def _nest(self, parse_fn):
        tok = self.current
        self._depth += 1
        try:
            if self._depth > self.max_nesting:
                raise self.error(f"Expression nested too deeply (max_nesting={self.max_nesting})", tok)
            return parse_fn()
        finally:
            self._depth -= 1

    # ------------------------------------------------------------------
    # Statements

    def parse_program(self) -> Program:
        statements: List[Stmt] = []
        self.skip_newlines()
        while not self.at(TokenType.EOF):
            statements.append(self.parse_statement())
            self.skip_newlines()
        return Program(statements, line=1)

    def parse_statement(self) -> Stmt:
        self.skip_newlines()

        if self.at(TokenType.IF):
            return self.parse_if()
        if self.at(TokenType.FOR):
            return self.parse_for()

        if self.at(TokenType.LET):
            let_tok = self.advance()
            name_tok = self.expect(TokenType.IDENT)
            self.expect(TokenType.ASSIGN)
            return Assignment(name_tok.value, self.parse_pipe_expr(), line=let_tok.line)

        # x = expr, but not `x = = ...`
        if (self.at(TokenType.IDENT) and self.peek(1).kind == TokenType.ASSIGN
                and self.peek(2).kind != TokenType.ASSIGN):
            name_tok = self.advance()
            self.advance()
            return Assignment(name_tok.value, self.parse_pipe_expr(), line=name_tok.line)

        expr = self.parse_pipe_expr()
        return ExprStatement(expr, line=expr.line)

    def parse_block(self, *terminators: TokenType) -> List[Stmt]:
        body: List[Stmt] = []
        self.skip_newlines()
        while not self.at(*terminators, TokenType.EOF):
            body.append(self.parse_statement())
            self.skip_newlines()
        return body

    def parse_if(self) -> IfElse:
        if_tok = self.expect(TokenType.IF)
        condition = self.parse_pipe_expr()
        self.expect(TokenType.NEWLINE)
        then_body = self.parse_block(TokenType.ELSE, TokenType.END)

        else_body = None
        if self.at(TokenType.ELSE):
            self.advance()
            self.expect(TokenType.NEWLINE)
            else_body = self.parse_block(TokenType.END)

        self.expect(TokenType.END)
        return IfElse(condition, then_body, else_body, line=if_tok.line)

    def parse_for(self) -> ForLoop:
        for_tok = self.expect(TokenType.FOR)
        var_tok = self.expect(TokenType.IDENT)
        self.expect(TokenType.IN)
        iterable = self.parse_pipe_expr()
        self.expect(TokenType.NEWLINE)
        body = self.parse_block(TokenType.END)
        self.expect(TokenType.END)
        return ForLoop(var_tok.value, iterable, body, line=for_tok.line)

    # ------------------------------------------------------------------
    # Expressions

    def parse_pipe_expr(self) -> Expr:
        left = self.parse_comp_expr()
        while self.at(TokenType.PIPE):
            self.advance()
            self.skip_newlines()
            target_tok = self.current
            right = self.parse_comp_expr()
            if not isinstance(right, (Call, Display)):
                raise self.error("Pipe target must be a function call", target_tok)
            left = Pipe(left, right, line=left.line)
        return left

    def _parse_left_fold(self, operand, ops) -> Expr:
        left = operand()
        while self.at(*ops):
            op_tok = self.advance()
            right = operand()
            left = BinOp(op_tok.value, left, right, line=op_tok.line)
        return left

    def parse_comp_expr(self) -> Expr:
        return self._parse_left_fold(self.parse_add_expr, COMPARISON_OPS)

    def parse_add_expr(self) -> Expr:
        return self._parse_left_fold(self.parse_mul_expr, ADDITIVE_OPS)

    def parse_mul_expr(self) -> Expr:
        return self._parse_left_fold(self.parse_unary_expr, MULTIPLICATIVE_OPS)

    def parse_unary_expr(self) -> Expr:
        if self.at(TokenType.NOT):
            op_tok = self.advance()
            return UnaryOp("!", self._nest(self.parse_unary_expr), line=op_tok.line)
        return self.parse_primary()

    def parse_primary(self) -> Expr:
        return self._nest(self._parse_primary)

    def _parse_primary(self) -> Expr:
        tok = self.current

        if self.at(TokenType.LPAREN):
            self.advance()
            self.skip_newlines()
            expr = self.parse_pipe_expr()
            self.skip_newlines()
            self.expect(TokenType.RPAREN)
            return expr

        if self.at(TokenType.LBRACKET):
            self.advance()
            items = self.parse_delimited(TokenType.RBRACKET, self.parse_pipe_expr)
            return ArrayLiteral(items, line=tok.line)

        if self.at(TokenType.LBRACE):
            self.advance()
            entries = self.parse_delimited(TokenType.RBRACE, self.parse_object_entry)
            return ObjectLiteral(entries, line=tok.line)

        if self.at(TokenType.NUMBER, TokenType.STRING, TokenType.BACKTICK_STRING):
            self.advance()
            return Literal(tok.value, line=tok.line, source_kind=tok.kind)
        if self.at(TokenType.TRUE):
            self.advance()
            return Literal(True, line=tok.line, source_kind=tok.kind)
        if self.at(TokenType.FALSE):
            self.advance()
            return Literal(False, line=tok.line, source_kind=tok.kind)
        if self.at(TokenType.NULL):
            self.advance()
            return Literal(None, line=tok.line, source_kind=tok.kind)

        if self.at(TokenType.MINUS):
            self.advance()
            return UnaryOp("-", self.parse_primary(), line=tok.line)

        if self.at(TokenType.IDENT):
            return self.parse_identifier_expr()

        detail = f" ({tok.value!r})" if tok.value is not None and tok.kind != TokenType.NEWLINE else ""
        raise self.error(f"Unexpected token: {tok.kind}{detail}", tok)

    def parse_identifier_expr(self) -> Expr:
        ident = self.advance()
        name = ident.value

        if name in DISPLAY_NAMES and self.at(TokenType.LPAREN):
            self.advance()
            return Display(self.parse_arguments(), line=ident.line, name=name)

        # Namespace.function(args): capitalized identifier directly followed by '.'
        if self.at(TokenType.DOT) and name[:1].isupper():
            self.advance()
            func_tok = self.expect(TokenType.IDENT)
            self.expect(TokenType.LPAREN)
            return Call(name, func_tok.value, self.parse_arguments(), line=ident.line)

        if self.at(TokenType.LPAREN):
            self.advance()
            return Call(None, name, self.parse_arguments(), line=ident.line)

        return Variable(name, line=ident.line)

    def parse_arguments(self) -> List[Expr]:
        return self.parse_delimited(TokenType.RPAREN, self.parse_pipe_expr)

    def parse_object_entry(self) -> Tuple[str, Expr]:
        if self.at(TokenType.STRING, TokenType.BACKTICK_STRING):
            key = self.advance().value
        else:
            key = self.expect(TokenType.IDENT).value
        self.expect(TokenType.COLON)
        return key, self.parse_pipe_expr()

    def parse_delimited(self, closing: TokenType, parse_item) -> list:
        """Comma-separated items up to `closing`; newlines ignored, one trailing comma allowed."""
        items = []
        self.skip_newlines()
        while not self.at(closing):
            if self.at(TokenType.EOF):
                raise self.error(f"Expected {closing}, got {TokenType.EOF}")
            items.append(parse_item())
            self.skip_newlines()
            if not self.at(TokenType.COMMA):
                break
            self.advance()
            self.skip_newlines()
        self.expect(closing)
        return items


def parse(tokens: List[Token], max_nesting: int = DEFAULT_MAX_NESTING) -> Program:
    """Build a Program from a token list, or raise ParseError."""
    return Parser(tokens, max_nesting).parse_program()


def parse_source(source: str, max_nesting: int = DEFAULT_MAX_NESTING) -> Program:
    return parse(tokenize(source), max_nesting)


__all__ = ["DEFAULT_MAX_NESTING", "Parser", "parse", "parse_source"]
