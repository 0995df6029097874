"""
Recursive-descent parser for arithmetic expressions.

Grammar (left-associative, standard precedence):

    expr   := term (('+' | '-') term)*
    term   := factor (('*' | '/') factor)*
    factor := NUMBER | '(' expr ')'

Operator chains are consumed by loops, so the only recursion is into
parenthesized sub-expressions. That recursion is bounded by an explicit
depth counter rather than the interpreter's stack limit.
"""

from dataclasses import dataclass
from typing import Union

from calc_service.errors import ExpressionSyntaxError
from calc_service.models import ErrorCode
from calc_service.tokenizer import Token, TokenKind, tokenize

DEFAULT_MAX_DEPTH = 64


@dataclass(frozen=True)
class Literal:
    """A numeric leaf."""
    value: float


@dataclass(frozen=True)
class BinaryOp:
    """A binary operation node; op is one of '+', '-', '*', '/'."""
    op: str
    left: "ExpressionNode"
    right: "ExpressionNode"


ExpressionNode = Union[Literal, BinaryOp]

_ADDITIVE = {TokenKind.PLUS: "+", TokenKind.MINUS: "-"}
_MULTIPLICATIVE = {TokenKind.STAR: "*", TokenKind.SLASH: "/"}


class Parser:
    """Builds an expression tree from a token list."""

    def __init__(self, tokens: list[Token], max_depth: int = DEFAULT_MAX_DEPTH):
        if not tokens or tokens[-1].kind is not TokenKind.END:
            tokens = list(tokens) + [Token(kind=TokenKind.END, offset=_end_offset(tokens))]
        self.tokens = tokens
        self.max_depth = max_depth
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def parse(self) -> ExpressionNode:
        """Parse the whole token list into a single expression."""
        if self.current.kind is TokenKind.END:
            raise ExpressionSyntaxError(
                ErrorCode.EMPTY_EXPRESSION,
                "Expression is empty",
                position=self.current.offset,
                expected="NUMBER or '('",
                found="end of input",
            )

        node = self._parse_expr(depth=0)

        token = self.current
        if token.kind is TokenKind.RPAREN:
            raise ExpressionSyntaxError(
                ErrorCode.MISSING_OPENING_PAREN,
                f"Unmatched ')' at offset {token.offset}; missing '('",
                position=token.offset,
                expected="end of input",
                found=token.describe(),
            )
        if token.kind is not TokenKind.END:
            raise ExpressionSyntaxError(
                ErrorCode.TRAILING_TOKENS,
                f"Unexpected {token.describe()} at offset {token.offset} after complete expression",
                position=token.offset,
                expected="end of input",
                found=token.describe(),
            )
        return node

    def _advance(self) -> Token:
        token = self.current
        if token.kind is not TokenKind.END:
            self.pos += 1
        return token

    def _parse_expr(self, depth: int) -> ExpressionNode:
        node = self._parse_term(depth)
        while self.current.kind in _ADDITIVE:
            op = _ADDITIVE[self._advance().kind]
            node = BinaryOp(op, node, self._parse_term(depth))
        return node

    def _parse_term(self, depth: int) -> ExpressionNode:
        node = self._parse_factor(depth)
        while self.current.kind in _MULTIPLICATIVE:
            op = _MULTIPLICATIVE[self._advance().kind]
            node = BinaryOp(op, node, self._parse_factor(depth))
        return node

    def _parse_factor(self, depth: int) -> ExpressionNode:
        token = self.current

        if token.kind is TokenKind.NUMBER:
            self._advance()
            return Literal(token.value)

        if token.kind is TokenKind.LPAREN:
            if depth >= self.max_depth:
                raise ExpressionSyntaxError(
                    ErrorCode.TOO_DEEP,
                    f"Parentheses nested deeper than {self.max_depth} levels",
                    position=token.offset,
                )
            self._advance()
            node = self._parse_expr(depth + 1)
            closing = self.current
            if closing.kind is not TokenKind.RPAREN:
                raise ExpressionSyntaxError(
                    ErrorCode.MISSING_CLOSING_PAREN,
                    f"Expected ')' to close '(' at offset {token.offset}, found {closing.describe()}",
                    position=closing.offset,
                    expected="')'",
                    found=closing.describe(),
                )
            self._advance()
            return node

        raise ExpressionSyntaxError(
            ErrorCode.UNEXPECTED_TOKEN,
            f"Expected a number or '(' at offset {token.offset}, found {token.describe()}",
            position=token.offset,
            expected="NUMBER or '('",
            found=token.describe(),
        )


def parse(tokens: list[Token], max_depth: int = DEFAULT_MAX_DEPTH) -> ExpressionNode:
    """Parse tokens into an expression tree."""
    return Parser(tokens, max_depth=max_depth).parse()


def parse_expression(
    text: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_length: int | None = None,
) -> ExpressionNode:
    """Tokenize and parse an expression string in one step."""
    return parse(tokenize(text, max_length=max_length), max_depth=max_depth)


def _end_offset(tokens: list[Token]) -> int:
    if not tokens:
        return 0
    last = tokens[-1]
    return last.offset + max(len(last.text), 1)
