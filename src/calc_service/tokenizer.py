"""
Tokenizer for arithmetic expressions.

Breaks an input string into NUMBER, operator and parenthesis tokens. Signs
are never folded into numbers; "-5" is a MINUS followed by a NUMBER.
"""

from dataclasses import dataclass
from enum import Enum

from calc_service.errors import ExpressionTooLongError, LexError


class TokenKind(str, Enum):
    """Token kinds produced by the tokenizer."""
    NUMBER = "NUMBER"
    PLUS = "PLUS"
    MINUS = "MINUS"
    STAR = "STAR"
    SLASH = "SLASH"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    END = "END"


_SINGLE_CHAR_TOKENS = {
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "*": TokenKind.STAR,
    "/": TokenKind.SLASH,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
}


@dataclass(frozen=True)
class Token:
    """A single lexical unit and its source offset."""
    kind: TokenKind
    offset: int
    value: float | None = None
    text: str = ""

    def describe(self) -> str:
        """Human readable form used in syntax error messages."""
        if self.kind is TokenKind.END:
            return "end of input"
        return f"{self.kind.value} {self.text!r}"


def tokenize(text: str, max_length: int | None = None) -> list[Token]:
    """
    Convert an expression string into tokens.

    The returned list always ends with an END token.

    Raises:
        LexError: at the first character that cannot start a token.
        ExpressionTooLongError: if max_length is given and exceeded.
    """
    if max_length is not None and len(text) > max_length:
        raise ExpressionTooLongError(len(text), max_length)

    tokens: list[Token] = []
    pos = 0
    length = len(text)

    while pos < length:
        char = text[pos]

        if char.isspace():
            pos += 1
            continue

        kind = _SINGLE_CHAR_TOKENS.get(char)
        if kind is not None:
            tokens.append(Token(kind=kind, offset=pos, text=char))
            pos += 1
            continue

        if _is_digit(char):
            start = pos
            pos = _scan_digits(text, pos)
            if pos < length and text[pos] == ".":
                if pos + 1 < length and _is_digit(text[pos + 1]):
                    pos = _scan_digits(text, pos + 1)
                else:
                    raise LexError(".", pos)
            literal = text[start:pos]
            tokens.append(Token(kind=TokenKind.NUMBER, offset=start, value=float(literal), text=literal))
            continue

        raise LexError(char, pos)

    tokens.append(Token(kind=TokenKind.END, offset=length))
    return tokens


def _is_digit(char: str) -> bool:
    # str.isdigit() accepts superscripts and other Unicode digits float() rejects
    return "0" <= char <= "9"


def _scan_digits(text: str, pos: int) -> int:
    while pos < len(text) and _is_digit(text[pos]):
        pos += 1
    return pos
