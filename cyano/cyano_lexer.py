"""
Tokenizer for Cyano cell source.

Newlines are significant (they separate statements), comments start with
`//` or `#`, and unknown characters are skipped rather than rejected. The
token stream always ends with exactly one EOF token.
"""
import logging
from typing import List, Optional

from cyano.cyano_datatypes import KEYWORDS, Token, TokenType
from cyano.cyano_errors import LexAnomaly

logger = logging.getLogger(__name__)

QUOTED_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}
BACKTICK_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "`": "`"}

TWO_CHAR_OPERATORS = {
    "|>": TokenType.PIPE,
    "==": TokenType.EQ,
    "!=": TokenType.NEQ,
    "<=": TokenType.LTE,
    ">=": TokenType.GTE,
    "&&": TokenType.AND,
    "||": TokenType.OR,
}

SINGLE_CHAR_TOKENS = {
    "=": TokenType.ASSIGN,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    ":": TokenType.COLON,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "!": TokenType.NOT,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "%": TokenType.MOD,
}

# After one of these a '-' directly followed by a digit starts a negative literal.
NEGATIVE_LITERAL_PREFIXES = frozenset({
    TokenType.ASSIGN, TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE,
    TokenType.COMMA, TokenType.COLON, TokenType.PIPE,
    TokenType.EQ, TokenType.NEQ, TokenType.LT, TokenType.GT, TokenType.LTE, TokenType.GTE,
    TokenType.AND, TokenType.OR,
    TokenType.PLUS, TokenType.MINUS, TokenType.STAR, TokenType.SLASH, TokenType.MOD,
    TokenType.NEWLINE,
})


def _is_ident_start(ch: Optional[str]) -> bool:
    return ch is not None and (ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z"))


def _is_ident_char(ch: Optional[str]) -> bool:
    return _is_ident_start(ch) or _is_digit(ch)


def _is_digit(ch: Optional[str]) -> bool:
    return ch is not None and "0" <= ch <= "9"


class Lexer:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.current_char = text[0] if text else None
        self.line = 1
        self.column = 1
        self.tokens: List[Token] = []
        self.anomalies: List[LexAnomaly] = []

    def advance(self, n: int = 1):
        for _ in range(n):
            if self.current_char is None:
                return
            if self.current_char == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.pos += 1
            self.current_char = self.text[self.pos] if self.pos < len(self.text) else None

    def peek(self, offset: int = 1) -> Optional[str]:
        idx = self.pos + offset
        if idx >= len(self.text):
            return None
        return self.text[idx]

    def add_token(self, kind: TokenType, value, line: int, col: int):
        self.tokens.append(Token(kind, value, line, col))

    def skip_comment(self):
        while self.current_char is not None and self.current_char != "\n":
            self.advance()

    def read_string(self, quote: str, escapes: dict) -> str:
        # Unterminated strings run to the end of input.
        self.advance()
        result = []
        while self.current_char is not None and self.current_char != quote:
            if self.current_char == "\\":
                self.advance()
                if self.current_char is None:
                    break
                result.append(escapes.get(self.current_char, self.current_char))
            else:
                result.append(self.current_char)
            self.advance()
        self.advance()
        return "".join(result)

    def read_number(self) -> float:
        digits = []
        if self.current_char == "-":
            digits.append("-")
            self.advance()
        while _is_digit(self.current_char):
            digits.append(self.current_char)
            self.advance()
        if self.current_char == "." and _is_digit(self.peek()):
            digits.append(".")
            self.advance()
            while _is_digit(self.current_char):
                digits.append(self.current_char)
                self.advance()
        return float("".join(digits))

    def read_identifier(self) -> str:
        chars = []
        while _is_ident_char(self.current_char):
            chars.append(self.current_char)
            self.advance()
        return "".join(chars)

    def _negative_literal_allowed(self) -> bool:
        if not self.tokens:
            return True
        return self.tokens[-1].kind in NEGATIVE_LITERAL_PREFIXES

    def tokenize(self) -> List[Token]:
        while self.current_char is not None:
            ch = self.current_char
            line, col = self.line, self.column

            # spaces/tabs/CR only; newlines are tokens
            if ch in " \t\r":
                self.advance()
                continue

            if ch == "\n":
                self.add_token(TokenType.NEWLINE, "\n", line, col)
                self.advance()
                continue

            if (ch == "/" and self.peek() == "/") or ch == "#":
                self.skip_comment()
                continue

            if ch == "`":
                self.add_token(TokenType.BACKTICK_STRING, self.read_string("`", BACKTICK_ESCAPES), line, col)
                continue

            if ch in "\"'":
                self.add_token(TokenType.STRING, self.read_string(ch, QUOTED_ESCAPES), line, col)
                continue

            if _is_digit(ch) or (ch == "-" and _is_digit(self.peek()) and self._negative_literal_allowed()):
                self.add_token(TokenType.NUMBER, self.read_number(), line, col)
                continue

            pair = ch + (self.peek() or "")
            if pair in TWO_CHAR_OPERATORS:
                self.add_token(TWO_CHAR_OPERATORS[pair], pair, line, col)
                self.advance(2)
                continue

            if ch in SINGLE_CHAR_TOKENS:
                self.add_token(SINGLE_CHAR_TOKENS[ch], ch, line, col)
                self.advance()
                continue

            if _is_ident_start(ch):
                ident = self.read_identifier()
                self.add_token(KEYWORDS.get(ident, TokenType.IDENT), ident, line, col)
                continue

            # Unknown character: skip it
            self.anomalies.append(LexAnomaly(ch, line, col))
            logger.debug("skipping unrecognized character %r at line %d, col %d", ch, line, col)
            self.advance()

        self.add_token(TokenType.EOF, None, self.line, self.column)
        return self.tokens


def tokenize(source: str) -> List[Token]:
    """Convert source text into tokens. Never raises for string input."""
    return Lexer(source).tokenize()


__all__ = ["Lexer", "tokenize"]
