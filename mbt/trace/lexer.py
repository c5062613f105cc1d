"""Tokenizer for the TLA+ value notation printed by model checkers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from mbt.errors import PositionedSyntaxError


class TokenKind(str, Enum):
    LBRACE = "{"
    RBRACE = "}"
    LANGLE = "<<"
    RANGLE = ">>"
    LBRACKET = "["
    RBRACKET = "]"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    EQ = "="
    AND = "/\\"
    MAPSTO = "|->"
    COLONGT = ":>"
    ATAT = "@@"
    INT = "int"
    STRING = "string"
    IDENT = "ident"
    UNKNOWN = "unknown"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    column: int


_PUNCTUATION = (
    ("|->", TokenKind.MAPSTO),
    ("/\\", TokenKind.AND),
    ("<<", TokenKind.LANGLE),
    (">>", TokenKind.RANGLE),
    (":>", TokenKind.COLONGT),
    ("@@", TokenKind.ATAT),
    ("{", TokenKind.LBRACE),
    ("}", TokenKind.RBRACE),
    ("[", TokenKind.LBRACKET),
    ("]", TokenKind.RBRACKET),
    ("(", TokenKind.LPAREN),
    (")", TokenKind.RPAREN),
    (",", TokenKind.COMMA),
    ("=", TokenKind.EQ),
)

_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "r": "\r", "f": "\f"}


class Lexer:
    """Lazy tokenizer; characters are only examined when a token is requested.

    ``line`` and ``column`` give the position of ``text[0]`` in the source
    document so that errors point at the original file.
    """

    def __init__(self, text: str, *, line: int = 1, column: int = 1) -> None:
        self._text = text
        self._pos = 0
        self._line = line
        self._column = column
        self._peeked: Optional[Token] = None

    def peek(self) -> Token:
        if self._peeked is None:
            self._peeked = self._scan()
        return self._peeked

    def next(self) -> Token:
        token = self.peek()
        self._peeked = None
        return token

    def expect(self, kind: TokenKind, what: str) -> Token:
        token = self.next()
        if token.kind is not kind:
            raise PositionedSyntaxError(f"expected {what}, found {_describe(token)}", token.line, token.column)
        return token

    # -----------------------------------------------------------------------
    # Scanning
    # -----------------------------------------------------------------------
    def _advance(self, count: int = 1) -> None:
        for _ in range(count):
            if self._text[self._pos] == "\n":
                self._line += 1
                self._column = 1
            else:
                self._column += 1
            self._pos += 1

    def _startswith(self, prefix: str) -> bool:
        return self._text.startswith(prefix, self._pos)

    def _skip_trivia(self) -> None:
        text = self._text
        while self._pos < len(text):
            ch = text[self._pos]
            if ch.isspace():
                self._advance()
            elif self._startswith("\\*"):
                while self._pos < len(text) and text[self._pos] != "\n":
                    self._advance()
            elif self._startswith("(*"):
                self._skip_block_comment()
            else:
                return

    def _skip_block_comment(self) -> None:
        line, column = self._line, self._column
        depth = 0
        while self._pos < len(self._text):
            if self._startswith("(*"):
                depth += 1
                self._advance(2)
            elif self._startswith("*)"):
                depth -= 1
                self._advance(2)
                if depth == 0:
                    return
            else:
                self._advance()
        raise PositionedSyntaxError("unterminated comment", line, column)

    def _scan(self) -> Token:
        self._skip_trivia()
        line, column = self._line, self._column
        if self._pos >= len(self._text):
            return Token(TokenKind.EOF, "", line, column)
        ch = self._text[self._pos]
        if ch == '"':
            return self._scan_string(line, column)
        if ch.isdigit() or (ch == "-" and self._pos + 1 < len(self._text) and self._text[self._pos + 1].isdigit()):
            return self._scan_while(TokenKind.INT, line, column, str.isdigit, skip_first=True)
        if ch.isalpha() or ch == "_":
            return self._scan_while(TokenKind.IDENT, line, column, lambda c: c.isalnum() or c == "_")
        for text, kind in _PUNCTUATION:
            if self._startswith(text):
                self._advance(len(text))
                return Token(kind, text, line, column)
        self._advance()
        return Token(TokenKind.UNKNOWN, ch, line, column)

    def _scan_while(self, kind: TokenKind, line: int, column: int, accept, *, skip_first: bool = False) -> Token:
        start = self._pos
        if skip_first:
            self._advance()
        while self._pos < len(self._text) and accept(self._text[self._pos]):
            self._advance()
        return Token(kind, self._text[start : self._pos], line, column)

    def _scan_string(self, line: int, column: int) -> Token:
        self._advance()
        chars = []
        text = self._text
        while self._pos < len(text):
            ch = text[self._pos]
            if ch == '"':
                self._advance()
                return Token(TokenKind.STRING, "".join(chars), line, column)
            if ch == "\n":
                break
            if ch == "\\" and self._pos + 1 < len(text):
                escaped = _ESCAPES.get(text[self._pos + 1])
                if escaped is None:
                    raise PositionedSyntaxError(f"invalid escape \\{text[self._pos + 1]}", self._line, self._column)
                chars.append(escaped)
                self._advance(2)
                continue
            chars.append(ch)
            self._advance()
        raise PositionedSyntaxError("unterminated string", line, column)


def _describe(token: Token) -> str:
    if token.kind is TokenKind.EOF:
        return "end of input"
    return repr(token.text)


__all__ = ["Lexer", "Token", "TokenKind"]
