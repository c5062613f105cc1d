"""Counterexample trace parser.

Understands the state blocks printed by the supported checkers::

    State 2: <Next line 12, col 5 to line 14, col 20 of module Counter>   (TLC)
    2: <Next line 12, col 5 to line 14, col 20 of module Counter>         (TLC -tool)
    State1 ==                                                            (Apalache)

Each block body is a conjunction of ``name = value`` assignments. Values are
mapped onto JSON: sequences become lists, records objects, sets
``{"#set": [...]}`` and functions ``{"#map": [[key, value], ...]}``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from mbt import obs
from mbt.errors import EmptyOrMalformedTrace, IntegerOverflow, PositionedSyntaxError, UnrecognizedLiteral

from .lexer import Lexer, Token, TokenKind

logger = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

SET_KEY = "#set"
MAP_KEY = "#map"
OUTCOME_KEY = "#outcome"

# Composite values nested deeper than this are rejected with a position
# instead of exhausting the interpreter stack.
MAX_NESTING = 100


class Outcome(str, Enum):
    VERIFIED = "verified"
    VIOLATED = "violated"


@dataclass(frozen=True)
class TraceState:
    number: int
    label: str
    variables: Dict[str, Any]


@dataclass(frozen=True)
class JsonTrace:
    states: Tuple[TraceState, ...]
    outcome: Outcome
    warnings: Tuple[str, ...] = field(default=())

    @property
    def verified(self) -> bool:
        return self.outcome is Outcome.VERIFIED

    def to_json(self) -> List[Dict[str, Any]]:
        payload: List[Dict[str, Any]] = [dict(state.variables) for state in self.states]
        payload.append({OUTCOME_KEY: self.outcome.value})
        return payload


# ---------------------------------------------------------------------------
# Block splitting
# ---------------------------------------------------------------------------
_TLC_HEADER = re.compile(r"^State\s+(\d+):\s*(.*?)\s*$")
_TLC_TOOL_HEADER = re.compile(r"^(\d+):\s*(<.*>)\s*$")
_APALACHE_HEADER = re.compile(r"^State(\d+)\s*==(.*)$")
# Structural lines that end a block body without belonging to it.
_TERMINATOR = re.compile(r"^(?:@!@!@|={4,}|-{4,}|[A-Za-z_][A-Za-z0-9_]*\s*==)")

VERIFIED_MARKERS = (
    re.compile(r"^\s*\\\*\s*outcome:\s*verified\s*$", re.MULTILINE),
    re.compile(r"No error has been found"),
    re.compile(r"The outcome is:\s*NoError"),
)


@dataclass
class _RawBlock:
    number: int
    label: str
    line: int
    column: int
    body: List[str] = field(default_factory=list)


def _match_header(line: str) -> Optional[Tuple[int, str, Optional[str], int]]:
    """Return ``(number, label, body_on_same_line, body_column)`` for a header."""

    match = _TLC_HEADER.match(line)
    if match:
        return int(match.group(1)), match.group(2), None, 1
    match = _TLC_TOOL_HEADER.match(line)
    if match:
        return int(match.group(1)), match.group(2), None, 1
    match = _APALACHE_HEADER.match(line)
    if match:
        number = int(match.group(1))
        return number, f"<State{number}>", match.group(2), match.start(2) + 1
    return None


def _split_blocks(text: str) -> List[_RawBlock]:
    blocks: List[_RawBlock] = []
    current: Optional[_RawBlock] = None
    for lineno, line in enumerate(text.splitlines(), start=1):
        header = _match_header(line)
        if header is not None:
            number, label, tail, column = header
            if tail is not None:
                current = _RawBlock(number, label, lineno, column, [tail])
            else:
                current = _RawBlock(number, label, lineno + 1, 1)
            blocks.append(current)
            continue
        if _TERMINATOR.match(line):
            current = None
            continue
        if current is not None:
            current.body.append(line)
    return blocks


def has_verified_marker(text: str) -> bool:
    return any(marker.search(text) for marker in VERIFIED_MARKERS)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------
_OPENERS = (TokenKind.LBRACE, TokenKind.LANGLE, TokenKind.LBRACKET, TokenKind.LPAREN)


class _BodyParser:
    def __init__(self, lexer: Lexer, *, max_nesting: int = MAX_NESTING) -> None:
        self.lexer = lexer
        self.max_nesting = max_nesting
        self.depth = 0

    def assignments(self) -> Dict[str, Any]:
        lexer = self.lexer
        variables: Dict[str, Any] = {}
        if lexer.peek().kind is TokenKind.AND:
            lexer.next()
        while True:
            name = lexer.expect(TokenKind.IDENT, "a variable name")
            lexer.expect(TokenKind.EQ, "'='")
            if name.text in variables:
                raise PositionedSyntaxError(f"variable {name.text!r} assigned twice", name.line, name.column)
            variables[name.text] = self.value()
            if lexer.peek().kind is not TokenKind.AND:
                return variables
            lexer.next()

    def value(self) -> Any:
        token = self.lexer.next()
        kind = token.kind
        if kind is TokenKind.INT:
            return _integer(token)
        if kind is TokenKind.STRING:
            return token.text
        if kind is TokenKind.IDENT and token.text in ("TRUE", "FALSE"):
            return token.text == "TRUE"
        if kind in _OPENERS or (kind is TokenKind.IDENT and token.text == "SetAsFun"):
            self.depth += 1
            if self.depth > self.max_nesting:
                raise PositionedSyntaxError(
                    f"value nested deeper than {self.max_nesting} levels", token.line, token.column
                )
            try:
                return self._composite(token)
            finally:
                self.depth -= 1
        raise UnrecognizedLiteral(token.text, token.line, token.column)

    def _composite(self, token: Token) -> Any:
        kind = token.kind
        if kind is TokenKind.LBRACE:
            return {SET_KEY: self._items(TokenKind.RBRACE)}
        if kind is TokenKind.LANGLE:
            return self._items(TokenKind.RANGLE)
        if kind is TokenKind.LBRACKET:
            return self._record()
        if kind is TokenKind.LPAREN:
            return self._function()
        return self._set_as_fun(token)

    def _items(self, closing: TokenKind) -> List[Any]:
        items: List[Any] = []
        if self.lexer.peek().kind is closing:
            self.lexer.next()
            return items
        while True:
            items.append(self.value())
            token = self.lexer.next()
            if token.kind is closing:
                return items
            if token.kind is not TokenKind.COMMA:
                raise PositionedSyntaxError(
                    f"expected ',' or {closing.value!r}, found {token.text or 'end of input'!r}",
                    token.line,
                    token.column,
                )

    def _record(self) -> Dict[str, Any]:
        lexer = self.lexer
        record: Dict[str, Any] = {}
        if lexer.peek().kind is TokenKind.RBRACKET:
            lexer.next()
            return record
        while True:
            name = lexer.expect(TokenKind.IDENT, "a record field")
            lexer.expect(TokenKind.MAPSTO, "'|->'")
            record[name.text] = self.value()
            token = lexer.next()
            if token.kind is TokenKind.RBRACKET:
                return record
            if token.kind is not TokenKind.COMMA:
                raise PositionedSyntaxError("expected ',' or ']' in record", token.line, token.column)

    def _function(self) -> Dict[str, Any]:
        lexer = self.lexer
        pairs: List[List[Any]] = []
        while True:
            key = self.value()
            lexer.expect(TokenKind.COLONGT, "':>'")
            pairs.append([key, self.value()])
            token = lexer.next()
            if token.kind is TokenKind.RPAREN:
                return {MAP_KEY: pairs}
            if token.kind is not TokenKind.ATAT:
                raise PositionedSyntaxError("expected '@@' or ')' in function", token.line, token.column)

    def _set_as_fun(self, start: Token) -> Dict[str, Any]:
        self.lexer.expect(TokenKind.LPAREN, "'(' after SetAsFun")
        inner = self.lexer.peek()
        if inner.kind is not TokenKind.LBRACE:
            raise PositionedSyntaxError("SetAsFun expects a set of pairs", inner.line, inner.column)
        pairs = self.value()[SET_KEY]
        self.lexer.expect(TokenKind.RPAREN, "')'")
        for pair in pairs:
            if not isinstance(pair, list) or len(pair) != 2:
                raise PositionedSyntaxError("SetAsFun elements must be <<key, value>> pairs", start.line, start.column)
        return {MAP_KEY: [list(pair) for pair in pairs]}


def _integer(token: Token) -> int:
    number = int(token.text)
    if number < INT64_MIN or number > INT64_MAX:
        raise IntegerOverflow(token.text, token.line, token.column)
    return number


def parse_value(text: str) -> Any:
    """Parse a single TLA+ value; the whole text must be consumed."""

    lexer = Lexer(text)
    value = _BodyParser(lexer).value()
    rest = lexer.peek()
    if rest.kind is not TokenKind.EOF:
        raise PositionedSyntaxError(f"unexpected {rest.text!r} after value", rest.line, rest.column)
    return value


# ---------------------------------------------------------------------------
# Trace
# ---------------------------------------------------------------------------
class TraceParser:
    def __init__(self, *, strict_trailing: bool = False) -> None:
        self.strict_trailing = strict_trailing

    def parse(self, text: str) -> JsonTrace:
        blocks = _split_blocks(text)
        states: List[TraceState] = []
        warnings: List[str] = []
        for index, block in enumerate(blocks):
            last = index == len(blocks) - 1
            lexer = Lexer("\n".join(block.body), line=block.line, column=block.column)
            try:
                variables = _BodyParser(lexer).assignments()
            except PositionedSyntaxError as exc:
                if not states:
                    raise EmptyOrMalformedTrace("No state of the trace could be parsed", cause=exc) from exc
                if not last:
                    raise
                self._trailing(warnings, exc)
                break
            rest = lexer.peek()
            if rest.kind is not TokenKind.EOF:
                error = PositionedSyntaxError(f"unexpected {rest.text!r} after state {block.number}", rest.line, rest.column)
                if not last:
                    raise error
                self._trailing(warnings, error)
            states.append(TraceState(block.number, block.label, variables))

        if states:
            return JsonTrace(tuple(states), Outcome.VIOLATED, tuple(warnings))
        if has_verified_marker(text):
            return JsonTrace((), Outcome.VERIFIED, tuple(warnings))
        raise EmptyOrMalformedTrace("No counterexample states found")

    def _trailing(self, warnings: List[str], error: PositionedSyntaxError) -> None:
        if self.strict_trailing:
            raise error
        message = f"ignored trailing content at {error.line}:{error.column}: {error.reason}"
        warnings.append(message)
        logger.warning(message)
        obs.emit("trace.warning", line=error.line, column=error.column, reason=error.reason)


def parse_trace(text: str, *, strict_trailing: bool = False) -> JsonTrace:
    return TraceParser(strict_trailing=strict_trailing).parse(text)


__all__ = [
    "INT64_MAX",
    "INT64_MIN",
    "JsonTrace",
    "MAP_KEY",
    "MAX_NESTING",
    "OUTCOME_KEY",
    "Outcome",
    "SET_KEY",
    "TraceParser",
    "TraceState",
    "has_verified_marker",
    "parse_trace",
    "parse_value",
]
