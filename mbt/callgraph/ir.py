"""Call-graph intermediate representation.

A call graph is a tree of ``module.method`` invocations described as data::

    {"call": "tla.tla-trace-to-json-trace",
     "args": [{"call": "tlc.test", "args": ["Test.tla", "Test.cfg"]}]}

Trees are built by value, so cycles cannot be expressed; depth is still
bounded because external input is untrusted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple, Union

import yaml

from mbt.errors import DepthLimitExceeded, InvalidCallGraph
from mbt.schema import SchemaValidationError, validate_call_graph

from .envelope import Envelope

DEFAULT_MAX_DEPTH = 64

LiteralValue = Union[str, bool, int]


@dataclass(frozen=True)
class Literal:
    value: LiteralValue


@dataclass(frozen=True)
class Call:
    expr: "CallExpression"


@dataclass(frozen=True)
class Result:
    envelope: Envelope


Value = Union[Literal, Call, Result]


@dataclass(frozen=True)
class CallExpression:
    module: str
    method: str
    args: Tuple[Value, ...] = ()

    @property
    def name(self) -> str:
        return f"{self.module}.{self.method}"

    @classmethod
    def of(cls, name: str, *args: Any) -> "CallExpression":
        """Build an expression from plain Python values.

        Nested ``CallExpression`` objects become unevaluated calls and
        ``Envelope`` objects already-evaluated results.
        """

        module, method = split_name(name)
        return cls(module, method, tuple(_to_value(arg) for arg in args))

    def to_json(self) -> Dict[str, Any]:
        return {"call": self.name, "args": [_value_to_json(arg) for arg in self.args]}

    def depth(self) -> int:
        nested = [arg.expr.depth() for arg in self.args if isinstance(arg, Call)]
        return 1 + max(nested, default=0)


def split_name(name: str) -> Tuple[str, str]:
    module, sep, method = name.partition(".")
    if not sep or not module or not method:
        raise InvalidCallGraph(f"call name must have the form '<module>.<method>', got {name!r}")
    return module, method


def _to_value(arg: Any) -> Value:
    if isinstance(arg, (Literal, Call, Result)):
        return arg
    if isinstance(arg, CallExpression):
        return Call(arg)
    if isinstance(arg, Envelope):
        return Result(arg)
    if isinstance(arg, (str, bool, int)):
        return Literal(arg)
    if isinstance(arg, Path):
        return Literal(str(arg))
    raise InvalidCallGraph(f"unsupported argument type: {type(arg).__name__}")


def _value_to_json(value: Value) -> Any:
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, Call):
        return value.expr.to_json()
    return value.envelope.to_json()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------
def _iter_children(node: Any) -> Iterator[Any]:
    if isinstance(node, dict) and "call" in node:
        args = node.get("args")
        if isinstance(args, list):
            yield from args


def check_depth(payload: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
    """Reject documents nested deeper than ``max_depth`` calls.

    Iterative so that hostile input cannot exhaust the interpreter stack
    before the limit is enforced.
    """

    stack: List[Tuple[Any, int]] = [(payload, 1)]
    while stack:
        node, depth = stack.pop()
        if depth > max_depth:
            raise DepthLimitExceeded(max_depth)
        for child in _iter_children(node):
            if isinstance(child, dict) and "call" in child:
                stack.append((child, depth + 1))


def decode_call_graph(payload: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> CallExpression:
    check_depth(payload, max_depth)
    try:
        validate_call_graph(payload)
    except SchemaValidationError as exc:
        raise InvalidCallGraph(str(exc)) from exc
    except RecursionError:
        raise InvalidCallGraph("call graph document is nested too deeply to validate") from None
    return _decode_call(payload)


def _decode_call(node: Dict[str, Any]) -> CallExpression:
    module, method = split_name(node["call"])
    return CallExpression(module, method, tuple(_decode_value(arg) for arg in node.get("args") or ()))


def _decode_value(node: Any) -> Value:
    if isinstance(node, dict):
        if "call" in node:
            return Call(_decode_call(node))
        # Status is checked at evaluation time so that a bad status surfaces
        # as a protocol violation rather than a schema error.
        return Result(Envelope(node["status"], node["result"]))
    return Literal(node)


def _load_document(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidCallGraph(f"call graph is neither JSON nor YAML: {exc}") from exc


def parse_call_graph(text: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> CallExpression:
    """Parse a JSON or YAML document into a call expression."""

    try:
        payload = _load_document(text)
    except RecursionError:
        # Both decoders recurse per nesting level.
        raise InvalidCallGraph("call graph document is nested too deeply to decode") from None
    return decode_call_graph(payload, max_depth=max_depth)


def load_call_graph(path: Path | str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> CallExpression:
    text = Path(path).read_text(encoding="utf-8")
    return parse_call_graph(text, max_depth=max_depth)


__all__ = [
    "Call",
    "CallExpression",
    "DEFAULT_MAX_DEPTH",
    "Literal",
    "Result",
    "Value",
    "check_depth",
    "decode_call_graph",
    "load_call_graph",
    "parse_call_graph",
    "split_name",
]
