import json

import pytest

from mbt.callgraph.envelope import Envelope, decode_envelope
from mbt.callgraph.ir import Call, CallExpression, Literal, Result, decode_call_graph, parse_call_graph
from mbt.errors import DepthLimitExceeded, DispatchError, InvalidCallGraph, ProtocolViolation


def _nested(depth: int) -> dict:
    node = {"call": "json.get", "args": ["leaf"]}
    for _ in range(depth - 1):
        node = {"call": "json.get", "args": [node]}
    return node


def test_decode_nested_call_graph():
    payload = {
        "call": "tla.tla-trace-to-json-trace",
        "args": [{"call": "tlc.test", "args": ["Test.tla", "Test.cfg"]}],
    }

    expr = decode_call_graph(payload)

    assert expr.module == "tla"
    assert expr.method == "tla-trace-to-json-trace"
    (inner,) = expr.args
    assert isinstance(inner, Call)
    assert inner.expr.name == "tlc.test"
    assert inner.expr.args == (Literal("Test.tla"), Literal("Test.cfg"))
    assert expr.depth() == 2
    assert expr.to_json() == payload


def test_parse_accepts_yaml():
    text = """
call: json.get
args:
  - call: tla.module-name
    args: [Counter.tla]
  - 0
"""
    expr = parse_call_graph(text)

    assert expr.name == "json.get"
    assert isinstance(expr.args[0], Call)
    assert expr.args[1] == Literal(0)


def test_envelope_arguments_decode_as_results():
    expr = parse_call_graph(json.dumps({"call": "json.get", "args": [{"status": "success", "result": {"a": 1}}, "a"]}))

    assert expr.args[0] == Result(Envelope("success", {"a": 1}))


def test_unknown_status_is_kept_until_evaluation():
    expr = decode_call_graph({"call": "json.get", "args": [{"status": "pending", "result": 1}]})

    with pytest.raises(ProtocolViolation):
        expr.args[0].envelope.unwrap()


@pytest.mark.parametrize(
    "payload",
    [
        {"call": "nodot"},
        {"call": "json.get", "args": [1.5]},
        {"call": "json.get", "args": [None]},
        {"call": "json.get", "extra": True},
        ["json.get"],
    ],
)
def test_invalid_call_graphs_are_rejected(payload):
    with pytest.raises(InvalidCallGraph):
        decode_call_graph(payload)


def test_depth_limit_is_enforced_while_decoding():
    decode_call_graph(_nested(5), max_depth=5)

    with pytest.raises(DepthLimitExceeded) as excinfo:
        decode_call_graph(_nested(6), max_depth=5)
    assert excinfo.value.limit == 5


def test_deeply_nested_input_does_not_recurse():
    with pytest.raises(DepthLimitExceeded):
        decode_call_graph(_nested(5000), max_depth=64)


@pytest.mark.parametrize(
    "text",
    [
        "[" * 100000 + "]" * 100000,
        '{"call": "json.get", "args": ' + "[" * 100000 + "]" * 100000 + "}",
        "call: json.get\nargs: " + "[" * 20000 + "]" * 20000 + "\n",
    ],
)
def test_documents_too_deep_to_decode_are_invalid(text):
    with pytest.raises(InvalidCallGraph) as excinfo:
        parse_call_graph(text)
    assert "nested too deeply" in excinfo.value.message


def test_garbage_text_is_invalid():
    with pytest.raises(InvalidCallGraph):
        parse_call_graph("{call: [unterminated")


def test_of_builds_values_from_python_objects():
    inner = CallExpression.of("tla.module-name", "Counter.tla")
    expr = CallExpression.of("json.get", inner, Envelope.success([1, 2]), 1, True)

    assert expr.args == (Call(inner), Result(Envelope.success([1, 2])), Literal(1), Literal(True))

    with pytest.raises(InvalidCallGraph):
        CallExpression.of("json.get", 1.5)
    with pytest.raises(InvalidCallGraph):
        CallExpression.of("json")


def test_envelope_unwrap():
    assert Envelope.success(3).unwrap() == 3
    with pytest.raises(DispatchError, match="boom"):
        Envelope.error("boom").unwrap()
    with pytest.raises(ProtocolViolation):
        Envelope("", None).unwrap()


def test_decode_envelope_checks_status():
    assert decode_envelope({"status": "error", "result": "x"}) == Envelope.error("x")
    with pytest.raises(ProtocolViolation):
        decode_envelope({"status": "ok", "result": 1})
    with pytest.raises(ProtocolViolation):
        decode_envelope({"status": "success"})
    with pytest.raises(ProtocolViolation):
        decode_envelope(["success", 1])
