import json

import pytest

from mbt.errors import ParseError
from mbt.trace.parser import Outcome, parse_trace
from mbt.trace.render import (
    json_trace_from_payload,
    read_json_trace,
    render_tla_trace,
    render_value,
    write_json_trace,
    write_tla_trace,
)

TRACE = """State 1: <Initial predicate>
/\\ pc = (1 :> "init" @@ 2 :> "init")
/\\ queue = <<>>
/\\ seen = {}

State 2: <Send line 10, col 3 to line 12, col 40 of module Queue>
/\\ pc = (1 :> "sent" @@ 2 :> "init")
/\\ queue = <<[from |-> 1, body |-> "a \\"b\\""]>>
/\\ seen = {1}
"""


def test_rendered_trace_parses_back_to_the_same_states():
    trace = parse_trace(TRACE)

    reparsed = parse_trace(render_tla_trace(trace))

    assert reparsed.to_json() == trace.to_json()
    assert [state.label for state in reparsed.states] == [state.label for state in trace.states]


def test_verified_trace_renders_a_marker(tmp_path):
    trace = parse_trace("No error has been found.")

    path = write_tla_trace(trace, tmp_path / "M.trace.tla")

    assert parse_trace(path.read_text(encoding="utf-8")).outcome is Outcome.VERIFIED


def test_render_value_notation():
    assert render_value({"#map": []}) == "SetAsFun({})"
    assert render_value({"#set": [1, True]}) == "{1, TRUE}"
    assert render_value({"a": [1], "b": "x"}) == '[a |-> <<1>>, b |-> "x"]'
    with pytest.raises(TypeError):
        render_value(1.5)


def test_json_trace_file(tmp_path):
    trace = parse_trace(TRACE)

    path = write_json_trace(trace, tmp_path / "out" / "Queue.json")

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload[-1] == {"#outcome": "violated"}
    assert payload[0]["seen"] == {"#set": []}
    assert payload[1]["queue"] == [{"from": 1, "body": 'a "b"'}]
    assert read_json_trace(path).to_json() == payload
    assert not list((tmp_path / "out").glob(".*tmp*"))


def test_json_trace_requires_exactly_one_outcome():
    with pytest.raises(ParseError):
        json_trace_from_payload([{"x": 1}])
    with pytest.raises(ParseError):
        json_trace_from_payload([{"#outcome": "violated"}, {"#outcome": "verified"}])
    assert json_trace_from_payload([{"x": 1}, {"#outcome": "violated"}]).states[0].variables == {"x": 1}
