import json

import pytest

from mbt.callgraph.envelope import Envelope
from mbt.callgraph.ir import CallExpression, parse_call_graph
from mbt.errors import DispatchError


def _call(name, *args):
    return CallExpression.of(name, *args)


def test_module_name_and_list_tests(dispatcher, suite_dir):
    tests_file = str(suite_dir / "CounterTests.tla")

    assert dispatcher.call(_call("tla.module-name", tests_file)) == "CounterTests"
    assert dispatcher.call(_call("tla.list-tests", tests_file)) == ["ReachTwoTest", "TestReachThree"]


def test_generate_tests(dispatcher, suite_dir):
    generated = dispatcher.call(
        _call("tla.generate-tests", str(suite_dir / "CounterTests.tla"), str(suite_dir / "CounterTests.cfg"))
    )

    assert [item["test"] for item in generated] == ["ReachTwoTest", "TestReachThree"]
    for item in generated:
        config = open(item["tla_config_file"], encoding="utf-8").read()
        assert f"INVARIANT {item['test']}Neg" in config


def test_nested_call_graph_produces_a_json_trace(dispatcher, suite_dir):
    model = dispatcher.call(
        _call("tla.instantiate-test", str(suite_dir / "CounterTests.tla"), str(suite_dir / "CounterTests.cfg"), "ReachTwoTest")
    )
    graph = {
        "call": "json.get",
        "args": [
            {
                "call": "tla.tla-trace-to-json-trace",
                "args": [
                    {
                        "call": "tlc.test",
                        "args": [
                            {
                                "call": "tla.negate-assertion",
                                "args": [model["tla_file"], model["tla_config_file"], "ReachTwoTest"],
                            }
                        ],
                    }
                ],
            },
            "json_trace_file",
        ],
    }

    envelope = dispatcher.evaluate(parse_call_graph(json.dumps(graph)))

    assert envelope.ok
    assert envelope.result == str(suite_dir / "CounterTests_ReachTwoTest.trace.json")
    payload = json.loads(open(envelope.result, encoding="utf-8").read())
    assert payload == [{"x": 0}, {"x": 1}, {"#outcome": "violated"}]


def test_parse_trace_operation(dispatcher, tmp_path):
    trace_file = tmp_path / "M.trace.tla"
    trace_file.write_text("State 1: <Init>\n/\\ x = <<1, 2>>\n", encoding="utf-8")

    assert dispatcher.call(_call("tla.parse-trace", str(trace_file))) == [{"x": [1, 2]}, {"#outcome": "violated"}]
    missing = dispatcher.evaluate(_call("tla.parse-trace", str(tmp_path / "Missing.tla")))
    assert missing.status == "error"
    assert "not found" in missing.result


def test_checker_failure_is_an_error_envelope(dispatcher, tmp_path):
    (tmp_path / "Broken.tla").write_text("---- MODULE Broken ----\nVARIABLE x\n====\n", encoding="utf-8")
    (tmp_path / "Broken.cfg").write_text("INIT Init\n", encoding="utf-8")

    envelope = dispatcher.evaluate(
        _call("tla.tla-trace-to-json-trace", _call("tlc.test", str(tmp_path / "Broken.tla"), str(tmp_path / "Broken.cfg")))
    )

    assert envelope.status == "error"
    assert "spec_error (exit code 150)" in envelope.result


def test_apalache_parse_operation(dispatcher, suite_dir):
    result = dispatcher.call(_call("apalache.parse", str(suite_dir / "CounterTests.tla")))

    assert result == {"tla_file": str(suite_dir / "CounterTestsParsed.tla")}


def test_json_get(dispatcher):
    document = Envelope.success({"results": [{"name": "a"}, {"name": "b"}]})

    assert dispatcher.call(_call("json.get", document, "results", 1, "name")) == "b"
    assert dispatcher.call(_call("json.get", '{"a": [1, 2]}', "a", "-1")) == 2
    assert dispatcher.call(_call("json.get", "plain")) == "plain"


@pytest.mark.parametrize(
    "args",
    [
        ('{"a": 1}', "b"),
        ('{"a": [1]}', "a", "5"),
        ('{"a": [1]}', "a", "x"),
        ('{"a": 1}', "a", "b"),
        ("not json", "a"),
    ],
)
def test_json_get_errors(dispatcher, args):
    with pytest.raises(DispatchError):
        dispatcher.call(_call("json.get", *args))


def test_descriptor_without_expected_key(dispatcher):
    envelope = dispatcher.evaluate(_call("tla.module-name", Envelope.success({"tla_trace_file": "x"})))

    assert envelope.status == "error"
    assert "tla_file" in envelope.result


def test_checker_operations_list_every_trace_file(dispatcher, suite_dir):
    model = dispatcher.call(
        _call("tla.instantiate-test", str(suite_dir / "CounterTests.tla"), str(suite_dir / "CounterTests.cfg"), "ReachTwoTest")
    )

    checked = dispatcher.call(
        _call("apalache.test", _call("tla.negate-assertion", model["tla_file"], model["tla_config_file"], "ReachTwoTest"))
    )

    assert checked["tla_trace_files"] == [checked["tla_trace_file"]]
    assert checked["tla_trace_file"] == str(suite_dir / "CounterTests_ReachTwoTest.trace.tla")
