import pytest

from mbt.callgraph.dispatcher import Dispatcher
from mbt.callgraph.envelope import Envelope
from mbt.callgraph.ir import Call, CallExpression, Result
from mbt.callgraph.registry import ModuleRegistry, Operation
from mbt.errors import DepthLimitExceeded, DispatchError, TlaError, UnknownOperation
from mbt.operations import build_registry


class Recorder:
    def __init__(self):
        self.calls = []

    def echo(self, ctx, *args):
        self.calls.append(("echo", args))
        return args[0] if len(args) == 1 else list(args)

    def name(self, ctx, *args):
        self.calls.append(("name", args))
        return "-".join(str(arg) for arg in args)


def _dispatcher(recorder, **kwargs):
    registry = ModuleRegistry({Operation.JSON_GET: recorder.echo, Operation.TLA_MODULE_NAME: recorder.name})
    return Dispatcher(registry, **kwargs)


def _echo(*args):
    return CallExpression.of("json.get", *args)


def test_arguments_are_evaluated_left_to_right_before_the_call():
    recorder = Recorder()
    expr = CallExpression.of("tla.module-name", _echo("a"), _echo(_echo("b")), "c")

    envelope = _dispatcher(recorder).evaluate(expr)

    assert envelope == Envelope.success("a-b-c")
    assert recorder.calls == [
        ("echo", ("a",)),
        ("echo", ("b",)),
        ("echo", ("b",)),
        ("name", ("a", "b", "c")),
    ]


def test_unknown_operation_runs_nothing():
    recorder = Recorder()
    dispatcher = _dispatcher(recorder)

    envelope = dispatcher.evaluate(CallExpression.of("tla.no-such-op", _echo("x")))

    assert envelope == Envelope.error("Unknown operation: tla.no-such-op")
    assert recorder.calls == []

    with pytest.raises(UnknownOperation):
        dispatcher.call(CallExpression.of("nope.get", _echo("x")))
    assert recorder.calls == []


def test_known_operation_without_handler_is_unknown():
    recorder = Recorder()

    envelope = _dispatcher(recorder).evaluate(CallExpression.of("tlc.test", "A.tla", "A.cfg"))

    assert envelope.status == "error"
    assert "tlc.test" in envelope.result


def test_depth_limit_rejects_before_any_handler_runs():
    recorder = Recorder()
    dispatcher = _dispatcher(recorder, max_depth=3)
    expr = _echo(_echo(_echo("x")))

    assert dispatcher.call(expr) == "x"
    recorder.calls.clear()

    with pytest.raises(DepthLimitExceeded):
        dispatcher.call(_echo(expr))
    assert recorder.calls == []


def test_results_are_unwrapped():
    recorder = Recorder()
    dispatcher = _dispatcher(recorder)

    assert dispatcher.call(CallExpression.of("json.get", Envelope.success({"k": 1}))) == {"k": 1}

    failed = dispatcher.evaluate(CallExpression.of("json.get", Envelope.error("upstream failed")))
    assert failed == Envelope.error("upstream failed")
    assert recorder.calls == [("echo", ({"k": 1},))]


def test_protocol_violation_propagates_from_evaluate():
    from mbt.errors import ProtocolViolation

    recorder = Recorder()
    expr = CallExpression("json", "get", (Result(Envelope("maybe", 1)),))

    with pytest.raises(ProtocolViolation):
        _dispatcher(recorder).evaluate(expr)
    assert recorder.calls == []


def test_unexpected_handler_exceptions_become_dispatch_errors():
    def broken(ctx, value):
        raise ValueError("bad value")

    dispatcher = Dispatcher(ModuleRegistry({Operation.JSON_GET: broken}))

    with pytest.raises(DispatchError, match="json.get: bad value"):
        dispatcher.call(_echo(1))


def test_domain_errors_keep_their_type():
    def missing(ctx, path):
        raise TlaError(f"TLA+ file not found: {path}")

    dispatcher = Dispatcher(ModuleRegistry({Operation.TLA_MODULE_NAME: missing}))

    with pytest.raises(TlaError):
        dispatcher.call(CallExpression.of("tla.module-name", "X.tla"))
    assert dispatcher.evaluate(CallExpression.of("tla.module-name", "X.tla")) == Envelope.error(
        "TLA+ file not found: X.tla"
    )


def test_wrong_arity_is_a_dispatch_error():
    def one(ctx, value):
        return value

    dispatcher = Dispatcher(ModuleRegistry({Operation.JSON_GET: one}))

    envelope = dispatcher.evaluate(CallExpression.of("json.get", 1, 2))

    assert envelope.status == "error"
    assert "invalid arguments" in envelope.result


def test_context_invoke_runs_nested_operations():
    def outer(ctx, value):
        assert ctx.depth == 1
        return ctx.invoke(Operation.JSON_GET, value)

    def inner(ctx, value):
        assert ctx.depth == 2
        return value * 2

    dispatcher = Dispatcher(ModuleRegistry({Operation.TLA_MODULE_NAME: outer, Operation.JSON_GET: inner}))

    assert dispatcher.call(CallExpression.of("tla.module-name", 21)) == 42


def test_services_are_required_when_used():
    def needs_cache(ctx):
        return str(ctx.cache.root)

    dispatcher = Dispatcher(ModuleRegistry({Operation.JSON_GET: needs_cache}))

    envelope = dispatcher.evaluate(CallExpression.of("json.get"))

    assert envelope == Envelope.error("json.get requires an artifact cache")


def test_registry_is_read_only_and_complete():
    registry = build_registry()

    assert set(registry) == set(Operation)
    with pytest.raises(TypeError):
        registry["json.get"] = None  # type: ignore[index]
    with pytest.raises(TypeError):
        ModuleRegistry({"json.get": lambda ctx: None})  # type: ignore[dict-item]
    assert registry.describe()["json.get"].startswith("Select a nested value")


def test_registry_overrides_return_a_new_registry():
    registry = build_registry()

    def fake(ctx, *args):
        return "fake"

    overridden = registry.with_overrides({Operation.TLC_TEST: fake})

    assert overridden[Operation.TLC_TEST] is fake
    assert registry[Operation.TLC_TEST] is not fake
    assert Dispatcher(overridden).call(CallExpression.of("tlc.test", "A.tla", "A.cfg")) == "fake"


def test_call_node_values_are_evaluated_once():
    recorder = Recorder()
    inner = _echo("once")
    expr = CallExpression("tla", "module-name", (Call(inner),))

    assert _dispatcher(recorder).call(expr) == "once"
    assert [name for name, _ in recorder.calls] == ["echo", "name"]
