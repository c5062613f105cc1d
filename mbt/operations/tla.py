from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from mbt.callgraph.registry import Operation
from mbt.errors import ParseError
from mbt.tla.module import list_tests_in, module_name_of
from mbt.tla.testgen import instantiate_test, negate_assertion
from mbt.trace.parser import TraceParser
from mbt.trace.render import write_json_trace

from .args import model_args, optional_path, path_arg, string_arg


def list_tests(ctx, tests_file: Any) -> List[str]:
    """Names of the test operators defined in a tests module."""

    return list_tests_in(path_arg(tests_file, "tla_file"))


def module_name(ctx, tla_file: Any) -> str:
    """Name declared in the MODULE header of a TLA+ file."""

    return module_name_of(path_arg(tla_file, "tla_file"))


def negate_assertion_handler(ctx, tla_file: Any, tla_config_file: Any, operator: Any) -> Dict[str, str]:
    """Add the negated test operator to a model and check it as an invariant."""

    tla_path, cfg_path = model_args(tla_file, tla_config_file)
    return negate_assertion(tla_path, cfg_path, string_arg(operator, "operator")).to_json()


def instantiate_test_handler(
    ctx, tests_file: Any, config_file: Any, operator: Any, out_dir: Any = None
) -> Dict[str, str]:
    """Write the model module and config for one test operator."""

    return instantiate_test(
        path_arg(tests_file, "tla_file"),
        path_arg(config_file, "tla_config_file"),
        string_arg(operator, "operator"),
        optional_path(out_dir, "out_dir"),
    ).to_json()


def generate_tests(ctx, tests_file: Any, config_file: Any, out_dir: Any = None) -> List[Dict[str, str]]:
    """Generate a negated model for every test operator of a tests module."""

    generated = []
    for operator in ctx.invoke(Operation.TLA_LIST_TESTS, tests_file):
        test = ctx.invoke(Operation.TLA_INSTANTIATE_TEST, tests_file, config_file, operator, out_dir)
        generated.append(ctx.invoke(Operation.TLA_NEGATE_ASSERTION, test["tla_file"], test["tla_config_file"], operator))
    return generated


def _read_trace(ctx, trace_path: Path):
    try:
        text = trace_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ParseError(f"Trace file not found: {trace_path}") from None
    return TraceParser(strict_trailing=ctx.config.trace.strict_trailing).parse(text)


def parse_trace(ctx, tla_trace_file: Any) -> List[Dict[str, Any]]:
    """Parse a TLA+ trace file into the JSON trace representation."""

    return _read_trace(ctx, path_arg(tla_trace_file, "tla_trace_file")).to_json()


def tla_trace_to_json_trace(ctx, tla_trace_file: Any, json_trace_file: Any = None) -> Dict[str, str]:
    """Convert a TLA+ trace file into a JSON trace file."""

    trace_path = path_arg(tla_trace_file, "tla_trace_file")
    target = optional_path(json_trace_file, "json_trace_file") or trace_path.with_suffix(".json")
    trace = _read_trace(ctx, trace_path)
    return {"json_trace_file": str(write_json_trace(trace, target))}


HANDLERS = {
    Operation.TLA_LIST_TESTS: list_tests,
    Operation.TLA_MODULE_NAME: module_name,
    Operation.TLA_NEGATE_ASSERTION: negate_assertion_handler,
    Operation.TLA_INSTANTIATE_TEST: instantiate_test_handler,
    Operation.TLA_GENERATE_TESTS: generate_tests,
    Operation.TLA_PARSE_TRACE: parse_trace,
    Operation.TLA_TRACE_TO_JSON_TRACE: tla_trace_to_json_trace,
}

__all__ = ["HANDLERS"]
