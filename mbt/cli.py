# mbt/cli.py
import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

from mbt import __version__
from mbt.callgraph.envelope import Envelope
from mbt.callgraph.ir import CallExpression, parse_call_graph
from mbt.callgraph.registry import Operation
from mbt.config import load_config
from mbt.errors import ConfigError, MbtError, ProtocolViolation
from mbt.obs import configure_logging
from mbt.pipeline import run_pipeline
from mbt.wiring import build_dispatcher

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _fail(message: str, code: int = EXIT_FAILED) -> int:
    print(f"error: {message}", file=sys.stderr)
    return code


def _dispatcher(args):
    config = load_config(args.config) if args.config else load_config()
    return build_dispatcher(config)


def _cmd_eval(args) -> int:
    if args.file == "-":
        text = sys.stdin.read()
    else:
        path = Path(args.file)
        if not path.is_file():
            return _fail(f"call graph not found: {path}", EXIT_USAGE)
        text = path.read_text(encoding="utf-8")
    dispatcher = _dispatcher(args)
    try:
        expr = parse_call_graph(text, max_depth=dispatcher.max_depth)
    except MbtError as exc:
        envelope = Envelope.from_exception(exc)
    else:
        envelope = dispatcher.evaluate(expr)
    _print_json(envelope.to_json())
    return EXIT_OK if envelope.ok else EXIT_FAILED


def _cmd_call(args) -> int:
    """``mbt <module> <method> [args...]``: the boundary used by client shims."""

    dispatcher = _dispatcher(args)
    try:
        expr = CallExpression.of(f"{args.cmd}.{args.method}", *args.args)
    except MbtError as exc:
        envelope = Envelope.from_exception(exc)
    else:
        envelope = dispatcher.evaluate(expr)
    print(json.dumps(envelope.to_json(), ensure_ascii=False))
    return EXIT_OK if envelope.ok else EXIT_FAILED


def _cmd_traces(args) -> int:
    dispatcher = _dispatcher(args)
    try:
        report = run_pipeline(
            dispatcher,
            args.tests,
            args.cfg,
            checker=args.checker,
            out_dir=args.out,
            workers=args.workers,
        )
    except MbtError as exc:
        return _fail(exc.message)
    if args.json:
        _print_json(report.to_json())
    else:
        for result in report.results:
            if result.ok:
                print(f"{result.operator}: {', '.join(result.json_trace_files)}")
            else:
                assert result.error is not None
                print(f"{result.operator}: failed at {result.error.stage}: {result.error.cause.message}")
    return EXIT_OK if report.ok else EXIT_FAILED


def _cmd_cache_resolve(args) -> int:
    dispatcher = _dispatcher(args)
    try:
        path = dispatcher.cache.resolve(args.name, args.version)
    except MbtError as exc:
        return _fail(exc.message)
    print(path)
    return EXIT_OK


def _cmd_cache_path(args) -> int:
    config = load_config(args.config) if args.config else load_config()
    print(config.cache.dir)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mbt", description="Model-based test generation with TLC and Apalache")
    parser.add_argument("--version", action="version", version=f"mbt {__version__}")
    parser.add_argument("--config", help="path to mbt.toml (default: nearest one from the working directory)")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("MBT_LOG_LEVEL", "warning"),
        choices=["debug", "info", "warning", "error"],
        help="log level for stderr output",
    )
    parser.add_argument("--log-json", action="store_true", help="emit log records as JSON lines")
    sub = parser.add_subparsers(dest="cmd")

    eval_parser = sub.add_parser("eval", help="evaluate a call graph (JSON or YAML)")
    eval_parser.add_argument("file", help="call graph file, or '-' for stdin")
    eval_parser.set_defaults(func=_cmd_eval)

    traces_parser = sub.add_parser("traces", help="generate JSON traces for every test operator")
    traces_parser.add_argument("tests", help="TLA+ tests module")
    traces_parser.add_argument("cfg", help="TLC model config for the tests module")
    traces_parser.add_argument("--checker", choices=["tlc", "apalache"], help="model checker (default from config)")
    traces_parser.add_argument("--out", help="output directory for generated models and traces")
    traces_parser.add_argument("--workers", type=int, help="operators processed in parallel")
    traces_parser.add_argument("--json", action="store_true", help="print the report as JSON")
    traces_parser.set_defaults(func=_cmd_traces)

    cache_parser = sub.add_parser("cache", help="artifact cache")
    cache_sub = cache_parser.add_subparsers(dest="cache_cmd")
    resolve_parser = cache_sub.add_parser("resolve", help="download and verify a tool, print its path")
    resolve_parser.add_argument("name", help="tool name, e.g. tla2tools")
    resolve_parser.add_argument("--version", help="tool version (default from config)")
    resolve_parser.set_defaults(func=_cmd_cache_resolve)
    path_parser = cache_sub.add_parser("path", help="print the cache directory")
    path_parser.set_defaults(func=_cmd_cache_path)

    for module in sorted({op.module for op in Operation}):
        methods = ", ".join(sorted(op.method for op in Operation if op.module == module))
        call_parser = sub.add_parser(module, help=f"call a {module} operation ({methods})")
        call_parser.add_argument("method", help=methods)
        call_parser.add_argument("args", nargs=argparse.REMAINDER)
        call_parser.set_defaults(func=_cmd_call)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help(sys.stderr)
        return EXIT_USAGE
    configure_logging(args.log_level, json_lines=args.log_json)
    try:
        return args.func(args)
    except ConfigError as exc:
        return _fail(exc.message, EXIT_USAGE)
    except ProtocolViolation as exc:
        return _fail(f"protocol violation: {exc}", EXIT_USAGE)


if __name__ == "__main__":
    sys.exit(main())
