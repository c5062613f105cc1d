from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from mbt.callgraph.registry import Operation
from mbt.checker.apalache import ApalacheChecker
from mbt.checker.results import CheckResults
from mbt.checker.tlc import TlcChecker

from .args import model_args, optional_path, path_arg

TLA2TOOLS = "tla2tools"
COMMUNITY_MODULES = "community-modules"
APALACHE = "apalache"


def check_results(ctx) -> Optional[CheckResults]:
    if not ctx.config.checker.cache_results:
        return None
    return CheckResults(ctx.config.cache.dir)


def tlc_checker(ctx) -> TlcChecker:
    classpath = [ctx.cache.resolve(TLA2TOOLS), ctx.cache.resolve(COMMUNITY_MODULES)]
    return TlcChecker(
        ctx.runner,
        classpath,
        ctx.config.checker,
        strict_trailing=ctx.config.trace.strict_trailing,
        results=check_results(ctx),
    )


def apalache_checker(ctx) -> ApalacheChecker:
    return ApalacheChecker(
        ctx.runner,
        ctx.cache.resolve(APALACHE),
        ctx.config.checker,
        strict_trailing=ctx.config.trace.strict_trailing,
        results=check_results(ctx),
    )


def _trace_descriptor(paths: List[Path]) -> Dict[str, Union[str, List[str]]]:
    return {"tla_trace_file": str(paths[0]), "tla_trace_files": [str(path) for path in paths]}


def tlc_test(ctx, tla_file: Any, tla_config_file: Any = None) -> Dict[str, Union[str, List[str]]]:
    """Model check with TLC and write the counterexample trace."""

    tla_path, cfg_path = model_args(tla_file, tla_config_file)
    return _trace_descriptor(tlc_checker(ctx).test(tla_path, cfg_path))


def apalache_test(ctx, tla_file: Any, tla_config_file: Any = None) -> Dict[str, Union[str, List[str]]]:
    """Model check with Apalache and write one trace file per counterexample."""

    tla_path, cfg_path = model_args(tla_file, tla_config_file)
    return _trace_descriptor(apalache_checker(ctx).test(tla_path, cfg_path))


def apalache_parse(ctx, tla_file: Any, out_file: Any = None) -> Dict[str, str]:
    """Flatten a module and its dependencies with ``apalache parse``."""

    target = apalache_checker(ctx).parse(path_arg(tla_file, "tla_file"), optional_path(out_file, "tla_file"))
    return {"tla_file": str(target)}


HANDLERS = {
    Operation.TLC_TEST: tlc_test,
    Operation.APALACHE_TEST: apalache_test,
    Operation.APALACHE_PARSE: apalache_parse,
}

__all__ = ["HANDLERS", "apalache_checker", "check_results", "tlc_checker"]
