from __future__ import annotations

from typing import Any, Dict

from mbt.callgraph.registry import Operation
from mbt.pipeline import Pipeline

from .args import optional_path, path_arg


def traces(ctx, tests_file: Any, config_file: Any, checker: Any = None, out_dir: Any = None) -> Dict[str, Any]:
    """Run the whole generation pipeline for every test operator."""

    pipeline = Pipeline(ctx.dispatcher, checker=checker or None)
    report = pipeline.run(
        path_arg(tests_file, "tla_file"),
        path_arg(config_file, "tla_config_file"),
        optional_path(out_dir, "out_dir"),
    )
    return report.to_json()


HANDLERS = {Operation.PIPELINE_TRACES: traces}

__all__ = ["HANDLERS", "traces"]
