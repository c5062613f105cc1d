"""Per-operator test generation pipeline.

Every test operator discovered in a tests module moves through::

    discovered -> model_instantiated -> assertion_negated
               -> checker_invoked -> trace_parsed -> json_emitted

Each transition is a single dispatcher call. Operators run concurrently and
fail independently; a failure records the stage that was being attempted.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from mbt import obs
from mbt.callgraph.dispatcher import Dispatcher
from mbt.callgraph.ir import CallExpression
from mbt.callgraph.registry import Operation
from mbt.config import CHECKERS
from mbt.errors import ConfigError, MbtError, NoTestTraceFound, PipelineError
from mbt.trace.parser import OUTCOME_KEY, Outcome

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    DISCOVERED = "discovered"
    MODEL_INSTANTIATED = "model_instantiated"
    ASSERTION_NEGATED = "assertion_negated"
    CHECKER_INVOKED = "checker_invoked"
    TRACE_PARSED = "trace_parsed"
    JSON_EMITTED = "json_emitted"


CHECKER_OPERATIONS = {
    "tlc": Operation.TLC_TEST,
    "apalache": Operation.APALACHE_TEST,
}


@dataclass(frozen=True)
class OperatorResult:
    operator: str
    stage: Stage
    tla_file: Optional[str] = None
    tla_trace_file: Optional[str] = None
    json_trace_file: Optional[str] = None
    json_trace_files: Tuple[str, ...] = ()
    error: Optional[PipelineError] = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"status": "failed", "stage": self.error.stage, "error": self.error.cause.to_json()}
        return {
            "status": "ok",
            "stage": self.stage.value,
            "tla_file": self.tla_file,
            "tla_trace_file": self.tla_trace_file,
            "json_trace_file": self.json_trace_file,
            "json_trace_files": list(self.json_trace_files),
        }


@dataclass(frozen=True)
class PipelineReport:
    tests_file: str
    checker: str
    results: Tuple[OperatorResult, ...]

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def failed(self) -> List[OperatorResult]:
        return [result for result in self.results if not result.ok]

    def get(self, operator: str) -> OperatorResult:
        for result in self.results:
            if result.operator == operator:
                return result
        raise KeyError(operator)

    def to_json(self) -> Dict[str, Any]:
        return {
            "tests_file": self.tests_file,
            "checker": self.checker,
            "results": {result.operator: result.to_json() for result in self.results},
        }


class Pipeline:
    def __init__(self, dispatcher: Dispatcher, *, checker: Optional[str] = None, workers: Optional[int] = None) -> None:
        self.dispatcher = dispatcher
        self.checker = (checker or dispatcher.config.checker.default).lower()
        if self.checker not in CHECKERS:
            raise ConfigError(f"Unknown checker {self.checker!r}; expected one of {', '.join(CHECKERS)}")
        self.workers = workers or dispatcher.config.engine.workers

    def run(self, tests_file: Path | str, config_file: Path | str, out_dir: Path | str | None = None) -> PipelineReport:
        tests = str(tests_file)
        operators = self.dispatcher.call(CallExpression.of(Operation.TLA_LIST_TESTS.value, tests))
        for operator in operators:
            obs.emit("pipeline.stage", operator=operator, stage=Stage.DISCOVERED.value)
        out = str(out_dir) if out_dir else None
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="mbt-pipeline") as pool:
            futures = {
                operator: pool.submit(self._run_operator, operator, tests, str(config_file), out)
                for operator in operators
            }
            # Protocol violations re-raise here and abort the run.
            results = tuple(futures[operator].result() for operator in operators)
        report = PipelineReport(tests, self.checker, results)
        obs.emit(
            "pipeline.done",
            tests_file=tests,
            checker=self.checker,
            operators=len(results),
            failed=len(report.failed),
        )
        return report

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------
    def _call(self, operation: Operation, *args: Any) -> Any:
        return self.dispatcher.call(CallExpression.of(operation.value, *[arg for arg in args if arg is not None]))

    def _run_operator(self, operator: str, tests_file: str, config_file: str, out_dir: Optional[str]) -> OperatorResult:
        if out_dir is not None:
            return self._stages(operator, tests_file, config_file, out_dir, Path(out_dir), keep_models=True)
        # Models and raw traces live only as long as the operator runs; the
        # JSON traces land next to the tests module.
        scratch = tempfile.mkdtemp(prefix="mbt-model-")
        try:
            return self._stages(operator, tests_file, config_file, scratch, Path(tests_file).parent, keep_models=False)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

    def _stages(
        self,
        operator: str,
        tests_file: str,
        config_file: str,
        work_dir: str,
        json_dir: Path,
        *,
        keep_models: bool,
    ) -> OperatorResult:
        started = time.monotonic()
        stage = Stage.MODEL_INSTANTIATED
        model: Dict[str, str] = {}
        trace_files: List[str] = []
        try:
            model = self._call(Operation.TLA_INSTANTIATE_TEST, tests_file, config_file, operator, work_dir)
            self._advance(operator, stage)

            stage = Stage.ASSERTION_NEGATED
            model = self._call(Operation.TLA_NEGATE_ASSERTION, model["tla_file"], model["tla_config_file"], operator)
            self._advance(operator, stage)

            stage = Stage.CHECKER_INVOKED
            checked = self._call(CHECKER_OPERATIONS[self.checker], model["tla_file"], model["tla_config_file"])
            trace_files = list(checked.get("tla_trace_files") or [checked["tla_trace_file"]])
            self._advance(operator, stage)

            stage = Stage.TRACE_PARSED
            for trace_file in trace_files:
                parsed = self._call(Operation.TLA_PARSE_TRACE, trace_file)
                if parsed[-1].get(OUTCOME_KEY) == Outcome.VERIFIED.value:
                    raise NoTestTraceFound(trace_file)
            self._advance(operator, stage)

            stage = Stage.JSON_EMITTED
            stem = Path(model["tla_file"]).stem
            emitted = [
                self._call(Operation.TLA_TRACE_TO_JSON_TRACE, trace_file, str(json_dir / json_trace_name(stem, index)))
                for index, trace_file in enumerate(trace_files, start=1)
            ]
            self._advance(operator, stage)
        except MbtError as exc:
            error = PipelineError(stage.value, exc)
            logger.warning("operator %s failed at %s: %s", operator, stage.value, exc.message)
            obs.emit("pipeline.stage", operator=operator, stage="failed", failed_stage=stage.value, kind=exc.kind)
            return OperatorResult(
                operator,
                stage,
                tla_file=model.get("tla_file") if keep_models else None,
                tla_trace_file=trace_files[0] if trace_files and keep_models else None,
                error=error,
                duration_s=time.monotonic() - started,
            )
        json_files = tuple(item["json_trace_file"] for item in emitted)
        return OperatorResult(
            operator,
            Stage.JSON_EMITTED,
            tla_file=model["tla_file"] if keep_models else None,
            tla_trace_file=trace_files[0] if keep_models else None,
            json_trace_file=json_files[0],
            json_trace_files=json_files,
            duration_s=time.monotonic() - started,
        )

    def _advance(self, operator: str, stage: Stage) -> None:
        obs.emit("pipeline.stage", operator=operator, stage=stage.value)


def json_trace_name(model: str, index: int) -> str:
    """``<Model>.json`` for the first trace, ``<Model>_<n>.json`` after that."""

    return f"{model}.json" if index == 1 else f"{model}_{index}.json"


def run_pipeline(
    dispatcher: Dispatcher,
    tests_file: Path | str,
    config_file: Path | str,
    *,
    checker: Optional[str] = None,
    out_dir: Path | str | None = None,
    workers: Optional[int] = None,
) -> PipelineReport:
    return Pipeline(dispatcher, checker=checker, workers=workers).run(tests_file, config_file, out_dir)


__all__ = [
    "CHECKER_OPERATIONS",
    "OperatorResult",
    "Pipeline",
    "PipelineReport",
    "Stage",
    "json_trace_name",
    "run_pipeline",
]
