from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from mbt.config import CheckerSettings
from mbt.tla.module import TlaFileSuite, module_name_of
from mbt.trace.parser import JsonTrace
from mbt.trace.render import write_tla_trace

from .results import CheckResults, result_key
from .runner import ProcessRunner

logger = logging.getLogger(__name__)


def trace_file_name(module: str, index: int) -> str:
    """``M.trace.tla`` for the first trace, ``M_<n>.trace.tla`` after that."""

    return f"{module}.trace.tla" if index == 1 else f"{module}_{index}.trace.tla"


class ModelChecker:
    """Runs one checker on a copy of a model suite in a scratch directory."""

    name = ""

    def __init__(
        self,
        runner: ProcessRunner,
        settings: CheckerSettings,
        *,
        strict_trailing: bool = False,
        results: Optional[CheckResults] = None,
    ) -> None:
        self.runner = runner
        self.settings = settings
        self.strict_trailing = strict_trailing
        self.results = results

    def options(self, suite: TlaFileSuite) -> Dict[str, Any]:
        return {}

    def run(self, suite: TlaFileSuite, scratch: Path) -> List[JsonTrace]:
        raise NotImplementedError

    def check_all(self, tla_file: Path | str, config_file: Path | str) -> List[JsonTrace]:
        """Every trace the checker reports for the model, first one first."""

        suite = TlaFileSuite.gather(tla_file, config_file)
        key = None
        if self.results is not None:
            key = result_key(suite, self.name, self.options(suite))
            cached = self.results.get(key)
            if cached:
                logger.debug("reusing %s result for %s", self.name, suite.tla_file.name)
                return cached
        scratch = Path(tempfile.mkdtemp(prefix=f"mbt-{self.name}-"))
        try:
            traces = self.run(suite.copy_to(scratch), scratch)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        if key is not None:
            self.results.put(key, self.name, traces)
        return traces

    def check(self, tla_file: Path | str, config_file: Path | str) -> JsonTrace:
        return self.check_all(tla_file, config_file)[0]

    def test(self, tla_file: Path | str, config_file: Path | str) -> List[Path]:
        """Model check and write every normalized trace next to ``tla_file``."""

        traces = self.check_all(tla_file, config_file)
        module = module_name_of(tla_file)
        directory = Path(tla_file).parent
        return [
            write_tla_trace(trace, directory / trace_file_name(module, index))
            for index, trace in enumerate(traces, start=1)
        ]


__all__ = ["ModelChecker", "trace_file_name"]
