from __future__ import annotations

import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from mbt.config import CheckerSettings
from mbt.errors import EmptyOrMalformedTrace, TlaError
from mbt.tla.module import TlaFileSuite, list_operators, module_name_of, read_module
from mbt.trace.parser import JsonTrace, Outcome, TraceParser, has_verified_marker

from .base import ModelChecker
from .exit_codes import APALACHE_EXIT_CODES, ExitKind
from .results import CheckResults
from .runner import ProcessRunner

logger = logging.getLogger(__name__)

VIEW_PREFIX = "ViewFor"
# View name used when a suite has one view for all of its tests.
GENERIC_VIEW = "ViewForTestNeg"

_TRACE_LOCATION = re.compile(r"Check the trace in:\s*(.*)$", re.MULTILINE)
_COUNTEREXAMPLE = re.compile(r"counterexample\d*\.tla")
_INVARIANT_SECTION = re.compile(r"^\s*INVARIANTS?\b(.*)$")
_SECTION = re.compile(r"^\s*[A-Z_]+\b")


def apalache_command(java: str, jar: Path, library_dir: Path) -> List[str]:
    return [
        java,
        f"-DTLA-Library={library_dir}",
        f"-Djava.io.tmpdir={library_dir}",
        "-jar",
        str(jar),
    ]


def check_arguments(tla_file: str, config_file: str, *, max_error: int, view: Optional[str]) -> List[str]:
    args = ["check", f"--config={config_file}", f"--max-error={max_error}", "--algo=offline"]
    if view:
        args.append(f"--view={view}")
    args.append(tla_file)
    return args


def config_invariants(config_text: str) -> List[str]:
    """Names listed under INVARIANT sections of a model config."""

    names: List[str] = []
    collecting = False
    for line in config_text.splitlines():
        match = _INVARIANT_SECTION.match(line)
        if match:
            collecting = True
            line = match.group(1)
        elif _SECTION.match(line):
            collecting = False
        if collecting:
            names.extend(name for name in line.split() if name not in names)
    return names


def find_view(suite: TlaFileSuite) -> Optional[str]:
    """The view for the checked invariant, looked up in every module of the suite.

    ``ViewFor<Invariant>`` is preferred, then the generic ``ViewForTestNeg``.
    """

    defined = set()
    for path in (suite.tla_file, *suite.dependencies):
        defined.update(name for name in list_operators(read_module(path)) if name.startswith(VIEW_PREFIX))
    invariants = config_invariants(suite.config_file.read_text(encoding="utf-8")) if suite.config_file else []
    for candidate in [f"{VIEW_PREFIX}{name}" for name in invariants] + [GENERIC_VIEW]:
        if candidate in defined:
            return candidate
    return None


def counterexample_files(stdout: str, workdir: Path) -> List[Path]:
    """Counterexample modules reported by Apalache, in report order."""

    found: List[Path] = []
    for match in _TRACE_LOCATION.finditer(stdout):
        for name in _COUNTEREXAMPLE.findall(match.group(1)):
            for candidate in sorted(workdir.rglob(name)):
                if candidate not in found:
                    found.append(candidate)
    if not found:
        numbered = sorted(workdir.rglob("counterexample[0-9]*.tla"))
        found = numbered or sorted(workdir.rglob("counterexample.tla"))
    return found


class ApalacheChecker(ModelChecker):
    name = "apalache"

    def __init__(
        self,
        runner: ProcessRunner,
        jar: Path,
        settings: CheckerSettings,
        *,
        strict_trailing: bool = False,
        results: Optional[CheckResults] = None,
    ) -> None:
        super().__init__(runner, settings, strict_trailing=strict_trailing, results=results)
        self.jar = Path(jar)

    def options(self, suite: TlaFileSuite) -> Dict[str, Any]:
        return {
            "jar": f"{self.jar.parent.name}/{self.jar.name}",
            "max_error": self.settings.traces_per_test,
            "view": find_view(suite),
        }

    def run(self, suite: TlaFileSuite, scratch: Path) -> List[JsonTrace]:
        assert suite.config_file is not None
        argv = apalache_command(self.settings.java, self.jar, scratch) + check_arguments(
            suite.tla_file.name,
            suite.config_file.name,
            max_error=self.settings.traces_per_test,
            view=find_view(suite),
        )
        output = self.runner.run(argv[0], argv[1:], cwd=scratch, exit_codes=APALACHE_EXIT_CODES)
        files = counterexample_files(output.stdout, scratch)
        if not files:
            if output.kind is ExitKind.VERIFIED or has_verified_marker(output.stdout):
                return [JsonTrace((), Outcome.VERIFIED)]
            raise EmptyOrMalformedTrace(f"Apalache reported no counterexample for {suite.tla_file.name}")
        parser = TraceParser(strict_trailing=self.strict_trailing)
        traces = [parser.parse(path.read_text(encoding="utf-8")) for path in files[: self.settings.traces_per_test]]
        logger.debug("Apalache found %d counterexample(s) for %s", len(traces), suite.tla_file.name)
        return traces

    def parse(self, tla_file: Path | str, out_file: Path | str | None = None) -> Path:
        """Run ``apalache parse`` and return the flattened module."""

        suite = TlaFileSuite.gather(tla_file)
        name = module_name_of(suite.tla_file)
        target = Path(out_file) if out_file else suite.tla_file.with_name(f"{name}Parsed.tla")
        scratch = Path(tempfile.mkdtemp(prefix="mbt-apalache-"))
        try:
            local = suite.copy_to(scratch)
            produced = scratch / f"{name}Parsed.tla"
            argv = apalache_command(self.settings.java, self.jar, scratch) + [
                "parse",
                f"--output={produced.name}",
                local.tla_file.name,
            ]
            self.runner.run(argv[0], argv[1:], cwd=scratch, exit_codes=APALACHE_EXIT_CODES)
            if not produced.is_file():
                raise TlaError(f"apalache parse did not produce {produced.name}")
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(produced, target)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        return target


__all__ = [
    "ApalacheChecker",
    "GENERIC_VIEW",
    "apalache_command",
    "check_arguments",
    "config_invariants",
    "counterexample_files",
    "find_view",
]
