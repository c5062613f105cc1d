"""TLC adapter: command construction and ``-tool`` output extraction.

In ``-tool`` mode every TLC message is framed as::

    @!@!@STARTMSG <code>:<class> @!@!@
    ...
    @!@!@ENDMSG <code> @!@!@

Trace states are code 2217; class 1 messages are errors.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from mbt.config import CheckerSettings
from mbt.errors import NonZeroExit
from mbt.tla.module import TlaFileSuite
from mbt.trace.parser import JsonTrace, TraceParser

from .base import ModelChecker
from .exit_codes import TLC_EXIT_CODES
from .results import CheckResults
from .runner import ProcessRunner

logger = logging.getLogger(__name__)

TLC_MAIN_CLASS = "tlc2.TLC"
STATE_MESSAGE = 2217
ERROR_CLASS = 1

_START = re.compile(r"^@!@!@STARTMSG (\d+):(\d+) @!@!@$")
_END = re.compile(r"^@!@!@ENDMSG (\d+) @!@!@$")


def tlc_command(
    java: str,
    classpath: Sequence[Path],
    tla_file: str,
    config_file: str,
    *,
    workers: str = "auto",
) -> List[str]:
    return [
        java,
        "-XX:+UseParallelGC",
        "-cp",
        os.pathsep.join(str(path) for path in classpath),
        TLC_MAIN_CLASS,
        tla_file,
        "-config",
        config_file,
        "-tool",
        "-workers",
        workers,
    ]


def iter_messages(output: str) -> Iterator[Tuple[int, int, str]]:
    """Yield ``(code, class, body)`` for every framed ``-tool`` message."""

    current: Optional[Tuple[int, int]] = None
    body: List[str] = []
    for line in output.splitlines():
        start = _START.match(line)
        if start:
            current = (int(start.group(1)), int(start.group(2)))
            body = []
            continue
        if _END.match(line):
            if current is not None:
                yield current[0], current[1], "\n".join(body)
            current = None
            continue
        if current is not None:
            body.append(line)


def extract_trace_text(output: str) -> str:
    """The state blocks of the first trace, or the raw output without framing."""

    states = [body for code, _, body in iter_messages(output) if code == STATE_MESSAGE]
    if states:
        return "\n\n".join(states) + "\n"
    return output


def error_messages(output: str) -> List[str]:
    return [body.strip() for _, cls, body in iter_messages(output) if cls == ERROR_CLASS and body.strip()]


class TlcChecker(ModelChecker):
    name = "tlc"

    def __init__(
        self,
        runner: ProcessRunner,
        classpath: Sequence[Path],
        settings: CheckerSettings,
        *,
        strict_trailing: bool = False,
        results: Optional[CheckResults] = None,
    ) -> None:
        super().__init__(runner, settings, strict_trailing=strict_trailing, results=results)
        self.classpath = tuple(Path(path) for path in classpath)

    def options(self, suite: TlaFileSuite) -> Dict[str, Any]:
        # Tool versions are part of the cache layout: <name>/<version>/<file>.
        return {"classpath": [f"{path.parent.name}/{path.name}" for path in self.classpath]}

    def run(self, suite: TlaFileSuite, scratch: Path) -> List[JsonTrace]:
        assert suite.config_file is not None
        argv = tlc_command(
            self.settings.java,
            self.classpath,
            suite.tla_file.name,
            suite.config_file.name,
            workers=self.settings.tlc_workers,
        )
        try:
            output = self.runner.run(argv[0], argv[1:], cwd=scratch, exit_codes=TLC_EXIT_CODES)
        except NonZeroExit as exc:
            errors = error_messages(exc.stdout)
            if not errors:
                raise
            raise NonZeroExit(exc.exit_kind, exc.exit_code, stdout=exc.stdout, stderr="\n".join(errors)) from exc
        logger.debug("TLC finished %s with exit code %d", suite.tla_file.name, output.exit_code)
        # TLC stops at the first violation: one trace per run.
        return [TraceParser(strict_trailing=self.strict_trailing).parse(extract_trace_text(output.stdout))]


__all__ = [
    "TLC_MAIN_CLASS",
    "TlcChecker",
    "error_messages",
    "extract_trace_text",
    "iter_messages",
    "tlc_command",
]
