"""On-disk cache of model checking results.

A result is keyed by the content of every module in the checked suite, the
model config, the checker and its options. Checking an unchanged model again
returns the recorded traces without starting the checker.

Layout::

    <cache root>/tla_trace/<key>.json
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from mbt import obs
from mbt.errors import ParseError
from mbt.tla.module import TlaFileSuite
from mbt.trace.parser import JsonTrace, TraceParser
from mbt.trace.render import render_tla_trace, write_text_atomic

logger = logging.getLogger(__name__)

RESULTS_DIR = "tla_trace"


def result_key(suite: TlaFileSuite, checker: str, options: Mapping[str, Any]) -> str:
    digest = hashlib.sha256()
    modules = sorted((suite.tla_file, *suite.dependencies), key=lambda path: path.name)
    files = modules + ([suite.config_file] if suite.config_file is not None else [])
    for path in files:
        digest.update(path.name.encode("utf-8"))
        digest.update(b"\0")
        digest.update(path.read_bytes())
        digest.update(b"\0")
    # The root module name keeps tests sharing one tests module apart.
    digest.update(suite.tla_file.name.encode("utf-8"))
    digest.update(json.dumps({"checker": checker, "options": dict(options)}, sort_keys=True).encode("utf-8"))
    return digest.hexdigest()


class CheckResults:
    def __init__(self, root: Path | str) -> None:
        self.root = Path(root) / RESULTS_DIR

    def path_for(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[List[JsonTrace]]:
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as fh:
                record = json.load(fh)
            traces = [TraceParser().parse(text) for text in record["traces"]]
        except FileNotFoundError:
            return None
        except (ValueError, KeyError, TypeError, ParseError) as exc:
            logger.warning("discarding unreadable result %s: %s", path.name, exc)
            path.unlink(missing_ok=True)
            return None
        obs.emit("checker.result_hit", key=key)
        return traces

    def put(self, key: str, checker: str, traces: Sequence[JsonTrace]) -> Path:
        path = self.path_for(key)
        record = {"checker": checker, "traces": [render_tla_trace(trace) for trace in traces]}
        write_text_atomic(path, json.dumps(record, indent=2, ensure_ascii=False) + "\n")
        return path


__all__ = ["CheckResults", "RESULTS_DIR", "result_key"]
