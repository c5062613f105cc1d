from __future__ import annotations

import json
import os
import uuid
from pathlib import Path
from typing import Any, Dict, List, Sequence

from mbt.errors import ParseError
from mbt.schema import SchemaValidationError, validate_json_trace

from .parser import MAP_KEY, OUTCOME_KEY, SET_KEY, JsonTrace, Outcome, TraceState

TRACE_COMMENT = "\\* mbt counterexample trace"


def _render_string(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
        .replace("\f", "\\f")
    )
    return f'"{escaped}"'


def render_value(value: Any) -> str:
    """Render a JSON-mapped value back into TLA+ notation."""

    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return _render_string(value)
    if isinstance(value, list):
        return "<<" + ", ".join(render_value(item) for item in value) + ">>"
    if isinstance(value, dict):
        if set(value) == {SET_KEY}:
            return "{" + ", ".join(render_value(item) for item in value[SET_KEY]) + "}"
        if set(value) == {MAP_KEY}:
            pairs = value[MAP_KEY]
            if not pairs:
                return "SetAsFun({})"
            return "(" + " @@ ".join(f"{render_value(k)} :> {render_value(v)}" for k, v in pairs) + ")"
        return "[" + ", ".join(f"{key} |-> {render_value(item)}" for key, item in value.items()) + "]"
    raise TypeError(f"cannot render {type(value).__name__} as a TLA+ value")


def render_tla_trace(trace: JsonTrace) -> str:
    """Normalized trace file: ``State N: <label>`` blocks, one variable per line."""

    lines: List[str] = [TRACE_COMMENT, f"\\* outcome: {trace.outcome.value}"]
    for state in trace.states:
        lines.append("")
        lines.append(f"State {state.number}: {state.label}".rstrip())
        for name, value in state.variables.items():
            lines.append(f"/\\ {name} = {render_value(value)}")
    return "\n".join(lines) + "\n"


def json_trace_from_payload(payload: Sequence[Dict[str, Any]]) -> JsonTrace:
    try:
        validate_json_trace(payload)
    except SchemaValidationError as exc:
        raise ParseError(str(exc)) from exc
    outcome = Outcome(payload[-1][OUTCOME_KEY])
    states = tuple(TraceState(index, "", dict(state)) for index, state in enumerate(payload[:-1], start=1))
    return JsonTrace(states, outcome)


def write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.parent / f".{path.name}.tmp-{uuid.uuid4().hex}"
    with tmp_path.open("w", encoding="utf-8") as fh:
        fh.write(text)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp_path, path)


def write_json_trace(trace: JsonTrace, path: Path | str) -> Path:
    payload = trace.to_json()
    validate_json_trace(payload)
    target = Path(path)
    write_text_atomic(target, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
    return target


def read_json_trace(path: Path | str) -> JsonTrace:
    with Path(path).open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, list):
        raise ParseError(f"{path}: JSON trace must be an array")
    return json_trace_from_payload(payload)


def write_tla_trace(trace: JsonTrace, path: Path | str) -> Path:
    target = Path(path)
    write_text_atomic(target, render_tla_trace(trace))
    return target


__all__ = [
    "json_trace_from_payload",
    "read_json_trace",
    "render_tla_trace",
    "render_value",
    "write_json_trace",
    "write_text_atomic",
    "write_tla_trace",
]
