from __future__ import annotations

import json
from typing import Any, Mapping

from mbt.callgraph.registry import Operation
from mbt.errors import DispatchError


def json_get(ctx, value: Any, *path: Any) -> Any:
    """Select a nested value by object keys and array indices."""

    current = value
    if isinstance(current, str) and path:
        # Boundary callers pass documents as JSON text.
        try:
            current = json.loads(current)
        except json.JSONDecodeError as exc:
            raise DispatchError(f"json.get: value is not a JSON document: {exc}") from exc
    for step in path:
        if isinstance(current, Mapping):
            if not isinstance(step, str) or step not in current:
                raise DispatchError(f"json.get: no key {step!r} in object with keys {sorted(current)!r}")
            current = current[step]
        elif isinstance(current, list):
            index = _index(step)
            if not -len(current) <= index < len(current):
                raise DispatchError(f"json.get: index {index} out of range for array of length {len(current)}")
            current = current[index]
        else:
            raise DispatchError(f"json.get: cannot select {step!r} from {type(current).__name__}")
    return current


def _index(step: Any) -> int:
    if isinstance(step, bool):
        raise DispatchError(f"json.get: invalid array index {step!r}")
    if isinstance(step, int):
        return step
    if isinstance(step, str) and step.lstrip("-").isdigit():
        return int(step)
    raise DispatchError(f"json.get: invalid array index {step!r}")


HANDLERS = {Operation.JSON_GET: json_get}

__all__ = ["HANDLERS", "json_get"]
