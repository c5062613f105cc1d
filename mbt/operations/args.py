"""Argument coercion shared by handlers.

Nested calls hand their results to the enclosing call unchanged, so a path
argument may arrive either as a string or as the descriptor object a previous
operation returned (``{"tla_file": ...}``, ``{"tla_trace_file": ...}``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from mbt.errors import DispatchError


def path_arg(value: Any, key: str, *, what: Optional[str] = None) -> Path:
    if isinstance(value, Mapping):
        if key not in value:
            raise DispatchError(f"descriptor has no {key!r}: {dict(value)!r}")
        value = value[key]
    if not isinstance(value, str) or not value:
        raise DispatchError(f"{what or key} must be a path, got {value!r}")
    return Path(value)


def optional_path(value: Any, key: str) -> Optional[Path]:
    if value is None or value == "":
        return None
    return path_arg(value, key)


def model_args(tla_file: Any, config_file: Any = None) -> Tuple[Path, Path]:
    """Accept ``(tla_file, config_file)`` or a single generated-test descriptor."""

    if config_file is None:
        if not isinstance(tla_file, Mapping):
            raise DispatchError("expected a tla_file and a tla_config_file")
        return path_arg(tla_file, "tla_file"), path_arg(tla_file, "tla_config_file")
    return path_arg(tla_file, "tla_file"), path_arg(config_file, "tla_config_file")


def string_arg(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise DispatchError(f"{what} must be a non-empty string, got {value!r}")
    return value


__all__ = ["model_args", "optional_path", "path_arg", "string_arg"]
