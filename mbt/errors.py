"""Error taxonomy shared by every mbt component."""

from __future__ import annotations

from typing import Any, Dict, Optional


class MbtError(RuntimeError):
    """Base class for domain errors reported back to callers."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_json(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ConfigError(MbtError):
    kind = "config_error"


class ProtocolViolation(RuntimeError):
    """An envelope with an absent or unrecognized status.

    Integration bug, not a domain outcome: never converted into an error
    envelope, always propagated.
    """


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------
class UnknownOperation(MbtError):
    kind = "unknown_operation"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown operation: {name}")
        self.name = name


class DispatchError(MbtError):
    kind = "dispatch_error"


class InvalidCallGraph(DispatchError):
    kind = "invalid_call_graph"


class DepthLimitExceeded(DispatchError):
    kind = "depth_limit_exceeded"

    def __init__(self, limit: int) -> None:
        super().__init__(f"Call graph exceeds maximum depth of {limit}")
        self.limit = limit


# ---------------------------------------------------------------------------
# Artifact cache
# ---------------------------------------------------------------------------
class CacheError(MbtError):
    kind = "cache_error"


class NotFound(CacheError):
    kind = "not_found"


class NetworkFailure(CacheError):
    kind = "network_failure"


class IntegrityError(CacheError):
    kind = "integrity_error"

    def __init__(self, name: str, expected: str, actual: str) -> None:
        super().__init__(f"Digest mismatch for {name}: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


# ---------------------------------------------------------------------------
# Process runner
# ---------------------------------------------------------------------------
class RunError(MbtError):
    kind = "run_error"

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        if self.stderr:
            data["stderr"] = self.stderr
        return data


class SpawnFailure(RunError):
    kind = "spawn_failure"


class Timeout(RunError):
    kind = "timeout"

    def __init__(self, timeout: float, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(f"Process timed out after {timeout:g}s", stdout=stdout, stderr=stderr)
        self.timeout = timeout


class NonZeroExit(RunError):
    kind = "non_zero_exit"

    def __init__(self, exit_kind: str, exit_code: int, *, stdout: str = "", stderr: str = "") -> None:
        detail = _last_lines(stderr or stdout)
        message = f"{exit_kind} (exit code {exit_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, stdout=stdout, stderr=stderr)
        self.exit_kind = exit_kind
        self.exit_code = exit_code

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        data["exit_kind"] = self.exit_kind
        data["exit_code"] = self.exit_code
        return data


def _last_lines(text: str, count: int = 5) -> str:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    return " ".join(lines[-count:])


# ---------------------------------------------------------------------------
# Trace parsing
# ---------------------------------------------------------------------------
class ParseError(MbtError):
    kind = "parse_error"


class PositionedSyntaxError(ParseError):
    kind = "syntax_error"

    def __init__(self, message: str, line: int, column: int) -> None:
        super().__init__(f"{line}:{column}: {message}")
        self.reason = message
        self.line = line
        self.column = column

    def to_json(self) -> Dict[str, Any]:
        data = super().to_json()
        data["line"] = self.line
        data["column"] = self.column
        return data


class UnrecognizedLiteral(PositionedSyntaxError):
    kind = "unrecognized_literal"

    def __init__(self, token: str, line: int, column: int) -> None:
        super().__init__(f"unrecognized literal starting with {token!r}", line, column)
        self.token = token


class IntegerOverflow(PositionedSyntaxError):
    kind = "integer_overflow"

    def __init__(self, text: str, line: int, column: int) -> None:
        super().__init__(f"integer {text} does not fit in 64 bits", line, column)


class EmptyOrMalformedTrace(ParseError):
    kind = "empty_or_malformed_trace"

    def __init__(self, message: str, cause: Optional[ParseError] = None) -> None:
        if cause is not None:
            message = f"{message}: {cause.message}"
        super().__init__(message)
        self.cause = cause


# ---------------------------------------------------------------------------
# TLA+ files
# ---------------------------------------------------------------------------
class TlaError(MbtError):
    kind = "tla_error"


class ModuleNameError(TlaError):
    kind = "module_name_error"


class NoTestFound(TlaError):
    kind = "no_test_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"No test found in {path}")
        self.path = path


class NoTestTraceFound(TlaError):
    kind = "no_test_trace_found"

    def __init__(self, path: str) -> None:
        super().__init__(f"No trace found in {path}")
        self.path = path


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
class PipelineError(MbtError):
    kind = "pipeline_error"

    def __init__(self, stage: str, cause: MbtError) -> None:
        super().__init__(f"{stage}: {cause.message}")
        self.stage = stage
        self.cause = cause

    def to_json(self) -> Dict[str, Any]:
        return {"kind": self.kind, "stage": self.stage, "cause": self.cause.to_json()}


__all__ = [
    "CacheError",
    "ConfigError",
    "DepthLimitExceeded",
    "DispatchError",
    "EmptyOrMalformedTrace",
    "IntegerOverflow",
    "IntegrityError",
    "InvalidCallGraph",
    "MbtError",
    "ModuleNameError",
    "NetworkFailure",
    "NoTestFound",
    "NoTestTraceFound",
    "NonZeroExit",
    "NotFound",
    "ParseError",
    "PipelineError",
    "PositionedSyntaxError",
    "ProtocolViolation",
    "RunError",
    "SpawnFailure",
    "TlaError",
    "Timeout",
    "UnknownOperation",
    "UnrecognizedLiteral",
]
