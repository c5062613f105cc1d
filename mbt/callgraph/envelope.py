from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

from mbt.errors import DispatchError, MbtError, ProtocolViolation

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class Envelope:
    """Unit of interchange with external clients: ``{status, result}``."""

    status: str
    result: Any

    @classmethod
    def success(cls, value: Any) -> "Envelope":
        return cls(SUCCESS, value)

    @classmethod
    def error(cls, message: str) -> "Envelope":
        return cls(ERROR, message)

    @classmethod
    def from_exception(cls, exc: MbtError) -> "Envelope":
        return cls(ERROR, exc.message)

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def unwrap(self) -> Any:
        if self.status == SUCCESS:
            return self.result
        if self.status == ERROR:
            raise DispatchError(str(self.result))
        raise ProtocolViolation(f"unexpected status: {self.status!r}")

    def to_json(self) -> Dict[str, Any]:
        return {"status": self.status, "result": self.result}


def decode_envelope(payload: Any) -> Envelope:
    if not isinstance(payload, Mapping):
        raise ProtocolViolation(f"envelope must be an object, got {type(payload).__name__}")
    status = payload.get("status")
    if status not in (SUCCESS, ERROR):
        raise ProtocolViolation(f"unexpected status: {status!r}")
    if "result" not in payload:
        raise ProtocolViolation("envelope is missing 'result'")
    return Envelope(status, payload["result"])


__all__ = ["ERROR", "SUCCESS", "Envelope", "decode_envelope"]
