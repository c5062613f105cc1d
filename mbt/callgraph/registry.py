from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Mapping, Optional

from mbt.errors import UnknownOperation

if TYPE_CHECKING:  # pragma: no cover
    from .dispatcher import CallContext


class Operation(str, Enum):
    TLA_LIST_TESTS = "tla.list-tests"
    TLA_MODULE_NAME = "tla.module-name"
    TLA_INSTANTIATE_TEST = "tla.instantiate-test"
    TLA_NEGATE_ASSERTION = "tla.negate-assertion"
    TLA_GENERATE_TESTS = "tla.generate-tests"
    TLA_PARSE_TRACE = "tla.parse-trace"
    TLA_TRACE_TO_JSON_TRACE = "tla.tla-trace-to-json-trace"
    TLC_TEST = "tlc.test"
    APALACHE_TEST = "apalache.test"
    APALACHE_PARSE = "apalache.parse"
    JSON_GET = "json.get"
    PIPELINE_TRACES = "pipeline.traces"

    @property
    def module(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def method(self) -> str:
        return self.value.split(".", 1)[1]

    @classmethod
    def lookup(cls, module: str, method: str) -> "Operation":
        try:
            return cls(f"{module}.{method}")
        except ValueError:
            raise UnknownOperation(f"{module}.{method}") from None


Handler = Callable[..., Any]
"""``handler(ctx: CallContext, *args) -> value``; values must be JSON-shaped."""


class ModuleRegistry(Mapping[Operation, Handler]):
    """Read-only mapping from operations to handlers.

    Built once and shared by every worker; there is no way to register
    after construction.
    """

    def __init__(self, handlers: Mapping[Operation, Handler]) -> None:
        unknown = [key for key in handlers if not isinstance(key, Operation)]
        if unknown:
            raise TypeError(f"registry keys must be Operation members, got {unknown!r}")
        self._handlers: Mapping[Operation, Handler] = MappingProxyType(dict(handlers))

    def __getitem__(self, op: Operation) -> Handler:
        return self._handlers[op]

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def resolve(self, module: str, method: str) -> tuple[Operation, Handler]:
        op = Operation.lookup(module, method)
        handler: Optional[Handler] = self._handlers.get(op)
        if handler is None:
            raise UnknownOperation(op.value)
        return op, handler

    def describe(self) -> Dict[str, str]:
        return {
            op.value: ((handler.__doc__ or "").strip().splitlines() or [""])[0]
            for op, handler in sorted(self._handlers.items(), key=lambda item: item[0].value)
        }

    def with_overrides(self, overrides: Mapping[Operation, Handler]) -> "ModuleRegistry":
        merged: Dict[Operation, Handler] = dict(self._handlers)
        merged.update(overrides)
        return ModuleRegistry(merged)


__all__ = ["Handler", "ModuleRegistry", "Operation"]
