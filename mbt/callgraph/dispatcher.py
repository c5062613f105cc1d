from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional

from mbt import obs
from mbt.errors import DepthLimitExceeded, DispatchError, MbtError, ProtocolViolation

from .envelope import Envelope
from .ir import DEFAULT_MAX_DEPTH, Call, CallExpression, Literal, Result, Value
from .registry import ModuleRegistry, Operation

if TYPE_CHECKING:  # pragma: no cover
    from mbt.artifacts.cache import ArtifactCache
    from mbt.checker.runner import ProcessRunner
    from mbt.config import EngineConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallContext:
    """What a handler sees: the dispatcher, process-scoped services, depth."""

    dispatcher: "Dispatcher"
    op: Operation
    depth: int

    @property
    def config(self) -> "EngineConfig":
        return self.dispatcher.config

    @property
    def cache(self) -> "ArtifactCache":
        if self.dispatcher.cache is None:
            raise DispatchError(f"{self.op.value} requires an artifact cache")
        return self.dispatcher.cache

    @property
    def runner(self) -> "ProcessRunner":
        if self.dispatcher.runner is None:
            raise DispatchError(f"{self.op.value} requires a process runner")
        return self.dispatcher.runner

    def invoke(self, op: Operation, *args: Any) -> Any:
        """Run another registered handler with already-evaluated arguments."""

        return self.dispatcher.invoke(op, *args, depth=self.depth + 1)


class Dispatcher:
    """Evaluates call expressions against a read-only registry.

    Arguments are evaluated post-order, left to right, before the handler of
    the enclosing call runs. ``evaluate`` converts domain errors into error
    envelopes; ``call`` raises them.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        *,
        config: Optional["EngineConfig"] = None,
        cache: Optional["ArtifactCache"] = None,
        runner: Optional["ProcessRunner"] = None,
        max_depth: Optional[int] = None,
    ) -> None:
        if config is None:
            from mbt.config import load_config

            config = load_config(search=False, env={})
        self.registry = registry
        self.config = config
        self.cache = cache
        self.runner = runner
        self.max_depth = max_depth or config.engine.max_depth or DEFAULT_MAX_DEPTH

    def evaluate(self, expr: CallExpression) -> Envelope:
        try:
            return Envelope.success(self.call(expr))
        except MbtError as exc:
            logger.debug("call %s failed: %s", expr.name, exc)
            return Envelope.from_exception(exc)

    def call(self, expr: CallExpression) -> Any:
        return self._evaluate(expr, 1)

    def invoke(self, op: Operation, *args: Any, depth: int = 1) -> Any:
        if depth > self.max_depth:
            raise DepthLimitExceeded(self.max_depth)
        _, handler = self.registry.resolve(op.module, op.method)
        return self._run_handler(op, handler, list(args), depth)

    # -----------------------------------------------------------------------
    # Evaluation
    # -----------------------------------------------------------------------
    def _evaluate(self, expr: CallExpression, depth: int) -> Any:
        if depth > self.max_depth:
            raise DepthLimitExceeded(self.max_depth)
        # Unknown operations are rejected before any argument is evaluated.
        op, handler = self.registry.resolve(expr.module, expr.method)
        args = [self._evaluate_value(arg, depth) for arg in expr.args]
        return self._run_handler(op, handler, args, depth)

    def _evaluate_value(self, value: Value, depth: int) -> Any:
        if isinstance(value, Literal):
            return value.value
        if isinstance(value, Call):
            return self._evaluate(value.expr, depth + 1)
        if isinstance(value, Result):
            return value.envelope.unwrap()
        raise ProtocolViolation(f"unexpected call-graph value: {value!r}")

    def _run_handler(self, op: Operation, handler: Any, args: List[Any], depth: int) -> Any:
        ctx = CallContext(self, op, depth)
        try:
            inspect.signature(handler).bind(ctx, *args)
        except TypeError as exc:
            raise DispatchError(f"{op.value}: invalid arguments: {exc}") from exc
        obs.emit("dispatch.call", call=op.value, depth=depth, argc=len(args))
        try:
            return handler(ctx, *args)
        except (MbtError, ProtocolViolation):
            raise
        except Exception as exc:
            raise DispatchError(f"{op.value}: {exc}") from exc


__all__ = ["CallContext", "Dispatcher"]
