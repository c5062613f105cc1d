"""Handlers behind every registered operation."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from mbt.callgraph.registry import Handler, ModuleRegistry, Operation

from . import checkers, pipeline, tla, values


def default_handlers() -> Dict[Operation, Handler]:
    handlers: Dict[Operation, Handler] = {}
    for module in (tla, checkers, values, pipeline):
        handlers.update(module.HANDLERS)
    return handlers


def build_registry(overrides: Optional[Mapping[Operation, Handler]] = None) -> ModuleRegistry:
    handlers = default_handlers()
    missing = [op.value for op in Operation if op not in handlers]
    if missing:
        raise RuntimeError(f"operations without a handler: {', '.join(missing)}")
    registry = ModuleRegistry(handlers)
    return registry.with_overrides(overrides) if overrides else registry


__all__ = ["build_registry", "default_handlers"]
