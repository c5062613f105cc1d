"""Process-wide wiring: one registry, cache and runner shared by all calls."""

from __future__ import annotations

from typing import Mapping, Optional

from mbt.artifacts.cache import ArtifactCache, Fetch
from mbt.callgraph.dispatcher import Dispatcher
from mbt.callgraph.registry import Handler, ModuleRegistry, Operation
from mbt.checker.runner import ProcessRunner
from mbt.config import EngineConfig, load_config
from mbt.operations import build_registry


def build_dispatcher(
    config: Optional[EngineConfig] = None,
    *,
    registry: Optional[ModuleRegistry] = None,
    overrides: Optional[Mapping[Operation, Handler]] = None,
    fetch: Optional[Fetch] = None,
    cache: Optional[ArtifactCache] = None,
    runner: Optional[ProcessRunner] = None,
) -> Dispatcher:
    config = config or load_config()
    return Dispatcher(
        registry or build_registry(overrides),
        config=config,
        cache=cache or ArtifactCache.from_config(config, fetch=fetch),
        runner=runner or ProcessRunner.from_config(config),
    )


__all__ = ["build_dispatcher"]
