from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional

from mbt.config import EngineConfig, ToolSpec
from mbt.errors import NotFound


@dataclass(frozen=True)
class ToolArtifact:
    """A concrete (name, version) of an external tool and where to fetch it."""

    name: str
    version: str
    url: str
    filename: str
    expected_hash: Optional[str] = None
    resolved_path: Optional[Path] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    @property
    def pinned(self) -> bool:
        return self.expected_hash is not None


class ToolManifest(Mapping[str, ToolSpec]):
    def __init__(self, tools: Mapping[str, ToolSpec]) -> None:
        self._tools: Dict[str, ToolSpec] = dict(tools)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ToolManifest":
        return cls(config.tools)

    def __getitem__(self, name: str) -> ToolSpec:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def artifact(self, name: str, version: Optional[str] = None) -> ToolArtifact:
        spec = self._tools.get(name)
        if spec is None:
            known = ", ".join(sorted(self._tools)) or "none"
            raise NotFound(f"Unknown tool {name!r} (known: {known})")
        resolved_version = version or spec.version
        # A pin only describes the configured version.
        expected = spec.sha256 if resolved_version == spec.version else None
        return ToolArtifact(
            name=spec.name,
            version=resolved_version,
            url=spec.source_url(resolved_version),
            filename=spec.filename,
            expected_hash=expected,
        )


__all__ = ["ToolArtifact", "ToolManifest"]
