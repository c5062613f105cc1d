from .cache import ArtifactCache, default_fetch, sha256_file
from .manifest import ToolArtifact, ToolManifest

__all__ = ["ArtifactCache", "ToolArtifact", "ToolManifest", "default_fetch", "sha256_file"]
