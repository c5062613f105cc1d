"""Content-verified cache for external tool binaries.

Layout::

    <root>/<name>/<version>/<filename>
    <root>/<name>/<version>/<filename>.sha256

The sidecar records the digest the file was verified against. Concurrent
resolvers of the same key share a single download; unrelated keys proceed
independently.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import os
import tempfile
import threading
import time
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, Dict, Optional, Tuple

from mbt import obs
from mbt.config import EngineConfig
from mbt.errors import CacheError, IntegrityError, NetworkFailure

from .manifest import ToolArtifact, ToolManifest

logger = logging.getLogger(__name__)

Fetch = Callable[[str], IO[bytes]]

_CHUNK = 1024 * 1024
_SIDECAR_SUFFIX = ".sha256"


def default_fetch(url: str) -> IO[bytes]:
    return urllib.request.urlopen(url, timeout=60)


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(_CHUNK)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def _write_atomic(path: Path, text: str) -> None:
    tmp_path = path.parent / f".{path.name}.tmp-{os.getpid()}-{threading.get_ident()}"
    with tmp_path.open("w", encoding="utf-8") as fh:
        fh.write(text)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp_path, path)


@dataclass
class _InFlight:
    event: threading.Event = field(default_factory=threading.Event)
    path: Optional[Path] = None
    error: Optional[BaseException] = None


class ArtifactCache:
    def __init__(
        self,
        root: Path | str,
        manifest: ToolManifest,
        *,
        fetch: Optional[Fetch] = None,
        strict: bool = False,
        retries: int = 3,
        retry_backoff_s: float = 1.0,
        require_pinned_digest: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.root = Path(root)
        self.manifest = manifest
        self.strict = strict
        self.retries = retries
        self.retry_backoff_s = retry_backoff_s
        self.require_pinned_digest = require_pinned_digest
        self._fetch = fetch or default_fetch
        self._sleep = sleep
        self._guard = threading.Lock()
        self._inflight: Dict[Tuple[str, str], _InFlight] = {}
        self._resolved: Dict[Tuple[str, str], Path] = {}

    @classmethod
    def from_config(cls, config: EngineConfig, *, fetch: Optional[Fetch] = None) -> "ArtifactCache":
        settings = config.cache
        return cls(
            settings.dir,
            ToolManifest.from_config(config),
            fetch=fetch,
            strict=settings.strict,
            retries=settings.retries,
            retry_backoff_s=settings.retry_backoff_s,
            require_pinned_digest=settings.require_pinned_digest,
        )

    def path_for(self, artifact: ToolArtifact) -> Path:
        return self.root / artifact.name / artifact.version / artifact.filename

    def resolve(self, name: str, version: Optional[str] = None) -> Path:
        """Return a local, verified path for the tool, downloading on a miss."""

        artifact = self.manifest.artifact(name, version)
        key = artifact.key
        while True:
            with self._guard:
                cached = self._resolved.get(key)
                if cached is not None and not self.strict:
                    obs.emit("cache.hit", tool=artifact.name, version=artifact.version, memoized=True)
                    return cached
                flight = self._inflight.get(key)
                leader = flight is None
                if flight is None:
                    flight = _InFlight()
                    self._inflight[key] = flight
            if not leader:
                flight.event.wait()
                if flight.error is None and flight.path is not None:
                    return flight.path
                # The leader failed; try again, possibly as the new leader.
                continue
            try:
                path = self._resolve_on_disk(artifact)
                flight.path = path
                with self._guard:
                    self._resolved[key] = path
                return path
            except BaseException as exc:
                flight.error = exc
                raise
            finally:
                with self._guard:
                    self._inflight.pop(key, None)
                flight.event.set()

    # -----------------------------------------------------------------------
    # Disk state
    # -----------------------------------------------------------------------
    def _expected_digest(self, artifact: ToolArtifact) -> Optional[str]:
        if artifact.expected_hash is None and self.require_pinned_digest:
            raise CacheError(f"No pinned sha256 for {artifact.name} {artifact.version}")
        return artifact.expected_hash

    def _read_sidecar(self, target: Path) -> Optional[str]:
        sidecar = target.with_name(target.name + _SIDECAR_SUFFIX)
        try:
            text = sidecar.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return text.split()[0].lower() if text else None

    def _write_sidecar(self, target: Path, digest: str) -> None:
        sidecar = target.with_name(target.name + _SIDECAR_SUFFIX)
        _write_atomic(sidecar, f"{digest}  {target.name}\n")

    def _discard(self, target: Path) -> None:
        for path in (target, target.with_name(target.name + _SIDECAR_SUFFIX)):
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def _verified_on_disk(self, artifact: ToolArtifact, target: Path, expected: Optional[str]) -> bool:
        if not target.is_file():
            return False
        recorded = self._read_sidecar(target)
        reference = expected or recorded
        if recorded is not None and not self.strict:
            return expected is None or recorded == expected
        actual = sha256_file(target)
        if reference is not None and actual != reference:
            logger.warning("cached %s %s does not match its digest, re-downloading", artifact.name, artifact.version)
            return False
        if recorded is None:
            self._write_sidecar(target, actual)
        return True

    def _resolve_on_disk(self, artifact: ToolArtifact) -> Path:
        target = self.path_for(artifact)
        expected = self._expected_digest(artifact)
        if self._verified_on_disk(artifact, target, expected):
            obs.emit("cache.hit", tool=artifact.name, version=artifact.version, path=str(target))
            return target
        self._discard(target)

        last_error: Optional[CacheError] = None
        for attempt in range(1, self.retries + 2):
            try:
                return self._download(artifact, target, expected)
            except (NetworkFailure, IntegrityError) as exc:
                last_error = exc
                logger.warning(
                    "download of %s %s failed (attempt %d/%d): %s",
                    artifact.name,
                    artifact.version,
                    attempt,
                    self.retries + 1,
                    exc,
                )
                if attempt <= self.retries and self.retry_backoff_s > 0:
                    self._sleep(self.retry_backoff_s * attempt)
        assert last_error is not None
        raise last_error

    def _download(self, artifact: ToolArtifact, target: Path, expected: Optional[str]) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".part")
        tmp_path = Path(tmp_name)
        obs.emit("cache.download", tool=artifact.name, version=artifact.version, url=artifact.url)
        try:
            digest = hashlib.sha256()
            with os.fdopen(fd, "wb") as out:
                try:
                    with self._fetch(artifact.url) as source:
                        while True:
                            chunk = source.read(_CHUNK)
                            if not chunk:
                                break
                            digest.update(chunk)
                            out.write(chunk)
                except (OSError, ValueError, http.client.HTTPException) as exc:
                    raise NetworkFailure(f"Failed to download {artifact.url}: {exc}") from exc
                out.flush()
                os.fsync(out.fileno())
            actual = digest.hexdigest()
            if expected is not None and actual != expected:
                raise IntegrityError(artifact.name, expected, actual)
            if expected is None:
                logger.warning(
                    "%s %s has no pinned sha256; trusting %s on first use",
                    artifact.name,
                    artifact.version,
                    actual,
                )
            os.replace(tmp_path, target)
            self._write_sidecar(target, actual)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        obs.emit("cache.verified", tool=artifact.name, version=artifact.version, sha256=actual, pinned=expected is not None)
        return target


__all__ = ["ArtifactCache", "Fetch", "default_fetch", "sha256_file"]
