from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Mapping, Optional, Sequence

from mbt import obs
from mbt.config import EngineConfig
from mbt.errors import NonZeroExit, SpawnFailure, Timeout

from .exit_codes import GENERIC_EXIT_CODES, ExitCodeTable, ExitKind

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024
_JOIN_GRACE_S = 5.0


@dataclass(frozen=True)
class ProcessOutput:
    exit_code: int
    kind: ExitKind
    stdout: str
    stderr: str
    truncated: bool = False
    duration_s: float = 0.0


class _BoundedBuffer:
    """Keeps the first ``limit`` bytes of a stream and counts the rest."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.total = 0
        self._chunks: List[bytes] = []
        self._kept = 0
        self._lock = threading.Lock()

    def write(self, chunk: bytes) -> None:
        with self._lock:
            self.total += len(chunk)
            room = self.limit - self._kept
            if room > 0:
                piece = chunk[:room]
                self._chunks.append(piece)
                self._kept += len(piece)

    @property
    def truncated(self) -> bool:
        return self.total > self.limit

    def text(self) -> str:
        with self._lock:
            data = b"".join(self._chunks)
        text = data.decode("utf-8", errors="replace")
        if self.truncated:
            text += f"\n[mbt: output truncated after {self.limit} bytes]\n"
        return text


def _drain(stream: IO[bytes], sink: _BoundedBuffer) -> None:
    try:
        while True:
            chunk = stream.read(_READ_SIZE)
            if not chunk:
                break
            sink.write(chunk)
    except (OSError, ValueError):
        # Pipe closed underneath us after the process group was killed.
        pass
    finally:
        stream.close()


class ProcessRunner:
    def __init__(self, *, max_output_bytes: int = 16 * 1024 * 1024, default_timeout: float = 600.0) -> None:
        self.max_output_bytes = max_output_bytes
        self.default_timeout = default_timeout

    @classmethod
    def from_config(cls, config: EngineConfig) -> "ProcessRunner":
        return cls(
            max_output_bytes=config.checker.max_output_bytes,
            default_timeout=config.checker.timeout_s,
        )

    def run(
        self,
        executable: str | Path,
        args: Sequence[str | Path] = (),
        *,
        timeout: Optional[float] = None,
        cwd: Optional[Path | str] = None,
        env: Optional[Mapping[str, str]] = None,
        exit_codes: Optional[ExitCodeTable] = None,
    ) -> ProcessOutput:
        """Run a child process to completion and classify its exit status.

        Raises ``SpawnFailure`` when the process cannot start, ``Timeout``
        after killing its whole process group, and ``NonZeroExit`` for exit
        codes the table classifies as errors.
        """

        argv = [str(executable), *(str(arg) for arg in args)]
        limit = timeout if timeout is not None else self.default_timeout
        table = exit_codes or GENERIC_EXIT_CODES
        obs.emit("process.spawn", argv=argv, cwd=str(cwd) if cwd else None, timeout_s=limit)
        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                start_new_session=True,
            )
        except OSError as exc:
            raise SpawnFailure(f"Cannot start {argv[0]}: {exc}") from exc

        stdout = _BoundedBuffer(self.max_output_bytes)
        stderr = _BoundedBuffer(self.max_output_bytes)
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, stdout), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, stderr), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            exit_code = proc.wait(timeout=limit)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            proc.wait()
            _join(readers)
            obs.emit("process.timeout", argv=argv, timeout_s=limit, pid=proc.pid)
            raise Timeout(limit, stdout=stdout.text(), stderr=stderr.text()) from None
        _join(readers)

        duration = time.monotonic() - started
        kind = table.classify(exit_code)
        truncated = stdout.truncated or stderr.truncated
        if truncated:
            logger.warning("output of %s truncated at %d bytes", argv[0], self.max_output_bytes)
        obs.emit(
            "process.exit",
            argv=argv[:1],
            exit_code=exit_code,
            kind=kind.value,
            duration_s=round(duration, 3),
            truncated=truncated,
        )
        output = ProcessOutput(
            exit_code=exit_code,
            kind=kind,
            stdout=stdout.text(),
            stderr=stderr.text(),
            truncated=truncated,
            duration_s=duration,
        )
        if kind.is_error:
            raise NonZeroExit(kind.value, exit_code, stdout=output.stdout, stderr=output.stderr)
        return output


def _kill_group(proc: subprocess.Popen) -> None:
    if hasattr(os, "killpg"):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()
    else:  # pragma: no cover
        proc.kill()


def _join(readers: Sequence[threading.Thread]) -> None:
    for reader in readers:
        reader.join(_JOIN_GRACE_S)
        if reader.is_alive():
            logger.warning("output reader did not finish within %.1fs", _JOIN_GRACE_S)


__all__ = ["ProcessOutput", "ProcessRunner"]
