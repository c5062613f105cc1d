from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .errors import ConfigError

CONFIG_FILENAME = "mbt.toml"

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "engine": {
        "workers": 0,
        "max_depth": 64,
    },
    "checker": {
        "default": "tlc",
        "timeout_s": 600.0,
        "max_output_bytes": 16 * 1024 * 1024,
        "java": "java",
        "tlc_workers": "auto",
        "traces_per_test": 1,
        "cache_results": True,
    },
    "cache": {
        "dir": "",
        "strict": False,
        "retries": 3,
        "retry_backoff_s": 1.0,
        "require_pinned_digest": False,
    },
    "trace": {
        "strict_trailing": False,
    },
    "tools": {
        "tla2tools": {
            "version": "1.8.0",
            "url": "https://github.com/tlaplus/tlaplus/releases/download/v{version}/tla2tools.jar",
            "filename": "tla2tools.jar",
        },
        "community-modules": {
            "version": "202505152026",
            "url": "https://github.com/tlaplus/CommunityModules/releases/download/{version}/CommunityModules-deps.jar",
            "filename": "CommunityModules-deps.jar",
        },
        "apalache": {
            "version": "0.17.5",
            "url": "https://github.com/informalsystems/apalache/releases/download/v{version}/apalache-pkg-{version}-full.jar",
            "filename": "apalache.jar",
        },
    },
}

CHECKERS = ("tlc", "apalache")


@dataclass(frozen=True)
class EngineSettings:
    workers: int
    max_depth: int


@dataclass(frozen=True)
class CheckerSettings:
    default: str
    timeout_s: float
    max_output_bytes: int
    java: str
    tlc_workers: str
    traces_per_test: int
    cache_results: bool = True


@dataclass(frozen=True)
class CacheSettings:
    dir: Path
    strict: bool
    retries: int
    retry_backoff_s: float
    require_pinned_digest: bool


@dataclass(frozen=True)
class TraceSettings:
    strict_trailing: bool


@dataclass(frozen=True)
class ToolSpec:
    name: str
    version: str
    url: str
    filename: str
    sha256: Optional[str] = None

    def source_url(self, version: Optional[str] = None) -> str:
        return self.url.format(version=version or self.version)


@dataclass(frozen=True)
class EngineConfig:
    engine: EngineSettings
    checker: CheckerSettings
    cache: CacheSettings
    trace: TraceSettings
    tools: Mapping[str, ToolSpec] = field(default_factory=dict)
    source: Optional[Path] = None

    def with_cache_dir(self, path: Path | str) -> "EngineConfig":
        return replace(self, cache=replace(self.cache, dir=Path(path)))


def find_config(start: Path | None = None) -> Optional[Path]:
    start_path = Path(start or Path.cwd()).resolve()
    for candidate in [start_path] + list(start_path.parents):
        path = candidate / CONFIG_FILENAME
        if path.is_file():
            return path
    return None


def load_config(
    path: Path | str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    search: bool = True,
) -> EngineConfig:
    """Build the engine configuration.

    Precedence, lowest first: built-in defaults, ``mbt.toml`` (explicit
    ``path`` or the nearest one found from the working directory), then
    ``MBT_*`` environment variables.
    """

    env = os.environ if env is None else env
    data = _clone(DEFAULT_CONFIG)
    source: Optional[Path] = None
    if path is not None:
        source = Path(path)
        if not source.is_file():
            raise ConfigError(f"Config file not found: {source}")
    elif search:
        source = find_config()
    if source is not None:
        try:
            with source.open("rb") as fh:
                loaded = tomllib.load(fh)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"{source}: {exc}") from exc
        _merge(data, loaded)
    _apply_env(data, env)
    return _build(data, source, env)


def default_cache_dir(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    base = env.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "mbt"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _clone(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _clone(item) for key, item in value.items()}
    if isinstance(value, list):
        return value[:]
    return value


def _merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> None:
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = _clone(value) if isinstance(value, dict) else value


def _apply_env(data: Dict[str, Any], env: Mapping[str, str]) -> None:
    if env.get("MBT_CACHE_DIR"):
        data["cache"]["dir"] = env["MBT_CACHE_DIR"]
    if env.get("MBT_CHECKER"):
        data["checker"]["default"] = env["MBT_CHECKER"]
    if env.get("MBT_WORKERS"):
        data["engine"]["workers"] = env["MBT_WORKERS"]
    if env.get("MBT_TIMEOUT_S"):
        data["checker"]["timeout_s"] = env["MBT_TIMEOUT_S"]


def _as_int(section: str, key: str, value: Any, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"[{section}] {key} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"[{section}] {key} must be an integer, got {value!r}") from exc
    if number < minimum:
        raise ConfigError(f"[{section}] {key} must be >= {minimum}")
    return number


def _as_float(section: str, key: str, value: Any, *, allow_zero: bool = False) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"[{section}] {key} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"[{section}] {key} must be a number, got {value!r}") from exc
    if number < 0 or (number == 0 and not allow_zero):
        raise ConfigError(f"[{section}] {key} must be {'non-negative' if allow_zero else 'positive'}")
    return number


def _as_bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"[{section}] {key} must be a boolean")
    return value


def _build(data: Mapping[str, Any], source: Optional[Path], env: Mapping[str, str]) -> EngineConfig:
    engine = data["engine"]
    workers = _as_int("engine", "workers", engine.get("workers", 0))
    if workers == 0:
        workers = min(4, os.cpu_count() or 1)

    checker = data["checker"]
    default_checker = str(checker.get("default", "tlc")).lower()
    if default_checker not in CHECKERS:
        raise ConfigError(f"[checker] default must be one of {', '.join(CHECKERS)}")
    tlc_workers = str(checker.get("tlc_workers", "auto"))
    if tlc_workers != "auto" and not tlc_workers.isdigit():
        raise ConfigError("[checker] tlc_workers must be 'auto' or a number")

    cache = data["cache"]
    cache_dir = Path(str(cache["dir"])).expanduser() if cache.get("dir") else default_cache_dir(env)

    tools: Dict[str, ToolSpec] = {}
    for name, raw in (data.get("tools") or {}).items():
        if not isinstance(raw, Mapping):
            raise ConfigError(f"[tools.{name}] must be a table")
        if not raw.get("url") or not raw.get("version"):
            raise ConfigError(f"[tools.{name}] requires 'url' and 'version'")
        sha256 = raw.get("sha256")
        tools[name] = ToolSpec(
            name=name,
            version=str(raw["version"]),
            url=str(raw["url"]),
            filename=str(raw.get("filename") or f"{name}.jar"),
            sha256=str(sha256).lower() if sha256 else None,
        )

    return EngineConfig(
        engine=EngineSettings(
            workers=workers,
            max_depth=_as_int("engine", "max_depth", engine.get("max_depth", 64), minimum=1),
        ),
        checker=CheckerSettings(
            default=default_checker,
            timeout_s=_as_float("checker", "timeout_s", checker.get("timeout_s")),
            max_output_bytes=_as_int("checker", "max_output_bytes", checker.get("max_output_bytes"), minimum=1024),
            java=str(checker.get("java", "java")),
            tlc_workers=tlc_workers,
            traces_per_test=_as_int("checker", "traces_per_test", checker.get("traces_per_test", 1), minimum=1),
            cache_results=_as_bool("checker", "cache_results", checker.get("cache_results", True)),
        ),
        cache=CacheSettings(
            dir=cache_dir,
            strict=_as_bool("cache", "strict", cache.get("strict", False)),
            retries=_as_int("cache", "retries", cache.get("retries", 3)),
            retry_backoff_s=_as_float("cache", "retry_backoff_s", cache.get("retry_backoff_s", 1.0), allow_zero=True),
            require_pinned_digest=_as_bool("cache", "require_pinned_digest", cache.get("require_pinned_digest", False)),
        ),
        trace=TraceSettings(
            strict_trailing=_as_bool("trace", "strict_trailing", data["trace"].get("strict_trailing", False)),
        ),
        tools=tools,
        source=source,
    )


__all__ = [
    "CHECKERS",
    "CONFIG_FILENAME",
    "CacheSettings",
    "CheckerSettings",
    "EngineConfig",
    "EngineSettings",
    "ToolSpec",
    "TraceSettings",
    "default_cache_dir",
    "find_config",
    "load_config",
]
