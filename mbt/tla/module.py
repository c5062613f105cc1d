"""Structural reading of TLA+ module files.

Only module headers, ``EXTENDS`` lines and top-level operator names are
inspected; module bodies are never parsed.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from mbt.errors import ModuleNameError, NoTestFound, TlaError

logger = logging.getLogger(__name__)

# Modules shipped with the TLA+ tools; they never exist next to user files.
STANDARD_MODULES = frozenset(
    {
        "Bags",
        "FiniteSets",
        "Integers",
        "Json",
        "Naturals",
        "Randomization",
        "Reals",
        "RealTime",
        "Sequences",
        "TLC",
        "TLCExt",
        "Toolbox",
    }
)

_MODULE_HEADER = re.compile(r"^\s*-{4,}\s*MODULE\s+([A-Za-z_][A-Za-z0-9_]*)\s*-{4,}", re.MULTILINE)
_MODULE_END = re.compile(r"^\s*={4,}\s*$", re.MULTILINE)
_EXTENDS = re.compile(r"^\s*EXTENDS\s+(.*)$", re.MULTILINE)
_DEFINITION = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*==", re.MULTILINE)

TEST_MARKER = "Test"


def read_module(path: Path | str) -> str:
    source = Path(path)
    try:
        return source.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise TlaError(f"TLA+ file not found: {source}") from None
    except OSError as exc:
        raise TlaError(f"Cannot read {source}: {exc}") from exc


def strip_comments(text: str) -> str:
    """Blank out ``\\*`` and (nested) ``(* *)`` comments, keeping line breaks."""

    out: List[str] = []
    depth = 0
    i = 0
    in_string = False
    while i < len(text):
        pair = text[i : i + 2]
        ch = text[i]
        if depth == 0 and in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < len(text):
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
        elif pair == "(*":
            depth += 1
            out.append("  ")
            i += 2
        elif depth and pair == "*)":
            depth -= 1
            out.append("  ")
            i += 2
        elif depth:
            out.append("\n" if ch == "\n" else " ")
            i += 1
        elif pair == "\\*":
            while i < len(text) and text[i] != "\n":
                out.append(" ")
                i += 1
        else:
            if ch == '"':
                in_string = True
            out.append(ch)
            i += 1
    return "".join(out)


def module_name(text: str, *, source: Optional[Path] = None) -> str:
    match = _MODULE_HEADER.search(strip_comments(text))
    if match is None:
        where = f" in {source}" if source else ""
        raise ModuleNameError(f"No MODULE header found{where}")
    return match.group(1)


def module_name_of(path: Path | str) -> str:
    return module_name(read_module(path), source=Path(path))


def is_test_operator(name: str) -> bool:
    return name.startswith(TEST_MARKER) or name.endswith(TEST_MARKER)


def list_operators(text: str) -> List[str]:
    """Zero-arity top-level definitions, in source order."""

    seen: List[str] = []
    for match in _DEFINITION.finditer(strip_comments(text)):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def list_tests(text: str) -> List[str]:
    operators = list_operators(text)
    names = set(operators)
    return [
        name
        for name in operators
        if is_test_operator(name) and not (name.endswith("Neg") and name[: -len("Neg")] in names)
    ]


def list_tests_in(path: Path | str) -> List[str]:
    tests = list_tests(read_module(path))
    if not tests:
        raise NoTestFound(str(path))
    return tests


def extends_of(text: str) -> List[str]:
    modules: List[str] = []
    for match in _EXTENDS.finditer(strip_comments(text)):
        for name in match.group(1).split(","):
            name = name.strip()
            if name and name not in modules:
                modules.append(name)
    return modules


def insert_before_end(text: str, addition: str) -> str:
    """Insert ``addition`` before the closing ``====`` line of the module."""

    matches = list(_MODULE_END.finditer(text))
    if not matches:
        raise TlaError("Module has no closing '====' line")
    end = matches[-1]
    before = text[: end.start()].rstrip("\n")
    return f"{before}\n\n{addition.rstrip()}\n\n{text[end.start():].lstrip()}"


# ---------------------------------------------------------------------------
# File suites
# ---------------------------------------------------------------------------
def _copy_atomic(source: Path, target: Path) -> None:
    # Concurrent pipelines copy the same modules; readers must never see a
    # partially written file.
    tmp_path = target.parent / f".{target.name}.tmp-{uuid.uuid4().hex}"
    shutil.copyfile(source, tmp_path)
    os.replace(tmp_path, target)


@dataclass(frozen=True)
class TlaFileSuite:
    """A module, its model config and the user modules it transitively extends."""

    tla_file: Path
    config_file: Optional[Path]
    dependencies: Tuple[Path, ...] = ()

    @classmethod
    def gather(cls, tla_file: Path | str, config_file: Path | str | None = None) -> "TlaFileSuite":
        root = Path(tla_file)
        if config_file is not None and not Path(config_file).is_file():
            raise TlaError(f"TLA+ config file not found: {config_file}")
        return cls(root, Path(config_file) if config_file is not None else None, tuple(gather_dependencies(root)))

    def copy_to(self, out_dir: Path) -> "TlaFileSuite":
        """Copy every module of the suite into ``out_dir``; returns the copy."""

        out_dir.mkdir(parents=True, exist_ok=True)
        copied: List[Path] = []
        for path in (self.tla_file, *self.dependencies):
            target = out_dir / path.name
            if path.resolve() != target.resolve():
                _copy_atomic(path, target)
            copied.append(target)
        config = None
        if self.config_file is not None:
            config = out_dir / self.config_file.name
            if self.config_file.resolve() != config.resolve():
                _copy_atomic(self.config_file, config)
        return TlaFileSuite(copied[0], config, tuple(copied[1:]))


def gather_dependencies(tla_file: Path | str) -> List[Path]:
    """User modules reachable through ``EXTENDS``, excluding standard modules.

    Modules without a file next to the extending module are assumed to come
    from a library jar on the checker's classpath.
    """

    root = Path(tla_file)
    pending: List[Path] = [root]
    explored: List[Path] = []
    while pending:
        current = pending.pop(0)
        for name in extends_of(read_module(current)):
            if name in STANDARD_MODULES:
                continue
            candidate = current.parent / f"{name}.tla"
            if candidate == root or candidate in explored:
                continue
            if not candidate.is_file():
                logger.debug("module %s extended by %s not found locally", name, current.name)
                continue
            explored.append(candidate)
            pending.append(candidate)
    return explored


__all__ = [
    "STANDARD_MODULES",
    "TlaFileSuite",
    "extends_of",
    "gather_dependencies",
    "insert_before_end",
    "is_test_operator",
    "list_operators",
    "list_tests",
    "list_tests_in",
    "module_name",
    "module_name_of",
    "read_module",
    "strip_comments",
]
