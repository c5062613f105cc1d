"""Model instantiation and assertion negation for test operators.

For a test operator ``T`` in module ``Tests`` the generated model is::

    ---- MODULE Tests_T ----
    EXTENDS Tests

    TNeg == ~T

    ====

checked with ``INVARIANT TNeg``: any counterexample is a behaviour reaching a
state where ``T`` holds.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping

from mbt.errors import TlaError
from mbt.schema import SchemaValidationError, validate_generated_test

from .module import TlaFileSuite, insert_before_end, list_operators, module_name, read_module

NEGATION_SUFFIX = "Neg"

# Sections of a model config that state what to check rather than the model.
_CHECK_SECTIONS = frozenset({"INVARIANT", "INVARIANTS", "PROPERTY", "PROPERTIES"})
_CONFIG_KEYWORDS = frozenset(
    {
        "INIT",
        "NEXT",
        "SPECIFICATION",
        "CONSTANT",
        "CONSTANTS",
        "CONSTRAINT",
        "CONSTRAINTS",
        "ACTION_CONSTRAINT",
        "ACTION_CONSTRAINTS",
        "SYMMETRY",
        "VIEW",
        "CHECK_DEADLOCK",
        "POSTCONDITION",
        "ALIAS",
    }
    | _CHECK_SECTIONS
)
_KEYWORD = re.compile(r"^\s*([A-Z_]+)\b")


@dataclass(frozen=True)
class GeneratedTest:
    tla_file: Path
    tla_config_file: Path
    test: str

    def to_json(self) -> Dict[str, str]:
        return {"tla_file": str(self.tla_file), "tla_config_file": str(self.tla_config_file), "test": self.test}

    @classmethod
    def from_json(cls, payload: Any) -> "GeneratedTest":
        if not isinstance(payload, Mapping):
            raise TlaError("generated test descriptor must be an object")
        try:
            validate_generated_test(payload)
        except SchemaValidationError as exc:
            raise TlaError(str(exc)) from exc
        tla_file = Path(payload["tla_file"])
        return cls(tla_file, Path(payload["tla_config_file"]), str(payload.get("test") or tla_file.stem))


def negated_name(operator: str) -> str:
    return f"{operator}{NEGATION_SUFFIX}"


def strip_check_sections(config_text: str) -> str:
    """Drop INVARIANT and PROPERTY sections from a TLC model config."""

    kept: List[str] = []
    skipping = False
    for line in config_text.splitlines():
        match = _KEYWORD.match(line)
        if match and match.group(1) in _CONFIG_KEYWORDS:
            skipping = match.group(1) in _CHECK_SECTIONS
        if not skipping:
            kept.append(line)
    return "\n".join(kept).strip() + "\n"


def _write(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise TlaError(f"Cannot write {path}: {exc}") from exc


def _read_config(path: Path | str) -> str:
    source = Path(path)
    try:
        return source.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise TlaError(f"TLA+ config file not found: {source}") from None


def instantiate_test(
    tests_file: Path | str,
    config_file: Path | str,
    operator: str,
    out_dir: Path | str | None = None,
) -> GeneratedTest:
    """Write the model module ``<Tests>_<operator>`` and its config.

    The tests module and the user modules it extends are copied next to the
    generated files so that the output directory is self-contained.
    """

    tests_path = Path(tests_file)
    text = read_module(tests_path)
    tests_module = module_name(text, source=tests_path)
    if operator not in list_operators(text):
        raise TlaError(f"Operator {operator} is not defined in {tests_path}")
    target_dir = Path(out_dir) if out_dir else tests_path.parent
    TlaFileSuite.gather(tests_path).copy_to(target_dir)

    name = f"{tests_module}_{operator}"
    model = f"---------------------------- MODULE {name} ----------------------------\n\nEXTENDS {tests_module}\n\n====\n"
    tla_file = target_dir / f"{name}.tla"
    cfg_file = target_dir / f"{name}.cfg"
    _write(tla_file, model)
    _write(cfg_file, strip_check_sections(_read_config(config_file)))
    return GeneratedTest(tla_file, cfg_file, operator)


def negate_assertion(tla_file: Path | str, config_file: Path | str, operator: str) -> GeneratedTest:
    """Add ``<operator>Neg == ~<operator>`` and check it as an invariant.

    Applying it twice leaves the files unchanged.
    """

    tla_path = Path(tla_file)
    cfg_path = Path(config_file)
    text = read_module(tla_path)
    suite = TlaFileSuite.gather(tla_path)
    defined = set(list_operators(text))
    for dependency in suite.dependencies:
        defined.update(list_operators(read_module(dependency)))
    if operator not in defined:
        raise TlaError(f"Operator {operator} is not defined in {tla_path} or the modules it extends")

    negated = negated_name(operator)
    if negated not in defined:
        _write(tla_path, insert_before_end(text, f"{negated} == ~{operator}"))

    config = _read_config(cfg_path)
    invariant = f"INVARIANT {negated}"
    if not any(line.strip() == invariant for line in config.splitlines()):
        _write(cfg_path, config.rstrip("\n") + f"\n{invariant}\n")
    return GeneratedTest(tla_path, cfg_path, operator)


__all__ = [
    "GeneratedTest",
    "NEGATION_SUFFIX",
    "instantiate_test",
    "negate_assertion",
    "negated_name",
    "strip_check_sections",
]
