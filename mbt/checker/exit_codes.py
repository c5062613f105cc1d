"""Exit-code classification for the supported model checkers.

Tables follow the checkers' own exit status conventions (TLC ``EC.ExitStatus``
for 1.7 - 1.8 and the matching Apalache 0.17+ codes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Tuple


class ExitKind(str, Enum):
    VERIFIED = "verified"
    COUNTEREXAMPLE = "counterexample"
    SPEC_ERROR = "spec_error"
    TOOL_ERROR = "tool_error"

    @property
    def is_error(self) -> bool:
        return self in (ExitKind.SPEC_ERROR, ExitKind.TOOL_ERROR)


@dataclass(frozen=True)
class ExitCodeTable:
    tool: str
    codes: Mapping[int, ExitKind] = field(default_factory=dict)
    fallback: ExitKind = ExitKind.TOOL_ERROR

    def classify(self, exit_code: int) -> ExitKind:
        return self.codes.get(exit_code, self.fallback)

    def codes_for(self, kind: ExitKind) -> Tuple[int, ...]:
        return tuple(sorted(code for code, value in self.codes.items() if value is kind))


def _table(tool: str, groups: Mapping[ExitKind, Tuple[int, ...]]) -> ExitCodeTable:
    codes: Dict[int, ExitKind] = {}
    for kind, values in groups.items():
        for code in values:
            codes[code] = kind
    return ExitCodeTable(tool, codes)


TLC_EXIT_CODES = _table(
    "tlc",
    {
        ExitKind.VERIFIED: (0,),
        # assumption, deadlock, safety, liveness, assert
        ExitKind.COUNTEREXAMPLE: (10, 11, 12, 13, 14),
        # evaluation failures, spec and config parse errors
        ExitKind.SPEC_ERROR: (75, 76, 77, 150, 151),
        # state space too large, system error
        ExitKind.TOOL_ERROR: (152, 153),
    },
)

APALACHE_EXIT_CODES = _table(
    "apalache",
    {
        ExitKind.VERIFIED: (0,),
        ExitKind.COUNTEREXAMPLE: (12,),
        ExitKind.SPEC_ERROR: (75, 120, 150),
        ExitKind.TOOL_ERROR: (255,),
    },
)

# Any process whose exit status carries no checker semantics.
GENERIC_EXIT_CODES = ExitCodeTable("generic", {0: ExitKind.VERIFIED})

EXIT_CODE_TABLES: Mapping[str, ExitCodeTable] = {
    "tlc": TLC_EXIT_CODES,
    "apalache": APALACHE_EXIT_CODES,
}


__all__ = [
    "APALACHE_EXIT_CODES",
    "EXIT_CODE_TABLES",
    "ExitCodeTable",
    "ExitKind",
    "GENERIC_EXIT_CODES",
    "TLC_EXIT_CODES",
]
