from .apalache import ApalacheChecker
from .base import ModelChecker
from .exit_codes import APALACHE_EXIT_CODES, TLC_EXIT_CODES, ExitCodeTable, ExitKind
from .results import CheckResults
from .runner import ProcessOutput, ProcessRunner
from .tlc import TlcChecker

__all__ = [
    "APALACHE_EXIT_CODES",
    "ApalacheChecker",
    "CheckResults",
    "ExitCodeTable",
    "ExitKind",
    "ModelChecker",
    "ProcessOutput",
    "ProcessRunner",
    "TLC_EXIT_CODES",
    "TlcChecker",
]
