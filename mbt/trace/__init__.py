from .parser import JsonTrace, Outcome, TraceParser, TraceState, parse_trace, parse_value
from .render import read_json_trace, render_tla_trace, render_value, write_json_trace, write_tla_trace

__all__ = [
    "JsonTrace",
    "Outcome",
    "TraceParser",
    "TraceState",
    "parse_trace",
    "parse_value",
    "read_json_trace",
    "render_tla_trace",
    "render_value",
    "write_json_trace",
    "write_tla_trace",
]
