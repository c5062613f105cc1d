from .dispatcher import CallContext, Dispatcher
from .envelope import Envelope, decode_envelope
from .ir import CallExpression, decode_call_graph, load_call_graph, parse_call_graph
from .registry import ModuleRegistry, Operation

__all__ = [
    "CallContext",
    "CallExpression",
    "Dispatcher",
    "Envelope",
    "ModuleRegistry",
    "Operation",
    "decode_call_graph",
    "decode_envelope",
    "load_call_graph",
    "parse_call_graph",
]
