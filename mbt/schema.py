from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

from jsonschema import Draft202012Validator, FormatChecker, ValidationError

_CALL_NAME = r"^[A-Za-z][A-Za-z0-9_\-]*\.[A-Za-z][A-Za-z0-9_\-]*$"

SCHEMAS: Dict[str, Dict[str, Any]] = {
    "CallGraph": {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "$defs": {
            "call": {
                "type": "object",
                "required": ["call"],
                "properties": {
                    "call": {"type": "string", "pattern": _CALL_NAME},
                    "args": {"type": "array", "items": {"$ref": "#/$defs/value"}},
                },
                "additionalProperties": False,
            },
            "envelope": {
                "type": "object",
                "required": ["status", "result"],
                "properties": {
                    "status": {"type": "string"},
                    "result": True,
                },
                "additionalProperties": False,
            },
            "value": {
                "anyOf": [
                    {"type": "string"},
                    {"type": "boolean"},
                    {"type": "integer"},
                    {"$ref": "#/$defs/call"},
                    {"$ref": "#/$defs/envelope"},
                ]
            },
        },
        "$ref": "#/$defs/call",
    },
    "Envelope": {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "required": ["status", "result"],
        "properties": {
            "status": {"enum": ["success", "error"]},
            "result": True,
        },
    },
    "GeneratedTest": {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "required": ["tla_file", "tla_config_file"],
        "properties": {
            "tla_file": {"type": "string", "minLength": 1},
            "tla_config_file": {"type": "string", "minLength": 1},
            "test": {"type": "string"},
        },
    },
    "JsonTrace": {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "array",
        "minItems": 1,
        "items": {"type": "object"},
        "contains": {
            "type": "object",
            "required": ["#outcome"],
            "properties": {"#outcome": {"enum": ["verified", "violated"]}},
        },
        "minContains": 1,
        "maxContains": 1,
    },
}


class SchemaValidationError(ValueError):
    def __init__(self, schema_name: str, errors: Sequence[str]) -> None:
        super().__init__(f"{schema_name} failed validation")
        self.schema_name = schema_name
        self.errors = tuple(errors)

    def __str__(self) -> str:
        errors = "\n  - ".join(self.errors)
        return f"{self.schema_name} validation failed:\n  - {errors}"


def _format_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path) or "<root>"
    return f"{path}: {error.message}"


def _validate(schema_name: str, payload: Any) -> None:
    validator = Draft202012Validator(SCHEMAS[schema_name], format_checker=FormatChecker())
    errors = sorted(validator.iter_errors(payload), key=lambda error: tuple(str(p) for p in error.path))
    if errors:
        raise SchemaValidationError(schema_name, tuple(_format_error(error) for error in errors))


def validate_call_graph(payload: Any) -> None:
    _validate("CallGraph", payload)


def validate_envelope(payload: Mapping[str, Any]) -> None:
    _validate("Envelope", payload)


def validate_generated_test(payload: Mapping[str, Any]) -> None:
    _validate("GeneratedTest", payload)


def validate_json_trace(payload: Sequence[Any]) -> None:
    _validate("JsonTrace", payload)
    last = payload[-1]
    if "#outcome" not in last:
        raise SchemaValidationError("JsonTrace", ("<root>: outcome marker must be the last element",))


__all__ = [
    "SCHEMAS",
    "SchemaValidationError",
    "validate_call_graph",
    "validate_envelope",
    "validate_generated_test",
    "validate_json_trace",
]
