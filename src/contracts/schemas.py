"""JSON schemas for documents consumed by the dispatcher."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import jsonschema

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://fast-build.invalid/schemas/config.json",
    "type": "object",
    "properties": {
        "dispatch": {
            "type": "object",
            "properties": {
                "jobs": {"type": "integer", "minimum": 1},
                "halt_after_failures": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
        "build": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "minLength": 1},
                "flake": {"type": "string", "minLength": 1},
                "eval_workers": {"type": "integer", "minimum": 1},
                "ssh_options": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "evaluator": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
        "events": {
            "type": "object",
            "properties": {
                "dir": {"type": "string"},
                "max_bytes": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

# Shape of ``nix flake show --json``: nested attribute sets whose leaves are
# scalars (``type``, ``name``, ``description``) or lists.
FLAKE_SHOW_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://fast-build.invalid/schemas/flake-show.json",
    "type": "object",
    "additionalProperties": {"$ref": "#/$defs/node"},
    "$defs": {
        "node": {
            "anyOf": [
                {
                    "type": "object",
                    "additionalProperties": {"$ref": "#/$defs/node"},
                },
                {"type": ["string", "number", "boolean", "null", "array"]},
            ]
        }
    },
}

_compiled_cache: Dict[str, Any] = {}


def _compile(schema: Mapping[str, Any]) -> Any:
    cache_key = str(schema.get("$id", ""))
    if cache_key in _compiled_cache:
        return _compiled_cache[cache_key]
    validator = jsonschema.Draft202012Validator(schema)
    _compiled_cache[cache_key] = validator
    return validator


def _format_path(error: jsonschema.ValidationError) -> str:
    parts = [str(part) for part in error.absolute_path]
    return "/" + "/".join(parts) if parts else "/"


def schema_errors(document: Any, schema: Mapping[str, Any]) -> List[str]:
    """Return human readable violations of *schema*, sorted by location."""

    validator = _compile(schema)
    errors = sorted(
        validator.iter_errors(document),
        key=lambda err: [str(part) for part in err.absolute_path],
    )
    return [f"{_format_path(err)}: {err.message}" for err in errors]


__all__ = ["CONFIG_SCHEMA", "FLAKE_SHOW_SCHEMA", "schema_errors"]
