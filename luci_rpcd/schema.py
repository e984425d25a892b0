from __future__ import annotations

from importlib import resources
import json
from typing import Any

from jsonschema import Draft202012Validator

SCHEMA_FILE = "schemas/luci-rpc.schema.json"


def load_schema() -> dict[str, Any]:
    schema_path = resources.files("luci_rpcd").joinpath(SCHEMA_FILE)
    return json.loads(schema_path.read_text(encoding="utf-8"))


def get_validator(section: str, method: str) -> Draft202012Validator | None:
    """Build a validator for one method's ``params`` or ``responses`` entry."""
    schema = load_schema()
    entry = schema.get(section, {}).get(method)
    if entry is None:
        return None
    return Draft202012Validator(
        schema={
            "$schema": schema["$schema"],
            "$defs": schema["$defs"],
            **entry,
        }
    )


def _errors(validator: Draft202012Validator | None, payload: Any) -> list[str]:
    if validator is None:
        return []
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(part) for part in e.path])
    return [error.message for error in errors]


def validate_params(method: str, params: Any) -> list[str]:
    return _errors(get_validator("params", method), params)


def validate_response(method: str, payload: Any) -> list[str]:
    return _errors(get_validator("responses", method), payload)
