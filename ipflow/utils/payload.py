"""Request body validation helpers.

Every mutating endpoint declares the fields it accepts; anything else is
rejected with a 400 before the service layer is called.

Usage
-----
    data = json_body(allowed={"document_id", "initial_data"}, required={"document_id"})
"""

from __future__ import annotations

from flask import request

from ipflow.core.exceptions import ValidationError


def json_body(allowed: set[str], required: set[str] | None = None) -> dict:
    """Return the request's JSON object, rejecting unknown or missing fields.

    An empty body is treated as ``{}`` so that endpoints whose fields are all
    optional can be called without one.

    Raises:
        ValidationError: body is not an object, has unknown keys, or lacks
            a required key.
    """
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data(cache=True):
            raise ValidationError("Request body must be valid JSON")
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            details={name: "unknown field" for name in unknown},
        )

    missing = sorted(
        name for name in (required or set())
        if data.get(name) is None or (isinstance(data.get(name), str) and not data[name].strip())
    )
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={name: "required" for name in missing},
        )
    return data


def optional_str(data: dict, name: str, *, max_length: int | None = None) -> str | None:
    """Return a stripped string field, ``None`` when absent or null."""
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={name: "must be a string"})
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{name} must be ≤ {max_length} characters",
            details={name: f"max {max_length} characters"},
        )
    return value
