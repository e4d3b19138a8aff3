"""
Step list validation and step-condition evaluation.

Step lists arrive from API bodies and templates as JSON arrays; they are
parsed once, here, into ``ParsedStep`` records before touching the database.

Step shape:
    {
        "name": "Attorney review",          # required
        "approver_role": "patent_attorney",  # optional, opaque
        "required": true,                    # optional, default true
        "description": "...",                # optional
        "conditions": [                      # optional, never on the first step
            {"type": "field_equals", "field": "jurisdiction", "value": "EP"}
        ]
    }

A conditional step is skipped when any of its conditions is false for the
process's ``initial_data``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ipflow.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

STEP_FIELDS = frozenset({"name", "approver_role", "required", "description", "conditions"})
CONDITION_FIELDS = frozenset({"type", "field", "value"})
CONDITION_TYPES = frozenset({
    "field_equals",
    "field_not_equals",
    "field_contains",
    "field_greater_than",
    "field_less_than",
})

MAX_STEPS = 50
MAX_NAME_LENGTH = 200


@dataclass(frozen=True)
class ParsedStep:
    name: str
    approver_role: str = ""
    required: bool = True
    description: str = ""
    conditions: tuple = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "approver_role": self.approver_role,
            "required": self.required,
            "description": self.description,
            "conditions": [dict(c) for c in self.conditions],
        }


def _parse_condition(raw, where: str) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object", details={where: "must be an object"})
    unknown = sorted(set(raw) - CONDITION_FIELDS)
    if unknown:
        raise ValidationError(
            f"{where} has unknown field(s): {', '.join(unknown)}",
            details={where: f"unknown fields {unknown}"},
        )
    ctype = raw.get("type")
    if ctype not in CONDITION_TYPES:
        raise ValidationError(
            f"{where}.type must be one of {sorted(CONDITION_TYPES)}",
            details={f"{where}.type": "invalid"},
        )
    field_name = raw.get("field")
    if not isinstance(field_name, str) or not field_name.strip():
        raise ValidationError(f"{where}.field is required", details={f"{where}.field": "required"})
    if "value" not in raw:
        raise ValidationError(f"{where}.value is required", details={f"{where}.value": "required"})
    return {"type": ctype, "field": field_name.strip(), "value": raw["value"]}


def parse_steps(raw) -> list[ParsedStep]:
    """Validate a raw step list and return it as ``ParsedStep`` records.

    Raises:
        ValidationError: the list or any step in it is malformed. ``details``
            names the offending step (``steps[<i>].<field>``).
    """
    if not isinstance(raw, list):
        raise ValidationError("steps must be an array", details={"steps": "must be an array"})
    if len(raw) > MAX_STEPS:
        raise ValidationError(f"steps may contain at most {MAX_STEPS} entries",
                              details={"steps": f"max {MAX_STEPS}"})

    parsed = []
    for i, item in enumerate(raw):
        where = f"steps[{i}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{where} must be an object", details={where: "must be an object"})

        unknown = sorted(set(item) - STEP_FIELDS)
        if unknown:
            raise ValidationError(
                f"{where} has unknown field(s): {', '.join(unknown)}",
                details={where: f"unknown fields {unknown}"},
            )

        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"{where}.name is required", details={f"{where}.name": "required"})
        if len(name.strip()) > MAX_NAME_LENGTH:
            raise ValidationError(f"{where}.name must be ≤ {MAX_NAME_LENGTH} characters",
                                  details={f"{where}.name": "too long"})

        approver_role = item.get("approver_role") or ""
        if not isinstance(approver_role, str):
            raise ValidationError(f"{where}.approver_role must be a string",
                                  details={f"{where}.approver_role": "must be a string"})

        required = item.get("required", True)
        if not isinstance(required, bool):
            raise ValidationError(f"{where}.required must be a boolean",
                                  details={f"{where}.required": "must be a boolean"})

        description = item.get("description") or ""
        if not isinstance(description, str):
            raise ValidationError(f"{where}.description must be a string",
                                  details={f"{where}.description": "must be a string"})

        raw_conditions = item.get("conditions") or []
        if not isinstance(raw_conditions, list):
            raise ValidationError(f"{where}.conditions must be an array",
                                  details={f"{where}.conditions": "must be an array"})
        if raw_conditions and i == 0:
            raise ValidationError("The first step cannot be conditional",
                                  details={f"{where}.conditions": "not allowed on the first step"})
        conditions = tuple(
            _parse_condition(c, f"{where}.conditions[{j}]") for j, c in enumerate(raw_conditions)
        )

        parsed.append(ParsedStep(
            name=name.strip(),
            approver_role=approver_role.strip(),
            required=required,
            description=description.strip(),
            conditions=conditions,
        ))
    return parsed


# ── Condition evaluation ─────────────────────────────────────────────────────


def _as_number(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(condition: dict, data: dict) -> bool:
    """Evaluate one ``{type, field, value}`` condition against ``data``."""
    ctype = condition.get("type")
    actual = (data or {}).get(condition.get("field"))
    expected = condition.get("value")

    if ctype == "field_equals":
        return actual == expected
    if ctype == "field_not_equals":
        return actual != expected
    if ctype == "field_contains":
        if actual is None:
            return False
        if isinstance(actual, (list, tuple)):
            return expected in actual
        return str(expected) in str(actual)
    if ctype in ("field_greater_than", "field_less_than"):
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if ctype == "field_greater_than" else left < right

    logger.warning("Unknown step condition type %r treated as satisfied", ctype)
    return True


def conditions_met(conditions, data: dict) -> bool:
    """True when every condition holds (an empty list always holds)."""
    return all(evaluate_condition(c, data) for c in (conditions or []))
