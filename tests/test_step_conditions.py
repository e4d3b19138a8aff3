"""
Step list validation and conditional step tests.

Tests cover:
  - parse_steps validation rules (shape, unknown fields, first-step rule)
  - evaluate_condition for every condition type
  - Engine skipping steps whose conditions are not met
"""
import pytest

from ipflow.core.exceptions import ValidationError
from ipflow.services.workflow_steps import (
    MAX_STEPS,
    conditions_met,
    evaluate_condition,
    parse_steps,
)

USER_ID = "2"
REVIEWER_ID = "3"

FOREIGN_ONLY = {"type": "field_equals", "field": "foreign_filing", "value": True}


# ═════════════════════════════════════════════════════════════════════════
# parse_steps
# ═════════════════════════════════════════════════════════════════════════

class TestParseSteps:
    def test_defaults(self):
        [step] = parse_steps([{"name": "  Attorney review  "}])
        assert step.name == "Attorney review"
        assert step.approver_role == ""
        assert step.required is True
        assert step.description == ""
        assert step.conditions == ()

    def test_full_step(self):
        parsed = parse_steps([
            {"name": "Review"},
            {
                "name": "Foreign filing",
                "approver_role": "patent_attorney",
                "required": False,
                "description": "PCT / EP route",
                "conditions": [FOREIGN_ONLY],
            },
        ])
        assert parsed[1].to_dict() == {
            "name": "Foreign filing",
            "approver_role": "patent_attorney",
            "required": False,
            "description": "PCT / EP route",
            "conditions": [FOREIGN_ONLY],
        }

    def test_empty_list_is_allowed(self):
        assert parse_steps([]) == []

    @pytest.mark.parametrize("raw", [None, "steps", {"name": "x"}, 3])
    def test_not_a_list(self, raw):
        with pytest.raises(ValidationError):
            parse_steps(raw)

    def test_missing_name_points_at_step(self):
        with pytest.raises(ValidationError) as exc:
            parse_steps([{"name": "ok"}, {"approver_role": "x"}])
        assert "steps[1].name" in exc.value.details

    def test_unknown_step_field(self):
        with pytest.raises(ValidationError) as exc:
            parse_steps([{"name": "ok", "assignee": "bob"}])
        assert "assignee" in str(exc.value)

    def test_required_must_be_boolean(self):
        with pytest.raises(ValidationError):
            parse_steps([{"name": "ok", "required": "yes"}])

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            parse_steps([{"name": "x" * 201}])

    def test_too_many_steps(self):
        with pytest.raises(ValidationError):
            parse_steps([{"name": f"s{i}"} for i in range(MAX_STEPS + 1)])

    def test_first_step_cannot_be_conditional(self):
        with pytest.raises(ValidationError) as exc:
            parse_steps([{"name": "first", "conditions": [FOREIGN_ONLY]}])
        assert "steps[0].conditions" in exc.value.details

    @pytest.mark.parametrize("condition", [
        {"type": "field_matches", "field": "a", "value": 1},
        {"type": "field_equals", "value": 1},
        {"type": "field_equals", "field": "a"},
        {"type": "field_equals", "field": "a", "value": 1, "extra": True},
        "field_equals",
    ])
    def test_malformed_condition(self, condition):
        with pytest.raises(ValidationError):
            parse_steps([{"name": "first"}, {"name": "second", "conditions": [condition]}])


# ═════════════════════════════════════════════════════════════════════════
# evaluate_condition
# ═════════════════════════════════════════════════════════════════════════

class TestEvaluateCondition:
    @pytest.mark.parametrize("condition, data, expected", [
        ({"type": "field_equals", "field": "office", "value": "EPO"}, {"office": "EPO"}, True),
        ({"type": "field_equals", "field": "office", "value": "EPO"}, {"office": "USPTO"}, False),
        ({"type": "field_equals", "field": "office", "value": "EPO"}, {}, False),
        ({"type": "field_not_equals", "field": "office", "value": "EPO"}, {"office": "USPTO"}, True),
        ({"type": "field_not_equals", "field": "office", "value": "EPO"}, {"office": "EPO"}, False),
        ({"type": "field_contains", "field": "title", "value": "battery"},
         {"title": "Solid-state battery cell"}, True),
        ({"type": "field_contains", "field": "countries", "value": "DE"}, {"countries": ["DE", "FR"]}, True),
        ({"type": "field_contains", "field": "countries", "value": "US"}, {"countries": ["DE", "FR"]}, False),
        ({"type": "field_contains", "field": "title", "value": "x"}, {}, False),
        ({"type": "field_greater_than", "field": "amount", "value": 5000}, {"amount": 7500}, True),
        ({"type": "field_greater_than", "field": "amount", "value": 5000}, {"amount": "7500.5"}, True),
        ({"type": "field_greater_than", "field": "amount", "value": 5000}, {"amount": 5000}, False),
        ({"type": "field_greater_than", "field": "amount", "value": 5000}, {"amount": "n/a"}, False),
        ({"type": "field_less_than", "field": "claims", "value": 20}, {"claims": 12}, True),
        ({"type": "field_less_than", "field": "claims", "value": 20}, {}, False),
    ])
    def test_condition(self, condition, data, expected):
        assert evaluate_condition(condition, data) is expected

    def test_all_conditions_must_hold(self):
        conditions = [
            {"type": "field_equals", "field": "office", "value": "EPO"},
            {"type": "field_greater_than", "field": "amount", "value": 100},
        ]
        assert conditions_met(conditions, {"office": "EPO", "amount": 150})
        assert not conditions_met(conditions, {"office": "EPO", "amount": 50})

    def test_no_conditions_always_hold(self):
        assert conditions_met([], {})
        assert conditions_met(None, {"anything": 1})


# ═════════════════════════════════════════════════════════════════════════
# Engine skipping
# ═════════════════════════════════════════════════════════════════════════

CONDITIONAL_STEPS = [
    {"name": "Attorney review"},
    {"name": "Foreign filing review", "conditions": [FOREIGN_ONLY]},
    {"name": "Committee decision"},
]


class TestConditionalAdvance:
    def test_unmet_step_is_skipped(self, engine, make_definition):
        definition = make_definition(steps=CONDITIONAL_STEPS)
        process = engine.start(definition.id, "PAT-1", USER_ID, {"foreign_filing": False})

        process = engine.advance(process.id, REVIEWER_ID, "approve")

        assert process.current_step_index == 2
        assert process.current_step.name == "Committee decision"
        skip = process.history[-1]
        assert skip.action == "skip"
        assert skip.step_index == 1

    def test_met_step_is_kept(self, engine, make_definition):
        definition = make_definition(steps=CONDITIONAL_STEPS)
        process = engine.start(definition.id, "PAT-1", USER_ID, {"foreign_filing": True})

        process = engine.advance(process.id, REVIEWER_ID, "approve")

        assert process.current_step_index == 1
        assert [h.action for h in process.history] == ["start", "approve"]

    def test_skipping_past_last_step_completes(self, engine, make_definition):
        definition = make_definition(steps=[
            {"name": "Manager approval"},
            {"name": "Finance approval",
             "conditions": [{"type": "field_greater_than", "field": "amount", "value": 5000}]},
        ])
        process = engine.start(definition.id, "FEE-1", USER_ID, {"amount": 1200})

        process = engine.advance(process.id, REVIEWER_ID, "approve")

        assert process.status == "completed"
        assert process.current_step_index == 2
        assert [h.action for h in process.history] == ["start", "approve", "skip"]
