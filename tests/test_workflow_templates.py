"""
Workflow template tests.

Tests cover:
  - Template CRUD via /api/v1/workflow-templates
  - create-workflow (template steps, custom steps, inactive template)
  - seed_default_templates idempotence and the CLI command
"""
import pytest

from ipflow.models.workflow import WorkflowTemplate
from ipflow.services import template_service

BASE = "/api/v1/workflow-templates"

STEPS = [
    {"name": "Clearance search review", "approver_role": "trademark_counsel"},
    {"name": "Filing approval", "approver_role": "ip_manager"},
]


@pytest.fixture()
def template(client, user_headers):
    res = client.post(
        BASE,
        json={"name": "Trademark filing", "category": "trademark", "steps": STEPS,
              "description": "Standard trademark route"},
        headers=user_headers,
    )
    assert res.status_code == 201
    return res.get_json()


class TestTemplateCrud:
    def test_create(self, template):
        assert template["status"] == "active"
        assert template["category"] == "trademark"
        assert template["steps"][0] == {
            "name": "Clearance search review",
            "approver_role": "trademark_counsel",
            "required": True,
            "description": "",
            "conditions": [],
        }

    @pytest.mark.parametrize("missing", ["name", "category", "steps"])
    def test_required_fields(self, client, user_headers, missing):
        body = {"name": "T", "category": "patent", "steps": STEPS}
        body.pop(missing)
        res = client.post(BASE, json=body, headers=user_headers)
        assert res.status_code == 400

    def test_empty_steps_rejected(self, client, user_headers):
        res = client.post(BASE, json={"name": "T", "category": "patent", "steps": []}, headers=user_headers)
        assert res.status_code == 400

    def test_get_and_list(self, client, template, user_headers):
        res = client.get(f"{BASE}/{template['id']}", headers=user_headers)
        assert res.get_json()["name"] == "Trademark filing"

        res = client.get(f"{BASE}?category=trademark", headers=user_headers)
        assert res.get_json()["total"] == 1
        res = client.get(f"{BASE}?category=patent", headers=user_headers)
        assert res.get_json()["total"] == 0

    def test_other_user_forbidden(self, client, template, other_user_headers):
        res = client.get(f"{BASE}/{template['id']}", headers=other_user_headers)
        assert res.status_code == 403

    def test_update(self, client, template, user_headers):
        res = client.put(f"{BASE}/{template['id']}", json={"status": "inactive", "name": "Old route"},
                         headers=user_headers)
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "inactive"
        assert data["name"] == "Old route"

    def test_delete(self, client, template, user_headers):
        res = client.delete(f"{BASE}/{template['id']}", headers=user_headers)
        assert res.get_json() == {"deleted": True}
        assert client.get(f"{BASE}/{template['id']}", headers=user_headers).status_code == 404

    def test_reviewer_is_read_only(self, client, template, reviewer_headers):
        res = client.post(BASE, json={"name": "T", "category": "patent", "steps": STEPS},
                          headers=reviewer_headers)
        assert res.status_code == 403


class TestCreateWorkflow:
    def test_uses_template_steps(self, client, template, user_headers):
        res = client.post(f"{BASE}/{template['id']}/create-workflow", json={"name": "EU trademark"},
                          headers=user_headers)
        assert res.status_code == 201
        definition = res.get_json()
        assert definition["status"] == "active"
        assert definition["description"] == "Standard trademark route"
        assert [s["name"] for s in definition["steps"]] == ["Clearance search review", "Filing approval"]

    def test_custom_steps(self, client, template, user_headers):
        res = client.post(
            f"{BASE}/{template['id']}/create-workflow",
            json={"name": "Fast track", "description": "Single step", "custom_steps": [{"name": "Manager"}]},
            headers=user_headers,
        )
        definition = res.get_json()
        assert definition["description"] == "Single step"
        assert definition["step_count"] == 1

    def test_invalid_custom_steps(self, client, template, user_headers):
        res = client.post(
            f"{BASE}/{template['id']}/create-workflow",
            json={"name": "Broken", "custom_steps": [{"required": True}]},
            headers=user_headers,
        )
        assert res.status_code == 400

    def test_inactive_template(self, client, template, user_headers):
        client.put(f"{BASE}/{template['id']}", json={"status": "inactive"}, headers=user_headers)
        res = client.post(f"{BASE}/{template['id']}/create-workflow", json={"name": "X"}, headers=user_headers)
        assert res.status_code == 400

    def test_created_workflow_can_start(self, client, template, user_headers):
        definition = client.post(
            f"{BASE}/{template['id']}/create-workflow", json={"name": "EU trademark"}, headers=user_headers,
        ).get_json()
        res = client.post(f"/api/v1/workflows/{definition['id']}/start", json={"document_id": "TM-7"},
                          headers=user_headers)
        assert res.status_code == 200


class TestSeed:
    def test_seed_is_idempotent(self, session):
        first = template_service.seed_default_templates()
        second = template_service.seed_default_templates()

        assert first == 5
        assert second == 0
        assert WorkflowTemplate.query.count() == 5
        assert {t.created_by for t in WorkflowTemplate.query.all()} == {"system"}

    def test_seeded_templates_are_admin_visible(self, client, admin_headers, user_headers):
        template_service.seed_default_templates()

        assert client.get(BASE, headers=admin_headers).get_json()["total"] == 5
        assert client.get(BASE, headers=user_headers).get_json()["total"] == 0

    def test_cli_command(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-workflow-templates"])
        assert result.exit_code == 0
        assert "5" in result.output
