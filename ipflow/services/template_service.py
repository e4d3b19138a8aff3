"""
Workflow Template Service — reusable step lists.

Templates carry a validated JSON step list; ``create_workflow_from_template``
turns one into an active WorkflowDefinition (optionally with custom steps).
The same ownership rule as definitions applies: creators manage their own
templates, ``workflow.admin`` manages all of them.
"""

import logging

from ipflow.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ipflow.models import db
from ipflow.models.workflow import TEMPLATE_STATUSES, WorkflowTemplate
from ipflow.services import workflow_service
from ipflow.services.workflow_steps import parse_steps

logger = logging.getLogger(__name__)

MAX_CATEGORY_LENGTH = 60
SYSTEM_ACTOR = "system"


def _clean_category(value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("category is required", details={"category": "required"})
    value = value.strip()
    if len(value) > MAX_CATEGORY_LENGTH:
        raise ValidationError(f"category must be ≤ {MAX_CATEGORY_LENGTH} characters",
                              details={"category": "too long"})
    return value


def _clean_status(value):
    if value not in TEMPLATE_STATUSES:
        raise ValidationError(f"status must be one of {sorted(TEMPLATE_STATUSES)}",
                              details={"status": "invalid"})
    return value


def _clean_steps(raw):
    parsed = parse_steps(raw)
    if not parsed:
        raise ValidationError("A template must have at least one step", details={"steps": "empty"})
    return [step.to_dict() for step in parsed]


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def templates_query(actor, category=None, status=None):
    """Templates visible to ``actor``, newest first."""
    q = WorkflowTemplate.query
    if not actor.is_admin:
        q = q.filter(WorkflowTemplate.created_by == actor.id)
    if category:
        q = q.filter(WorkflowTemplate.category == category)
    if status:
        q = q.filter(WorkflowTemplate.status == _clean_status(status))
    return q.order_by(WorkflowTemplate.created_at.desc(), WorkflowTemplate.id.desc())


def get_template(template_id, actor):
    template = db.session.get(WorkflowTemplate, template_id)
    if template is None:
        raise NotFoundError("WorkflowTemplate", template_id)
    if not actor.owns(template.created_by):
        raise PermissionDeniedError(actor.id, "access", f"WorkflowTemplate id={template_id}")
    return template


def create_template(data, actor):
    template = WorkflowTemplate(
        name=workflow_service.clean_name(data.get("name")),
        description=workflow_service.clean_text(data.get("description"), "description"),
        category=_clean_category(data.get("category")),
        steps=_clean_steps(data.get("steps")),
        status=_clean_status(data.get("status") or "active"),
        created_by=actor.id,
    )
    db.session.add(template)
    db.session.commit()
    logger.info("Workflow template created template_id=%s name=%r actor=%s",
                template.id, template.name, actor.id)
    return template


def update_template(template_id, data, actor):
    template = get_template(template_id, actor)
    if "name" in data:
        template.name = workflow_service.clean_name(data["name"])
    if "description" in data:
        template.description = workflow_service.clean_text(data["description"], "description")
    if "category" in data:
        template.category = _clean_category(data["category"])
    if "steps" in data:
        template.steps = _clean_steps(data["steps"])
    if "status" in data:
        template.status = _clean_status(data["status"])
    db.session.commit()
    logger.info("Workflow template updated template_id=%s actor=%s", template.id, actor.id)
    return template


def delete_template(template_id, actor):
    template = get_template(template_id, actor)
    db.session.delete(template)
    db.session.commit()
    logger.info("Workflow template deleted template_id=%s actor=%s", template_id, actor.id)


def create_workflow_from_template(template_id, data, actor):
    """Create an active definition from a template.

    ``data`` keys: name (required), description (defaults to the template's),
    custom_steps (replaces the template's steps when given).
    """
    template = get_template(template_id, actor)
    if template.status != "active":
        raise ValidationError("Template is inactive", details={"template_id": "inactive"})

    custom_steps = data.get("custom_steps")
    steps = custom_steps if custom_steps is not None else template.steps
    description = data.get("description")
    if description is None or (isinstance(description, str) and not description.strip()):
        description = template.description

    definition = workflow_service.create_definition(
        {
            "name": data.get("name"),
            "description": description,
            "status": "active",
            "steps": steps,
        },
        actor,
    )
    logger.info("Workflow created from template template_id=%s definition_id=%s actor=%s",
                template.id, definition.id, actor.id)
    return definition


# ═════════════════════════════════════════════════════════════════════════════
# Seed data
# ═════════════════════════════════════════════════════════════════════════════


def seed_default_templates(created_by=SYSTEM_ACTOR):
    """
    Insert the default IP workflow templates.
    Safe to run multiple times; skips templates whose (name, category) exist.

    Call this from the ``flask seed-workflow-templates`` CLI command.
    """
    created = 0
    for t in _get_default_templates():
        exists = WorkflowTemplate.query.filter_by(name=t["name"], category=t["category"]).first()
        if exists:
            continue
        db.session.add(WorkflowTemplate(
            name=t["name"],
            description=t["description"],
            category=t["category"],
            steps=_clean_steps(t["steps"]),
            status="active",
            created_by=created_by,
        ))
        created += 1

    if created > 0:
        db.session.commit()
        logger.info("Seeded %d workflow templates", created)
    return created


def _get_default_templates() -> list[dict]:
    """Default approval flows for the common IP portfolio documents."""
    return [
        {
            "name": "Patent filing approval",
            "category": "patent",
            "description": "Invention disclosure to filing decision.",
            "steps": [
                {"name": "Inventor submission", "approver_role": "inventor"},
                {"name": "Patent attorney review", "approver_role": "patent_attorney"},
                {"name": "Foreign filing review", "approver_role": "patent_attorney",
                 "conditions": [{"type": "field_equals", "field": "foreign_filing", "value": True}]},
                {"name": "IP committee decision", "approver_role": "ip_committee"},
            ],
        },
        {
            "name": "Office action response",
            "category": "patent",
            "description": "Draft, review and sign off an office action response.",
            "steps": [
                {"name": "Response draft review", "approver_role": "patent_attorney"},
                {"name": "Technical expert check", "approver_role": "inventor", "required": False},
                {"name": "Final sign-off", "approver_role": "ip_manager"},
            ],
        },
        {
            "name": "Annuity fee payment",
            "category": "fee",
            "description": "Approve maintenance and annuity payments.",
            "steps": [
                {"name": "Portfolio manager check", "approver_role": "ip_manager"},
                {"name": "Finance approval", "approver_role": "finance",
                 "conditions": [{"type": "field_greater_than", "field": "amount", "value": 5000}]},
            ],
        },
        {
            "name": "Trademark registration",
            "category": "trademark",
            "description": "Clearance search through filing.",
            "steps": [
                {"name": "Clearance search review", "approver_role": "trademark_counsel"},
                {"name": "Brand owner approval", "approver_role": "brand_owner"},
                {"name": "Filing approval", "approver_role": "ip_manager"},
            ],
        },
        {
            "name": "Contract review",
            "category": "contract",
            "description": "Licence and assignment agreements.",
            "steps": [
                {"name": "Legal review", "approver_role": "legal"},
                {"name": "IP manager approval", "approver_role": "ip_manager"},
            ],
        },
    ]
