"""
Workflow Template Blueprint.

Routes:
  GET    /workflow-templates                        – list templates
  POST   /workflow-templates                        – create template
  GET    /workflow-templates/<tid>                  – template detail
  PUT    /workflow-templates/<tid>                  – update template
  DELETE /workflow-templates/<tid>                  – delete template
  POST   /workflow-templates/<tid>/create-workflow  – new definition from template
"""

from flask import Blueprint, jsonify, request

from ipflow.blueprints import current_actor, paginate_query
from ipflow.middleware.permission_required import require_capability
from ipflow.services import template_service
from ipflow.utils.payload import json_body

workflow_template_bp = Blueprint("workflow_template", __name__, url_prefix="/api/v1/workflow-templates")

TEMPLATE_FIELDS = {"name", "description", "category", "steps", "status"}


@workflow_template_bp.route("", methods=["GET"])
@require_capability("template.read")
def list_templates():
    """Query: category, status, limit, offset."""
    q = template_service.templates_query(
        current_actor(),
        category=request.args.get("category"),
        status=request.args.get("status"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [t.to_dict() for t in items], "total": total})


@workflow_template_bp.route("", methods=["POST"])
@require_capability("template.write")
def create_template():
    """Body: { name, category, steps, description?, status? }"""
    data = json_body(allowed=TEMPLATE_FIELDS, required={"name", "category", "steps"})
    template = template_service.create_template(data, current_actor())
    return jsonify(template.to_dict()), 201


@workflow_template_bp.route("/<int:template_id>", methods=["GET"])
@require_capability("template.read")
def get_template(template_id):
    return jsonify(template_service.get_template(template_id, current_actor()).to_dict())


@workflow_template_bp.route("/<int:template_id>", methods=["PUT"])
@require_capability("template.write")
def update_template(template_id):
    data = json_body(allowed=TEMPLATE_FIELDS)
    template = template_service.update_template(template_id, data, current_actor())
    return jsonify(template.to_dict())


@workflow_template_bp.route("/<int:template_id>", methods=["DELETE"])
@require_capability("template.write")
def delete_template(template_id):
    template_service.delete_template(template_id, current_actor())
    return jsonify({"deleted": True})


@workflow_template_bp.route("/<int:template_id>/create-workflow", methods=["POST"])
@require_capability("workflow.write")
def create_workflow_from_template(template_id):
    """Body: { name, description?, custom_steps? }"""
    data = json_body(allowed={"name", "description", "custom_steps"}, required={"name"})
    definition = template_service.create_workflow_from_template(template_id, data, current_actor())
    return jsonify(definition.to_dict()), 201
