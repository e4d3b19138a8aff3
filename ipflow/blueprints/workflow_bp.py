"""
Approval Workflow Blueprint — definitions, processes and analytics.

Routes:
  GET    /workflows                                       – list definitions
  POST   /workflows                                       – create definition
  GET    /workflows/<wid>                                 – definition detail
  PUT    /workflows/<wid>                                 – update definition
  DELETE /workflows/<wid>                                 – delete definition
  PATCH  /workflows/<wid>/status                          – draft / active / inactive
  GET    /workflows/analytics/report                      – process analytics
  GET    /workflows/analytics/trends                      – per-definition trends
  GET    /workflows/analytics/benchmarks                  – cycle-time benchmarks
  POST   /workflows/<wid>/start                           – start a process
  GET    /workflows/<wid>/processes                       – list processes
  GET    /workflows/<wid>/process/<pid>/status            – process status
  POST   /workflows/<wid>/process/<pid>/decide            – approve / reject
  POST   /workflows/<wid>/process/<pid>/pause             – pause
  POST   /workflows/<wid>/process/<pid>/resume            – resume
  POST   /workflows/<wid>/process/<pid>/cancel            – administrative cancel
"""

from flask import Blueprint, jsonify, request

from ipflow.blueprints import current_actor, paginate_query
from ipflow.middleware.permission_required import require_any_capability, require_capability
from ipflow.models import db
from ipflow.services import workflow_service
from ipflow.services.notification import WorkflowNotifier
from ipflow.services.workflow_engine import WorkflowEngine
from ipflow.services.workflow_repository import SqlWorkflowRepository
from ipflow.utils.payload import json_body, optional_str

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")

DEFINITION_FIELDS = {"name", "description", "status", "steps"}
MAX_COMMENT_LENGTH = 2000


def _engine():
    return WorkflowEngine(SqlWorkflowRepository(db.session), WorkflowNotifier())


# ═════════════════════════════════════════════════════════════════════════════
# DEFINITION CRUD
# ═════════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/workflows", methods=["GET"])
@require_capability("workflow.read")
def list_workflows():
    """List definitions visible to the caller, optionally filtered by status."""
    q = workflow_service.definitions_query(current_actor(), status=request.args.get("status"))
    items, total = paginate_query(q)
    return jsonify({"items": [d.to_dict(include_steps=False) for d in items], "total": total})


@workflow_bp.route("/workflows", methods=["POST"])
@require_capability("workflow.write")
def create_workflow():
    """Create a definition.

    Body: { name, description?, status?, steps: [{name, approver_role, required, description, conditions}] }
    """
    data = json_body(allowed=DEFINITION_FIELDS, required={"name"})
    definition = workflow_service.create_definition(data, current_actor())
    return jsonify(definition.to_dict()), 201


@workflow_bp.route("/workflows/<int:definition_id>", methods=["GET"])
@require_capability("workflow.read")
def get_workflow(definition_id):
    definition = workflow_service.get_definition(definition_id, current_actor())
    return jsonify(definition.to_dict())


@workflow_bp.route("/workflows/<int:definition_id>", methods=["PUT"])
@require_capability("workflow.write")
def update_workflow(definition_id):
    """Update name / description / status / steps; replacing steps bumps version."""
    data = json_body(allowed=DEFINITION_FIELDS)
    definition = workflow_service.update_definition(definition_id, data, current_actor())
    return jsonify(definition.to_dict())


@workflow_bp.route("/workflows/<int:definition_id>", methods=["DELETE"])
@require_capability("workflow.write")
def delete_workflow(definition_id):
    workflow_service.delete_definition(definition_id, current_actor())
    return jsonify({"deleted": True})


@workflow_bp.route("/workflows/<int:definition_id>/status", methods=["PATCH"])
@require_capability("workflow.write")
def set_workflow_status(definition_id):
    data = json_body(allowed={"status"}, required={"status"})
    definition = workflow_service.set_definition_status(definition_id, data["status"], current_actor())
    return jsonify(definition.to_dict(include_steps=False))


# ═════════════════════════════════════════════════════════════════════════════
# ANALYTICS
# ═════════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/workflows/analytics/report", methods=["GET"])
@require_capability("analytics.read")
def workflow_report():
    """Process analytics. Query: start_date, end_date (YYYY-MM-DD)."""
    report = workflow_service.workflow_report(
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    )
    return jsonify(report)


@workflow_bp.route("/workflows/analytics/trends", methods=["GET"])
@require_capability("analytics.read")
def workflow_trends():
    """Per-definition outcomes over a trailing window. Query: days (default 30)."""
    return jsonify(workflow_service.workflow_trends(days=request.args.get("days")))


@workflow_bp.route("/workflows/analytics/benchmarks", methods=["GET"])
@require_capability("analytics.read")
def performance_benchmarks():
    """Cycle-time percentiles and step analysis. Query: definition_id."""
    return jsonify(workflow_service.performance_benchmarks(
        definition_id=request.args.get("definition_id", type=int),
    ))


# ═════════════════════════════════════════════════════════════════════════════
# PROCESSES
# ═════════════════════════════════════════════════════════════════════════════

@workflow_bp.route("/workflows/<int:definition_id>/start", methods=["POST"])
@require_capability("process.start")
def start_process(definition_id):
    """Start a process for a document.

    Body: { document_id, initial_data? }
    """
    data = json_body(allowed={"document_id", "initial_data"}, required={"document_id"})
    process = _engine().start(
        definition_id,
        document_id=data["document_id"],
        actor_id=current_actor().id,
        initial_data=data.get("initial_data"),
    )
    return jsonify(process.to_dict())


@workflow_bp.route("/workflows/<int:definition_id>/processes", methods=["GET"])
@require_capability("workflow.read")
def list_processes(definition_id):
    """List processes of a definition. Query: status, document_id, limit, offset."""
    q = workflow_service.processes_query(
        definition_id,
        current_actor(),
        status=request.args.get("status"),
        document_id=request.args.get("document_id"),
    )
    items, total = paginate_query(q)
    return jsonify({"items": [p.to_dict() for p in items], "total": total})


@workflow_bp.route("/workflows/<int:definition_id>/process/<int:process_id>/status", methods=["GET"])
@require_any_capability("workflow.read", "process.decide")
def process_status(definition_id, process_id):
    return jsonify(_engine().get_status(process_id, definition_id=definition_id))


@workflow_bp.route("/workflows/<int:definition_id>/process/<int:process_id>/decide", methods=["POST"])
@require_capability("process.decide")
def decide(definition_id, process_id):
    """Approve or reject the current step.

    Body: { decision: "approve" | "reject", comment? }
    """
    data = json_body(allowed={"decision", "comment"}, required={"decision"})
    process = _engine().advance(
        process_id,
        actor_id=current_actor().id,
        decision=data["decision"],
        comment=optional_str(data, "comment", max_length=MAX_COMMENT_LENGTH),
        definition_id=definition_id,
    )
    return jsonify(process.to_dict())


@workflow_bp.route("/workflows/<int:definition_id>/process/<int:process_id>/pause", methods=["POST"])
@require_capability("process.control")
def pause_process(definition_id, process_id):
    """Body: { reason? }"""
    data = json_body(allowed={"reason"})
    process = _engine().pause(
        process_id,
        reason=optional_str(data, "reason", max_length=MAX_COMMENT_LENGTH),
        actor_id=current_actor().id,
        definition_id=definition_id,
    )
    return jsonify(process.to_dict())


@workflow_bp.route("/workflows/<int:definition_id>/process/<int:process_id>/resume", methods=["POST"])
@require_capability("process.control")
def resume_process(definition_id, process_id):
    json_body(allowed=set())
    process = _engine().resume(process_id, actor_id=current_actor().id, definition_id=definition_id)
    return jsonify(process.to_dict())


@workflow_bp.route("/workflows/<int:definition_id>/process/<int:process_id>/cancel", methods=["POST"])
@require_capability("process.cancel")
def cancel_process(definition_id, process_id):
    """Administrative cancel. Body: { reason? }"""
    data = json_body(allowed={"reason"})
    process = _engine().cancel(
        process_id,
        actor_id=current_actor().id,
        reason=optional_str(data, "reason", max_length=MAX_COMMENT_LENGTH),
        definition_id=definition_id,
    )
    return jsonify(process.to_dict())
