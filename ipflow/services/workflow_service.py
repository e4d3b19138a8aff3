"""
Workflow Definition Service — definition CRUD, activation, process listing
and the workflow analytics report.

Ownership rule: a definition is visible to and manageable by its creator;
actors with ``workflow.admin`` see and manage every definition.

Usage:
    from ipflow.services import workflow_service

    definition = workflow_service.create_definition(
        {"name": "Patent filing approval", "steps": [{"name": "Attorney review"}]},
        actor,
    )
"""

import logging
from datetime import datetime, time, timedelta, timezone

from sqlalchemy import func

from ipflow.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ipflow.models import db
from ipflow.models.workflow import (
    DEFINITION_STATUSES,
    PROCESS_STATUSES,
    TERMINAL_PROCESS_STATUSES,
    WorkflowDefinition,
    WorkflowProcess,
)
from ipflow.services.workflow_steps import MAX_NAME_LENGTH, parse_steps

logger = logging.getLogger(__name__)

DEFAULT_DEFINITION_STATUS = "active"
DEFAULT_TREND_DAYS = 30
MAX_TREND_DAYS = 365

# history action -> step analysis counter
STEP_OUTCOMES = {"approve": "approved", "reject": "rejected", "skip": "skipped"}


# ── Field helpers ────────────────────────────────────────────────────────────


def clean_name(value, field="name"):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field} must be ≤ {MAX_NAME_LENGTH} characters",
                              details={field: "too long"})
    return value


def clean_text(value, field):
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "must be a string"})
    return value.strip()


def _clean_status(value):
    if value not in DEFINITION_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(DEFINITION_STATUSES)}",
            details={"status": "invalid"},
        )
    return value


def _require_steps_if_active(definition):
    if definition.status == "active" and not definition.steps:
        raise ValidationError("An active workflow must have at least one step",
                              details={"steps": "required when status is active"})


# ═════════════════════════════════════════════════════════════════════════════
# Definitions
# ═════════════════════════════════════════════════════════════════════════════


def definitions_query(actor, status=None):
    """Definitions visible to ``actor``, newest first."""
    q = WorkflowDefinition.query
    if not actor.is_admin:
        q = q.filter(WorkflowDefinition.created_by == actor.id)
    if status:
        q = q.filter(WorkflowDefinition.status == _clean_status(status))
    return q.order_by(WorkflowDefinition.created_at.desc(), WorkflowDefinition.id.desc())


def get_definition(definition_id, actor):
    """Return a definition the actor may see.

    Raises:
        NotFoundError: unknown id.
        PermissionDeniedError: the actor neither owns it nor administers workflows.
    """
    definition = db.session.get(WorkflowDefinition, definition_id)
    if definition is None:
        raise NotFoundError("WorkflowDefinition", definition_id)
    if not actor.owns(definition.created_by):
        raise PermissionDeniedError(actor.id, "access", f"WorkflowDefinition id={definition_id}")
    return definition


def create_definition(data, actor):
    """Create a definition from a validated request body."""
    definition = WorkflowDefinition(
        name=clean_name(data.get("name")),
        description=clean_text(data.get("description"), "description"),
        status=_clean_status(data.get("status") or DEFAULT_DEFINITION_STATUS),
        version=1,
        created_by=actor.id,
    )
    definition.replace_steps(parse_steps(data.get("steps") or []))
    _require_steps_if_active(definition)

    db.session.add(definition)
    db.session.commit()
    logger.info("Workflow definition created definition_id=%s name=%r steps=%d actor=%s",
                definition.id, definition.name, len(definition.steps), actor.id)
    return definition


def update_definition(definition_id, data, actor):
    """Update name / description / status / steps.

    Replacing ``steps`` bumps ``version``; running processes keep their snapshot.
    """
    definition = get_definition(definition_id, actor)

    if "name" in data:
        definition.name = clean_name(data["name"])
    if "description" in data:
        definition.description = clean_text(data["description"], "description")
    if "status" in data:
        definition.status = _clean_status(data["status"])
    if "steps" in data:
        definition.replace_steps(parse_steps(data["steps"]))
    _require_steps_if_active(definition)

    db.session.commit()
    logger.info("Workflow definition updated definition_id=%s version=%s actor=%s",
                definition.id, definition.version, actor.id)
    return definition


def set_definition_status(definition_id, status, actor):
    """Toggle a definition between draft / active / inactive."""
    definition = get_definition(definition_id, actor)
    definition.status = _clean_status(status)
    _require_steps_if_active(definition)
    db.session.commit()
    logger.info("Workflow definition status definition_id=%s -> %s actor=%s",
                definition.id, definition.status, actor.id)
    return definition


def delete_definition(definition_id, actor):
    """Delete a definition that no process references.

    Raises:
        ConflictError: at least one process (open or finished) was started from it.
    """
    definition = get_definition(definition_id, actor)
    in_use = WorkflowProcess.query.filter_by(definition_id=definition.id).count()
    if in_use:
        raise ConflictError(
            "WorkflowDefinition", "id", definition.id,
            message=f"WorkflowDefinition id={definition.id} is referenced by {in_use} process(es)",
        )
    db.session.delete(definition)
    db.session.commit()
    logger.info("Workflow definition deleted definition_id=%s actor=%s", definition_id, actor.id)


# ═════════════════════════════════════════════════════════════════════════════
# Processes
# ═════════════════════════════════════════════════════════════════════════════


def processes_query(definition_id, actor, status=None, document_id=None):
    """Processes of one definition, newest first."""
    get_definition(definition_id, actor)
    q = WorkflowProcess.query.filter(WorkflowProcess.definition_id == definition_id)
    if status:
        if status not in PROCESS_STATUSES:
            raise ValidationError(f"status must be one of {sorted(PROCESS_STATUSES)}",
                                  details={"status": "invalid"})
        q = q.filter(WorkflowProcess.status == status)
    if document_id:
        q = q.filter(WorkflowProcess.document_id == document_id)
    return q.order_by(WorkflowProcess.started_at.desc(), WorkflowProcess.id.desc())


# ═════════════════════════════════════════════════════════════════════════════
# Analytics
# ═════════════════════════════════════════════════════════════════════════════


def _parse_date(value, field, end_of_day=False):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)",
                              details={field: "invalid date"}) from None
    if len(value) <= 10:
        parsed = datetime.combine(parsed.date(), time.max if end_of_day else time.min)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_aware(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _cycle_hours(process):
    """Start-to-finish duration of a finished process, in hours."""
    if not process.is_terminal or process.completed_at is None or process.started_at is None:
        return None
    return (_as_aware(process.completed_at) - _as_aware(process.started_at)).total_seconds() / 3600


def _average(values):
    return round(sum(values) / len(values), 2) if values else None


def _rate(part, whole):
    return round(part * 100.0 / whole, 1) if whole else 0.0


def _summarize(processes):
    """Status counts, success rate and mean cycle time of a process group."""
    counts = {status: 0 for status in PROCESS_STATUSES}
    for process in processes:
        counts[process.status] = counts.get(process.status, 0) + 1
    hours = [h for h in map(_cycle_hours, processes) if h is not None]
    return {
        "started": len(processes),
        "completed": counts["completed"],
        "rejected": counts["rejected"],
        "cancelled": counts["cancelled"],
        "success_rate": _rate(counts["completed"], len(processes)),
        "average_cycle_hours": _average(hours),
    }


def _group(processes, key):
    grouped = {}
    for process in processes:
        grouped.setdefault(key(process), []).append(process)
    return grouped


def _definition_names(definition_ids):
    if not definition_ids:
        return {}
    return dict(
        db.session.query(WorkflowDefinition.id, WorkflowDefinition.name)
        .filter(WorkflowDefinition.id.in_(list(definition_ids))).all()
    )


def workflow_report(start_date=None, end_date=None):
    """Aggregate stored processes started within [start_date, end_date].

    Returns:
        dict with ``totals`` per status, ``completion_rate`` (completed over
        finished, in percent), ``average_cycle_hours`` for finished processes,
        and breakdowns per definition, per starter and per start day.
    """
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date", end_of_day=True)
    if start and end and start > end:
        raise ValidationError("start_date must not be after end_date",
                              details={"start_date": "after end_date"})

    q = WorkflowProcess.query
    if start:
        q = q.filter(WorkflowProcess.started_at >= start)
    if end:
        q = q.filter(WorkflowProcess.started_at <= end)

    totals = {status: 0 for status in sorted(PROCESS_STATUSES)}
    for status, count in (
        q.with_entities(WorkflowProcess.status, func.count(WorkflowProcess.id))
        .group_by(WorkflowProcess.status).all()
    ):
        totals[status] = count

    processes = q.order_by(WorkflowProcess.started_at, WorkflowProcess.id).all()
    cycle_hours = [h for h in map(_cycle_hours, processes) if h is not None]
    finished_count = sum(totals[s] for s in TERMINAL_PROCESS_STATUSES)

    by_definition = []
    rows = (
        q.with_entities(WorkflowProcess.definition_id, WorkflowProcess.status,
                        func.count(WorkflowProcess.id))
        .group_by(WorkflowProcess.definition_id, WorkflowProcess.status)
        .all()
    )
    grouped = {}
    for definition_id, status, count in rows:
        grouped.setdefault(definition_id, {})[status] = count
    names = _definition_names(grouped)
    for definition_id in sorted(grouped):
        counts = grouped[definition_id]
        by_definition.append({
            "definition_id": definition_id,
            "name": names.get(definition_id, ""),
            "total": sum(counts.values()),
            "by_status": counts,
        })

    by_starter = [
        {"started_by": started_by, **_summarize(group)}
        for started_by, group in _group(processes, lambda p: p.started_by).items()
    ]
    by_starter.sort(key=lambda row: (-row["success_rate"], row["started_by"]))

    time_series = [
        {"date": day, **_summarize(group)}
        for day, group in sorted(
            _group(processes, lambda p: _as_aware(p.started_at).date().isoformat()).items()
        )
    ]

    return {
        "period": {
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
        },
        "total_processes": sum(totals.values()),
        "totals": totals,
        "completion_rate": _rate(totals["completed"], finished_count),
        "average_cycle_hours": _average(cycle_hours),
        "by_definition": by_definition,
        "by_starter": by_starter,
        "time_series": time_series,
    }


def _parse_days(value):
    if value is None or value == "":
        return DEFAULT_TREND_DAYS
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationError("days must be an integer", details={"days": "must be an integer"}) from None
    if not 1 <= days <= MAX_TREND_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_TREND_DAYS}",
                              details={"days": "out of range"})
    return days


def workflow_trends(days=None):
    """Per-definition outcomes of processes started in the last ``days`` days."""
    days = _parse_days(days)
    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)

    processes = WorkflowProcess.query.filter(
        WorkflowProcess.started_at >= start,
        WorkflowProcess.started_at <= end,
    ).all()
    grouped = _group(processes, lambda p: p.definition_id)
    names = _definition_names(grouped)

    return {
        "days": days,
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "trends": [
            {"definition_id": definition_id, "name": names.get(definition_id, ""),
             **_summarize(grouped[definition_id])}
            for definition_id in sorted(grouped)
        ],
    }


def _nearest_rank(ordered, fraction):
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


def _step_waits(process):
    """Yield (step_index, action, hours waited) for each step outcome.

    A step is entered at the latest start / approve / skip entry before it.
    """
    entered = None
    for entry in process.history:
        if entry.action in STEP_OUTCOMES and entered is not None:
            waited = (_as_aware(entry.created_at) - entered).total_seconds() / 3600
            yield entry.step_index, entry.action, waited
        if entry.action in ("start", "approve", "skip"):
            entered = _as_aware(entry.created_at)


def performance_benchmarks(definition_id=None):
    """Cycle-time distribution of finished processes plus per-step analysis.

    Cycle hours report min / max / average / median / p95 (nearest rank);
    all are ``None`` when nothing has finished yet.
    """
    q = WorkflowProcess.query.filter(
        WorkflowProcess.status.in_(TERMINAL_PROCESS_STATUSES),
        WorkflowProcess.completed_at.isnot(None),
    )
    if definition_id is not None:
        q = q.filter(WorkflowProcess.definition_id == definition_id)
    finished = q.all()

    ordered = sorted(h for h in map(_cycle_hours, finished) if h is not None)
    if ordered:
        cycle = {
            "min": round(ordered[0], 2),
            "max": round(ordered[-1], 2),
            "average": _average(ordered),
            "median": round(_nearest_rank(ordered, 0.5), 2),
            "p95": round(_nearest_rank(ordered, 0.95), 2),
        }
    else:
        cycle = dict.fromkeys(("min", "max", "average", "median", "p95"))

    steps = {}
    for process in finished:
        for step_index, action, waited in _step_waits(process):
            row = steps.setdefault(step_index, {
                "step_index": step_index, "approved": 0, "rejected": 0, "skipped": 0, "_waits": [],
            })
            row[STEP_OUTCOMES[action]] += 1
            if action != "skip":
                row["_waits"].append(waited)

    step_analysis = []
    for step_index in sorted(steps):
        row = steps[step_index]
        waits = row.pop("_waits")
        decided = row["approved"] + row["rejected"]
        row["approval_rate"] = _rate(row["approved"], decided)
        row["average_wait_hours"] = _average(waits)
        step_analysis.append(row)

    return {
        "definition_id": definition_id,
        "sample_size": len(ordered),
        "cycle_hours": cycle,
        "steps": step_analysis,
    }
