"""
Workflow Engine — approval process lifecycle.

Drives WorkflowProcess instances through their state machine:

    running --approve(not last step)--> running (index+1)
    running --approve(last step)------> completed
    running --reject------------------> rejected
    running --pause-------------------> paused
    paused  --resume------------------> running
    running|paused --cancel-----------> cancelled   (administrative)

completed, rejected and cancelled are terminal.

Every operation is one unit of work: load (row-locked), validate, mutate,
commit. Processes are version-checked on flush, so two concurrent decisions
on the same process cannot both land; the loser gets a ConflictError.
Notifications go out after the commit and never undo a transition.

Usage:
    engine = WorkflowEngine(SqlWorkflowRepository(db.session), WorkflowNotifier())
    process = engine.start(definition_id=3, document_id="PAT-2024-001", actor_id="7")
    engine.advance(process.id, actor_id="9", decision="approve", comment="LGTM")
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ipflow.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ipflow.models.workflow import (
    Decision,
    ProcessStep,
    WorkflowProcess,
    validate_process_transition,
)
from ipflow.services.workflow_steps import conditions_met

logger = logging.getLogger(__name__)

DEFAULT_PAUSE_REASON = "Paused manually"
MAX_DOCUMENT_ID_LENGTH = 64


def parse_decision(value) -> Decision:
    """Return the Decision for ``value`` or raise ValidationError."""
    if isinstance(value, Decision):
        return value
    try:
        return Decision(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError(
            "decision must be 'approve' or 'reject'",
            details={"decision": "must be 'approve' or 'reject'"},
        ) from None


class WorkflowEngine:
    """Orchestrates start / advance / pause / resume / cancel of processes.

    Args:
        repository: state store (see ``SqlWorkflowRepository``).
        notifier: optional object with ``notify(actor_id, definition_id,
            process_id, step_index, message, event_kind)``.
    """

    def __init__(self, repository, notifier=None):
        self.repository = repository
        self.notifier = notifier

    # ── Commands ──────────────────────────────────────────────────────────

    def start(self, definition_id, document_id, actor_id, initial_data=None) -> WorkflowProcess:
        """Create a running process at step 0 for ``document_id``.

        Raises:
            ValidationError: empty or non-scalar document_id, non-object initial_data.
            NotFoundError: unknown definition.
            InvalidStateError: definition is not active.
            ConflictError: the document already has a non-terminal process.
        """
        if document_id is None:
            document_id = ""
        # Numeric ids are accepted as their decimal form; bool is an int subclass
        if isinstance(document_id, bool) or not isinstance(document_id, (str, int)):
            raise ValidationError("document_id must be a string or integer",
                                  details={"document_id": "must be a string or integer"})
        document_id = str(document_id).strip()
        if not document_id:
            raise ValidationError("document_id is required", details={"document_id": "required"})
        if len(document_id) > MAX_DOCUMENT_ID_LENGTH:
            raise ValidationError(
                f"document_id must be ≤ {MAX_DOCUMENT_ID_LENGTH} characters",
                details={"document_id": "too long"},
            )
        if initial_data is None:
            initial_data = {}
        if not isinstance(initial_data, dict):
            raise ValidationError("initial_data must be an object", details={"initial_data": "must be an object"})

        definition = self.repository.get_definition(definition_id)
        if definition is None:
            raise NotFoundError("WorkflowDefinition", definition_id)
        if definition.status != "active":
            raise InvalidStateError("WorkflowDefinition", definition_id, definition.status, "start",
                                    reason="workflow is not active")
        if not definition.steps:
            raise ValidationError("Workflow has no steps", details={"steps": "empty"})

        if self.repository.find_open_process(definition.id, document_id) is not None:
            raise ConflictError(
                "WorkflowProcess", "document_id", document_id,
                message=f"Document {document_id!r} already has an open process for workflow {definition.id}",
            )

        process = WorkflowProcess(
            definition_id=definition.id,
            definition_version=definition.version,
            document_id=document_id,
            status="running",
            current_step_index=0,
            initial_data=initial_data,
            started_by=actor_id,
            active_key=WorkflowProcess.make_active_key(definition.id, document_id),
        )
        process.steps = [ProcessStep.snapshot(step) for step in definition.steps]
        process.record("start", actor_id, step_index=0)
        self.repository.add(process)

        try:
            self.repository.commit()
        except IntegrityError:
            self.repository.rollback()
            raise ConflictError(
                "WorkflowProcess", "document_id", document_id,
                message=f"Document {document_id!r} already has an open process for workflow {definition.id}",
            ) from None

        logger.info(
            "Workflow process started process_id=%s definition_id=%s document_id=%s actor=%s",
            process.id, definition.id, document_id, actor_id,
        )
        self._notify(actor_id, process, 0, "Workflow started", "started")
        return process

    def advance(self, process_id, actor_id, decision, comment=None, *, definition_id=None) -> WorkflowProcess:
        """Apply an approve / reject decision to the current step.

        Raises:
            ValidationError: decision is not approve/reject.
            NotFoundError: unknown process.
            InvalidStateError: process is not running.
            ConflictError: the process was changed concurrently.
        """
        decision = parse_decision(decision)
        process = self._load(process_id, definition_id)
        action = decision.value
        self._check(process, action)

        acted_index = process.current_step_index
        if decision is Decision.REJECT:
            process.record("reject", actor_id, comment)
            process.finish("rejected")
            event, message = "rejected", comment or ""
        else:
            process.record("approve", actor_id, comment)
            next_index = self._next_applicable_index(process, acted_index + 1, actor_id)
            if next_index >= process.total_steps:
                process.finish("completed")
                event, message = "completed", ""
            else:
                process.current_step_index = next_index
                event, message = "advanced", f"Now at: {process.steps[next_index].name}"

        self._commit(process)
        logger.info(
            "Workflow process %s process_id=%s step=%s -> status=%s index=%s actor=%s",
            action, process.id, acted_index, process.status, process.current_step_index, actor_id,
        )
        self._notify(actor_id, process, acted_index, message, event)
        return process

    def pause(self, process_id, reason=None, actor_id=None, *, definition_id=None) -> WorkflowProcess:
        """Pause a running process without moving its step index."""
        process = self._load(process_id, definition_id)
        self._check(process, "pause")

        reason = (reason or "").strip() or DEFAULT_PAUSE_REASON
        process.status = "paused"
        process.record("pause", actor_id, reason)

        self._commit(process)
        logger.info("Workflow process paused process_id=%s index=%s actor=%s",
                    process.id, process.current_step_index, actor_id)
        self._notify(actor_id, process, process.current_step_index, reason, "paused")
        return process

    def resume(self, process_id, actor_id=None, *, definition_id=None) -> WorkflowProcess:
        """Resume a paused process at the step it was paused on."""
        process = self._load(process_id, definition_id)
        self._check(process, "resume")

        process.status = "running"
        process.record("resume", actor_id)

        self._commit(process)
        logger.info("Workflow process resumed process_id=%s index=%s actor=%s",
                    process.id, process.current_step_index, actor_id)
        self._notify(actor_id, process, process.current_step_index, "", "resumed")
        return process

    def cancel(self, process_id, actor_id, reason=None, *, definition_id=None) -> WorkflowProcess:
        """Administratively terminate a running or paused process."""
        process = self._load(process_id, definition_id)
        self._check(process, "cancel")

        index = process.current_step_index
        process.record("cancel", actor_id, (reason or "").strip())
        process.finish("cancelled")

        self._commit(process)
        logger.info("Workflow process cancelled process_id=%s index=%s actor=%s",
                    process.id, index, actor_id)
        self._notify(actor_id, process, index, reason or "", "cancelled")
        return process

    # ── Queries ───────────────────────────────────────────────────────────

    def get_status(self, process_id, *, definition_id=None) -> dict:
        """Read-only projection of a process's position and history."""
        process = self._load(process_id, definition_id, for_update=False)
        step = process.current_step
        return {
            "process_id": process.id,
            "definition_id": process.definition_id,
            "definition_version": process.definition_version,
            "document_id": process.document_id,
            "status": process.status,
            "current_step_index": process.current_step_index,
            "current_step": step.to_dict() if step else None,
            "total_steps": process.total_steps,
            "started_by": process.started_by,
            "started_at": process.started_at.isoformat() if process.started_at else None,
            "completed_at": process.completed_at.isoformat() if process.completed_at else None,
            "history": [entry.to_dict() for entry in process.history],
        }

    # ── Internals ─────────────────────────────────────────────────────────

    def _load(self, process_id, definition_id=None, *, for_update=True) -> WorkflowProcess:
        process = self.repository.get_process(process_id, for_update=for_update)
        if process is None or (definition_id is not None and process.definition_id != definition_id):
            raise NotFoundError("WorkflowProcess", process_id)
        return process

    @staticmethod
    def _check(process, action):
        if not validate_process_transition(process.status, action):
            raise InvalidStateError("WorkflowProcess", process.id, process.status, action)

    @staticmethod
    def _next_applicable_index(process, index, actor_id):
        """First index ≥ ``index`` whose step conditions hold; skipped steps are logged."""
        data = process.initial_data or {}
        while index < process.total_steps and not conditions_met(process.steps[index].conditions, data):
            process.record("skip", actor_id, "Step conditions not met", step_index=index)
            index += 1
        return index

    def _commit(self, process):
        try:
            self.repository.commit()
        except StaleDataError:
            self.repository.rollback()
            logger.warning("Concurrent update rejected process_id=%s", process.id)
            raise ConflictError(
                "WorkflowProcess", "lock_version", process.id,
                message=f"WorkflowProcess id={process.id} was modified concurrently; reload and retry",
            ) from None

    def _notify(self, actor_id, process, step_index, message, event_kind):
        if self.notifier is None:
            return
        try:
            self.notifier.notify(actor_id, process.definition_id, process.id, step_index, message, event_kind)
        except Exception:
            self.repository.rollback()
            logger.warning(
                "Workflow notification failed process_id=%s event=%s (transition kept)",
                process.id, event_kind, exc_info=True,
            )
