"""
IP Portfolio Workflow Service
Approval workflow domain models.

Models:
    - WorkflowDefinition: named, versioned template of ordered approval steps
    - WorkflowStep: one step of a definition (ordered by position)
    - WorkflowProcess: running instance of a definition bound to one document
    - ProcessStep: snapshot of a definition step, copied when a process starts
    - ProcessHistoryEntry: append-only decision / lifecycle log of a process
    - WorkflowTemplate: reusable step list that definitions can be created from
"""

import enum
from datetime import datetime, timezone

from ipflow.models import db


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

DEFINITION_STATUSES = {"draft", "active", "inactive"}
TEMPLATE_STATUSES = {"active", "inactive"}

PROCESS_STATUSES = {"running", "paused", "completed", "rejected", "cancelled"}
TERMINAL_PROCESS_STATUSES = frozenset({"completed", "rejected", "cancelled"})

HISTORY_ACTIONS = {"start", "approve", "reject", "skip", "pause", "resume", "cancel"}

# action -> statuses the action may be taken from
PROCESS_TRANSITIONS = {
    "approve": ["running"],
    "reject":  ["running"],
    "pause":   ["running"],
    "resume":  ["paused"],
    "cancel":  ["running", "paused"],
}


class Decision(str, enum.Enum):
    """Approver decision on the current step."""

    APPROVE = "approve"
    REJECT = "reject"


def validate_process_transition(status, action):
    """Return True if ``action`` may be taken on a process in ``status``."""
    return status in PROCESS_TRANSITIONS.get(action, [])


class _StepColumns:
    """Columns shared by definition steps and their per-process snapshots."""

    position = db.Column(db.Integer, nullable=False, comment="0-based order within the list")
    name = db.Column(db.String(200), nullable=False)
    approver_role = db.Column(db.String(100), default="", comment="Opaque approver metadata")
    required = db.Column(db.Boolean, default=True, nullable=False)
    description = db.Column(db.Text, default="")
    conditions = db.Column(db.JSON, default=list, comment="[{type, field, value}] evaluated against initial_data")

    def to_dict(self):
        return {
            "index": self.position,
            "name": self.name,
            "approver_role": self.approver_role or "",
            "required": bool(self.required),
            "description": self.description or "",
            "conditions": list(self.conditions or []),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Definitions
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowDefinition(db.Model):
    """
    Named, versioned approval template.

    Business rules:
    - steps must be non-empty while status = active.
    - version increments every time the step list is replaced; running
      processes keep the snapshot taken at start.
    """

    __tablename__ = "workflow_definitions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="draft", index=True,
                       comment="draft | active | inactive")
    version = db.Column(db.Integer, nullable=False, default=1)
    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    steps = db.relationship(
        "WorkflowStep",
        order_by="WorkflowStep.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def replace_steps(self, parsed):
        """Swap the step list for ``parsed`` (``ParsedStep`` records)."""
        had_steps = bool(self.steps)
        self.steps = [
            WorkflowStep(
                position=i,
                name=step.name,
                approver_role=step.approver_role,
                required=step.required,
                description=step.description,
                conditions=[dict(c) for c in step.conditions],
            )
            for i, step in enumerate(parsed)
        ]
        if had_steps:
            self.version = (self.version or 1) + 1

    def to_dict(self, include_steps=True):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "status": self.status,
            "version": self.version,
            "step_count": len(self.steps),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_steps:
            data["steps"] = [s.to_dict() for s in self.steps]
        return data

    def __repr__(self):
        return f"<WorkflowDefinition {self.id}: {self.name} v{self.version} [{self.status}]>"


class WorkflowStep(_StepColumns, db.Model):
    __tablename__ = "workflow_steps"

    id = db.Column(db.Integer, primary_key=True)
    definition_id = db.Column(
        db.Integer, db.ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Processes
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowProcess(db.Model):
    """
    One running instantiation of a definition against a document.

    Business rules:
    - current_step_index never decreases; completed => index == len(steps).
    - completed / rejected / cancelled are terminal.
    - active_key is set while the process is non-terminal; its unique
      constraint blocks a second open process for the same document.
    - lock_version is the optimistic-lock counter (mapper version_id_col).
    """

    __tablename__ = "workflow_processes"

    id = db.Column(db.Integer, primary_key=True)
    definition_id = db.Column(
        db.Integer, db.ForeignKey("workflow_definitions.id"), nullable=False, index=True,
    )
    definition_version = db.Column(db.Integer, nullable=False, default=1)
    document_id = db.Column(db.String(64), nullable=False, index=True,
                            comment="Opaque reference to the entity under approval")
    status = db.Column(db.String(20), nullable=False, default="running", index=True)
    current_step_index = db.Column(db.Integer, nullable=False, default=0)
    initial_data = db.Column(db.JSON, default=dict)
    started_by = db.Column(db.String(64), nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    active_key = db.Column(db.String(120), nullable=True, unique=True,
                           comment="'<definition_id>:<document_id>' while non-terminal, else NULL")
    lock_version = db.Column(db.Integer, nullable=False)

    definition = db.relationship("WorkflowDefinition")
    steps = db.relationship(
        "ProcessStep",
        order_by="ProcessStep.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history = db.relationship(
        "ProcessHistoryEntry",
        order_by="ProcessHistoryEntry.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": lock_version}

    @staticmethod
    def make_active_key(definition_id, document_id):
        return f"{definition_id}:{document_id}"

    @property
    def total_steps(self):
        return len(self.steps)

    @property
    def is_terminal(self):
        return self.status in TERMINAL_PROCESS_STATUSES

    @property
    def current_step(self):
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def record(self, action, actor_id, comment=None, step_index=None):
        """Append a history entry; entries are never edited afterwards."""
        if action not in HISTORY_ACTIONS:
            raise ValueError(f"Unknown history action: {action!r}")
        entry = ProcessHistoryEntry(
            step_index=self.current_step_index if step_index is None else step_index,
            actor_id=actor_id,
            action=action,
            comment=comment or "",
        )
        self.history.append(entry)
        return entry

    def finish(self, status):
        """Move to a terminal status and release the per-document lock."""
        self.status = status
        self.completed_at = _utcnow()
        self.active_key = None
        if status == "completed":
            self.current_step_index = len(self.steps)

    def to_dict(self, include_history=False):
        step = self.current_step
        data = {
            "id": self.id,
            "definition_id": self.definition_id,
            "definition_version": self.definition_version,
            "document_id": self.document_id,
            "status": self.status,
            "current_step_index": self.current_step_index,
            "current_step": step.to_dict() if step else None,
            "total_steps": self.total_steps,
            "started_by": self.started_by,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }
        if include_history:
            data["initial_data"] = self.initial_data or {}
            data["steps"] = [s.to_dict() for s in self.steps]
            data["history"] = [h.to_dict() for h in self.history]
        return data

    def __repr__(self):
        return (f"<WorkflowProcess {self.id}: def={self.definition_id} doc={self.document_id} "
                f"{self.status}@{self.current_step_index}>")


class ProcessStep(_StepColumns, db.Model):
    __tablename__ = "workflow_process_steps"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(
        db.Integer, db.ForeignKey("workflow_processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("process_id", "position", name="uq_process_step_position"),
    )

    @classmethod
    def snapshot(cls, step):
        return cls(
            position=step.position,
            name=step.name,
            approver_role=step.approver_role,
            required=step.required,
            description=step.description,
            conditions=[dict(c) for c in (step.conditions or [])],
        )


class ProcessHistoryEntry(db.Model):
    """Append-only log row: who did what at which step."""

    __tablename__ = "workflow_process_history"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(
        db.Integer, db.ForeignKey("workflow_processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_index = db.Column(db.Integer, nullable=False)
    actor_id = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(20), nullable=False,
                       comment="start | approve | reject | skip | pause | resume | cancel")
    comment = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "step_index": self.step_index,
            "actor_id": self.actor_id,
            "action": self.action,
            "comment": self.comment or "",
            "timestamp": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


class WorkflowTemplate(db.Model):
    """Reusable step list; steps are stored as a validated JSON array."""

    __tablename__ = "workflow_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(60), default="general", index=True)
    steps = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default="active")
    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "category": self.category,
            "steps": list(self.steps or []),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<WorkflowTemplate {self.id}: {self.name}>"
