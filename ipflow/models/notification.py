"""
Workflow notification model.

One row per recipient per workflow event. Rows point back at the process
and step that produced them so the inbox can link to the process status.
"""

from datetime import datetime, timezone

from ipflow.models import db

NOTIFICATION_SEVERITIES = {"info", "warning", "success"}
EVENT_KINDS = {"started", "advanced", "completed", "rejected", "paused", "resumed", "cancelled"}


def _iso(value):
    return value.isoformat() if value else None


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(64), nullable=False, index=True, comment="Actor id")
    event_kind = db.Column(db.String(20), nullable=False, comment="started / advanced / completed / ...")
    severity = db.Column(db.String(20), default="info")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")

    # No foreign keys: the inbox outlives deleted definitions
    definition_id = db.Column(db.Integer, nullable=True)
    process_id = db.Column(db.Integer, nullable=True, index=True)
    step_index = db.Column(db.Integer, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "event_kind": self.event_kind,
            "severity": self.severity,
            "title": self.title,
            "message": self.message or "",
            "definition_id": self.definition_id,
            "process_id": self.process_id,
            "step_index": self.step_index,
            "is_read": bool(self.is_read),
            "read_at": _iso(self.read_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.event_kind} process={self.process_id} to={self.recipient}>"
