"""
Workflow Notification Service.

Inbox queries for the notification blueprint, plus the ``WorkflowNotifier``
the workflow engine reports transitions to.
"""

from datetime import datetime, timezone

from ipflow.core.exceptions import NotFoundError
from ipflow.models import db
from ipflow.models.notification import EVENT_KINDS, NOTIFICATION_SEVERITIES, Notification
from ipflow.models.workflow import WorkflowDefinition, WorkflowProcess


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def fan_out(*, recipients, event_kind, title, message="", severity="info",
                definition_id=None, process_id=None, step_index=None):
        """
        Store one notification per distinct, non-empty recipient and commit.

        Raises:
            ValueError: unknown ``event_kind`` or ``severity``.

        Returns:
            List of created Notification instances.
        """
        if event_kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {event_kind!r}")
        if severity not in NOTIFICATION_SEVERITIES:
            raise ValueError(f"Unknown severity: {severity!r}")
        created = [
            Notification(
                recipient=recipient,
                event_kind=event_kind,
                severity=severity,
                title=title,
                message=message,
                definition_id=definition_id,
                process_id=process_id,
                step_index=step_index,
            )
            for recipient in dict.fromkeys(r for r in recipients if r)
        ]
        db.session.add_all(created)
        db.session.commit()
        return created

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.

        Returns:
            (items, total)
        """
        q = Notification.query.filter_by(recipient=recipient)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient=recipient, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient):
        """Mark a single notification of ``recipient`` as read.

        Raises:
            NotFoundError: unknown id, or the notification belongs to someone else.
        """
        notif = db.session.get(Notification, notification_id)
        if not notif or notif.recipient != recipient:
            raise NotFoundError("Notification", notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient=recipient, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count


# ═════════════════════════════════════════════════════════════════════════════
# Workflow engine collaborator
# ═════════════════════════════════════════════════════════════════════════════

_EVENT_SEVERITY = {
    "started": "info",
    "advanced": "info",
    "completed": "success",
    "rejected": "warning",
    "paused": "warning",
    "resumed": "info",
    "cancelled": "warning",
}

_EVENT_VERB = {
    "started": "was started",
    "advanced": "moved to the next step",
    "completed": "was completed",
    "rejected": "was rejected",
    "paused": "was paused",
    "resumed": "was resumed",
    "cancelled": "was cancelled",
}


class WorkflowNotifier:
    """In-app notifier for workflow transitions.

    Notifies the acting user and, when different, the user who started the
    process. Exceptions propagate; the engine decides they are non-fatal.
    """

    def notify(self, actor_id, definition_id, process_id, step_index, message, event_kind):
        definition = db.session.get(WorkflowDefinition, definition_id)
        process = db.session.get(WorkflowProcess, process_id)
        name = definition.name if definition else f"#{definition_id}"
        verb = _EVENT_VERB.get(event_kind, event_kind)

        title = f"Workflow notice - {name}"
        body = f'Workflow "{name}" {verb} at step {step_index + 1}.'
        if message:
            body += f" {message}"

        recipients = [actor_id]
        if process is not None:
            recipients.append(process.started_by)

        return NotificationService.fan_out(
            recipients=recipients,
            event_kind=event_kind,
            title=title,
            message=body,
            severity=_EVENT_SEVERITY.get(event_kind, "info"),
            definition_id=definition_id,
            process_id=process_id,
            step_index=step_index,
        )
