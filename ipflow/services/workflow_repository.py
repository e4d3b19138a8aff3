"""
Workflow state store used by the engine.

The engine never touches ``db.session`` directly; it is handed a repository
bound to one session, so each request (or test) owns its unit of work.
"""

from __future__ import annotations

from sqlalchemy import select

from ipflow.models.workflow import (
    TERMINAL_PROCESS_STATUSES,
    WorkflowDefinition,
    WorkflowProcess,
)


class SqlWorkflowRepository:
    """SQLAlchemy-backed repository for definitions and processes."""

    def __init__(self, session):
        self.session = session

    def get_definition(self, definition_id) -> WorkflowDefinition | None:
        return self.session.get(WorkflowDefinition, definition_id)

    def get_process(self, process_id, *, for_update: bool = False) -> WorkflowProcess | None:
        """Load a process; ``for_update`` takes a row lock where the DB supports it."""
        stmt = select(WorkflowProcess).where(WorkflowProcess.id == process_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def find_open_process(self, definition_id, document_id) -> WorkflowProcess | None:
        """Return the non-terminal process for (definition, document), if any."""
        stmt = (
            select(WorkflowProcess)
            .where(
                WorkflowProcess.definition_id == definition_id,
                WorkflowProcess.document_id == document_id,
                WorkflowProcess.status.notin_(TERMINAL_PROCESS_STATUSES),
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def add(self, obj) -> None:
        self.session.add(obj)

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
