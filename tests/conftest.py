"""
Shared pytest fixtures for the ipflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - auth_headers: factory for Bearer headers of a given user / role
    - admin / user / reviewer actors and their headers
    - engine: WorkflowEngine bound to the test session
    - make_definition: factory for stored workflow definitions
"""

import pytest

from ipflow import create_app
from ipflow.models import db as _db
from ipflow.services import workflow_service
from ipflow.services.jwt_service import generate_access_token
from ipflow.services.notification import WorkflowNotifier
from ipflow.services.permissions import Actor, resolve_capabilities
from ipflow.services.workflow_engine import WorkflowEngine
from ipflow.services.workflow_repository import SqlWorkflowRepository

ADMIN_ID = "1"
USER_ID = "2"
REVIEWER_ID = "3"
OTHER_USER_ID = "4"

THREE_STEPS = [
    {"name": "Attorney review", "approver_role": "patent_attorney"},
    {"name": "Manager approval", "approver_role": "ip_manager"},
    {"name": "Committee sign-off", "approver_role": "ip_committee"},
]


def make_actor(actor_id, role):
    return Actor(id=actor_id, role=role, capabilities=resolve_capabilities(role))


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Auth fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    """Factory: Bearer headers for ``user_id`` with ``role``."""
    def _make(user_id, role="user"):
        return {"Authorization": f"Bearer {generate_access_token(user_id, role)}"}
    return _make


@pytest.fixture()
def admin_headers(auth_headers):
    return auth_headers(ADMIN_ID, "admin")


@pytest.fixture()
def user_headers(auth_headers):
    return auth_headers(USER_ID, "user")


@pytest.fixture()
def reviewer_headers(auth_headers):
    return auth_headers(REVIEWER_ID, "reviewer")


@pytest.fixture()
def other_user_headers(auth_headers):
    return auth_headers(OTHER_USER_ID, "user")


@pytest.fixture()
def admin():
    return make_actor(ADMIN_ID, "admin")


@pytest.fixture()
def user():
    return make_actor(USER_ID, "user")


@pytest.fixture()
def other_user():
    return make_actor(OTHER_USER_ID, "user")


# ── Engine fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def engine(session):
    """Engine wired to the test session and the in-app notifier."""
    return WorkflowEngine(SqlWorkflowRepository(session), WorkflowNotifier())


@pytest.fixture()
def make_definition(user):
    """Factory: create and return a stored WorkflowDefinition."""
    def _make(steps=None, status="active", name="Patent filing approval", actor=None):
        return workflow_service.create_definition(
            {"name": name, "status": status, "steps": THREE_STEPS if steps is None else steps},
            actor or user,
        )
    return _make


@pytest.fixture()
def definition(make_definition):
    """Active three-step definition owned by the regular user."""
    return make_definition()
