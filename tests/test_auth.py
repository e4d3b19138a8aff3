"""
Authentication and capability tests.

Tests cover:
  - JWT middleware: missing / malformed / expired / foreign tokens → 401
  - Health probes are public
  - Role → capability resolution and 403 responses
  - flask issue-token CLI
  - Rate limit buckets keyed per actor, not per IP
"""
import jwt as pyjwt
import pytest
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

import ipflow
from ipflow import create_app
from ipflow.config import TestingConfig, config
from ipflow.middleware.rate_limiter import actor_or_ip_key
from ipflow.services.jwt_service import decode_access_token, generate_access_token
from ipflow.services.permissions import (
    ALL_CAPABILITIES,
    DEFAULT_CAPABILITIES,
    Actor,
    resolve_capabilities,
)


class TestJwtMiddleware:
    def test_missing_token(self, client):
        res = client.get("/api/v1/workflows")
        assert res.status_code == 401
        body = res.get_json()
        assert body["code"] == "ERR_UNAUTHORIZED"
        assert body["error"] == "Authentication required"

    def test_non_bearer_header(self, client):
        res = client.get("/api/v1/workflows", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert res.status_code == 401

    def test_garbage_token(self, client):
        res = client.get("/api/v1/workflows", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"

    def test_expired_token(self, client):
        token = generate_access_token("2", "user", expires_in=-60)
        res = client.get("/api/v1/workflows", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

    def test_token_signed_with_other_secret(self, client):
        token = pyjwt.encode({"sub": "2", "role": "admin", "type": "access", "exp": 9999999999},
                             "someone-else", algorithm="HS256")
        res = client.get("/api/v1/workflows", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_wrong_token_type(self, app, client):
        token = pyjwt.encode({"sub": "2", "role": "user", "type": "refresh", "exp": 9999999999},
                             app.config["JWT_SECRET_KEY"], algorithm="HS256")
        res = client.get("/api/v1/workflows", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_valid_token(self, client, user_headers):
        res = client.get("/api/v1/workflows", headers=user_headers)
        assert res.status_code == 200
        assert res.get_json() == {"items": [], "total": 0}

    def test_request_id_header(self, client, user_headers):
        res = client.get("/api/v1/workflows", headers={**user_headers, "X-Request-ID": "abc-123"})
        assert res.headers["X-Request-ID"] == "abc-123"


class TestHealth:
    def test_ready_is_public(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live_checks_database(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_workflow_tables(self, client, engine, definition):
        engine.start(definition.id, "PAT-1", "2")
        res = client.get("/api/v1/health/workflows")
        assert res.status_code == 200
        data = res.get_json()
        assert data["open_processes"] == 1
        assert data["tables"]["workflow_definitions"]["count"] == 1


class TestCapabilities:
    def test_admin_has_everything(self):
        assert resolve_capabilities("admin") == ALL_CAPABILITIES

    def test_unknown_role_is_read_only(self):
        assert resolve_capabilities("auditor") == DEFAULT_CAPABILITIES

    @pytest.mark.parametrize("role, capability, expected", [
        ("user", "process.start", True),
        ("user", "process.cancel", False),
        ("user", "analytics.read", False),
        ("reviewer", "process.decide", True),
        ("reviewer", "process.start", False),
        ("reviewer", "workflow.write", False),
    ])
    def test_role_matrix(self, role, capability, expected):
        assert (capability in resolve_capabilities(role)) is expected

    def test_actor_from_claims(self, app):
        payload = decode_access_token(generate_access_token(42, "reviewer"))
        actor = Actor.from_claims(payload)
        assert actor.id == "42"
        assert actor.can("process.decide")
        assert not actor.is_admin
        assert actor.owns("42")
        assert not actor.owns("7")

    def test_admin_owns_everything(self, admin):
        assert admin.owns("7")

    def test_unknown_role_gets_403_on_write(self, client, auth_headers):
        res = client.post("/api/v1/workflows", json={"name": "X", "steps": [{"name": "A"}]},
                          headers=auth_headers("9", "auditor"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"


class TestIssueTokenCli:
    def test_issue_token(self, app):
        result = app.test_cli_runner().invoke(args=["issue-token", "5", "--role", "reviewer"])
        assert result.exit_code == 0

        with app.app_context():
            payload = decode_access_token(result.output.strip())
        assert payload["sub"] == "5"
        assert payload["role"] == "reviewer"

    def test_rejects_unknown_role(self, app):
        result = app.test_cli_runner().invoke(args=["issue-token", "5", "--role", "root"])
        assert result.exit_code != 0


class LimitedConfig(TestingConfig):
    TESTING = False
    RATELIMIT_ENABLED = True
    RATELIMIT_WORKFLOW = "2/minute"
    AUTO_CREATE_TABLES = True


@pytest.fixture()
def limited_app(monkeypatch):
    """App with live per-blueprint limits on a private Limiter."""
    monkeypatch.setattr(ipflow, "limiter", Limiter(
        key_func=get_remote_address, default_limits=[], storage_uri="memory://",
    ))
    monkeypatch.setitem(config, "limited", LimitedConfig)
    return create_app("limited")


class TestRateLimitKey:
    def test_limit_check_runs_after_auth(self, limited_app):
        hooks = limited_app.before_request_funcs[None]
        names = [getattr(fn, "__name__", "") for fn in hooks]
        limiter_at = next(i for i, fn in enumerate(hooks) if getattr(fn, "__self__", None) is ipflow.limiter)
        assert names.index("_jwt_auth") < limiter_at

    def test_key_uses_actor_set_by_auth(self, app, user_headers):
        with app.test_request_context("/api/v1/workflows", headers=user_headers,
                                      environ_base={"REMOTE_ADDR": "10.0.0.7"}):
            app.preprocess_request()
            assert actor_or_ip_key() == "actor:2"

    def test_key_reads_token_without_actor(self, app, other_user_headers):
        with app.test_request_context("/api/v1/workflows", headers=other_user_headers,
                                      environ_base={"REMOTE_ADDR": "10.0.0.7"}):
            assert actor_or_ip_key() == "actor:4"

    def test_key_falls_back_to_ip(self, app):
        with app.test_request_context("/api/v1/workflows",
                                      headers={"Authorization": "Bearer not-a-jwt"},
                                      environ_base={"REMOTE_ADDR": "10.0.0.7"}):
            assert actor_or_ip_key() == "10.0.0.7"

    def test_two_actors_behind_one_ip(self, limited_app):
        client = limited_app.test_client()
        with limited_app.app_context():
            first = {"Authorization": f"Bearer {generate_access_token('10', 'user')}"}
            second = {"Authorization": f"Bearer {generate_access_token('11', 'user')}"}

        assert [client.get("/api/v1/workflows", headers=first).status_code for _ in range(2)] == [200, 200]
        assert client.get("/api/v1/workflows", headers=second).status_code == 200
        assert client.get("/api/v1/workflows", headers=first).status_code == 429
