"""
Health check blueprint (no authentication).

Endpoints:
    GET /api/v1/health/ready      — 200 as soon as the app serves requests
    GET /api/v1/health/live       — database and Redis reachability
    GET /api/v1/health/workflows  — workflow tables queryable, open process count
"""

import logging
import time

import redis as redis_lib
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ipflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

WORKFLOW_TABLES = (
    "workflow_definitions",
    "workflow_steps",
    "workflow_processes",
    "workflow_process_steps",
    "workflow_process_history",
    "workflow_templates",
    "notifications",
)


def _timed(fn):
    t0 = time.perf_counter()
    fn()
    return round((time.perf_counter() - t0) * 1000, 1)


def _check_database():
    try:
        latency = _timed(lambda: db.session.execute(db.text("SELECT 1")))
        return {"status": "ok", "latency_ms": latency}
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}


def _check_redis():
    # Only the rate limiter uses Redis; memory:// and empty mean "not configured"
    redis_url = current_app.config.get("REDIS_URL") or ""
    if not redis_url.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "detail": "no REDIS_URL configured"}
    try:
        latency = _timed(lambda: redis_lib.from_url(redis_url, socket_timeout=2).ping())
        return {"status": "ok", "latency_ms": latency}
    except redis_lib.RedisError as exc:
        logger.warning("Health check: redis unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Database failure is fatal (503); Redis failure only degrades rate limiting."""
    checks = {
        "database": _check_database(),
        "redis": _check_redis(),
        "app": {"name": "ipflow", "debug": current_app.debug, "testing": current_app.testing},
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503


@health_bp.route("/workflows", methods=["GET"])
def workflow_tables():
    """Row counts per workflow table; catches deployments with missing migrations."""
    tables = {}
    for table in WORKFLOW_TABLES:
        try:
            count = db.session.execute(db.text(f"SELECT COUNT(*) FROM {table}")).scalar()
            tables[table] = {"status": "ok", "count": count}
        except SQLAlchemyError as exc:
            db.session.rollback()
            tables[table] = {"status": "error", "detail": str(exc)}

    open_processes = None
    if tables["workflow_processes"]["status"] == "ok":
        open_processes = db.session.execute(db.text(
            "SELECT COUNT(*) FROM workflow_processes WHERE status IN ('running', 'paused')"
        )).scalar()

    ok = all(t["status"] == "ok" for t in tables.values())
    return jsonify({
        "status": "ok" if ok else "error",
        "open_processes": open_processes,
        "tables": tables,
    }), 200 if ok else 503
