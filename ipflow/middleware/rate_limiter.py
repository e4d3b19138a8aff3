"""
Rate limiting configuration.

The Limiter instance is created in ``ipflow/__init__.py`` with no default
limits; this module attaches one limit per blueprint, keyed by the acting
user so that approvers behind one NAT do not share a bucket.

Limits come from config (``RATELIMIT_WORKFLOW`` / ``RATELIMIT_NOTIFICATION``)
and fall back to the defaults below.

Usage:
    from ipflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

import jwt as pyjwt
from flask import g, request as flask_request

from ipflow.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

# blueprint name -> (config key, default limit)
BLUEPRINT_LIMITS = {
    "workflow": ("RATELIMIT_WORKFLOW", WRITE_LIMIT),
    "workflow_template": ("RATELIMIT_WORKFLOW", WRITE_LIMIT),
    "notification": ("RATELIMIT_NOTIFICATION", READ_LIMIT),  # polled by the UI
}
EXEMPT_BLUEPRINTS = ("health",)


def actor_or_ip_key():
    """Rate limit key: authenticated actor if known, else remote IP.

    Falls back to the bearer token's subject when the limit is checked
    before the auth hook has set ``g.actor``.
    """
    actor = getattr(g, "actor", None)
    if actor is not None:
        return f"actor:{actor.id}"

    auth_header = flask_request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            payload = decode_access_token(auth_header[7:].strip())
        except pyjwt.InvalidTokenError:
            payload = None
        if payload:
            return f"actor:{payload['sub']}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """Attach per-blueprint limits; no-op in testing or when disabled."""
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    applied = {}
    for bp_name, (config_key, default) in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp is None:
            continue
        limit = app.config.get(config_key) or default
        limiter.limit(limit, key_func=actor_or_ip_key)(bp)
        applied[bp_name] = limit

    for bp_name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp is not None:
            limiter.exempt(bp)

    app.logger.info("Rate limiter configured: %s",
                    ", ".join(f"{name}={limit}" for name, limit in applied.items()))
