"""
JWT Auth Middleware — parses the Bearer token and sets ``g.actor``.

Every ``/api/v1/`` route except the health probes requires a valid access
token. The token's role claim is resolved to a capability set once, here;
handlers read ``g.actor`` and never inspect role strings.

    Authorization: Bearer <token>  →  g.actor = Actor(id, role, capabilities)
"""

import logging

import jwt as pyjwt
from flask import g, request

from ipflow.services.jwt_service import decode_access_token
from ipflow.services.permissions import Actor
from ipflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Authentication required")

        token = auth_header[7:].strip()
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token on %s: %s", path, exc)
            return api_error(E.UNAUTHORIZED, "Invalid token")

        g.actor = Actor.from_claims(payload)
        return None
