"""
Permission Decorators — capability checks for route protection.

Provides decorators that check the authenticated actor's capabilities
before allowing access to an endpoint.

Usage:
    @bp.route("/api/v1/workflows/<int:definition_id>/start", methods=["POST"])
    @require_capability("process.start")
    def start_process(definition_id):
        ...

    @bp.route("/api/v1/workflows/analytics/report", methods=["GET"])
    @require_any_capability("analytics.read", "workflow.admin")
    def workflow_report():
        ...
"""

import functools
import logging

from flask import g

from ipflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_capability(capability: str):
    """
    Decorator: require the actor to hold a specific capability.

    Args:
        capability: Capability name, e.g. "process.decide"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            if not actor.can(capability):
                logger.warning(
                    "Actor %s (role=%s) denied: missing capability '%s' on %s",
                    actor.id, actor.role, capability, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required": capability})

            return f(*args, **kwargs)
        return decorated
    return decorator


def require_any_capability(*capabilities: str):
    """
    Decorator: require the actor to hold at least ONE of the listed capabilities.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            if not any(actor.can(c) for c in capabilities):
                logger.warning(
                    "Actor %s (role=%s) denied: missing any of %s on %s",
                    actor.id, actor.role, capabilities, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied",
                                 details={"required_any": list(capabilities)})

            return f(*args, **kwargs)
        return decorated
    return decorator
