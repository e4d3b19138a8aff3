"""
Capability resolution — maps token roles to the capability set of an actor.

The role claim of the access token is resolved once per request (see
``ipflow.middleware.jwt_auth``) into an ``Actor``; blueprints and services
only ever ask ``actor.can("process.decide")``.

Capabilities:
    workflow.read     list / read definitions and processes
    workflow.write    create / edit / delete own definitions
    workflow.admin    manage every definition, bypass ownership
    process.start     start a process
    process.decide    approve / reject the current step
    process.control   pause / resume
    process.cancel    administrative cancel
    template.read     list / read templates
    template.write    create / edit / delete own templates
    analytics.read    workflow analytics report
"""

from __future__ import annotations

from dataclasses import dataclass, field

ALL_CAPABILITIES = frozenset({
    "workflow.read",
    "workflow.write",
    "workflow.admin",
    "process.start",
    "process.decide",
    "process.control",
    "process.cancel",
    "template.read",
    "template.write",
    "analytics.read",
})

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    "admin": ALL_CAPABILITIES,
    "user": frozenset({
        "workflow.read",
        "workflow.write",
        "process.start",
        "process.decide",
        "process.control",
        "template.read",
        "template.write",
    }),
    "reviewer": frozenset({
        "workflow.read",
        "process.decide",
        "process.control",
        "template.read",
    }),
}

# Unknown roles may look but not touch
DEFAULT_CAPABILITIES = frozenset({"workflow.read", "template.read"})


def resolve_capabilities(role: str | None) -> frozenset[str]:
    """Return the capability set for ``role``."""
    return ROLE_CAPABILITIES.get((role or "").strip().lower(), DEFAULT_CAPABILITIES)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller of the current request."""

    id: str
    role: str
    capabilities: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_claims(cls, claims: dict) -> "Actor":
        role = str(claims.get("role") or "user")
        return cls(id=str(claims["sub"]), role=role, capabilities=resolve_capabilities(role))

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @property
    def is_admin(self) -> bool:
        return "workflow.admin" in self.capabilities

    def owns(self, created_by) -> bool:
        """True when the actor created the resource or may manage everything."""
        return self.is_admin or str(created_by) == self.id
