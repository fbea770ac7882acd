"""
auth/policy.py -- Ownership/role authorization for actions on user resources.

Rules:
  user:
    - CAN act on self
    - CANNOT act on others
  admin:
    - CAN act on anyone
    - CANNOT DELETE self

The decision is a pure function of (is_self, is_admin, action is DELETE).
No I/O, no state -- one AuthorizationPolicy instance is safe to share across
every request handler without coordination.

decide() returns a Decision. authorize() is the raising form used by
auth/dependencies.py: Allow returns None, Deny raises PermissionDenied.
Missing actor / target are always raised, never returned as a Deny, because
they are request errors rather than policy outcomes.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from auth.models import AuthContext, Role

SELF_DELETE_MESSAGE = "Action not allowed on yourself"
OTHER_IDENTITY_MESSAGE = "You do not have permission to perform this action"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AuthorizationError(Exception):
    """Base class for every error the policy can raise."""


class Unauthenticated(AuthorizationError):
    """No actor context -- the request carried no valid session."""

    def __init__(self, message: str = "Unauthorized request") -> None:
        super().__init__(message)
        self.message = message


class BadTarget(AuthorizationError):
    """The target identity is missing or not a usable id."""

    def __init__(self, message: str = "Target user not specified") -> None:
        super().__init__(message)
        self.message = message


class PermissionDenied(AuthorizationError):
    """The policy returned Deny; reason is safe to show to the client."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class ActionKind(str, Enum):
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"

    @classmethod
    def from_method(cls, method: str | None) -> "ActionKind":
        """Map an HTTP verb to an ActionKind. Unknown or missing verbs are OTHER."""
        verb = (method or "").upper()
        if verb in ("GET", "HEAD"):
            return cls.READ
        if verb in ("PUT", "PATCH"):
            return cls.UPDATE
        if verb == "DELETE":
            return cls.DELETE
        return cls.OTHER


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class AuthorizationPolicy:
    """Decide whether an actor may perform an action on a target user.

    Usage:
        policy = AuthorizationPolicy()
        decision = policy.decide(actor, "u2", ActionKind.READ)
        policy.authorize(actor, "u1", ActionKind.UPDATE)  # raises on Deny
    """

    def __init__(self, self_delete_message: str = SELF_DELETE_MESSAGE) -> None:
        self.self_delete_message = self_delete_message

    def decide(self, actor: AuthContext | None, target_id: str | None, action: ActionKind) -> Decision:
        if actor is None:
            raise Unauthenticated()
        if not isinstance(target_id, str) or not target_id.strip():
            raise BadTarget()

        is_self = actor.id == target_id

        if actor.role is Role.ADMIN:
            if is_self and action is ActionKind.DELETE:
                return Decision.deny(self.self_delete_message)
            return Decision.allow()

        if actor.role is Role.USER:
            if is_self:
                return Decision.allow()
            return Decision.deny(OTHER_IDENTITY_MESSAGE)

        raise ValueError(f"Unknown role: {actor.role!r}")

    def authorize(self, actor: AuthContext | None, target_id: str | None, action: ActionKind) -> None:
        """Raise PermissionDenied unless decide() allows the action."""
        decision = self.decide(actor, target_id, action)
        if not decision.allowed:
            raise PermissionDenied(decision.reason)
