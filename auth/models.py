"""
auth/models.py -- Domain types for authentication and authorization.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in users/models.py -- dataclasses own domain shape; the policy and routes do
the work.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. Stored as the lowercase value in the users table."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class AuthContext:
    """The authenticated identity behind one request.

    Built per request by auth/dependencies.py from a verified JWT and never
    persisted. id is the opaque user id assigned by the store.
    """

    id: str
    role: Role
