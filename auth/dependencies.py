"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and
per-resource authorization.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on an AuthContext after the token verifies AND the user still
exists in the store (a deleted account's token stops working immediately).

try_get_auth_context() is the soft variant (returns None for a missing or
bad token; a StorageFailure from the user lookup propagates to the 503 handler).
get_auth_context() wraps it and raises HTTP 401 if unauthenticated.
authorize_user_action() runs auth/policy.py against the {user_id} path
parameter and the request verb, mapping policy errors to 401/400/403.

Layer rule: no imports from api/ or users/. The store is reached through
request.app.state.user_store, never imported.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import AuthContext, Role
from auth.policy import ActionKind, AuthorizationPolicy, BadTarget, PermissionDenied, Unauthenticated
from auth.tokens import decode_access_token


def try_get_auth_context(request: Request) -> AuthContext | None:
    """Attempt to authenticate the request via cookie or Bearer header.

    Returns the AuthContext on success, None for a missing, invalid or expired
    token or a user that no longer exists. StorageFailure from the user
    lookup propagates; api/main.py turns it into a 503.
    The role comes from the stored record, not the token, so a role change
    takes effect without waiting for the token to expire.
    """
    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None

    user = request.app.state.user_store.get_by_id(str(payload["user_id"]))
    if user is None:
        return None
    try:
        role = Role(user.role)
    except ValueError:
        return None
    return AuthContext(id=user.id, role=role)


def get_auth_context(request: Request) -> AuthContext:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(actor: AuthContext = Depends(get_auth_context)): ...
    """
    actor = try_get_auth_context(request)
    if actor is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return actor


def authorize_user_action(request: Request, user_id: str) -> AuthContext:
    """Require that the caller may perform request.method on user {user_id}.

    Use on routes whose path carries a {user_id} parameter:
        @router.patch("/users/{user_id}")
        def route(user_id: str, actor: AuthContext = Depends(authorize_user_action)): ...

    Authorization runs before the route body, so a denied request never
    reaches the store.
    """
    policy: AuthorizationPolicy = request.app.state.policy
    actor = try_get_auth_context(request)
    try:
        policy.authorize(actor, user_id, ActionKind.from_method(request.method))
    except Unauthenticated as exc:
        raise HTTPException(status_code=401, detail={"code": "unauthorized", "message": exc.message})
    except BadTarget as exc:
        raise HTTPException(status_code=400, detail={"code": "bad_request", "message": exc.message})
    except PermissionDenied as exc:
        raise HTTPException(status_code=403, detail={"code": "permission_denied", "message": exc.reason})
    return actor
