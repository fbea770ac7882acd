"""
api/routes/v1/users.py -- User profile and follow graph REST endpoints.

Routes:
  GET    /api/v1/users/profile/{user_id}       -- profile + follow counts (policy)
  GET    /api/v1/users/{user_id}               -- profile (policy)
  PATCH  /api/v1/users/{user_id}               -- update profile fields (policy)
  DELETE /api/v1/users/{user_id}               -- delete account, detaching edges (policy)
  POST   /api/v1/users/follow/{target_id}      -- follow target (auth)
  DELETE /api/v1/users/unfollow/{target_id}    -- unfollow target (auth)
  GET    /api/v1/users/follow/{target_id}      -- is the caller following target (auth)
  GET    /api/v1/users/{user_id}/followers     -- follower summaries (auth)
  GET    /api/v1/users/{user_id}/following     -- following summaries (auth)
  GET    /api/v1/users/{user_id}/follow-counts -- counts, 404 if no such user (auth)

"policy" routes go through authorize_user_action: users act on themselves,
admins on anyone except deleting their own account.

Every handler is a plain def: FastAPI runs it in its worker thread pool, so
a storage round-trip never stalls the event loop for other requests.

Route order matters: /users/profile/{user_id} and /users/follow/{target_id}
are declared before /users/{user_id} so the literal segment wins.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import (
    ActionResult,
    FollowCountsResponse,
    FollowStatusResponse,
    FollowUserRow,
    ProfileResponse,
    UserResponse,
    UserUpdate,
)
from auth.dependencies import authorize_user_action, get_auth_context
from auth.models import AuthContext
from users.graph import FollowGraphManager
from users.models import Preferences, SocialLinks
from users.store import UserStore

logger = logging.getLogger("followgraph.api")

router = APIRouter()


def _not_found(user_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": f"User {user_id} not found."})


def _storage_failure(message: str) -> HTTPException:
    return HTTPException(status_code=503, detail={"code": "storage_failure", "message": message})


# ---------------------------------------------------------------------------
# Profile (policy-gated)
# ---------------------------------------------------------------------------


@router.get("/users/profile/{user_id}", response_model=ProfileResponse)
def get_profile(
    request: Request,
    user_id: str,
    actor: AuthContext = Depends(authorize_user_action),
) -> ProfileResponse:
    user_store: UserStore = request.app.state.user_store
    graph: FollowGraphManager = request.app.state.follow_graph
    user = user_store.get_by_id(user_id)
    counts = graph.follow_counts(user_id)
    if user is None or counts is None:
        raise _not_found(user_id)
    return ProfileResponse(
        user=UserResponse.from_record(user),
        follow_counts=FollowCountsResponse.from_counts(counts),
    )


# ---------------------------------------------------------------------------
# Follow graph (authenticated)
# ---------------------------------------------------------------------------


@router.post("/users/follow/{target_id}", response_model=ActionResult)
def follow_user(
    request: Request,
    target_id: str,
    actor: AuthContext = Depends(get_auth_context),
) -> ActionResult:
    graph: FollowGraphManager = request.app.state.follow_graph
    if not graph.follow(actor.id, target_id):
        raise _storage_failure("Could not follow user. Try again later.")
    return ActionResult(message=f"Now following {target_id}.")


@router.delete("/users/unfollow/{target_id}", response_model=ActionResult)
def unfollow_user(
    request: Request,
    target_id: str,
    actor: AuthContext = Depends(get_auth_context),
) -> ActionResult:
    if target_id == actor.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_request", "message": "You cannot unfollow yourself."},
        )
    graph: FollowGraphManager = request.app.state.follow_graph
    if not graph.unfollow(actor.id, target_id):
        raise _storage_failure("Could not unfollow user. Try again later.")
    return ActionResult(message=f"Unfollowed {target_id}.")


@router.get("/users/follow/{target_id}", response_model=FollowStatusResponse)
def follow_status(
    request: Request,
    target_id: str,
    actor: AuthContext = Depends(get_auth_context),
) -> FollowStatusResponse:
    graph: FollowGraphManager = request.app.state.follow_graph
    return FollowStatusResponse(target_id=target_id, is_following=graph.is_following(actor.id, target_id))


# ---------------------------------------------------------------------------
# Profile CRUD (policy-gated)
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    actor: AuthContext = Depends(authorize_user_action),
) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise _not_found(user_id)
    return UserResponse.from_record(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    actor: AuthContext = Depends(authorize_user_action),
) -> UserResponse:
    """Update the profile fields present in the body; omitted fields are untouched.

    social_links / preferences merge key by key into the stored values; an
    explicit null resets the whole group to its defaults.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise _not_found(user_id)
    fields = body.model_dump(exclude_unset=True)
    if "social_links" in fields:
        links = fields["social_links"]
        fields["social_links"] = replace(user.social_links, **links) if links is not None else SocialLinks()
    if "preferences" in fields:
        prefs = fields["preferences"]
        fields["preferences"] = replace(user.preferences, **prefs) if prefs is not None else Preferences()
    if fields and not user_store.update_profile(user_id, **fields):
        raise _not_found(user_id)
    return UserResponse.from_record(user_store.get_by_id(user_id))


@router.delete("/users/{user_id}", response_model=ActionResult)
def delete_user(
    request: Request,
    user_id: str,
    actor: AuthContext = Depends(authorize_user_action),
) -> ActionResult:
    """Delete an account. Its edges are detached in the same transaction."""
    user_store: UserStore = request.app.state.user_store
    graph: FollowGraphManager = request.app.state.follow_graph
    if user_store.get_by_id(user_id) is None:
        raise _not_found(user_id)
    if not graph.remove_user(user_id):
        raise _storage_failure("Could not delete user. Try again later.")
    logger.info("User %s deleted by %s", user_id, actor.id)
    return ActionResult(message=f"User {user_id} deleted.")


# ---------------------------------------------------------------------------
# Follow graph reads (authenticated)
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/followers", response_model=list[FollowUserRow])
def list_followers(
    request: Request,
    user_id: str,
    actor: AuthContext = Depends(get_auth_context),
) -> list[FollowUserRow]:
    graph: FollowGraphManager = request.app.state.follow_graph
    return [FollowUserRow.from_summary(s) for s in graph.list_followers(user_id)]


@router.get("/users/{user_id}/following", response_model=list[FollowUserRow])
def list_following(
    request: Request,
    user_id: str,
    actor: AuthContext = Depends(get_auth_context),
) -> list[FollowUserRow]:
    graph: FollowGraphManager = request.app.state.follow_graph
    return [FollowUserRow.from_summary(s) for s in graph.list_following(user_id)]


@router.get("/users/{user_id}/follow-counts", response_model=FollowCountsResponse)
def follow_counts(
    request: Request,
    user_id: str,
    actor: AuthContext = Depends(get_auth_context),
) -> FollowCountsResponse:
    graph: FollowGraphManager = request.app.state.follow_graph
    counts = graph.follow_counts(user_id)
    if counts is None:
        raise _not_found(user_id)
    return FollowCountsResponse.from_counts(counts)
