"""
users/graph.py -- Follow graph maintained on both endpoints of every edge.

An edge A -> B exists when B.followers contains A AND A.following contains B.
Both halves are written inside one store session, so either both commit or
neither does; there is never anything to compensate afterwards.

Failure policy:
  follow / unfollow / remove_user  -> False on any StorageFailure, logged.
                                      No retries -- the caller decides.
  is_following / list_*            -> degrade to False / [] on failure, logged.
  follow_counts                    -> None only when the user does not exist;
                                      StorageFailure propagates.

FollowGraphManager keeps no in-process state. Correctness under concurrent
requests comes from the store's transactions, not from locks here.
"""

from __future__ import annotations

import logging
from typing import Protocol

from users.models import FollowCounts, FollowSummary, UserRecord
from users.store import StorageFailure

logger = logging.getLogger("followgraph.graph")


class AtomicSession(Protocol):
    """The unit-of-work surface the graph needs from a store session."""

    def __enter__(self) -> "AtomicSession": ...

    def __exit__(self, exc_type, exc, tb) -> None: ...

    def get(self, user_id: str) -> UserRecord | None: ...

    def add_to_set(self, user_id: str, field_name: str, value: str) -> None: ...

    def pull(self, user_id: str, field_name: str, value: str) -> None: ...

    def delete(self, user_id: str) -> None: ...

    def commit(self) -> None: ...

    def abort(self) -> None: ...


class GraphStore(Protocol):
    def start_session(self) -> AtomicSession: ...

    def get_by_id(self, user_id: str) -> UserRecord | None: ...

    def get_many(self, user_ids: list[str]) -> list[UserRecord]: ...


def _summarize(user: UserRecord) -> FollowSummary:
    return FollowSummary(id=user.id, full_name=user.full_name, avatar=user.avatar)


class FollowGraphManager:
    """Follow/unfollow and follow-graph reads over a transactional store.

    Usage:
        graph = FollowGraphManager(store)
        graph.follow(a, b)           # True
        graph.is_following(a, b)     # True
        graph.follow_counts(b)       # FollowCounts(follower_count=1, following_count=0)
    """

    def __init__(self, store: GraphStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def follow(self, actor_id: str, target_id: str) -> bool:
        """Make actor follow target. Following twice is the same as once.

        actor_id == target_id is not rejected here; the self edge is stored
        on both sides of the same document like any other edge.
        """
        if not actor_id or not target_id:
            return False
        try:
            with self._store.start_session() as session:
                session.add_to_set(target_id, "followers", actor_id)
                session.add_to_set(actor_id, "following", target_id)
                session.commit()
        except StorageFailure as exc:
            logger.error("Error following user %s by %s: %s", target_id, actor_id, exc)
            return False
        logger.info("User %s followed %s", actor_id, target_id)
        return True

    def unfollow(self, actor_id: str, target_id: str) -> bool:
        """Remove the actor -> target edge. Removing a missing edge still succeeds.

        A self-unfollow never reaches storage and always reports False.
        """
        if not actor_id or not target_id or actor_id == target_id:
            return False
        try:
            with self._store.start_session() as session:
                session.pull(target_id, "followers", actor_id)
                session.pull(actor_id, "following", target_id)
                session.commit()
        except StorageFailure as exc:
            logger.error("Error removing follow relationship between %s and %s: %s", actor_id, target_id, exc)
            return False
        logger.info("User %s unfollowed %s", actor_id, target_id)
        return True

    def remove_user(self, user_id: str) -> bool:
        """Delete a user document and detach every edge that touches it.

        The detach and the delete share one session, so other users never
        keep a follower or following entry pointing at a deleted account.
        Returns False if the user does not exist or the session fails.
        """
        if not user_id:
            return False
        try:
            with self._store.start_session() as session:
                user = session.get(user_id)
                if user is None:
                    return False
                for follower_id in user.followers:
                    if follower_id != user_id:
                        self._pull_if_present(session, follower_id, "following", user_id)
                for followee_id in user.following:
                    if followee_id != user_id:
                        self._pull_if_present(session, followee_id, "followers", user_id)
                session.delete(user_id)
                session.commit()
        except StorageFailure as exc:
            logger.error("Error removing user %s: %s", user_id, exc)
            return False
        logger.info("User %s removed from the follow graph", user_id)
        return True

    @staticmethod
    def _pull_if_present(session: AtomicSession, user_id: str, field_name: str, value: str) -> None:
        # An edge may already point at a user that no longer exists.
        if session.get(user_id) is not None:
            session.pull(user_id, field_name, value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_following(self, actor_id: str, target_id: str) -> bool:
        try:
            target = self._store.get_by_id(target_id)
        except StorageFailure as exc:
            logger.error("Error checking if user %s is following %s: %s", actor_id, target_id, exc)
            return False
        return target is not None and actor_id in target.followers

    def list_followers(self, user_id: str) -> list[FollowSummary]:
        return self._list_edges(user_id, "followers")

    def list_following(self, user_id: str) -> list[FollowSummary]:
        return self._list_edges(user_id, "following")

    def _list_edges(self, user_id: str, field_name: str) -> list[FollowSummary]:
        try:
            user = self._store.get_by_id(user_id)
            if user is None:
                return []
            ids = getattr(user, field_name)
            if not ids:
                return []
            return [_summarize(u) for u in self._store.get_many(ids)]
        except StorageFailure as exc:
            logger.error("Error fetching %s for user %s: %s", field_name, user_id, exc)
            return []

    def follow_counts(self, user_id: str) -> FollowCounts | None:
        """Return follower/following cardinalities, or None if the user does not exist."""
        user = self._store.get_by_id(user_id)
        if user is None:
            return None
        return FollowCounts(follower_count=len(user.followers), following_count=len(user.following))
