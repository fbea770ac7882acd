"""Tests for users/graph.py -- FollowGraphManager.

Against a real SQLite UserStore:
- dual consistency after follow, and after unfollow
- idempotent follow / unfollow, counts as set cardinalities
- missing target or actor aborts the whole follow
- self-follow is stored on both sides; self-unfollow is refused
- concurrent follows of one target lose no edge; reads never wait on an open session
- remove_user detaches every edge

Against FaultyStore (in-memory, fault injection):
- a failure on the second write or on commit leaves both documents untouched
- self-unfollow never opens a session
- reads degrade to empty / False; follow_counts propagates storage failure
"""

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from users.graph import FollowGraphManager
from users.models import FollowCounts, FollowSummary
from users.store import StorageFailure


@pytest.fixture
def graph(store) -> FollowGraphManager:
    return FollowGraphManager(store)


# ---------------------------------------------------------------------------
# Real store
# ---------------------------------------------------------------------------


def test_follow_sets_both_sides(store, graph, make_user):
    a, b = make_user("ada"), make_user("bob")
    assert graph.follow(a, b) is True
    assert a in store.get_by_id(b).followers
    assert b in store.get_by_id(a).following
    assert graph.is_following(a, b) is True
    assert graph.is_following(b, a) is False
    assert graph.list_followers(b) == [FollowSummary(id=a, full_name="Ada")]
    assert graph.list_following(a) == [FollowSummary(id=b, full_name="Bob")]


def test_follow_twice_same_as_once(graph, make_user):
    a, b = make_user("a"), make_user("b")
    graph.follow(a, b)
    once = graph.follow_counts(b)
    assert graph.follow(a, b) is True
    assert graph.follow_counts(b) == once == FollowCounts(follower_count=1, following_count=0)


def test_unfollow_clears_both_sides(store, graph, make_user):
    a, b = make_user("a"), make_user("b")
    graph.follow(a, b)
    assert graph.unfollow(a, b) is True
    assert store.get_by_id(b).followers == []
    assert store.get_by_id(a).following == []
    assert graph.is_following(a, b) is False


def test_unfollow_never_followed_succeeds(graph, make_user):
    a, b = make_user("a"), make_user("b")
    before = graph.follow_counts(b)
    assert graph.unfollow(a, b) is True
    assert graph.unfollow(a, b) is True
    assert graph.follow_counts(b) == before


def test_counts_track_membership(graph, make_user):
    a, b, c = make_user("a"), make_user("b"), make_user("c")
    graph.follow(a, b)
    graph.follow(c, b)
    assert graph.follow_counts(b).follower_count == 2
    graph.unfollow(a, b)
    assert graph.follow_counts(b).follower_count == 1
    assert graph.follow_counts(c) == FollowCounts(follower_count=0, following_count=1)


def test_follow_missing_target_changes_nothing(store, graph, make_user):
    a = make_user("a")
    assert graph.follow(a, "ghost") is False
    assert store.get_by_id(a).following == []


def test_follow_by_missing_actor_rolls_back_target(store, graph, make_user):
    """The target's followers write succeeds first, then the actor write fails."""
    b = make_user("b")
    assert graph.follow("ghost", b) is False
    assert store.get_by_id(b).followers == []


def test_empty_ids_rejected(graph, make_user):
    a = make_user("a")
    assert graph.follow("", a) is False
    assert graph.follow(a, "") is False
    assert graph.unfollow("", a) is False


def test_self_follow_is_stored_on_both_sides(store, graph, make_user):
    a = make_user("a")
    assert graph.follow(a, a) is True
    user = store.get_by_id(a)
    assert user.followers == [a]
    assert user.following == [a]
    assert graph.is_following(a, a) is True
    assert graph.follow_counts(a) == FollowCounts(follower_count=1, following_count=1)


def test_self_unfollow_refused(store, graph, make_user):
    a = make_user("a")
    graph.follow(a, a)
    assert graph.unfollow(a, a) is False
    assert store.get_by_id(a).followers == [a]


def test_list_skips_deleted_users_and_missing_owner(store, graph, make_user):
    a, b, c = make_user("a"), make_user("b"), make_user("c")
    graph.follow(a, c)
    graph.follow(b, c)
    # Delete b behind the graph's back, leaving a dangling id in c.followers.
    with store.start_session() as session:
        session.delete(b)
        session.commit()
    assert [s.id for s in graph.list_followers(c)] == [a]
    assert graph.list_followers("ghost") == []
    assert graph.list_following("ghost") == []


def test_follow_counts_missing_user(graph):
    assert graph.follow_counts("ghost") is None


def test_concurrent_follows_lose_no_edge(store, graph, make_user):
    target = make_user("target")
    followers = [make_user(f"f{i}") for i in range(8)]
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda uid: graph.follow(uid, target), followers))
    assert all(results)
    assert sorted(store.get_by_id(target).followers) == sorted(followers)
    for uid in followers:
        assert store.get_by_id(uid).following == [target]


def test_reads_do_not_wait_on_open_session(store, graph, make_user):
    """A read during another request's uncommitted write sees committed state at once."""
    a, b, c = make_user("a"), make_user("b"), make_user("c")
    assert graph.follow(a, b) is True

    with store.start_session() as session:
        session.add_to_set(c, "followers", a)
        start = time.monotonic()
        assert graph.is_following(a, b) is True
        assert [s.id for s in graph.list_followers(b)] == [a]
        assert graph.follow_counts(b) == FollowCounts(follower_count=1, following_count=0)
        # The open session's write is not visible yet.
        assert graph.follow_counts(c) == FollowCounts(follower_count=0, following_count=0)
        assert time.monotonic() - start < 2.0
        session.commit()

    assert graph.follow_counts(c).follower_count == 1


def test_remove_user_detaches_edges(store, graph, make_user):
    a, b, c = make_user("a"), make_user("b"), make_user("c")
    graph.follow(a, b)
    graph.follow(b, c)
    graph.follow(c, b)
    assert graph.remove_user(b) is True
    assert store.get_by_id(b) is None
    assert store.get_by_id(a).following == []
    assert store.get_by_id(c).followers == []
    assert store.get_by_id(c).following == []
    assert graph.remove_user(b) is False


# ---------------------------------------------------------------------------
# Fault injection
# ---------------------------------------------------------------------------


def test_failure_on_second_write_leaves_both_sides(fake_store, fake_graph):
    a, b = fake_store.add("a"), fake_store.add("b")
    fake_store.fail("add_to_set", after=1)
    assert fake_graph.follow(a, b) is False
    assert fake_store.docs[b].followers == []
    assert fake_store.docs[a].following == []
    assert fake_store.aborts == 1
    assert fake_store.commits == 0


def test_failure_on_commit_leaves_both_sides(fake_store, fake_graph):
    a, b = fake_store.add("a"), fake_store.add("b")
    fake_store.fail("commit")
    assert fake_graph.follow(a, b) is False
    assert fake_store.docs[b].followers == []
    assert fake_store.docs[a].following == []


def test_unfollow_failure_keeps_edge(fake_store, fake_graph):
    a, b = fake_store.add("a"), fake_store.add("b")
    assert fake_graph.follow(a, b) is True
    fake_store.fail("pull", after=1)
    assert fake_graph.unfollow(a, b) is False
    assert fake_store.docs[b].followers == [a]
    assert fake_store.docs[a].following == [b]


def test_remove_user_failure_keeps_everything(fake_store, fake_graph):
    a, b = fake_store.add("a"), fake_store.add("b")
    fake_graph.follow(a, b)
    fake_store.fail("delete")
    assert fake_graph.remove_user(b) is False
    assert b in fake_store.docs
    assert fake_store.docs[a].following == [b]


def test_self_unfollow_opens_no_session(fake_store, fake_graph):
    a = fake_store.add("a")
    assert fake_graph.unfollow(a, a) is False
    assert fake_store.sessions_started == 0


def test_reads_degrade_on_storage_failure(fake_store, fake_graph):
    a, b = fake_store.add("a"), fake_store.add("b")
    fake_graph.follow(a, b)
    fake_store.fail("read")
    assert fake_graph.is_following(a, b) is False
    assert fake_graph.list_followers(b) == []
    assert fake_graph.list_following(a) == []


def test_follow_counts_propagates_storage_failure(fake_store, fake_graph):
    a = fake_store.add("a")
    fake_store.fail("read")
    with pytest.raises(StorageFailure):
        fake_graph.follow_counts(a)
