"""
users/models.py -- Domain dataclasses for user documents and follow projections.

These are pure data containers with zero logic. Edge maintenance lives in
users/graph.py; persistence lives in users/store.py.

followers / following are the two denormalized halves of one directed edge
set: B.followers contains A exactly when A.following contains B. They are
kept as duplicate-free lists in insertion order.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SocialLinks:
    """Optional profile links. Every link defaults to None (not set)."""

    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    website: Optional[str] = None


@dataclass
class Preferences:
    """Account preferences with their defaults for a freshly created user."""

    email_notifications: bool = True
    marketing_updates: bool = False
    two_factor_auth: bool = False


@dataclass
class UserRecord:
    """A stored user document.

    id is None before the record is written to the database; the store
    assigns an opaque uuid4 hex string on insert.
    """

    email: str
    full_name: str
    role: str = "user"  # "user" | "admin"
    id: Optional[str] = None
    hashed_password: Optional[str] = None
    avatar: Optional[str] = None
    bio: str = ""
    social_links: SocialLinks = field(default_factory=SocialLinks)
    preferences: Preferences = field(default_factory=Preferences)
    followers: list[str] = field(default_factory=list)
    following: list[str] = field(default_factory=list)
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass(frozen=True)
class FollowSummary:
    """Lightweight projection of a user shown in follower/following lists."""

    id: str
    full_name: str
    avatar: Optional[str] = None


@dataclass(frozen=True)
class FollowCounts:
    follower_count: int
    following_count: int
