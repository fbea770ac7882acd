#!/usr/bin/env python3
"""
FollowGraph admin CLI -- bootstrap accounts and inspect the follow graph
without going through the HTTP API.

Usage:
  python main.py create-user admin@example.com "Site Admin" --role admin
  python main.py follow <actor-id> <target-id>
  python main.py unfollow <actor-id> <target-id>
  python main.py followers <user-id>
  python main.py following <user-id> --json
  python main.py counts <user-id>
  python main.py counts <user-id> --db-url sqlite:///other.db

Environment variables:
  SECRET_KEY / DEBUG   Required the same way as for the API (see core/config.py).
  DATABASE_URL         Store location; --db-url overrides it.
"""

import argparse
import getpass
import json
import sys
from dataclasses import asdict
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Role
from auth.tokens import hash_password
from core.config import get_settings
from users.graph import FollowGraphManager
from users.models import UserRecord
from users.store import StorageFailure, UserStore


def _open_store(db_url: Optional[str]) -> UserStore:
    settings = get_settings()
    url = db_url or settings.database_url
    if url:
        return UserStore(db_url=url, transaction_timeout=settings.transaction_timeout_seconds)
    return UserStore(transaction_timeout=settings.transaction_timeout_seconds)


def _cmd_create_user(store: UserStore, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1
    try:
        user_id = store.create_user(
            UserRecord(
                email=args.email,
                full_name=args.full_name,
                role=args.role,
                hashed_password=hash_password(password),
            )
        )
    except IntegrityError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    print(user_id)
    return 0


def _cmd_follow(store: UserStore, args: argparse.Namespace) -> int:
    graph = FollowGraphManager(store)
    if args.command == "follow":
        ok = graph.follow(args.actor_id, args.target_id)
    else:
        ok = graph.unfollow(args.actor_id, args.target_id)
    if not ok:
        print(f"  [!] {args.command} {args.actor_id} -> {args.target_id} failed.")
        return 1
    print("ok")
    return 0


def _cmd_list(store: UserStore, args: argparse.Namespace) -> int:
    graph = FollowGraphManager(store)
    if args.command == "followers":
        rows = graph.list_followers(args.user_id)
    else:
        rows = graph.list_following(args.user_id)
    if args.json:
        print(json.dumps([asdict(r) for r in rows], indent=2))
        return 0
    if not rows:
        print(f"  No {args.command} for {args.user_id}.")
        return 0
    for row in rows:
        print(f"  {row.id}  {row.full_name}")
    return 0


def _cmd_counts(store: UserStore, args: argparse.Namespace) -> int:
    graph = FollowGraphManager(store)
    try:
        counts = graph.follow_counts(args.user_id)
    except StorageFailure as e:
        print(f"  [!] Could not read follow counts: {e}")
        return 1
    if counts is None:
        print(f"  [!] User {args.user_id} not found.")
        return 1
    if args.json:
        print(json.dumps(asdict(counts)))
    else:
        print(f"  followers: {counts.follower_count}")
        print(f"  following: {counts.following_count}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="followgraph",
        description="Admin tooling for the FollowGraph user store.",
    )
    parser.add_argument(
        "--db-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL or users/followgraph.db)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account and print its id")
    create.add_argument("email")
    create.add_argument("full_name", metavar="FULL_NAME")
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.USER.value)
    create.add_argument("--password", default=None, help="Prompted for when omitted")
    create.set_defaults(handler=_cmd_create_user)

    for name in ("follow", "unfollow"):
        edge = sub.add_parser(name, help=f"{name.capitalize()} TARGET_ID as ACTOR_ID")
        edge.add_argument("actor_id", metavar="ACTOR_ID")
        edge.add_argument("target_id", metavar="TARGET_ID")
        edge.set_defaults(handler=_cmd_follow)

    for name in ("followers", "following"):
        listing = sub.add_parser(name, help=f"List {name} of USER_ID")
        listing.add_argument("user_id", metavar="USER_ID")
        listing.add_argument("--json", action="store_true", help="Output structured JSON")
        listing.set_defaults(handler=_cmd_list)

    counts = sub.add_parser("counts", help="Show follower/following counts of USER_ID")
    counts.add_argument("user_id", metavar="USER_ID")
    counts.add_argument("--json", action="store_true", help="Output structured JSON")
    counts.set_defaults(handler=_cmd_counts)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    store = _open_store(args.db_url)
    try:
        return args.handler(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
