from __future__ import annotations

import argparse
import logging
from pathlib import Path

from config import DATA_DIR, LOG_LEVEL
from skillswap.models import MatchStatus
from skillswap.services import (
    ConversationManager,
    ConversationServiceError,
    JsonFileDocumentStore,
    MatchService,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Inspect SkillSwap matches and conversations stored under the data directory."
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DATA_DIR,
        help="Data directory holding the JSON document store (default: $DATA_DIR or ./data)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    matches = subparsers.add_parser("matches", help="Rank reciprocal skill matches for a user")
    matches.add_argument("user_id", help="User to compute matches for")
    matches.add_argument("--limit", type=int, default=None, help="Show at most this many matches")

    conversations = subparsers.add_parser("conversations", help="List a user's conversations")
    conversations.add_argument("user_id", help="User whose conversations are listed")

    return parser.parse_args(argv)


def print_matches(service: MatchService, user_id: str, limit: int | None) -> int:
    outcome = service.find_matches(user_id)
    if outcome.status is MatchStatus.INCOMPLETE_PROFILE:
        print("Your profile has no skills yet. Add skills to teach or learn to find matches.")
        return 0
    if not outcome.ok:
        print(f"Error: {outcome.error}")
        return 1
    if not outcome.candidates:
        print("No matches found yet. Update your skills to find potential exchanges!")
        return 0

    for rank, candidate in enumerate(outcome.candidates[:limit], start=1):
        name = candidate.profile.display_name or "Anonymous User"
        print(f"{rank:>3}. {name} ({candidate.location}) score={candidate.score}")
        if candidate.can_teach_viewer:
            print(f"     can teach you: {', '.join(sorted(candidate.can_teach_viewer))}")
        if candidate.can_learn_from_viewer:
            print(f"     wants to learn from you: {', '.join(sorted(candidate.can_learn_from_viewer))}")
    return 0


def print_conversations(manager: ConversationManager, user_id: str) -> int:
    try:
        listing = manager.list_conversations(user_id)
    except ConversationServiceError as e:
        print(f"Error: {e}")
        return 1
    if not listing.conversations:
        print("No conversations yet. Start by messaging a skill match!")
        return 0

    for summary in listing.conversations:
        marker = "*" if summary.id == listing.active_id else " "
        name = summary.other_user.display_name or "Anonymous"
        print(f"{marker} {summary.id}  {name}: {summary.preview}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL)

    store = JsonFileDocumentStore(args.data_dir / "store")
    if args.command == "matches":
        return print_matches(MatchService(store), args.user_id, args.limit)
    return print_conversations(ConversationManager(store), args.user_id)


if __name__ == "__main__":
    raise SystemExit(main())
