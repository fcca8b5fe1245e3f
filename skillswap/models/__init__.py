"""Data models - Pure data structures with no business logic."""

from .profile import (
    DEFAULT_CREDITS,
    LOCATION_NOT_SPECIFIED,
    SKILL_CATALOG,
    Profile,
)
from .match import MatchCandidate, MatchOutcome, MatchStatus
from .conversation import (
    Conversation,
    ConversationListing,
    ConversationSummary,
    Message,
    messages_collection,
)

__all__ = [
    "DEFAULT_CREDITS",
    "LOCATION_NOT_SPECIFIED",
    "SKILL_CATALOG",
    "Profile",
    "MatchCandidate",
    "MatchOutcome",
    "MatchStatus",
    "Conversation",
    "ConversationListing",
    "ConversationSummary",
    "Message",
    "messages_collection",
]
