"""SkillSwap core: reciprocal skill matching and 1:1 conversations."""

from .models import MatchCandidate, MatchOutcome, MatchStatus, Message, Profile
from .services import ConversationManager, MatchService, compute_matches

__all__ = [
    "Profile",
    "MatchCandidate",
    "MatchOutcome",
    "MatchStatus",
    "Message",
    "compute_matches",
    "MatchService",
    "ConversationManager",
]
