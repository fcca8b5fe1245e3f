"""Match data models.

Pure data structures for matching results. Candidates are derived on every
request and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any

from .profile import Profile


class MatchStatus(Enum):
    """Outcome of a matching request."""
    OK = "ok"
    INCOMPLETE_PROFILE = "incomplete_profile"
    PROFILE_NOT_FOUND = "profile_not_found"
    LOAD_FAILED = "load_failed"


@dataclass
class MatchCandidate:
    """A profile with a reciprocal skill overlap with the viewer."""
    profile: Profile
    can_teach_viewer: set[str] = dataclass_field(default_factory=set)
    can_learn_from_viewer: set[str] = dataclass_field(default_factory=set)

    @property
    def score(self) -> int:
        return len(self.can_teach_viewer) + len(self.can_learn_from_viewer)

    @property
    def location(self) -> str:
        return self.profile.display_location

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.profile.id,
            "display_name": self.profile.display_name,
            "photo_url": self.profile.photo_url,
            "location": self.location,
            "score": self.score,
            "can_teach_viewer": sorted(self.can_teach_viewer),
            "can_learn_from_viewer": sorted(self.can_learn_from_viewer),
        }


@dataclass
class MatchOutcome:
    """Result of a matching request.

    INCOMPLETE_PROFILE and LOAD_FAILED need different corrective action from
    the user (edit skills vs. retry), so they are separate statuses.
    """
    status: MatchStatus
    candidates: list[MatchCandidate] = dataclass_field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is MatchStatus.OK

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "matches": [c.to_dict() for c in self.candidates],
            "total_found": len(self.candidates),
            "error": self.error,
        }
