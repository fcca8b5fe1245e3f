"""Profile data models.

Pure data structures with no business logic.
These can be safely used by any module.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from datetime import datetime
from typing import Any, Iterable

from .timestamps import format_timestamp, parse_timestamp

DEFAULT_CREDITS = 10
LOCATION_NOT_SPECIFIED = "Not specified"

# Fixed catalog of skills users pick from when editing their profile
SKILL_CATALOG = (
    "Web Development", "Graphic Design", "Digital Marketing",
    "Photography", "Video Editing", "Content Writing",
    "Data Analysis", "UI/UX Design", "Public Speaking",
    "Music Production", "Language Teaching", "Cooking",
    "Hindi", "English", "German", "Cricket", "Badminton",
)


def parse_credits(value: Any) -> int:
    """Read a stored credit balance; unreadable values fall back to DEFAULT_CREDITS."""
    if value is None or isinstance(value, bool):
        return DEFAULT_CREDITS
    try:
        return int(value)
    except (TypeError, ValueError):
        return DEFAULT_CREDITS


def skill_set(values: Iterable[str] | None) -> set[str]:
    """Build a skill set; names are kept exactly as given (case-sensitive)."""
    if not values:
        return set()
    return {v for v in values if isinstance(v, str) and v}


@dataclass
class Profile:
    """A user's public record of identity and skill sets."""
    id: str
    display_name: str = ""
    email: str | None = None
    photo_url: str | None = None
    location: str | None = None
    bio: str | None = None
    skills_to_teach: set[str] = dataclass_field(default_factory=set)
    skills_to_learn: set[str] = dataclass_field(default_factory=set)
    credits: int = DEFAULT_CREDITS
    created_at: datetime | None = None
    last_updated: datetime | None = None

    @property
    def display_location(self) -> str:
        return self.location or LOCATION_NOT_SPECIFIED

    @property
    def has_skills(self) -> bool:
        """True when at least one of the skill sets is non-empty."""
        return bool(self.skills_to_teach or self.skills_to_learn)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored record shape."""
        return {
            "uid": self.id,
            "displayName": self.display_name,
            "email": self.email,
            "photoURL": self.photo_url,
            "location": self.location,
            "bio": self.bio,
            "skillsToTeach": sorted(self.skills_to_teach),
            "skillsToLearn": sorted(self.skills_to_learn),
            "credits": self.credits,
            "createdAt": format_timestamp(self.created_at),
            "lastUpdated": format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Create from a stored record. The document id wins over the uid field."""
        return cls(
            id=str(data.get("id") or data.get("uid") or ""),
            display_name=data.get("displayName") or "",
            email=data.get("email"),
            photo_url=data.get("photoURL"),
            location=data.get("location"),
            bio=data.get("bio"),
            skills_to_teach=skill_set(data.get("skillsToTeach")),
            skills_to_learn=skill_set(data.get("skillsToLearn")),
            credits=parse_credits(data.get("credits")),
            created_at=parse_timestamp(data.get("createdAt")),
            last_updated=parse_timestamp(data.get("lastUpdated")),
        )
