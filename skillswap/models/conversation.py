"""Conversation data models.

Pure data structures for 1:1 conversations and their messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from datetime import datetime
from typing import Any

from .profile import Profile
from .timestamps import format_timestamp, parse_timestamp

CONVERSATIONS = "conversations"
NO_MESSAGES_YET = "No messages yet"


def messages_collection(conversation_id: str) -> str:
    """Collection path holding the messages of one conversation."""
    return f"{CONVERSATIONS}/{conversation_id}/messages"


@dataclass
class Message:
    """A single immutable chat message."""
    id: str
    conversation_id: str
    text: str
    sender_id: str
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "text": self.text,
            "senderId": self.sender_id,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], conversation_id: str = "") -> "Message":
        """Create from a stored record."""
        return cls(
            id=str(data.get("id", "")),
            conversation_id=data.get("conversationId") or conversation_id,
            text=data.get("text", ""),
            sender_id=data.get("senderId", ""),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass
class Conversation:
    """A channel scoped to exactly two participants."""
    id: str
    participants: list[str] = dataclass_field(default_factory=list)
    created_at: datetime | None = None
    last_message: dict[str, Any] | None = None

    def includes(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str | None:
        """The participant that is not `user_id`, or None."""
        for participant in self.participants:
            if participant != user_id:
                return participant
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "participants": list(self.participants),
            "createdAt": format_timestamp(self.created_at),
            "lastMessage": self.last_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        """Create from a stored record."""
        last = data.get("lastMessage")
        if isinstance(last, dict) and isinstance(last.get("timestamp"), datetime):
            last = {**last, "timestamp": format_timestamp(last["timestamp"])}
        return cls(
            id=str(data.get("id", "")),
            participants=list(data.get("participants") or []),
            created_at=parse_timestamp(data.get("createdAt")),
            last_message=last if isinstance(last, dict) else None,
        )


@dataclass
class ConversationSummary:
    """A conversation with the other participant's profile attached."""
    conversation: Conversation
    other_user: Profile

    @property
    def id(self) -> str:
        return self.conversation.id

    @property
    def preview(self) -> str:
        last = self.conversation.last_message or {}
        return last.get("text") or NO_MESSAGES_YET

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "participants": list(self.conversation.participants),
            "createdAt": format_timestamp(self.conversation.created_at),
            "preview": self.preview,
            "otherUser": {
                "id": self.other_user.id,
                "displayName": self.other_user.display_name or "Anonymous",
                "photoURL": self.other_user.photo_url,
            },
        }


@dataclass
class ConversationListing:
    """Conversations of a user plus the active selection."""
    conversations: list[ConversationSummary] = dataclass_field(default_factory=list)
    active_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "conversations": [c.to_dict() for c in self.conversations],
            "active_id": self.active_id,
        }
