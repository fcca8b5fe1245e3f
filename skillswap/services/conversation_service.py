"""Conversation Service - 1:1 conversations between matched users.

This module handles:
- Resolving a pair of users to their single conversation (creating it lazily)
- Live, ordered message timelines backed by the store's change feed
- Sending messages
- Listing a user's conversations with the other participant's profile

Interface Contract:
- resolve_or_create(a, b) -> conversation_id
- watch_messages(conversation_id) -> MessageWatch (iterable of full snapshots)
- send(conversation_id, sender_id, text) -> SendResult
- list_conversations(user_id, active_id) -> ConversationListing
- Store failures and contract violations raise ConversationServiceError

Known limitation: resolve_or_create() finds then creates without a
uniqueness constraint, so two concurrent first contacts between the same
pair can create two conversations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from queue import Empty, Queue
from threading import Lock
from typing import Any

from skillswap.models import (
    Conversation,
    ConversationListing,
    ConversationSummary,
    Message,
    Profile,
    messages_collection,
)
from skillswap.models.conversation import CONVERSATIONS
from skillswap.services.document_store import DocumentStore, Filter, StoreError, Subscription
from skillswap.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

USERS = "users"

_CLOSED = object()


class ConversationServiceError(Exception):
    """Raised when a conversation operation fails."""
    pass


class ConversationNotFoundError(ConversationServiceError):
    """Raised when a conversation id does not exist."""
    pass


class ParticipantError(ConversationServiceError):
    """Raised when a user is not a valid participant for the operation."""
    pass


class MessageFeedError(ConversationServiceError):
    """Raised from a MessageWatch whose change feed failed."""
    pass


class SendStatus(Enum):
    """Outcome of a send request."""
    SENT = "sent"
    REJECTED_EMPTY = "rejected_empty"


@dataclass
class SendResult:
    """Result of a send request."""
    status: SendStatus
    message_id: str | None = None
    timestamp: datetime | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SendStatus.SENT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "message_id": self.message_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "error": self.error,
        }


class MessageWatch:
    """Live, ordered message timeline of one conversation.

    Iterating yields the full ordered list of messages each time the
    conversation changes, starting with the current state. Iteration ends
    after cancel(); a feed failure ends it by raising MessageFeedError.
    `latest` keeps the last snapshot handed out, also after a failure. A
    snapshot not yet read is replaced by a newer one, so a slow reader
    skips straight to the current state.

    Usage:
        with manager.watch_messages(conversation_id) as watch:
            for messages in watch:
                render(messages)
    """

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        self.latest: list[Message] = []
        self.error: MessageFeedError | None = None
        self._queue: Queue = Queue()
        self._subscription: Subscription | None = None
        self._cancelled = False
        self._lock = Lock()

    @property
    def active(self) -> bool:
        return not self._cancelled and self.error is None

    def cancel(self) -> None:
        """Stop delivery and release the feed. Safe to call repeatedly."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            subscription = self._subscription
        if subscription is not None:
            subscription.cancel()
        self._queue.put(_CLOSED)
        logger.debug("[watch] cancelled conversation=%s", self.conversation_id)

    def next_snapshot(self, timeout: float | None = None) -> list[Message] | None:
        """Wait for the next snapshot.

        Returns:
            The snapshot, or None when `timeout` elapsed first

        Raises:
            StopIteration: After cancel()
            MessageFeedError: After a feed failure
        """
        if self._cancelled:
            raise StopIteration
        try:
            item = self._queue.get(timeout=timeout)
        except Empty:
            return None
        if item is _CLOSED or self._cancelled:
            self._queue.put(_CLOSED)
            if self.error is not None:
                raise self.error
            raise StopIteration
        self.latest = item
        return item

    def __iter__(self) -> "MessageWatch":
        return self

    def __next__(self) -> list[Message]:
        return self.next_snapshot()

    def __enter__(self) -> "MessageWatch":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()

    def _attach(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscription = subscription
            cancelled = self._cancelled
        if cancelled:
            subscription.cancel()

    def _on_snapshot(self, records: list[dict[str, Any]]) -> None:
        snapshot = [Message.from_dict(r, self.conversation_id) for r in records]
        with self._lock:
            if self._cancelled or self.error is not None:
                return
            # each snapshot is the full state: only the newest pending one is kept
            while True:
                try:
                    self._queue.get_nowait()
                except Empty:
                    break
            self._queue.put(snapshot)

    def _on_error(self, exc: Exception) -> None:
        logger.error("[watch] feed failed conversation=%s error=%s", self.conversation_id, exc)
        with self._lock:
            self.error = MessageFeedError(f"Failed to load messages: {exc}")
            subscription = self._subscription
        if subscription is not None:
            subscription.cancel()
        self._queue.put(_CLOSED)


class ConversationManager:
    """Service for conversation identity, timelines and sending."""

    def __init__(self, store: DocumentStore, identity: IdentityProvider | None = None):
        """Initialize with store and optional identity dependency.

        Args:
            store: Document store with change-feed support
            identity: Current user for start_conversation()
        """
        self.store = store
        self.identity = identity

    def resolve_or_create(self, a: str, b: str) -> str:
        """Return the id of the conversation between `a` and `b`, creating it if needed.

        Args:
            a: One participant (the query side)
            b: The other participant

        Returns:
            str: Conversation id; the same id for (a, b) and (b, a)

        Raises:
            ParticipantError: On a missing participant or a self-conversation
            ConversationServiceError: On a store failure
        """
        if not a or not b:
            raise ParticipantError("Both participants are required")
        if a == b:
            raise ParticipantError("A conversation needs two different participants")

        try:
            existing = self.store.get_all(CONVERSATIONS, [Filter("participants", "array_contains", a)])
            for record in existing:
                if b in (record.get("participants") or []):
                    logger.debug("[conversation] resolved id=%s", record["id"])
                    return record["id"]

            conversation_id, _ = self.store.append(
                CONVERSATIONS,
                {"participants": [a, b]},
                timestamp_field="createdAt",
            )
        except StoreError as e:
            raise ConversationServiceError(f"Failed to start conversation: {e}") from e

        logger.info("[conversation] created id=%s participants=%s", conversation_id, [a, b])
        return conversation_id

    def start_conversation(self, other_user_id: str) -> str:
        """resolve_or_create() between the signed-in user and `other_user_id`."""
        user_id = self.identity.current_user_id() if self.identity is not None else None
        if not user_id:
            raise ConversationServiceError("Not signed in")
        return self.resolve_or_create(user_id, other_user_id)

    def get_conversation(self, conversation_id: str) -> Conversation:
        """Load one conversation.

        Raises:
            ConversationNotFoundError: If the id does not exist
        """
        try:
            record = self.store.get(CONVERSATIONS, conversation_id)
        except StoreError as e:
            raise ConversationServiceError(f"Failed to load conversation: {e}") from e
        if record is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        return Conversation.from_dict(record)

    def watch_messages(self, conversation_id: str) -> MessageWatch:
        """Subscribe to the ordered message timeline of a conversation.

        The caller owns the returned watch and must cancel() it (or use it
        as a context manager). Watching again creates a new subscription.
        """
        self.get_conversation(conversation_id)

        watch = MessageWatch(conversation_id)
        try:
            subscription = self.store.subscribe(
                messages_collection(conversation_id),
                watch._on_snapshot,
                watch._on_error,
                order_by="timestamp",
            )
        except StoreError as e:
            raise ConversationServiceError(f"Failed to load messages: {e}") from e
        watch._attach(subscription)
        logger.debug("[watch] started conversation=%s", conversation_id)
        return watch

    def send(self, conversation_id: str, sender_id: str, text: str) -> SendResult:
        """Append a message to a conversation.

        Whitespace-only text is rejected without writing anything. The
        message becomes visible through watch_messages(), also for the sender.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
            ParticipantError: If the sender is not a participant
            ConversationServiceError: If the store fails
        """
        if not text or not text.strip():
            return SendResult(status=SendStatus.REJECTED_EMPTY, error="Message text is empty")

        conversation = self.get_conversation(conversation_id)
        if not conversation.includes(sender_id):
            raise ParticipantError(f"{sender_id} is not a participant of {conversation_id}")

        try:
            message_id, timestamp = self.store.append(
                messages_collection(conversation_id),
                {"conversationId": conversation_id, "text": text, "senderId": sender_id},
            )
        except StoreError as e:
            raise ConversationServiceError(f"Failed to send message: {e}") from e

        try:
            self.store.put(
                CONVERSATIONS,
                conversation_id,
                {"lastMessage": {"text": text, "senderId": sender_id, "timestamp": timestamp}},
                merge=True,
            )
        except StoreError as e:
            logger.warning("[conversation] preview update failed id=%s error=%s", conversation_id, e)

        logger.info("[message] sent conversation=%s sender=%s id=%s", conversation_id, sender_id, message_id)
        return SendResult(status=SendStatus.SENT, message_id=message_id, timestamp=timestamp)

    def list_conversations(self, user_id: str, active_id: str | None = None) -> ConversationListing:
        """List a user's conversations with the other participant's profile.

        Conversations whose other participant has no resolvable profile are
        left out. When `active_id` is not given the first listed
        conversation becomes active.
        """
        try:
            records = self.store.get_all(CONVERSATIONS, [Filter("participants", "array_contains", user_id)])
            summaries = []
            for record in records:
                conversation = Conversation.from_dict(record)
                other_id = conversation.other_participant(user_id)
                other = self.store.get(USERS, other_id) if other_id else None
                if other is None:
                    logger.debug("[conversation] dropped id=%s other=%s", conversation.id, other_id)
                    continue
                summaries.append(ConversationSummary(conversation, Profile.from_dict(other)))
        except StoreError as e:
            raise ConversationServiceError(f"Failed to load conversations: {e}") from e

        if active_id is None and summaries:
            active_id = summaries[0].id
        return ConversationListing(conversations=summaries, active_id=active_id)
