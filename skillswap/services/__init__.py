"""Service layer - Business logic modules.

Each service takes its collaborators (store, identity) as constructor
arguments and can be developed/tested independently with in-memory fakes.
"""

from .document_store import (
    DocumentStore,
    Filter,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    StoreError,
    Subscription,
)
from .identity import HeaderIdentityProvider, IdentityProvider, StaticIdentityProvider
from .matcher import MatchService, compute_matches
from .profile_service import ProfileService, ProfileServiceError
from .conversation_service import (
    ConversationManager,
    ConversationNotFoundError,
    ConversationServiceError,
    MessageFeedError,
    MessageWatch,
    ParticipantError,
    SendResult,
    SendStatus,
)

__all__ = [
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "StoreError",
    "Subscription",
    "IdentityProvider",
    "HeaderIdentityProvider",
    "StaticIdentityProvider",
    "MatchService",
    "compute_matches",
    "ProfileService",
    "ProfileServiceError",
    "ConversationManager",
    "ConversationNotFoundError",
    "ConversationServiceError",
    "MessageFeedError",
    "MessageWatch",
    "ParticipantError",
    "SendResult",
    "SendStatus",
]
