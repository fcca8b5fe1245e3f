"""Matcher - Reciprocal skill matching.

This module handles:
- Scoring every other user by reciprocal skill overlap with a viewer
- Ranking candidates (score descending, input order on ties)
- Loading the viewer and population snapshot for a matching request

Interface Contract:
- compute_matches(viewer, population) -> MatchOutcome   (pure, never raises)
- MatchService.find_matches(user_id) -> MatchOutcome     (store failures -> LOAD_FAILED)
"""

from __future__ import annotations

import logging
from typing import Iterable

from skillswap.models import MatchCandidate, MatchOutcome, MatchStatus, Profile
from skillswap.services.document_store import DocumentStore, Filter, StoreError
from skillswap.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

USERS = "users"
LOAD_FAILED_MESSAGE = "Failed to load matches. Please try again."


def score_candidate(viewer: Profile, candidate: Profile) -> MatchCandidate:
    """Intersect the candidate's skills with the viewer's, by exact name."""
    return MatchCandidate(
        profile=candidate,
        can_teach_viewer=candidate.skills_to_teach & viewer.skills_to_learn,
        can_learn_from_viewer=candidate.skills_to_learn & viewer.skills_to_teach,
    )


def compute_matches(viewer: Profile, population: Iterable[Profile]) -> MatchOutcome:
    """Rank the population by reciprocal skill overlap with `viewer`.

    Args:
        viewer: The profile matches are computed for
        population: Snapshot of other users; the viewer is skipped if present

    Returns:
        MatchOutcome: INCOMPLETE_PROFILE when the viewer lists no skills at
        all, otherwise OK with candidates sorted by score descending. Equal
        scores keep their population order. Score 0 candidates are dropped.
    """
    if not viewer.has_skills:
        return MatchOutcome(status=MatchStatus.INCOMPLETE_PROFILE)

    candidates = []
    for profile in population:
        if profile.id == viewer.id:
            continue
        candidate = score_candidate(viewer, profile)
        if candidate.score > 0:
            candidates.append(candidate)

    candidates.sort(key=lambda c: c.score, reverse=True)
    return MatchOutcome(status=MatchStatus.OK, candidates=candidates)


class MatchService:
    """Loads matching inputs from the store and runs the matcher."""

    def __init__(self, store: DocumentStore, identity: IdentityProvider | None = None):
        """Initialize with store and optional identity dependency.

        Args:
            store: Document store holding the users collection
            identity: Used when find_matches() is called without a user id
        """
        self.store = store
        self.identity = identity

    def find_matches(self, user_id: str | None = None) -> MatchOutcome:
        """Compute matches for a user from a fresh population snapshot.

        The population is read in one bulk query; later changes are picked
        up only when the caller asks again.
        """
        if user_id is None and self.identity is not None:
            user_id = self.identity.current_user_id()
        if not user_id:
            return MatchOutcome(status=MatchStatus.PROFILE_NOT_FOUND, error="Not signed in")

        try:
            record = self.store.get(USERS, user_id)
            if record is None:
                return MatchOutcome(status=MatchStatus.PROFILE_NOT_FOUND, error="Profile not found")
            viewer = Profile.from_dict(record)
            if not viewer.has_skills:
                return MatchOutcome(status=MatchStatus.INCOMPLETE_PROFILE)
            records = self.store.get_all(USERS, [Filter("uid", "!=", user_id)])
        except StoreError as e:
            logger.warning("[matches] load failed user=%s error=%s", user_id, e)
            return MatchOutcome(status=MatchStatus.LOAD_FAILED, error=LOAD_FAILED_MESSAGE)

        population = []
        for r in records:
            try:
                population.append(Profile.from_dict(r))
            except (TypeError, ValueError, AttributeError) as e:
                logger.debug("[matches] skipped record id=%s error=%s", r.get("id"), e)

        outcome = compute_matches(viewer, population)
        logger.info(
            "[matches] user=%s population=%d matches=%d",
            user_id, len(records), len(outcome.candidates),
        )
        return outcome
