"""Profile Service - User profile lifecycle.

This module handles:
- Creating the profile record at signup
- Owner-only merge updates of profile fields
- Adding/removing skills to teach and to learn

Interface Contract:
- create_profile(user_id, display_name, email) -> Profile
- get_profile(user_id) -> Profile | None
- update_profile(user_id, updates) -> Profile
- add_skill(user_id, skill, kind) / remove_skill(user_id, skill, kind) -> Profile
- All methods raise ProfileServiceError on failure
"""

from __future__ import annotations

import logging
from typing import Any

from config import ENFORCE_SKILL_CATALOG
from skillswap.models import DEFAULT_CREDITS, SKILL_CATALOG, Profile
from skillswap.models.profile import skill_set
from skillswap.models.timestamps import format_timestamp, utc_now
from skillswap.services.document_store import DocumentStore, StoreError
from skillswap.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

USERS = "users"

# Fields an owner may change through update_profile()
EDITABLE_FIELDS = ("displayName", "photoURL", "location", "bio", "skillsToTeach", "skillsToLearn")

SKILL_FIELDS = {"teach": "skillsToTeach", "learn": "skillsToLearn"}


class ProfileServiceError(Exception):
    """Raised when a profile operation fails."""
    pass


class ProfileService:
    """Service for profile creation and editing."""

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider | None = None,
        *,
        enforce_catalog: bool = ENFORCE_SKILL_CATALOG,
    ):
        """Initialize with store and identity dependencies.

        Args:
            store: Document store holding the users collection
            identity: When given, updates are restricted to the signed-in owner
            enforce_catalog: Only accept skills from SKILL_CATALOG
        """
        self.store = store
        self.identity = identity
        self.enforce_catalog = enforce_catalog

    def create_profile(self, user_id: str, display_name: str, email: str | None = None) -> Profile:
        """Create the signup record: no skills yet, starting credits.

        Raises:
            ProfileServiceError: If the profile already exists or the store fails
        """
        if not user_id:
            raise ProfileServiceError("User id is required")
        self._require_owner(user_id)

        profile = Profile(
            id=user_id,
            display_name=display_name.strip(),
            email=email,
            credits=DEFAULT_CREDITS,
            created_at=utc_now(),
        )
        try:
            if self.store.get(USERS, user_id) is not None:
                raise ProfileServiceError("Profile already exists")
            self.store.put(USERS, user_id, profile.to_dict(), merge=False)
        except StoreError as e:
            raise ProfileServiceError(f"Failed to create profile: {e}") from e

        logger.info("[profile] created user=%s", user_id)
        return profile

    def get_profile(self, user_id: str) -> Profile | None:
        """Point read of a profile; None when it does not exist."""
        try:
            record = self.store.get(USERS, user_id)
        except StoreError as e:
            raise ProfileServiceError(f"Failed to load profile: {e}") from e
        return Profile.from_dict(record) if record is not None else None

    def update_profile(self, user_id: str, updates: dict[str, Any]) -> Profile:
        """Merge `updates` into the owner's profile.

        Args:
            user_id: Profile owner
            updates: Subset of EDITABLE_FIELDS in stored record shape

        Returns:
            Profile: The profile after the update

        Raises:
            ProfileServiceError: On unknown fields, overlapping skill sets,
                a non-owner caller, a missing profile or a store failure
        """
        self._require_owner(user_id)

        unknown = sorted(set(updates) - set(EDITABLE_FIELDS))
        if unknown:
            raise ProfileServiceError(f"Fields cannot be edited: {', '.join(unknown)}")

        record: dict[str, Any] = {}
        for key, value in updates.items():
            if key in SKILL_FIELDS.values():
                skills = skill_set(value)
                self._check_catalog(skills)
                record[key] = sorted(skills)
            elif key == "displayName":
                record[key] = (value or "").strip()
            else:
                record[key] = value or None

        current = self._load(user_id)
        teach = set(record.get("skillsToTeach", current.skills_to_teach))
        learn = set(record.get("skillsToLearn", current.skills_to_learn))
        overlap = teach & learn
        if overlap:
            raise ProfileServiceError(
                f"Skills cannot be both taught and learned: {', '.join(sorted(overlap))}"
            )

        record["lastUpdated"] = format_timestamp(utc_now())
        self._write(user_id, record)
        logger.info("[profile] updated user=%s fields=%s", user_id, sorted(updates))
        return self._load(user_id)

    def add_skill(self, user_id: str, skill: str, kind: str) -> Profile:
        """Add one skill to the teach or learn set."""
        field_name = self._skill_field(kind)
        skill = (skill or "").strip()
        if not skill:
            raise ProfileServiceError("Please select a skill to add")
        self._check_catalog({skill})

        profile = self._load(user_id)
        if skill in profile.skills_to_teach or skill in profile.skills_to_learn:
            raise ProfileServiceError("This skill is already added")

        current = profile.skills_to_teach if kind == "teach" else profile.skills_to_learn
        return self.update_profile(user_id, {field_name: sorted(current | {skill})})

    def remove_skill(self, user_id: str, skill: str, kind: str) -> Profile:
        """Remove one skill from the teach or learn set; missing skills are ignored."""
        field_name = self._skill_field(kind)
        profile = self._load(user_id)
        current = profile.skills_to_teach if kind == "teach" else profile.skills_to_learn
        return self.update_profile(user_id, {field_name: sorted(current - {skill})})

    def _require_owner(self, user_id: str) -> None:
        if self.identity is None:
            return
        if self.identity.current_user_id() != user_id:
            raise ProfileServiceError("Only the profile owner can change it")

    def _check_catalog(self, skills: set[str]) -> None:
        if not self.enforce_catalog:
            return
        unknown = sorted(skills - set(SKILL_CATALOG))
        if unknown:
            raise ProfileServiceError(f"Unknown skills: {', '.join(unknown)}")

    def _skill_field(self, kind: str) -> str:
        try:
            return SKILL_FIELDS[kind]
        except KeyError:
            raise ProfileServiceError(f"Skill kind must be 'teach' or 'learn', got {kind!r}") from None

    def _load(self, user_id: str) -> Profile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise ProfileServiceError("Profile not found")
        return profile

    def _write(self, user_id: str, record: dict[str, Any]) -> None:
        try:
            self.store.put(USERS, user_id, record, merge=True)
        except StoreError as e:
            raise ProfileServiceError(f"Failed to save profile: {e}") from e
