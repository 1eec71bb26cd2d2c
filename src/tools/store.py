"""Store interface consumed by the discovery pipeline and the swipe flow.

Implementations wrap backend failures in StoreUnavailableError. Every write
that touches swipe/match state runs as one atomic unit so the "exactly one
match per mutual like" invariant holds under concurrent requests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from src.config import config
from src.models.interactions import ExclusionSet, Match, MatchStatus, SwipeKind, SwipeRecord
from src.models.profile import Preferences, Profile


class DiscoveryStore(ABC):
    """Profile, preference, swipe, match and block storage."""

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    @abstractmethod
    def get_profile(self, profile_id: str) -> Optional[Profile]:
        """Return the profile, or None when it does not exist."""

    @abstractmethod
    def list_candidate_profiles(self, viewer_id: str, limit: int) -> list[Profile]:
        """Return up to ``limit`` candidate profiles for the viewer.

        Selection strategy belongs to the store. The result may include the
        viewer or hidden profiles; the pipeline filters them.
        """

    @abstractmethod
    def get_preferences(self, profile_id: str) -> Optional[Preferences]:
        """Return the profile's preferences, or None when none are stored."""

    def get_preferences_many(self, profile_ids: Iterable[str]) -> dict[str, Preferences]:
        """Batch variant of get_preferences. Missing ids are omitted."""

        found: dict[str, Preferences] = {}
        for profile_id in profile_ids:
            prefs = self.get_preferences(profile_id)
            if prefs is not None:
                found[profile_id] = prefs
        return found

    @abstractmethod
    def get_exclusion_set(self, viewer_id: str) -> ExclusionSet:
        """Read the viewer's swipes, matches and blocks as one snapshot."""

    @abstractmethod
    def get_swipe(self, actor_id: str, target_id: str) -> Optional[SwipeRecord]:
        """Return the actor's swipe on target, if any."""

    @abstractmethod
    def get_match(self, first_id: str, second_id: str) -> Optional[Match]:
        """Return the match record for the pair in either order, if any."""

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------
    @abstractmethod
    def upsert_swipe(self, actor_id: str, target_id: str, kind: SwipeKind) -> SwipeRecord:
        """Insert or replace the actor's swipe on target.

        A pass never replaces the like of an active match; in that case the
        existing like is returned unchanged. Replaying an identical swipe
        keeps the original record.
        """

    @abstractmethod
    def record_like_and_match(self, actor_id: str, target_id: str) -> tuple[bool, Optional[str]]:
        """Store the actor's like and create the match if target already liked back.

        Both writes commit together or not at all. Returns
        ``(created, match_id)``. ``match_id`` is set whenever an active match
        exists after the call; ``created`` only for the call that inserted it.
        """

    @abstractmethod
    def set_match_status(self, first_id: str, second_id: str, status: MatchStatus) -> Optional[Match]:
        """Update the status of an existing match. Returns None if absent."""


def get_store() -> DiscoveryStore:
    """Build the store selected by STORE_BACKEND."""

    if config.STORE_BACKEND == "memory":
        from src.tools.memory_store import InMemoryStore

        return InMemoryStore()

    from src.tools.firestore_tools import FirestoreStore

    return FirestoreStore()
