"""Thread-safe in-process store for local development and tests.

One re-entrant lock serialises every write, which gives the same guarantees
as the Firestore transactions: a swipe upsert and the mutual-like check never
interleave with another request for the same pair.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Optional

from src.models.interactions import (
    Block,
    ExclusionSet,
    Match,
    MatchStatus,
    SwipeKind,
    SwipeRecord,
    canonical_pair,
    match_id_for,
)
from src.models.profile import Preferences, Profile
from src.tools.store import DiscoveryStore
from src.utils.logging_config import logger

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _created_key(profile: Profile) -> datetime:
    created = profile.created_at
    if created is None:
        return _OLDEST
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


class InMemoryStore(DiscoveryStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._profiles: dict[str, Profile] = {}
        self._preferences: dict[str, Preferences] = {}
        self._swipes: dict[tuple[str, str], SwipeRecord] = {}
        self._matches: dict[str, Match] = {}
        self._blocks: dict[tuple[str, str], Block] = {}

    # ------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------
    def add_profile(self, profile: Profile, preferences: Optional[Preferences] = None) -> None:
        with self._lock:
            self._profiles[profile.id] = profile
            if preferences is not None:
                self._preferences[profile.id] = preferences

    def set_preferences(self, profile_id: str, preferences: Preferences) -> None:
        with self._lock:
            self._preferences[profile_id] = preferences

    def add_block(self, blocker_id: str, blocked_id: str) -> Block:
        with self._lock:
            block = Block(
                blocker_profile_id=blocker_id,
                blocked_profile_id=blocked_id,
                created_at=_utcnow(),
            )
            self._blocks[(blocker_id, blocked_id)] = block
            return block

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    def get_profile(self, profile_id: str) -> Optional[Profile]:
        with self._lock:
            return self._profiles.get(profile_id)

    def list_candidate_profiles(self, viewer_id: str, limit: int) -> list[Profile]:
        """Newest profiles first, the same pool ordering the app used."""

        with self._lock:
            profiles = [p for p in self._profiles.values() if p.id != viewer_id]

        profiles.sort(key=lambda p: p.id)
        profiles.sort(key=_created_key, reverse=True)
        return profiles[: max(limit, 0)]

    def get_preferences(self, profile_id: str) -> Optional[Preferences]:
        with self._lock:
            return self._preferences.get(profile_id)

    def get_exclusion_set(self, viewer_id: str) -> ExclusionSet:
        with self._lock:
            liked, passed, liked_by, passed_by = set(), set(), set(), set()
            for (actor, target), swipe in self._swipes.items():
                if actor == viewer_id:
                    (liked if swipe.kind == SwipeKind.LIKE else passed).add(target)
                elif target == viewer_id:
                    (liked_by if swipe.kind == SwipeKind.LIKE else passed_by).add(actor)

            matched = {
                m.other(viewer_id)
                for m in self._matches.values()
                if viewer_id in (m.profile1_id, m.profile2_id)
            }

            blocked = set()
            for blocker, blocked_id in self._blocks:
                if blocker == viewer_id:
                    blocked.add(blocked_id)
                elif blocked_id == viewer_id:
                    blocked.add(blocker)

        return ExclusionSet(
            liked=frozenset(liked),
            passed=frozenset(passed),
            liked_by=frozenset(liked_by),
            passed_by=frozenset(passed_by),
            matched=frozenset(matched),
            blocked=frozenset(blocked),
        )

    def get_swipe(self, actor_id: str, target_id: str) -> Optional[SwipeRecord]:
        with self._lock:
            return self._swipes.get((actor_id, target_id))

    def get_match(self, first_id: str, second_id: str) -> Optional[Match]:
        with self._lock:
            return self._matches.get(match_id_for(first_id, second_id))

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------
    def upsert_swipe(self, actor_id: str, target_id: str, kind: SwipeKind) -> SwipeRecord:
        with self._lock:
            existing = self._swipes.get((actor_id, target_id))
            if existing is not None and existing.kind == kind:
                return existing

            if kind == SwipeKind.PASS and existing is not None:
                match = self._matches.get(match_id_for(actor_id, target_id))
                if match is not None and match.is_active:
                    logger.info(
                        "Pass ignored for active match %s", match.id
                    )
                    return existing

            record = SwipeRecord(
                actor_profile_id=actor_id,
                target_profile_id=target_id,
                kind=kind,
                created_at=_utcnow(),
            )
            self._swipes[(actor_id, target_id)] = record
            return record

    def record_like_and_match(self, actor_id: str, target_id: str) -> tuple[bool, Optional[str]]:
        with self._lock:
            self.upsert_swipe(actor_id, target_id, SwipeKind.LIKE)

            match_id = match_id_for(actor_id, target_id)
            existing = self._matches.get(match_id)
            if existing is not None:
                return False, (match_id if existing.is_active else None)

            backward = self._swipes.get((target_id, actor_id))
            if backward is None or backward.kind != SwipeKind.LIKE:
                return False, None

            low, high = canonical_pair(actor_id, target_id)
            self._matches[match_id] = Match(
                id=match_id,
                profile1_id=low,
                profile2_id=high,
                status=MatchStatus.ACTIVE,
                initiated_by=actor_id,
                created_at=_utcnow(),
            )
            return True, match_id

    def set_match_status(self, first_id: str, second_id: str, status: MatchStatus) -> Optional[Match]:
        with self._lock:
            match_id = match_id_for(first_id, second_id)
            match = self._matches.get(match_id)
            if match is None:
                return None
            if match.status == status:
                return match

            updated = match.model_copy(
                update={
                    "status": status,
                    "unmatched_at": _utcnow() if status == MatchStatus.UNMATCHED else None,
                }
            )
            self._matches[match_id] = updated
            return updated
