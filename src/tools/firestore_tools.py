"""Firestore-backed store used in production.

Collections:
  - profiles/{profileId}
  - preferences/{profileId}
  - swipes/{actorId}_{targetId}
  - matches/{lowId}_{highId}
  - blocks/{blockerId}_{blockedId}

Deterministic document ids give the uniqueness constraints for free: one
swipe per ordered pair and one match per unordered pair. Swipe and match
writes run in Firestore transactions, which the client retries on contention.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Iterable, Optional

import firebase_admin
from firebase_admin import credentials, firestore

from src.config import config
from src.models.interactions import (
    ExclusionSet,
    Match,
    MatchStatus,
    SwipeKind,
    SwipeRecord,
    canonical_pair,
    match_id_for,
    swipe_id_for,
)
from src.models.profile import Preferences, Profile
from src.tools.store import DiscoveryStore
from src.utils.errors import StoreUnavailableError
from src.utils.logging_config import logger

PROFILES = "profiles"
PREFERENCES = "preferences"
SWIPES = "swipes"
MATCHES = "matches"
BLOCKS = "blocks"

_db: firestore.Client | None = None


def get_db() -> firestore.Client:
    """Get a Firestore client, initializing Firebase lazily."""
    global _db

    if _db is not None:
        return _db

    try:
        if not firebase_admin._apps:
            cred_path = os.environ.get(
                "GOOGLE_APPLICATION_CREDENTIALS", config.GOOGLE_APPLICATION_CREDENTIALS
            )
            if not cred_path:
                raise RuntimeError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not set"
                )

            cred = credentials.Certificate(cred_path)
            options = (
                {"projectId": config.FIREBASE_PROJECT_ID}
                if config.FIREBASE_PROJECT_ID
                else None
            )
            firebase_admin.initialize_app(cred, options)

        _db = firestore.client()
        return _db

    except Exception as exc:
        logger.error("Failed to initialize Firestore: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc


def _profile_from_snapshot(snapshot) -> Optional[Profile]:
    if not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    return Profile.model_validate({**data, "id": snapshot.id})


def _swipe_from_snapshot(snapshot) -> Optional[SwipeRecord]:
    if not snapshot.exists:
        return None
    return SwipeRecord.model_validate(snapshot.to_dict() or {})


def _match_from_snapshot(snapshot) -> Optional[Match]:
    if not snapshot.exists:
        return None
    return Match.model_validate({**(snapshot.to_dict() or {}), "id": snapshot.id})


def _swipe_document(record: SwipeRecord) -> dict:
    return {
        "actorProfileId": record.actor_profile_id,
        "targetProfileId": record.target_profile_id,
        "kind": record.kind.value,
        "createdAt": record.created_at,
    }


class FirestoreStore(DiscoveryStore):
    """DiscoveryStore over Cloud Firestore."""

    def __init__(self, db: firestore.Client | None = None):
        self._db = db

    @property
    def db(self) -> firestore.Client:
        return self._db if self._db is not None else get_db()

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    def get_profile(self, profile_id: str) -> Optional[Profile]:
        """Fetch profile from profiles/{profile_id}."""

        try:
            doc = self.db.collection(PROFILES).document(profile_id).get()
            return _profile_from_snapshot(doc)
        except Exception as exc:
            logger.error("Failed to fetch profile: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def list_candidate_profiles(self, viewer_id: str, limit: int) -> list[Profile]:
        """Query the newest visible profiles.

        Filters on isActive + incognitoMode and orders by createdAt, which
        needs a composite index in production. The remaining gates run in the
        pipeline so the index stays small.
        """

        try:
            query = (
                self.db.collection(PROFILES)
                .where("isActive", "==", True)
                .where("incognitoMode", "==", False)
                .order_by("createdAt", direction=firestore.Query.DESCENDING)
                .limit(limit + 1)
            )
            profiles = [
                _profile_from_snapshot(doc) for doc in query.stream()
            ]
            return [p for p in profiles if p is not None and p.id != viewer_id][:limit]
        except Exception as exc:
            logger.error("Failed to query candidate profiles: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def get_preferences(self, profile_id: str) -> Optional[Preferences]:
        """Fetch preferences from preferences/{profile_id}."""

        try:
            doc = self.db.collection(PREFERENCES).document(profile_id).get()
            if not doc.exists:
                return None
            return Preferences.model_validate(doc.to_dict() or {})
        except Exception as exc:
            logger.error("Failed to fetch preferences: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def get_preferences_many(self, profile_ids: Iterable[str]) -> dict[str, Preferences]:
        """Fetch many preference documents in one round trip."""

        ids = list(dict.fromkeys(profile_ids))
        if not ids:
            return {}

        try:
            collection = self.db.collection(PREFERENCES)
            refs = [collection.document(profile_id) for profile_id in ids]
            return {
                doc.id: Preferences.model_validate(doc.to_dict() or {})
                for doc in self.db.get_all(refs)
                if doc.exists
            }
        except Exception as exc:
            logger.error("Failed to fetch preferences batch: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def get_exclusion_set(self, viewer_id: str) -> ExclusionSet:
        """Read swipes, matches and blocks for the viewer in one read-only transaction."""

        db = self.db
        swipes = db.collection(SWIPES)
        matches = db.collection(MATCHES)
        blocks = db.collection(BLOCKS)

        @firestore.transactional
        def _snapshot(transaction) -> ExclusionSet:
            def read(query) -> list[dict]:
                return [doc.to_dict() or {} for doc in query.get(transaction=transaction)]

            outgoing = read(swipes.where("actorProfileId", "==", viewer_id))
            incoming = read(swipes.where("targetProfileId", "==", viewer_id))
            matched_low = read(matches.where("profile1Id", "==", viewer_id))
            matched_high = read(matches.where("profile2Id", "==", viewer_id))
            blocked_by_me = read(blocks.where("blockerProfileId", "==", viewer_id))
            blocked_me = read(blocks.where("blockedProfileId", "==", viewer_id))

            return ExclusionSet(
                liked=frozenset(
                    s["targetProfileId"] for s in outgoing if s.get("kind") == SwipeKind.LIKE.value
                ),
                passed=frozenset(
                    s["targetProfileId"] for s in outgoing if s.get("kind") == SwipeKind.PASS.value
                ),
                liked_by=frozenset(
                    s["actorProfileId"] for s in incoming if s.get("kind") == SwipeKind.LIKE.value
                ),
                passed_by=frozenset(
                    s["actorProfileId"] for s in incoming if s.get("kind") == SwipeKind.PASS.value
                ),
                matched=frozenset(
                    [m["profile2Id"] for m in matched_low]
                    + [m["profile1Id"] for m in matched_high]
                ),
                blocked=frozenset(
                    [b["blockedProfileId"] for b in blocked_by_me]
                    + [b["blockerProfileId"] for b in blocked_me]
                ),
            )

        try:
            return _snapshot(db.transaction(read_only=True))
        except Exception as exc:
            logger.error("Failed to fetch exclusion set: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def get_swipe(self, actor_id: str, target_id: str) -> Optional[SwipeRecord]:
        try:
            doc = self.db.collection(SWIPES).document(swipe_id_for(actor_id, target_id)).get()
            return _swipe_from_snapshot(doc)
        except Exception as exc:
            logger.error("Failed to fetch swipe: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def get_match(self, first_id: str, second_id: str) -> Optional[Match]:
        try:
            doc = self.db.collection(MATCHES).document(match_id_for(first_id, second_id)).get()
            return _match_from_snapshot(doc)
        except Exception as exc:
            logger.error("Failed to fetch match: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------
    def upsert_swipe(self, actor_id: str, target_id: str, kind: SwipeKind) -> SwipeRecord:
        db = self.db
        swipe_ref = db.collection(SWIPES).document(swipe_id_for(actor_id, target_id))
        match_ref = db.collection(MATCHES).document(match_id_for(actor_id, target_id))

        @firestore.transactional
        def _apply(transaction) -> SwipeRecord:
            existing = _swipe_from_snapshot(swipe_ref.get(transaction=transaction))
            if existing is not None and existing.kind == kind:
                return existing

            if kind == SwipeKind.PASS and existing is not None:
                match = _match_from_snapshot(match_ref.get(transaction=transaction))
                if match is not None and match.is_active:
                    logger.info("Pass ignored for active match %s", match.id)
                    return existing

            record = SwipeRecord(
                actor_profile_id=actor_id,
                target_profile_id=target_id,
                kind=kind,
                created_at=datetime.now(timezone.utc),
            )
            transaction.set(swipe_ref, _swipe_document(record))
            return record

        try:
            return _apply(db.transaction())
        except Exception as exc:
            logger.error("Failed to upsert swipe: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def record_like_and_match(self, actor_id: str, target_id: str) -> tuple[bool, Optional[str]]:
        db = self.db
        match_id = match_id_for(actor_id, target_id)
        match_ref = db.collection(MATCHES).document(match_id)
        forward_ref = db.collection(SWIPES).document(swipe_id_for(actor_id, target_id))
        backward_ref = db.collection(SWIPES).document(swipe_id_for(target_id, actor_id))

        @firestore.transactional
        def _apply(transaction) -> tuple[bool, Optional[str]]:
            # Firestore transactions take every read before the first write.
            existing = _match_from_snapshot(match_ref.get(transaction=transaction))
            forward = _swipe_from_snapshot(forward_ref.get(transaction=transaction))
            backward = _swipe_from_snapshot(backward_ref.get(transaction=transaction))
            now = datetime.now(timezone.utc)

            if forward is None or forward.kind != SwipeKind.LIKE:
                like = SwipeRecord(
                    actor_profile_id=actor_id,
                    target_profile_id=target_id,
                    kind=SwipeKind.LIKE,
                    created_at=now,
                )
                transaction.set(forward_ref, _swipe_document(like))

            if existing is not None:
                return False, (match_id if existing.is_active else None)
            if backward is None or backward.kind != SwipeKind.LIKE:
                return False, None

            low, high = canonical_pair(actor_id, target_id)
            transaction.set(
                match_ref,
                {
                    "profile1Id": low,
                    "profile2Id": high,
                    "status": MatchStatus.ACTIVE.value,
                    "initiatedBy": actor_id,
                    "createdAt": now,
                },
            )
            return True, match_id

        try:
            return _apply(db.transaction())
        except Exception as exc:
            logger.error("Failed to record like: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc

    def set_match_status(self, first_id: str, second_id: str, status: MatchStatus) -> Optional[Match]:
        db = self.db
        match_ref = db.collection(MATCHES).document(match_id_for(first_id, second_id))

        @firestore.transactional
        def _apply(transaction) -> Optional[Match]:
            match = _match_from_snapshot(match_ref.get(transaction=transaction))
            if match is None or match.status == status:
                return match

            updates = {
                "status": status.value,
                "unmatchedAt": (
                    datetime.now(timezone.utc) if status == MatchStatus.UNMATCHED else None
                ),
            }
            transaction.update(match_ref, updates)
            return match.model_copy(
                update={"status": status, "unmatched_at": updates["unmatchedAt"]}
            )

        try:
            return _apply(db.transaction())
        except Exception as exc:
            logger.error("Failed to update match status: %s", str(exc))
            raise StoreUnavailableError(str(exc)) from exc
