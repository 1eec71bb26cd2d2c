"""Like/pass recording and mutual-like match detection.

Per ordered pair the state moves from ``none`` to ``liked`` or ``passed``.
A later swipe of the other kind replaces the record, except that a pass never
replaces the like behind an active match. A like and the match it completes
are written by the store in one transaction, so a double-tapped like or two
people liking each other at the same instant still yields exactly one match.
"""

from __future__ import annotations

from typing import Optional

from src.models.interactions import Match, MatchStatus, SwipeKind
from src.models.results import SwipeOutcome
from src.tools.notification_tools import MatchNotifier
from src.tools.store import DiscoveryStore
from src.utils.errors import InvalidInputError, ProfileNotFoundError
from src.utils.logging_config import logger

STATE_NONE = "none"
STATE_LIKED = "liked"
STATE_PASSED = "passed"


class SwipeStateMachine:
    """Records swipes and turns mutual likes into matches."""

    def __init__(self, store: DiscoveryStore, notifier: Optional[MatchNotifier] = None):
        self.store = store
        self.notifier = notifier or MatchNotifier()

    def _validate_pair(self, actor_id: str, target_id: str) -> None:
        if not actor_id or not target_id:
            raise InvalidInputError("actor_id and target_id are required")
        if actor_id == target_id:
            raise InvalidInputError("A profile cannot swipe on itself")

        for profile_id in (actor_id, target_id):
            if self.store.get_profile(profile_id) is None:
                raise ProfileNotFoundError(profile_id)

    def swipe_state(self, actor_id: str, target_id: str) -> str:
        record = self.store.get_swipe(actor_id, target_id)
        if record is None:
            return STATE_NONE
        return STATE_LIKED if record.kind == SwipeKind.LIKE else STATE_PASSED

    def record_like(self, actor_id: str, target_id: str) -> SwipeOutcome:
        """Record a like and create the match when the like is mutual.

        Replaying the same like is a no-op that reports the existing match.
        """

        self._validate_pair(actor_id, target_id)
        created, match_id = self.store.record_like_and_match(actor_id, target_id)

        if created:
            logger.info("Match created: %s", match_id)
            match = self.store.get_match(actor_id, target_id)
            if match is not None:
                self.notifier.notify_match(match)
        else:
            logger.debug(
                "Like recorded actor=%s target=%s matched=%s",
                actor_id,
                target_id,
                match_id is not None,
            )

        return SwipeOutcome(
            actor_profile_id=actor_id,
            target_profile_id=target_id,
            kind=SwipeKind.LIKE,
            matched=match_id is not None,
            match_id=match_id,
            match_created=created,
        )

    def record_pass(self, actor_id: str, target_id: str) -> SwipeOutcome:
        """Record a pass. An existing active match is left untouched."""

        self._validate_pair(actor_id, target_id)
        record = self.store.upsert_swipe(actor_id, target_id, SwipeKind.PASS)

        match_id = None
        if record.kind == SwipeKind.LIKE:
            match = self.store.get_match(actor_id, target_id)
            if match is not None and match.is_active:
                match_id = match.id

        logger.debug(
            "Pass recorded actor=%s target=%s kept_match=%s",
            actor_id,
            target_id,
            match_id is not None,
        )
        return SwipeOutcome(
            actor_profile_id=actor_id,
            target_profile_id=target_id,
            kind=record.kind,
            matched=match_id is not None,
            match_id=match_id,
        )

    def unmatch(self, actor_id: str, other_id: str) -> Match:
        """Mark the pair's match as unmatched. Idempotent.

        Swipe records stay in place, so neither profile returns to the
        other's feed.
        """

        if not actor_id or not other_id or actor_id == other_id:
            raise InvalidInputError("Unmatch needs two different profile ids")

        match = self.store.set_match_status(actor_id, other_id, MatchStatus.UNMATCHED)
        if match is None:
            raise InvalidInputError(f"No match between {actor_id} and {other_id}")

        logger.info("Match %s unmatched by %s", match.id, actor_id)
        return match
