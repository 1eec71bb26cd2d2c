"""Swipe, match and block records plus the per-viewer exclusion set."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.profile import StoreModel


class SwipeKind(str, Enum):
    LIKE = "like"
    PASS = "pass"


class MatchStatus(str, Enum):
    ACTIVE = "active"
    UNMATCHED = "unmatched"


def canonical_pair(first_id: str, second_id: str) -> tuple[str, str]:
    """Order two profile ids so the smaller one comes first."""

    return (first_id, second_id) if first_id < second_id else (second_id, first_id)


def match_id_for(first_id: str, second_id: str) -> str:
    """Deterministic match id; both call orders produce the same value."""

    low, high = canonical_pair(first_id, second_id)
    return f"{low}_{high}"


def swipe_id_for(actor_id: str, target_id: str) -> str:
    return f"{actor_id}_{target_id}"


class SwipeRecord(StoreModel):
    """Directional swipe. Unique per (actor, target)."""

    actor_profile_id: str
    target_profile_id: str
    kind: SwipeKind
    created_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return swipe_id_for(self.actor_profile_id, self.target_profile_id)


class Match(StoreModel):
    """Undirected relationship stored with profile1_id < profile2_id."""

    id: str
    profile1_id: str
    profile2_id: str
    status: MatchStatus = MatchStatus.ACTIVE
    initiated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    unmatched_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == MatchStatus.ACTIVE

    def other(self, profile_id: str) -> str:
        return self.profile2_id if profile_id == self.profile1_id else self.profile1_id


class Block(StoreModel):
    """Directional block; treated as bidirectional by discovery."""

    blocker_profile_id: str
    blocked_profile_id: str
    created_at: Optional[datetime] = None


class ExclusionSet(BaseModel):
    """Ids that must never appear in one viewer's feed, read as one snapshot.

    ``liked``/``passed`` are the viewer's outgoing swipes, ``liked_by``/
    ``passed_by`` the incoming ones. ``matched`` holds partners of every match
    record regardless of status and ``blocked`` covers both block directions.
    """

    model_config = ConfigDict(frozen=True)

    liked: frozenset[str] = Field(default_factory=frozenset)
    passed: frozenset[str] = Field(default_factory=frozenset)
    liked_by: frozenset[str] = Field(default_factory=frozenset)
    passed_by: frozenset[str] = Field(default_factory=frozenset)
    matched: frozenset[str] = Field(default_factory=frozenset)
    blocked: frozenset[str] = Field(default_factory=frozenset)
