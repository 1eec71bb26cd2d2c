"""Result types returned by the evaluator, the feed and the swipe flow."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.models.interactions import SwipeKind
from src.models.profile import Profile


class EvaluationResult(BaseModel):
    passed: bool
    reason: str
    data_quality_flags: list[str] = Field(default_factory=list)


class ScoredProfile(BaseModel):
    profile: Profile
    score: float
    distance_miles: Optional[float] = None
    liked_you: bool = False
    compatibility_label: str = ""
    data_quality_flags: list[str] = Field(default_factory=list)


class DiscoveryPage(BaseModel):
    profiles: list[ScoredProfile] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SwipeOutcome(BaseModel):
    actor_profile_id: str
    target_profile_id: str
    kind: SwipeKind
    matched: bool = False
    match_id: Optional[str] = None
    match_created: bool = False
