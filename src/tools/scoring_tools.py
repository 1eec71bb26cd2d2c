"""Deterministic scoring utilities for ranking discovery candidates."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import NamedTuple, Optional

from src.config import Config, config
from src.models.profile import Profile

SCORE_PRECISION = 6


class ScoringWeights(NamedTuple):
    """Tunable scoring parameters, loaded from configuration."""

    interests: float = 0.5
    completeness: float = 0.3
    recency: float = 0.2
    photo_target: int = 4
    bio_target_chars: int = 150
    prompt_target: int = 3
    recency_half_life_hours: float = 72.0
    recency_floor: float = 0.1

    @classmethod
    def from_config(cls, settings: Optional[Config] = None) -> "ScoringWeights":
        settings = settings or config
        return cls(
            interests=settings.SCORE_WEIGHT_INTERESTS,
            completeness=settings.SCORE_WEIGHT_COMPLETENESS,
            recency=settings.SCORE_WEIGHT_RECENCY,
            photo_target=settings.PHOTO_TARGET,
            bio_target_chars=settings.BIO_TARGET_CHARS,
            prompt_target=settings.PROMPT_TARGET,
            recency_half_life_hours=settings.RECENCY_HALF_LIFE_HOURS,
            recency_floor=settings.RECENCY_FLOOR,
        )


def _ratio(value: float, target: float) -> float:
    if target <= 0:
        return 1.0
    return min(max(value, 0) / target, 1.0)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def calculate_interest_score(viewer: Profile, candidate: Profile) -> float:
    """Shared-interest ratio (intersection over union), 0-1.

    Comparison is case-insensitive. Either side having no interests scores 0.
    """

    mine = {i.strip().casefold() for i in viewer.interests if i and i.strip()}
    theirs = {i.strip().casefold() for i in candidate.interests if i and i.strip()}
    if not mine or not theirs:
        return 0.0
    return len(mine & theirs) / len(mine | theirs)


def calculate_completeness_score(
    candidate: Profile, weights: ScoringWeights = ScoringWeights()
) -> float:
    """Average of photo, bio and prompt completeness, each capped at 1."""

    photos = _ratio(candidate.photo_count, weights.photo_target)
    bio = _ratio(len((candidate.bio or "").strip()), weights.bio_target_chars)
    prompts = _ratio(
        len([a for a in candidate.prompt_answers if a and a.strip()]),
        weights.prompt_target,
    )
    return (photos + bio + prompts) / 3


def calculate_recency_score(
    last_active_at: Optional[datetime],
    now: datetime,
    weights: ScoringWeights = ScoringWeights(),
) -> float:
    """Exponential decay of idle time that saturates at the configured floor.

    Unknown activity scores the floor. Timestamps ahead of ``now`` count as
    active right now.
    """

    floor = weights.recency_floor
    if last_active_at is None:
        return floor

    idle_hours = (_as_utc(now) - _as_utc(last_active_at)).total_seconds() / 3600
    idle_hours = max(idle_hours, 0.0)
    decay = 0.5 ** (idle_hours / weights.recency_half_life_hours)
    return floor + (1 - floor) * decay


def calculate_compatibility_score(
    viewer: Profile,
    candidate: Profile,
    weights: ScoringWeights,
    now: datetime,
) -> float:
    """Calculate the deterministic ranking score (0-1).

    Weighted sum of shared interests, candidate completeness and candidate
    recency, normalised by the total weight. No randomness: identical inputs
    always give an identical score.
    """

    total_weight = weights.interests + weights.completeness + weights.recency
    if total_weight <= 0:
        return 0.0

    score = (
        weights.interests * calculate_interest_score(viewer, candidate)
        + weights.completeness * calculate_completeness_score(candidate, weights)
        + weights.recency
        * calculate_recency_score(candidate.last_active_at, now, weights)
    ) / total_weight

    return round(min(max(score, 0.0), 1.0), SCORE_PRECISION)


def compatibility_label(score: float) -> str:
    """Human-readable label for a 0-1 score."""

    percent = score * 100
    if percent >= 90:
        return "Exceptional Match"
    if percent >= 80:
        return "Excellent Match"
    if percent >= 70:
        return "Great Match"
    if percent >= 60:
        return "Good Match"
    if percent >= 50:
        return "Decent Match"
    if percent >= 40:
        return "Moderate Match"
    return "Low Match"
