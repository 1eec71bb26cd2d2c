"""Exclusion of candidates the viewer must not see.

Covers the viewer itself, hard visibility gates (incognito, inactive, banned,
under moderation review) and prior interaction or safety state from the
viewer's exclusion set. Predicates are independent; the first one that hits
is reported as the reason.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

from src.models.interactions import ExclusionSet
from src.models.profile import Profile
from src.utils.logging_config import logger

EXCLUDED_SELF = "self"
EXCLUDED_INCOGNITO = "incognito"
EXCLUDED_INACTIVE = "inactive"
EXCLUDED_BANNED = "banned"
EXCLUDED_UNDER_REVIEW = "under_review"
EXCLUDED_BLOCKED = "blocked"
EXCLUDED_MATCHED = "matched"
EXCLUDED_LIKED = "already_liked"
EXCLUDED_PASSED = "already_passed"
EXCLUDED_PASSED_YOU = "passed_you"


def visibility_gate(profile: Profile) -> Optional[str]:
    """Return why a profile is hidden from everyone, or None if visible."""

    if profile.incognito_mode:
        return EXCLUDED_INCOGNITO
    if not profile.is_active:
        return EXCLUDED_INACTIVE
    if profile.is_banned:
        return EXCLUDED_BANNED
    if profile.under_photo_review:
        return EXCLUDED_UNDER_REVIEW
    return None


def exclusion_reason(
    viewer_id: str, candidate: Profile, exclusion_set: ExclusionSet
) -> Optional[str]:
    """Return the first reason the candidate is excluded, or None."""

    candidate_id = candidate.id
    if candidate_id == viewer_id:
        return EXCLUDED_SELF

    gate = visibility_gate(candidate)
    if gate:
        return gate

    if candidate_id in exclusion_set.blocked:
        return EXCLUDED_BLOCKED
    if candidate_id in exclusion_set.matched:
        return EXCLUDED_MATCHED
    if candidate_id in exclusion_set.liked:
        return EXCLUDED_LIKED
    if candidate_id in exclusion_set.passed:
        return EXCLUDED_PASSED
    if candidate_id in exclusion_set.passed_by:
        return EXCLUDED_PASSED_YOU
    return None


def filter_excluded(
    viewer_id: str,
    candidates: Iterable[Profile],
    exclusion_set: ExclusionSet,
) -> tuple[list[Profile], dict[str, int]]:
    """Drop excluded candidates.

    Returns the kept candidates in their original order and a count of
    excluded candidates per reason for telemetry. Duplicate candidate ids are
    collapsed to their first occurrence.
    """

    kept: list[Profile] = []
    counts: Counter[str] = Counter()
    seen: set[str] = set()

    for candidate in candidates:
        if candidate.id in seen:
            counts["duplicate"] += 1
            continue
        seen.add(candidate.id)

        reason = exclusion_reason(viewer_id, candidate, exclusion_set)
        if reason:
            counts[reason] += 1
            continue
        kept.append(candidate)

    logger.debug(
        "filter_excluded viewer=%s kept=%s excluded=%s",
        viewer_id,
        len(kept),
        dict(counts),
    )
    return kept, dict(counts)
