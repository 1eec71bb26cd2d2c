"""Bidirectional dealbreaker rules applied before scoring.

Every rule takes both parties and is symmetric in them, so evaluating
(viewer, candidate) and (candidate, viewer) always agrees. Rules run in a fixed
order and the first failing rule names the reason code, which is what the
diagnostics endpoint and the feed telemetry report.

Missing optional data (age, gender, coordinates, any preference field) never
fails a rule. It relaxes the constraint and, where useful, raises a
data-quality flag instead.
"""

from __future__ import annotations

from typing import Callable, NamedTuple, Optional

from src.models.profile import Location, Preferences, Profile, RelationshipType
from src.models.results import EvaluationResult
from src.utils.geo import distance_between
from src.utils.logging_config import logger

REASON_OK = "ok"
REASON_AGE = "age_out_of_range"
REASON_GENDER = "gender_mismatch"
REASON_CHILDREN = "children_dealbreaker"
REASON_RELATIONSHIP = "relationship_type_dealbreaker"
REASON_DISTANCE = "distance_exceeded"

FLAG_MISSING_AGE = "missing_age"
FLAG_MISSING_GENDER = "missing_gender"
FLAG_MISSING_COORDINATES = "missing_coordinates"

INCOMPATIBLE_RELATIONSHIP_TYPES = frozenset(
    {RelationshipType.PLATONIC, RelationshipType.ROMANTIC}
)


class Party(NamedTuple):
    profile: Profile
    preferences: Preferences


class RuleOutcome(NamedTuple):
    passed: bool
    flags: frozenset[str] = frozenset()


Rule = Callable[[Party, Party], RuleOutcome]


def _age_accepted(chooser: Party, other: Party) -> RuleOutcome:
    age = other.profile.age
    if age is None:
        return RuleOutcome(True, frozenset({FLAG_MISSING_AGE}))

    prefs = chooser.preferences
    return RuleOutcome(prefs.effective_age_min <= age <= prefs.effective_age_max)


def _gender_accepted(chooser: Party, other: Party) -> RuleOutcome:
    wanted = {g.casefold() for g in chooser.preferences.gender_preference}
    if not wanted:
        return RuleOutcome(True)

    gender = other.profile.gender
    if not gender:
        return RuleOutcome(True, frozenset({FLAG_MISSING_GENDER}))
    return RuleOutcome(gender.casefold() in wanted)


def _both_ways(check: Callable[[Party, Party], RuleOutcome]) -> Rule:
    """Turn a one-directional check into a symmetric rule."""

    def rule(first: Party, second: Party) -> RuleOutcome:
        forward = check(first, second)
        backward = check(second, first)
        return RuleOutcome(
            forward.passed and backward.passed, forward.flags | backward.flags
        )

    rule.__name__ = f"{check.__name__}_both_ways"
    return rule


check_age_window = _both_ways(_age_accepted)
check_gender_preference = _both_ways(_gender_accepted)


def check_children(first: Party, second: Party) -> RuleOutcome:
    """Fail only when both sides gave opposite definite answers."""

    mine = first.preferences.wants_children
    theirs = second.preferences.wants_children
    if mine is None or theirs is None:
        return RuleOutcome(True)
    return RuleOutcome(mine == theirs)


def check_relationship_type(first: Party, second: Party) -> RuleOutcome:
    """Fail only for the platonic/romantic pair."""

    pair = {first.preferences.relationship_type, second.preferences.relationship_type}
    return RuleOutcome(pair != INCOMPATIBLE_RELATIONSHIP_TYPES)


def _prefers_city_of(preferences: Preferences, location: Optional[Location]) -> bool:
    """True when one of the preferred cities names the location.

    An entry matches by case-insensitive containment in the city or in
    "City, State", so "portland" and "Portland, OR" both match Portland, OR.
    """

    if location is None or not location.city:
        return False
    city = location.city.casefold()
    city_state = f"{city}, {(location.state or '').casefold()}"
    for entry in preferences.preferred_cities:
        wanted = entry.strip().casefold()
        if wanted and (wanted in city or wanted in city_state):
            return True
    return False


def check_distance(first: Party, second: Party) -> RuleOutcome:
    """Apply the stricter of the two distance bounds.

    Skipped when either side searches globally or lists the other's city
    among its preferred cities. No bound on either side means no constraint.
    Unknown coordinates pass and are flagged.
    """

    if first.preferences.search_globally or second.preferences.search_globally:
        return RuleOutcome(True)
    if _prefers_city_of(first.preferences, second.profile.location) or _prefers_city_of(
        second.preferences, first.profile.location
    ):
        return RuleOutcome(True)

    bounds = [
        p.max_distance_miles
        for p in (first.preferences, second.preferences)
        if p.max_distance_miles is not None
    ]
    if not bounds:
        return RuleOutcome(True)

    distance = distance_between(first.profile.location, second.profile.location)
    if distance is None:
        return RuleOutcome(True, frozenset({FLAG_MISSING_COORDINATES}))
    return RuleOutcome(distance <= min(bounds))


# Evaluation order matters: the first failure is reported.
RULES: list[tuple[str, Rule]] = [
    (REASON_AGE, check_age_window),
    (REASON_GENDER, check_gender_preference),
    (REASON_CHILDREN, check_children),
    (REASON_RELATIONSHIP, check_relationship_type),
    (REASON_DISTANCE, check_distance),
]


def evaluate_pair(
    viewer: Profile,
    viewer_prefs: Preferences,
    candidate: Profile,
    candidate_prefs: Preferences,
) -> EvaluationResult:
    """Evaluate both parties against each other's preferences.

    Returns the first failing rule's reason code, or ``ok``. Data-quality
    flags from the rules evaluated up to that point are included.
    """

    first = Party(viewer, viewer_prefs)
    second = Party(candidate, candidate_prefs)
    flags: set[str] = set()

    for reason, rule in RULES:
        outcome = rule(first, second)
        flags |= outcome.flags
        if not outcome.passed:
            logger.debug(
                "evaluate_pair viewer=%s candidate=%s reason=%s",
                viewer.id,
                candidate.id,
                reason,
            )
            return EvaluationResult(
                passed=False, reason=reason, data_quality_flags=sorted(flags)
            )

    return EvaluationResult(passed=True, reason=REASON_OK, data_quality_flags=sorted(flags))


def explain_pair(
    viewer: Profile,
    viewer_prefs: Preferences,
    candidate: Profile,
    candidate_prefs: Preferences,
) -> list[dict]:
    """Run every rule, without short-circuiting, for diagnostics."""

    first = Party(viewer, viewer_prefs)
    second = Party(candidate, candidate_prefs)
    report = []
    for reason, rule in RULES:
        outcome = rule(first, second)
        report.append(
            {
                "rule": reason,
                "passed": outcome.passed,
                "flags": sorted(outcome.flags),
            }
        )
    return report
