"""Shared LangGraph state definitions.

Graph states are TypedDicts so the data each node reads and writes is
explicit and consistent across nodes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict

from src.models.interactions import ExclusionSet
from src.models.profile import Preferences, Profile
from src.models.results import DiscoveryPage, ScoredProfile
from src.utils.cursor import FeedCursor

JsonDict = dict[str, object]
CountDict = dict[str, int]


class DiscoveryState(TypedDict, total=False):
    """State for the discovery feed graph.

    Fields are optional at runtime because nodes populate them progressively.
    """

    # Request input.
    viewer_id: str
    page_size: Optional[int]
    cursor: Optional[str]

    # Resolved request parameters.
    resolved_page_size: int
    resume_after: Optional[FeedCursor]
    # Scoring clock, fixed for every page of one feed session.
    as_of: datetime

    # Viewer and fan-out reads.
    viewer: Profile
    viewer_preferences: Preferences
    candidates: list[Profile]
    exclusion_set: ExclusionSet

    # Candidates left after exclusions, with their preferences.
    eligible: list[Profile]
    candidate_preferences: dict[str, Preferences]
    # Candidates that passed the bidirectional rules, with their flags.
    accepted: list[tuple[Profile, list[str]]]
    # Scored and ranked candidates.
    scored: list[ScoredProfile]
    ranked: list[ScoredProfile]

    # Current page.
    page: list[ScoredProfile]
    next_cursor: Optional[str]

    # Telemetry.
    excluded_counts: CountDict
    rejected_counts: CountDict
    data_quality_counts: CountDict
    # Set when the viewer itself fails a visibility gate.
    viewer_hidden_reason: Optional[str]

    # Error string and the exception behind it if any node fails.
    error: str
    exception: Exception

    # Final response.
    result: DiscoveryPage
    response_metadata: JsonDict
