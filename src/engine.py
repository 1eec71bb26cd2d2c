"""
Facade over the discovery graph and the swipe state machine.

The HTTP layer and tests talk to MatchingEngine only. Graph failures come
back as state and are re-raised here as the matching exception.
"""

from __future__ import annotations

from typing import Optional

from src.config import Config, config
from src.graphs.discovery import Clock, create_discovery_graph
from src.models.interactions import Match, SwipeKind
from src.models.profile import Preferences
from src.models.results import DiscoveryPage, SwipeOutcome
from src.state import DiscoveryState
from src.tools.exclusion_tools import exclusion_reason, visibility_gate
from src.tools.notification_tools import MatchNotifier
from src.tools.preference_tools import explain_pair
from src.tools.store import DiscoveryStore, get_store
from src.tools.swipe_tools import SwipeStateMachine
from src.utils.errors import MatchingError, ProfileNotFoundError
from src.utils.geo import distance_between
from src.utils.logging_config import logger


class MatchingEngine:
    """Discovery feed, swipes and visibility diagnostics for one store."""

    def __init__(
        self,
        store: Optional[DiscoveryStore] = None,
        settings: Optional[Config] = None,
        notifier: Optional[MatchNotifier] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or config
        self.store = store or get_store()
        self.graph = create_discovery_graph(self.store, settings=self.settings, clock=clock)
        self.swipes = SwipeStateMachine(self.store, notifier=notifier)

    def get_discovery_feed(
        self,
        viewer_id: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> DiscoveryPage:
        """Return one page of the viewer's ranked discovery feed."""

        initial: DiscoveryState = {
            "viewer_id": viewer_id,
            "page_size": page_size,
            "cursor": cursor,
        }
        final = self.graph.invoke(initial)

        if final.get("error"):
            exc = final.get("exception")
            if isinstance(exc, Exception):
                raise exc
            raise MatchingError(final["error"])

        return final["result"]

    def record_like(self, actor_id: str, target_id: str) -> SwipeOutcome:
        return self.swipes.record_like(actor_id, target_id)

    def record_pass(self, actor_id: str, target_id: str) -> SwipeOutcome:
        return self.swipes.record_pass(actor_id, target_id)

    def unmatch(self, actor_id: str, other_id: str) -> Match:
        return self.swipes.unmatch(actor_id, other_id)

    def explain_visibility(self, viewer_id: str, candidate_id: str) -> dict:
        """Report why a candidate does or does not appear in a viewer's feed.

        Every check runs, even after one has failed, so the report shows all
        of the reasons at once. ``visible`` is True only when the candidate
        would be ranked in the viewer's feed.
        """

        viewer = self.store.get_profile(viewer_id)
        if viewer is None:
            raise ProfileNotFoundError(viewer_id)
        candidate = self.store.get_profile(candidate_id)
        if candidate is None:
            raise ProfileNotFoundError(candidate_id)

        viewer_prefs = self.store.get_preferences(viewer_id)
        candidate_prefs = self.store.get_preferences(candidate_id)
        exclusion_set = self.store.get_exclusion_set(viewer_id)

        outgoing = self.store.get_swipe(viewer_id, candidate_id)
        incoming = self.store.get_swipe(candidate_id, viewer_id)
        match = self.store.get_match(viewer_id, candidate_id)

        rules = explain_pair(
            viewer,
            viewer_prefs or Preferences(),
            candidate,
            candidate_prefs or Preferences(),
        )

        pool = self.store.list_candidate_profiles(
            viewer_id, self.settings.MAX_CANDIDATE_POOL
        )
        in_pool = any(profile.id == candidate_id for profile in pool)

        distance = distance_between(viewer.location, candidate.location)
        viewer_hidden = visibility_gate(viewer)
        excluded = exclusion_reason(viewer_id, candidate, exclusion_set)
        failed_rules = [entry["rule"] for entry in rules if not entry["passed"]]

        visible = (
            viewer_prefs is not None
            and viewer_hidden is None
            and excluded is None
            and not failed_rules
            and in_pool
        )
        logger.info(
            "explain_visibility viewer=%s candidate=%s visible=%s",
            viewer_id,
            candidate_id,
            visible,
        )

        return {
            "viewer_id": viewer_id,
            "candidate_id": candidate_id,
            "visible": visible,
            "swipes": {
                "viewer_to_candidate": outgoing.kind.value if outgoing else None,
                "candidate_to_viewer": incoming.kind.value if incoming else None,
            },
            "match": {
                "id": match.id,
                "status": match.status.value,
            }
            if match
            else None,
            "viewer_hidden": viewer_hidden,
            "candidate_hidden": visibility_gate(candidate),
            "exclusion_reason": excluded,
            "preferences_found": {
                "viewer": viewer_prefs is not None,
                "candidate": candidate_prefs is not None,
            },
            "rules": rules,
            "failed_rules": failed_rules,
            "distance_miles": round(distance, 1) if distance is not None else None,
            "in_candidate_pool": in_pool,
            "pool_limit": self.settings.MAX_CANDIDATE_POOL,
            "liked_you": incoming is not None and incoming.kind == SwipeKind.LIKE,
        }
