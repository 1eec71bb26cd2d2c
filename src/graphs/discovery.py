"""Discovery feed graph: exclusions, bidirectional rules, scoring, ranking, paging."""

from __future__ import annotations

from collections import Counter
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Callable, Optional

from langgraph.graph import StateGraph

from src.config import Config, config
from src.graphs.base_graph import BaseGraph, with_state
from src.models.profile import Preferences
from src.models.results import DiscoveryPage, ScoredProfile
from src.state import DiscoveryState
from src.tools.exclusion_tools import filter_excluded, visibility_gate
from src.tools.preference_tools import evaluate_pair
from src.tools.scoring_tools import (
    ScoringWeights,
    calculate_compatibility_score,
    compatibility_label,
)
from src.tools.store import DiscoveryStore
from src.utils.cursor import FeedCursor, SortKey, decode_cursor, encode_cursor, make_sort_key
from src.utils.errors import (
    InvalidInputError,
    MatchingError,
    ProfileNotFoundError,
    StoreUnavailableError,
)
from src.utils.geo import distance_between

FLAG_MISSING_PREFERENCES = "missing_preferences"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: Optional[datetime]) -> Optional[float]:
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


class DiscoveryGraph(BaseGraph):
    """Builds one page of a viewer's discovery feed.

    The graph only reads from the store. Running it twice with no swipes in
    between yields the same page, scores included.
    """

    def __init__(
        self,
        store: DiscoveryStore,
        settings: Optional[Config] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or config
        super().__init__(timeout=self.settings.FEED_TIMEOUT)
        self.store = store
        self.clock = clock or _utcnow
        self.weights = ScoringWeights.from_config(self.settings)

    def build_graph(self) -> StateGraph:
        graph = StateGraph(DiscoveryState)

        graph.add_node("load_context", self.node_load_context)
        graph.add_node("apply_exclusions", self.node_apply_exclusions)
        graph.add_node("evaluate_preferences", self.node_evaluate_preferences)
        graph.add_node("score_candidates", self.node_score_candidates)
        graph.add_node("rank_candidates", self.node_rank_candidates)
        graph.add_node("paginate", self.node_paginate)
        graph.add_node("finalize_response", self.node_finalize_response)

        graph.set_entry_point("load_context")
        graph.add_edge("load_context", "apply_exclusions")
        graph.add_edge("apply_exclusions", "evaluate_preferences")
        graph.add_edge("evaluate_preferences", "score_candidates")
        graph.add_edge("score_candidates", "rank_candidates")
        graph.add_edge("rank_candidates", "paginate")
        graph.add_edge("paginate", "finalize_response")
        graph.set_finish_point("finalize_response")

        return graph

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------
    def _resolve_page_size(self, page_size: Optional[int]) -> int:
        if page_size is None:
            return self.settings.DEFAULT_PAGE_SIZE
        if (
            isinstance(page_size, bool)
            or not isinstance(page_size, int)
            or not 1 <= page_size <= self.settings.MAX_PAGE_SIZE
        ):
            raise InvalidInputError(
                f"page_size must be between 1 and {self.settings.MAX_PAGE_SIZE}"
            )
        return page_size

    def _scoring_clock(self) -> datetime:
        """Current time floored to the recency bucket."""

        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        bucket = max(int(self.settings.RECENCY_BUCKET_SECONDS), 1)
        floored = int(now.timestamp()) // bucket * bucket
        return datetime.fromtimestamp(floored, tz=timezone.utc)

    def _priority(self, item: ScoredProfile) -> int:
        if not self.settings.PRIORITIZE_INCOMING_LIKES:
            return 0
        return 0 if item.liked_you else 1

    def _sort_key(self, item: ScoredProfile) -> SortKey:
        return make_sort_key(
            self._priority(item),
            item.score,
            _timestamp(item.profile.last_active_at),
            item.profile.id,
        )

    def _fan_out(self, calls: dict) -> dict:
        """Run independent store reads concurrently and join them.

        Raises StoreUnavailableError when the reads outlive the feed timeout;
        any store error is re-raised from the join.
        """

        pool = ThreadPoolExecutor(
            max_workers=self.settings.FANOUT_WORKERS,
            thread_name_prefix="discovery-read",
        )
        try:
            futures = {
                name: pool.submit(fn, *args) for name, (fn, *args) in calls.items()
            }
            _, pending = wait(futures.values(), timeout=self.timeout)
            if pending:
                raise StoreUnavailableError(
                    f"Store reads timed out after {self.timeout}s"
                )
            return {name: future.result() for name, future in futures.items()}
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------
    def node_load_context(self, state: DiscoveryState) -> DiscoveryState:
        """Validate the request and fan out the viewer/candidate/exclusion reads."""

        self._log_node_execution("load_context", state)
        try:
            page_size = self._resolve_page_size(state.get("page_size"))
            token = state.get("cursor")
            resume_after = decode_cursor(token) if token else None
            if resume_after is not None:
                as_of = resume_after.as_of_datetime()
            else:
                as_of = self._scoring_clock()
        except MatchingError as exc:
            return self._fail(state, "load_context", exc)

        viewer_id = state["viewer_id"]
        pool_limit = self.settings.MAX_CANDIDATE_POOL
        try:
            reads = self._fan_out(
                {
                    "viewer": (self.store.get_profile, viewer_id),
                    "viewer_preferences": (self.store.get_preferences, viewer_id),
                    "candidates": (
                        self.store.list_candidate_profiles,
                        viewer_id,
                        pool_limit,
                    ),
                    "exclusion_set": (self.store.get_exclusion_set, viewer_id),
                }
            )
        except Exception as exc:
            return self._fail(state, "load_context", exc)

        if reads["viewer"] is None:
            return self._fail(state, "load_context", ProfileNotFoundError(viewer_id))
        if reads["viewer_preferences"] is None:
            return self._fail(
                state, "load_context", ProfileNotFoundError(viewer_id, "preferences")
            )

        candidates = reads["candidates"]
        if len(candidates) >= pool_limit:
            self.logger.info(
                "Candidate pool reached MAX_CANDIDATE_POOL=%s; profiles beyond it are not ranked",
                pool_limit,
            )

        return with_state(
            state,
            resolved_page_size=page_size,
            resume_after=resume_after,
            as_of=as_of,
            viewer=reads["viewer"],
            viewer_preferences=reads["viewer_preferences"],
            candidates=candidates,
            exclusion_set=reads["exclusion_set"],
            viewer_hidden_reason=visibility_gate(reads["viewer"]),
        )

    def node_apply_exclusions(self, state: DiscoveryState) -> DiscoveryState:
        """Drop hidden and already-interacted candidates, then load their preferences."""

        if state.get("error"):
            return state

        self._log_node_execution("apply_exclusions", state)
        if state.get("viewer_hidden_reason"):
            # Hidden viewers neither appear in feeds nor get one.
            return with_state(
                state, eligible=[], candidate_preferences={}, excluded_counts={}
            )

        try:
            eligible, excluded_counts = filter_excluded(
                state["viewer_id"], state.get("candidates", []), state["exclusion_set"]
            )
            candidate_preferences = (
                self.store.get_preferences_many([c.id for c in eligible])
                if eligible
                else {}
            )
            return with_state(
                state,
                eligible=eligible,
                candidate_preferences=candidate_preferences,
                excluded_counts=excluded_counts,
            )
        except Exception as exc:
            return self._fail(state, "apply_exclusions", exc)

    def node_evaluate_preferences(self, state: DiscoveryState) -> DiscoveryState:
        """Apply the dealbreaker rules in both directions."""

        if state.get("error"):
            return state

        self._log_node_execution("evaluate_preferences", state)
        try:
            viewer = state["viewer"]
            viewer_prefs = state["viewer_preferences"]
            candidate_preferences = state.get("candidate_preferences", {})
            accepted = []
            rejected: Counter[str] = Counter()
            quality: Counter[str] = Counter()

            for candidate in state.get("eligible", []):
                prefs = candidate_preferences.get(candidate.id)
                flags: list[str] = []
                if prefs is None:
                    prefs = Preferences()
                    flags.append(FLAG_MISSING_PREFERENCES)

                result = evaluate_pair(viewer, viewer_prefs, candidate, prefs)
                flags.extend(result.data_quality_flags)
                quality.update(flags)
                if not result.passed:
                    rejected[result.reason] += 1
                    continue
                accepted.append((candidate, sorted(flags)))

            return with_state(
                state,
                accepted=accepted,
                rejected_counts=dict(rejected),
                data_quality_counts=dict(quality),
            )
        except Exception as exc:
            return self._fail(state, "evaluate_preferences", exc)

    def node_score_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Score accepted candidates; large pools are scored on a thread pool."""

        if state.get("error"):
            return state

        self._log_node_execution("score_candidates", state)
        try:
            viewer = state["viewer"]
            as_of = state["as_of"]
            liked_by = state["exclusion_set"].liked_by

            def score_one(entry) -> ScoredProfile:
                candidate, flags = entry
                score = calculate_compatibility_score(
                    viewer, candidate, self.weights, as_of
                )
                distance = distance_between(viewer.location, candidate.location)
                return ScoredProfile(
                    profile=candidate,
                    score=score,
                    distance_miles=round(distance, 1) if distance is not None else None,
                    liked_you=candidate.id in liked_by,
                    compatibility_label=compatibility_label(score),
                    data_quality_flags=flags,
                )

            accepted = state.get("accepted", [])
            if len(accepted) > self.settings.PARALLEL_SCORING_THRESHOLD:
                with ThreadPoolExecutor(
                    max_workers=self.settings.SCORING_WORKERS,
                    thread_name_prefix="discovery-score",
                ) as pool:
                    # map() keeps input order; ranking sorts afterwards anyway.
                    scored = list(pool.map(score_one, accepted))
            else:
                scored = [score_one(entry) for entry in accepted]

            return with_state(state, scored=scored)
        except Exception as exc:
            return self._fail(state, "score_candidates", exc)

    def node_rank_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Order by score, then most recent activity, then profile id."""

        if state.get("error"):
            return state

        self._log_node_execution("rank_candidates", state)
        try:
            ranked = sorted(state.get("scored", []), key=self._sort_key)
            return with_state(state, ranked=ranked)
        except Exception as exc:
            return self._fail(state, "rank_candidates", exc)

    def node_paginate(self, state: DiscoveryState) -> DiscoveryState:
        """Cut the page that follows the cursor key."""

        if state.get("error"):
            return state

        self._log_node_execution("paginate", state)
        try:
            ranked = state.get("ranked", [])
            page_size = state["resolved_page_size"]
            resume_after = state.get("resume_after")

            if resume_after is not None:
                after = resume_after.sort_key()
                remaining = [item for item in ranked if self._sort_key(item) > after]
            else:
                remaining = ranked

            page = remaining[:page_size]
            next_cursor = None
            if len(remaining) > page_size:
                last = page[-1]
                next_cursor = encode_cursor(
                    FeedCursor(
                        as_of=_timestamp(state["as_of"]),
                        priority=self._priority(last),
                        score=last.score,
                        last_active_ts=_timestamp(last.profile.last_active_at),
                        profile_id=last.profile.id,
                    )
                )

            return with_state(state, page=page, next_cursor=next_cursor)
        except Exception as exc:
            return self._fail(state, "paginate", exc)

    def node_finalize_response(self, state: DiscoveryState) -> DiscoveryState:
        """Construct the page and response metadata."""

        if state.get("error"):
            return with_state(
                state,
                page=[],
                next_cursor=None,
                response_metadata={
                    "success": False,
                    "error": state.get("error"),
                },
            )

        page = state.get("page", [])
        candidates = state.get("candidates", [])
        metadata = {
            "success": True,
            "error": None,
            "as_of": state["as_of"].isoformat(),
            "pool_size": len(candidates),
            "pool_limit": self.settings.MAX_CANDIDATE_POOL,
            "pool_truncated": len(candidates) >= self.settings.MAX_CANDIDATE_POOL,
            "excluded": state.get("excluded_counts", {}),
            "rejected": state.get("rejected_counts", {}),
            "data_quality": state.get("data_quality_counts", {}),
            "eligible_count": len(state.get("ranked", [])),
            "returned": len(page),
            "viewer_hidden": state.get("viewer_hidden_reason"),
        }

        self.logger.info(
            "discovery summary: viewer=%s pool=%s eligible=%s returned=%s more=%s",
            state["viewer_id"],
            metadata["pool_size"],
            metadata["eligible_count"],
            metadata["returned"],
            state.get("next_cursor") is not None,
        )
        if metadata["data_quality"]:
            self.logger.debug("discovery data quality: %s", metadata["data_quality"])

        return with_state(
            state,
            result=DiscoveryPage(
                profiles=page,
                next_cursor=state.get("next_cursor"),
                metadata=metadata,
            ),
            response_metadata=metadata,
        )


def create_discovery_graph(
    store: DiscoveryStore,
    settings: Optional[Config] = None,
    clock: Optional[Clock] = None,
):
    """Build and compile the discovery graph."""

    return DiscoveryGraph(store, settings=settings, clock=clock).compile()
