"""
Unit tests for the discovery feed graph, driven through MatchingEngine.

These tests validate that the feed:
  1. Never shows excluded, hidden or incompatible profiles
  2. Ranks deterministically and pages without gaps or repeats
  3. Keeps pages stable when swipes happen between requests
  4. Raises the matching error for bad input or store failures
"""

import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from src.config import Config
from src.engine import MatchingEngine
from src.graphs.discovery import create_discovery_graph
from src.models.profile import Location, Preferences
from src.tools.memory_store import InMemoryStore
from src.tools.scoring_tools import compatibility_label
from src.utils.cursor import FeedCursor, encode_cursor
from src.utils.errors import (
    InvalidCursorError,
    InvalidInputError,
    ProfileNotFoundError,
    StoreUnavailableError,
)
from src.utils.geo import distance_between

SF = Location(latitude=37.7749, longitude=-122.4194)
OAKLAND = Location(latitude=37.8044, longitude=-122.2712)


def _ids(page):
    return [item.profile.id for item in page.profiles]


def _settings(**overrides):
    values = {
        "STORE_BACKEND": "memory",
        "FIREBASE_PROJECT_ID": "test-project",
        "MATCH_WEBHOOK_URL": None,
    }
    values.update(overrides)
    return Config(_env_file=None, **values)


@pytest.fixture
def now(clock):
    return clock()


@pytest.fixture
def crowd(seed, now):
    """A viewer and 25 compatible candidates with distinct activity times."""
    seed("viewer")
    for i in range(25):
        seed(f"c{i:02d}", last_active_at=now - timedelta(hours=i))
    return [f"c{i:02d}" for i in range(25)]


class TestPagination:
    """Test keyset pagination."""

    def test_twenty_five_candidates_two_pages(self, engine, crowd):
        """25 eligible profiles at page size 20 give 20, then 5, then nothing."""
        first = engine.get_discovery_feed("viewer", page_size=20)
        assert len(first.profiles) == 20
        assert first.next_cursor is not None

        second = engine.get_discovery_feed("viewer", page_size=20, cursor=first.next_cursor)
        assert len(second.profiles) == 5
        assert second.next_cursor is None

        seen = _ids(first) + _ids(second)
        assert len(set(seen)) == 25
        assert set(seen) == set(crowd)

    def test_exact_page_has_no_cursor(self, engine, seed):
        """A page that holds every remaining profile ends the feed."""
        seed("viewer")
        for i in range(3):
            seed(f"c{i}")
        page = engine.get_discovery_feed("viewer", page_size=3)
        assert len(page.profiles) == 3
        assert page.next_cursor is None

    def test_default_page_size(self, engine, crowd):
        """Without a page size the configured default applies."""
        page = engine.get_discovery_feed("viewer")
        assert len(page.profiles) == 20

    def test_swipes_between_pages_do_not_shift_results(self, engine, crowd):
        """Swiping on first-page profiles doesn't skip anyone on the next page."""
        first = engine.get_discovery_feed("viewer", page_size=10)
        for profile_id in _ids(first)[:5]:
            engine.record_pass("viewer", profile_id)

        second = engine.get_discovery_feed("viewer", page_size=10, cursor=first.next_cursor)
        third = engine.get_discovery_feed("viewer", page_size=10, cursor=second.next_cursor)

        assert _ids(second) == crowd[10:20]
        assert _ids(third) == crowd[20:25]

    def test_scoring_clock_carried_in_cursor(self, store, settings, notifier, crowd, now):
        """Later pages reuse the first page's clock even if time has moved on."""
        current = {"now": now}
        engine = MatchingEngine(store=store, settings=settings, notifier=notifier, clock=lambda: current["now"])

        everything = engine.get_discovery_feed("viewer", page_size=25)
        first = engine.get_discovery_feed("viewer", page_size=20)
        current["now"] = now + timedelta(days=5)
        second = engine.get_discovery_feed("viewer", page_size=20, cursor=first.next_cursor)

        expected = {item.profile.id: item.score for item in everything.profiles[20:]}
        assert {item.profile.id: item.score for item in second.profiles} == expected
        assert second.metadata["as_of"] == first.metadata["as_of"]


class TestRanking:
    """Test ranking and determinism."""

    def test_most_recent_first_when_otherwise_equal(self, engine, crowd):
        """Identical profiles rank by activity recency."""
        page = engine.get_discovery_feed("viewer", page_size=25)
        assert _ids(page) == crowd
        scores = [item.score for item in page.profiles]
        assert scores == sorted(scores, reverse=True)

    def test_shared_interests_rank_higher(self, engine, seed, now):
        """A candidate sharing more interests outranks one sharing fewer."""
        seed("viewer", interests=["climbing", "jazz", "chess"])
        seed("close", interests=["climbing", "jazz", "chess"], last_active_at=now)
        seed("far", interests=["golf"], last_active_at=now)
        page = engine.get_discovery_feed("viewer")
        assert _ids(page) == ["close", "far"]

    def test_ties_broken_by_id(self, engine, seed, now):
        """Equal score and activity fall back to id order."""
        seed("viewer")
        for profile_id in ["zed", "amy", "kim"]:
            seed(profile_id, last_active_at=now)
        assert _ids(engine.get_discovery_feed("viewer")) == ["amy", "kim", "zed"]

    def test_repeat_calls_identical(self, engine, crowd):
        """With no swipes in between, the feed is identical across calls."""
        first = engine.get_discovery_feed("viewer", page_size=25)
        second = engine.get_discovery_feed("viewer", page_size=25)
        assert first.profiles == second.profiles

    def test_parallel_scoring_matches_sequential(self, store, notifier, clock, crowd):
        """Scoring on a thread pool yields the same ranking."""
        sequential = MatchingEngine(store=store, settings=_settings(), notifier=notifier, clock=clock)
        parallel = MatchingEngine(
            store=store,
            settings=_settings(PARALLEL_SCORING_THRESHOLD=2, SCORING_WORKERS=3),
            notifier=notifier,
            clock=clock,
        )
        assert (
            parallel.get_discovery_feed("viewer", page_size=25).profiles
            == sequential.get_discovery_feed("viewer", page_size=25).profiles
        )

    def test_incoming_likes_prioritised_when_enabled(self, store, notifier, clock, crowd):
        """With prioritisation on, people who liked the viewer come first."""
        engine = MatchingEngine(
            store=store,
            settings=_settings(PRIORITIZE_INCOMING_LIKES=True),
            notifier=notifier,
            clock=clock,
        )
        engine.record_like("c24", "viewer")

        first = engine.get_discovery_feed("viewer", page_size=10)
        assert _ids(first)[0] == "c24"
        assert first.profiles[0].liked_you is True

        second = engine.get_discovery_feed("viewer", page_size=20, cursor=first.next_cursor)
        assert "c24" not in _ids(second)
        assert len(_ids(first) + _ids(second)) == 25

    def test_incoming_likes_not_prioritised_by_default(self, engine, crowd):
        """By default an incoming like is flagged but not moved up."""
        engine.record_like("c24", "viewer")
        page = engine.get_discovery_feed("viewer", page_size=25)
        assert _ids(page)[-1] == "c24"
        assert page.profiles[-1].liked_you is True


class TestExclusions:
    """Test that excluded profiles never appear."""

    def test_exclusion_completeness(self, engine, store, seed):
        """Liked, passed, matched, blocked, hidden and rejecting profiles are all absent."""
        seed("viewer")
        visible = seed("visible")
        seed("liked")
        seed("passed")
        seed("matched")
        seed("blocked_by_me")
        seed("blocked_me")
        seed("passed_me")
        seed("incognito", incognito_mode=True)
        seed("inactive", is_active=False)
        seed("banned", is_banned=True)
        seed("review", under_photo_review=True)
        seed("fan")

        engine.record_like("viewer", "liked")
        engine.record_pass("viewer", "passed")
        engine.record_like("viewer", "matched")
        engine.record_like("matched", "viewer")
        engine.record_pass("passed_me", "viewer")
        engine.record_like("fan", "viewer")
        store.add_block("viewer", "blocked_by_me")
        store.add_block("blocked_me", "viewer")

        page = engine.get_discovery_feed("viewer", page_size=50)

        assert sorted(_ids(page)) == sorted([visible.id, "fan"])
        excluded = page.metadata["excluded"]
        assert excluded["blocked"] == 2
        assert excluded["matched"] == 1
        assert excluded["already_liked"] == 1
        assert excluded["already_passed"] == 1
        assert excluded["passed_you"] == 1
        assert excluded["incognito"] == 1

    def test_unmatched_partner_stays_hidden(self, engine, seed):
        """Ending a match doesn't put the partner back in the feed."""
        seed("viewer")
        seed("ex")
        engine.record_like("viewer", "ex")
        engine.record_like("ex", "viewer")
        engine.unmatch("viewer", "ex")
        assert _ids(engine.get_discovery_feed("viewer")) == []

    def test_dealbreakers_rejected_and_counted(self, engine, seed):
        """Profiles failing a rule are dropped and counted by reason."""
        seed(
            "viewer",
            preferences=Preferences(age_min=25, wants_children=True, relationship_type="romantic"),
        )
        seed("ok", preferences=Preferences(wants_children=True))
        seed("no_kids", preferences=Preferences(wants_children=False))
        seed("friends_only", preferences=Preferences(relationship_type="platonic"))
        seed("too_young", age=19, preferences=Preferences())
        seed("picky", preferences=Preferences(age_max=25))

        page = engine.get_discovery_feed("viewer")

        assert _ids(page) == ["ok"]
        assert page.metadata["rejected"] == {
            "children_dealbreaker": 1,
            "relationship_type_dealbreaker": 1,
            "age_out_of_range": 2,
        }

    def test_preferred_city_overrides_radius(self, engine, seed):
        """A candidate in one of the viewer's preferred cities is shown past the radius."""
        los_angeles = Location(latitude=34.0522, longitude=-118.2437, city="Los Angeles", state="CA")
        seed("viewer", preferences=Preferences(max_distance_miles=50, preferred_cities=["Los Angeles, CA"]))
        seed("angeleno", location=los_angeles)
        seed("far_away", location=Location(latitude=47.6062, longitude=-122.3321, city="Seattle", state="WA"))

        page = engine.get_discovery_feed("viewer")

        assert _ids(page) == ["angeleno"]
        assert page.metadata["rejected"] == {"distance_exceeded": 1}

    def test_candidate_without_preferences_is_flagged(self, engine, store, seed, profile_factory):
        """Missing candidate preferences mean no constraint, with a data-quality flag."""
        seed("viewer")
        store.add_profile(profile_factory("loner"))
        page = engine.get_discovery_feed("viewer")
        assert _ids(page) == ["loner"]
        assert "missing_preferences" in page.profiles[0].data_quality_flags
        assert page.metadata["data_quality"]["missing_preferences"] == 1

    def test_hidden_viewer_gets_empty_feed(self, engine, seed):
        """A viewer who is hidden from others doesn't browse either."""
        seed("viewer", incognito_mode=True)
        seed("other")
        page = engine.get_discovery_feed("viewer")
        assert page.profiles == []
        assert page.next_cursor is None
        assert page.metadata["viewer_hidden"] == "incognito"


class TestResultShape:
    """Test the per-profile result fields and metadata."""

    def test_distance_and_label(self, engine, seed):
        """Results carry rounded distance in miles and a score label."""
        seed("viewer", location=SF)
        seed("oakland", location=OAKLAND)
        item = engine.get_discovery_feed("viewer").profiles[0]

        assert item.distance_miles == round(distance_between(SF, OAKLAND), 1)
        assert 5 < item.distance_miles < 12
        assert item.compatibility_label == compatibility_label(item.score)
        assert item.liked_you is False

    def test_unknown_location_has_no_distance(self, engine, seed):
        """Missing coordinates give no distance and a data-quality flag."""
        seed("viewer", location=SF, preferences=Preferences(max_distance_miles=10))
        seed("nowhere", location=None)
        item = engine.get_discovery_feed("viewer").profiles[0]
        assert item.distance_miles is None
        assert "missing_coordinates" in item.data_quality_flags

    def test_metadata_counts(self, engine, crowd):
        """Metadata reports pool and result sizes."""
        page = engine.get_discovery_feed("viewer", page_size=10)
        assert page.metadata["success"] is True
        assert page.metadata["pool_size"] == 25
        assert page.metadata["eligible_count"] == 25
        assert page.metadata["returned"] == 10
        assert page.metadata["pool_truncated"] is False


class TestErrors:
    """Test error propagation."""

    def test_unknown_viewer(self, engine):
        """A missing viewer raises ProfileNotFoundError."""
        with pytest.raises(ProfileNotFoundError):
            engine.get_discovery_feed("nobody")

    def test_viewer_without_preferences(self, engine, store, profile_factory):
        """A viewer with no preferences document raises ProfileNotFoundError."""
        store.add_profile(profile_factory("viewer"))
        with pytest.raises(ProfileNotFoundError) as exc_info:
            engine.get_discovery_feed("viewer")
        assert exc_info.value.what == "preferences"

    @pytest.mark.parametrize("page_size", [0, -1, 101])
    def test_bad_page_size(self, engine, crowd, page_size):
        """Page sizes outside 1..MAX_PAGE_SIZE are rejected."""
        with pytest.raises(InvalidInputError):
            engine.get_discovery_feed("viewer", page_size=page_size)

    def test_bad_cursor(self, engine, crowd):
        """A garbage cursor raises InvalidCursorError."""
        with pytest.raises(InvalidCursorError):
            engine.get_discovery_feed("viewer", cursor="garbage!!")

    @pytest.mark.parametrize("as_of", [1e300, 10**400, -1e18])
    def test_cursor_clock_out_of_range(self, engine, crowd, as_of):
        """A cursor whose scoring time cannot be a datetime is a bad cursor, not a crash."""
        token = encode_cursor(FeedCursor(as_of, 0, 0.5, None, "c00"))
        with pytest.raises(InvalidCursorError):
            engine.get_discovery_feed("viewer", cursor=token)

    def test_store_failure(self, settings, clock):
        """Store errors propagate as StoreUnavailableError."""
        broken = MagicMock()
        broken.get_profile.side_effect = StoreUnavailableError("firestore down")
        engine = MatchingEngine(store=broken, settings=settings, notifier=MagicMock(), clock=clock)
        with pytest.raises(StoreUnavailableError):
            engine.get_discovery_feed("viewer")

    def test_slow_store_times_out(self, clock, crowd, store):
        """Fan-out reads that outlive the feed timeout raise StoreUnavailableError."""

        class SlowStore(InMemoryStore):
            def get_exclusion_set(self, viewer_id):
                time.sleep(1.0)
                return super().get_exclusion_set(viewer_id)

        slow = SlowStore()
        for profile_id in ["viewer"] + crowd:
            slow.add_profile(store.get_profile(profile_id), store.get_preferences(profile_id))

        engine = MatchingEngine(
            store=slow, settings=_settings(FEED_TIMEOUT=0.05), notifier=MagicMock(), clock=clock
        )
        with pytest.raises(StoreUnavailableError):
            engine.get_discovery_feed("viewer")

    def test_graph_reports_error_in_state(self, store, settings, clock):
        """The compiled graph records failures instead of raising."""
        graph = create_discovery_graph(store, settings=settings, clock=clock)
        final = graph.invoke({"viewer_id": "nobody"})
        assert "not found" in final["error"]
        assert isinstance(final["exception"], ProfileNotFoundError)
        assert final["response_metadata"]["success"] is False


class TestPoolCap:
    """Test the candidate pool cap."""

    def test_truncated_pool_reported(self, store, notifier, clock, crowd):
        """A capped pool is reported in the metadata."""
        engine = MatchingEngine(
            store=store, settings=_settings(MAX_CANDIDATE_POOL=5), notifier=notifier, clock=clock
        )
        page = engine.get_discovery_feed("viewer")
        assert len(page.profiles) == 5
        assert page.metadata["pool_truncated"] is True
        assert page.metadata["pool_size"] == 5
