"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
  - Test configuration (env vars set before src.config is imported)
  - An in-memory store, profile factories and a fixed clock
  - A mock Firebase app for Firestore adapter tests
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

# Set before any test module imports src.config, which reads the environment once.
TEST_ENV = {
    "STORE_BACKEND": "memory",
    "FIREBASE_PROJECT_ID": "test-project",
    "GOOGLE_APPLICATION_CREDENTIALS": "/config/test-serviceAccountKey.json",
    "SERVICE_TOKEN": "",
    "LOG_FILE": "",
    "DEBUG": "True",
}
for _key, _value in TEST_ENV.items():
    os.environ[_key] = _value

from src.config import Config
from src.engine import MatchingEngine
from src.models.profile import Location, Preferences, Profile
from src.tools.memory_store import InMemoryStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

SAN_FRANCISCO = Location(latitude=37.7749, longitude=-122.4194, city="San Francisco", state="CA")
OAKLAND = Location(latitude=37.8044, longitude=-122.2712, city="Oakland", state="CA")
LOS_ANGELES = Location(latitude=34.0522, longitude=-118.2437, city="Los Angeles", state="CA")


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Keep the test environment variables in place for the whole session.

    This ensures tests run with predictable configuration and don't
    depend on local .env files.
    """
    for key, value in TEST_ENV.items():
        os.environ[key] = value


def make_profile(profile_id: str, **overrides) -> Profile:
    """Build a complete, visible profile located in San Francisco."""
    fields = {
        "id": profile_id,
        "age": 30,
        "gender": "woman",
        "location": SAN_FRANCISCO,
        "last_active_at": NOW - timedelta(hours=1),
        "created_at": NOW - timedelta(days=30),
        "photo_count": 4,
        "bio": "x" * 150,
        "prompt_answers": ["a", "b", "c"],
        "interests": ["hiking", "music"],
    }
    fields.update(overrides)
    return Profile(**fields)


@pytest.fixture
def profile_factory():
    """Return the make_profile factory."""
    return make_profile


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Config(
        _env_file=None,
        STORE_BACKEND="memory",
        FIREBASE_PROJECT_ID="test-project",
        MATCH_WEBHOOK_URL=None,
        SERVICE_TOKEN="",
    )


@pytest.fixture
def clock():
    """A clock frozen at NOW."""
    return lambda: NOW


@pytest.fixture
def store():
    """An empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def seed(store):
    """
    Add a profile and its preferences to the store.

    Example:
        seed("alice", gender="woman", preferences=Preferences(age_min=25))
    """

    def _seed(profile_id: str, preferences: Preferences = None, **fields) -> Profile:
        profile = make_profile(profile_id, **fields)
        store.add_profile(profile, preferences if preferences is not None else Preferences())
        return profile

    return _seed


@pytest.fixture
def notifier():
    """A notifier double that records match events."""
    mock = MagicMock()
    mock.notify_match.return_value = True
    return mock


@pytest.fixture
def engine(store, settings, notifier, clock):
    """MatchingEngine over the in-memory store with a fixed clock."""
    return MatchingEngine(store=store, settings=settings, notifier=notifier, clock=clock)


@pytest.fixture
def mock_firebase_app(monkeypatch):
    """
    Provide a mock Firebase app for testing.

    Use this fixture in tests that need to mock Firestore calls.
    """
    mock_app = MagicMock()
    mock_db = MagicMock()

    monkeypatch.setattr("firebase_admin._apps", {"[DEFAULT]": mock_app})
    monkeypatch.setattr("firebase_admin.initialize_app", MagicMock(return_value=mock_app))
    monkeypatch.setattr("firebase_admin.firestore.client", MagicMock(return_value=mock_db))

    return {"app": mock_app, "db": mock_db}
