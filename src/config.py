"""
Configuration module for the discovery matching service.

Loads environment variables and provides configuration singletons.
Uses pydantic for validation.
"""

from pydantic_settings import BaseSettings
from typing import Literal, Optional
import os


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All values come from .env file or system environment.
    Type hints provide validation (pydantic converts types automatically).
    """

    # ============================================================
    # STORE CONFIGURATION
    # ============================================================
    STORE_BACKEND: Literal["firestore", "memory"] = "firestore"
    """Which store backs profiles, swipes, matches and blocks. 'memory' is for local dev and tests."""

    FIREBASE_PROJECT_ID: Optional[str] = None
    """Firebase project ID. Required when STORE_BACKEND=firestore."""

    GOOGLE_APPLICATION_CREDENTIALS: str = "/config/serviceAccountKey.json"
    """Path to Firebase service account JSON file."""

    # ============================================================
    # DISCOVERY FEED
    # ============================================================
    MAX_CANDIDATE_POOL: int = 500
    """Maximum candidates fetched per feed request. Profiles beyond the cap are never ranked."""

    DEFAULT_PAGE_SIZE: int = 20
    """Page size used when the caller does not pass one."""

    MAX_PAGE_SIZE: int = 100
    """Largest page size a caller may request."""

    FEED_TIMEOUT: float = 10.0
    """Seconds to wait for the fan-out store reads before giving up."""

    FANOUT_WORKERS: int = 4
    """Threads used for the concurrent viewer/candidates/exclusions reads."""

    SCORING_WORKERS: int = 4
    """Threads used to score large candidate pools."""

    PARALLEL_SCORING_THRESHOLD: int = 200
    """Pools larger than this are scored in parallel."""

    PRIORITIZE_INCOMING_LIKES: bool = False
    """Rank candidates who already liked the viewer ahead of everyone else."""

    # ============================================================
    # SCORING
    # ============================================================
    SCORE_WEIGHT_INTERESTS: float = 0.5
    """Weight of the shared-interests ratio."""

    SCORE_WEIGHT_COMPLETENESS: float = 0.3
    """Weight of candidate profile completeness."""

    SCORE_WEIGHT_RECENCY: float = 0.2
    """Weight of candidate activity recency."""

    PHOTO_TARGET: int = 4
    """Photo count that earns full completeness credit."""

    BIO_TARGET_CHARS: int = 150
    """Bio length that earns full completeness credit."""

    PROMPT_TARGET: int = 3
    """Prompt answers that earn full completeness credit."""

    RECENCY_HALF_LIFE_HOURS: float = 72.0
    """Hours of inactivity after which the recency signal halves."""

    RECENCY_FLOOR: float = 0.1
    """Lowest recency value; dormant profiles stay rankable."""

    RECENCY_BUCKET_SECONDS: int = 3600
    """Scoring clock granularity. Feeds requested within one bucket score identically."""

    # ============================================================
    # NOTIFICATIONS
    # ============================================================
    MATCH_WEBHOOK_URL: Optional[str] = os.getenv("MATCH_WEBHOOK_URL")
    """Endpoint of the notification pipeline that receives 'matched' events. Log-only when unset."""

    # ============================================================
    # SECURITY CONFIGURATION
    # ============================================================
    SERVICE_TOKEN: str = os.getenv("SERVICE_TOKEN", "")
    """Shared secret for authenticating requests from the app backend."""

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    PORT: int = 8000
    """Port to run FastAPI server on. Default: 8000."""

    HOST: str = "0.0.0.0"
    """Host to bind to. 0.0.0.0 = accessible from network."""

    DEBUG: bool = False
    """Enable debug logging. Set True for development, False for production."""

    LOG_FILE: str = "logs/service.log"
    """Rotating log file. Empty string logs to stdout only."""

    class Config:
        """Pydantic configuration."""
        env_file = ".env"  # Read from .env file
        case_sensitive = True  # Variable names are case-sensitive
        extra = "ignore"  # Ignore extra env vars not defined above


# ============================================================
# SINGLETON INSTANCE
# ============================================================
# Load config once at startup, reuse throughout app
config = Config()


# ============================================================
# VALIDATION AT STARTUP
# ============================================================
def validate_config() -> dict:
    """
    Validate that required config values are set.

    Called at app startup to fail fast if config is incomplete.

    Returns:
        dict: Status of each checked area

    Raises:
        ValueError: If config is missing or inconsistent
    """
    errors = []

    if config.STORE_BACKEND == "firestore" and not config.FIREBASE_PROJECT_ID:
        errors.append("FIREBASE_PROJECT_ID is required when STORE_BACKEND=firestore")

    weights = (
        config.SCORE_WEIGHT_INTERESTS,
        config.SCORE_WEIGHT_COMPLETENESS,
        config.SCORE_WEIGHT_RECENCY,
    )
    if any(w < 0 for w in weights):
        errors.append("Scoring weights must not be negative")
    elif sum(weights) <= 0:
        errors.append("At least one scoring weight must be positive")

    if not 0 <= config.RECENCY_FLOOR < 1:
        errors.append("RECENCY_FLOOR must be in [0, 1)")

    if config.RECENCY_HALF_LIFE_HOURS <= 0:
        errors.append("RECENCY_HALF_LIFE_HOURS must be positive")

    if config.DEFAULT_PAGE_SIZE < 1 or config.DEFAULT_PAGE_SIZE > config.MAX_PAGE_SIZE:
        errors.append("DEFAULT_PAGE_SIZE must be between 1 and MAX_PAGE_SIZE")

    if config.MAX_CANDIDATE_POOL < 1:
        errors.append("MAX_CANDIDATE_POOL must be positive")

    if errors:
        raise ValueError(f"Configuration errors:\n" + "\n".join([f"  - {e}" for e in errors]))

    return {
        "store": f"✓ {config.STORE_BACKEND}",
        "firebase": "✓ Configured" if config.FIREBASE_PROJECT_ID else "✗ Not set",
        "candidate_pool": f"✓ {config.MAX_CANDIDATE_POOL}",
        "notifications": "✓ Webhook" if config.MATCH_WEBHOOK_URL else "✗ Log only",
    }


if __name__ == "__main__":
    """Allow testing config by running: python -m src.config"""
    try:
        status = validate_config()
        print("✅ Configuration is valid!")
        print("\nConfiguration Status:")
        for key, value in status.items():
            print(f"  {key}: {value}")
    except ValueError as e:
        print(f"❌ Configuration error:\n{e}")
        exit(1)
