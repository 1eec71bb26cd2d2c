"""Profile and preference models read by the matching pipeline.

Store documents use camelCase keys (``incognitoMode``, ``lastActiveAt``);
the models accept either spelling so the same types serve Firestore documents,
API payloads and test fixtures.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_AGE_MIN = 18
DEFAULT_AGE_MAX = 100


class StoreModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase document keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RelationshipType(str, Enum):
    PLATONIC = "platonic"
    ROMANTIC = "romantic"
    OPEN = "open"
    UNSET = "unset"


class Location(StoreModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Profile(StoreModel):
    """A discoverable profile. Owned by its user, read-only to matching."""

    id: str
    age: Optional[int] = None
    gender: Optional[str] = None
    location: Optional[Location] = None

    # Visibility gates.
    incognito_mode: bool = False
    is_active: bool = True
    is_banned: bool = False
    under_photo_review: bool = False

    last_active_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    # Completeness indicators.
    photo_count: int = 0
    bio: Optional[str] = None
    prompt_answers: list[str] = Field(default_factory=list)

    interests: list[str] = Field(default_factory=list)

    @field_validator("prompt_answers", "interests", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return [] if value is None else value


class Preferences(StoreModel):
    """Discovery preferences, 1:1 with a profile.

    Every field is optional; an absent value means "no constraint" from that
    side rather than a sentinel.
    """

    age_min: Optional[int] = None
    age_max: Optional[int] = None
    gender_preference: list[str] = Field(default_factory=list)
    wants_children: Optional[bool] = None
    relationship_type: RelationshipType = RelationshipType.UNSET
    max_distance_miles: Optional[float] = None
    search_globally: bool = False
    preferred_cities: list[str] = Field(default_factory=list)

    @field_validator("gender_preference", "preferred_cities", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return [] if value is None else value

    @field_validator("wants_children", mode="before")
    @classmethod
    def _unsure_to_none(cls, value):
        if isinstance(value, str) and value.strip().lower() in {"", "unsure", "maybe"}:
            return None
        return value

    @field_validator("relationship_type", mode="before")
    @classmethod
    def _missing_relationship_type(cls, value):
        if value is None or value == "":
            return RelationshipType.UNSET
        return value

    @property
    def effective_age_min(self) -> int:
        return self.age_min if self.age_min is not None else DEFAULT_AGE_MIN

    @property
    def effective_age_max(self) -> int:
        return self.age_max if self.age_max is not None else DEFAULT_AGE_MAX
