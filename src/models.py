"""Data models for the vibe place-discovery pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


PERSONALITY_TYPES = ("Adventurous", "Chill", "Curious", "Spiritual", "Creative", "Social")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class UserLocation:
    """Precise caller position, optionally labelled with the detected city."""

    lat: float
    lng: float
    address: Optional[str] = None
    city: Optional[str] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


@dataclass(frozen=True)
class Profile:
    personality_type: str
    preferred_place_types: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SearchRequest:
    city: str
    category: str
    profile: Profile
    origin: Optional[UserLocation] = None


@dataclass
class Candidate:
    provider_id: str
    name: str
    coordinates: Coordinates
    rating: Optional[float] = None
    price_level: Optional[int] = None
    types: list[str] = field(default_factory=list)
    photo_ref: Optional[str] = None
    vicinity: Optional[str] = None


@dataclass
class PlaceReview:
    author: str
    rating: Optional[float]
    text: str
    time: int  # epoch seconds
    profile_photo: Optional[str] = None


@dataclass
class CandidateDetails:
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    reviews: list[PlaceReview] = field(default_factory=list)
    open_now: Optional[bool] = None
    weekday_text: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)


@dataclass
class DistanceElement:
    distance_text: str
    travel_time_text: str
    ok: bool


@dataclass
class SupplementaryData:
    website: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None


@dataclass
class Enrichment:
    website: Optional[str] = None
    phone: Optional[str] = None
    reviews_text: list[str] = field(default_factory=list)
    opening_hours_today: Optional[str] = None
    working_days: list[str] = field(default_factory=list)
    distance_text: Optional[str] = None
    travel_time_text: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class Review:
    id: str
    author: str
    rating: Optional[float]
    text: str
    time: str
    profile_photo: Optional[str] = None


@dataclass(frozen=True)
class VibeResult:
    id: str
    name: str
    category: str
    rating: float
    distance: str
    travel_time: str
    image: str
    vibe_score: int
    tags: list[str]
    tagline: str
    vibe_description: str
    emojis: list[str]
    coordinates: Coordinates
    address: str
    opening_hours: str
    working_days: list[str]
    directions_url: str
    website: Optional[str] = None
    phone: Optional[str] = None
    price_level: Optional[int] = None
    about: Optional[str] = None
    reviews: list[Review] = field(default_factory=list)


@dataclass
class SearchOutcome:
    places: list[VibeResult]
    total: int
    message: Optional[str] = None
    origin: Optional[UserLocation] = None


@dataclass
class LocationPrediction:
    place_id: str
    description: str
    main_text: str
    secondary_text: str
    types: list[str] = field(default_factory=list)


@dataclass
class ReverseGeocodeResult:
    lat: float
    lng: float
    address: str
    city: str
    warning: Optional[str] = None
