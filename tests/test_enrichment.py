from __future__ import annotations

import asyncio
import time
from datetime import date
from typing import Dict, List, Optional

import pytest

from config import Configuration
from models import (
    Candidate,
    CandidateDetails,
    Coordinates,
    DistanceElement,
    PlaceReview,
    Profile,
    SearchRequest,
    SupplementaryData,
    UserLocation,
)
from services.enrichment import (
    NO_RESULTS_MESSAGE,
    PLACEHOLDER_IMAGE,
    SearchInputError,
    VibeSearchPipeline,
    build_pipeline,
)
from services.google_maps import GoogleMapsClient
from services.narrative import TemplateNarrator, fallback_emojis, fallback_tagline


WEEK = [
    "Monday: 9:00 AM - 9:00 PM",
    "Tuesday: 9:00 AM - 9:00 PM",
    "Wednesday: Closed",
    "Thursday: 9:00 AM - 9:00 PM",
    "Friday: 9:00 AM - 11:00 PM",
    "Saturday: 8:00 AM - 11:00 PM",
    "Sunday: 8:00 AM - 6:00 PM",
]


def _candidate(idx: int, rating: Optional[float] = 4.0, photo_ref: Optional[str] = "ref") -> Candidate:
    return Candidate(
        provider_id=f"p{idx}",
        name=f"Place {idx}",
        coordinates=Coordinates(lat=18.5 + idx / 100, lng=73.8),
        rating=rating,
        price_level=2,
        types=["cafe"],
        photo_ref=photo_ref,
        vicinity=f"Street {idx}, Pune",
    )


def _details(**overrides) -> CandidateDetails:
    base = dict(
        name="x",
        formatted_address="Lane 5, Koregaon Park, Pune",
        website="https://example.com",
        phone="+91 20 0000 0000",
        reviews=[PlaceReview(author="Asha", rating=5.0, text="cozy and quiet", time=1700000000)],
        open_now=True,
        weekday_text=list(WEEK),
    )
    base.update(overrides)
    return CandidateDetails(**base)


class FakePlaces:
    def __init__(self, candidates: List[Candidate], details: Optional[Dict[str, object]] = None, distances="auto"):
        self.candidates = candidates
        self.details_map = details or {}
        self.distances = distances
        self.search_calls: list = []
        self.distance_calls: list = []

    def search(self, city, place_type, origin, radius):
        self.search_calls.append((city, place_type, origin, radius))
        return list(self.candidates)

    def details(self, place_id):
        value = self.details_map.get(place_id, _details())
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value()
        return value

    def distance_matrix(self, origin, destinations):
        self.distance_calls.append((origin, list(destinations)))
        if self.distances == "auto":
            return [DistanceElement(f"{i + 1}.0 km", f"{i + 5} mins", True) for i in range(len(destinations))]
        return self.distances

    def photo_url(self, ref, max_width=400):
        return f"https://photos.test/{ref}?w={max_width}"

    directions_url = staticmethod(GoogleMapsClient.directions_url)


class FakeContent:
    def __init__(self, data: Optional[SupplementaryData] = None, reviews: Optional[List[str]] = None):
        self.data = data or SupplementaryData(website="https://web.test", phone="+91 99999 88888", description="About it")
        self.reviews = reviews or []
        self.fetch_calls: list = []

    def fetch(self, name, address=None):
        self.fetch_calls.append((name, address))
        return self.data

    def supplementary_reviews(self, name, category):
        return list(self.reviews)


class SlowNarrator(TemplateNarrator):
    def tagline(self, name, category, reviews, personality_type):
        time.sleep(0.6)
        return "too late"


def _pipeline(places, content=None, narrator=None, **cfg) -> VibeSearchPipeline:
    return VibeSearchPipeline(
        Configuration(**cfg),
        places=places,
        content=content or FakeContent(),
        narrator=narrator or TemplateNarrator(),
        today=lambda: date(2024, 1, 3),  # a Wednesday
    )


def _request(city="Pune", category="cafes", personality="Chill", origin=None) -> SearchRequest:
    return SearchRequest(city=city, category=category, profile=Profile(personality_type=personality), origin=origin)


HERE = UserLocation(lat=18.52, lng=73.85, address="FC Road", city="Pune")


def test_no_candidates_returns_message() -> None:
    outcome = asyncio.run(_pipeline(FakePlaces([])).search(_request()))
    assert outcome.places == []
    assert outcome.total == 0
    assert outcome.message == NO_RESULTS_MESSAGE


@pytest.mark.parametrize("city,category", [("", "cafes"), ("Pune", ""), ("   ", "parks")])
def test_missing_city_or_category_is_rejected(city, category) -> None:
    places = FakePlaces([_candidate(0)])
    with pytest.raises(SearchInputError, match="City and category are required"):
        asyncio.run(_pipeline(places).search(_request(city=city, category=category)))
    assert places.search_calls == []


def test_results_capped_and_sorted() -> None:
    candidates = [_candidate(i, rating=3.0 + (i % 5) * 0.4) for i in range(12)]
    places = FakePlaces(candidates)

    outcome = asyncio.run(_pipeline(places).search(_request(origin=HERE)))

    assert outcome.total == len(outcome.places) == 8
    assert {p.id for p in outcome.places} <= {f"p{i}" for i in range(8)}
    scores = [p.vibe_score for p in outcome.places]
    assert scores == sorted(scores, reverse=True)
    assert len(places.distance_calls) == 1
    assert len(places.distance_calls[0][1]) == 10


def test_distances_line_up_with_candidates() -> None:
    places = FakePlaces([_candidate(i) for i in range(3)])
    outcome = asyncio.run(_pipeline(places).search(_request(origin=HERE)))
    by_id = {p.id: p for p in outcome.places}
    assert by_id["p0"].distance == "1.0 km"
    assert by_id["p2"].distance == "3.0 km"
    assert by_id["p2"].travel_time == "7 mins"


def test_distance_unavailable_gives_placeholders() -> None:
    places = FakePlaces([_candidate(0), _candidate(1)], distances=None)
    outcome = asyncio.run(_pipeline(places).search(_request(origin=HERE)))
    assert outcome.total == 2
    for place in outcome.places:
        assert place.distance == "Distance unavailable"
        assert place.travel_time == "Time unavailable"


def test_no_origin_skips_distance_matrix() -> None:
    places = FakePlaces([_candidate(0)])
    outcome = asyncio.run(_pipeline(places).search(_request()))
    assert places.distance_calls == []
    assert outcome.places[0].distance == "Distance unavailable"
    assert places.search_calls[0][2] is None


def test_missing_details_drops_only_that_candidate() -> None:
    places = FakePlaces([_candidate(i) for i in range(8)], details={"p3": None})
    outcome = asyncio.run(_pipeline(places).search(_request()))
    assert outcome.total == 7
    assert "p3" not in {p.id for p in outcome.places}


def test_failing_candidate_is_isolated() -> None:
    places = FakePlaces([_candidate(i) for i in range(4)], details={"p1": RuntimeError("boom")})
    outcome = asyncio.run(_pipeline(places).search(_request()))
    assert sorted(p.id for p in outcome.places) == ["p0", "p2", "p3"]


def test_slow_candidate_is_dropped() -> None:
    def slow():
        time.sleep(0.6)
        return _details()

    places = FakePlaces([_candidate(0), _candidate(1)], details={"p0": slow})
    outcome = asyncio.run(_pipeline(places, candidate_timeout=0.25).search(_request()))
    assert [p.id for p in outcome.places] == ["p1"]


def test_equal_scores_keep_provider_order() -> None:
    places = FakePlaces([_candidate(i) for i in range(5)])
    outcome = asyncio.run(_pipeline(places).search(_request()))
    assert len({p.vibe_score for p in outcome.places}) == 1
    assert [p.id for p in outcome.places] == ["p0", "p1", "p2", "p3", "p4"]


def test_supplementary_fetch_only_when_something_is_missing() -> None:
    content = FakeContent()
    places = FakePlaces([_candidate(0)])
    outcome = asyncio.run(_pipeline(places, content=content).search(_request()))
    assert content.fetch_calls == []
    assert outcome.places[0].website == "https://example.com"
    assert outcome.places[0].about is None

    content = FakeContent()
    places = FakePlaces([_candidate(0)], details={"p0": _details(phone=None)})
    outcome = asyncio.run(_pipeline(places, content=content).search(_request()))
    place = outcome.places[0]
    assert content.fetch_calls == [("Place 0", "Lane 5, Koregaon Park, Pune")]
    assert place.website == "https://example.com"
    assert place.phone == "+91 99999 88888"
    assert place.about == "About it"


def test_supplementary_reviews_feed_scoring_after_provider_reviews() -> None:
    content = FakeContent(reviews=["lovely and relaxing", "peaceful garden"])
    places = FakePlaces([_candidate(0)], details={"p0": _details(reviews=[])})
    outcome = asyncio.run(_pipeline(places, content=content).search(_request()))
    place = outcome.places[0]
    # rating 4.0 -> +10, "relaxing" and "peaceful" -> +6, two reviews -> +4, open -> +5
    assert place.vibe_score == 85
    assert place.reviews == []


def test_origin_used_only_when_city_matches() -> None:
    places = FakePlaces([_candidate(0)])
    asyncio.run(_pipeline(places).search(_request(city="pune", origin=HERE)))
    assert places.search_calls[0][2] == Coordinates(lat=18.52, lng=73.85)

    elsewhere = UserLocation(lat=19.07, lng=72.87, city="Mumbai")
    places = FakePlaces([_candidate(0)])
    outcome = asyncio.run(_pipeline(places).search(_request(city="Pune", origin=elsewhere)))
    assert places.search_calls[0][2] is None
    assert len(places.distance_calls) == 1
    assert outcome.origin == elsewhere


def test_assembled_record_fields() -> None:
    places = FakePlaces([_candidate(0, rating=None, photo_ref=None), _candidate(1)])
    outcome = asyncio.run(_pipeline(places, photo_max_width=600).search(_request(origin=HERE)))
    by_id = {p.id: p for p in outcome.places}

    bare = by_id["p0"]
    assert bare.rating == 4.0
    assert bare.image == PLACEHOLDER_IMAGE
    assert bare.opening_hours == "Wednesday: Closed"
    assert bare.working_days == WEEK
    assert bare.category == "cafes"
    assert bare.address == "Lane 5, Koregaon Park, Pune"
    assert bare.directions_url == "https://www.google.com/maps/dir/18.52,73.85/18.5,73.8"
    assert bare.tagline == bare.vibe_description
    assert 3 <= len(bare.emojis) <= 5
    assert bare.reviews[0].id == "p0_1700000000"
    assert bare.reviews[0].time == "2023-11-14"

    assert by_id["p1"].image == "https://photos.test/ref?w=600"


def test_missing_hours_placeholder() -> None:
    places = FakePlaces([_candidate(0)], details={"p0": _details(weekday_text=[])})
    outcome = asyncio.run(_pipeline(places).search(_request()))
    assert outcome.places[0].opening_hours == "Hours not available"
    assert outcome.places[0].working_days == []


def test_slow_narrator_falls_back() -> None:
    places = FakePlaces([_candidate(0)])
    outcome = asyncio.run(_pipeline(places, narrator=SlowNarrator(), llm_timeout=0.15).search(_request()))
    assert outcome.places[0].tagline == fallback_tagline("Place 0")


class BrokenContent:
    def fetch(self, name, address=None):
        raise ValueError("Invalid IPv6 URL")

    def supplementary_reviews(self, name, category):
        raise ValueError("Invalid IPv6 URL")


class BrokenNarrator:
    def tagline(self, name, category, reviews, personality_type):
        raise RuntimeError("provider down")

    def emojis(self, name, category, personality_type, reviews):
        raise RuntimeError("provider down")


def test_supplementary_errors_keep_the_candidate() -> None:
    places = FakePlaces([_candidate(0)], details={"p0": _details(phone=None)})
    outcome = asyncio.run(_pipeline(places, content=BrokenContent()).search(_request()))
    assert outcome.total == 1
    place = outcome.places[0]
    assert place.website == "https://example.com"
    assert place.phone is None
    assert place.about is None


def test_narrator_errors_fall_back() -> None:
    places = FakePlaces([_candidate(0)])
    outcome = asyncio.run(_pipeline(places, narrator=BrokenNarrator()).search(_request()))
    place = outcome.places[0]
    assert place.tagline == fallback_tagline("Place 0")
    assert place.emojis == fallback_emojis()


def test_place_search_errors_propagate() -> None:
    class ExplodingPlaces(FakePlaces):
        def search(self, city, place_type, origin, radius):
            raise ValueError("could not convert string to float: 'n/a'")

    with pytest.raises(ValueError):
        asyncio.run(_pipeline(ExplodingPlaces([])).search(_request()))


def test_built_pipelines_share_the_maps_client() -> None:
    cfg = Configuration(google_api_key="test-key")
    assert build_pipeline(cfg).places is build_pipeline(Configuration(google_api_key="test-key")).places
    assert build_pipeline(Configuration(google_api_key="other-key")).places is not build_pipeline(cfg).places
