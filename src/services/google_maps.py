from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests
from loguru import logger

from config import Configuration
from models import (
    Candidate,
    CandidateDetails,
    Coordinates,
    DistanceElement,
    LocationPrediction,
    PlaceReview,
    ReverseGeocodeResult,
)


class GoogleMapsError(RuntimeError):
    pass


@dataclass
class _RetryPolicy:
    retries: int = 1
    base_delay: float = 0.5


DETAIL_FIELDS = (
    "name",
    "rating",
    "formatted_phone_number",
    "international_phone_number",
    "opening_hours",
    "website",
    "reviews",
    "photos",
    "formatted_address",
    "geometry",
    "price_level",
    "types",
)

UNKNOWN_ADDRESS = "Unknown address"
UNKNOWN_CITY = "Unknown City"


def _as_float(value: Any) -> Optional[float]:
    return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None


def _parse_candidate(result: dict) -> Optional[Candidate]:
    place_id = result.get("place_id")
    location = (result.get("geometry") or {}).get("location") or {}
    lat, lng = location.get("lat"), location.get("lng")
    if not place_id or lat is None or lng is None:
        return None
    photos = result.get("photos") or []
    price_level = result.get("price_level")
    return Candidate(
        provider_id=str(place_id),
        name=str(result.get("name") or "Unnamed place"),
        coordinates=Coordinates(lat=float(lat), lng=float(lng)),
        rating=_as_float(result.get("rating")),
        price_level=int(price_level) if isinstance(price_level, int) else None,
        types=[str(t) for t in (result.get("types") or [])],
        photo_ref=(photos[0].get("photo_reference") if photos else None) or None,
        vicinity=result.get("vicinity") or result.get("formatted_address") or None,
    )


def _parse_details(result: dict) -> CandidateDetails:
    hours = result.get("opening_hours") or {}
    reviews = [
        PlaceReview(
            author=str(r.get("author_name") or "Anonymous"),
            rating=_as_float(r.get("rating")),
            text=str(r.get("text") or ""),
            time=int(r.get("time") or 0),
            profile_photo=r.get("profile_photo_url") or None,
        )
        for r in (result.get("reviews") or [])
    ]
    open_now = hours.get("open_now")
    return CandidateDetails(
        name=result.get("name"),
        formatted_address=result.get("formatted_address") or None,
        website=result.get("website") or None,
        phone=result.get("formatted_phone_number") or result.get("international_phone_number") or None,
        reviews=reviews,
        open_now=open_now if isinstance(open_now, bool) else None,
        weekday_text=[str(x) for x in (hours.get("weekday_text") or [])],
        types=[str(t) for t in (result.get("types") or [])],
    )


def _city_from_components(components: List[dict]) -> str:
    def find(kind: str) -> Optional[str]:
        for comp in components:
            if kind in (comp.get("types") or []):
                return comp.get("long_name")
        return None

    return (
        find("locality")
        or find("administrative_area_level_1")
        or find("administrative_area_level_2")
        or UNKNOWN_CITY
    )


class GoogleMapsClient:
    """Geocoding, nearby search, place details and distance matrix over the Google Maps web APIs.

    Public methods never raise for upstream trouble: they log and return the
    typed fallback (``None`` or an empty list) so callers can degrade.
    """

    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.base = cfg.google_base_url.rstrip("/")
        self.session = session or requests.Session()
        self._retry = _RetryPolicy(retries=max(cfg.google_retries, 0))
        self._cache_ttl = 60 * 30  # 30 minutes
        self._cache_max = 128
        self._cache_lock = threading.Lock()
        self._geocode_cache: OrderedDict[str, Tuple[float, Optional[Coordinates]]] = OrderedDict()
        self._places_cache: OrderedDict[str, Tuple[float, List[Candidate]]] = OrderedDict()
        self._details_cache: OrderedDict[str, Tuple[float, CandidateDetails]] = OrderedDict()

    def _cache_get(self, cache: OrderedDict[str, Tuple[float, Any]], key: str):  # type: ignore[valid-type]
        with self._cache_lock:
            entry = cache.get(key)
            if not entry:
                return None
            ts, value = entry
            if time.time() - ts > self._cache_ttl:
                cache.pop(key, None)
                return None
            cache.move_to_end(key)
        logger.debug("cache hit {}", key)
        return value

    def _cache_set(self, cache: OrderedDict[str, Tuple[float, Any]], key: str, value):  # type: ignore[valid-type]
        with self._cache_lock:
            if len(cache) >= self._cache_max:
                cache.popitem(last=False)
            cache[key] = (time.time(), value)

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.base}{path}"
        params = {**params, "key": self.cfg.google_api_key}
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self.session.get(url, params=params, timeout=self.cfg.google_timeout)
            except requests.RequestException as exc:  # network error
                if attempt <= self._retry.retries:
                    time.sleep(self._retry.base_delay * attempt)
                    continue
                raise GoogleMapsError(f"request error: {exc}")

            if resp.status_code in (429, 500, 502, 503, 504):
                if attempt <= self._retry.retries:
                    time.sleep(self._retry.base_delay * attempt)
                    continue
                raise GoogleMapsError(f"upstream {resp.status_code}: {resp.text[:300]}")

            if not resp.ok:
                raise GoogleMapsError(f"upstream {resp.status_code}: {resp.text[:300]}")

            try:
                return resp.json()
            except ValueError:
                raise GoogleMapsError("invalid json response")

    def _get_ok(self, path: str, params: dict, *, label: str) -> Optional[dict]:
        """Fetch ``path`` and return the payload only when the provider status is OK."""
        try:
            payload = self._get(path, params)
        except GoogleMapsError as exc:
            logger.warning("{} failed: {}", label, exc)
            return None
        status = payload.get("status")
        if status != "OK":
            if status == "ZERO_RESULTS":
                logger.debug("{} returned no results", label)
            else:
                logger.warning("{} status={} {}", label, status, payload.get("error_message") or "")
            return None
        return payload

    def geocode(self, text: str) -> Optional[Coordinates]:
        """Resolve free text to coordinates; ``None`` means not found or unavailable."""
        text = (text or "").strip()
        if not text:
            return None
        key = f"geocode:{text.lower()}"
        cached = self._cache_get(self._geocode_cache, key)
        if cached is not None:
            return cached
        payload = self._get_ok("/maps/api/geocode/json", {"address": text}, label="geocode")
        if payload is None:
            return None
        results = payload.get("results") or []
        location = ((results[0].get("geometry") or {}).get("location") or {}) if results else {}
        if location.get("lat") is None or location.get("lng") is None:
            return None
        coords = Coordinates(lat=float(location["lat"]), lng=float(location["lng"]))
        self._cache_set(self._geocode_cache, key, coords)
        return coords

    def reverse_geocode(self, lat: float, lng: float) -> ReverseGeocodeResult:
        payload = self._get_ok("/maps/api/geocode/json", {"latlng": f"{lat},{lng}"}, label="reverse geocode")
        results = (payload or {}).get("results") or []
        if not results:
            return ReverseGeocodeResult(
                lat=lat,
                lng=lng,
                address=UNKNOWN_ADDRESS,
                city=UNKNOWN_CITY,
                warning="Reverse-geocode failed; location details are unavailable.",
            )
        first = results[0]
        return ReverseGeocodeResult(
            lat=lat,
            lng=lng,
            address=first.get("formatted_address") or UNKNOWN_ADDRESS,
            city=_city_from_components(first.get("address_components") or []),
        )

    def autocomplete(self, text: str, types: str = "(cities)") -> List[LocationPrediction]:
        if len((text or "").strip()) < 2:
            return []
        payload = self._get_ok(
            "/maps/api/place/autocomplete/json", {"input": text, "types": types}, label="autocomplete"
        )
        predictions: list[LocationPrediction] = []
        for item in (payload or {}).get("predictions") or []:
            fmt = item.get("structured_formatting") or {}
            predictions.append(
                LocationPrediction(
                    place_id=str(item.get("place_id") or ""),
                    description=str(item.get("description") or ""),
                    main_text=str(fmt.get("main_text") or ""),
                    secondary_text=str(fmt.get("secondary_text") or ""),
                    types=[str(t) for t in (item.get("types") or [])],
                )
            )
        return predictions

    def search(
        self,
        location: str,
        place_type: Optional[str] = None,
        origin: Optional[Coordinates] = None,
        radius_m: Optional[int] = None,
        keyword: Optional[str] = None,
    ) -> List[Candidate]:
        """Nearby search around ``origin``, geocoding ``location`` when no origin is given.

        An empty list covers both "nothing found" and "provider unavailable".
        """
        if origin is None:
            origin = self.geocode(location)
            if origin is None:
                return []
        radius = radius_m or self.cfg.search_radius_m
        key = f"nearby:{place_type or '*'}:{keyword or ''}:{origin.lat:.4f},{origin.lng:.4f}:{radius}"
        cached = self._cache_get(self._places_cache, key)
        if cached is not None:
            return list(cached)
        params: dict[str, Any] = {"location": f"{origin.lat},{origin.lng}", "radius": radius}
        if place_type:
            params["type"] = place_type
        if keyword:
            params["keyword"] = keyword
        payload = self._get_ok("/maps/api/place/nearbysearch/json", params, label="nearby search")
        if payload is None:
            return []
        results = [c for c in (_parse_candidate(r) for r in payload.get("results") or []) if c is not None]
        self._cache_set(self._places_cache, key, list(results))
        logger.debug("nearby search type={} found={}", place_type, len(results))
        return results

    def details(self, place_id: str) -> Optional[CandidateDetails]:
        """Extended record for one place; ``None`` means the candidate should be skipped."""
        cached = self._cache_get(self._details_cache, place_id)
        if cached is not None:
            return cached
        payload = self._get_ok(
            "/maps/api/place/details/json",
            {"place_id": place_id, "fields": ",".join(DETAIL_FIELDS)},
            label=f"place details {place_id}",
        )
        if payload is None or not isinstance(payload.get("result"), dict):
            return None
        details = _parse_details(payload["result"])
        self._cache_set(self._details_cache, place_id, details)
        return details

    def distance_matrix(
        self, origin: Coordinates, destinations: List[Coordinates]
    ) -> Optional[List[DistanceElement]]:
        """One element per destination, in destination order; ``None`` when the call fails."""
        if not destinations:
            return []
        params = {
            "origins": f"{origin.lat},{origin.lng}",
            "destinations": "|".join(f"{d.lat},{d.lng}" for d in destinations),
            "units": "metric",
        }
        payload = self._get_ok("/maps/api/distancematrix/json", params, label="distance matrix")
        if payload is None:
            return None
        rows = payload.get("rows") or []
        elements = (rows[0].get("elements") or []) if rows else []
        out: list[DistanceElement] = []
        for idx in range(len(destinations)):
            element = elements[idx] if idx < len(elements) else {}
            if element.get("status") == "OK":
                out.append(
                    DistanceElement(
                        distance_text=str((element.get("distance") or {}).get("text") or ""),
                        travel_time_text=str((element.get("duration") or {}).get("text") or ""),
                        ok=True,
                    )
                )
            else:
                out.append(DistanceElement(distance_text="", travel_time_text="", ok=False))
        return out

    def photo_url(self, photo_ref: str, max_width: int = 400) -> str:
        return (
            f"{self.base}/maps/api/place/photo?maxwidth={max_width}"
            f"&photo_reference={photo_ref}&key={self.cfg.google_api_key}"
        )

    @staticmethod
    def directions_url(destination: Coordinates, origin: Optional[Coordinates] = None) -> str:
        base = "https://www.google.com/maps/dir/"
        if origin:
            return f"{base}{origin.lat},{origin.lng}/{destination.lat},{destination.lng}"
        return f"{base}/{destination.lat},{destination.lng}"


_SHARED: Dict[Tuple[Any, ...], GoogleMapsClient] = {}
_SHARED_LOCK = threading.Lock()


def shared_client(cfg: Configuration) -> GoogleMapsClient:
    """Process-wide client for each set of connection settings; its caches persist across requests."""
    key = (cfg.google_api_key, cfg.google_base_url, cfg.google_timeout, cfg.google_retries, cfg.search_radius_m)
    with _SHARED_LOCK:
        client = _SHARED.get(key)
        if client is None:
            client = _SHARED[key] = GoogleMapsClient(cfg)
        return client
