from __future__ import annotations

import re
import threading
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from hello_agents.tools import SearchTool
from loguru import logger

from config import Configuration
from models import SupplementaryData


_CACHE_TTL_SEC = 60 * 60  # 1h
_MAX_REVIEWS = 5
_MAX_SNIPPET = 280

# Hosts that never count as a venue's own website.
_DIRECTORY_HOSTS = (
    "google.com",
    "yelp.com",
    "tripadvisor",
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "wikipedia.org",
    "foursquare.com",
    "yellowpages.com",
    "justdial.com",
    "zomato.com",
)

_REVIEW_HOSTS = ("tripadvisor", "yelp.com", "google.com", "timeout.com", "lonelyplanet.com", "foursquare.com")

_PHONE_PATTERN = re.compile(r"(?<![\w+])(\+?\d[\d\s().-]{7,}\d)")


def _host(url: str) -> str:
    try:
        return (urlparse(url).netloc or "").lower()
    except ValueError:
        return ""


def _name_tokens(name: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", name.lower()) if len(t) > 3]


def _looks_official(url: str, name: str) -> bool:
    host = _host(url)
    if not host or any(d in host for d in _DIRECTORY_HOSTS):
        return False
    tokens = _name_tokens(name)
    return bool(tokens) and all(t in host for t in tokens[:2])


def _extract_phone(text: str) -> Optional[str]:
    match = _PHONE_PATTERN.search(text or "")
    if not match:
        return None
    phone = match.group(1).strip()
    digits = re.sub(r"\D", "", phone)
    return phone if 8 <= len(digits) <= 15 else None


def _clean_snippet(text: str) -> str:
    text = re.sub(r"\s+", " ", text or "").strip()
    if len(text) > _MAX_SNIPPET:
        text = text[: _MAX_SNIPPET - 3].rstrip() + "..."
    return text


def _location_context(address: Optional[str]) -> str:
    if not address:
        return ""
    parts = address.split(",")
    if len(parts) > 1:
        # heuristic: the last 2 parts usually carry the city and region
        return ",".join(parts[-2:]).strip()
    return address.strip()


class WebSupplementarySource:
    """Best-effort venue facts and extra review text pulled from web search results.

    Every failure degrades to an empty result; nothing is raised to the caller.
    """

    def __init__(self, cfg: Configuration, search_tool: Optional[Any] = None) -> None:
        self.cfg = cfg
        self.search = search_tool or SearchTool(backend=cfg.supplementary_backend)
        self._cache: Dict[str, Tuple[float, Any]] = {}

    def _cached(self, key: str):
        entry = self._cache.get(key)
        if entry and (time.time() - entry[0]) < _CACHE_TTL_SEC:
            return entry[1]
        return None

    def _run(self, query: str, max_results: int = 5) -> List[Dict[str, Any]]:
        try:
            payload = self.search.run({
                "input": query,
                "backend": self.cfg.supplementary_backend,
                "mode": "structured",
                "max_results": max_results,
                "fetch_full_page": False,
            })
        except Exception as exc:
            logger.warning("supplementary search failed for {}: {}", query, exc)
            return []
        items = payload.get("results", []) if isinstance(payload, dict) else []
        return [it for it in items if isinstance(it, dict) and it.get("url")]

    def fetch(self, name: str, address: Optional[str] = None) -> SupplementaryData:
        key = f"fetch|{name}|{address or ''}"
        cached = self._cached(key)
        if cached is not None:
            return cached
        try:
            data = self._fetch(name, address)
        except Exception as exc:
            logger.warning("supplementary content failed for {}: {}", name, exc)
            return SupplementaryData()
        self._cache[key] = (time.time(), data)
        return data

    def _fetch(self, name: str, address: Optional[str]) -> SupplementaryData:
        query = f"{name} {_location_context(address)} official website contact".strip()
        data = SupplementaryData()
        for item in self._run(query):
            url = str(item.get("url") or "")
            snippet = str(item.get("content") or item.get("snippet") or "")
            if data.website is None and _looks_official(url, name):
                data.website = url
            if data.phone is None:
                data.phone = _extract_phone(snippet)
            if data.description is None and len(snippet) >= 60:
                data.description = _clean_snippet(snippet)
        return data

    def supplementary_reviews(self, name: str, category: str) -> List[str]:
        key = f"reviews|{name}|{category}"
        cached = self._cached(key)
        if cached is not None:
            return list(cached)
        try:
            reviews = self._reviews(name, category)
        except Exception as exc:
            logger.warning("supplementary reviews failed for {}: {}", name, exc)
            return []
        self._cache[key] = (time.time(), reviews)
        return list(reviews)

    def _reviews(self, name: str, category: str) -> List[str]:
        reviews: list[str] = []
        seen: set[str] = set()
        for item in self._run(f"{name} {category} reviews"):
            if not any(h in _host(str(item.get("url") or "")) for h in _REVIEW_HOSTS):
                continue
            text = _clean_snippet(str(item.get("content") or item.get("snippet") or ""))
            if text and text.lower() not in seen:
                seen.add(text.lower())
                reviews.append(text)
            if len(reviews) >= _MAX_REVIEWS:
                break

        logger.debug("supplementary reviews for {}: {}", name, len(reviews))
        return reviews


REVIEW_TEMPLATES: Dict[str, List[str]] = {
    "cafes": [
        "The coffee here is absolutely divine! Perfect spot for morning meetings.",
        "Love the cozy atmosphere and friendly staff. Great for working on laptop.",
        "Amazing latte art and the pastries are fresh. Highly recommend!",
        "Perfect ambiance for a quiet afternoon. The music selection is spot on.",
        "Great place to catch up with friends. The seating is comfortable and spacious.",
    ],
    "parks": [
        "Beautiful green space perfect for morning jogs and evening walks.",
        "Love bringing my kids here - safe, clean, and lots of activities.",
        "Great for picnics and outdoor photography. Very peaceful environment.",
        "The walking trails are well-maintained and the scenery is gorgeous.",
        "Perfect spot for yoga and meditation. Very serene and calming.",
    ],
    "museums": [
        "Fascinating exhibits and well-curated collections. Educational and inspiring.",
        "The interactive displays are amazing for kids and adults alike.",
        "Rich history and culture beautifully presented. A must-visit!",
        "Excellent guided tours and knowledgeable staff. Very informative.",
        "Beautiful architecture and thoughtfully designed spaces.",
    ],
    "default": [
        "Amazing place with great vibes and friendly atmosphere.",
        "Highly recommend visiting - exceeded all expectations!",
        "Perfect spot for spending quality time. Will definitely return.",
        "Great service and attention to detail. Very impressed.",
        "Wonderful experience from start to finish. Five stars!",
    ],
}


class TemplateSupplementarySource:
    """Deterministic offline stand-in: canned review text per category, no contact data."""

    def __init__(self, reviews_per_place: int = 3) -> None:
        self.reviews_per_place = reviews_per_place

    def fetch(self, name: str, address: Optional[str] = None) -> SupplementaryData:
        area = address.split(",")[0].strip() if address else "a vibrant area"
        return SupplementaryData(
            description=(
                f"{name} is a beloved local spot known for its atmosphere. "
                f"Located in {area}, it is cherished by locals and visitors alike."
            )
        )

    def supplementary_reviews(self, name: str, category: str) -> List[str]:
        templates = REVIEW_TEMPLATES.get((category or "").lower(), REVIEW_TEMPLATES["default"])
        # start offset derived from the name
        offset = sum(ord(ch) for ch in name) % len(templates)
        rotated = templates[offset:] + templates[:offset]
        return rotated[: self.reviews_per_place]


# keyed by search backend, reused across requests
_WEB_SOURCES: Dict[str, WebSupplementarySource] = {}
_WEB_SOURCES_LOCK = threading.Lock()


def build_supplementary_source(cfg: Configuration):
    if (cfg.supplementary_source or "").lower() == "web":
        with _WEB_SOURCES_LOCK:
            source = _WEB_SOURCES.get(cfg.supplementary_backend)
            if source is None:
                source = _WEB_SOURCES[cfg.supplementary_backend] = WebSupplementarySource(cfg)
            return source
    return TemplateSupplementarySource()
