from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models import Candidate, Profile


BASE_SCORE = 60
MAX_TAGS = 4

PERSONALITY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Adventurous": ("adventure", "exciting", "thrilling", "outdoor", "active"),
    "Chill": ("peaceful", "quiet", "relaxing", "calm", "serene", "cozy"),
    "Curious": ("unique", "interesting", "educational", "cultural", "historical"),
    "Spiritual": ("peaceful", "serene", "mindful", "quiet", "sacred"),
    "Creative": ("artistic", "aesthetic", "inspiring", "beautiful", "creative"),
    "Social": ("lively", "popular", "vibrant", "social", "buzzing"),
}

PERSONALITY_TAGS: Dict[str, Tuple[str, ...]] = {
    "Adventurous": ("exciting", "adventure-ready"),
    "Chill": ("relaxing", "peaceful"),
    "Curious": ("fascinating", "educational"),
    "Spiritual": ("mindful", "serene"),
    "Creative": ("inspiring", "aesthetic"),
    "Social": ("vibrant", "social-hub"),
}

# review phrase -> tag, checked in this order
REVIEW_TAGS: Tuple[Tuple[str, str], ...] = (
    ("cozy", "cozy"),
    ("beautiful", "beautiful"),
    ("friendly", "friendly-staff"),
    ("clean", "well-maintained"),
    ("unique", "unique-find"),
    ("hidden gem", "hidden-gem"),
)


def _review_blob(reviews: Iterable[str]) -> str:
    return " ".join(r for r in reviews if r).lower()


def _score_rating(rating: Optional[float]) -> float:
    if rating is None:
        return 0.0
    return min(20.0, (rating - 3.0) * 10.0)


def _score_personality(personality_type: str, review_text: str, types: Sequence[str]) -> float:
    keywords = PERSONALITY_KEYWORDS.get(personality_type, ())
    type_text = " ".join(types).lower()
    matches = sum(1 for kw in keywords if kw in review_text or kw in type_text)
    return float(min(15, matches * 3))


def _score_price(price_level: Optional[int]) -> float:
    if price_level is None:
        return 0.0
    return -float(abs(price_level - 2) * 2)


def _score_review_volume(review_count: int) -> float:
    return float(min(10, review_count * 2))


def _score_open_now(open_now: Optional[bool]) -> float:
    return 5.0 if open_now else 0.0


def score_breakdown(
    candidate: Candidate,
    profile: Profile,
    reviews: Sequence[str],
    open_now: Optional[bool] = None,
) -> Dict[str, float]:
    review_text = _review_blob(reviews)
    return {
        "base": float(BASE_SCORE),
        "rating": _score_rating(candidate.rating),
        "personality": _score_personality(profile.personality_type, review_text, candidate.types),
        "price": _score_price(candidate.price_level),
        "reviews": _score_review_volume(len(reviews)),
        "open_now": _score_open_now(open_now),
    }


def calculate_vibe_score(
    candidate: Candidate,
    profile: Profile,
    reviews: Sequence[str],
    open_now: Optional[bool] = None,
) -> int:
    """Personalisation score in [0, 100]; pure function of its inputs."""
    total = sum(score_breakdown(candidate, profile, reviews, open_now).values())
    # half-up rounding
    return int(min(100, max(0, math.floor(total + 0.5))))


def generate_tags(candidate: Candidate, profile: Profile, reviews: Sequence[str]) -> List[str]:
    tags: list[str] = list(PERSONALITY_TAGS.get(profile.personality_type, ()))

    rating = candidate.rating
    if rating is not None and rating >= 4.5:
        tags.append("highly-rated")
    if rating is not None and rating >= 4.0:
        tags.append("popular")

    review_text = _review_blob(reviews)
    tags.extend(tag for phrase, tag in REVIEW_TAGS if phrase in review_text)

    return list(dict.fromkeys(tags))[:MAX_TAGS]
