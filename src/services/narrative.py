from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence

from loguru import logger

from config import Configuration
from services.llm import LLMClient


MIN_EMOJIS = 3
MAX_EMOJIS = 5
FALLBACK_EMOJIS = ["✨", "📍", "🧭"]

SYSTEM_PROMPT = (
    "You are Vibe Navigator, a local discovery guide. You describe the atmosphere of"
    " places in a warm, concise voice and never invent facts that are not implied by"
    " the reviews you are given."
)

PERSONALITY_EMOJIS: Dict[str, List[str]] = {
    "Adventurous": ["🧗", "🔥", "🗺️"],
    "Chill": ["🌿", "😌", "🍃"],
    "Curious": ["🔍", "📚", "🏛️"],
    "Spiritual": ["🕊️", "🧘", "🌅"],
    "Creative": ["🎨", "📸", "✨"],
    "Social": ["🎉", "🥂", "🎶"],
}

CATEGORY_EMOJIS: Dict[str, str] = {
    "cafes": "☕",
    "parks": "🌳",
    "historical": "🏰",
    "religious": "⛪",
    "nature": "🏞️",
    "museums": "🖼️",
    "shopping": "🛍️",
    "adventure": "🎢",
    "beaches": "🏖️",
    "nightlife": "🌃",
    "bookstores": "📚",
    "viewpoints": "🌄",
}

PERSONALITY_TAGLINES: Dict[str, str] = {
    "Adventurous": "{name} brings a spark of excitement to any {category} outing.",
    "Chill": "{name} is an easygoing {category} stop for slowing down and unwinding.",
    "Curious": "{name} rewards a curious mind with something new around every corner.",
    "Spiritual": "{name} offers a calm, reflective {category} escape from the everyday.",
    "Creative": "{name} is an inspiring {category} backdrop for fresh ideas.",
    "Social": "{name} is a lively {category} hangout made for good company.",
}

_MODIFIERS = ("\u200d", "\ufe0f", "\u20e3")  # ZWJ, variation selector, keycap


def fallback_tagline(name: str) -> str:
    return f"Experience the unique charm of {name}."


def fallback_emojis() -> List[str]:
    return list(FALLBACK_EMOJIS)


def _category_label(category: str) -> str:
    label = (category or "place").strip().lower()
    return label[:-1] if label.endswith("s") and len(label) > 3 else label


def _review_sample(reviews: Sequence[str]) -> str:
    return ". ".join(r.strip() for r in list(reviews)[:3] if r and r.strip())


def _split_glyphs(token: str) -> List[str]:
    glyphs: list[str] = []
    for ch in token:
        joins_previous = (
            ch in _MODIFIERS
            or 0x1F3FB <= ord(ch) <= 0x1F3FF  # skin tones
            or (glyphs and glyphs[-1].endswith("\u200d"))
        )
        if glyphs and joins_previous:
            glyphs[-1] += ch
        else:
            glyphs.append(ch)
    return glyphs


def parse_emojis(text: str, fallback: Optional[List[str]] = None) -> List[str]:
    """Pick 3-5 distinct symbols out of free-form model output."""
    symbols: list[str] = []
    for token in (text or "").split():
        token = token.strip("\"'`.,;:()[]*-")
        if not token or any(ch.isalnum() for ch in token):
            continue
        for glyph in _split_glyphs(token):
            if glyph not in symbols:
                symbols.append(glyph)
    for extra in fallback or FALLBACK_EMOJIS:
        if len(symbols) >= MIN_EMOJIS:
            break
        if extra not in symbols:
            symbols.append(extra)
    return symbols[:MAX_EMOJIS]


def clean_tagline(text: str) -> str:
    for line in (text or "").splitlines():
        line = re.sub(r"\s+", " ", line).strip().strip("\"'*` ")
        if line:
            return line
    return ""


class LLMNarrator:
    """Tagline and emoji generation through the configured LLM, with fixed fallbacks."""

    def __init__(self, cfg: Configuration, llm: Optional[LLMClient] = None) -> None:
        self.cfg = cfg
        self.llm = llm or LLMClient(cfg)

    def tagline(self, name: str, category: str, reviews: Sequence[str], personality_type: str) -> str:
        prompt = (
            f'Generate a concise, engaging tagline (max 20 words) for "{name}" ({category} category).\n'
            f"Consider these user reviews: {_review_sample(reviews)}.\n"
            f"The user's personality is {personality_type}.\n"
            'Focus on the unique "vibe" of the place. Example: "A cozy cafe perfect for deep conversations."\n'
            "Return the tagline only."
        )
        try:
            text = clean_tagline(self.llm.complete(prompt, SYSTEM_PROMPT))
        except Exception as exc:
            logger.warning("tagline generation failed for {}: {}", name, exc)
            return fallback_tagline(name)
        return text or fallback_tagline(name)

    def emojis(self, name: str, category: str, personality_type: str, reviews: Sequence[str]) -> List[str]:
        prompt = (
            f'Generate 3-5 emojis that best represent the vibe of "{name}" ({category} category).\n'
            f"Consider these user reviews: {_review_sample(reviews)}.\n"
            f"The user's personality is {personality_type}.\n"
            'Return only the emojis, separated by spaces. Example: "☕ 📚 ✨"'
        )
        try:
            raw = self.llm.complete(prompt, SYSTEM_PROMPT)
        except Exception as exc:
            logger.warning("emoji generation failed for {}: {}", name, exc)
            return fallback_emojis()
        return parse_emojis(raw)


class TemplateNarrator:
    """Deterministic narration used when no LLM is configured."""

    def tagline(self, name: str, category: str, reviews: Sequence[str], personality_type: str) -> str:
        template = PERSONALITY_TAGLINES.get(personality_type)
        if not template:
            return fallback_tagline(name)
        return template.format(name=name, category=_category_label(category))

    def emojis(self, name: str, category: str, personality_type: str, reviews: Sequence[str]) -> List[str]:
        picks: list[str] = []
        lead = CATEGORY_EMOJIS.get((category or "").lower())
        if lead:
            picks.append(lead)
        picks.extend(PERSONALITY_EMOJIS.get(personality_type, []))
        return parse_emojis(" ".join(picks))


def build_narrator(cfg: Configuration):
    if cfg.llm_configured():
        return LLMNarrator(cfg)
    return TemplateNarrator()
