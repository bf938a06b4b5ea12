from __future__ import annotations

import asyncio
import time
from datetime import date
from typing import Callable, List, Optional

from loguru import logger

from config import Configuration
from models import (
    Candidate,
    CandidateDetails,
    Coordinates,
    DistanceElement,
    Enrichment,
    Review,
    SearchOutcome,
    SearchRequest,
    SupplementaryData,
    VibeResult,
)
from services.categories import map_category
from services.google_maps import shared_client
from services.narrative import build_narrator, fallback_emojis, fallback_tagline
from services.supplementary import build_supplementary_source
from services.vibe_scoring import calculate_vibe_score, generate_tags
from utils import format_review_date, run_blocking


NO_RESULTS_MESSAGE = "No places found for this category in the specified location"
DISTANCE_UNAVAILABLE = "Distance unavailable"
TIME_UNAVAILABLE = "Time unavailable"
HOURS_UNAVAILABLE = "Hours not available"
PLACEHOLDER_IMAGE = "/placeholder.svg?height=300&width=400"
DEFAULT_RATING = 4.0
NARRATIVE_REVIEW_SAMPLE = 3


class SearchInputError(ValueError):
    pass


def validate_request(request: SearchRequest) -> None:
    if not (request.city or "").strip() or not (request.category or "").strip():
        raise SearchInputError("City and category are required")


def needs_supplementary(details: CandidateDetails) -> bool:
    return not details.website or not details.phone or not details.reviews


def search_origin(request: SearchRequest) -> Optional[Coordinates]:
    """Use the caller's precise position only when it was detected in the requested city."""
    origin = request.origin
    if origin is None or not origin.city:
        return None
    if origin.city.strip().lower() != request.city.strip().lower():
        return None
    return origin.coordinates


def lookup_distance(distances: Optional[List[DistanceElement]], index: int) -> tuple[str, str]:
    if distances and index < len(distances) and distances[index].ok:
        element = distances[index]
        return element.distance_text, element.travel_time_text
    return DISTANCE_UNAVAILABLE, TIME_UNAVAILABLE


class VibeSearchPipeline:
    """Fans out per-candidate enrichment, scores every survivor and ranks the batch.

    Collaborators:
      places     -- GoogleMapsClient-like: search, details, distance_matrix, photo_url, directions_url
      content    -- supplementary source: fetch, supplementary_reviews
      narrator   -- tagline, emojis
    All collaborator methods are blocking and are offloaded to worker threads.
    """

    def __init__(
        self,
        cfg: Configuration,
        places,
        content,
        narrator,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.cfg = cfg
        self.places = places
        self.content = content
        self.narrator = narrator
        self.today = today

    async def search(self, request: SearchRequest) -> SearchOutcome:
        validate_request(request)
        started = time.time()
        place_type = map_category(request.category)

        candidates: List[Candidate] = await run_blocking(
            self.places.search,
            request.city,
            place_type,
            search_origin(request),
            self.cfg.search_radius_m,
            timeout=self.cfg.upstream_timeout,
            fallback=[],
            label="place search",
        )
        if not candidates:
            logger.info("no candidates city={} category={}", request.city, request.category)
            return SearchOutcome(places=[], total=0, message=NO_RESULTS_MESSAGE, origin=request.origin)

        distances = await self._batch_distances(request, candidates)

        capped = candidates[: self.cfg.max_candidates]
        gate = asyncio.Semaphore(max(1, self.cfg.enrich_concurrency))
        processed = await asyncio.gather(
            *(self._process_guarded(gate, idx, c, request, distances) for idx, c in enumerate(capped))
        )

        ranked = sorted((r for r in processed if r is not None), key=lambda r: r.vibe_score, reverse=True)
        logger.info(
            "vibe search city={} category={} type={} candidates={} ranked={} elapsed={:.2f}s",
            request.city,
            request.category,
            place_type,
            len(candidates),
            len(ranked),
            time.time() - started,
        )
        return SearchOutcome(places=ranked, total=len(ranked), origin=request.origin)

    async def _batch_distances(
        self, request: SearchRequest, candidates: List[Candidate]
    ) -> Optional[List[DistanceElement]]:
        # independent of the city match used for the search origin
        if request.origin is None:
            return None
        destinations = [c.coordinates for c in candidates[: self.cfg.distance_batch_size]]
        return await run_blocking(
            self.places.distance_matrix,
            request.origin.coordinates,
            destinations,
            timeout=self.cfg.upstream_timeout,
            fallback=None,
            label="distance matrix",
        )

    async def _process_guarded(
        self,
        gate: asyncio.Semaphore,
        index: int,
        candidate: Candidate,
        request: SearchRequest,
        distances: Optional[List[DistanceElement]],
    ) -> Optional[VibeResult]:
        async with gate:
            started = time.time()
            try:
                result = await asyncio.wait_for(
                    self._process(index, candidate, request, distances),
                    timeout=self.cfg.candidate_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("candidate {} ({}) timed out", index, candidate.name)
                return None
            except Exception:
                logger.exception("Error processing place {}", candidate.name)
                return None
            logger.debug("candidate {} enriched in {:.2f}s", index, time.time() - started)
            return result

    async def _process(
        self,
        index: int,
        candidate: Candidate,
        request: SearchRequest,
        distances: Optional[List[DistanceElement]],
    ) -> Optional[VibeResult]:
        details, extra_reviews = await asyncio.gather(
            run_blocking(
                self.places.details,
                candidate.provider_id,
                timeout=self.cfg.upstream_timeout,
                fallback=None,
                label=f"details {candidate.name}",
            ),
            run_blocking(
                self.content.supplementary_reviews,
                candidate.name,
                request.category,
                timeout=self.cfg.supplementary_timeout,
                fallback=[],
                label=f"supplementary reviews {candidate.name}",
                absorb_errors=True,
            ),
        )
        if details is None:
            logger.info("dropping {}: details unavailable", candidate.name)
            return None

        enrichment = Enrichment(website=details.website, phone=details.phone)
        if needs_supplementary(details):
            extra: SupplementaryData = await run_blocking(
                self.content.fetch,
                candidate.name,
                details.formatted_address or candidate.vicinity,
                timeout=self.cfg.supplementary_timeout,
                fallback=SupplementaryData(),
                label=f"supplementary content {candidate.name}",
                absorb_errors=True,
            )
            enrichment.website = enrichment.website or extra.website
            enrichment.phone = enrichment.phone or extra.phone
            enrichment.description = extra.description

        enrichment.reviews_text = [r.text for r in details.reviews if r.text] + [t for t in extra_reviews if t]
        sample = enrichment.reviews_text[:NARRATIVE_REVIEW_SAMPLE]
        personality = request.profile.personality_type

        tagline, emojis = await asyncio.gather(
            run_blocking(
                self.narrator.tagline,
                candidate.name,
                request.category,
                sample,
                personality,
                timeout=self.cfg.llm_timeout,
                fallback=fallback_tagline(candidate.name),
                label=f"tagline {candidate.name}",
                absorb_errors=True,
            ),
            run_blocking(
                self.narrator.emojis,
                candidate.name,
                request.category,
                personality,
                sample,
                timeout=self.cfg.llm_timeout,
                fallback=fallback_emojis(),
                label=f"emojis {candidate.name}",
                absorb_errors=True,
            ),
        )

        enrichment.distance_text, enrichment.travel_time_text = lookup_distance(distances, index)
        enrichment.working_days = list(details.weekday_text)
        weekday = self.today().weekday()
        enrichment.opening_hours_today = (
            enrichment.working_days[weekday] if weekday < len(enrichment.working_days) else HOURS_UNAVAILABLE
        )

        score = calculate_vibe_score(candidate, request.profile, enrichment.reviews_text, details.open_now)
        tags = generate_tags(candidate, request.profile, enrichment.reviews_text)
        return self._assemble(candidate, details, enrichment, request, score, tags, tagline, emojis)

    def _assemble(
        self,
        candidate: Candidate,
        details: CandidateDetails,
        enrichment: Enrichment,
        request: SearchRequest,
        score: int,
        tags: List[str],
        tagline: str,
        emojis: List[str],
    ) -> VibeResult:
        image = (
            self.places.photo_url(candidate.photo_ref, self.cfg.photo_max_width)
            if candidate.photo_ref
            else PLACEHOLDER_IMAGE
        )
        origin = request.origin.coordinates if request.origin else None
        reviews = [
            Review(
                id=f"{candidate.provider_id}_{r.time}",
                author=r.author,
                rating=r.rating,
                text=r.text,
                time=format_review_date(r.time),
                profile_photo=r.profile_photo,
            )
            for r in details.reviews
        ]
        return VibeResult(
            id=candidate.provider_id,
            name=candidate.name,
            category=request.category,
            rating=candidate.rating if candidate.rating is not None else DEFAULT_RATING,
            distance=enrichment.distance_text or DISTANCE_UNAVAILABLE,
            travel_time=enrichment.travel_time_text or TIME_UNAVAILABLE,
            image=image,
            vibe_score=score,
            tags=tags,
            tagline=tagline,
            vibe_description=tagline,
            emojis=list(emojis),
            coordinates=candidate.coordinates,
            address=details.formatted_address or candidate.vicinity or "",
            opening_hours=enrichment.opening_hours_today or HOURS_UNAVAILABLE,
            working_days=enrichment.working_days,
            directions_url=self.places.directions_url(candidate.coordinates, origin),
            website=enrichment.website,
            phone=enrichment.phone,
            price_level=candidate.price_level,
            about=enrichment.description,
            reviews=reviews,
        )


def build_pipeline(cfg: Configuration) -> VibeSearchPipeline:
    return VibeSearchPipeline(
        cfg,
        places=shared_client(cfg),
        content=build_supplementary_source(cfg),
        narrator=build_narrator(cfg),
    )
