from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

import requests
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

load_dotenv()

from config import Configuration
from models import Profile, SearchRequest, UserLocation, VibeResult
from services.categories import list_categories
from services.chat import VibeChat, conversation_store
from services.enrichment import SearchInputError, VibeSearchPipeline, build_pipeline
from services.google_maps import GoogleMapsClient, shared_client


app = FastAPI(title="Vibe Navigator API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

PersonalityType = Literal["Adventurous", "Chill", "Curious", "Spiritual", "Creative", "Social"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfilePayload(CamelModel):
    personality_type: PersonalityType
    preferred_places: List[str] = Field(default_factory=list)


class LocationPayload(CamelModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    address: Optional[str] = None
    city: Optional[str] = None


class SearchPayload(CamelModel):
    city: Optional[str] = Field(None, description="City to search in")
    category: Optional[str] = Field(None, description="Category id, e.g. cafes or museums")
    user_profile: ProfilePayload
    user_location: Optional[LocationPayload] = Field(None, description="Optional precise user position")


class CoordinatesPayload(CamelModel):
    lat: float
    lng: float


class ReviewPayload(CamelModel):
    id: str
    author: str
    rating: Optional[float] = None
    text: str
    time: str
    profile_photo: Optional[str] = None


class VibePlacePayload(CamelModel):
    id: str
    name: str
    category: str
    rating: float
    distance: str
    travel_time: str
    image: str
    vibe_score: int
    tags: List[str] = []
    description: str
    vibe_description: str
    personalized_emojis: List[str] = []
    coordinates: CoordinatesPayload
    address: str
    opening_hours: str
    working_days: List[str] = []
    directions_url: str
    website: Optional[str] = None
    phone: Optional[str] = None
    price_level: Optional[int] = None
    about: Optional[str] = None
    reviews: List[ReviewPayload] = []


class SearchResponse(CamelModel):
    places: List[VibePlacePayload]
    total: int
    message: Optional[str] = None
    user_location: Optional[LocationPayload] = None


class ReverseGeocodePayload(CamelModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class ChatPayload(CamelModel):
    message: str = ""
    user_profile: Optional[ProfilePayload] = None
    city_context: Optional[str] = None
    session_id: Optional[str] = None
    reset: bool = Field(False, description="Clear the session history before answering")


def get_config() -> Configuration:
    return Configuration.from_env()


def get_pipeline(cfg: Configuration = Depends(get_config)) -> VibeSearchPipeline:
    try:
        cfg.require_google()
    except ValueError as exc:
        logger.error("search unavailable: {}", exc)
        raise HTTPException(status_code=500, detail=f"Server mis-configuration: {exc}")
    return build_pipeline(cfg)


def get_maps_client(cfg: Configuration = Depends(get_config)) -> GoogleMapsClient:
    try:
        cfg.require_google()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=f"Server mis-configuration: {exc}")
    return shared_client(cfg)


def get_chat(cfg: Configuration = Depends(get_config)) -> VibeChat:
    if not cfg.llm_configured():
        raise HTTPException(status_code=503, detail="Chat assistant is not configured")
    return VibeChat(cfg, conversation_store(cfg))


def to_payload(place: VibeResult) -> VibePlacePayload:
    return VibePlacePayload(
        id=place.id,
        name=place.name,
        category=place.category,
        rating=place.rating,
        distance=place.distance,
        travel_time=place.travel_time,
        image=place.image,
        vibe_score=place.vibe_score,
        tags=place.tags,
        description=place.tagline,
        vibe_description=place.vibe_description,
        personalized_emojis=place.emojis,
        coordinates=CoordinatesPayload(lat=place.coordinates.lat, lng=place.coordinates.lng),
        address=place.address,
        opening_hours=place.opening_hours,
        working_days=place.working_days,
        directions_url=place.directions_url,
        website=place.website,
        phone=place.phone,
        price_level=place.price_level,
        about=place.about,
        reviews=[
            ReviewPayload(
                id=r.id,
                author=r.author,
                rating=r.rating,
                text=r.text,
                time=r.time,
                profile_photo=r.profile_photo,
            )
            for r in place.reviews
        ],
    )


@app.get("/healthz")
def healthz() -> dict:
    cfg = Configuration.from_env()
    logger.info("cfg: {}", cfg.log_summary())
    return {"status": "ok"}


@app.get("/health/google")
def health_google() -> dict:
    cfg = Configuration.from_env()
    try:
        cfg.require_google()
        url = f"{cfg.google_base_url.rstrip('/')}/maps/api/geocode/json"
        r = requests.get(url, params={"address": "Paris", "key": cfg.google_api_key}, timeout=cfg.google_timeout)
        ok = r.ok and r.json().get("status") == "OK"
    except Exception:
        ok = False
    return {"ok": ok}


@app.get("/health/llm")
def health_llm() -> dict:
    cfg = Configuration.from_env()
    provider = (cfg.llm_provider or "").lower()
    ok = False
    detail: Any = None
    try:
        if provider == "ollama":
            r = requests.get(f"{cfg.ollama_base_url.rstrip('/')}/api/tags", timeout=5)
            ok = r.ok
            if r.ok:
                detail = r.json().get("models", [])
        elif cfg.llm_base_url:
            r = requests.get(f"{cfg.llm_base_url.rstrip('/')}/models", timeout=5)
            ok = r.ok
        elif provider == "google":
            ok = bool(cfg.llm_api_key)
    except Exception as exc:
        ok = False
        detail = str(exc)
    return {"ok": ok, "provider": provider or "templates", "detail": detail}


@app.get("/api/categories")
def categories() -> Dict[str, Any]:
    return {"categories": list_categories()}


@app.post("/api/places/search", response_model=SearchResponse)
async def search_places(
    req: SearchPayload,
    pipeline: VibeSearchPipeline = Depends(get_pipeline),
) -> SearchResponse:
    origin = None
    if req.user_location is not None:
        loc = req.user_location
        origin = UserLocation(lat=loc.lat, lng=loc.lng, address=loc.address, city=loc.city)
    request = SearchRequest(
        city=(req.city or "").strip(),
        category=(req.category or "").strip(),
        profile=Profile(
            personality_type=req.user_profile.personality_type,
            preferred_place_types=frozenset(req.user_profile.preferred_places),
        ),
        origin=origin,
    )

    try:
        outcome = await pipeline.search(request)
    except SearchInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("place search failed: {}", exc)
        raise HTTPException(status_code=500, detail="Internal server error during place search")

    return SearchResponse(
        places=[to_payload(p) for p in outcome.places],
        total=outcome.total,
        message=outcome.message,
        user_location=req.user_location,
    )


@app.get("/api/places/autocomplete")
def autocomplete(
    input: str = Query("", description="Partial city name"),
    client: GoogleMapsClient = Depends(get_maps_client),
) -> Dict[str, Any]:
    predictions = client.autocomplete(input)
    return {
        "predictions": [
            {
                "place_id": p.place_id,
                "description": p.description,
                "main_text": p.main_text,
                "secondary_text": p.secondary_text,
                "types": p.types,
            }
            for p in predictions
        ]
    }


@app.post("/api/location/current")
def current_location(
    req: ReverseGeocodePayload,
    client: GoogleMapsClient = Depends(get_maps_client),
) -> Dict[str, Any]:
    result = client.reverse_geocode(req.lat, req.lng)
    body: Dict[str, Any] = {"lat": result.lat, "lng": result.lng, "address": result.address, "city": result.city}
    if result.warning:
        body["warning"] = result.warning
    return body


@app.post("/api/chat")
def chat(req: ChatPayload, assistant: VibeChat = Depends(get_chat)) -> Dict[str, str]:
    if req.reset:
        assistant.store.reset(req.session_id)
        if not req.message.strip():
            return {"response": ""}
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    profile = req.user_profile
    try:
        text = assistant.reply(
            req.message,
            personality_type=profile.personality_type if profile else None,
            preferred=profile.preferred_places if profile else (),
            city=req.city_context,
            session_id=req.session_id,
        )
    except Exception as exc:
        logger.exception("chat failed: {}", exc)
        raise HTTPException(status_code=502, detail="Unexpected error during AI generation")
    return {"response": text}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)
