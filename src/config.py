from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from utils import mask_secret


class Configuration(BaseModel):
    # Google Maps Platform
    google_api_key: Optional[str] = Field(default=None)
    google_base_url: str = Field(default="https://maps.googleapis.com")
    google_timeout: int = Field(default=10)
    google_retries: int = Field(default=1)
    # wall clock budget for one offloaded Google operation (geocode + search counts as one)
    upstream_timeout: float = Field(default=25.0)

    # Search pipeline
    search_radius_m: int = Field(default=10000)
    max_candidates: int = Field(default=8)
    distance_batch_size: int = Field(default=10)
    enrich_concurrency: int = Field(default=8)
    candidate_timeout: float = Field(default=45.0)
    photo_max_width: int = Field(default=600)

    # Supplementary content: "templates" or "web"
    supplementary_source: str = Field(default="templates")
    supplementary_backend: str = Field(default="advanced")
    supplementary_timeout: float = Field(default=8.0)

    # LLM (optional; template narration is used when unset)
    local_llm: Optional[str] = Field(default=None)
    llm_provider: Optional[str] = Field(default=None)
    llm_api_key: Optional[str] = Field(default=None)
    llm_base_url: Optional[str] = Field(default=None)
    llm_model_id: Optional[str] = Field(default=None)
    # native ollama base (without /v1)
    ollama_base_url: str = Field(default="http://localhost:11434")
    llm_timeout: float = Field(default=15.0)
    llm_temperature: float = Field(default=0.7)

    # Chat
    chat_max_history: int = Field(default=10)
    chat_session_ttl: int = Field(default=3600)

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "google_api_key": os.getenv("GOOGLE_MAPS_API_KEY"),
            "google_base_url": os.getenv("GOOGLE_MAPS_BASE_URL"),
            "google_timeout": os.getenv("GOOGLE_MAPS_TIMEOUT"),
            "google_retries": os.getenv("GOOGLE_MAPS_RETRIES"),
            "upstream_timeout": os.getenv("UPSTREAM_TIMEOUT"),
            "search_radius_m": os.getenv("SEARCH_RADIUS_M"),
            "max_candidates": os.getenv("MAX_CANDIDATES"),
            "distance_batch_size": os.getenv("DISTANCE_BATCH_SIZE"),
            "enrich_concurrency": os.getenv("ENRICH_CONCURRENCY"),
            "candidate_timeout": os.getenv("CANDIDATE_TIMEOUT"),
            "photo_max_width": os.getenv("PHOTO_MAX_WIDTH"),
            "supplementary_source": os.getenv("SUPPLEMENTARY_SOURCE"),
            "supplementary_backend": os.getenv("SUPPLEMENTARY_BACKEND"),
            "supplementary_timeout": os.getenv("SUPPLEMENTARY_TIMEOUT"),
            # LLM
            "local_llm": os.getenv("LOCAL_LLM"),
            "llm_provider": os.getenv("LLM_PROVIDER"),
            "llm_api_key": os.getenv("LLM_API_KEY"),
            "llm_base_url": os.getenv("LLM_BASE_URL"),
            "llm_model_id": os.getenv("LLM_MODEL_ID"),
            "ollama_base_url": os.getenv("OLLAMA_BASE_URL"),
            "llm_timeout": os.getenv("LLM_TIMEOUT"),
            "llm_temperature": os.getenv("LLM_TEMPERATURE"),
            "chat_max_history": os.getenv("CHAT_MAX_HISTORY"),
            "chat_session_ttl": os.getenv("CHAT_SESSION_TTL"),
        }

        for k, v in env_map.items():
            if v is None:
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    def require_google(self) -> None:
        if not self.google_api_key:
            raise ValueError("GOOGLE_MAPS_API_KEY is required")

    def llm_configured(self) -> bool:
        return bool(self.llm_provider or self.llm_base_url or self.local_llm)

    def log_summary(self) -> str:
        return (
            "google=%s base=%s timeout=%s radius_m=%s max_candidates=%s supplementary=%s llm=%s api_key=%s"
            % (
                bool(self.google_api_key),
                self.google_base_url,
                self.google_timeout,
                self.search_radius_m,
                self.max_candidates,
                self.supplementary_source,
                self.llm_provider or self.local_llm or "templates",
                mask_secret(self.google_api_key),
            )
        )

    def sanitized_ollama_url(self) -> str:
        base = (self.ollama_base_url or "http://localhost:11434").rstrip("/")
        if not base.endswith("/v1"):
            base = f"{base}/v1"
        return base
