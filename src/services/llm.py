from __future__ import annotations

from typing import Any, Dict, Optional

from google import genai
from hello_agents import HelloAgentsLLM, ToolAwareSimpleAgent
from loguru import logger

from config import Configuration
from utils import strip_thinking_tokens


DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


class LLMClient:
    """Text completion over Gemini (native SDK) or any hello-agents provider.

    ``complete`` raises on provider errors; callers decide on their own fallback.
    """

    def __init__(self, cfg: Configuration, temperature: Optional[float] = None) -> None:
        self.cfg = cfg
        self.temperature = cfg.llm_temperature if temperature is None else temperature
        self.kind = "agent"
        self._client: Any = None
        provider = (cfg.llm_provider or "").lower()

        if provider == "google" and cfg.llm_api_key:
            try:
                self._client = genai.Client(api_key=cfg.llm_api_key)
                self.kind = "gemini"
                logger.debug("LLM using Gemini model: {}", self.model_id)
                return
            except Exception as exc:
                logger.warning("Gemini initialization failed: {}, falling back to hello-agents", exc)

        kw: Dict[str, Any] = {"temperature": self.temperature}
        if cfg.llm_model_id or cfg.local_llm:
            kw["model"] = cfg.llm_model_id or cfg.local_llm
        if cfg.llm_provider:
            kw["provider"] = cfg.llm_provider
        if cfg.llm_base_url:
            kw["base_url"] = cfg.llm_base_url
        elif provider == "ollama":
            kw["base_url"] = cfg.sanitized_ollama_url()
        if cfg.llm_api_key:
            kw["api_key"] = cfg.llm_api_key
        self._client = HelloAgentsLLM(**kw)

    @property
    def model_id(self) -> str:
        return self.cfg.llm_model_id or DEFAULT_GEMINI_MODEL

    def complete(self, prompt: str, system_prompt: str = "") -> str:
        if self.kind == "gemini":
            contents = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
            response = self._client.models.generate_content(
                model=self.model_id,
                contents=contents,
                config={"temperature": self.temperature},
            )
            raw = response.text or ""
        else:
            # one agent per completion, no shared history
            agent = ToolAwareSimpleAgent(
                name="VibeNarrator",
                llm=self._client,
                system_prompt=system_prompt or "You are a helpful local travel guide.",
                enable_tool_calling=False,
            )
            raw = agent.run(prompt)
            agent.clear_history()
        return strip_thinking_tokens(raw or "").strip()
