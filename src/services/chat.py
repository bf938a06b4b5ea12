from __future__ import annotations

import time
from typing import Dict, List, Optional, Sequence, TypedDict

from loguru import logger

from config import Configuration
from services.llm import LLMClient


class Turn(TypedDict):
    role: str  # "user" or "assistant"
    content: str
    timestamp: float


class ConversationStore:
    """In-memory chat history keyed by session id, bounded per session and expired by idle time."""

    def __init__(self, max_history: int = 10, ttl_sec: int = 3600) -> None:
        self._sessions: Dict[str, List[Turn]] = {}
        self._last_access: Dict[str, float] = {}
        self.max_history = max_history
        self.ttl_sec = ttl_sec

    def history(self, session_id: Optional[str]) -> List[Turn]:
        self._expire()
        if not session_id:
            return []
        self._last_access[session_id] = time.time()
        return list(self._sessions.get(session_id, []))

    def record(self, session_id: Optional[str], user_message: str, reply: str) -> None:
        """Append one user/assistant exchange, keeping the newest ``max_history`` exchanges."""
        if not session_id:
            return
        self._expire()
        now = time.time()
        turns = self._sessions.setdefault(session_id, [])
        turns.append({"role": "user", "content": user_message, "timestamp": now})
        turns.append({"role": "assistant", "content": reply, "timestamp": now})
        max_len = self.max_history * 2
        if len(turns) > max_len:
            self._sessions[session_id] = turns[-max_len:]
        self._last_access[session_id] = now

    def reset(self, session_id: Optional[str]) -> None:
        if not session_id:
            return
        self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)

    def _expire(self) -> None:
        now = time.time()
        expired = [sid for sid, last in self._last_access.items() if now - last > self.ttl_sec]
        for sid in expired:
            self._sessions.pop(sid, None)
            del self._last_access[sid]
        if expired:
            logger.debug("expired {} chat sessions", len(expired))


def build_system_prompt(personality_type: Optional[str], preferred: Sequence[str], city: Optional[str]) -> str:
    personality = personality_type or "explorer"
    liked = ", ".join(list(preferred)[:3]) if preferred else "interesting places"
    return (
        "You are Vibe Navigator AI, an intelligent assistant specializing in travel and local discovery.\n"
        f"The user's personality is {personality}, and they love places like {liked}.\n"
        f"The current city is {city or 'Unknown city'}. Be helpful, engaging, and concise."
    )


class VibeChat:
    def __init__(self, cfg: Configuration, store: ConversationStore, llm: Optional[LLMClient] = None) -> None:
        self.cfg = cfg
        self.store = store
        self.llm = llm or LLMClient(cfg)

    def reply(
        self,
        message: str,
        *,
        personality_type: Optional[str] = None,
        preferred: Sequence[str] = (),
        city: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Answer ``message`` in context; provider errors propagate to the caller."""
        history = self.store.history(session_id)
        prompt = message
        if history:
            hist_str = "\n".join(f"{t['role']}: {t['content']}" for t in history)
            prompt = f"HISTORY:\n{hist_str}\n\nCURRENT MESSAGE: {message}"
        text = self.llm.complete(prompt, build_system_prompt(personality_type, preferred, city))
        self.store.record(session_id, message, text)
        return text


_store: Optional[ConversationStore] = None


def conversation_store(cfg: Configuration) -> ConversationStore:
    global _store
    if _store is None:
        _store = ConversationStore(max_history=cfg.chat_max_history, ttl_sec=cfg.chat_session_ttl)
    return _store
