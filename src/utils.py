"""Utility helpers for the vibe navigator backend."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from loguru import logger


T = TypeVar("T")


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return "unset"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"


def strip_thinking_tokens(text: str) -> str:
    """Remove <think>...</think> blocks if present."""
    if not text:
        return text
    while True:
        start = text.find("<think>")
        if start == -1:
            break
        end = text.find("</think>", start)
        if end == -1:
            break
        text = text[:start] + text[end + len("</think>") :]
    return text


def format_review_date(epoch_seconds: int) -> str:
    if not epoch_seconds:
        return ""
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).date().isoformat()


async def run_blocking(
    func: Callable[..., T],
    *args: Any,
    timeout: float,
    fallback: T,
    label: str,
    absorb_errors: bool = False,
) -> T:
    """Run a blocking call in a worker thread, returning ``fallback`` if it overruns ``timeout``.

    Exceptions raised by ``func`` propagate unless ``absorb_errors`` is set, in
    which case they are logged and ``fallback`` is returned. Cancellation always
    propagates.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("{} timed out after {:.1f}s", label, timeout)
        return fallback
    except Exception as exc:
        if not absorb_errors:
            raise
        logger.warning("{} failed: {}", label, exc)
        return fallback
