"""
Generation client.

Contract used by the schedulers:
    await client.complete(system_prompt, user_prompt, max_tokens) -> str

Features:
  - OpenAI-compatible chat completions (Gemini / AIML / OpenAI)
  - Fixed time budget per call → GenerationTimeoutError
  - Non-success responses / connection errors → GenerationTransportError
  - No retries: the caller decides what a failed call means
  - Reusable client (connection pooling)
  - Structured logging
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from ..core.config import get_settings
from ..core.errors import GenerationTimeoutError, GenerationTransportError
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        budget = get_settings().llm_timeout_seconds
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(budget, connect=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Provider config ──────────────────────────────────────────────────

def _get_provider_config(provider: Optional[str] = None) -> tuple[str, str, str]:
    """Returns (base_url, api_key, default_model) for a provider."""
    settings = get_settings()
    p = (provider or get_flags().llm_provider).lower()

    if p == "gemini":
        return (
            "https://generativelanguage.googleapis.com/v1beta/openai",
            settings.gemini_api_key,
            settings.default_llm_model,
        )
    elif p == "aiml":
        return settings.aiml_base_url, settings.aiml_api_key, settings.default_llm_model
    else:  # openai
        return settings.openai_base_url, settings.openai_api_key, settings.default_llm_model


# ── Main chat function ───────────────────────────────────────────────

async def chat(
    messages: list[dict],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
) -> dict:
    """
    Single chat completion, bounded by LLM_TIMEOUT_SECONDS.
    Returns the full API response as dict.
    """
    settings = get_settings()
    active_provider = (provider or get_flags().llm_provider).lower()
    base_url, api_key, default_model = _get_provider_config(provider)

    if not api_key:
        raise GenerationTransportError(
            f"No API key for LLM provider '{active_provider}'. "
            "Set GEMINI_API_KEY, AIML_API_KEY, or OPENAI_API_KEY."
        )

    payload: dict[str, Any] = {
        "model": model or default_model,
        "messages": messages,
        "temperature": temperature if temperature is not None else settings.default_llm_temperature,
        "max_tokens": max_tokens or settings.statement_max_tokens,
    }

    url = f"{base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    budget = settings.llm_timeout_seconds
    start = time.monotonic()
    client = _get_client()

    try:
        resp = await asyncio.wait_for(
            client.post(url, json=payload, headers=headers), timeout=budget,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning("LLM timeout after %.1fs (model=%s)", time.monotonic() - start, payload["model"])
        raise GenerationTimeoutError(budget)
    except httpx.HTTPError as e:
        logger.warning("LLM transport error (model=%s): %s", payload["model"], e)
        raise GenerationTransportError(f"{type(e).__name__}: {e}")

    if resp.status_code >= 400:
        logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
        raise GenerationTransportError(
            f"LLM API returned {resp.status_code}", status_code=resp.status_code,
        )

    try:
        data = resp.json()
    except ValueError:
        raise GenerationTransportError("LLM API returned a non-JSON body", status_code=resp.status_code)

    elapsed = time.monotonic() - start
    usage = data.get("usage") or {}
    logger.info(
        "LLM chat: %dms | in=%d out=%d tokens | model=%s",
        int(elapsed * 1000),
        usage.get("prompt_tokens", 0),
        usage.get("completion_tokens", 0),
        payload["model"],
    )
    return data


# ── Generation client ────────────────────────────────────────────────

class LLMClient:
    """
    The generation client handed to the schedulers.

    Tests substitute any object with the same `complete` coroutine.
    """

    def __init__(self, model: Optional[str] = None, provider: Optional[str] = None):
        self.model = model
        self.provider = provider

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        """Send a system + user prompt, get the completion text back."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        response = await chat(
            messages=messages, model=self.model,
            max_tokens=max_tokens, provider=self.provider,
        )
        try:
            return response["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise GenerationTransportError("LLM response had no message content")


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
