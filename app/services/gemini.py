"""
Gemini text generation through the ``google-genai`` SDK.

Free-tier quotas are small, so several API keys are configured and used
round-robin: a failing call moves on to the next key and only gives up once
every key has been tried.  The current key index is shared by all callers of
the process-wide client, so a key that just hit its quota is skipped by the
next request too.

Public API
----------
GeminiClient.generate_text(prompt)            -> str
GeminiClient.stream_text(prompt)              -> AsyncIterator[bytes]
GeminiClient.optimize_image_prompt(sel, ctx)  -> str
get_gemini_client()                           -> GeminiClient (FastAPI dependency)
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.config import settings
from app.services.prompts import IMAGE_PROMPT_OPTIMIZER

logger = logging.getLogger(__name__)

QUOTA_EXHAUSTED_MESSAGE = "All API keys have hit quota limits"

# What a provider call can fail with: API errors, transport errors, and
# ValueError for bodies that are not the JSON the SDK expects.
PROVIDER_ERRORS = (genai_errors.APIError, httpx.HTTPError, ValueError)

ClientFactory = Callable[[str], "genai.Client"]


class GeminiError(Exception):
    """Raised when Gemini cannot produce a response."""


class AllKeysExhaustedError(GeminiError):
    """Every configured key failed for the same request."""


def is_quota_limit_error(exc: BaseException) -> bool:
    """True when *exc* looks like a rate-limit / quota rejection."""
    if isinstance(exc, genai_errors.APIError) and exc.code == 429:
        return True
    message = str(exc).lower()
    return "quota" in message or "limit" in message or "429" in message


def ndjson_line(obj: Dict[str, Any]) -> bytes:
    return (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")


def make_genai_client(api_key: str) -> genai.Client:
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=settings.GEMINI_TIMEOUT * 1000),
    )


# Thinking is disabled: the app's prompts are short and latency matters more
# than depth.
GENERATION_CONFIG = types.GenerateContentConfig(
    thinking_config=types.ThinkingConfig(thinking_budget=0),
)


class GeminiClient:
    """Key-rotating wrapper around ``client.aio.models`` text generation."""

    def __init__(
        self,
        api_keys: Optional[List[str]] = None,
        paying_api_key: Optional[str] = None,
        model: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
        flush_chars: Optional[int] = None,
        chunk_delay: Optional[float] = None,
    ) -> None:
        self.api_keys = list(api_keys) if api_keys is not None else settings.get_gemini_api_keys()
        self.paying_api_key = (
            paying_api_key if paying_api_key is not None else settings.GEMINI_API_KEY_PAYING
        )
        self.model = model or settings.GEMINI_MODEL
        self.flush_chars = flush_chars if flush_chars is not None else settings.STREAM_FLUSH_CHARS
        self.chunk_delay = chunk_delay if chunk_delay is not None else settings.STREAM_CHUNK_DELAY
        self._client_factory = client_factory or make_genai_client
        self._clients: Dict[str, genai.Client] = {}
        self._key_index = 0

    # ------------------------------------------------------------------
    # Key rotation
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return bool(self.api_keys)

    @property
    def current_key_index(self) -> int:
        return self._key_index

    def _current_key(self) -> str:
        return self.api_keys[self._key_index]

    def rotate_key(self) -> None:
        if self.api_keys:
            self._key_index = (self._key_index + 1) % len(self.api_keys)

    # ------------------------------------------------------------------
    # SDK plumbing
    # ------------------------------------------------------------------

    def _sdk(self, api_key: str) -> genai.Client:
        """One SDK client per key, created on first use."""
        client = self._clients.get(api_key)
        if client is None:
            client = self._clients[api_key] = self._client_factory(api_key)
        return client

    async def _generate_once(self, prompt: str, api_key: str, model: str) -> str:
        response = await self._sdk(api_key).aio.models.generate_content(
            model=model,
            contents=prompt,
            config=GENERATION_CONFIG,
        )
        return response.text or ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(self, prompt: str, model: Optional[str] = None) -> str:
        """
        Return the model's full text response.

        Each configured key is tried once, starting from the current one.
        Raises AllKeysExhaustedError when none of them succeeds.
        """
        if not self.api_keys:
            raise GeminiError("No Gemini API keys configured")

        model = model or self.model
        last_error: Optional[Exception] = None

        for _ in range(len(self.api_keys)):
            index = self._key_index
            try:
                return await self._generate_once(prompt, self._current_key(), model)
            except PROVIDER_ERRORS as exc:
                last_error = exc
                logger.warning(
                    "Gemini key %d failed (%s)%s",
                    index,
                    exc,
                    " (quota)" if is_quota_limit_error(exc) else "",
                )
                self.rotate_key()

        raise AllKeysExhaustedError(
            f"All API keys have hit quota limits or failed: {last_error}"
        )

    async def stream_text(self, prompt: str, model: Optional[str] = None) -> AsyncIterator[bytes]:
        """
        Relay a streamed generation as NDJSON ``{"chunk": ...}`` lines.

        Text is buffered and flushed once ``flush_chars`` characters have
        accumulated, with a short pause between flushes so clients render
        smoothly.  A key that fails before anything was sent is rotated away
        and the request retried; once output has been sent a failure ends the
        stream with an error line instead, since replaying would duplicate
        text.  If every key fails an ``{"error": ...}`` line is emitted.
        """
        model = model or self.model
        attempts = 0
        emitted = False

        while attempts < len(self.api_keys):
            buffer = ""
            index = self._key_index
            try:
                stream = await self._sdk(self._current_key()).aio.models.generate_content_stream(
                    model=model,
                    contents=prompt,
                    config=GENERATION_CONFIG,
                )
                async for chunk in stream:
                    buffer += chunk.text or ""
                    if len(buffer) >= self.flush_chars:
                        yield ndjson_line({"chunk": buffer})
                        buffer = ""
                        emitted = True
                        await asyncio.sleep(self.chunk_delay)

                if buffer:
                    yield ndjson_line({"chunk": buffer})
                return

            except PROVIDER_ERRORS as exc:
                logger.error("Gemini stream with key %d failed: %s", index, exc)
                self.rotate_key()
                attempts += 1
                if emitted:
                    if buffer:
                        yield ndjson_line({"chunk": buffer})
                    yield ndjson_line({"error": "Generation was interrupted"})
                    return

        yield ndjson_line({"error": QUOTA_EXHAUSTED_MESSAGE})

    async def optimize_image_prompt(self, selected_text: str, full_context: str) -> str:
        """Turn a text selection into an illustration prompt using the paying key."""
        if not self.paying_api_key:
            raise GeminiError("GEMINI_API_KEY_PAYING not configured")

        prompt = IMAGE_PROMPT_OPTIMIZER.format(
            selected_text=selected_text,
            full_context=full_context,
        )
        try:
            text = await self._generate_once(prompt, self.paying_api_key, self.model)
        except PROVIDER_ERRORS as exc:
            raise GeminiError(f"Failed to optimize image prompt: {exc}") from exc

        optimized = text.strip()
        if not optimized:
            raise GeminiError("Failed to optimize image prompt: empty response")
        return optimized


_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    """Process-wide client, so key rotation state is shared between requests."""
    global _client
    if _client is None:
        _client = GeminiClient()
    return _client
