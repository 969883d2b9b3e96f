# src/todo_chat/llm/client.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from ..config import Settings
from ..core.errors import UpstreamError
from ..core.ports import ChatTurn

logger = logging.getLogger(__name__)

BAD_MODEL_PARK_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {"UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, httpx.TimeoutException, TimeoutError)):
        return True
    return exc.__class__.__name__ in {"ConnectTimeout", "ReadTimeout", "WriteTimeout"}


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible SDK uses NotFoundError for HTTP 404 (unknown / removed model)
    return isinstance(exc, openai.NotFoundError)


def friendly_llm_error_message(err: Exception) -> str:
    """Map any provider failure to a short message that is safe to show in the chat."""
    if isinstance(err, UpstreamError):
        return str(err)
    if _is_auth_error(err):
        return "AI service authentication failed. Check the API key configuration."
    if _is_rate_limit_error(err):
        return "AI service is rate-limited. Try again later."
    if _is_connection_error(err):
        return "AI service network/timeout error. Try again later."
    return "AI service error. Try again later."


async def _close_stream(stream: Any) -> None:
    """Best-effort close for streaming responses."""
    close = getattr(stream, "close", None)
    if not callable(close):
        return
    with contextlib.suppress(Exception):
        result = close()
        if asyncio.iscoroutine(result):
            await result


def _delta_content(chunk: Any) -> str | None:
    try:
        choice0 = chunk.choices[0]
    except (AttributeError, IndexError):
        return None
    delta = getattr(choice0, "delta", None)
    return getattr(delta, "content", None) if delta is not None else None


class OpenRouterCompletionProvider:
    """
    Streaming completions from an OpenAI-compatible endpoint (OpenRouter by default).

    Behavior:
    - Tries models in the configured order.
    - Before the first content token: 404 parks the model for an hour and tries the next,
      rate limit / network / first-token timeout try the next, auth fails fast.
    - After the first token any failure is final (the caller already forwarded text).
    - Every failure surfaces as UpstreamError with a credential-free message.

    No secrets are required at construction time; the SDK client is created lazily.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client

        s = self._settings
        if not s.openrouter_api_key or not str(s.openrouter_api_key).strip():
            raise UpstreamError("AI service is not configured (missing API key).")
        if not (s.openrouter_base_url or "").strip():
            raise UpstreamError("AI service is not configured (missing base URL).")

        # Automatic retries are disabled to allow quick fallback across models.
        self._client = AsyncOpenAI(
            base_url=str(s.openrouter_base_url),
            api_key=str(s.openrouter_api_key),
            timeout=httpx.Timeout(
                connect=s.llm_connect_timeout_seconds,
                read=s.llm_read_timeout_seconds,
                write=10.0,
                pool=s.llm_connect_timeout_seconds,
            ),
            max_retries=0,
        )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def stream_completion(
        self, system_context: str, history: list[ChatTurn]
    ) -> AsyncIterator[str]:
        s = self._settings
        models: List[str] = [m.strip() for m in (s.llm_models or []) if m and m.strip()]
        headers: Dict[str, str] = dict(s.extra_headers or {})

        if not models:
            raise UpstreamError("AI service is not configured (no models).")

        client = self._get_client()
        first_token_timeout = float(s.llm_first_token_timeout_seconds)
        messages = [{"role": "system", "content": system_context}, *history]

        last_error: Optional[Exception] = None
        now = time.monotonic()

        for model in models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info(
                "LLM: trying model=%s (first_token_timeout=%.1fs)", model, first_token_timeout
            )
            t0 = time.monotonic()
            stream = None
            used_any = False

            try:
                stream = await client.chat.completions.create(
                    model=model,
                    stream=True,
                    max_tokens=s.llm_max_tokens,
                    extra_headers=headers or None,
                    messages=messages,
                )
                chunks = stream.__aiter__()

                while True:
                    try:
                        if used_any:
                            chunk = await chunks.__anext__()
                        else:
                            remaining = max(0.0, t0 + first_token_timeout - time.monotonic())
                            chunk = await asyncio.wait_for(chunks.__anext__(), remaining)
                    except StopAsyncIteration:
                        break

                    content = _delta_content(chunk)
                    if content:
                        if not used_any:
                            logger.info(
                                "LLM: first token from model=%s (%.2fs)", model, time.monotonic() - t0
                            )
                        used_any = True
                        yield content

                if used_any:
                    logger.debug("LLM: completed with model=%s", model)
                    return

                last_error = RuntimeError(f"Model returned no content: {model}")

            except asyncio.CancelledError:
                raise

            except Exception as e:
                if used_any:
                    logger.warning("LLM: stream failed mid-response on model=%s (%s)", model, e.__class__.__name__)
                    raise UpstreamError(friendly_llm_error_message(e)) from e

                last_error = e

                if isinstance(e, UpstreamError) or _is_auth_error(e):
                    raise UpstreamError(friendly_llm_error_message(e)) from e

                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + BAD_MODEL_PARK_SECONDS
                    logger.info("LLM: model not available (404): %s", model)
                    continue

                if _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                    continue

                if _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                    continue

                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            finally:
                if stream is not None:
                    await _close_stream(stream)

        if last_error is not None:
            if _is_rate_limit_error(last_error) or _is_connection_error(last_error):
                raise UpstreamError(friendly_llm_error_message(last_error)) from last_error
            raise UpstreamError("All AI models failed. Try again later.") from last_error

        raise UpstreamError("All AI models failed. Try again later.")
