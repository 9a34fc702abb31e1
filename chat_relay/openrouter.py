from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import AsyncIterator, Dict, Optional, Sequence

import httpx
from pydantic import ValidationError

from .config import Settings
from .decoder import extract_delta
from .errors import ApiKeyNotConfigured, UpstreamServiceError
from .repository import Image, Message
from .wire import CompletionResponse, build_request, resolve_content

logger = logging.getLogger(__name__)

COMPLETION_TIMEOUT = 90.0
STREAM_TIMEOUT = 180.0
COMPLETIONS_PATH = "/chat/completions"


class OpenRouterClient:
    """Thin async client for the OpenRouter chat completion endpoint."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def _headers(self, accept: str) -> Dict[str, str]:
        key = self._settings.openrouter_api_key
        if not key or not key.strip():
            raise ApiKeyNotConfigured()
        return {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "Accept": accept,
            "HTTP-Referer": self._settings.http_referer,
            "X-Title": self._settings.app_title,
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._settings.openrouter_base_url,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def complete(
        self,
        model: str,
        history: Sequence[Message],
        text: str,
        images: Optional[Sequence[Image]] = None,
    ) -> Message:
        """Send a blocking completion request and return the assistant reply."""
        headers = self._headers("application/json")
        request = build_request(model, history, text, images, stream=False)
        logger.info("Sending chat request to model: %s, with images: %s", model, bool(images))

        try:
            async with asyncio.timeout(COMPLETION_TIMEOUT):
                async with self._client(COMPLETION_TIMEOUT) as client:
                    resp = await client.post(
                        COMPLETIONS_PATH, json=request.to_payload(), headers=headers
                    )
                    resp.raise_for_status()
                    body = CompletionResponse.model_validate(resp.json())
        except httpx.HTTPStatusError as e:
            logger.error(
                "OpenRouter API error: %s - %s", e.response.status_code, e.response.text
            )
            raise UpstreamServiceError(
                f"AI service returned error: {e.response.status_code} {e.response.text}"
            ) from e
        except TimeoutError as e:
            logger.error("OpenRouter request timed out after %ss", COMPLETION_TIMEOUT)
            raise UpstreamServiceError(
                f"Request timed out after {int(COMPLETION_TIMEOUT)} seconds"
            ) from e
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.error("Failed to communicate with OpenRouter: %s", e)
            raise UpstreamServiceError(
                f"Failed to communicate with AI service: {e}"
            ) from e

        if not body.choices or body.choices[0].message is None:
            raise UpstreamServiceError("Empty response from AI model")

        content = resolve_content(body.choices[0].message.content)
        logger.info(
            "Received response from model: %s, tokens used: %s",
            model,
            body.usage.total_tokens if body.usage else "unknown",
        )
        return Message(role="assistant", content=content.text, model=model)

    async def stream(
        self,
        model: str,
        history: Sequence[Message],
        text: str,
        images: Optional[Sequence[Image]] = None,
    ) -> AsyncIterator[str]:
        """Yield content deltas from a streaming completion.

        The whole exchange is bounded by ``STREAM_TIMEOUT``; closing the
        iterator early closes the upstream response.
        """
        headers = self._headers("text/event-stream")
        request = build_request(model, history, text, images, stream=True)
        logger.info(
            "Sending streaming chat request to model: %s, with images: %s",
            model,
            bool(images),
        )

        deadline = asyncio.get_running_loop().time() + STREAM_TIMEOUT
        try:
            async with AsyncExitStack() as stack:
                client = await stack.enter_async_context(self._client(STREAM_TIMEOUT))
                # The deadline wraps each await only; yields stay outside it
                async with asyncio.timeout_at(deadline):
                    resp = await stack.enter_async_context(
                        client.stream(
                            "POST",
                            COMPLETIONS_PATH,
                            json=request.to_payload(),
                            headers=headers,
                        )
                    )
                    if resp.is_error:
                        await resp.aread()

                if resp.is_error:
                    logger.error(
                        "OpenRouter API error: %s - %s", resp.status_code, resp.text
                    )
                    raise UpstreamServiceError(
                        f"Streaming failed: {resp.status_code} {resp.text}"
                    )

                lines = resp.aiter_lines()
                while True:
                    async with asyncio.timeout_at(deadline):
                        line = await anext(lines, None)
                    if line is None:
                        break
                    if not line.strip():
                        continue
                    delta = extract_delta(line)
                    if delta:
                        yield delta
        except TimeoutError as e:
            logger.error("Streaming timed out after %ss", STREAM_TIMEOUT)
            raise UpstreamServiceError(
                f"Streaming failed: timed out after {int(STREAM_TIMEOUT)} seconds"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Streaming error: %s", e)
            raise UpstreamServiceError(f"Streaming failed: {e}") from e
