"""Chat completion backends used by the AI classification strategy."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import httpx

from mail_intel.core.config import LlmSettings

LOGGER = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


def _resolve_endpoint(base_url: str, path: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    return urljoin(trimmed, path)


async def _post_with_retries(
    client: httpx.AsyncClient,
    endpoint: str,
    payload: dict[str, Any],
    *,
    headers: dict[str, str] | None,
    attempts: int,
) -> dict[str, Any]:
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            response = await client.post(endpoint, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            last_error = exc
            LOGGER.debug("LLM request attempt %s failed: %s", attempt, exc)
        except json.JSONDecodeError as exc:
            raise LLMError("LLM returned invalid JSON") from exc
        else:
            if not isinstance(data, dict):
                raise LLMError("LLM returned an unexpected payload")
            return data

        if attempt < attempts:
            await asyncio.sleep(min(2**attempt, 8))

    raise LLMError("LLM request failed after retries") from last_error


@dataclass(slots=True)
class OllamaChatBackend:
    """Client for the Ollama ``/api/chat`` endpoint."""

    settings: LlmSettings
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    @property
    def provider_id(self) -> str:
        return f"ollama:{self.settings.model}"

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        options: dict[str, Any] = {"temperature": self.settings.temperature}
        if self.settings.max_output_tokens is not None:
            options["num_predict"] = self.settings.max_output_tokens
        payload: dict[str, Any] = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
            "options": options,
        }
        endpoint = _resolve_endpoint(self.settings.base_url, "api/chat")
        async with httpx.AsyncClient(
            timeout=self.settings.timeout_seconds, transport=self.transport
        ) as client:
            data = await _post_with_retries(
                client,
                endpoint,
                payload,
                headers=None,
                attempts=self.settings.max_retries,
            )

        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise LLMError("LLM response missing 'message.content' field")
        return content


@dataclass(slots=True)
class OpenAIChatBackend:
    """Client for OpenAI compatible ``/v1/chat/completions`` endpoints."""

    settings: LlmSettings
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    @property
    def provider_id(self) -> str:
        return f"openai:{self.settings.model}"

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        payload: dict[str, Any] = {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.settings.temperature,
        }
        if self.settings.max_output_tokens is not None:
            payload["max_tokens"] = self.settings.max_output_tokens
        headers: dict[str, str] = {}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        endpoint = _resolve_endpoint(self.settings.base_url, "v1/chat/completions")
        async with httpx.AsyncClient(
            timeout=self.settings.timeout_seconds, transport=self.transport
        ) as client:
            data = await _post_with_retries(
                client,
                endpoint,
                payload,
                headers=headers,
                attempts=self.settings.max_retries,
            )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("LLM response missing 'choices[0].message.content'") from exc
        if not isinstance(content, str):
            raise LLMError("LLM response content was not text")
        return content


def build_backend(
    settings: LlmSettings,
) -> OllamaChatBackend | OpenAIChatBackend | None:
    """Return the configured backend, or ``None`` when AI is disabled."""
    if settings.provider == "ollama":
        return OllamaChatBackend(settings)
    if settings.provider == "openai":
        if not settings.api_key:
            LOGGER.warning("OpenAI backend selected without an API key; AI disabled")
            return None
        return OpenAIChatBackend(settings)
    return None


__all__ = ["LLMError", "OllamaChatBackend", "OpenAIChatBackend", "build_backend"]
