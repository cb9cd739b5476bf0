"""Chat-completions client used to narrate timing recommendations.

Talks to any OpenRouter-compatible ``/chat/completions`` endpoint and expects
the model to answer with a single JSON object.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from kairos.config import Settings

logger = logging.getLogger(__name__)

MAX_ERROR_DETAIL = 400

REPAIR_INSTRUCTIONS = (
    "Your previous reply could not be used:\n{error}\n\n"
    "Reply again with ONLY the corrected JSON object."
)


class LLMRequestError(RuntimeError):
    """The completion endpoint answered with a non-success status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"LLM request failed ({status_code}): {detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class ChatModelConfig:
    endpoint: str
    model_id: str
    api_key: str
    max_tokens: int | None = None
    temperature: float = 0.7

    @property
    def completions_url(self) -> str:
        return f"{self.endpoint.rstrip('/')}/chat/completions"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = response.text.strip()
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            detail = str(error.get("message") or error.get("code") or detail)
        elif error:
            detail = str(error)
    return detail[:MAX_ERROR_DETAIL]


def strip_json_fencing(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    if text.startswith("```"):
        _, _, text = text.partition("\n")
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class LLMClient:
    """Async client bound to one model configuration."""

    def __init__(
        self,
        config: ChatModelConfig,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def model_id(self) -> str:
        return self._config.model_id

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Send a chat and return the first choice's text."""
        config = self._config
        payload: dict[str, Any] = {
            "model": config.model_id,
            "messages": messages,
            "temperature": config.temperature,
        }
        if config.max_tokens:
            payload["max_tokens"] = config.max_tokens

        response = await self._http.post(
            config.completions_url,
            json=payload,
            headers={"Authorization": f"Bearer {config.api_key}"},
        )
        if response.is_error:
            raise LLMRequestError(response.status_code, _error_detail(response))

        data = response.json()
        logger.debug("LLM usage model=%s usage=%s", config.model_id, data.get("usage"))
        return data["choices"][0]["message"]["content"]

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        validate: Callable[[Any], None],
    ) -> dict:
        """Return a validated JSON object, giving the model one chance to repair it.

        ``validate`` raises ``ValueError`` for unusable output. A second
        failure propagates.
        """
        reply = await self.complete(messages)
        try:
            data = json.loads(strip_json_fencing(reply))
            validate(data)
            return data
        except ValueError as exc:
            logger.warning("LLM reply rejected, requesting repair: %s", exc)
            retry = messages + [
                {"role": "assistant", "content": reply},
                {"role": "user", "content": REPAIR_INSTRUCTIONS.format(error=exc)},
            ]

        data = json.loads(strip_json_fencing(await self.complete(retry)))
        validate(data)
        return data

    async def close(self) -> None:
        await self._http.aclose()


def build_llm_client(settings: Settings) -> LLMClient | None:
    """Client for the configured model, or None when no API key is set."""
    if not settings.llm_api_key.strip():
        logger.info("LLM_API_KEY not set; explanations will use templates")
        return None
    config = ChatModelConfig(
        endpoint=settings.llm_api_endpoint,
        model_id=settings.llm_model_id,
        api_key=settings.llm_api_key,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )
    return LLMClient(config, timeout=settings.llm_timeout_seconds)
