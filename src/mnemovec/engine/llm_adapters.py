"""Reasoning backend boundary for the contradiction classifier.

Adapters return the model's raw reply; decoding it is the job of
``mnemovec.engine.classification``. Call settings left as ``None`` fall
back to the adapter's ``LLMConfig``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from mnemovec.config import LLMConfig


@runtime_checkable
class LLMAdapter(Protocol):
    """Anything that can answer a classifier prompt with text.

    Tests use a ``MockLLMAdapter``.
    """

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ) -> str: ...


class LLMError(Exception):
    """Raised by LLM adapters when a call fails."""


# Verdict the no-op classifier gives for every pair
_NOOP_VERDICT = {
    "contradicts": False,
    "confidence": 0,
    "explanation": "No classifier configured",
}


class NoopLLMAdapter:
    """Offline classifier that never reports a contradiction."""

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ) -> str:
        del prompt, temperature, max_tokens, timeout_seconds
        return json.dumps(_NOOP_VERDICT)


_SYSTEM_MESSAGE = (
    "You check pairs of statements for logical contradiction. "
    "Reply with a single JSON object and nothing else."
)


class OpenAICompatibleLLMAdapter:
    """Classifier backed by an OpenAI-compatible ``/chat/completions`` API.

    The request pins JSON output (``response_format``) and a system
    message. A reply cut off at ``max_tokens`` or refused by the model is
    an ``LLMError`` rather than text the decoder would choke on.
    """

    def __init__(self, config: LLMConfig) -> None:
        if not config.api_key:
            raise ValueError("llm_config.api_key is required when provider='openai'")
        self._config = config
        self._endpoint = f"{config.base_url.rstrip('/')}/chat/completions"

    @property
    def config(self) -> LLMConfig:
        return self._config

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ) -> str:
        cfg = self._config
        body = {
            "model": cfg.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            "temperature": cfg.temperature if temperature is None else temperature,
            "max_tokens": cfg.max_tokens if max_tokens is None else max_tokens,
            "response_format": {"type": "json_object"},
        }
        timeout = cfg.timeout_seconds if timeout_seconds is None else timeout_seconds
        data = await asyncio.to_thread(self._post, body, timeout)
        return _reply_text(data)

    def _post(self, body: dict[str, Any], timeout: float) -> Any:
        request = Request(
            url=self._endpoint,
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._config.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urlopen(request, timeout=timeout) as response:
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise LLMError(f"classifier HTTP {exc.code}: {detail[:200]}") from exc
        except (URLError, OSError) as exc:
            reason = getattr(exc, "reason", exc)
            raise LLMError(f"classifier unreachable: {reason}") from exc
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise LLMError("classifier returned a non-JSON HTTP body") from exc


def _reply_text(data: Any) -> str:
    """Pull the assistant text out of a chat-completions response."""
    try:
        choice = data["choices"][0]
        message = choice["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError("classifier response has no choices[0].message") from exc

    if choice.get("finish_reason") == "length":
        raise LLMError("classifier reply was truncated at max_tokens")
    content = message.get("content")
    if isinstance(content, str):
        return content
    refusal = message.get("refusal")
    if refusal:
        raise LLMError(f"classifier refused: {refusal}")
    raise LLMError("classifier reply content is not text")


def build_llm_adapter(config: LLMConfig) -> LLMAdapter:
    """Pick the classifier backend named by ``config.provider``."""
    provider = config.provider.strip().lower()
    if provider == "noop":
        return NoopLLMAdapter()
    if provider == "openai":
        return OpenAICompatibleLLMAdapter(config)
    raise ValueError(
        f"Unsupported llm_config.provider '{config.provider}'. "
        "Supported providers: openai, noop."
    )
